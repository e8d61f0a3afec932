from typing import Literal
from pydantic import BaseModel, Field


class EmployeeCodeValidationRequest(BaseModel):
    codes: list[str] = Field(min_length=1, max_length=1000, description="Employee codes to check, in row order")
    role: Literal["subject", "evaluator"] = "subject"


class CodeValidationOut(BaseModel):
    """Outcome for one requested code, with the resolved identity when found"""
    code: str
    is_valid: bool
    message: str
    employee_id: str | None = None
    wrapper_id: str | None = None  # Subject/Evaluator id when one already exists
    full_name: str | None = None
    email: str | None = None
    is_active: bool | None = None


class ValidationResponseOut(BaseModel):
    results: list[CodeValidationOut]
    total_requested: int
    valid_count: int
    invalid_count: int
