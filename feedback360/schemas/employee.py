from pydantic import BaseModel, Field


class EmployeeCreate(BaseModel):
    employee_code: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(default="", max_length=100)
    email: str = Field(min_length=3, max_length=255)
    designation: str | None = Field(default=None, max_length=100)
    department: str | None = Field(default=None, max_length=100)


class EmployeeOut(BaseModel):
    id: str
    employee_code: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    designation: str | None
    department: str | None
    is_active: bool


class BulkEmployeeCreateRequest(BaseModel):
    """Create many employees; each row succeeds or fails on its own"""
    employees: list[EmployeeCreate] = Field(min_length=1, max_length=1000)
