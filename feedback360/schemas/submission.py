from datetime import datetime
from typing import Any
from pydantic import BaseModel


class SubmissionPayload(BaseModel):
    response_data: dict[str, Any]


class SubmissionOut(BaseModel):
    id: str
    assignment_id: str
    evaluator_id: str
    subject_id: str
    survey_id: str
    status: str
    response_data: dict[str, Any] | None
    started_at: datetime | None
    completed_at: datetime | None
    version: int
