import uuid
from datetime import datetime
from pydantic import BaseModel


class EmailingListItemOut(BaseModel):
    survey_id: str
    survey_name: str
    evaluator_id: str
    evaluator_name: str
    evaluator_email: str
    subject_count: int
    subject_names: list[str]
    last_reminder_sent_at: datetime | None
    assignment_email_sent_at: datetime | None
    subject_evaluator_survey_ids: list[str]


class ReminderRequest(BaseModel):
    survey_id: uuid.UUID | None = None


class ReminderResult(BaseModel):
    sent: int
    failed: int
