from datetime import datetime
from typing import Any
from pydantic import BaseModel


class ImportJobOut(BaseModel):
    id: str
    kind: str
    status: str
    total_records: int | None
    processed_records: int
    result_summary: dict[str, Any] | None
    errors: list[dict[str, Any]]
    started_at: datetime | None
    completed_at: datetime | None
