import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from feedback360.db.base import Base
from feedback360.db.types import JSONType

NOT_STARTED = "NotStarted"
IN_PROGRESS = "InProgress"
COMPLETED = "Completed"

# Monotonic: a submission only ever moves to a higher rank
STATUS_RANK = {NOT_STARTED: 0, IN_PROGRESS: 1, COMPLETED: 2}


class SurveySubmission(Base):
    __tablename__ = "survey_submissions"
    __table_args__ = (
        UniqueConstraint("assignment_id", "evaluator_id", name="uq_submission_assignment_evaluator"),
        CheckConstraint(
            "status IN ('NotStarted','InProgress','Completed')",
            name="ck_survey_submissions_status",
        ),
        # NotStarted => no timestamps; Completed => both timestamps
        CheckConstraint(
            "(status <> 'NotStarted') OR (started_at IS NULL AND completed_at IS NULL)",
            name="ck_submission_ts_not_started",
        ),
        CheckConstraint(
            "(status <> 'Completed') OR (started_at IS NOT NULL AND completed_at IS NOT NULL)",
            name="ck_submission_ts_completed",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="RESTRICT"), index=True, nullable=False
    )

    assignment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subject_evaluator_surveys.id", ondelete="RESTRICT"), nullable=False
    )
    evaluator_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("evaluators.id", ondelete="RESTRICT"), nullable=False)
    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False)
    survey_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("surveys.id", ondelete="RESTRICT"), index=True, nullable=False
    )

    # Answers keyed by question name
    response_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=NOT_STARTED)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=datetime.utcnow)

    # Optimistic locking
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}
