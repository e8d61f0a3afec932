import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feedback360.db.base import Base
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.survey import Survey


class SubjectEvaluatorSurvey(Base):
    """Links one relationship edge to one survey: the evaluator owes a response."""

    __tablename__ = "subject_evaluator_surveys"
    __table_args__ = (
        UniqueConstraint("subject_evaluator_id", "survey_id", name="uq_assignment_relationship_survey"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="RESTRICT"), index=True, nullable=False
    )

    subject_evaluator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("subject_evaluators.id", ondelete="RESTRICT"), nullable=False
    )
    survey_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("surveys.id", ondelete="RESTRICT"), index=True, nullable=False
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Notification bookkeeping, surfaced by the emailing list
    last_reminder_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    assignment_email_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=datetime.utcnow)

    subject_evaluator: Mapped[SubjectEvaluator] = relationship(SubjectEvaluator, lazy="joined")
    survey: Mapped[Survey] = relationship(Survey, lazy="joined")
