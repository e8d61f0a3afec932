import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from feedback360.db.base import Base
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject


class SubjectEvaluator(Base):
    """Labelled Subject<->Evaluator edge ("Manager", "Peer", "Self", ...)."""

    __tablename__ = "subject_evaluators"
    __table_args__ = (
        # At most one active edge per pair; deactivated rows are kept for history
        Index(
            "uq_subject_evaluators_active_pair",
            "tenant_id",
            "subject_id",
            "evaluator_id",
            unique=True,
            postgresql_where=sa.text("is_active"),
            sqlite_where=sa.text("is_active = 1"),
        ),
        Index("ix_subject_evaluators_evaluator", "evaluator_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id", ondelete="RESTRICT"), index=True, nullable=False
    )

    subject_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False)
    evaluator_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("evaluators.id", ondelete="RESTRICT"), nullable=False)

    # Free-form relationship label, not an enum
    label: Mapped[str | None] = mapped_column("relationship", String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=datetime.utcnow)

    subject: Mapped[Subject] = relationship(Subject, lazy="joined")
    evaluator: Mapped[Evaluator] = relationship(Evaluator, lazy="joined")

    @property
    def is_self(self) -> bool:
        """Subject and evaluator wrap the same employee."""
        return self.subject.employee_id == self.evaluator.employee_id
