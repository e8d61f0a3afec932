"""initial feedback360 schema

Revision ID: 4f1c2a9e7b10
Revises:
Create Date: 2026-10-19 09:12:04.118532
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "4f1c2a9e7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def _tenant_fk() -> sa.Column:
    return sa.Column("tenant_id", sa.Uuid(), sa.ForeignKey("tenants.id", ondelete="RESTRICT"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)

    op.create_table(
        "employees",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("employee_code", sa.String(50), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("designation", sa.String(100), nullable=True),
        sa.Column("department", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "employee_code", name="uq_employees_tenant_code"),
    )
    op.create_index("ix_employees_tenant_id", "employees", ["tenant_id"])
    op.create_index("ix_employees_employee_code", "employees", ["employee_code"])

    for table, constraint in (
        ("subjects", "uq_subjects_tenant_employee"),
        ("evaluators", "uq_evaluators_tenant_employee"),
    ):
        op.create_table(
            table,
            sa.Column("id", sa.Uuid(), primary_key=True),
            _tenant_fk(),
            sa.Column("employee_id", sa.Uuid(), sa.ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            *_timestamps(),
            sa.UniqueConstraint("tenant_id", "employee_id", name=constraint),
        )
        op.create_index(f"ix_{table}_tenant_id", table, ["tenant_id"])

    op.create_table(
        "subject_evaluators",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("subject_id", sa.Uuid(), sa.ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("evaluator_id", sa.Uuid(), sa.ForeignKey("evaluators.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("relationship", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_subject_evaluators_tenant_id", "subject_evaluators", ["tenant_id"])
    op.create_index("ix_subject_evaluators_evaluator", "subject_evaluators", ["evaluator_id"])
    # At most one active edge per pair
    op.create_index(
        "uq_subject_evaluators_active_pair",
        "subject_evaluators",
        ["tenant_id", "subject_id", "evaluator_id"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )

    op.create_table(
        "surveys",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("schema", JSONType, nullable=False),
        sa.Column("is_self_evaluation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_surveys_tenant_id", "surveys", ["tenant_id"])

    op.create_table(
        "subject_evaluator_surveys",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "subject_evaluator_id",
            sa.Uuid(),
            sa.ForeignKey("subject_evaluators.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("survey_id", sa.Uuid(), sa.ForeignKey("surveys.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assignment_email_sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("subject_evaluator_id", "survey_id", name="uq_assignment_relationship_survey"),
    )
    op.create_index("ix_subject_evaluator_surveys_tenant_id", "subject_evaluator_surveys", ["tenant_id"])
    op.create_index("ix_subject_evaluator_surveys_survey_id", "subject_evaluator_surveys", ["survey_id"])

    op.create_table(
        "survey_submissions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column(
            "assignment_id",
            sa.Uuid(),
            sa.ForeignKey("subject_evaluator_surveys.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("evaluator_id", sa.Uuid(), sa.ForeignKey("evaluators.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("subject_id", sa.Uuid(), sa.ForeignKey("subjects.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("survey_id", sa.Uuid(), sa.ForeignKey("surveys.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("response_data", JSONType, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="NotStarted"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.UniqueConstraint("assignment_id", "evaluator_id", name="uq_submission_assignment_evaluator"),
        sa.CheckConstraint(
            "status IN ('NotStarted','InProgress','Completed')",
            name="ck_survey_submissions_status",
        ),
        sa.CheckConstraint(
            "(status <> 'NotStarted') OR (started_at IS NULL AND completed_at IS NULL)",
            name="ck_submission_ts_not_started",
        ),
        sa.CheckConstraint(
            "(status <> 'Completed') OR (started_at IS NOT NULL AND completed_at IS NOT NULL)",
            name="ck_submission_ts_completed",
        ),
    )
    op.create_index("ix_survey_submissions_tenant_id", "survey_submissions", ["tenant_id"])
    op.create_index("ix_survey_submissions_survey_id", "survey_submissions", ["survey_id"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("event_metadata", JSONType, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_audit_events_tenant_id", "audit_events", ["tenant_id"])

    op.create_table(
        "import_jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _tenant_fk(),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PROCESSING"),
        sa.Column("total_records", sa.Integer(), nullable=True),
        sa.Column("processed_records", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("result_summary", JSONType, nullable=True),
        sa.Column("errors", JSONType, nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('PROCESSING','COMPLETED','FAILED')",
            name="ck_import_job_status",
        ),
    )
    op.create_index("ix_import_jobs_tenant_id", "import_jobs", ["tenant_id"])


def downgrade() -> None:
    for table in (
        "import_jobs",
        "audit_events",
        "survey_submissions",
        "subject_evaluator_surveys",
        "surveys",
        "subject_evaluators",
        "evaluators",
        "subjects",
        "employees",
        "tenants",
    ):
        op.drop_table(table)
