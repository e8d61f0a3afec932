"""
Bulk validation of employee codes and CSV relationship imports.

Results always come back in input order so callers can map each one to the
row or line it came from.
"""
import csv
import io
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.orm import Session

from feedback360.core.audit import IMPORT_COMPLETED, log_event
from feedback360.models.evaluator import Evaluator
from feedback360.models.import_job import COMPLETED, FAILED, PROCESSING, ImportJob
from feedback360.models.subject import Subject
from feedback360.services import identity
from feedback360.services.assignment_resolver import BulkResult, RelationshipRow, assign_from_csv_rows
from feedback360.services.emailing_list_cache import EmailingListCache

logger = logging.getLogger(__name__)

SUBJECT = "subject"
EVALUATOR = "evaluator"

_WRAPPERS = {SUBJECT: Subject, EVALUATOR: Evaluator}


@dataclass
class CodeValidation:
    code: str
    is_valid: bool
    message: str
    employee_id: uuid.UUID | None = None
    wrapper_id: uuid.UUID | None = None
    full_name: str | None = None
    email: str | None = None
    is_active: bool | None = None


@dataclass
class ValidationResponse:
    results: list[CodeValidation] = field(default_factory=list)

    @property
    def total_requested(self) -> int:
        return len(self.results)

    @property
    def valid_count(self) -> int:
        return sum(1 for r in self.results if r.is_valid)

    @property
    def invalid_count(self) -> int:
        return self.total_requested - self.valid_count

    @property
    def is_single(self) -> bool:
        return self.total_requested == 1


def validate_employee_codes(db: Session, tenant_id: uuid.UUID, codes: list[str], role: str) -> ValidationResponse:
    """
    Check each code resolves to an active employee that has, or could lazily
    get, a usable ``role`` wrapper. Read-only: no wrapper is created here.
    """
    if role not in _WRAPPERS:
        raise ValueError(f"Unknown role {role!r}")
    model = _WRAPPERS[role]

    employees = identity.resolve_employees(db, tenant_id, codes)
    wrappers = {}
    if employees:
        rows = (
            db.query(model)
            .filter(
                model.tenant_id == tenant_id,
                model.employee_id.in_([e.id for e in employees.values()]),
            )
            .all()
        )
        wrappers = {w.employee_id: w for w in rows}

    response = ValidationResponse()
    for code in codes:
        display = (code or "").strip()
        employee = employees.get(identity.normalize_code(code))

        if not display:
            response.results.append(CodeValidation(code=display, is_valid=False, message="Employee code is required"))
            continue
        if employee is None:
            response.results.append(
                CodeValidation(code=display, is_valid=False, message=f"Employee code '{display}' not found in this tenant")
            )
            continue

        snapshot = dict(
            employee_id=employee.id,
            full_name=employee.full_name,
            email=employee.email,
            is_active=employee.is_active,
        )
        if not employee.is_active:
            response.results.append(
                CodeValidation(code=display, is_valid=False, message=f"Employee '{display}' is inactive", **snapshot)
            )
            continue

        # A deactivated wrapper is reactivated on first use, so it still counts
        wrapper = wrappers.get(employee.id)
        message = "Valid"
        if wrapper is not None and not wrapper.is_active:
            message = f"Valid; {role} for employee '{display}' will be reactivated"

        response.results.append(
            CodeValidation(
                code=display,
                is_valid=True,
                message=message,
                wrapper_id=wrapper.id if wrapper else None,
                **snapshot,
            )
        )

    logger.info(
        "Validated %d %s codes in tenant %s (%d invalid)",
        response.total_requested,
        role,
        tenant_id,
        response.invalid_count,
    )
    return response


_EVALUATOR_KEYS = ("evaluatorcode", "evaluatoremployeecode", "evaluatorid", "evaluator")
_SUBJECT_KEYS = ("subjectcode", "subjectemployeecode", "subjectid", "subject")
_LABEL_KEYS = ("relationship", "relationshiplabel", "relationshiptype", "label")


def _header_key(name: str | None) -> str:
    return "".join(ch for ch in (name or "").lower() if ch.isalnum())


def _pick(row: dict[str, str | None], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        if key in row:
            return row[key]
    return None


def parse_relationship_csv(content: str) -> list[RelationshipRow]:
    """
    Read ``EvaluatorCode,SubjectCode,Relationship`` rows.

    Header names are matched loosely ("Evaluator Code", "evaluator_code", ...).
    """
    reader = csv.DictReader(io.StringIO(content.lstrip("\ufeff")))
    rows = []
    for raw in reader:
        normalized = {_header_key(k): v for k, v in raw.items() if k is not None}
        rows.append(
            RelationshipRow(
                evaluator_code=_pick(normalized, _EVALUATOR_KEYS),
                subject_code=_pick(normalized, _SUBJECT_KEYS),
                relationship=_pick(normalized, _LABEL_KEYS),
            )
        )
    return rows


def import_relationship_rows(
    db: Session,
    tenant_id: uuid.UUID,
    rows: list[RelationshipRow],
    *,
    survey_id: uuid.UUID | None = None,
    cache: EmailingListCache,
) -> tuple[ImportJob, BulkResult]:
    """Run ``assign_from_csv_rows`` and record the outcome as an ImportJob."""
    job = ImportJob(
        tenant_id=tenant_id,
        kind="relationship_csv",
        status=PROCESSING,
        total_records=len(rows),
        processed_records=0,
        errors=[],
        started_at=datetime.utcnow(),
    )
    db.add(job)
    db.flush()

    result = assign_from_csv_rows(db, tenant_id, rows, survey_id=survey_id, cache=cache)

    succeeded = result.success_count > 0 or result.relationships_processed > 0
    job.status = COMPLETED if succeeded or not rows else FAILED
    job.processed_records = len(result.rows)
    job.errors = [
        {"row": r.row_number, "message": r.message}
        for r in result.rows
        if not r.success
    ]
    job.result_summary = {
        "success_count": result.success_count,
        "failure_count": result.failure_count,
        "relationships_processed": result.relationships_processed,
        "assignments_created": result.assignments_created,
        "survey_id": str(survey_id) if survey_id else None,
    }
    job.completed_at = datetime.utcnow()
    db.flush()

    log_event(
        db=db,
        tenant_id=tenant_id,
        action=IMPORT_COMPLETED,
        entity_type="import_job",
        entity_id=job.id,
        metadata=job.result_summary,
    )
    return job, result


def get_import_job(db: Session, tenant_id: uuid.UUID, job_id: uuid.UUID) -> ImportJob | None:
    job = db.get(ImportJob, job_id)
    if not job or job.tenant_id != tenant_id:
        return None
    return job
