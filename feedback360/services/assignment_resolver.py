"""
Survey assignment over relationship edges, plus the submission lifecycle.

A self-evaluation survey only attaches to self edges (subject and evaluator
wrap the same employee); any other survey only to non-self edges.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import exists, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, aliased

from feedback360.core.audit import (
    SUBMISSION_COMPLETED,
    SUBMISSION_DRAFT_SAVED,
    SURVEY_ASSIGNED,
    SURVEY_UNASSIGNED,
    log_event,
)
from feedback360.core.config import settings
from feedback360.core.notifications import EvaluatorNotice, NotificationDispatcher, dispatch
from feedback360.core.results import ServiceError, ServiceException
from feedback360.models.employee import Employee
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.models.survey import Survey
from feedback360.models.survey_submission import COMPLETED, IN_PROGRESS, STATUS_RANK, SurveySubmission
from feedback360.services import identity, relationship_graph
from feedback360.services.emailing_list_cache import EmailingListCache, mark_tenant_dirty

logger = logging.getLogger(__name__)


def get_survey(db: Session, tenant_id: uuid.UUID, survey_id: uuid.UUID) -> Survey:
    survey = db.get(Survey, survey_id)
    if not survey or survey.tenant_id != tenant_id or not survey.is_active:
        raise ServiceException(ServiceError.not_found("Survey not found"))
    return survey


def shape_error(survey: Survey, edge_is_self: bool) -> str | None:
    if survey.is_self_evaluation and not edge_is_self:
        return "Self-evaluation survey can only be assigned to self relationships"
    if not survey.is_self_evaluation and edge_is_self:
        return "Self relationship cannot be assigned to a non-self survey"
    return None


def _relationship_query(
    db: Session, tenant_id: uuid.UUID, search: str | None, relationship: str | None
) -> tuple[Query, Any, Any]:
    SubjectEmployee = aliased(Employee)
    EvaluatorEmployee = aliased(Employee)

    query = (
        db.query(SubjectEvaluator)
        .join(Subject, Subject.id == SubjectEvaluator.subject_id)
        .join(SubjectEmployee, SubjectEmployee.id == Subject.employee_id)
        .join(Evaluator, Evaluator.id == SubjectEvaluator.evaluator_id)
        .join(EvaluatorEmployee, EvaluatorEmployee.id == Evaluator.employee_id)
        .filter(
            SubjectEvaluator.tenant_id == tenant_id,
            SubjectEvaluator.is_active.is_(True),
            Subject.is_active.is_(True),
            Evaluator.is_active.is_(True),
        )
    )

    if relationship:
        query = query.filter(func.lower(SubjectEvaluator.label) == relationship.strip().lower())

    if search:
        term = f"%{search.strip().lower()}%"
        conditions = []
        for emp in (SubjectEmployee, EvaluatorEmployee):
            conditions += [
                (emp.first_name + " " + emp.last_name).ilike(term),
                emp.employee_code.ilike(term),
                emp.designation.ilike(term),
            ]
        query = query.filter(or_(*conditions))

    return query, SubjectEmployee, EvaluatorEmployee


def _active_assignment_exists(survey_id: uuid.UUID):
    return exists().where(
        SubjectEvaluatorSurvey.subject_evaluator_id == SubjectEvaluator.id,
        SubjectEvaluatorSurvey.survey_id == survey_id,
        SubjectEvaluatorSurvey.is_active.is_(True),
    )


def available_relationships(
    db: Session,
    tenant_id: uuid.UUID,
    survey_id: uuid.UUID,
    *,
    search: str | None = None,
    relationship: str | None = None,
) -> list[SubjectEvaluator]:
    """Edges of the survey's shape without an active assignment to it."""
    survey = get_survey(db, tenant_id, survey_id)
    query, SubjectEmployee, _ = _relationship_query(db, tenant_id, search, relationship)

    same_employee = Subject.employee_id == Evaluator.employee_id
    query = query.filter(same_employee if survey.is_self_evaluation else ~same_employee)
    query = query.filter(~_active_assignment_exists(survey.id))

    return query.order_by(SubjectEmployee.first_name.asc(), SubjectEvaluator.created_at.asc()).all()


def assigned_relationships(
    db: Session,
    tenant_id: uuid.UUID,
    survey_id: uuid.UUID,
    *,
    search: str | None = None,
    relationship: str | None = None,
) -> list[tuple[SubjectEvaluator, SubjectEvaluatorSurvey]]:
    survey = get_survey(db, tenant_id, survey_id)
    query, SubjectEmployee, _ = _relationship_query(db, tenant_id, search, relationship)

    rows = (
        query.join(
            SubjectEvaluatorSurvey,
            (SubjectEvaluatorSurvey.subject_evaluator_id == SubjectEvaluator.id)
            & (SubjectEvaluatorSurvey.survey_id == survey.id)
            & (SubjectEvaluatorSurvey.is_active.is_(True)),
        )
        .add_entity(SubjectEvaluatorSurvey)
        .order_by(SubjectEmployee.first_name.asc(), SubjectEvaluator.created_at.asc())
        .all()
    )
    return [(edge, assignment) for edge, assignment in rows]


def assignment_count(db: Session, tenant_id: uuid.UUID, survey_id: uuid.UUID) -> int:
    return (
        db.query(func.count(SubjectEvaluatorSurvey.id))
        .filter(
            SubjectEvaluatorSurvey.tenant_id == tenant_id,
            SubjectEvaluatorSurvey.survey_id == survey_id,
            SubjectEvaluatorSurvey.is_active.is_(True),
        )
        .scalar()
    )


ASSIGNED = "assigned"
REACTIVATED = "reactivated"
ALREADY_ASSIGNED = "already_assigned"


def ensure_assignment(
    db: Session, tenant_id: uuid.UUID, edge: SubjectEvaluator, survey: Survey
) -> tuple[SubjectEvaluatorSurvey, str]:
    """Create or reactivate the (edge, survey) assignment; an active one is left as is."""
    existing = (
        db.query(SubjectEvaluatorSurvey)
        .filter(
            SubjectEvaluatorSurvey.subject_evaluator_id == edge.id,
            SubjectEvaluatorSurvey.survey_id == survey.id,
        )
        .one_or_none()
    )
    if existing:
        if existing.is_active:
            return existing, ALREADY_ASSIGNED
        existing.is_active = True
        db.flush()
        return existing, REACTIVATED

    try:
        with db.begin_nested():
            assignment = SubjectEvaluatorSurvey(
                tenant_id=tenant_id,
                subject_evaluator_id=edge.id,
                survey_id=survey.id,
                is_active=True,
            )
            db.add(assignment)
            db.flush()
    except IntegrityError:
        assignment = (
            db.query(SubjectEvaluatorSurvey)
            .filter(
                SubjectEvaluatorSurvey.subject_evaluator_id == edge.id,
                SubjectEvaluatorSurvey.survey_id == survey.id,
            )
            .one()
        )
        assignment.is_active = True
        return assignment, ALREADY_ASSIGNED
    return assignment, ASSIGNED


@dataclass
class SurveyAssignmentResult:
    assigned: list[SubjectEvaluatorSurvey] = field(default_factory=list)
    skipped: list[SubjectEvaluatorSurvey] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    notices_sent: int = 0

    @property
    def assigned_count(self) -> int:
        return len(self.assigned)

    @property
    def success_count(self) -> int:
        return len(self.assigned) + len(self.skipped)

    @property
    def failure_count(self) -> int:
        return len(self.errors)


def _notify_new_assignments(
    survey: Survey,
    assignments: list[SubjectEvaluatorSurvey],
    dispatcher: NotificationDispatcher | None,
) -> int:
    """One notice per evaluator, listing every subject newly assigned to them."""
    by_evaluator: dict[uuid.UUID, list[SubjectEvaluatorSurvey]] = {}
    for a in assignments:
        by_evaluator.setdefault(a.subject_evaluator.evaluator_id, []).append(a)

    notices = []
    for items in by_evaluator.values():
        evaluator_employee = items[0].subject_evaluator.evaluator.employee
        notices.append(
            EvaluatorNotice(
                evaluator_email=evaluator_employee.email,
                evaluator_name=evaluator_employee.full_name,
                survey_id=str(survey.id),
                survey_title=survey.title,
                subject_names=[a.subject_evaluator.subject.employee.full_name for a in items],
            )
        )

    sent = {n.evaluator_email for n in dispatch(dispatcher, "assignment", notices)}
    now = datetime.utcnow()
    for items in by_evaluator.values():
        if items[0].subject_evaluator.evaluator.employee.email in sent:
            for a in items:
                a.assignment_email_sent_at = now
    return len(sent)


def assign_survey_to_relationships(
    db: Session,
    tenant_id: uuid.UUID,
    survey_id: uuid.UUID,
    relationship_ids: list[uuid.UUID],
    *,
    cache: EmailingListCache,
    dispatcher: NotificationDispatcher | None = None,
    notify: bool = True,
) -> SurveyAssignmentResult:
    survey = get_survey(db, tenant_id, survey_id)
    result = SurveyAssignmentResult()

    for relationship_id in relationship_ids:
        edge = db.get(SubjectEvaluator, relationship_id)
        if not edge or edge.tenant_id != tenant_id or not edge.is_active:
            result.errors.append(f"Relationship {relationship_id} not found")
            continue

        error = shape_error(survey, edge.is_self)
        if error:
            result.errors.append(f"Relationship {relationship_id}: {error}")
            continue

        assignment, action = ensure_assignment(db, tenant_id, edge, survey)
        if action == ALREADY_ASSIGNED:
            result.skipped.append(assignment)
            continue

        result.assigned.append(assignment)
        log_event(
            db=db,
            tenant_id=tenant_id,
            action=SURVEY_ASSIGNED,
            entity_type="subject_evaluator_survey",
            entity_id=assignment.id,
            metadata={
                "survey_id": str(survey.id),
                "subject_evaluator_id": str(edge.id),
                "reactivated": action == REACTIVATED,
            },
        )

    for error in result.errors:
        logger.warning("Survey %s assignment: %s", survey_id, error)

    if result.assigned:
        if notify:
            result.notices_sent = _notify_new_assignments(survey, result.assigned, dispatcher)
        mark_tenant_dirty(db, cache, tenant_id)

    logger.info(
        "Assigned survey %s to %d relationships (%d skipped, %d failed) in tenant %s",
        survey_id,
        result.assigned_count,
        len(result.skipped),
        result.failure_count,
        tenant_id,
    )
    return result


def unassign_survey_from_relationships(
    db: Session,
    tenant_id: uuid.UUID,
    survey_id: uuid.UUID,
    relationship_ids: list[uuid.UUID],
    *,
    cache: EmailingListCache,
) -> int:
    """Deactivate matching assignments; ids with no active assignment are ignored."""
    survey = get_survey(db, tenant_id, survey_id)
    if not relationship_ids:
        return 0

    assignments = (
        db.query(SubjectEvaluatorSurvey)
        .filter(
            SubjectEvaluatorSurvey.tenant_id == tenant_id,
            SubjectEvaluatorSurvey.survey_id == survey.id,
            SubjectEvaluatorSurvey.subject_evaluator_id.in_(relationship_ids),
            SubjectEvaluatorSurvey.is_active.is_(True),
        )
        .all()
    )
    for assignment in assignments:
        assignment.is_active = False
        log_event(
            db=db,
            tenant_id=tenant_id,
            action=SURVEY_UNASSIGNED,
            entity_type="subject_evaluator_survey",
            entity_id=assignment.id,
            metadata={
                "survey_id": str(survey.id),
                "subject_evaluator_id": str(assignment.subject_evaluator_id),
            },
        )

    if assignments:
        db.flush()
        mark_tenant_dirty(db, cache, tenant_id)
    logger.info("Unassigned survey %s from %d relationships in tenant %s", survey_id, len(assignments), tenant_id)
    return len(assignments)


# ---------------------------------------------------------------------------
# CSV rows


@dataclass
class RelationshipRow:
    evaluator_code: str | None
    subject_code: str | None
    relationship: str | None


@dataclass
class RowOutcome:
    row_number: int
    evaluator_code: str
    subject_code: str
    relationship: str | None
    success: bool = False
    message: str | None = None
    relationship_id: uuid.UUID | None = None
    assignment_id: uuid.UUID | None = None


@dataclass
class BulkResult:
    rows: list[RowOutcome] = field(default_factory=list)
    relationships_processed: int = 0
    assignments_created: int = 0

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.rows if r.success)

    @property
    def failure_count(self) -> int:
        return len(self.rows) - self.success_count

    @property
    def errors(self) -> list[str]:
        return [f"Row {r.row_number}: {r.message}" for r in self.rows if not r.success]


def _row_error(
    row: RelationshipRow,
    label: str | None,
    evaluator_emp: Employee | None,
    subject_emp: Employee | None,
    survey: Survey | None,
) -> str | None:
    if not (row.evaluator_code or "").strip():
        return "Evaluator code is required"
    if not (row.subject_code or "").strip():
        return "Subject code is required"
    if not label:
        return "Relationship is required"
    if len(label) > settings.MAX_RELATIONSHIP_LABEL_LENGTH:
        return f"Relationship exceeds {settings.MAX_RELATIONSHIP_LABEL_LENGTH} characters"
    if evaluator_emp is None:
        return f"Evaluator employee '{row.evaluator_code.strip()}' not found"
    if not evaluator_emp.is_active:
        return f"Evaluator employee '{row.evaluator_code.strip()}' is inactive"
    if subject_emp is None:
        return f"Subject employee '{row.subject_code.strip()}' not found"
    if not subject_emp.is_active:
        return f"Subject employee '{row.subject_code.strip()}' is inactive"

    same_employee = evaluator_emp.id == subject_emp.id
    if relationship_graph.is_self_label(label) and not same_employee:
        return "'Self' relationship requires subject and evaluator to be the same employee"
    if survey is not None:
        return shape_error(survey, same_employee)
    return None


def assign_from_csv_rows(
    db: Session,
    tenant_id: uuid.UUID,
    rows: list[RelationshipRow],
    *,
    survey_id: uuid.UUID | None = None,
    cache: EmailingListCache,
) -> BulkResult:
    """
    Resolve codes, upsert the edge and (with ``survey_id``) the assignment, row by row.

    Row numbers are ``index + 2`` so they match the uploaded file's lines
    (line 1 is the header). A failing row never stops the rows after it.
    """
    survey = get_survey(db, tenant_id, survey_id) if survey_id else None
    employees = identity.resolve_employees(
        db, tenant_id, [r.evaluator_code or "" for r in rows] + [r.subject_code or "" for r in rows]
    )

    result = BulkResult()
    for index, row in enumerate(rows):
        label = relationship_graph.normalize_label(row.relationship)
        outcome = RowOutcome(
            row_number=index + 2,
            evaluator_code=(row.evaluator_code or "").strip(),
            subject_code=(row.subject_code or "").strip(),
            relationship=label,
        )
        result.rows.append(outcome)

        evaluator_emp = employees.get(identity.normalize_code(row.evaluator_code))
        subject_emp = employees.get(identity.normalize_code(row.subject_code))
        outcome.message = _row_error(row, label, evaluator_emp, subject_emp, survey)
        if outcome.message:
            logger.warning("CSV row %d rejected: %s", outcome.row_number, outcome.message)
            continue

        try:
            with db.begin_nested():
                subject = identity.get_or_create_subject(db, subject_emp)
                evaluator = identity.get_or_create_evaluator(db, evaluator_emp)
                edge, action = relationship_graph.upsert_edge(db, tenant_id, subject, evaluator, label)
                relationship_graph.record_edge_change(db, tenant_id, edge, action)
                result.relationships_processed += 1
                outcome.relationship_id = edge.id

                if survey is not None:
                    assignment, assigned = ensure_assignment(db, tenant_id, edge, survey)
                    outcome.assignment_id = assignment.id
                    if assigned != ALREADY_ASSIGNED:
                        result.assignments_created += 1
                        log_event(
                            db=db,
                            tenant_id=tenant_id,
                            action=SURVEY_ASSIGNED,
                            entity_type="subject_evaluator_survey",
                            entity_id=assignment.id,
                            metadata={"survey_id": str(survey.id), "subject_evaluator_id": str(edge.id)},
                        )
                db.flush()
        except IntegrityError:
            logger.warning("CSV row %d conflicted with a concurrent write", outcome.row_number)
            outcome.message = "Conflicting concurrent update, retry the row"
            continue

        outcome.success = True
        outcome.message = action if survey is None else f"{action}; survey {assigned}"

    if result.relationships_processed:
        mark_tenant_dirty(db, cache, tenant_id)
    logger.info(
        "CSV assignment in tenant %s: %d ok, %d failed",
        tenant_id,
        result.success_count,
        result.failure_count,
    )
    return result


# ---------------------------------------------------------------------------
# Submissions


def get_assignment(db: Session, tenant_id: uuid.UUID, assignment_id: uuid.UUID) -> SubjectEvaluatorSurvey:
    assignment = db.get(SubjectEvaluatorSurvey, assignment_id)
    if not assignment or assignment.tenant_id != tenant_id or not assignment.is_active:
        raise ServiceException(ServiceError.not_found("Assignment not found"))
    return assignment


def get_submission(db: Session, tenant_id: uuid.UUID, assignment_id: uuid.UUID) -> SurveySubmission | None:
    assignment = db.get(SubjectEvaluatorSurvey, assignment_id)
    if not assignment or assignment.tenant_id != tenant_id:
        raise ServiceException(ServiceError.not_found("Assignment not found"))
    return (
        db.query(SurveySubmission)
        .filter(
            SurveySubmission.assignment_id == assignment.id,
            SurveySubmission.evaluator_id == assignment.subject_evaluator.evaluator_id,
        )
        .one_or_none()
    )


def _get_or_start_submission(
    db: Session, tenant_id: uuid.UUID, assignment: SubjectEvaluatorSurvey
) -> SurveySubmission:
    edge = assignment.subject_evaluator
    submission = (
        db.query(SurveySubmission)
        .filter(
            SurveySubmission.assignment_id == assignment.id,
            SurveySubmission.evaluator_id == edge.evaluator_id,
        )
        .one_or_none()
    )
    if submission:
        return submission

    now = datetime.utcnow()
    try:
        with db.begin_nested():
            submission = SurveySubmission(
                tenant_id=tenant_id,
                assignment_id=assignment.id,
                evaluator_id=edge.evaluator_id,
                subject_id=edge.subject_id,
                survey_id=assignment.survey_id,
                status=IN_PROGRESS,
                started_at=now,
            )
            db.add(submission)
            db.flush()
    except IntegrityError:
        submission = (
            db.query(SurveySubmission)
            .filter(
                SurveySubmission.assignment_id == assignment.id,
                SurveySubmission.evaluator_id == edge.evaluator_id,
            )
            .one()
        )
    return submission


def _write_submission(
    db: Session,
    tenant_id: uuid.UUID,
    assignment_id: uuid.UUID,
    response_data: dict[str, Any],
    *,
    complete: bool,
    allow_edit_after_completion: bool | None,
    cache: EmailingListCache,
) -> SurveySubmission:
    if allow_edit_after_completion is None:
        allow_edit_after_completion = settings.ALLOW_EDIT_AFTER_COMPLETION

    assignment = get_assignment(db, tenant_id, assignment_id)
    submission = _get_or_start_submission(db, tenant_id, assignment)
    now = datetime.utcnow()

    if submission.status == COMPLETED:
        if not allow_edit_after_completion:
            raise ServiceException(ServiceError.conflict("Submission already completed"))
        # Overwrite answers only; status and completed_at stay put
        submission.response_data = response_data
    else:
        submission.response_data = response_data
        if submission.started_at is None:
            submission.started_at = now
        target = COMPLETED if complete else IN_PROGRESS
        if STATUS_RANK[target] > STATUS_RANK[submission.status]:
            submission.status = target
            if target == COMPLETED:
                submission.completed_at = now

    submission.updated_at = now
    db.flush()

    log_event(
        db=db,
        tenant_id=tenant_id,
        action=SUBMISSION_COMPLETED if complete else SUBMISSION_DRAFT_SAVED,
        entity_type="survey_submission",
        entity_id=submission.id,
        metadata={
            "assignment_id": str(assignment.id),
            "status": submission.status,
            "answer_count": len(response_data),
            "version": submission.version,
        },
    )
    if complete:
        mark_tenant_dirty(db, cache, tenant_id)
    logger.info("Submission %s for assignment %s is %s", submission.id, assignment.id, submission.status)
    return submission


def save_draft(
    db: Session,
    tenant_id: uuid.UUID,
    assignment_id: uuid.UUID,
    response_data: dict[str, Any],
    *,
    cache: EmailingListCache,
    allow_edit_after_completion: bool | None = None,
) -> SurveySubmission:
    return _write_submission(
        db,
        tenant_id,
        assignment_id,
        response_data,
        complete=False,
        allow_edit_after_completion=allow_edit_after_completion,
        cache=cache,
    )


def submit(
    db: Session,
    tenant_id: uuid.UUID,
    assignment_id: uuid.UUID,
    response_data: dict[str, Any],
    *,
    cache: EmailingListCache,
    allow_edit_after_completion: bool | None = None,
) -> SurveySubmission:
    return _write_submission(
        db,
        tenant_id,
        assignment_id,
        response_data,
        complete=True,
        allow_edit_after_completion=allow_edit_after_completion,
        cache=cache,
    )
