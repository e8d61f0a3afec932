"""
Subject<->Evaluator relationship graph.

One active edge per (tenant, subject, evaluator). Re-assigning an existing
pair updates its label, re-assigning a removed pair reactivates the old row.
Evaluators owned by another tenant reject the whole call before any write.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedback360.core.audit import (
    RELATIONSHIP_ASSIGNED,
    RELATIONSHIP_LABEL_UPDATED,
    RELATIONSHIP_REACTIVATED,
    RELATIONSHIP_REMOVED,
    log_event,
)
from feedback360.core.config import settings
from feedback360.core.results import Result, ServiceError, ServiceException
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.models.survey import Survey
from feedback360.services.emailing_list_cache import EmailingListCache, mark_tenant_dirty

logger = logging.getLogger(__name__)

SELF_LABEL = "self"

CREATED = "created"
REACTIVATED = "reactivated"
UPDATED = "updated"
UNCHANGED = "unchanged"

_AUDIT_ACTION = {
    CREATED: RELATIONSHIP_ASSIGNED,
    REACTIVATED: RELATIONSHIP_REACTIVATED,
    UPDATED: RELATIONSHIP_LABEL_UPDATED,
}


@dataclass
class EdgeOutcome:
    target_id: str
    relationship: SubjectEvaluator | None = None
    action: str | None = None
    error: ServiceError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class AssignmentResult:
    outcomes: list[EdgeOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failure_count(self) -> int:
        return len(self.outcomes) - self.success_count

    @property
    def success(self) -> bool:
        return self.failure_count == 0


def is_self_label(label: str | None) -> bool:
    return (label or "").strip().lower() == SELF_LABEL


def normalize_label(label: str | None) -> str | None:
    if label is None:
        return None
    label = label.strip()
    return label or None


def validate_label(label: str | None, subject: Subject, evaluator: Evaluator) -> ServiceError | None:
    if label is not None and len(label) > settings.MAX_RELATIONSHIP_LABEL_LENGTH:
        return ServiceError.invalid(
            f"Relationship label exceeds {settings.MAX_RELATIONSHIP_LABEL_LENGTH} characters"
        )
    if is_self_label(label) and subject.employee_id != evaluator.employee_id:
        return ServiceError.invalid("'Self' relationship requires subject and evaluator to be the same employee")
    return None


def get_subject(db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID) -> Subject:
    subject = db.get(Subject, subject_id)
    # Another tenant's subject is indistinguishable from a missing one
    if not subject or subject.tenant_id != tenant_id or not subject.is_active:
        raise ServiceException(ServiceError.not_found("Subject not found"))
    return subject


def get_evaluator(db: Session, tenant_id: uuid.UUID, evaluator_id: uuid.UUID) -> Evaluator:
    evaluator = db.get(Evaluator, evaluator_id)
    if not evaluator or evaluator.tenant_id != tenant_id or not evaluator.is_active:
        raise ServiceException(ServiceError.not_found("Evaluator not found"))
    return evaluator


def _load_counterparts(db: Session, tenant_id: uuid.UUID, model, ids: list[uuid.UUID], what: str) -> dict:
    """
    Load the other ends of a batch assign.

    Raises IsolationViolation if any id belongs to another tenant, so nothing
    is written for a mixed batch.
    """
    rows = db.query(model).filter(model.id.in_(ids)).all() if ids else []
    foreign = [r for r in rows if r.tenant_id != tenant_id]
    if foreign:
        logger.warning(
            "Rejected cross-tenant %s assignment in tenant %s: %s",
            what,
            tenant_id,
            ", ".join(str(r.id) for r in foreign),
        )
        raise ServiceException(
            ServiceError.isolation(f"{what.capitalize()} {foreign[0].id} belongs to a different tenant")
        )
    return {r.id: r for r in rows}


def _find_edge(db: Session, tenant_id, subject_id, evaluator_id, *, active: bool) -> SubjectEvaluator | None:
    query = db.query(SubjectEvaluator).filter(
        SubjectEvaluator.tenant_id == tenant_id,
        SubjectEvaluator.subject_id == subject_id,
        SubjectEvaluator.evaluator_id == evaluator_id,
        SubjectEvaluator.is_active.is_(active),
    )
    if active:
        return query.one_or_none()
    return query.order_by(SubjectEvaluator.created_at.desc()).first()


def upsert_edge(
    db: Session, tenant_id: uuid.UUID, subject: Subject, evaluator: Evaluator, label: str | None
) -> tuple[SubjectEvaluator, str]:
    """
    Create, reactivate or relabel the (subject, evaluator) edge.

    Returns the edge and one of CREATED / REACTIVATED / UPDATED / UNCHANGED.
    """
    edge = _find_edge(db, tenant_id, subject.id, evaluator.id, active=True)
    if edge:
        if edge.label == label:
            return edge, UNCHANGED
        edge.label = label
        return edge, UPDATED

    edge = _find_edge(db, tenant_id, subject.id, evaluator.id, active=False)
    if edge:
        edge.is_active = True
        edge.label = label
        db.flush()
        return edge, REACTIVATED

    try:
        with db.begin_nested():
            edge = SubjectEvaluator(
                tenant_id=tenant_id,
                subject_id=subject.id,
                evaluator_id=evaluator.id,
                label=label,
                is_active=True,
            )
            db.add(edge)
            db.flush()  # partial unique index rejects a concurrent duplicate
    except IntegrityError:
        edge = _find_edge(db, tenant_id, subject.id, evaluator.id, active=True)
        if edge is None:
            raise
        edge.label = label  # last write wins
        return edge, UPDATED
    return edge, CREATED


def record_edge_change(db: Session, tenant_id: uuid.UUID, edge: SubjectEvaluator, action: str) -> None:
    if action == UNCHANGED:
        return
    log_event(
        db=db,
        tenant_id=tenant_id,
        action=_AUDIT_ACTION[action],
        entity_type="subject_evaluator",
        entity_id=edge.id,
        metadata={
            "subject_id": str(edge.subject_id),
            "evaluator_id": str(edge.evaluator_id),
            "relationship": edge.label,
        },
    )


def assign(
    db: Session,
    tenant_id: uuid.UUID,
    subject_id: uuid.UUID,
    evaluator_ids: list[uuid.UUID],
    label: str | None,
    *,
    cache: EmailingListCache,
) -> AssignmentResult:
    subject = get_subject(db, tenant_id, subject_id)
    evaluators = _load_counterparts(db, tenant_id, Evaluator, evaluator_ids, "evaluator")
    label = normalize_label(label)

    result = AssignmentResult()
    for evaluator_id in evaluator_ids:
        outcome = EdgeOutcome(target_id=str(evaluator_id))
        evaluator = evaluators.get(evaluator_id)
        if not evaluator or not evaluator.is_active:
            outcome.error = ServiceError.not_found(f"Evaluator {evaluator_id} not found")
        else:
            outcome.error = validate_label(label, subject, evaluator)
        if outcome.error is None:
            outcome.relationship, outcome.action = upsert_edge(db, tenant_id, subject, evaluator, label)
            record_edge_change(db, tenant_id, outcome.relationship, outcome.action)
        else:
            logger.warning("Assign %s -> %s failed: %s", subject_id, evaluator_id, outcome.error.reason)
        result.outcomes.append(outcome)

    if result.success_count:
        mark_tenant_dirty(db, cache, tenant_id)
    logger.info(
        "Assigned %d/%d evaluators to subject %s in tenant %s",
        result.success_count,
        len(result.outcomes),
        subject_id,
        tenant_id,
    )
    return result


def assign_reciprocal(
    db: Session,
    tenant_id: uuid.UUID,
    evaluator_id: uuid.UUID,
    subject_ids: list[uuid.UUID],
    label: str | None,
    *,
    cache: EmailingListCache,
) -> AssignmentResult:
    evaluator = get_evaluator(db, tenant_id, evaluator_id)
    subjects = _load_counterparts(db, tenant_id, Subject, subject_ids, "subject")
    label = normalize_label(label)

    result = AssignmentResult()
    for subject_id in subject_ids:
        outcome = EdgeOutcome(target_id=str(subject_id))
        subject = subjects.get(subject_id)
        if not subject or not subject.is_active:
            outcome.error = ServiceError.not_found(f"Subject {subject_id} not found")
        else:
            outcome.error = validate_label(label, subject, evaluator)
        if outcome.error is None:
            outcome.relationship, outcome.action = upsert_edge(db, tenant_id, subject, evaluator, label)
            record_edge_change(db, tenant_id, outcome.relationship, outcome.action)
        else:
            logger.warning("Assign %s <- %s failed: %s", subject_id, evaluator_id, outcome.error.reason)
        result.outcomes.append(outcome)

    if result.success_count:
        mark_tenant_dirty(db, cache, tenant_id)
    logger.info(
        "Assigned evaluator %s to %d/%d subjects in tenant %s",
        evaluator_id,
        result.success_count,
        len(result.outcomes),
        tenant_id,
    )
    return result


def update_label(
    db: Session,
    tenant_id: uuid.UUID,
    subject_id: uuid.UUID,
    evaluator_id: uuid.UUID,
    label: str | None,
    *,
    cache: EmailingListCache,
) -> Result[SubjectEvaluator]:
    edge = _find_edge(db, tenant_id, subject_id, evaluator_id, active=True)
    if not edge:
        return Result.err(ServiceError.not_found("Relationship not found"))

    label = normalize_label(label)
    error = validate_label(label, edge.subject, edge.evaluator)
    if error:
        return Result.err(error)

    if edge.label != label:
        edge.label = label
        record_edge_change(db, tenant_id, edge, UPDATED)
        mark_tenant_dirty(db, cache, tenant_id)
    return Result.ok(edge)


def remove(
    db: Session,
    tenant_id: uuid.UUID,
    subject_id: uuid.UUID,
    evaluator_id: uuid.UUID,
    *,
    cache: EmailingListCache,
) -> bool:
    """Deactivate the active edge and its survey assignments. False if none."""
    edge = _find_edge(db, tenant_id, subject_id, evaluator_id, active=True)
    if not edge:
        return False

    edge.is_active = False
    edge.updated_at = datetime.utcnow()
    deactivated = (
        db.query(SubjectEvaluatorSurvey)
        .filter(
            SubjectEvaluatorSurvey.subject_evaluator_id == edge.id,
            SubjectEvaluatorSurvey.is_active.is_(True),
        )
        .update({SubjectEvaluatorSurvey.is_active: False}, synchronize_session="fetch")
    )
    db.flush()

    log_event(
        db=db,
        tenant_id=tenant_id,
        action=RELATIONSHIP_REMOVED,
        entity_type="subject_evaluator",
        entity_id=edge.id,
        metadata={
            "subject_id": str(edge.subject_id),
            "evaluator_id": str(edge.evaluator_id),
            "assignments_deactivated": deactivated,
        },
    )
    mark_tenant_dirty(db, cache, tenant_id)
    logger.info("Removed relationship %s in tenant %s", edge.id, tenant_id)
    return True


def list_for_subject(db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID) -> list[SubjectEvaluator]:
    get_subject(db, tenant_id, subject_id)
    return (
        db.query(SubjectEvaluator)
        .filter(
            SubjectEvaluator.tenant_id == tenant_id,
            SubjectEvaluator.subject_id == subject_id,
            SubjectEvaluator.is_active.is_(True),
        )
        .order_by(SubjectEvaluator.created_at.asc())
        .all()
    )


def list_for_evaluator(db: Session, tenant_id: uuid.UUID, evaluator_id: uuid.UUID) -> list[SubjectEvaluator]:
    get_evaluator(db, tenant_id, evaluator_id)
    return (
        db.query(SubjectEvaluator)
        .filter(
            SubjectEvaluator.tenant_id == tenant_id,
            SubjectEvaluator.evaluator_id == evaluator_id,
            SubjectEvaluator.is_active.is_(True),
        )
        .order_by(SubjectEvaluator.created_at.asc())
        .all()
    )


def relationships_with_surveys(
    db: Session, tenant_id: uuid.UUID, subject_id: uuid.UUID
) -> list[tuple[SubjectEvaluator, list[Survey]]]:
    edges = list_for_subject(db, tenant_id, subject_id)
    if not edges:
        return []

    rows = (
        db.query(SubjectEvaluatorSurvey.subject_evaluator_id, Survey)
        .join(Survey, Survey.id == SubjectEvaluatorSurvey.survey_id)
        .filter(
            SubjectEvaluatorSurvey.tenant_id == tenant_id,
            SubjectEvaluatorSurvey.subject_evaluator_id.in_([e.id for e in edges]),
            SubjectEvaluatorSurvey.is_active.is_(True),
            Survey.is_active.is_(True),
        )
        .order_by(Survey.title.asc())
        .all()
    )
    surveys_by_edge: dict[uuid.UUID, list[Survey]] = {}
    for edge_id, survey in rows:
        surveys_by_edge.setdefault(edge_id, []).append(survey)
    return [(e, surveys_by_edge.get(e.id, [])) for e in edges]
