"""
Per-tenant emailing list: which evaluators still owe which surveys.

The list is derived from Assignment rows and cached per tenant with a sliding
window (re-extended on every read) capped by an absolute lifetime. Every graph
or assignment mutation invalidates the tenant's entry before it returns, and
again once the surrounding transaction commits or rolls back.
"""
import logging
import threading
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from cachetools import TTLCache
from fastapi import Request
from sqlalchemy import event
from sqlalchemy.orm import Session, aliased

from feedback360.core.audit import REMINDERS_SENT, log_event
from feedback360.core.config import Settings
from feedback360.core.notifications import EvaluatorNotice, NotificationDispatcher, dispatch
from feedback360.models.employee import Employee
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.models.survey import Survey
from feedback360.models.survey_submission import COMPLETED, SurveySubmission

logger = logging.getLogger(__name__)

_DIRTY_KEY = "emailing_list_dirty_tenants"


@dataclass(frozen=True)
class EmailingListItem:
    survey_id: uuid.UUID
    survey_title: str
    evaluator_id: uuid.UUID
    evaluator_name: str
    evaluator_email: str
    subject_names: tuple[str, ...]
    assignment_ids: tuple[uuid.UUID, ...]
    last_reminder_sent_at: datetime | None
    assignment_email_sent_at: datetime | None

    @property
    def subject_count(self) -> int:
        return len(self.subject_names)


def _latest(a: datetime | None, b: datetime | None) -> datetime | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def compute_emailing_list(db: Session, tenant_id: uuid.UUID) -> list[EmailingListItem]:
    """
    Read-only: active assignments on active edges with no Completed submission,
    grouped by (survey, evaluator).
    """
    SubjectEmployee = aliased(Employee)
    EvaluatorEmployee = aliased(Employee)

    completed = (
        db.query(SurveySubmission.id)
        .filter(
            SurveySubmission.assignment_id == SubjectEvaluatorSurvey.id,
            SurveySubmission.status == COMPLETED,
        )
        .exists()
    )

    rows = (
        db.query(
            SubjectEvaluatorSurvey,
            Survey.title,
            Evaluator.id,
            EvaluatorEmployee,
            SubjectEmployee,
        )
        .join(SubjectEvaluator, SubjectEvaluator.id == SubjectEvaluatorSurvey.subject_evaluator_id)
        .join(Survey, Survey.id == SubjectEvaluatorSurvey.survey_id)
        .join(Subject, Subject.id == SubjectEvaluator.subject_id)
        .join(SubjectEmployee, SubjectEmployee.id == Subject.employee_id)
        .join(Evaluator, Evaluator.id == SubjectEvaluator.evaluator_id)
        .join(EvaluatorEmployee, EvaluatorEmployee.id == Evaluator.employee_id)
        .filter(
            SubjectEvaluatorSurvey.tenant_id == tenant_id,
            SubjectEvaluatorSurvey.is_active.is_(True),
            SubjectEvaluator.is_active.is_(True),
            Survey.is_active.is_(True),
            Subject.is_active.is_(True),
            Evaluator.is_active.is_(True),
            ~completed,
        )
        .order_by(Survey.title.asc(), EvaluatorEmployee.first_name.asc(), SubjectEmployee.first_name.asc())
        .all()
    )

    grouped: dict[tuple[uuid.UUID, uuid.UUID], dict] = {}
    for assignment, survey_title, evaluator_id, evaluator_emp, subject_emp in rows:
        key = (assignment.survey_id, evaluator_id)
        group = grouped.get(key)
        if group is None:
            group = grouped[key] = {
                "survey_id": assignment.survey_id,
                "survey_title": survey_title,
                "evaluator_id": evaluator_id,
                "evaluator_name": evaluator_emp.full_name,
                "evaluator_email": evaluator_emp.email,
                "subject_names": [],
                "assignment_ids": [],
                "last_reminder_sent_at": None,
                "assignment_email_sent_at": None,
            }
        group["subject_names"].append(subject_emp.full_name)
        group["assignment_ids"].append(assignment.id)
        group["last_reminder_sent_at"] = _latest(group["last_reminder_sent_at"], assignment.last_reminder_sent_at)
        group["assignment_email_sent_at"] = _latest(
            group["assignment_email_sent_at"], assignment.assignment_email_sent_at
        )

    return [
        EmailingListItem(
            **{
                **g,
                "subject_names": tuple(g["subject_names"]),
                "assignment_ids": tuple(g["assignment_ids"]),
            }
        )
        for g in grouped.values()
    ]


class EmailingListCache:
    """
    Tenant-keyed cache of ``compute_emailing_list`` results.

    ``cachetools.TTLCache`` provides the sliding window: re-storing a key on
    read resets its ttl. The absolute ceiling is a deadline stored with each
    entry. ``timer`` is injectable so expiry can be driven by a fake clock.
    """

    def __init__(
        self,
        *,
        sliding_seconds: float = 300,
        absolute_seconds: float = 1800,
        maxsize: int = 1024,
        timer: Callable[[], float] = time.monotonic,
    ):
        self._timer = timer
        self._absolute_seconds = absolute_seconds
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=sliding_seconds, timer=timer)
        self._generations: dict[str, int] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "EmailingListCache":
        return cls(
            sliding_seconds=settings.EMAILING_LIST_CACHE_SLIDING_SECONDS,
            absolute_seconds=settings.EMAILING_LIST_CACHE_ABSOLUTE_SECONDS,
            maxsize=settings.EMAILING_LIST_CACHE_MAXSIZE,
            **kwargs,
        )

    def get(self, db: Session, tenant_id: uuid.UUID) -> list[EmailingListItem]:
        key = str(tenant_id)
        with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                deadline, items = entry
                if self._timer() < deadline:
                    self._cache[key] = entry  # slide
                    return list(items)
                self._cache.pop(key, None)
            generation = self._generations.get(key, 0)

        # Computed outside the lock; concurrent cold misses just redo the same read
        items = tuple(compute_emailing_list(db, tenant_id))

        with self._lock:
            # An invalidation that raced with the computation wins
            if self._generations.get(key, 0) == generation:
                self._cache[key] = (self._timer() + self._absolute_seconds, items)
        logger.debug("Emailing list computed for tenant %s (%d items)", tenant_id, len(items))
        return list(items)

    def invalidate(self, tenant_id: uuid.UUID) -> None:
        key = str(tenant_id)
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            for key in list(self._generations):
                self._generations[key] += 1
            self._cache.clear()

    def __contains__(self, tenant_id) -> bool:
        with self._lock:
            entry = self._cache.get(str(tenant_id))
            return entry is not None and self._timer() < entry[0]


def get_emailing_list_cache(request: Request) -> EmailingListCache:
    return request.app.state.emailing_list_cache


def mark_tenant_dirty(db: Session, cache: EmailingListCache, tenant_id: uuid.UUID) -> None:
    """
    Invalidate now and remember the tenant so the entry is dropped again when
    the session's transaction ends.
    """
    cache.invalidate(tenant_id)
    db.info.setdefault(_DIRTY_KEY, set()).add((cache, tenant_id))


@event.listens_for(Session, "after_commit")
def _invalidate_after_commit(session: Session) -> None:
    for cache, tenant_id in session.info.pop(_DIRTY_KEY, set()):
        cache.invalidate(tenant_id)


@event.listens_for(Session, "after_rollback")
def _invalidate_after_rollback(session: Session) -> None:
    for cache, tenant_id in session.info.get(_DIRTY_KEY, set()):
        cache.invalidate(tenant_id)


def send_reminders(
    db: Session,
    tenant_id: uuid.UUID,
    cache: EmailingListCache,
    *,
    survey_id: uuid.UUID | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> tuple[int, int]:
    """
    Remind every evaluator on the current list (optionally one survey only).

    Returns ``(sent, failed)``. Only delivered notices stamp
    ``last_reminder_sent_at``.
    """
    items = [i for i in cache.get(db, tenant_id) if survey_id is None or i.survey_id == survey_id]
    notices = [
        EvaluatorNotice(
            evaluator_email=i.evaluator_email,
            evaluator_name=i.evaluator_name,
            survey_id=str(i.survey_id),
            survey_title=i.survey_title,
            subject_names=list(i.subject_names),
        )
        for i in items
    ]
    sent = dispatch(dispatcher, "reminder", notices)
    delivered = {(n.survey_id, n.evaluator_email) for n in sent}

    now = datetime.utcnow()
    stamped: list[uuid.UUID] = []
    for item in items:
        if (str(item.survey_id), item.evaluator_email) not in delivered:
            continue
        stamped.extend(item.assignment_ids)

    if stamped:
        (
            db.query(SubjectEvaluatorSurvey)
            .filter(
                SubjectEvaluatorSurvey.tenant_id == tenant_id,
                SubjectEvaluatorSurvey.id.in_(stamped),
            )
            .update({SubjectEvaluatorSurvey.last_reminder_sent_at: now}, synchronize_session="fetch")
        )
        log_event(
            db=db,
            tenant_id=tenant_id,
            action=REMINDERS_SENT,
            entity_type="tenant",
            entity_id=tenant_id,
            metadata={"sent": len(sent), "assignments": len(stamped)},
        )
        mark_tenant_dirty(db, cache, tenant_id)

    logger.info("Sent %d reminders for tenant %s (%d failed)", len(sent), tenant_id, len(notices) - len(sent))
    return len(sent), len(notices) - len(sent)
