from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from feedback360.core.notifications import NotificationDispatcher, get_dispatcher
from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.tenant import Tenant
from feedback360.schemas.emailing_list import EmailingListItemOut, ReminderRequest, ReminderResult
from feedback360.services.emailing_list_cache import (
    EmailingListCache,
    EmailingListItem,
    get_emailing_list_cache,
    send_reminders,
)

router = APIRouter(prefix="/{tenant_slug}/emailing-list", tags=["emailing-list"])


def item_to_out(i: EmailingListItem) -> EmailingListItemOut:
    return EmailingListItemOut(
        survey_id=str(i.survey_id),
        survey_name=i.survey_title,
        evaluator_id=str(i.evaluator_id),
        evaluator_name=i.evaluator_name,
        evaluator_email=i.evaluator_email,
        subject_count=i.subject_count,
        subject_names=list(i.subject_names),
        last_reminder_sent_at=i.last_reminder_sent_at,
        assignment_email_sent_at=i.assignment_email_sent_at,
        subject_evaluator_survey_ids=[str(a) for a in i.assignment_ids],
    )


@router.get("", response_model=list[EmailingListItemOut])
def get_emailing_list(
    search: str | None = Query(default=None, description="Filter by evaluator name/email or survey title"),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    """Evaluators with outstanding surveys, one row per (survey, evaluator)."""
    items = cache.get(db, tenant.id)
    if search:
        term = search.strip().lower()
        items = [
            i for i in items
            if term in i.evaluator_name.lower()
            or term in i.evaluator_email.lower()
            or term in i.survey_title.lower()
        ]
    return [item_to_out(i) for i in items]


@router.post("/reminders", response_model=ReminderResult)
def remind(
    payload: ReminderRequest | None = None,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    sent, failed = send_reminders(
        db,
        tenant.id,
        cache,
        survey_id=payload.survey_id if payload else None,
        dispatcher=dispatcher,
    )
    return ReminderResult(sent=sent, failed=failed)
