import uuid

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from sqlalchemy.orm import Session

from feedback360.core.optimistic_lock import require_version, set_etag, version_from_header
from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.survey_submission import SurveySubmission
from feedback360.models.tenant import Tenant
from feedback360.schemas.submission import SubmissionOut, SubmissionPayload
from feedback360.services import assignment_resolver
from feedback360.services.emailing_list_cache import EmailingListCache, get_emailing_list_cache

router = APIRouter(prefix="/{tenant_slug}/assignments/{assignment_id}", tags=["submissions"])


def submission_to_out(s: SurveySubmission) -> SubmissionOut:
    return SubmissionOut(
        id=str(s.id),
        assignment_id=str(s.assignment_id),
        evaluator_id=str(s.evaluator_id),
        subject_id=str(s.subject_id),
        survey_id=str(s.survey_id),
        status=s.status,
        response_data=s.response_data,
        started_at=s.started_at,
        completed_at=s.completed_at,
        version=s.version,
    )


def _check_precondition(db: Session, tenant: Tenant, assignment_id: uuid.UUID, if_match: str | None) -> None:
    expected = version_from_header(if_match)
    if expected is None:
        return
    current = assignment_resolver.get_submission(db, tenant.id, assignment_id)
    require_version(current=current.version if current else None, expected=expected)


@router.get("/submission", response_model=SubmissionOut)
def get_submission(
    assignment_id: uuid.UUID,
    response: Response,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    s = assignment_resolver.get_submission(db, tenant.id, assignment_id)
    if not s:
        raise HTTPException(status_code=404, detail="Submission not found")
    set_etag(response, s.version)
    return submission_to_out(s)


@router.post("/draft", response_model=SubmissionOut)
def save_draft(
    assignment_id: uuid.UUID,
    payload: SubmissionPayload,
    response: Response,
    if_match: str | None = Header(default=None, alias="If-Match"),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    """
    Save answers without completing. Moves NotStarted to InProgress; never
    moves a Completed submission back.
    """
    _check_precondition(db, tenant, assignment_id, if_match)
    s = assignment_resolver.save_draft(db, tenant.id, assignment_id, payload.response_data, cache=cache)
    set_etag(response, s.version)
    return submission_to_out(s)


@router.post("/submit", response_model=SubmissionOut)
def submit(
    assignment_id: uuid.UUID,
    payload: SubmissionPayload,
    response: Response,
    if_match: str | None = Header(default=None, alias="If-Match"),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    _check_precondition(db, tenant, assignment_id, if_match)
    s = assignment_resolver.submit(db, tenant.id, assignment_id, payload.response_data, cache=cache)
    set_etag(response, s.version)
    return submission_to_out(s)
