import uuid

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from sqlalchemy.orm import Session

from feedback360.core.audit import SURVEY_CREATED, log_event
from feedback360.core.notifications import NotificationDispatcher, get_dispatcher
from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.subject_evaluator_survey import SubjectEvaluatorSurvey
from feedback360.models.survey import Survey
from feedback360.models.tenant import Tenant
from feedback360.schemas.bulk import envelope_status
from feedback360.schemas.relationship import RelationshipOut
from feedback360.schemas.survey import (
    AssignedRelationshipOut,
    AssignmentOut,
    CsvAssignRequest,
    CsvImportEnvelope,
    RelationshipIdsRequest,
    SurveyAssignEnvelope,
    SurveyCreate,
    SurveyOut,
    SurveyUnassignEnvelope,
)
from feedback360.api.imports import import_result_to_out, read_csv_upload
from feedback360.api.relationships import relationship_to_out
from feedback360.services import assignment_resolver, bulk_import
from feedback360.services.assignment_resolver import RelationshipRow
from feedback360.services.emailing_list_cache import EmailingListCache, get_emailing_list_cache

router = APIRouter(prefix="/{tenant_slug}/surveys", tags=["surveys"])


def survey_to_out(db: Session, s: Survey) -> SurveyOut:
    return SurveyOut(
        id=str(s.id),
        title=s.title,
        description=s.description,
        is_self_evaluation=s.is_self_evaluation,
        is_active=s.is_active,
        assignment_count=assignment_resolver.assignment_count(db, s.tenant_id, s.id),
        schema_=s.schema or {},
    )


def assignment_to_out(a: SubjectEvaluatorSurvey) -> AssignmentOut:
    return AssignmentOut(
        id=str(a.id),
        subject_evaluator_id=str(a.subject_evaluator_id),
        survey_id=str(a.survey_id),
        is_active=a.is_active,
    )


@router.post("", response_model=SurveyOut, status_code=status.HTTP_201_CREATED)
def create_survey(
    payload: SurveyCreate,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    s = Survey(
        tenant_id=tenant.id,
        title=payload.title,
        description=payload.description,
        schema=payload.schema_,
        is_self_evaluation=payload.is_self_evaluation,
        is_active=True,
    )
    db.add(s)
    db.flush()

    log_event(
        db=db,
        tenant_id=tenant.id,
        action=SURVEY_CREATED,
        entity_type="survey",
        entity_id=s.id,
        metadata={"title": s.title, "is_self_evaluation": s.is_self_evaluation},
    )
    return survey_to_out(db, s)


@router.get("", response_model=list[SurveyOut])
def list_surveys(
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    rows = (
        db.query(Survey)
        .filter(Survey.tenant_id == tenant.id, Survey.is_active.is_(True))
        .order_by(Survey.created_at.desc())
        .all()
    )
    return [survey_to_out(db, s) for s in rows]


@router.get("/{survey_id}", response_model=SurveyOut)
def get_survey(
    survey_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    return survey_to_out(db, assignment_resolver.get_survey(db, tenant.id, survey_id))


@router.get("/{survey_id}/available-relationships", response_model=list[RelationshipOut])
def available_relationships(
    survey_id: uuid.UUID,
    search: str | None = Query(default=None, description="Match subject/evaluator name, code or designation"),
    relationship: str | None = Query(default=None, description="Only this relationship label"),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Relationships of the right shape for this survey that are not yet assigned to it."""
    rows = assignment_resolver.available_relationships(
        db, tenant.id, survey_id, search=search, relationship=relationship
    )
    return [relationship_to_out(r) for r in rows]


@router.get("/{survey_id}/assigned-relationships", response_model=list[AssignedRelationshipOut])
def assigned_relationships(
    survey_id: uuid.UUID,
    search: str | None = Query(default=None, description="Match subject/evaluator name, code or designation"),
    relationship: str | None = Query(default=None, description="Only this relationship label"),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    rows = assignment_resolver.assigned_relationships(
        db, tenant.id, survey_id, search=search, relationship=relationship
    )
    return [
        AssignedRelationshipOut(**relationship_to_out(edge).model_dump(), assignment_id=str(a.id))
        for edge, a in rows
    ]


@router.post("/{survey_id}/assign-relationships", response_model=SurveyAssignEnvelope)
def assign_relationships(
    survey_id: uuid.UUID,
    payload: RelationshipIdsRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    result = assignment_resolver.assign_survey_to_relationships(
        db, tenant.id, survey_id, payload.relationship_ids, cache=cache, dispatcher=dispatcher
    )
    return SurveyAssignEnvelope(
        success_count=result.success_count,
        failure_count=result.failure_count,
        errors=result.errors,
        items=[assignment_to_out(a) for a in result.assigned + result.skipped],
        status=envelope_status(result.success_count, result.failure_count),
        assigned_count=result.assigned_count,
        skipped_count=len(result.skipped),
    )


@router.post("/{survey_id}/unassign-relationships", response_model=SurveyUnassignEnvelope)
def unassign_relationships(
    survey_id: uuid.UUID,
    payload: RelationshipIdsRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    """Relationships without an active assignment are ignored, not reported as errors."""
    count = assignment_resolver.unassign_survey_from_relationships(
        db, tenant.id, survey_id, payload.relationship_ids, cache=cache
    )
    return SurveyUnassignEnvelope(
        success_count=count,
        failure_count=0,
        errors=[],
        items=[str(i) for i in payload.relationship_ids],
        status=envelope_status(count, 0),
        unassigned_count=count,
    )


@router.post("/{survey_id}/assign-relationships/csv", response_model=CsvImportEnvelope)
def assign_relationships_from_csv(
    survey_id: uuid.UUID,
    payload: CsvAssignRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    """
    Upsert relationships from (evaluator code, subject code, relationship) rows
    and assign this survey to each. Row numbers count the header as line 1.
    """
    rows = [RelationshipRow(**r.model_dump()) for r in payload.rows]
    job, result = bulk_import.import_relationship_rows(db, tenant.id, rows, survey_id=survey_id, cache=cache)
    return import_result_to_out(job, result)


@router.post("/{survey_id}/assign-relationships/csv/upload", response_model=CsvImportEnvelope)
def upload_relationships_csv(
    survey_id: uuid.UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    rows = read_csv_upload(file)
    job, result = bulk_import.import_relationship_rows(db, tenant.id, rows, survey_id=survey_id, cache=cache)
    return import_result_to_out(job, result)
