import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject
from feedback360.models.subject_evaluator import SubjectEvaluator
from feedback360.models.tenant import Tenant
from feedback360.schemas.bulk import BulkEnvelope, envelope_status
from feedback360.schemas.relationship import (
    AssignEvaluatorsRequest,
    AssignSubjectsRequest,
    EdgeOutcomeOut,
    RelationshipLabelUpdate,
    RelationshipOut,
    RelationshipWithSurveysOut,
    RoleWrapperCreate,
    RoleWrapperOut,
    SurveyRefOut,
)
from feedback360.services import identity, relationship_graph
from feedback360.services.emailing_list_cache import EmailingListCache, get_emailing_list_cache

router = APIRouter(prefix="/{tenant_slug}", tags=["relationships"])


def relationship_to_out(r: SubjectEvaluator) -> RelationshipOut:
    subject_emp = r.subject.employee
    evaluator_emp = r.evaluator.employee
    return RelationshipOut(
        id=str(r.id),
        subject_id=str(r.subject_id),
        subject_name=subject_emp.full_name,
        subject_employee_code=subject_emp.employee_code,
        evaluator_id=str(r.evaluator_id),
        evaluator_name=evaluator_emp.full_name,
        evaluator_employee_code=evaluator_emp.employee_code,
        relationship=r.label,
        is_self=r.is_self,
        is_active=r.is_active,
    )


def wrapper_to_out(w: Subject | Evaluator) -> RoleWrapperOut:
    return RoleWrapperOut(
        id=str(w.id),
        employee_id=str(w.employee_id),
        employee_code=w.employee.employee_code,
        full_name=w.employee.full_name,
        email=w.employee.email,
        is_active=w.is_active,
    )


def _outcomes_envelope(result: relationship_graph.AssignmentResult) -> BulkEnvelope[EdgeOutcomeOut]:
    items = [
        EdgeOutcomeOut(
            target_id=o.target_id,
            success=o.success,
            action=o.action,
            error=o.error.reason if o.error else None,
            relationship=relationship_to_out(o.relationship) if o.relationship else None,
        )
        for o in result.outcomes
    ]
    errors = [o.error.reason for o in result.outcomes if o.error]
    return BulkEnvelope[EdgeOutcomeOut](
        success_count=result.success_count,
        failure_count=result.failure_count,
        errors=errors,
        items=items,
        status=envelope_status(result.success_count, result.failure_count),
    )


@router.post("/subjects", response_model=RoleWrapperOut, tags=["subjects"])
def ensure_subject(
    payload: RoleWrapperCreate,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Mark an employee as a Subject (created on first use, reactivated if deactivated)."""
    employee = identity.resolve_employee(db, tenant.id, payload.employee_code).unwrap()
    subject = identity.get_or_create_subject(db, employee)
    db.flush()
    return wrapper_to_out(subject)


@router.post("/evaluators", response_model=RoleWrapperOut, tags=["evaluators"])
def ensure_evaluator(
    payload: RoleWrapperCreate,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Mark an employee as an Evaluator (created on first use, reactivated if deactivated)."""
    employee = identity.resolve_employee(db, tenant.id, payload.employee_code).unwrap()
    evaluator = identity.get_or_create_evaluator(db, employee)
    db.flush()
    return wrapper_to_out(evaluator)


@router.post("/subjects/{subject_id}/evaluators", response_model=BulkEnvelope[EdgeOutcomeOut])
def assign_evaluators(
    subject_id: uuid.UUID,
    payload: AssignEvaluatorsRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    """
    Pair evaluators with a subject. Existing pairs get the new label; unknown
    evaluators fail their own item only.
    """
    result = relationship_graph.assign(
        db, tenant.id, subject_id, payload.evaluator_ids, payload.relationship, cache=cache
    )
    return _outcomes_envelope(result)


@router.post("/evaluators/{evaluator_id}/subjects", response_model=BulkEnvelope[EdgeOutcomeOut])
def assign_subjects(
    evaluator_id: uuid.UUID,
    payload: AssignSubjectsRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    result = relationship_graph.assign_reciprocal(
        db, tenant.id, evaluator_id, payload.subject_ids, payload.relationship, cache=cache
    )
    return _outcomes_envelope(result)


@router.put("/subjects/{subject_id}/evaluators/{evaluator_id}", response_model=RelationshipOut)
def update_relationship_label(
    subject_id: uuid.UUID,
    evaluator_id: uuid.UUID,
    payload: RelationshipLabelUpdate,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    edge = relationship_graph.update_label(
        db, tenant.id, subject_id, evaluator_id, payload.relationship, cache=cache
    ).unwrap()
    return relationship_to_out(edge)


@router.delete("/subjects/{subject_id}/evaluators/{evaluator_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_relationship(
    subject_id: uuid.UUID,
    evaluator_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    if not relationship_graph.remove(db, tenant.id, subject_id, evaluator_id, cache=cache):
        raise HTTPException(status_code=404, detail="Relationship not found")


@router.get("/subjects/{subject_id}/evaluators", response_model=list[RelationshipOut])
def list_subject_evaluators(
    subject_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    return [relationship_to_out(r) for r in relationship_graph.list_for_subject(db, tenant.id, subject_id)]


@router.get("/evaluators/{evaluator_id}/subjects", response_model=list[RelationshipOut])
def list_evaluator_subjects(
    evaluator_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    return [relationship_to_out(r) for r in relationship_graph.list_for_evaluator(db, tenant.id, evaluator_id)]


@router.get("/subjects/{subject_id}/relationships-with-surveys", response_model=list[RelationshipWithSurveysOut])
def list_relationships_with_surveys(
    subject_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    rows = relationship_graph.relationships_with_surveys(db, tenant.id, subject_id)
    return [
        RelationshipWithSurveysOut(
            **relationship_to_out(edge).model_dump(),
            surveys=[
                SurveyRefOut(id=str(s.id), title=s.title, is_self_evaluation=s.is_self_evaluation)
                for s in surveys
            ],
        )
        for edge, surveys in rows
    ]
