import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.employee import Employee
from feedback360.models.tenant import Tenant
from feedback360.schemas.bulk import BulkEnvelope, envelope_status
from feedback360.schemas.employee import BulkEmployeeCreateRequest, EmployeeCreate, EmployeeOut
from feedback360.schemas.pagination import PaginatedResponse, PaginationMeta
from feedback360.schemas.validation import (
    CodeValidationOut,
    EmployeeCodeValidationRequest,
    ValidationResponseOut,
)
from feedback360.services import bulk_import, identity
from feedback360.services.emailing_list_cache import EmailingListCache, get_emailing_list_cache

router = APIRouter(prefix="/{tenant_slug}/employees", tags=["employees"])


def employee_to_out(e: Employee) -> EmployeeOut:
    return EmployeeOut(
        id=str(e.id),
        employee_code=e.employee_code,
        first_name=e.first_name,
        last_name=e.last_name,
        full_name=e.full_name,
        email=e.email,
        designation=e.designation,
        department=e.department,
        is_active=e.is_active,
    )


def _to_input(payload: EmployeeCreate) -> identity.EmployeeInput:
    return identity.EmployeeInput(**payload.model_dump())


@router.get("")
def list_employees(
    search: str | None = Query(default=None, description="Search by code, name, email or designation"),
    include_inactive: bool = Query(default=False, description="Include deactivated employees"),
    limit: int = Query(default=100, ge=1, le=500, description="Maximum number of results"),
    offset: int = Query(default=0, ge=0, description="Number of results to skip"),
    include_pagination: bool = Query(default=False, description="Include pagination metadata"),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """
    List the tenant's employees with optional search and pagination.

    Use ?include_pagination=true to get pagination metadata.
    """
    employees, total = identity.list_employees(
        db,
        tenant.id,
        search=search,
        include_inactive=include_inactive,
        limit=limit,
        offset=offset,
    )
    items = [employee_to_out(e) for e in employees]

    if include_pagination:
        return PaginatedResponse[EmployeeOut](
            items=items,
            pagination=PaginationMeta.for_page(total=total, limit=limit, offset=offset, returned=len(items)),
        )
    return items


@router.post("", response_model=EmployeeOut, status_code=status.HTTP_201_CREATED)
def create_employee(
    payload: EmployeeCreate,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    return employee_to_out(identity.create_employee(db, tenant.id, _to_input(payload)).unwrap())


@router.post("/bulk", response_model=BulkEnvelope[EmployeeOut])
def bulk_create_employees(
    payload: BulkEmployeeCreateRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """
    Create many employees in one call. Rows are independent: a duplicate code
    fails its own row only.
    """
    results = identity.bulk_create_employees(db, tenant.id, [_to_input(p) for p in payload.employees])

    items = [employee_to_out(r.value) for r in results if r.is_ok]
    errors = [
        f"Row {i + 1}: {r.error.reason}"
        for i, r in enumerate(results)
        if r.is_err
    ]
    return BulkEnvelope[EmployeeOut](
        success_count=len(items),
        failure_count=len(errors),
        errors=errors,
        items=items,
        status=envelope_status(len(items), len(errors)),
    )


@router.post("/validate", response_model=ValidationResponseOut)
def validate_employee_codes(
    payload: EmployeeCodeValidationRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """
    Check employee codes before an import.

    A single code behaves like a lookup (404 when invalid); several codes
    always return 200 with per-code results in request order.
    """
    response = bulk_import.validate_employee_codes(db, tenant.id, payload.codes, payload.role)

    if response.is_single and response.invalid_count:
        raise HTTPException(status_code=404, detail=response.results[0].message)

    return ValidationResponseOut(
        results=[
            CodeValidationOut(
                code=r.code,
                is_valid=r.is_valid,
                message=r.message,
                employee_id=str(r.employee_id) if r.employee_id else None,
                wrapper_id=str(r.wrapper_id) if r.wrapper_id else None,
                full_name=r.full_name,
                email=r.email,
                is_active=r.is_active,
            )
            for r in response.results
        ],
        total_requested=response.total_requested,
        valid_count=response.valid_count,
        invalid_count=response.invalid_count,
    )


@router.get("/{employee_id}", response_model=EmployeeOut)
def get_employee(
    employee_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    employee = db.get(Employee, employee_id)
    if not employee or employee.tenant_id != tenant.id:
        raise HTTPException(status_code=404, detail="Employee not found")
    return employee_to_out(employee)


@router.delete("/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_employee(
    employee_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    """Soft-delete: the employee and its Subject/Evaluator wrappers are deactivated."""
    if not identity.deactivate_employee(db, tenant.id, employee_id, cache=cache):
        raise HTTPException(status_code=404, detail="Employee not found")
