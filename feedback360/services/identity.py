"""
Employee identity resolution and role wrappers.

Employee codes are the only human-facing identifier: CSV rows and validation
requests carry codes, everything else works on ids. Matching is tenant-scoped,
trimmed and case-insensitive.
"""
import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedback360.core.audit import EMPLOYEE_CREATED, EMPLOYEE_DEACTIVATED, log_event
from feedback360.core.results import Result, ServiceError
from feedback360.models.employee import Employee
from feedback360.models.evaluator import Evaluator
from feedback360.models.subject import Subject
from feedback360.services.emailing_list_cache import EmailingListCache, mark_tenant_dirty

logger = logging.getLogger(__name__)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().lower()


def resolve_employee(db: Session, tenant_id: uuid.UUID, code: str) -> Result[Employee]:
    normalized = normalize_code(code)
    if not normalized:
        return Result.err(ServiceError.invalid("Employee code is required"))

    employee = (
        db.query(Employee)
        .filter(
            Employee.tenant_id == tenant_id,
            func.lower(Employee.employee_code) == normalized,
        )
        .one_or_none()
    )
    if not employee:
        return Result.err(ServiceError.not_found(f"Employee '{code.strip()}' not found"))
    if not employee.is_active:
        return Result.err(ServiceError.not_found(f"Employee '{code.strip()}' is inactive"))
    return Result.ok(employee)


def resolve_employees(db: Session, tenant_id: uuid.UUID, codes: list[str]) -> dict[str, Employee]:
    """
    Look up many codes in one query.

    Keys are normalized codes. Inactive employees are included so callers can
    tell "inactive" apart from "unknown".
    """
    normalized = {normalize_code(c) for c in codes if normalize_code(c)}
    if not normalized:
        return {}

    rows = (
        db.query(Employee)
        .filter(
            Employee.tenant_id == tenant_id,
            func.lower(Employee.employee_code).in_(sorted(normalized)),
        )
        .all()
    )
    return {normalize_code(e.employee_code): e for e in rows}


def _get_or_create_wrapper(db: Session, model, employee: Employee):
    wrapper = (
        db.query(model)
        .filter(model.tenant_id == employee.tenant_id, model.employee_id == employee.id)
        .one_or_none()
    )
    if wrapper:
        if not wrapper.is_active:
            wrapper.is_active = True
            logger.info("Reactivated %s for employee %s", model.__tablename__, employee.id)
        return wrapper

    try:
        with db.begin_nested():
            wrapper = model(tenant_id=employee.tenant_id, employee_id=employee.id, is_active=True)
            db.add(wrapper)
            db.flush()
    except IntegrityError:
        # Created concurrently; use theirs
        wrapper = (
            db.query(model)
            .filter(model.tenant_id == employee.tenant_id, model.employee_id == employee.id)
            .one()
        )
        wrapper.is_active = True
    return wrapper


def get_or_create_subject(db: Session, employee: Employee) -> Subject:
    return _get_or_create_wrapper(db, Subject, employee)


def get_or_create_evaluator(db: Session, employee: Employee) -> Evaluator:
    return _get_or_create_wrapper(db, Evaluator, employee)


@dataclass
class EmployeeInput:
    employee_code: str
    first_name: str
    email: str
    last_name: str = ""
    designation: str | None = None
    department: str | None = None


def create_employee(db: Session, tenant_id: uuid.UUID, data: EmployeeInput) -> Result[Employee]:
    code = (data.employee_code or "").strip()
    if not code:
        return Result.err(ServiceError.invalid("Employee code is required"))

    existing = resolve_employees(db, tenant_id, [code])
    if existing:
        return Result.err(ServiceError.conflict(f"Employee code '{code}' already exists"))

    try:
        with db.begin_nested():
            employee = Employee(
                tenant_id=tenant_id,
                employee_code=code,
                first_name=data.first_name.strip(),
                last_name=(data.last_name or "").strip(),
                email=data.email.strip(),
                designation=data.designation,
                department=data.department,
                is_active=True,
            )
            db.add(employee)
            db.flush()
    except IntegrityError:
        return Result.err(ServiceError.conflict(f"Employee code '{code}' already exists"))

    log_event(
        db=db,
        tenant_id=tenant_id,
        action=EMPLOYEE_CREATED,
        entity_type="employee",
        entity_id=employee.id,
        metadata={"employee_code": code},
    )
    logger.info("Created employee %s (%s) in tenant %s", employee.id, code, tenant_id)
    return Result.ok(employee)


def bulk_create_employees(
    db: Session, tenant_id: uuid.UUID, items: list[EmployeeInput]
) -> list[Result[Employee]]:
    """One result per input, in input order. Rows are independent."""
    results: list[Result[Employee]] = []
    for item in items:
        result = create_employee(db, tenant_id, item)
        if result.is_err:
            logger.warning("Bulk employee create skipped %r: %s", item.employee_code, result.error.reason)
        results.append(result)
    return results


def deactivate_employee(
    db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, *, cache: EmailingListCache | None = None
) -> bool:
    """Soft-delete an employee together with its Subject/Evaluator wrappers."""
    employee = db.get(Employee, employee_id)
    if not employee or employee.tenant_id != tenant_id or not employee.is_active:
        return False

    employee.is_active = False
    for model in (Subject, Evaluator):
        (
            db.query(model)
            .filter(model.tenant_id == tenant_id, model.employee_id == employee.id)
            .update({model.is_active: False}, synchronize_session="fetch")
        )

    log_event(
        db=db,
        tenant_id=tenant_id,
        action=EMPLOYEE_DEACTIVATED,
        entity_type="employee",
        entity_id=employee.id,
        metadata={"employee_code": employee.employee_code},
    )
    if cache is not None:
        mark_tenant_dirty(db, cache, tenant_id)
    logger.info("Deactivated employee %s in tenant %s", employee.id, tenant_id)
    return True


def list_employees(
    db: Session,
    tenant_id: uuid.UUID,
    *,
    search: str | None = None,
    include_inactive: bool = False,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Employee], int]:
    query = db.query(Employee).filter(Employee.tenant_id == tenant_id)
    if not include_inactive:
        query = query.filter(Employee.is_active.is_(True))

    if search:
        search_term = f"%{search.strip().lower()}%"
        query = query.filter(
            (Employee.employee_code.ilike(search_term))
            | ((Employee.first_name + " " + Employee.last_name).ilike(search_term))
            | (Employee.email.ilike(search_term))
            | (Employee.designation.ilike(search_term))
        )

    total = query.count()
    rows = (
        query.order_by(Employee.first_name.asc(), Employee.last_name.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
