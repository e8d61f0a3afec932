import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.audit_event import AuditEvent
from feedback360.models.tenant import Tenant

router = APIRouter(prefix="/{tenant_slug}/audit", tags=["audit"])


@router.get("")
def list_audit_events(
    entity_type: str | None = Query(default=None),
    entity_id: uuid.UUID | None = Query(default=None),
    action: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    q = db.query(AuditEvent).filter(AuditEvent.tenant_id == tenant.id)

    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditEvent.entity_id == entity_id)
    if action:
        q = q.filter(AuditEvent.action == action)

    rows = q.order_by(AuditEvent.created_at.desc()).limit(limit).all()

    return [
        {
            "id": str(r.id),
            "action": r.action,
            "entity_type": r.entity_type,
            "entity_id": str(r.entity_id),
            "metadata": r.event_metadata,
            "created_at": r.created_at,
        }
        for r in rows
    ]
