from fastapi import Depends, HTTPException, Path
from sqlalchemy.orm import Session

from feedback360.db.session import get_db
from feedback360.models.tenant import Tenant


def get_current_tenant(
    tenant_slug: str = Path(..., description="Tenant slug the request is scoped to"),
    db: Session = Depends(get_db),
) -> Tenant:
    """
    Resolve the tenant from the URL prefix.

    Unknown and deactivated tenants look the same to the caller.
    """
    tenant = db.query(Tenant).filter(Tenant.slug == tenant_slug).one_or_none()
    if not tenant or not tenant.is_active:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant
