from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from feedback360.core.audit import TENANT_CREATED, TENANT_DEACTIVATED, log_event
from feedback360.db.session import get_db
from feedback360.models.tenant import Tenant
from feedback360.schemas.tenant import TenantCreate, TenantOut
from feedback360.services.emailing_list_cache import EmailingListCache, get_emailing_list_cache

router = APIRouter(prefix="/tenants", tags=["tenants"])


def tenant_to_out(t: Tenant) -> TenantOut:
    return TenantOut(
        id=str(t.id),
        slug=t.slug,
        name=t.name,
        is_active=t.is_active,
        created_at=t.created_at,
    )


@router.post("", response_model=TenantOut, status_code=status.HTTP_201_CREATED)
def create_tenant(payload: TenantCreate, db: Session = Depends(get_db)):
    if db.query(Tenant).filter(Tenant.slug == payload.slug).one_or_none():
        raise HTTPException(status_code=409, detail="Tenant slug already exists")

    try:
        with db.begin_nested():
            t = Tenant(slug=payload.slug, name=payload.name, is_active=True)
            db.add(t)
            db.flush()
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Tenant slug already exists")

    log_event(
        db=db,
        tenant_id=t.id,
        action=TENANT_CREATED,
        entity_type="tenant",
        entity_id=t.id,
        metadata={"slug": t.slug},
    )
    return tenant_to_out(t)


@router.post("/{slug}/deactivate", response_model=TenantOut)
def deactivate_tenant(
    slug: str,
    db: Session = Depends(get_db),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    t = db.query(Tenant).filter(Tenant.slug == slug).one_or_none()
    if not t:
        raise HTTPException(status_code=404, detail="Tenant not found")

    if t.is_active:
        t.is_active = False
        log_event(
            db=db,
            tenant_id=t.id,
            action=TENANT_DEACTIVATED,
            entity_type="tenant",
            entity_id=t.id,
            metadata={"slug": t.slug},
        )
        cache.clear()
    return tenant_to_out(t)
