from sqlalchemy.orm import Session
from typing import Any

from feedback360.models.audit_event import AuditEvent

RELATIONSHIP_ASSIGNED = "RELATIONSHIP_ASSIGNED"
RELATIONSHIP_REACTIVATED = "RELATIONSHIP_REACTIVATED"
RELATIONSHIP_LABEL_UPDATED = "RELATIONSHIP_LABEL_UPDATED"
RELATIONSHIP_REMOVED = "RELATIONSHIP_REMOVED"
SURVEY_CREATED = "SURVEY_CREATED"
SURVEY_ASSIGNED = "SURVEY_ASSIGNED"
SURVEY_UNASSIGNED = "SURVEY_UNASSIGNED"
SUBMISSION_DRAFT_SAVED = "SUBMISSION_DRAFT_SAVED"
SUBMISSION_COMPLETED = "SUBMISSION_COMPLETED"
EMPLOYEE_CREATED = "EMPLOYEE_CREATED"
EMPLOYEE_DEACTIVATED = "EMPLOYEE_DEACTIVATED"
TENANT_CREATED = "TENANT_CREATED"
TENANT_DEACTIVATED = "TENANT_DEACTIVATED"
REMINDERS_SENT = "REMINDERS_SENT"
IMPORT_COMPLETED = "IMPORT_COMPLETED"


def log_event(
    *,
    db: Session,
    tenant_id,
    action: str,
    entity_type: str,
    entity_id,
    metadata: dict[str, Any] | None = None,
):
    event = AuditEvent(
        tenant_id=tenant_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        event_metadata=metadata,
    )
    db.add(event)
