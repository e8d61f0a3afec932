import uuid

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session

from feedback360.core.tenancy import get_current_tenant
from feedback360.db.session import get_db
from feedback360.models.import_job import ImportJob
from feedback360.models.tenant import Tenant
from feedback360.schemas.bulk import envelope_status
from feedback360.schemas.import_job import ImportJobOut
from feedback360.schemas.survey import CsvAssignRequest, CsvImportEnvelope, CsvRowOutcomeOut
from feedback360.services import bulk_import
from feedback360.services.assignment_resolver import BulkResult, RelationshipRow
from feedback360.services.emailing_list_cache import EmailingListCache, get_emailing_list_cache

router = APIRouter(prefix="/{tenant_slug}/imports", tags=["import"])


def import_result_to_out(job: ImportJob, result: BulkResult) -> CsvImportEnvelope:
    return CsvImportEnvelope(
        success_count=result.success_count,
        failure_count=result.failure_count,
        errors=result.errors,
        items=[
            CsvRowOutcomeOut(
                row_number=r.row_number,
                evaluator_code=r.evaluator_code,
                subject_code=r.subject_code,
                relationship=r.relationship,
                success=r.success,
                message=r.message,
                relationship_id=str(r.relationship_id) if r.relationship_id else None,
                assignment_id=str(r.assignment_id) if r.assignment_id else None,
            )
            for r in result.rows
        ],
        status=envelope_status(result.success_count, result.failure_count),
        import_job_id=str(job.id),
        relationships_processed=result.relationships_processed,
        assignments_created=result.assignments_created,
    )


def import_job_to_out(job: ImportJob) -> ImportJobOut:
    return ImportJobOut(
        id=str(job.id),
        kind=job.kind,
        status=job.status,
        total_records=job.total_records,
        processed_records=job.processed_records,
        result_summary=job.result_summary,
        errors=job.errors or [],
        started_at=job.started_at,
        completed_at=job.completed_at,
    )


def read_csv_upload(file: UploadFile) -> list[RelationshipRow]:
    try:
        content = file.file.read().decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")

    rows = bulk_import.parse_relationship_csv(content)
    if not rows:
        raise HTTPException(status_code=400, detail="CSV file has no data rows")
    return rows


@router.post("/relationships", response_model=CsvImportEnvelope)
def import_relationships(
    payload: CsvAssignRequest,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    """Upsert relationships from (evaluator code, subject code, relationship) rows."""
    rows = [RelationshipRow(**r.model_dump()) for r in payload.rows]
    job, result = bulk_import.import_relationship_rows(db, tenant.id, rows, cache=cache)
    return import_result_to_out(job, result)


@router.post("/relationships/upload", response_model=CsvImportEnvelope)
def upload_relationships(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    cache: EmailingListCache = Depends(get_emailing_list_cache),
):
    job, result = bulk_import.import_relationship_rows(db, tenant.id, read_csv_upload(file), cache=cache)
    return import_result_to_out(job, result)


@router.get("/{import_id}", response_model=ImportJobOut)
def get_import_status(
    import_id: uuid.UUID,
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
):
    """Get import job status and row errors."""
    job = bulk_import.get_import_job(db, tenant.id, import_id)
    if not job:
        raise HTTPException(status_code=404, detail="Import job not found")
    return import_job_to_out(job)
