"""Export file download."""

from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from bulk_export.api.v1.deps import get_job_status_service
from bulk_export.core.config import settings
from bulk_export.core.exceptions import JobAccessDenied, JobLookupError
from bulk_export.middleware.tenant_context import TenantContext, get_tenant_context
from bulk_export.models.job import JobStatus
from bulk_export.services.job_status_service import JobStatusService


router = APIRouter()

NDJSON = "application/fhir+ndjson"


@router.get("/data/{job_id}/{file_name}")
async def serve_data(
    job_id: str,
    file_name: str,
    tenant: TenantContext = Depends(get_tenant_context),
    service: JobStatusService = Depends(get_job_status_service),
):
    """Stream one output file of a job owned by the caller's organization."""
    try:
        job = await service.load_job(job_id, tenant.org_id)
    except JobLookupError as e:
        raise JobAccessDenied(str(e)) from e

    if service.effective_status(job) in (JobStatus.EXPIRED, JobStatus.ARCHIVED):
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Export files have expired")

    job_dir = (Path(settings.FHIR_PAYLOAD_DIR) / str(job.id)).resolve()
    path = (job_dir / file_name).resolve()
    # Reject names that escape the job directory.
    if path.parent != job_dir or not path.is_file():
        raise JobAccessDenied(f"File {file_name} not found for job {job.id}")

    return FileResponse(path, media_type=NDJSON, filename=file_name)
