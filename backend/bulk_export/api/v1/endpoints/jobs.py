"""Job status endpoint."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response

from bulk_export.api.v1.deps import get_job_status_service
from bulk_export.middleware.tenant_context import TenantContext, get_tenant_context
from bulk_export.services.job_status_service import JobStatusService


router = APIRouter()


@router.get("/{job_id}")
async def get_job_status(
    job_id: str,
    tenant: TenantContext = Depends(get_tenant_context),
    service: JobStatusService = Depends(get_job_status_service),
):
    result = await service.get_status(job_id, tenant.org_id)
    if result.body is None:
        return Response(status_code=result.status_code, headers=result.headers)
    return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)
