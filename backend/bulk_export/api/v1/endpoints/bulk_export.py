"""Bulk export submission endpoints."""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from bulk_export.api.v1.deps import get_export_job_service, require_bulk_headers
from bulk_export.core.config import settings
from bulk_export.middleware.tenant_context import TenantContext, get_tenant_context
from bulk_export.schemas.job import JobAcceptedResponse
from bulk_export.services.export_job_service import ExportJobService


router = APIRouter()


@router.get(
    "/{resource_type}/$export",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=JobAcceptedResponse,
    # Authentication is checked before the bulk request headers.
    dependencies=[Depends(get_tenant_context), Depends(require_bulk_headers)],
)
async def start_export(
    resource_type: str,
    request: Request,
    tenant: TenantContext = Depends(get_tenant_context),
    service: ExportJobService = Depends(get_export_job_service),
):
    """
    Start an asynchronous export of one resource type for the caller's organization.

    Returns 202 with the job's status URL in ``Content-Location``.
    """
    submitted = await service.submit(
        organization_id=tenant.org_id,
        user_id=tenant.user_id,
        resource_type=resource_type,
        request_url=str(request.url),
    )

    body = JobAcceptedResponse(job_id=submitted.job_id, status=submitted.status)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=body.model_dump(by_alias=True),
        headers={"Content-Location": f"{settings.PUBLIC_URL.rstrip('/')}{settings.API_PREFIX}/jobs/{submitted.job_id}"},
    )
