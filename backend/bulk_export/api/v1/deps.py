"""Shared endpoint dependencies."""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bulk_export.core.database import get_db
from bulk_export.core.exceptions import InvalidRequestError
from bulk_export.services.dispatch_service import WorkDispatcher, WorkQueue
from bulk_export.services.export_job_service import ExportJobService
from bulk_export.services.export_repository import JobRepository, PopulationRepository
from bulk_export.services.job_status_service import JobStatusService
from bulk_export.services.population_service import PopulationPartitioner


FHIR_JSON = "application/fhir+json"
RESPOND_ASYNC = "respond-async"


def get_work_queue(request: Request) -> Optional[WorkQueue]:
    """Queue publisher created at startup; None when the broker is unavailable."""
    return getattr(request.app.state, "work_queue", None)


async def get_export_job_service(
    db: AsyncSession = Depends(get_db),
    queue: Optional[WorkQueue] = Depends(get_work_queue),
) -> ExportJobService:
    return ExportJobService(
        JobRepository(db),
        PopulationPartitioner(PopulationRepository(db)),
        WorkDispatcher(queue),
    )


async def get_job_status_service(db: AsyncSession = Depends(get_db)) -> JobStatusService:
    return JobStatusService(JobRepository(db))


async def require_bulk_headers(
    accept: Optional[str] = Header(default=None),
    prefer: Optional[str] = Header(default=None),
) -> None:
    """Bulk data requests must ask for FHIR JSON and an asynchronous response."""
    if not accept:
        raise InvalidRequestError("Accept header is required")
    if accept != FHIR_JSON:
        raise InvalidRequestError(f"{FHIR_JSON} is the only supported response format")
    if not prefer:
        raise InvalidRequestError("Prefer header is required")
    if prefer != RESPOND_ASYNC:
        raise InvalidRequestError("Only asynchronous responses are supported")
