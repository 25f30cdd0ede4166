"""Export unit tasks."""

from __future__ import annotations

import asyncio

from celery.utils.log import get_task_logger
from sqlalchemy.exc import SQLAlchemyError

from bulk_export.core.celery_app import PROCESS_UNIT_TASK, celery_app
from bulk_export.core.config import settings
from bulk_export.core.database import async_session_factory, engine
from bulk_export.core.exceptions import UnitProcessingError
from bulk_export.middleware.prometheus import record_unit_processed
from bulk_export.models.job import JobStatus
from bulk_export.schemas.job import UnitOfWork
from bulk_export.services.completion_service import CompletionAggregator
from bulk_export.services.data_source_client import BlueButtonClient
from bulk_export.services.export_repository import JobRepository, PopulationRepository
from bulk_export.services.unit_processor import UnitProcessor


logger = get_task_logger(__name__)


async def _process_unit(unit: UnitOfWork) -> dict:
    try:
        async with async_session_factory() as session:
            jobs = JobRepository(session)
            async with BlueButtonClient() as client:
                processor = UnitProcessor(jobs, PopulationRepository(session), client)
                result = await processor.process(unit)

            try:
                completed = await CompletionAggregator(jobs).check_completed_and_cleanup(unit.job_id)
            except SQLAlchemyError as e:
                await jobs.rollback()
                raise UnitProcessingError(f"Unable to check completion of job {unit.job_id}: {e}") from e
    finally:
        # Pooled connections are bound to this event loop.
        await engine.dispose()

    return {
        "job_id": unit.job_id,
        "unit_index": unit.unit_index,
        "succeeded": result.succeeded,
        "failed": result.failed,
        "files": result.files_recorded,
        "job_completed": completed,
    }


async def _fail_job(job_id: int) -> None:
    try:
        async with async_session_factory() as session:
            jobs = JobRepository(session)
            await jobs.transition_if_active(job_id, JobStatus.FAILED)
            await jobs.commit()
    finally:
        await engine.dispose()


@celery_app.task(
    bind=True,
    name=PROCESS_UNIT_TASK,
    max_retries=settings.UNIT_MAX_RETRIES,
    acks_late=True,
)
def process_export_unit_task(self, *, unit: dict) -> dict:
    """Fetch, write and encrypt one unit of work, then check job completion."""
    msg = UnitOfWork.model_validate(unit)

    try:
        return asyncio.run(_process_unit(msg))
    except UnitProcessingError as e:
        record_unit_processed("failed")
        if self.request.retries >= self.max_retries:
            logger.error(
                "Unit %d of job %s failed after %d attempts: %s",
                msg.unit_index,
                msg.job_id,
                self.request.retries + 1,
                e,
            )
            asyncio.run(_fail_job(msg.job_id))
            raise
        logger.warning("Unit %d of job %s failed, retrying: %s", msg.unit_index, msg.job_id, e)
        raise self.retry(exc=e, countdown=settings.UNIT_RETRY_BACKOFF_SECONDS)
