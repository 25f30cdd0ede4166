"""Export submission.

Creates the job, partitions its population, persists the unit count and
only then publishes the units. A job whose population cannot be resolved
or whose units cannot be published is persisted as Failed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from bulk_export.core.config import settings
from bulk_export.core.exceptions import (
    DatabaseError,
    DispatchError,
    InvalidRequestError,
    PopulationResolutionError,
)
from bulk_export.middleware.prometheus import record_job_submitted
from bulk_export.models.job import JobStatus
from bulk_export.services.dispatch_service import WorkDispatcher
from bulk_export.services.export_repository import JobRepository
from bulk_export.services.population_service import PopulationPartitioner


logger = logging.getLogger(__name__)


@dataclass
class SubmittedJob:
    job_id: int
    status: str
    unit_count: int


class ExportJobService:
    def __init__(
        self,
        jobs: JobRepository,
        partitioner: PopulationPartitioner,
        dispatcher: WorkDispatcher,
    ):
        self.jobs = jobs
        self.partitioner = partitioner
        self.dispatcher = dispatcher

    async def submit(
        self,
        *,
        organization_id: str,
        user_id: str,
        resource_type: str,
        request_url: str,
    ) -> SubmittedJob:
        """
        Accept an export request.

        Raises:
            InvalidRequestError: resource type not on the allow-list
            DatabaseError: the job could not be created
            PopulationResolutionError: no beneficiaries; job persisted as Failed
            DispatchError: units could not be published; job persisted as Failed
        """
        if resource_type not in settings.allowed_resource_types:
            raise InvalidRequestError(f"Invalid resource type: {resource_type}")

        try:
            job = await self.jobs.create_job(
                organization_id=organization_id,
                user_id=user_id,
                request_url=request_url,
            )
            await self.jobs.commit()
            job_id = job.id
        except SQLAlchemyError as e:
            logger.exception("Unable to create export job for organization %s", organization_id)
            await self.jobs.rollback()
            raise DatabaseError(f"Unable to create job for organization {organization_id}") from e

        try:
            units = await self.partitioner.build_units(
                job,
                resource_type,
                encrypt=settings.encryption_enabled_for(resource_type),
            )
            # Must be durable before any unit can be picked up by a worker.
            await self.jobs.set_job_count(job, len(units))
            await self.jobs.commit()

            self.dispatcher.dispatch(job_id, units)
        except (PopulationResolutionError, DispatchError) as e:
            logger.error("Export job %s failed at submission: %s", job_id, e)
            await self._mark_failed(job_id)
            raise
        except SQLAlchemyError as e:
            logger.exception("Unable to persist unit count for job %s", job_id)
            await self._mark_failed(job_id)
            raise DatabaseError(f"Unable to update job {job_id}") from e

        record_job_submitted(resource_type)
        logger.info("Accepted %s export job %s with %d units", resource_type, job_id, len(units))
        return SubmittedJob(job_id=job_id, status=JobStatus.PENDING.value, unit_count=len(units))

    async def _mark_failed(self, job_id: int) -> None:
        try:
            await self.jobs.rollback()
            await self.jobs.transition_if_active(job_id, JobStatus.FAILED)
            await self.jobs.commit()
        except SQLAlchemyError:
            logger.exception("Unable to mark job %s as Failed", job_id)
