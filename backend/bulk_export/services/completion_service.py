"""Completion aggregation.

Run after every unit. A job is Completed once it has at least as many
recorded output files as it had units dispatched; a unit may record two
files (result and error), so the count is a lower bound, not an equality.
Safe to run concurrently and redundantly: the status update only applies
to a job that is still Pending or In Progress.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from bulk_export.core.config import settings
from bulk_export.middleware.prometheus import record_job_completed
from bulk_export.models.job import JobStatus
from bulk_export.services.export_repository import JobRepository


logger = logging.getLogger(__name__)


class CompletionAggregator:
    def __init__(self, jobs: JobRepository, *, staging_dir: str | Path | None = None):
        self.jobs = jobs
        self.staging_dir = Path(staging_dir or settings.FHIR_STAGING_DIR)

    async def check_completed_and_cleanup(self, job_id: int) -> bool:
        """
        Complete the job if every unit has reported.

        Returns:
            True if the job is (now or already) Completed
        """
        job = await self.jobs.get_job(job_id)
        if job is None:
            logger.warning("Completion check for unknown job %s", job_id)
            return False

        if job.status == JobStatus.COMPLETED.value:
            return True
        if job.status not in (JobStatus.PENDING.value, JobStatus.IN_PROGRESS.value):
            return False
        # Unit count not written yet; nothing has been dispatched.
        if job.job_count <= 0:
            return False

        recorded = await self.jobs.count_keys(job_id)
        if recorded < job.job_count:
            logger.debug("Job %s has %d of %d files", job_id, recorded, job.job_count)
            return False

        transitioned = await self.jobs.transition_if_active(job_id, JobStatus.COMPLETED)
        await self.jobs.commit()
        if transitioned:
            record_job_completed()
            logger.info("Job %s completed with %d files", job_id, recorded)

        self._remove_staging(job_id)
        return True

    def _remove_staging(self, job_id: int) -> None:
        staging = self.staging_dir / str(job_id)
        try:
            shutil.rmtree(staging)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Unable to remove staging directory %s", staging)
