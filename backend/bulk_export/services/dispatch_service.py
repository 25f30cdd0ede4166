"""Work dispatch.

The submission path publishes units through a :class:`WorkQueue`. The
Celery-backed queue is built once at application startup and held on
``app.state``; tests substitute an in-memory queue.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from celery import Celery
from kombu.exceptions import KombuError

from bulk_export.core.celery_app import PROCESS_UNIT_TASK
from bulk_export.core.exceptions import DispatchError
from bulk_export.schemas.job import UnitOfWork


logger = logging.getLogger(__name__)


class WorkQueue(Protocol):
    def publish(self, unit: UnitOfWork) -> None: ...


class CeleryWorkQueue:
    """Publishes units as ``process_export_unit_task`` messages."""

    def __init__(self, app: Celery, queue_name: str):
        self.app = app
        self.queue_name = queue_name

    def publish(self, unit: UnitOfWork) -> None:
        self.app.send_task(
            PROCESS_UNIT_TASK,
            kwargs={"unit": unit.model_dump(mode="json")},
            queue=self.queue_name,
        )


class WorkDispatcher:
    def __init__(self, queue: WorkQueue | None):
        self.queue = queue

    def dispatch(self, job_id: int, units: Sequence[UnitOfWork]) -> int:
        """
        Publish every unit of a job.

        Any failure fails the whole dispatch; the caller must not treat a
        partially published job as queued.

        Returns:
            Number of units published
        """
        if self.queue is None:
            raise DispatchError(f"Work queue is not available for job {job_id}")

        published = 0
        for unit in units:
            if unit.job_id != job_id:
                raise DispatchError(f"Unit for job {unit.job_id} dispatched with job {job_id}")
            try:
                self.queue.publish(unit)
            except (KombuError, OSError) as e:
                logger.exception("Failed to publish unit %d of job %s", unit.unit_index, job_id)
                raise DispatchError(
                    f"Failed to publish unit {unit.unit_index} of job {job_id}: {e}"
                ) from e
            published += 1

        logger.info("Dispatched %d units for job %s", published, job_id)
        return published
