"""Maintenance / scheduled tasks.

Persists expiry for Completed jobs past their TTL and removes their
encrypted files.
"""

from __future__ import annotations

import asyncio
import shutil
from datetime import datetime, timezone
from pathlib import Path

from celery.utils.log import get_task_logger

from bulk_export.core.celery_app import EXPIRE_JOBS_TASK, celery_app
from bulk_export.core.config import settings
from bulk_export.core.database import async_session_factory, engine
from bulk_export.services.export_repository import JobRepository


logger = get_task_logger(__name__)


async def expire_completed_jobs(
    jobs: JobRepository,
    *,
    now: datetime | None = None,
    payload_dir: str | Path | None = None,
    batch_size: int = 500,
) -> dict:
    now = now or datetime.now(timezone.utc)
    cutoff = now - settings.job_ttl
    payload_root = Path(payload_dir or settings.FHIR_PAYLOAD_DIR)

    expired: list[int] = []
    for job in await jobs.list_completed_before(cutoff, limit=batch_size):
        job_id = job.id
        if not await jobs.mark_expired(job_id):
            continue
        await jobs.commit()
        expired.append(job_id)

        job_dir = payload_root / str(job_id)
        try:
            shutil.rmtree(job_dir)
        except FileNotFoundError:
            pass
        except OSError:
            logger.exception("Unable to remove payload directory %s", job_dir)

    if expired:
        logger.info("Expired %d jobs: %s", len(expired), expired)
    return {"ok": True, "expired": expired, "cutoff": cutoff.isoformat(), "ran_at": now.isoformat()}


async def _expire_completed_jobs_async() -> dict:
    try:
        async with async_session_factory() as session:
            return await expire_completed_jobs(JobRepository(session))
    finally:
        await engine.dispose()


@celery_app.task(name=EXPIRE_JOBS_TASK)
def expire_completed_jobs_task() -> dict:
    """Mark Completed jobs older than the TTL as Expired."""
    return asyncio.run(_expire_completed_jobs_async())
