"""DB persistence helpers for export jobs.

Separates SQLAlchemy persistence from pipeline logic so the partitioner,
workers and status service can be unit tested without a live database.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bulk_export.models.job import Job, JobKey, JobStatus
from bulk_export.models.organization import Beneficiary, Organization, OrganizationBeneficiary


ACTIVE_STATUSES = (JobStatus.PENDING.value, JobStatus.IN_PROGRESS.value)


class JobRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_job(self, *, organization_id: str, user_id: str, request_url: str) -> Job:
        job = Job(
            organization_id=organization_id,
            user_id=user_id,
            request_url=request_url,
            status=JobStatus.PENDING.value,
            job_count=0,
        )
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_job(self, job_id: int) -> Job | None:
        return await self.session.get(Job, job_id)

    async def set_job_count(self, job: Job, job_count: int) -> None:
        job.job_count = job_count
        await self.session.flush()

    async def transition_if_active(self, job_id: int, status: JobStatus) -> bool:
        """Move a Pending/In Progress job to ``status``; no-op from any other state."""
        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status.in_(ACTIVE_STATUSES))
            .values(status=status.value)
        )
        res = await self.session.execute(stmt)
        return (res.rowcount or 0) > 0

    async def mark_in_progress(self, job_id: int) -> bool:
        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.PENDING.value)
            .values(status=JobStatus.IN_PROGRESS.value)
        )
        res = await self.session.execute(stmt)
        return (res.rowcount or 0) > 0

    async def mark_expired(self, job_id: int) -> bool:
        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status == JobStatus.COMPLETED.value)
            .values(status=JobStatus.EXPIRED.value)
        )
        res = await self.session.execute(stmt)
        return (res.rowcount or 0) > 0

    async def list_completed_before(self, cutoff: datetime, *, limit: int = 500) -> list[Job]:
        stmt = (
            select(Job)
            .where(Job.status == JobStatus.COMPLETED.value, Job.created_at < cutoff)
            .order_by(Job.created_at.asc())
            .limit(limit)
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    # -- output file records ------------------------------------------------

    async def count_keys(self, job_id: int) -> int:
        stmt = select(func.count()).select_from(JobKey).where(JobKey.job_id == job_id)
        return int((await self.session.execute(stmt)).scalar() or 0)

    async def list_keys(self, job_id: int) -> list[JobKey]:
        stmt = select(JobKey).where(JobKey.job_id == job_id).order_by(JobKey.id.asc())
        res = await self.session.execute(stmt)
        return list(res.scalars().all())

    async def key_exists(self, job_id: int, file_name: str) -> bool:
        stmt = select(JobKey.id).where(JobKey.job_id == job_id, JobKey.file_name == file_name)
        return (await self.session.execute(stmt)).first() is not None

    async def add_key(self, *, job_id: int, file_name: str, encrypted_key: bytes) -> bool:
        """Insert a file record. Returns False if the file was already recorded."""
        row = JobKey(job_id=job_id, file_name=file_name, encrypted_key=encrypted_key or b"")
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            return False
        return True

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()


class PopulationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_organization(self, organization_id: str) -> Organization | None:
        return await self.session.get(Organization, organization_id)

    async def list_beneficiary_ids(self, organization_id: str) -> list[str]:
        """Data-source identifiers of every beneficiary attributed to the organization."""
        stmt = (
            select(Beneficiary.blue_button_id)
            .join(OrganizationBeneficiary, OrganizationBeneficiary.beneficiary_id == Beneficiary.id)
            .where(OrganizationBeneficiary.organization_id == organization_id)
            .order_by(OrganizationBeneficiary.id.asc())
        )
        res = await self.session.execute(stmt)
        return list(res.scalars().all())
