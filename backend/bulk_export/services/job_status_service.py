"""Job status reporting.

Answers polling requests. Expiry is derived at read time from the job's
age: a Completed job older than the TTL is reported exactly like one the
reaper has already marked Expired, without writing anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Any, Optional
from urllib.parse import urlsplit

from bulk_export.core.config import settings
from bulk_export.core.exceptions import JobAccessDenied, JobLookupError
from bulk_export.models.job import Job, JobKey, JobStatus
from bulk_export.schemas.job import BulkResponseBody, ManifestFile
from bulk_export.schemas.operation_outcome import ERROR, EXCEPTION, PROCESSING_ERR, create_op_outcome
from bulk_export.services.export_repository import JobRepository


logger = logging.getLogger(__name__)

EXPORT_OPERATION = "$export"


def derive_effective_status(
    persisted: JobStatus | str,
    created_at: datetime,
    now: datetime,
    ttl: timedelta,
) -> JobStatus:
    """
    Overlay time-based expiry on the persisted status.

    Raises:
        ValueError: negative TTL or an unknown persisted status
    """
    if ttl < timedelta(0):
        raise ValueError(f"Job TTL must not be negative (got {ttl})")
    status = JobStatus(persisted)
    if status == JobStatus.COMPLETED and now > _as_utc(created_at) + ttl:
        return JobStatus.EXPIRED
    return status


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resource_type_from_request_url(request_url: str) -> str:
    """``.../ExplanationOfBenefit/$export`` -> ``ExplanationOfBenefit``."""
    parts = [p for p in urlsplit(request_url).path.split("/") if p]
    if EXPORT_OPERATION in parts:
        idx = parts.index(EXPORT_OPERATION)
        if idx > 0:
            return parts[idx - 1]
    return "ExplanationOfBenefit"


def parse_job_id(raw: str | int) -> int:
    try:
        job_id = int(str(raw).strip())
    except (TypeError, ValueError) as e:
        raise JobLookupError(f"Invalid job id: {raw!r}") from e
    if job_id <= 0:
        raise JobLookupError(f"Invalid job id: {raw!r}")
    return job_id


def file_url(job_id: int, file_name: str, *, public_url: str | None = None) -> str:
    base = (public_url or settings.PUBLIC_URL).rstrip("/")
    return f"{base}/data/{job_id}/{file_name}"


@dataclass
class JobStatusResult:
    status_code: int
    status: JobStatus
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[dict[str, Any]] = None


class JobStatusService:
    def __init__(
        self,
        jobs: JobRepository,
        *,
        ttl: timedelta | None = None,
        public_url: str | None = None,
    ):
        self.jobs = jobs
        self.ttl = ttl if ttl is not None else settings.job_ttl
        self.public_url = public_url or settings.PUBLIC_URL

    async def load_job(self, raw_job_id: str | int, organization_id: str) -> Job:
        """
        Fetch a job owned by ``organization_id``.

        Raises:
            JobLookupError: malformed id or no such job
            JobAccessDenied: the job belongs to another organization
        """
        job_id = parse_job_id(raw_job_id)
        job = await self.jobs.get_job(job_id)
        if job is None:
            raise JobLookupError(f"Job {job_id} not found")
        if str(job.organization_id) != str(organization_id):
            logger.warning("Organization %s requested job %s owned by another organization", organization_id, job_id)
            raise JobAccessDenied(f"Job {job_id} not found")
        return job

    def expires_at(self, job: Job) -> datetime:
        return _as_utc(job.created_at) + self.ttl

    def effective_status(self, job: Job, now: datetime | None = None) -> JobStatus:
        return derive_effective_status(job.status, job.created_at, now or datetime.now(timezone.utc), self.ttl)

    async def get_status(
        self,
        raw_job_id: str | int,
        organization_id: str,
        *,
        now: datetime | None = None,
    ) -> JobStatusResult:
        job = await self.load_job(raw_job_id, organization_id)
        status = self.effective_status(job, now)

        if status.is_active:
            return JobStatusResult(202, status, headers={"X-Progress": status.value})

        if status == JobStatus.FAILED:
            outcome = create_op_outcome(ERROR, EXCEPTION, PROCESSING_ERR, "Service encountered an error and could not complete the request")
            return JobStatusResult(500, status, body=outcome.to_fhir())

        headers = {"Expires": format_datetime(self.expires_at(job), usegmt=True)}
        if status == JobStatus.COMPLETED:
            keys = await self.jobs.list_keys(job.id)
            return JobStatusResult(200, status, headers=headers, body=self.build_manifest(job, keys))

        return JobStatusResult(410, status, headers=headers)

    def build_manifest(self, job: Job, keys: list[JobKey]) -> dict[str, Any]:
        resource_type = resource_type_from_request_url(job.request_url)
        output: list[ManifestFile] = []
        errors: list[ManifestFile] = []
        key_map: dict[str, str] = {}

        for key in keys:
            url = file_url(job.id, key.file_name, public_url=self.public_url)
            if key.is_error_file:
                errors.append(ManifestFile(type="OperationOutcome", url=url))
            else:
                output.append(ManifestFile(type=resource_type, url=url))
            key_map[key.file_name] = (key.encrypted_key or b"").hex()

        body = BulkResponseBody(
            transaction_time=_as_utc(job.created_at),
            request=job.request_url,
            requires_access_token=True,
            output=output,
            error=errors,
            key_map=key_map,
        )
        return body.model_dump(mode="json", by_alias=True)
