"""Unit-of-work processing.

For each beneficiary in a unit the data source is queried once. Successes
become FHIR entry lines in the unit's result file; failures become
OperationOutcome lines in its error file. A beneficiary failure never
aborts the unit.

Files are staged as plaintext under ``FHIR_STAGING_DIR/{job_id}``,
encrypted (when enabled) into ``FHIR_PAYLOAD_DIR/{job_id}`` and only then
recorded as JobKeys, both files of a unit in one commit. Storage,
encryption or database failures raise UnitProcessingError so the queue
redelivers the unit; a unit already recorded by an earlier delivery is
skipped as a whole.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from bulk_export.core.config import settings
from bulk_export.core.exceptions import PerMemberFetchError, UnitProcessingError
from bulk_export.middleware.prometheus import record_member_failure, record_unit_processed
from bulk_export.models.job import JobStatus
from bulk_export.schemas.job import UnitOfWork
from bulk_export.schemas.operation_outcome import member_fetch_outcome
from bulk_export.services.data_source_client import DataSourceClient
from bulk_export.services.encryption_service import encrypt_bytes, resolve_public_key
from bulk_export.services.export_repository import JobRepository, PopulationRepository


logger = logging.getLogger(__name__)


@dataclass
class UnitResult:
    job_id: int
    unit_index: int
    succeeded: int = 0
    failed: int = 0
    files_recorded: list[str] = field(default_factory=list)
    files_skipped: list[str] = field(default_factory=list)


def entry_line(job_id: int, resource_type: str, member_id: str, payload: str) -> str:
    resource = json.loads(payload)
    full_url = "urn:uuid:" + str(uuid.uuid5(uuid.NAMESPACE_URL, f"{job_id}/{resource_type}/{member_id}"))
    return json.dumps({"fullUrl": full_url, "resource": resource}, separators=(",", ":"))


def error_line(err: PerMemberFetchError) -> str:
    return json.dumps(member_fetch_outcome(str(err)).to_fhir(), separators=(",", ":"))


def write_atomic(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class UnitProcessor:
    def __init__(
        self,
        jobs: JobRepository,
        population: PopulationRepository,
        client: DataSourceClient,
        *,
        staging_dir: str | Path | None = None,
        payload_dir: str | Path | None = None,
    ):
        self.jobs = jobs
        self.population = population
        self.client = client
        self.staging_dir = Path(staging_dir or settings.FHIR_STAGING_DIR)
        self.payload_dir = Path(payload_dir or settings.FHIR_PAYLOAD_DIR)

    async def process(self, unit: UnitOfWork) -> UnitResult:
        """
        Process one unit start to finish.

        A unit whose job is no longer active, or whose output was already
        recorded by an earlier delivery, is skipped without fetching.

        Raises:
            UnitProcessingError: a file could not be written, encrypted or
                recorded; the unit should be redelivered
        """
        try:
            return await self._process(unit)
        except SQLAlchemyError as e:
            logger.exception("Database error processing unit %d of job %s", unit.unit_index, unit.job_id)
            await self.jobs.rollback()
            raise UnitProcessingError(
                f"Unable to record unit {unit.unit_index} of job {unit.job_id}: {e}"
            ) from e

    async def _process(self, unit: UnitOfWork) -> UnitResult:
        result = UnitResult(job_id=unit.job_id, unit_index=unit.unit_index)
        file_names = (unit.result_file_name(), unit.error_file_name())

        job = await self.jobs.get_job(unit.job_id)
        if job is None or not JobStatus(job.status).is_active:
            logger.info("Job %s is not active; dropping unit %d", unit.job_id, unit.unit_index)
            record_unit_processed("skipped")
            return result

        # Both records of a unit are committed together, so either one
        # means this unit already reported.
        for file_name in file_names:
            if await self.jobs.key_exists(unit.job_id, file_name):
                logger.info("Unit %d of job %s already recorded; skipping", unit.unit_index, unit.job_id)
                result.files_skipped.append(file_name)
        if result.files_skipped:
            record_unit_processed("skipped")
            return result

        if await self.jobs.mark_in_progress(unit.job_id):
            await self.jobs.commit()

        entries: list[str] = []
        errors: list[str] = []
        for member_id in unit.beneficiary_ids:
            try:
                payload = await self.client.fetch(unit.resource_type, member_id, unit.job_id)
                entries.append(entry_line(unit.job_id, unit.resource_type, member_id, payload))
                result.succeeded += 1
            except Exception as e:
                err = PerMemberFetchError(unit.resource_type, member_id, unit.organization_id)
                logger.warning("%s: %s", err, e)
                errors.append(error_line(err))
                record_member_failure(unit.resource_type)
                result.failed += 1

        public_key = None
        if unit.encrypt and (entries or errors):
            org = await self.population.get_organization(unit.organization_id)
            public_key = resolve_public_key(org.public_key if org is not None else None)

        stored: list[tuple[str, bytes]] = []
        for file_name, lines in zip(file_names, (entries, errors)):
            if lines:
                stored.append((file_name, self._store(unit.job_id, file_name, lines, public_key)))

        for file_name, wrapped_key in stored:
            if await self.jobs.add_key(job_id=unit.job_id, file_name=file_name, encrypted_key=wrapped_key):
                result.files_recorded.append(file_name)
            else:
                result.files_skipped.append(file_name)
        await self.jobs.commit()

        record_unit_processed("partial" if result.failed else "success")
        logger.info(
            "Processed unit %d of job %s: %d succeeded, %d failed",
            unit.unit_index,
            unit.job_id,
            result.succeeded,
            result.failed,
        )
        return result

    def _store(self, job_id: int, file_name: str, lines: list[str], public_key) -> bytes:
        """Stage, encrypt and publish one output file; returns the wrapped key."""
        staged = self.staging_dir / str(job_id) / file_name
        target = self.payload_dir / str(job_id) / file_name
        try:
            write_atomic(staged, "".join(line + "\n" for line in lines).encode("utf-8"))
            plaintext = staged.read_bytes()

            wrapped_key = b""
            if public_key is not None:
                ciphertext, wrapped_key = encrypt_bytes(public_key, plaintext, file_name)
                write_atomic(target, ciphertext)
            else:
                write_atomic(target, plaintext)

            staged.unlink(missing_ok=True)
        except OSError as e:
            logger.exception("Unable to write %s for job %s", file_name, job_id)
            raise UnitProcessingError(f"Unable to write {file_name} for job {job_id}: {e}") from e
        return wrapped_key
