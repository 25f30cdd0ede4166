"""Population partitioning.

Resolves the beneficiaries attributed to a job's organization and splits
them into bounded batches, one unit of work per batch.
"""

from __future__ import annotations

import logging
from typing import Iterator, Sequence

from sqlalchemy.exc import SQLAlchemyError

from bulk_export.core.config import settings
from bulk_export.core.exceptions import PopulationResolutionError
from bulk_export.models.job import Job
from bulk_export.schemas.job import UnitOfWork
from bulk_export.services.export_repository import PopulationRepository


logger = logging.getLogger(__name__)


def iter_batches(member_ids: Sequence[str], max_size: int) -> Iterator[list[str]]:
    """Consume ``member_ids`` in order, yielding batches of at most ``max_size``."""
    if max_size < 1:
        raise ValueError(f"max_size must be >= 1 (got {max_size})")
    batch: list[str] = []
    for member_id in member_ids:
        batch.append(member_id)
        if len(batch) >= max_size:
            yield batch
            batch = []
    if batch:
        yield batch


class PopulationPartitioner:
    def __init__(self, repo: PopulationRepository, *, max_batch_size: int | None = None):
        self.repo = repo
        self.max_batch_size = max_batch_size if max_batch_size is not None else settings.BCDA_FHIR_MAX_RECORDS

    async def resolve_population(self, organization_id: str) -> list[str]:
        try:
            member_ids = await self.repo.list_beneficiary_ids(organization_id)
        except SQLAlchemyError as e:
            logger.exception("Error retrieving beneficiaries for organization %s", organization_id)
            raise PopulationResolutionError(
                f"Unable to read beneficiaries for organization {organization_id}"
            ) from e

        if not member_ids:
            logger.error("Retrieved 0 beneficiaries for organization %s", organization_id)
            raise PopulationResolutionError(
                f"Retrieved 0 beneficiaries for organization {organization_id}"
            )
        return member_ids

    async def build_units(self, job: Job, resource_type: str, *, encrypt: bool) -> list[UnitOfWork]:
        """
        Partition the job's population into units of work.

        Args:
            job: A persisted job (its id must already be assigned)
            resource_type: Requested FHIR resource type
            encrypt: Whether workers should encrypt the output files

        Returns:
            Units in population order, numbered from 0

        Raises:
            PopulationResolutionError: the organization has no attributed beneficiaries
        """
        member_ids = await self.resolve_population(job.organization_id)
        units = [
            UnitOfWork(
                job_id=job.id,
                organization_id=str(job.organization_id),
                user_id=str(job.user_id),
                beneficiary_ids=batch,
                resource_type=resource_type,
                encrypt=encrypt,
                unit_index=index,
            )
            for index, batch in enumerate(iter_batches(member_ids, self.max_batch_size))
        ]
        logger.info(
            "Partitioned %d beneficiaries into %d units for job %s",
            len(member_ids),
            len(units),
            job.id,
        )
        return units
