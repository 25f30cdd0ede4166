"""
Export Job Schemas
==================

Queue message and API response shapes for bulk export jobs.
"""

from datetime import datetime
from typing import Dict, List

from pydantic import Field

from bulk_export.schemas.base import BaseSchema


class UnitOfWork(BaseSchema):
    """
    One bounded batch of beneficiaries dispatched to a worker.

    Serialized as the Celery task kwargs; never persisted.
    """

    job_id: int
    organization_id: str
    user_id: str
    beneficiary_ids: List[str] = Field(default_factory=list)
    resource_type: str
    encrypt: bool = True
    # 0-based position in the job's partition; makes output filenames deterministic.
    unit_index: int = Field(default=0, ge=0)

    def result_file_name(self) -> str:
        return f"{self.organization_id}-{self.unit_index}.ndjson"

    def error_file_name(self) -> str:
        return f"{self.organization_id}-{self.unit_index}-error.ndjson"


class JobAcceptedResponse(BaseSchema):
    job_id: int = Field(alias="jobId")
    status: str


class ManifestFile(BaseSchema):
    type: str
    url: str


class BulkResponseBody(BaseSchema):
    """Manifest returned for a completed export job."""

    transaction_time: datetime = Field(alias="transactionTime")
    request: str
    requires_access_token: bool = Field(default=True, alias="requiresAccessToken")
    output: List[ManifestFile] = Field(default_factory=list)
    error: List[ManifestFile] = Field(default_factory=list)
    key_map: Dict[str, str] = Field(default_factory=dict, alias="keyMap")
