"""
Pydantic Schemas
================

API response and queue message schemas.
"""

from bulk_export.schemas.base import BaseSchema
from bulk_export.schemas.job import (
    BulkResponseBody,
    JobAcceptedResponse,
    ManifestFile,
    UnitOfWork,
)
from bulk_export.schemas.operation_outcome import (
    OperationOutcome,
    create_op_outcome,
    member_fetch_outcome,
)

__all__ = [
    "BaseSchema",
    "BulkResponseBody",
    "JobAcceptedResponse",
    "ManifestFile",
    "UnitOfWork",
    "OperationOutcome",
    "create_op_outcome",
    "member_fetch_outcome",
]
