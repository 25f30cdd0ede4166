"""
Database Models
===============

SQLAlchemy models for the bulk export service.
"""

from bulk_export.models.base import (
    Base,
    TimestampMixin,
    UUIDMixin,
    generate_uuid,
)
from bulk_export.models.organization import (
    Organization,
    Beneficiary,
    OrganizationBeneficiary,
)
from bulk_export.models.user import User
from bulk_export.models.job import (
    Job,
    JobKey,
    JobStatus,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "generate_uuid",
    "Organization",
    "Beneficiary",
    "OrganizationBeneficiary",
    "User",
    "Job",
    "JobKey",
    "JobStatus",
]
