"""Export job model.

Tracks one bulk export request from submission until its output files
expire. Status only moves forward:

    Pending -> In Progress -> Completed | Failed
    Completed -> Expired | Archived   (reaper / administrative)

Expiry of a Completed job is also derived at read time from created_at,
see ``bulk_export.services.job_status_service.derive_effective_status``.

Each output file (result or error ndjson) is recorded as a JobKey row
carrying the wrapped symmetric key needed to decrypt it.
"""

from __future__ import annotations

import enum

from sqlalchemy import ForeignKey, Index, Integer, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from bulk_export.models.base import Base, TimestampMixin


class JobStatus(str, enum.Enum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    FAILED = "Failed"
    EXPIRED = "Expired"
    ARCHIVED = "Archived"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.IN_PROGRESS)


class Job(Base, TimestampMixin):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    request_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=JobStatus.PENDING.value,
        doc="Pending|In Progress|Completed|Failed|Expired|Archived",
    )
    # Number of units dispatched; written once before the first unit is queued.
    job_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_jobs_org_status", "organization_id", "status"),
    )


class JobKey(Base, TimestampMixin):
    """One encrypted output file of a job."""

    __tablename__ = "job_keys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = mapped_column(String(127), nullable=False)
    # Empty when the file was written in plaintext.
    encrypted_key: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=b"")

    __table_args__ = (
        UniqueConstraint("job_id", "file_name", name="uq_job_keys_job_file"),
    )

    @property
    def is_error_file(self) -> bool:
        return self.file_name.endswith("-error.ndjson")
