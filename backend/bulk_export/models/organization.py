"""
Organization and Beneficiary Models
===================================

Organizations (ACOs) are the tenant boundary for exports. Beneficiaries are
attributed to organizations through a join table; the attributed population
is what an export partitions into units of work.
"""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from bulk_export.models.base import Base, UUIDMixin, TimestampMixin


class Organization(Base, UUIDMixin, TimestampMixin):
    """
    Organization (tenant) model.

    Attributes:
        name: Display name for the organization
        cms_id: Short CMS identifier (e.g. "A9995")
        client_id: Credential client id issued to the organization
        public_key: PEM RSA public key used to wrap export file keys;
            falls back to the configured default key when empty
    """

    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    cms_id: Mapped[Optional[str]] = mapped_column(String(5), nullable=True, unique=True)
    client_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    public_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class Beneficiary(Base, TimestampMixin):
    __tablename__ = "beneficiaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Identifier understood by the external data source.
    blue_button_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)


class OrganizationBeneficiary(Base):
    """Attribution of a beneficiary to an organization."""

    __tablename__ = "organization_beneficiaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    beneficiary_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("beneficiaries.id", ondelete="RESTRICT"),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("organization_id", "beneficiary_id", name="uq_org_beneficiary"),
    )
