"""
Export Pipeline Errors
======================

Failures raised by the export pipeline. The API layer converts each of
these into an OperationOutcome response; workers use them to decide
between per-member recording and unit-level redelivery.
"""

from __future__ import annotations


class ExportError(Exception):
    """Base class for export pipeline failures."""

    status_code: int = 500
    # Machine-readable display code exposed to clients.
    code: str = "Processing error"
    # OperationOutcome issue type.
    issue_type: str = "Exception"

    def __init__(self, message: str = "", *, diagnostics: str | None = None):
        super().__init__(message)
        self.diagnostics = diagnostics or message


class PopulationResolutionError(ExportError):
    """The organization has no attributed beneficiaries (or they could not be read)."""

    code = "Processing error"


class DispatchError(ExportError):
    """The work queue is unavailable or rejected a unit at submission time."""

    code = "Queue error"


class PerMemberFetchError(ExportError):
    """A single beneficiary could not be fetched from the data source."""

    def __init__(self, resource_type: str, member_id: str, organization_id: str):
        message = (
            f"Error retrieving {resource_type} for beneficiary {member_id} "
            f"in ACO {organization_id}"
        )
        super().__init__(message)
        self.resource_type = resource_type
        self.member_id = member_id
        self.organization_id = organization_id


class UnitProcessingError(ExportError):
    """Storage or encryption failed; the unit must be redelivered."""


class EncryptionError(UnitProcessingError):
    pass


class JobLookupError(ExportError):
    """Job id was malformed or no such job exists."""

    code = "Database error"


class JobAccessDenied(ExportError):
    """The caller's organization does not own the job (reported as not found)."""

    status_code = 404
    code = "Not found"


class InvalidRequestError(ExportError):
    status_code = 400
    code = "Formatting Error"
    issue_type = "Structure"


class AuthenticationError(ExportError):
    status_code = 401
    code = "Invalid Token"


class DatabaseError(ExportError):
    code = "Database error"
