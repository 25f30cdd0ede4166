"""FHIR OperationOutcome shapes.

Used both for per-beneficiary failures written to error files and for
top-level API errors.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from bulk_export.schemas.base import BaseSchema


# Severity / issue type values
ERROR = "Error"
EXCEPTION = "Exception"
STRUCTURE = "Structure"

# Diagnostic display codes
TOKEN_ERR = "Invalid Token"
DB_ERR = "Database error"
PROCESSING_ERR = "Processing error"
QUEUE_ERR = "Queue error"
FORMAT_ERR = "Formatting Error"
NOT_FOUND_ERR = "Not found"


class Coding(BaseSchema):
    display: Optional[str] = None


class CodeableConcept(BaseSchema):
    coding: List[Coding] = Field(default_factory=list)
    text: Optional[str] = None


class Issue(BaseSchema):
    severity: str
    code: Optional[str] = None
    details: Optional[CodeableConcept] = None


class OperationOutcome(BaseSchema):
    resource_type: str = Field(default="OperationOutcome", alias="resourceType")
    issue: List[Issue] = Field(default_factory=list)

    def to_fhir(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


def create_op_outcome(
    severity: str,
    code: str,
    display: str,
    diagnostics: str | None = None,
) -> OperationOutcome:
    details = None
    if display or diagnostics:
        details = CodeableConcept(
            coding=[Coding(display=display)] if display else [],
            text=diagnostics if diagnostics is not None else display,
        )
    return OperationOutcome(issue=[Issue(severity=severity, code=code or None, details=details)])


def member_fetch_outcome(message: str) -> OperationOutcome:
    """Error record for one beneficiary that could not be retrieved."""
    return create_op_outcome(ERROR, EXCEPTION, message, message)
