"""FHIR CapabilityStatement."""

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from bulk_export.core.config import settings


router = APIRouter()


def build_capability_statement(base_url: str) -> dict:
    operations = [
        {
            "name": "export",
            "definition": {"reference": f"{base_url}/{resource_type}/$export"},
        }
        for resource_type in settings.allowed_resource_types
    ]
    operations.append(
        {
            "name": "jobs",
            "definition": {"reference": f"{base_url}/jobs/[jobID]"},
        }
    )
    return {
        "resourceType": "CapabilityStatement",
        "status": "active",
        "date": datetime.now(timezone.utc).date().isoformat(),
        "publisher": "Centers for Medicare & Medicaid Services",
        "kind": "instance",
        "instantiates": ["http://hl7.org/fhir/uv/bulkdata/CapabilityStatement/bulk-data"],
        "software": {"name": settings.APP_NAME, "version": settings.VERSION},
        "implementation": {"url": base_url},
        "fhirVersion": "3.0.1",
        "acceptUnknown": "extensions",
        "format": ["application/json", "application/fhir+json"],
        "rest": [
            {
                "mode": "server",
                "security": {
                    "cors": True,
                    "service": [{"coding": [{"display": "OAuth", "code": "OAuth"}]}],
                },
                "interaction": [{"code": "batch"}, {"code": "search-system"}],
                "operation": operations,
            }
        ],
    }


@router.get("/metadata")
async def metadata(request: Request):
    base_url = str(request.base_url).rstrip("/") + settings.API_PREFIX
    return build_capability_statement(base_url)
