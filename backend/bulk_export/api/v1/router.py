"""
API v1 Router
=============

Combines the FHIR bulk data endpoints mounted under ``API_PREFIX``.
"""

from fastapi import APIRouter

from bulk_export.api.v1.endpoints import bulk_export, jobs, metadata

api_router = APIRouter()

api_router.include_router(
    metadata.router,
    tags=["Metadata"],
)

api_router.include_router(
    jobs.router,
    prefix="/jobs",
    tags=["Jobs"],
)

api_router.include_router(
    bulk_export.router,
    tags=["Bulk Export"],
)
