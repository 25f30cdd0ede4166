"""Health, version and auth provider endpoints (no auth required)."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from bulk_export.core.config import settings
from bulk_export.core import database


router = APIRouter(tags=["Health"])


@router.get("/_health")
async def health_check():
    if await database.ping_database():
        return {"database": "ok"}
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"database": "error"})


@router.get("/_version")
async def get_version():
    return {"version": settings.VERSION}


@router.get("/_auth")
async def get_auth_provider():
    return {"auth_provider": settings.AUTH_PROVIDER}
