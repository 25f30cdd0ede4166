"""
Claims Bulk Export - Main Application Entry Point
=================================================

Initializes the FastAPI application with routes, middleware, error
handlers and the work-queue publisher used by export submission.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bulk_export.api.v1.endpoints import data, health
from bulk_export.api.v1.metrics import router as metrics_router
from bulk_export.api.v1.router import api_router
from bulk_export.core.celery_app import celery_app
from bulk_export.core.config import settings
from bulk_export.core.database import create_db_and_tables, engine
from bulk_export.core.exceptions import ExportError
from bulk_export.core.logging import configure_logging
from bulk_export.middleware.prometheus import PrometheusMiddleware
from bulk_export.middleware.request_id import RequestIdMiddleware
from bulk_export.middleware.request_logger import RequestLoggerMiddleware
from bulk_export.schemas.operation_outcome import ERROR, create_op_outcome
from bulk_export.services.dispatch_service import CeleryWorkQueue


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    - Startup: logging, dev tables, the queue publisher
    - Shutdown: drop the publisher, close DB connections
    """
    configure_logging()

    if settings.is_development:
        try:
            await create_db_and_tables()
        except Exception as e:
            logger.warning("Could not create database tables: %s - continuing without database", e)

    app.state.work_queue = CeleryWorkQueue(celery_app, settings.EXPORT_QUEUE_NAME)

    yield

    app.state.work_queue = None
    if settings.APP_ENV != "test":
        await engine.dispose()


async def export_error_handler(request: Request, exc: ExportError) -> JSONResponse:
    """Render pipeline errors as OperationOutcome; server errors expose only their code."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
        diagnostics = exc.code
    else:
        diagnostics = exc.diagnostics

    outcome = create_op_outcome(ERROR, exc.issue_type, exc.code, diagnostics)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=outcome.to_fhir(), headers=headers)


def create_application() -> FastAPI:
    """
    Application factory function.

    Returns:
        FastAPI: Configured application instance
    """
    app = FastAPI(
        title=settings.APP_NAME,
        description="Asynchronous FHIR bulk export of claims data",
        version=settings.VERSION,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    # Replaced with the Celery publisher at startup.
    app.state.work_queue = None

    # ---------------------------------------------------------------------------
    # Middleware (order matters - first added = last executed)
    # ---------------------------------------------------------------------------
    app.add_middleware(RequestLoggerMiddleware)
    app.add_middleware(PrometheusMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(ExportError, export_error_handler)

    # ---------------------------------------------------------------------------
    # Routes
    # ---------------------------------------------------------------------------
    app.include_router(health.router)
    app.include_router(metrics_router)
    app.include_router(data.router, tags=["Data"])
    app.include_router(api_router, prefix=settings.API_PREFIX)

    return app


# Create application instance
app = create_application()
