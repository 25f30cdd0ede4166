"""
Request Logger Middleware
=========================

One structured JSON event per request: method, path, status, latency
and the caller's organization/user once authentication has run.
"""

import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from bulk_export.core.logging import get_request_logger


logger = get_request_logger()


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    # Paths to exclude from logging
    EXCLUDED_PATHS = {"/_health", "/metrics", "/docs", "/redoc"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        latency_ms = (time.perf_counter() - start_time) * 1000

        log_context = {
            "request_id": getattr(request.state, "request_id", "unknown"),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_ms": round(latency_ms, 2),
            "client_ip": self._get_client_ip(request),
        }
        user_id = getattr(request.state, "user_id", None)
        org_id = getattr(request.state, "org_id", None)
        if user_id:
            log_context["user_id"] = user_id
        if org_id:
            log_context["org_id"] = org_id

        if response.status_code >= 500:
            logger.error("request_completed", **log_context)
        elif response.status_code >= 400:
            logger.warning("request_completed", **log_context)
        else:
            logger.info("request_completed", **log_context)

        return response

    @staticmethod
    def _get_client_ip(request: Request) -> str:
        # First hop of X-Forwarded-For is the original client.
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"
