"""
Prometheus Metrics
==================

HTTP request metrics plus export pipeline counters, all registered on a
dedicated registry exposed at ``/metrics``.
"""

import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import CollectorRegistry, Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

metrics_registry = CollectorRegistry()

# HTTP Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
    registry=metrics_registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=metrics_registry,
)

errors_total = Counter(
    "errors_total",
    "Total unhandled errors by type",
    ["error_type", "endpoint"],
    registry=metrics_registry,
)

# Export pipeline metrics
export_jobs_submitted_total = Counter(
    "export_jobs_submitted_total",
    "Export jobs accepted",
    ["resource_type"],
    registry=metrics_registry,
)

export_units_processed_total = Counter(
    "export_units_processed_total",
    "Units of work processed",
    ["outcome"],
    registry=metrics_registry,
)

export_member_failures_total = Counter(
    "export_member_failures_total",
    "Beneficiaries that could not be retrieved",
    ["resource_type"],
    registry=metrics_registry,
)

export_jobs_completed_total = Counter(
    "export_jobs_completed_total",
    "Export jobs transitioned to Completed",
    registry=metrics_registry,
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """Collect request count and latency per route template."""

    SKIP_ENDPOINTS = ["/_health", "/metrics", "/docs", "/openapi.json", "/redoc"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if any(request.url.path.startswith(skip) for skip in self.SKIP_ENDPOINTS):
            return await call_next(request)

        start_time = time.perf_counter()
        method = request.method

        try:
            response = await call_next(request)
        except Exception as exc:
            endpoint = self._endpoint(request)
            errors_total.labels(error_type=type(exc).__name__, endpoint=endpoint).inc()
            http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
                time.perf_counter() - start_time
            )
            raise

        endpoint = self._endpoint(request)
        http_requests_total.labels(method=method, endpoint=endpoint, status=response.status_code).inc()
        http_request_duration_seconds.labels(method=method, endpoint=endpoint).observe(
            time.perf_counter() - start_time
        )
        return response

    @staticmethod
    def _endpoint(request: Request) -> str:
        # Route template keeps job ids and file names out of label values.
        route = request.scope.get("route")
        return getattr(route, "path", None) or request.url.path


def record_job_submitted(resource_type: str) -> None:
    export_jobs_submitted_total.labels(resource_type=resource_type).inc()


def record_unit_processed(outcome: str) -> None:
    export_units_processed_total.labels(outcome=outcome).inc()


def record_member_failure(resource_type: str) -> None:
    export_member_failures_total.labels(resource_type=resource_type).inc()


def record_job_completed() -> None:
    export_jobs_completed_total.inc()
