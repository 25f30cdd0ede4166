"""Middleware module initialization."""

from bulk_export.middleware.prometheus import PrometheusMiddleware
from bulk_export.middleware.request_id import RequestIdMiddleware
from bulk_export.middleware.request_logger import RequestLoggerMiddleware

__all__ = [
    "PrometheusMiddleware",
    "RequestIdMiddleware",
    "RequestLoggerMiddleware",
]
