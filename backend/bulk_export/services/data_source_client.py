"""Blue Button data-source client.

Fetches one beneficiary's FHIR resources. Any transport error or non-2xx
response is raised; the unit processor records it as a per-beneficiary
failure.
"""

from __future__ import annotations

import logging
import ssl
from typing import Protocol

import httpx

from bulk_export.core.config import settings


logger = logging.getLogger(__name__)

FHIR_JSON = "application/fhir+json"


class DataSourceClient(Protocol):
    async def fetch(self, resource_type: str, member_id: str, job_id: int | str) -> str: ...


class DataSourceError(Exception):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _build_ssl_context() -> ssl.SSLContext | bool:
    cert_file = settings.BB_CLIENT_CERT_FILE
    key_file = settings.BB_CLIENT_KEY_FILE
    ca_file = settings.BB_CLIENT_CA_FILE
    if not (cert_file or ca_file):
        return True

    ctx = ssl.create_default_context(cafile=ca_file) if ca_file else ssl.create_default_context()
    if cert_file:
        ctx.load_cert_chain(certfile=cert_file, keyfile=key_file)
    return ctx


class BlueButtonClient:
    """Async client for the Blue Button FHIR API (optional mutual TLS)."""

    # Resource type -> (path, query parameter naming the beneficiary)
    ENDPOINTS = {
        "ExplanationOfBenefit": ("ExplanationOfBenefit/", "patient"),
        "Patient": ("Patient/", "_id"),
        "Coverage": ("Coverage/", "beneficiary"),
    }

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.BB_SERVER_LOCATION).rstrip("/") + "/v1/fhir/"
        kwargs: dict = {
            "base_url": self.base_url,
            "timeout": timeout if timeout is not None else settings.BB_TIMEOUT_SECONDS,
            "headers": {"Accept": FHIR_JSON},
        }
        if transport is not None:
            kwargs["transport"] = transport
        else:
            kwargs["verify"] = _build_ssl_context()
        self._client = httpx.AsyncClient(**kwargs)

    async def fetch(self, resource_type: str, member_id: str, job_id: int | str) -> str:
        endpoint = self.ENDPOINTS.get(resource_type)
        if endpoint is None:
            raise DataSourceError(f"Unsupported resource type: {resource_type}")
        path, param = endpoint

        try:
            resp = await self._client.get(
                path,
                params={param: member_id, "_format": FHIR_JSON},
                headers={"X-Job-ID": str(job_id)},
            )
        except httpx.HTTPError as e:
            raise DataSourceError(f"{type(e).__name__}: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise DataSourceError(
                f"{resource_type} request for {member_id} returned HTTP {resp.status_code}",
                status_code=resp.status_code,
            )
        return resp.text

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "BlueButtonClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
