from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

from bulk_export.api.v1.deps import get_export_job_service, get_job_status_service
from bulk_export.main import app
from bulk_export.models.job import JobStatus
from bulk_export.services.dispatch_service import WorkDispatcher
from bulk_export.services.export_job_service import ExportJobService
from bulk_export.services.job_status_service import JobStatusService
from bulk_export.services.population_service import PopulationPartitioner

from conftest import ORG_ID, OTHER_ORG_ID


EXPORT_URL = "/api/v1/ExplanationOfBenefit/$export"


@pytest.fixture
def install_services(job_repo, population_repo, work_queue):
    def _install(*, queue=work_queue):
        app.dependency_overrides[get_export_job_service] = lambda: ExportJobService(
            job_repo,
            PopulationPartitioner(population_repo, max_batch_size=15),
            WorkDispatcher(queue),
        )
        app.dependency_overrides[get_job_status_service] = lambda: JobStatusService(
            job_repo, ttl=timedelta(hours=24), public_url="http://example.com"
        )

    return _install


def _diagnostic(response) -> tuple[str, str]:
    issue = response.json()["issue"][0]
    return issue["details"]["coding"][0]["display"], issue["details"]["text"]


@pytest.mark.asyncio
async def test_start_export_returns_202_with_content_location(
    client: AsyncClient, auth_headers, install_services, population_repo, job_repo, work_queue
):
    population_repo.members[ORG_ID] = [f"b{i}" for i in range(20)]
    install_services()

    response = await client.get(EXPORT_URL, headers=auth_headers(bulk=True))

    assert response.status_code == 202
    job_id = response.json()["jobId"]
    assert response.json()["status"] == "Pending"
    assert response.headers["Content-Location"] == f"http://example.com/api/v1/jobs/{job_id}"
    assert response.headers["X-Request-ID"]
    assert job_repo.jobs[job_id].job_count == 2
    assert len(work_queue.published) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "headers, message",
    [
        ({"Accept": "application/json"}, "application/fhir+json is the only supported response format"),
        ({"Accept": "application/fhir+json"}, "Prefer header is required"),
        ({"Accept": "application/fhir+json", "Prefer": "return=minimal"}, "Only asynchronous responses are supported"),
    ],
)
async def test_start_export_requires_bulk_headers(client: AsyncClient, auth_headers, install_services, headers, message):
    install_services()

    response = await client.get(EXPORT_URL, headers={**auth_headers(), **headers})

    assert response.status_code == 400
    assert _diagnostic(response) == ("Formatting Error", message)


@pytest.mark.asyncio
async def test_start_export_unknown_resource_type(client: AsyncClient, auth_headers, install_services, job_repo):
    install_services()

    response = await client.get("/api/v1/Claim/$export", headers=auth_headers(bulk=True))

    assert response.status_code == 400
    assert response.json()["resourceType"] == "OperationOutcome"
    assert job_repo.jobs == {}


@pytest.mark.asyncio
async def test_start_export_requires_token(client: AsyncClient, install_services):
    install_services()

    response = await client.get(
        EXPORT_URL, headers={"Accept": "application/fhir+json", "Prefer": "respond-async"}
    )

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert _diagnostic(response)[0] == "Invalid Token"


@pytest.mark.asyncio
async def test_missing_token_is_reported_before_missing_headers(client: AsyncClient, install_services, job_repo):
    install_services()

    response = await client.get(EXPORT_URL)

    assert response.status_code == 401
    assert _diagnostic(response)[0] == "Invalid Token"
    assert job_repo.jobs == {}


@pytest.mark.asyncio
async def test_start_export_rejects_bad_token(client: AsyncClient, install_services):
    install_services()

    response = await client.get(
        EXPORT_URL,
        headers={"Authorization": "Bearer not-a-jwt", "Accept": "application/fhir+json", "Prefer": "respond-async"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_start_export_without_beneficiaries(client: AsyncClient, auth_headers, install_services, job_repo):
    install_services()

    response = await client.get(EXPORT_URL, headers=auth_headers(bulk=True))

    assert response.status_code == 500
    # Server errors expose only the category.
    assert _diagnostic(response) == ("Processing error", "Processing error")
    (job,) = job_repo.jobs.values()
    assert job.status == JobStatus.FAILED.value


@pytest.mark.asyncio
async def test_start_export_without_queue(client: AsyncClient, auth_headers, install_services, population_repo):
    population_repo.members[ORG_ID] = ["b1"]
    install_services(queue=None)

    response = await client.get(EXPORT_URL, headers=auth_headers(bulk=True))

    assert response.status_code == 500
    assert _diagnostic(response)[0] == "Queue error"


@pytest.mark.asyncio
async def test_job_status_in_progress(client: AsyncClient, auth_headers, install_services, job_repo):
    install_services()
    job = job_repo.add_job(status=JobStatus.IN_PROGRESS.value)

    response = await client.get(f"/api/v1/jobs/{job.id}", headers=auth_headers())

    assert response.status_code == 202
    assert response.headers["X-Progress"] == "In Progress"


@pytest.mark.asyncio
async def test_job_status_completed_manifest(client: AsyncClient, auth_headers, install_services, job_repo):
    install_services()
    job = job_repo.add_job(status=JobStatus.COMPLETED.value)
    await job_repo.add_key(job_id=job.id, file_name=f"{ORG_ID}-0.ndjson", encrypted_key=b"\xab")

    response = await client.get(f"/api/v1/jobs/{job.id}", headers=auth_headers())

    assert response.status_code == 200
    assert "Expires" in response.headers
    body = response.json()
    assert body["output"][0]["type"] == "ExplanationOfBenefit"
    assert body["keyMap"] == {f"{ORG_ID}-0.ndjson": "ab"}


@pytest.mark.asyncio
async def test_job_status_expired(client: AsyncClient, auth_headers, install_services, job_repo):
    install_services()
    job = job_repo.add_job(
        status=JobStatus.COMPLETED.value,
        created_at=datetime.now(timezone.utc) - timedelta(hours=30),
    )

    response = await client.get(f"/api/v1/jobs/{job.id}", headers=auth_headers())

    assert response.status_code == 410
    assert "Expires" in response.headers


@pytest.mark.asyncio
async def test_job_status_failed(client: AsyncClient, auth_headers, install_services, job_repo):
    install_services()
    job = job_repo.add_job(status=JobStatus.FAILED.value)

    response = await client.get(f"/api/v1/jobs/{job.id}", headers=auth_headers())

    assert response.status_code == 500
    assert response.json()["resourceType"] == "OperationOutcome"


@pytest.mark.asyncio
async def test_job_status_unknown_or_malformed_id(client: AsyncClient, auth_headers, install_services):
    install_services()

    for raw in ("12345", "not-a-number"):
        response = await client.get(f"/api/v1/jobs/{raw}", headers=auth_headers())
        assert response.status_code == 500
        assert _diagnostic(response) == ("Database error", "Database error")


@pytest.mark.asyncio
async def test_job_status_other_organization(client: AsyncClient, auth_headers, install_services, job_repo):
    install_services()
    job = job_repo.add_job(status=JobStatus.COMPLETED.value)

    response = await client.get(f"/api/v1/jobs/{job.id}", headers=auth_headers(org_id=OTHER_ORG_ID))

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_serve_data_file(client: AsyncClient, auth_headers, install_services, job_repo, export_dirs):
    _, payload = export_dirs
    install_services()
    job = job_repo.add_job(status=JobStatus.COMPLETED.value)
    (payload / str(job.id)).mkdir()
    (payload / str(job.id) / f"{ORG_ID}-0.ndjson").write_bytes(b'{"a":1}\n')

    response = await client.get(f"/data/{job.id}/{ORG_ID}-0.ndjson", headers=auth_headers())

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/fhir+ndjson")
    assert response.content == b'{"a":1}\n'


@pytest.mark.asyncio
async def test_serve_data_rejects_other_organization_and_missing_files(
    client: AsyncClient, auth_headers, install_services, job_repo, export_dirs
):
    install_services()
    job = job_repo.add_job(status=JobStatus.COMPLETED.value)

    missing = await client.get(f"/data/{job.id}/{ORG_ID}-9.ndjson", headers=auth_headers())
    other = await client.get(f"/data/{job.id}/{ORG_ID}-0.ndjson", headers=auth_headers(org_id=OTHER_ORG_ID))
    unknown = await client.get(f"/data/777/{ORG_ID}-0.ndjson", headers=auth_headers())

    assert [missing.status_code, other.status_code, unknown.status_code] == [404, 404, 404]


@pytest.mark.asyncio
async def test_serve_data_after_expiry(client: AsyncClient, auth_headers, install_services, job_repo, export_dirs):
    install_services()
    job = job_repo.add_job(status=JobStatus.EXPIRED.value)

    response = await client.get(f"/data/{job.id}/{ORG_ID}-0.ndjson", headers=auth_headers())

    assert response.status_code == 410

