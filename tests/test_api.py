"""
API tests

Runs the FastAPI app against a real analysis service backed by the
in-memory test database and fake providers.
"""

import pytest
from fastapi.testclient import TestClient

from portfolio_ai.main import create_app

from conftest import FakeContentProvider


@pytest.fixture
def service(make_service):
    return make_service(FakeContentProvider())


@pytest.fixture
def client(service, test_settings):
    app = create_app(service=service, settings=test_settings)
    with TestClient(app) as test_client:
        yield test_client


def test_start_portfolio_analysis(client, seed):
    portfolio = seed.portfolio()

    response = client.post(f"/analysis/portfolios/{portfolio.id}")

    assert response.status_code == 202
    job_id = response.json()["job_id"]

    status_response = client.get(f"/analysis/jobs/{job_id}")
    assert status_response.status_code == 200
    assert status_response.json()["portfolio_id"] == portfolio.id


def test_start_for_missing_portfolio_is_404(client):
    response = client.post("/analysis/portfolios/999")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


def test_start_while_running_is_409(client, seed, service):
    portfolio = seed.portfolio()
    service.tracker.create(portfolio_id=portfolio.id)

    response = client.post(f"/analysis/portfolios/{portfolio.id}")

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "ANALYSIS_NOT_ALLOWED"
    assert error["user_message"] == "Analysis is already in progress for this portfolio."


def test_eligibility(client, seed):
    portfolio = seed.portfolio()

    response = client.get(f"/analysis/portfolios/{portfolio.id}/eligibility")

    assert response.status_code == 200
    assert response.json()["allowed"] is True


def test_start_project_analysis(client, seed):
    portfolio = seed.portfolio()
    project = seed.project(portfolio.id)

    response = client.post(f"/analysis/projects/{project.id}")

    assert response.status_code == 202
    assert response.json()["job_id"]


def test_unknown_job_is_404(client):
    response = client.get("/analysis/jobs/not-a-job")

    assert response.status_code == 404


def test_portfolio_results(client, seed):
    portfolio = seed.portfolio()

    response = client.get(f"/analysis/portfolios/{portfolio.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["has_analysis"] is False
    assert body["analysis_status"] == "pending"


def test_invalid_path_parameter_is_422(client):
    response = client.get("/analysis/portfolios/not-a-number")

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert set(body["rate_limits"]) == {"image", "video", "text"}


def test_prometheus_endpoint(client):
    response = client.get("/metrics/prometheus")

    assert response.status_code == 200
    assert "portfolio_ai_build" in response.text


def test_request_id_header(client):
    generated = client.get("/health")
    echoed = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert len(generated.headers["X-Request-ID"]) == 36
    assert echoed.headers["X-Request-ID"] == "req-123"
