"""
Integration tests for FastAPI middleware (CORS, correlation_id).
"""
import uuid

import pytest
from fastapi.testclient import TestClient

from servicehub.api.app import app

client = TestClient(app)


@pytest.mark.integration
def test_cors_headers_included():
    response = client.get("/health", headers={"Origin": "http://localhost:3000"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.integration
def test_cors_preflight_request():
    response = client.options(
        "/bookings",
        headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type,authorization",
        }
    )

    assert response.status_code == 200
    assert "access-control-allow-methods" in response.headers


@pytest.mark.integration
def test_cors_unknown_origin_not_allowed():
    response = client.get("/health", headers={"Origin": "http://evil.example.com"})

    assert "access-control-allow-origin" not in response.headers


@pytest.mark.integration
def test_correlation_id_generated():
    response = client.get("/health")

    correlation_id = response.headers["X-Correlation-ID"]
    try:
        uuid.UUID(correlation_id)
    except ValueError:
        pytest.fail(f"Correlation ID is not a valid UUID: {correlation_id}")


@pytest.mark.integration
def test_correlation_id_preserved():
    custom_correlation_id = str(uuid.uuid4())

    response = client.get("/health", headers={"X-Correlation-ID": custom_correlation_id})

    assert response.headers["X-Correlation-ID"] == custom_correlation_id


@pytest.mark.integration
def test_correlation_id_in_error_body():
    custom_correlation_id = str(uuid.uuid4())

    # No token: rejected before any database access
    response = client.get("/bookings", headers={"X-Correlation-ID": custom_correlation_id})

    assert response.status_code == 401
    assert response.headers["X-Correlation-ID"] == custom_correlation_id
    assert response.json()["correlation_id"] == custom_correlation_id
