"""Tests for health endpoints."""

from fastapi.testclient import TestClient

from riskaccept_api.main import app

client = TestClient(app)


def test_health_check():
    """Test health endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "riskaccept-api"


def test_readiness_check():
    """Test readiness endpoint."""
    response = client.get("/ready")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"] is True


def test_root():
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "service" in data
    assert data["service"] == "Risk Acceptance API"


def test_correlation_id_echoed():
    """Correlation ID is propagated to the response."""
    response = client.get("/health", headers={"x-correlation-id": "abc-123"})
    assert response.headers["x-correlation-id"] == "abc-123"
    assert client.get("/health").headers["x-correlation-id"]


def test_metrics_exposed():
    """Prometheus metrics are mounted."""
    response = client.get("/metrics/")
    assert response.status_code == 200
    assert "riskaccept_transitions_total" in response.text


def test_unsafe_correlation_id_replaced():
    """Header values that are unsafe to log get a fresh id."""
    response = client.get("/health", headers={"x-correlation-id": "bad id with spaces"})
    assert response.headers["x-correlation-id"] != "bad id with spaces"
    assert len(response.headers["x-correlation-id"]) == 36
