"""
Unit tests for FastAPI application.
"""

import pytest
from fastapi.testclient import TestClient

from review_gateway.main import app


@pytest.fixture
def client():
    """Create a test client for the FastAPI application."""
    return TestClient(app)


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


def test_root_endpoint(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert "message" in data
    assert "version" in data
    assert data["docs"] == "/docs"


def test_webhook_route_registered(client):
    """Test that the webhook route is mounted."""
    paths = {getattr(route, "path", None) for route in app.routes}
    assert "/webhooks/{platform}" in paths
