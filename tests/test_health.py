"""
tests/test_health.py -- Integration tests for GET /health.

Covers:
  - 200 response with status, version, and components fields
  - components.database reports 'ok' against the test store
  - No authentication required
"""

from __future__ import annotations


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, _token, _ = api_client
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert "version" in data
    assert data["components"]["app"] == "ok"
    assert data["components"]["database"] == "ok"


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    resp = client.get("/health", headers={})
    assert resp.status_code == 200


def test_unknown_route_uses_error_envelope(api_client):
    """Framework 404s come back in the same {"error": {...}} envelope."""
    client, _, _ = api_client
    resp = client.get("/trpc/doesNotExist")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "http_404"
