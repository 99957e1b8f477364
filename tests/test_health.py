"""
tests/test_health.py -- Integration tests for GET /api/v1/health.

Covers:
  - 200 response with status, version, and components fields
  - database and cache components report 'ok' against the test stores
  - email component reflects whether SMTP is configured
  - No authentication required
"""

from __future__ import annotations


def test_health_returns_200_with_components(api_client):
    """Health endpoint returns 200 with status, version, and components."""
    client, token, _ = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "version" in data
    assert data["components"]["database"] == "ok"
    assert data["components"]["cache"] == "ok"


def test_health_reports_email_state(api_client):
    client, _, _ = api_client
    mailer = client.app.state.mailer
    assert client.get("/api/v1/health").json()["components"]["email"] == "configured"
    mailer.configured = False
    try:
        assert client.get("/api/v1/health").json()["components"]["email"] == "disabled"
    finally:
        mailer.configured = True


def test_health_no_auth_required(api_client):
    """Health endpoint is accessible without any authentication headers."""
    client, _, _ = api_client
    resp = client.get("/api/v1/health", headers={})
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_docs_require_admin(api_client):
    client, token, _ = api_client
    assert client.get("/docs").status_code == 401
    assert client.get("/docs", headers={"Authorization": f"Bearer {token}"}).status_code == 200
