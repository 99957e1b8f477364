"""
tests/conftest.py -- Shared test fixtures for ReviewDesk integration tests.

This module provides:
  - make_test_stores(): isolated in-memory DBs for users, review and sales
  - make_cache(): a KeyedCache over fakeredis
  - FakeMailer: records OTP and sales e-mails instead of speaking SMTP
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus an admin JWT for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any auth module import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import fakeredis
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from cache.store import KeyedCache
from review.store import ReviewStore
from sales.store import SalesStore

ADMIN_PASSWORD = "testpass123"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FakeMailer:
    """Stands in for notify.mailer.Mailer; keeps every OTP and sales document it was asked to send."""

    def __init__(self, configured: bool = True) -> None:
        self.configured = configured
        self.sent: list[dict] = []
        self.documents: list[dict] = []
        self.fail_with: Exception | None = None

    def is_configured(self) -> bool:
        return self.configured

    def send_otp(self, to: str, project_title: str, code: str, expiry_minutes: int) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "project_title": project_title, "code": code, "expiry_minutes": expiry_minutes})

    def send_sales_document(self, to: str, doc_label: str, doc_number: str, tracking_url: str, **context) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.documents.append(
            {"to": to, "doc_label": doc_label, "doc_number": doc_number, "tracking_url": tracking_url, **context}
        )

    def last_code_for(self, email: str) -> str | None:
        for msg in reversed(self.sent):
            if msg["to"] == email:
                return msg["code"]
        return None


def make_cache() -> KeyedCache:
    return KeyedCache(fakeredis.FakeRedis(decode_responses=True))


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_test_stores(db_suffix: str) -> tuple[UserStore, ReviewStore, SalesStore]:
    """Create isolated named shared-memory SQLite stores.

    Args:
        db_suffix: Unique string appended to the DB names so test modules
                   don't share state.
    """

    def url(name: str) -> str:
        return f"sqlite:///file:test_{name}_{db_suffix}?mode=memory&cache=shared&uri=true"

    return UserStore(db_url=url("auth")), ReviewStore(db_url=url("review")), SalesStore(db_url=url("sales"))


def _patch_lifespan(user_store: UserStore, review: ReviewStore, sales: SalesStore, cache: KeyedCache, mailer):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.review = review
        app.state.sales = sales
        app.state.cache = cache
        app.state.mailer = mailer
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_client_state(request):
    """Reset rate limits and drop cookies between tests.

    Route limits are per client IP and TestClient always uses the same one.
    The module-scoped client would otherwise carry share and auth cookies
    from one test into the next.
    """
    limiter.reset()
    yield
    if "api_client" in request.fixturenames:
        request.getfixturevalue("api_client")[0].cookies.clear()


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers against isolated in-memory stores, a
    fakeredis cache and a FakeMailer (client.app.state.mailer).
    """
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    user_store, review, sales = make_test_stores(suffix)

    uid = user_store.create_user(
        User(
            email="admin@example.com",
            username="testadmin",
            hashed_password=hash_password(ADMIN_PASSWORD),
            role="admin",
        )
    )
    token = create_access_token(user_store.get_by_id(uid), expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, review, sales, make_cache(), FakeMailer())

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, uid

    sales.close()
    review.close()
    user_store.close()


@pytest.fixture
def auth_headers(api_client) -> dict[str, str]:
    _, token, _ = api_client
    return {"Authorization": f"Bearer {token}"}
