"""
tests/conftest.py -- Shared test fixtures.

This module provides:
  - clock / store / sender / service: unit-test fixtures over a private in-memory DB
  - _make_test_store(): named shared-memory DB for TestClient tests
  - _patch_lifespan(): wires test objects into app.state, bypassing real startup
  - api_client: TestClient plus an admin token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
TestClient because it runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

ENVIRONMENT and JWT_SECRET must be set before any api/ import so the cached
Settings built at import time match the test environment.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before importing api.main, which reads get_settings() at import.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("JWT_SECRET", "test-secret-key-0123456789abcdef-0123456789")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Role, User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec, hash_password
from notify.mailer import Mailer
from tests.helpers import FrozenClock, RecordingSender, make_config, make_mailer

ADMIN_EMAIL = "testadmin@example.com"
ADMIN_PASSWORD = "testpass123"

# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest.fixture
def service(store: UserStore, clock: FrozenClock, sender: RecordingSender) -> AuthService:
    config = make_config(clock=clock)
    return AuthService(store, TokenCodec(config), config, make_mailer(sender))


# ---------------------------------------------------------------------------
# API integration helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return UserStore(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(store: UserStore, service: AuthService, mailer: Mailer):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test objects into app.state so TestClient routes see the
    isolated test DB and the recording mailer rather than real resources.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.mailer = mailer
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, str, str], None, None]:
    """Yield (client, admin_token, admin_id) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory store. Sent emails
    are available as client.app.state.mailer.sender.sent.
    """
    store = _make_test_store(f"api_{uuid.uuid4().hex[:8]}")
    mailer = make_mailer(RecordingSender())
    config = make_config()
    service = AuthService(store, TokenCodec(config), config, mailer)

    admin = store.create_user(User(email=ADMIN_EMAIL, role=Role.ADMIN, hashed_password=hash_password(ADMIN_PASSWORD)))
    token = service.codec.issue(admin)

    app.router.lifespan_context = _patch_lifespan(store, service, mailer)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token, admin.id

    store.close()
