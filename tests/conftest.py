"""
tests/conftest.py -- Shared test fixtures for authgate.

This module provides:
  - store: a fresh in-memory UserStore per test (unit tests)
  - secret: a fixed 64-char signing secret
  - api_client: TestClient over the real app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. The pool class is passed explicitly (StaticPool) rather
than left for SQLAlchemy to infer from mode=memory.

DEBUG and BCRYPT_ROUNDS must be set before any api/core import:
get_settings() is cached on first call, DEBUG lets it auto-generate a
JWT_SECRET, and 4 rounds keeps bcrypt fast in tests.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from api.main import app
from auth.store import UserStore

TEST_SECRET = "test-secret-" + "x" * 52
TEST_ROUNDS = 4


@pytest.fixture
def secret() -> str:
    return TEST_SECRET


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """In-memory UserStore with the cheapest bcrypt cost factor."""
    s = UserStore("sqlite:///:memory:", bcrypt_rounds=TEST_ROUNDS)
    yield s
    s.close()


def _patch_lifespan(user_store: UserStore, secret: str):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and secret into app.state so routes never touch
    the on-disk database or the environment's JWT_SECRET.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.jwt_secret = secret
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[tuple[TestClient, UserStore, str], None, None]:
    """Yield (client, user_store, secret) for API integration tests.

    One client and one database per test module. Tests that register users
    pick distinct usernames so they do not collide.
    """
    db_name = request.module.__name__.replace(".", "_")
    user_store = UserStore(
        f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true",
        bcrypt_rounds=TEST_ROUNDS,
        poolclass=StaticPool,
    )
    app.router.lifespan_context = _patch_lifespan(user_store, TEST_SECRET)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, user_store, TEST_SECRET

    user_store.close()
