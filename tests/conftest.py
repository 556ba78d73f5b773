"""
tests/conftest.py -- Shared test fixtures for dogrun-auth.

This module provides:
  - engine: an isolated in-memory database with the full schema
  - services: stores and services wired to that engine, as the app wires them
  - api_client: TestClient whose lifespan is swapped for one using the test engine
  - row_count: counts the rows of a table, for "nothing was written" assertions

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any api/auth/core import:
  DEBUG=true              -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4         -- bcrypt minimum cost; keeps the suite fast
  RATE_LIMIT_ENABLED=false -- the suite logs in far more than 10 times a minute
  ALLOWED_HOSTS           -- TestClient sends Host: testserver
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from types import SimpleNamespace

# CRITICAL: Set env before any api/auth/core import so get_settings() sees it.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.pool import SingletonThreadPool

from accounts.provisioning import DogOwnerProvisioning, DogrunManagerProvisioning, OrganizationProvisioning
from accounts.store import AccountStore
from api.main import app, wire_services
from auth.passwords import CredentialHasher
from auth.service import LoginService, RevokeService
from auth.store import CredentialStore, SessionStore
from auth.tokens import TokenIssuer, TokenValidator
from core.config import get_settings
from core.database import create_db_engine, init_schema, metadata
from core.transaction import TransactionCoordinator

# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def _make_test_engine() -> Engine:
    """Create an isolated named shared-memory SQLite database with the schema.

    The uuid suffix keeps every test's database separate even though they
    all live in the same process. SingletonThreadPool is passed explicitly
    for mode=memory URIs.
    """
    url = f"sqlite:///file:test_dogrun_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    engine = create_db_engine(url, poolclass=SingletonThreadPool)
    init_schema(engine)
    return engine


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng = _make_test_engine()
    yield eng
    eng.dispose()


@pytest.fixture()
def row_count(engine: Engine) -> Callable[[str], int]:
    """Return a function counting the rows of a table in the test database."""

    def count(table_name: str) -> int:
        table = metadata.tables[table_name]
        with engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar() or 0

    return count


@pytest.fixture()
def services(engine: Engine) -> SimpleNamespace:
    """Stores and services built the same way wire_services() builds them."""
    settings = get_settings()
    sessions = SessionStore(engine)
    credentials = CredentialStore(engine)
    accounts = AccountStore(engine)
    hasher = CredentialHasher(rounds=settings.bcrypt_rounds)
    issuer = TokenIssuer(settings.secret_key, settings.token_expire_hours)
    coordinator = TransactionCoordinator(engine)
    return SimpleNamespace(
        engine=engine,
        sessions=sessions,
        credentials=credentials,
        accounts=accounts,
        hasher=hasher,
        issuer=issuer,
        coordinator=coordinator,
        validator=TokenValidator(settings.secret_key, sessions),
        login=LoginService(credentials, sessions, hasher, issuer),
        revoke=RevokeService(sessions),
        dog_owner=DogOwnerProvisioning(accounts, credentials, coordinator, hasher, issuer),
        dogrun_manager=DogrunManagerProvisioning(accounts, credentials, coordinator, hasher, issuer),
        organization=OrganizationProvisioning(accounts, credentials, coordinator, hasher, issuer),
    )


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires services against the test engine so TestClient routes never touch
    the database file named by DATABASE_URL.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, engine, get_settings())
        yield

    return test_lifespan


@pytest.fixture()
def api_client(engine: Engine) -> Generator[TestClient, None, None]:
    """Yield a TestClient running the real app against the test engine.

    Routes, middleware, dependencies and exception handlers are all the real
    ones; only the lifespan is swapped.
    """
    original = app.router.lifespan_context
    app.router.lifespan_context = _patch_lifespan(engine)
    try:
        with TestClient(app, raise_server_exceptions=True) as client:
            yield client
    finally:
        app.router.lifespan_context = original
