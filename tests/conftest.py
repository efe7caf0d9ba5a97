"""
tests/conftest.py -- Shared fixtures for the auth test suite.

This module provides:
  - settings: Settings with fixed secrets and bcrypt cost 4 (fast tests)
  - clock: a controllable UTC clock injected into the engine and registry
  - store / registry / engine / accounts: isolated in-memory components
  - notifier: records password-reset deliveries instead of sending them
  - api_client: TestClient over the real app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures use plain :memory:, which SQLAlchemy pins to one
connection per thread.

DEBUG and RATE_LIMIT_ENABLED must be set before any api/ import:
api/limiter.py calls get_settings() at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

# Set before any api/ or core/ import so get_settings() auto-generates
# secrets and the limiter starts disabled.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.accounts import AccountService
from auth.engine import AuthEngine
from auth.models import Organization
from auth.passwords import PasswordHasher
from auth.sessions import SessionRegistry
from auth.store import CredentialStore
from core.config import Settings

ACCESS_SECRET = "access-secret-for-tests-0123456789abcdef"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789abcdef"


class FakeClock:
    """Callable UTC clock that only moves when told to.

    Starts at the real current time so tokens it stamps are also valid for
    python-jose, which checks exp against the wall clock.
    """

    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple] = []

    def send_password_reset(self, account, token, expires_at) -> None:
        self.sent.append((account, token, expires_at))


def make_settings(**overrides) -> Settings:
    values = dict(
        debug=False,
        jwt_secret=ACCESS_SECRET,
        jwt_refresh_secret=REFRESH_SECRET,
        bcrypt_rounds=4,
        database_url="sqlite:///:memory:",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def acme() -> Organization:
    return Organization(name="Acme", email="contact@acme.test", phone="+212600000000", city="Casablanca")


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def registry(store: CredentialStore, clock: FakeClock) -> SessionRegistry:
    return SessionRegistry(store.engine, clock=clock)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine(store, registry, settings, hasher, notifier, clock) -> AuthEngine:
    return AuthEngine(store, registry, settings, hasher=hasher, notifier=notifier, clock=clock)


@pytest.fixture
def accounts(store, registry, settings, hasher) -> AccountService:
    return AccountService(store, registry, settings, hasher=hasher)


@pytest.fixture
def registered(engine: AuthEngine):
    """The Acme tenant registered with owner@acme.test / password123."""
    return engine.register(acme(), email="owner@acme.test", password="password123", full_name="Acme Owner")


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, settings: Settings):
    """Replace the real lifespan so the app runs against an isolated test DB."""

    @asynccontextmanager
    async def test_lifespan(app):
        hasher = PasswordHasher(settings.bcrypt_rounds)
        sessions = SessionRegistry(store.engine)
        app.state.store = store
        app.state.auth_engine = AuthEngine(store, sessions, settings, hasher=hasher, notifier=RecordingNotifier())
        app.state.account_service = AccountService(store, sessions, settings, hasher=hasher)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[TestClient, None, None]:
    """Yield a TestClient for the real app over a module-private shared-memory DB."""
    settings = make_settings()
    store = CredentialStore("sqlite:///file:test_auth_api?mode=memory&cache=shared&uri=true")
    app.router.lifespan_context = _patch_lifespan(store, settings)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    store.close()


@pytest.fixture
def make_org():
    """Factory for fresh Organization records; defaults to the Acme tenant."""

    def _make(name: str = "Acme") -> Organization:
        org = acme()
        org.name = name
        return org

    return _make
