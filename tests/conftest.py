"""
tests/conftest.py -- Shared test fixtures for TokenRotor.

This module provides:
  - FakeClock / fake_clock: a controllable monotonic clock for store expiry
  - signer / store / manager: isolated credential components per test
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient plus the manager behind it, for route integration tests

The DEBUG env var must be set before any api/ or core/ import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError. The login
rate limit is raised so a module's worth of logins does not trip it.
"""

from __future__ import annotations

import asyncio
import os
import secrets
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

# CRITICAL: Set env before any core/api import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.manager import CredentialManager
from auth.store import InMemoryRefreshStore
from auth.tokens import TokenSigner
from auth.users import UserDirectory, hash_password

TEST_PASSWORDS = {
    "alice": "alice-pass-123",
    "bob": "bob-pass-123",
    "carol": "carol-pass-123",
    "root": "root-pass-123",
}


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock whose time only moves when told to."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def secret() -> str:
    return secrets.token_hex(32)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signer(secret: str) -> TokenSigner:
    return TokenSigner(secret, issuer="tokenrotor-test", audience="test-clients", ttl=timedelta(minutes=15))


@pytest.fixture
def store(fake_clock: FakeClock) -> InMemoryRefreshStore:
    return InMemoryRefreshStore(stripes=4, clock=fake_clock)


@pytest.fixture
def manager(signer: TokenSigner, store: InMemoryRefreshStore) -> CredentialManager:
    return CredentialManager(signer, store, refresh_ttl=timedelta(days=7))


# ---------------------------------------------------------------------------
# Integration fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(manager: CredentialManager, users: UserDirectory, admins: frozenset[str]):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can .cancel() a
    real asyncio.Task, as it does in production.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.manager = manager
        app.state.users = users
        app.state.admins = admins
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, CredentialManager], None, None]:
    """Yield (client, manager) for API integration tests.

    Users: alice, bob, carol (regular) and root (admin); passwords in
    TEST_PASSWORDS. The manager is exposed so tests can inspect the store.
    """
    users = UserDirectory({name: hash_password(pw) for name, pw in TEST_PASSWORDS.items()})
    manager = CredentialManager(
        TokenSigner(secrets.token_hex(32), issuer="tokenrotor", audience="tokenrotor-clients"),
        InMemoryRefreshStore(),
    )

    app.router.lifespan_context = _patch_lifespan(manager, users, frozenset({"root"}))

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, manager
