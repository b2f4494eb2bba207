"""
tests/conftest.py -- Shared test fixtures for OpsMind Auth.

This module provides:
  - RecordingMailer: captures (email, code, purpose) instead of sending mail
  - store / mailer / issuer / otp_manager / auth_service: unit-level fixtures
    over an isolated in-memory database
  - _patch_lifespan(): wires test collaborators into app.state, bypassing real startup
  - make_account: factory fixture inserting an account + role directly
  - api: TestClient harness with a seeded ADMIN account and its bearer token

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process. Each
fixture instance gets its own uuid-suffixed name, so tests never share rows.

Environment variables must be set before any api/auth/core import so that
get_settings() sees them on its first (cached) call: DEBUG auto-generates the
SECRET_KEY, ALLOWED_HOSTS admits TestClient's "testserver" host, and
ALLOWED_EMAIL_DOMAINS makes "org.edu" the organization domain.

bcrypt runs at cost 4 in tests. The production cost is asserted separately in
test_hashing.py.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import NamedTuple

# CRITICAL: Set before any auth/core import -- get_settings() is cached.
os.environ["DEBUG"] = "true"
os.environ["ALLOWED_HOSTS"] = "localhost,127.0.0.1,testserver"
os.environ["ALLOWED_EMAIL_DOMAINS"] = "org.edu"
os.environ["MAIL_BACKEND"] = "console"

import pytest
from fastapi.testclient import TestClient

import auth.hashing
from api.limiter import limiter
from api.main import app, configure_state
from auth.challenges import OTPManager
from auth.hashing import hash_secret
from auth.models import Role
from auth.service import AuthService
from auth.store import CredentialStore
from auth.tokens import TokenIssuer
from core.config import get_settings

auth.hashing.BCRYPT_ROUNDS = 4

# Rate limits are exercised by slowapi's own test suite; with them on, a
# module full of login calls from one TestClient IP would start failing.
limiter.enabled = False

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
ADMIN_EMAIL = "root@opsmind.com"
ADMIN_PASSWORD = "Admin@123456"
STRONG_PASSWORD = "Abc12345!"


# ---------------------------------------------------------------------------
# Test doubles and helpers
# ---------------------------------------------------------------------------


class RecordingMailer:
    """Mailer that records every code it is asked to deliver.

    Set fail=True to simulate a transport outage (send_otp returns False).
    """

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    def send_otp(self, email: str, code: str, purpose: str) -> bool:
        if self.fail:
            return False
        self.sent.append((email, code, purpose))
        return True

    def last_code(self, email: str, purpose: str | None = None) -> str:
        for sent_to, code, sent_purpose in reversed(self.sent):
            if sent_to == email and (purpose is None or sent_purpose == purpose):
                return code
        raise AssertionError(f"no OTP recorded for {email} ({purpose or 'any purpose'})")


def memory_db_url() -> str:
    return f"sqlite:///file:test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _make_account(
    store: CredentialStore,
    email: str,
    role: Role,
    password: str = STRONG_PASSWORD,
    verified: bool = True,
    active: bool = True,
):
    """Insert an account directly through the store, bypassing signup rules."""
    account = store.create_account(
        email=email,
        password_hash=hash_secret(password),
        first_name="Test",
        last_name="User",
        is_verified=verified,
        is_active=active,
    )
    store.assign_role(account.id, role)
    return store.find_account_with_roles(account_id=account.id)


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    credentials = CredentialStore(memory_db_url())
    yield credentials
    credentials.close()


@pytest.fixture
def make_account():
    """Factory fixture: make_account(store, email, role, password=..., verified=True, active=True)."""
    return _make_account


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TEST_SECRET, default_ttl_seconds=3600)


@pytest.fixture
def otp_manager(store: CredentialStore, mailer: RecordingMailer) -> OTPManager:
    return OTPManager(store, mailer, code_length=6, expiry_minutes=5)


@pytest.fixture
def auth_service(store: CredentialStore, otp_manager: OTPManager, issuer: TokenIssuer) -> AuthService:
    return AuthService(store, otp_manager, issuer, allowed_domains=["org.edu"], token_ttl_seconds=3600)


# ---------------------------------------------------------------------------
# HTTP harness
# ---------------------------------------------------------------------------


class ApiHarness(NamedTuple):
    client: TestClient
    store: CredentialStore
    mailer: RecordingMailer
    admin_token: str
    admin_id: str

    @property
    def admin_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.admin_token}"}


def _patch_lifespan(credentials: CredentialStore, mailer: RecordingMailer):
    """Return an async context manager that replaces the real lifespan.

    Runs the real configure_state() against the test store and recording
    mailer, so routes see the same service graph as production.

    The purge_task is a long-sleeping coroutine that keeps asyncio happy
    (a real asyncio.Task is required; MagicMock would fail on .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        configure_state(app, get_settings(), credentials, mailer)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for HTTP integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, middleware, and exception handlers against an
    isolated in-memory store. An ADMIN account is created before the client
    starts; its token is signed by the app's own TokenIssuer.
    """
    credentials = CredentialStore(memory_db_url())
    recording = RecordingMailer()
    admin = _make_account(credentials, ADMIN_EMAIL, Role.ADMIN, password=ADMIN_PASSWORD)

    app.router.lifespan_context = _patch_lifespan(credentials, recording)

    with TestClient(app, raise_server_exceptions=True) as client:
        token = app.state.token_issuer.issue(admin.id, admin.email, admin.roles)
        yield ApiHarness(client, credentials, recording, token, admin.id)

    credentials.close()
