"""Pytest configuration and fixtures."""

import os
from datetime import datetime, timezone
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment variables before importing app
os.environ.setdefault("CREDENTIAL_STORE_BACKEND", "memory")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-jwt-unit-tests-0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("EMAIL_ENABLED", "false")

from blog_auth.services.auth_service import AuthService
from blog_auth.services.credential_store import InMemoryCredentialStore
from blog_auth.services.hashing_service import SecretHasher
from blog_auth.services.token_service import TokenIssuer

JWT_SECRET = os.environ["JWT_SECRET"]


class FakeClock:
    """Settable clock for code that takes a ``clock`` callable."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def store() -> InMemoryCredentialStore:
    """Empty in-memory credential store."""
    return InMemoryCredentialStore()


@pytest.fixture
def hasher() -> SecretHasher:
    """bcrypt hasher at the minimum cost factor for fast tests."""
    return SecretHasher(rounds=4)


@pytest.fixture
def token_issuer() -> TokenIssuer:
    """Token issuer with a deterministic secret."""
    return TokenIssuer(secret=JWT_SECRET)


@pytest.fixture
def mock_email() -> MagicMock:
    """Email collaborator that records calls instead of sending."""
    email = MagicMock()
    email.send_password_reset_email = AsyncMock(return_value=True)
    email.send_password_changed_email = AsyncMock(return_value=True)
    return email


@pytest.fixture
def auth_service(store, hasher, token_issuer, mock_email) -> AuthService:
    """AuthService wired to the in-memory store and a mocked email service."""
    return AuthService(
        store=store,
        hasher=hasher,
        tokens=token_issuer,
        email=mock_email,
    )


@pytest.fixture
def client() -> Generator:
    """TestClient running the full app lifespan on in-memory backends."""
    from fastapi.testclient import TestClient

    from blog_auth.main import app

    with TestClient(app) as tc:
        yield tc
