"""Unit tests for TokenIssuer.

Covers access/refresh issuance, default lifetimes, and the three
verification failure modes.
"""

import os
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

from blog_auth.models.user import TokenClaims
from blog_auth.services.token_service import (
    JWT_ALGORITHM,
    TokenExpiredError,
    TokenIssuer,
    TokenMalformedError,
    TokenSignatureError,
    TokenTypeError,
)


JWT_SECRET = os.environ["JWT_SECRET"]
CLAIMS = TokenClaims(sub=42, email="alice@example.com", username="alice")


def _raw_token(**overrides) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "42",
        "email": "alice@example.com",
        "username": "alice",
        "type": "refresh",
        "jti": uuid4().hex,
        "iat": now,
        "exp": now + timedelta(minutes=5),
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


class TestIssue:
    """Tests for token creation."""

    def test_default_lifetimes(self):
        issuer = TokenIssuer(secret=JWT_SECRET)
        assert issuer.access_ttl == timedelta(minutes=15)
        assert issuer.refresh_ttl == timedelta(days=7)

    def test_access_token_expires_in_15_minutes(self, token_issuer):
        payload = token_issuer.decode(token_issuer.issue_access_token(CLAIMS))
        assert payload["exp"] - payload["iat"] == 15 * 60
        assert payload["type"] == "access"

    def test_refresh_token_expires_in_7_days(self, token_issuer):
        payload = token_issuer.decode(token_issuer.issue_refresh_token(CLAIMS))
        assert payload["exp"] - payload["iat"] == 7 * 24 * 3600
        assert payload["type"] == "refresh"

    def test_claims_round_trip(self, token_issuer):
        token = token_issuer.issue_access_token(CLAIMS)
        assert token_issuer.verify(token) == CLAIMS

    def test_subject_is_a_string_on_the_wire(self, token_issuer):
        payload = token_issuer.decode(token_issuer.issue_access_token(CLAIMS))
        assert payload["sub"] == "42"

    def test_same_second_tokens_differ(self, token_issuer):
        first = token_issuer.issue_pair(CLAIMS)
        second = token_issuer.issue_pair(CLAIMS)
        assert first.access_token != second.access_token
        assert first.refresh_token != second.refresh_token

    def test_custom_lifetime(self):
        issuer = TokenIssuer(secret=JWT_SECRET, access_ttl=timedelta(minutes=1))
        payload = issuer.decode(issuer.issue_access_token(CLAIMS))
        assert payload["exp"] - payload["iat"] == 60


class TestVerify:
    """Tests for verification failures."""

    def test_expired_token(self, token_issuer):
        now = datetime.now(timezone.utc)
        token = _raw_token(iat=now - timedelta(days=8), exp=now - timedelta(days=1))
        with pytest.raises(TokenExpiredError):
            token_issuer.verify(token)

    def test_wrong_secret(self, token_issuer):
        other = TokenIssuer(secret="a-completely-different-secret-value-xyz")
        with pytest.raises(TokenSignatureError):
            token_issuer.verify(other.issue_refresh_token(CLAIMS))

    def test_garbage_string(self, token_issuer):
        with pytest.raises(TokenMalformedError):
            token_issuer.verify("not.a.jwt")

    def test_missing_required_claim(self, token_issuer):
        with pytest.raises(TokenMalformedError):
            token_issuer.verify(_raw_token(jti=None))

    def test_non_numeric_subject(self, token_issuer):
        with pytest.raises(TokenMalformedError):
            token_issuer.verify(_raw_token(sub="alice"))

    def test_wrong_type(self, token_issuer):
        token = token_issuer.issue_access_token(CLAIMS)
        with pytest.raises(TokenTypeError):
            token_issuer.verify(token, expected_type="refresh")

    def test_expected_type_matches(self, token_issuer):
        token = token_issuer.issue_refresh_token(CLAIMS)
        assert token_issuer.verify(token, expected_type="refresh").sub == 42
