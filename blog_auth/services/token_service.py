"""Signed, time-limited access and refresh tokens (JWT)."""

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from uuid import uuid4

import jwt
import structlog

from blog_auth.config import get_settings
from blog_auth.models.user import TokenClaims, TokenPair

logger = structlog.get_logger(__name__)

# Constants
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
REQUIRED_CLAIMS = ["sub", "email", "username", "type", "jti", "iat", "exp"]


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpiredError(TokenError):
    """The token signature is valid but its exp has passed."""


class TokenMalformedError(TokenError):
    """The token cannot be decoded or is missing required claims."""


class TokenSignatureError(TokenError):
    """The token was not signed with our secret."""


class TokenTypeError(TokenError):
    """An access token was presented where a refresh token was expected, or vice versa."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Issues and verifies HS256 JWTs.

    The issuer is stateless: revocation is enforced by the auth service
    comparing refresh tokens against the stored hash, never here.
    """

    def __init__(
        self,
        secret: Optional[str] = None,
        access_ttl: Optional[timedelta] = None,
        refresh_ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        settings = get_settings()
        self.secret = secret or settings.jwt_secret
        self.access_ttl = access_ttl or timedelta(
            minutes=settings.access_token_expire_minutes
        )
        self.refresh_ttl = refresh_ttl or timedelta(
            days=settings.refresh_token_expire_days
        )
        self._clock = clock

    def _issue(self, claims: TokenClaims, token_type: str, ttl: timedelta) -> str:
        now = self._clock()
        payload = {
            "sub": str(claims.sub),
            "email": claims.email,
            "username": claims.username,
            "type": token_type,
            "jti": uuid4().hex,
            "iat": now,
            "exp": now + ttl,
        }
        token = jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)
        logger.debug(
            "token_issued",
            user_id=claims.sub,
            token_type=token_type,
            expires_seconds=int(ttl.total_seconds()),
        )
        return token

    def issue_access_token(self, claims: TokenClaims) -> str:
        """Create a short-lived access token (default 15 minutes)."""
        return self._issue(claims, ACCESS_TOKEN_TYPE, self.access_ttl)

    def issue_refresh_token(self, claims: TokenClaims) -> str:
        """Create a long-lived refresh token (default 7 days)."""
        return self._issue(claims, REFRESH_TOKEN_TYPE, self.refresh_ttl)

    def issue_pair(self, claims: TokenClaims) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(claims),
            refresh_token=self.issue_refresh_token(claims),
        )

    def decode(self, token: str) -> dict:
        """Decode and verify a token, returning the raw payload.

        Raises:
            TokenExpiredError: If exp has passed
            TokenSignatureError: If the signature does not match
            TokenMalformedError: If the token is not a JWT or lacks claims
        """
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidSignatureError:
            raise TokenSignatureError("Token signature is invalid")
        except jwt.InvalidTokenError as e:
            raise TokenMalformedError(f"Malformed token: {e}")

    def verify(self, token: str, expected_type: Optional[str] = None) -> TokenClaims:
        """Verify a token and return its identity claims.

        Args:
            token: Encoded JWT string
            expected_type: "access" or "refresh"; None accepts either

        Returns:
            TokenClaims with sub, email, username

        Raises:
            TokenError subclass describing why the token was rejected
        """
        payload = self.decode(token)

        if expected_type is not None and payload["type"] != expected_type:
            raise TokenTypeError(
                f"Expected {expected_type} token, got {payload['type']}"
            )

        try:
            return TokenClaims(
                sub=int(payload["sub"]),
                email=payload["email"],
                username=payload["username"],
            )
        except (TypeError, ValueError):
            raise TokenMalformedError("Token subject is not a user id")
