"""Exception types raised by the auth services.

AuthError is the single failure type the orchestrator raises. Callers
branch on ``exc.kind`` rather than on exception subclasses; the HTTP layer
maps each kind to a status code.
"""

from enum import Enum
from typing import Optional


class AuthErrorKind(str, Enum):
    """Stable failure kinds surfaced by AuthService operations."""

    CONFLICT = "conflict"
    INVALID_CREDENTIALS = "invalid_credentials"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_MALFORMED = "token_malformed"
    INVALID_TOKEN = "invalid_token"
    INVALID_RESET_TOKEN = "invalid_reset_token"


# HTTP status for each failure kind
STATUS_BY_KIND = {
    AuthErrorKind.CONFLICT: 409,
    AuthErrorKind.INVALID_CREDENTIALS: 401,
    AuthErrorKind.TOKEN_EXPIRED: 401,
    AuthErrorKind.TOKEN_MALFORMED: 401,
    AuthErrorKind.INVALID_TOKEN: 401,
    AuthErrorKind.INVALID_RESET_TOKEN: 400,
}


class AuthError(Exception):
    """An expected, user-facing auth failure."""

    def __init__(self, kind: AuthErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    @property
    def is_credential_failure(self) -> bool:
        """True for every kind that means "these credentials are no good"."""
        return self.kind in (
            AuthErrorKind.INVALID_CREDENTIALS,
            AuthErrorKind.TOKEN_EXPIRED,
            AuthErrorKind.TOKEN_MALFORMED,
            AuthErrorKind.INVALID_TOKEN,
        )

    def __repr__(self) -> str:
        return f"AuthError({self.kind.value!r}, {self.message!r})"


class StoreError(Exception):
    """Base class for credential store failures."""


class StoreUnavailableError(StoreError):
    """The backing store could not be reached or failed mid-call."""


class UserNotFoundError(StoreError):
    """An update targeted a user id that does not exist."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class DuplicateUserError(StoreError):
    """A create collided with an existing username or email."""

    def __init__(self, field: Optional[str] = None) -> None:
        super().__init__(f"Duplicate {field or 'username or email'}")
        self.field = field


class RateLimitExceeded(Exception):
    """Raised by the abuse guard when a request must be rejected."""

    def __init__(self, decision) -> None:
        super().__init__(decision.message)
        self.decision = decision
