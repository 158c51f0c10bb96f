"""Credential store interface and the in-process implementation.

The auth service reads and writes user records only through the
CredentialStore protocol. Lookups return None for a missing user; only
genuine failures raise.
"""

import threading
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Protocol

import structlog

from blog_auth.models.user import UserRecord
from blog_auth.services.errors import DuplicateUserError, UserNotFoundError

logger = structlog.get_logger(__name__)

# Fields update_fields() may write
UPDATABLE_FIELDS = frozenset(
    {
        "password_hash",
        "refresh_token_hash",
        "reset_token",
        "reset_token_expires_at",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def check_updatable(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not updatable: {sorted(unknown)}")


class CredentialStore(Protocol):
    """Narrow persistence interface for user credentials."""

    async def find_by_email(self, email: str) -> Optional[UserRecord]: ...

    async def find_by_username_or_email(
        self, username: str, email: str
    ) -> Optional[UserRecord]: ...

    async def find_by_id(self, user_id: int) -> Optional[UserRecord]: ...

    async def find_by_reset_token(self, token: str) -> Optional[UserRecord]: ...

    async def create(
        self, username: str, email: str, password_hash: str
    ) -> UserRecord: ...

    async def update_fields(
        self,
        user_id: int,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """Apply ``fields`` atomically.

        When ``expected`` is given the update only applies if every listed
        field still holds the expected value; returns False otherwise.

        Raises:
            UserNotFoundError: If no user has this id
        """
        ...

    async def close(self) -> None: ...


class InMemoryCredentialStore:
    """Dict-backed store for tests and single-process development.

    Every method body runs under one lock without awaiting, so each call
    is atomic with respect to other requests.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._users: dict[int, UserRecord] = {}
        self._next_id = 1
        self._lock = threading.Lock()
        self._clock = clock

    def _find(self, predicate) -> Optional[UserRecord]:
        with self._lock:
            for user in self._users.values():
                if predicate(user):
                    return user.model_copy()
        return None

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        return self._find(lambda u: u.email == email)

    async def find_by_username_or_email(
        self, username: str, email: str
    ) -> Optional[UserRecord]:
        return self._find(lambda u: u.username == username or u.email == email)

    async def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    async def find_by_reset_token(self, token: str) -> Optional[UserRecord]:
        return self._find(lambda u: u.reset_token is not None and u.reset_token == token)

    async def create(self, username: str, email: str, password_hash: str) -> UserRecord:
        with self._lock:
            for user in self._users.values():
                if user.username == username:
                    raise DuplicateUserError("username")
                if user.email == email:
                    raise DuplicateUserError("email")

            now = self._clock()
            user = UserRecord(
                id=self._next_id,
                username=username,
                email=email,
                password_hash=password_hash,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            self._next_id += 1

        logger.debug("memory_store_user_created", user_id=user.id)
        return user.model_copy()

    async def update_fields(
        self,
        user_id: int,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        check_updatable(fields)
        with self._lock:
            user = self._users.get(user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            if expected:
                for name, value in expected.items():
                    if getattr(user, name) != value:
                        return False

            self._users[user_id] = user.model_copy(
                update={**fields, "updated_at": self._clock()}
            )
        return True

    async def close(self) -> None:
        return None
