"""PostgreSQL implementation of the credential store."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Mapping, Optional

import asyncpg
import structlog

from blog_auth.database import get_pool
from blog_auth.models.user import UserRecord
from blog_auth.services.credential_store import check_updatable
from blog_auth.services.errors import (
    DuplicateUserError,
    StoreUnavailableError,
    UserNotFoundError,
)

logger = structlog.get_logger(__name__)

USER_COLUMNS = (
    "id, username, email, password_hash, refresh_token_hash, "
    "reset_token, reset_token_expires_at, created_at, updated_at"
)


def _row_to_user(row) -> UserRecord:
    return UserRecord(**dict(row))


def _rows_affected(status: str) -> int:
    """Parse asyncpg's command status, e.g. "UPDATE 1"."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class PostgresCredentialStore:
    """Credential store backed by the ``users`` table.

    Every call runs as a single statement, so each update is atomic. The
    ``expected`` guard in update_fields() is pushed into the WHERE clause
    to give compare-and-swap semantics.
    """

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                yield conn
        except asyncpg.UniqueViolationError as e:
            constraint = e.constraint_name or ""
            field = "username" if "username" in constraint else (
                "email" if "email" in constraint else None
            )
            raise DuplicateUserError(field) from e
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            OSError,
            asyncio.TimeoutError,
            RuntimeError,
        ) as e:
            logger.error("credential_store_unavailable", error=str(e))
            raise StoreUnavailableError(str(e)) from e

    async def _fetch_one(self, query: str, *args) -> Optional[UserRecord]:
        async with self._connection() as conn:
            row = await conn.fetchrow(query, *args)
        return _row_to_user(row) if row is not None else None

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        return await self._fetch_one(
            f"SELECT {USER_COLUMNS} FROM users WHERE email = $1", email
        )

    async def find_by_username_or_email(
        self, username: str, email: str
    ) -> Optional[UserRecord]:
        return await self._fetch_one(
            f"SELECT {USER_COLUMNS} FROM users WHERE username = $1 OR email = $2 LIMIT 1",
            username,
            email,
        )

    async def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        return await self._fetch_one(
            f"SELECT {USER_COLUMNS} FROM users WHERE id = $1", user_id
        )

    async def find_by_reset_token(self, token: str) -> Optional[UserRecord]:
        return await self._fetch_one(
            f"SELECT {USER_COLUMNS} FROM users WHERE reset_token = $1", token
        )

    async def create(self, username: str, email: str, password_hash: str) -> UserRecord:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO users (username, email, password_hash, created_at, updated_at)
                VALUES ($1, $2, $3, NOW(), NOW())
                RETURNING {USER_COLUMNS}
                """,
                username,
                email,
                password_hash,
            )

        user = _row_to_user(row)
        logger.debug("postgres_store_user_created", user_id=user.id)
        return user

    async def update_fields(
        self,
        user_id: int,
        fields: Mapping[str, Any],
        expected: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        check_updatable(fields)
        if expected:
            check_updatable(expected)

        args: list[Any] = [user_id]
        assignments = []
        for name, value in fields.items():
            args.append(value)
            assignments.append(f"{name} = ${len(args)}")
        assignments.append("updated_at = NOW()")

        conditions = ["id = $1"]
        for name, value in (expected or {}).items():
            args.append(value)
            conditions.append(f"{name} IS NOT DISTINCT FROM ${len(args)}")

        query = (
            f"UPDATE users SET {', '.join(assignments)} "
            f"WHERE {' AND '.join(conditions)}"
        )

        async with self._connection() as conn:
            status = await conn.execute(query, *args)
            if _rows_affected(status) == 1:
                return True
            exists = await conn.fetchval("SELECT 1 FROM users WHERE id = $1", user_id)

        if not exists:
            raise UserNotFoundError(user_id)
        return False

    async def close(self) -> None:
        return None
