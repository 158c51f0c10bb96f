"""Unit tests for PostgresCredentialStore.

Runs the store against a mocked asyncpg pool.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import asyncpg
import pytest

from blog_auth.services.errors import (
    DuplicateUserError,
    StoreUnavailableError,
    UserNotFoundError,
)
from blog_auth.services.postgres_store import PostgresCredentialStore, _rows_affected


# ---------------------------------------------------------------------------
# asyncpg mock helpers
# ---------------------------------------------------------------------------

class MockConnection:
    def __init__(self):
        self.execute = AsyncMock()
        self.fetchrow = AsyncMock()
        self.fetchval = AsyncMock()


class MockPool:
    def __init__(self, conn: MockConnection):
        self._conn = conn

    def acquire(self):
        return _MockPoolAcquire(self._conn)


class _MockPoolAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def conn():
    connection = MockConnection()
    with patch(
        "blog_auth.services.postgres_store.get_pool",
        new=AsyncMock(return_value=MockPool(connection)),
    ):
        yield connection


@pytest.fixture
def pg_store():
    return PostgresCredentialStore()


def _user_row(**overrides):
    now = datetime.now(timezone.utc)
    row = {
        "id": 1,
        "username": "alice",
        "email": "a@x.com",
        "password_hash": "$2b$10$hash",
        "refresh_token_hash": None,
        "reset_token": None,
        "reset_token_expires_at": None,
        "created_at": now,
        "updated_at": now,
    }
    row.update(overrides)
    return row


class TestLookups:
    async def test_find_by_email(self, pg_store, conn):
        conn.fetchrow.return_value = _user_row()
        user = await pg_store.find_by_email("a@x.com")

        assert user.id == 1
        assert user.username == "alice"
        query, arg = conn.fetchrow.call_args.args
        assert "WHERE email = $1" in query
        assert arg == "a@x.com"

    async def test_find_missing_returns_none(self, pg_store, conn):
        conn.fetchrow.return_value = None
        assert await pg_store.find_by_id(42) is None

    async def test_find_by_username_or_email(self, pg_store, conn):
        conn.fetchrow.return_value = _user_row()
        await pg_store.find_by_username_or_email("alice", "a@x.com")
        args = conn.fetchrow.call_args.args
        assert "username = $1 OR email = $2" in args[0]
        assert args[1:] == ("alice", "a@x.com")

    async def test_find_by_reset_token(self, pg_store, conn):
        conn.fetchrow.return_value = _user_row(reset_token="tok")
        user = await pg_store.find_by_reset_token("tok")
        assert user.reset_token == "tok"


class TestCreate:
    async def test_returns_inserted_user(self, pg_store, conn):
        conn.fetchrow.return_value = _user_row(id=7)
        user = await pg_store.create("alice", "a@x.com", "$2b$10$hash")

        assert user.id == 7
        assert "INSERT INTO users" in conn.fetchrow.call_args.args[0]

    async def test_unique_violation_maps_to_duplicate(self, pg_store, conn):
        err = asyncpg.UniqueViolationError("duplicate key")
        err.constraint_name = "users_email_key"
        conn.fetchrow.side_effect = err

        with pytest.raises(DuplicateUserError) as exc_info:
            await pg_store.create("alice", "a@x.com", "hash")
        assert exc_info.value.field == "email"

    async def test_connection_failure_maps_to_unavailable(self, pg_store):
        with patch(
            "blog_auth.services.postgres_store.get_pool",
            new=AsyncMock(side_effect=OSError("connection refused")),
        ):
            with pytest.raises(StoreUnavailableError):
                await pg_store.find_by_email("a@x.com")


class TestUpdateFields:
    async def test_plain_update(self, pg_store, conn):
        conn.execute.return_value = "UPDATE 1"

        assert await pg_store.update_fields(1, {"refresh_token_hash": "h"}) is True
        query, *args = conn.execute.call_args.args
        assert "refresh_token_hash = $2" in query
        assert "updated_at = NOW()" in query
        assert query.endswith("WHERE id = $1")
        assert args == [1, "h"]

    async def test_expected_goes_into_where_clause(self, pg_store, conn):
        conn.execute.return_value = "UPDATE 1"

        await pg_store.update_fields(
            1, {"refresh_token_hash": "new"}, expected={"refresh_token_hash": "old"}
        )
        query, *args = conn.execute.call_args.args
        assert "refresh_token_hash IS NOT DISTINCT FROM $3" in query
        assert args == [1, "new", "old"]

    async def test_lost_swap_returns_false(self, pg_store, conn):
        conn.execute.return_value = "UPDATE 0"
        conn.fetchval.return_value = 1

        swapped = await pg_store.update_fields(
            1, {"refresh_token_hash": "new"}, expected={"refresh_token_hash": "old"}
        )
        assert swapped is False

    async def test_missing_user_raises(self, pg_store, conn):
        conn.execute.return_value = "UPDATE 0"
        conn.fetchval.return_value = None

        with pytest.raises(UserNotFoundError):
            await pg_store.update_fields(99, {"refresh_token_hash": None})

    async def test_rejects_unknown_columns(self, pg_store, conn):
        with pytest.raises(ValueError):
            await pg_store.update_fields(1, {"id": 2})
        conn.execute.assert_not_awaited()


def test_rows_affected():
    assert _rows_affected("UPDATE 1") == 1
    assert _rows_affected("UPDATE 0") == 0
    assert _rows_affected("") == 0
