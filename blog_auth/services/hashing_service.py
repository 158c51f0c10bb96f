"""One-way hashing for passwords and refresh tokens."""

import asyncio
import hashlib

import bcrypt
import structlog

from blog_auth.config import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_ROUNDS = 10


class SecretHasher:
    """Salted bcrypt hashing with constant-time verification.

    bcrypt is CPU bound, so every call is pushed to a worker thread to keep
    the event loop free for other requests while a hash is computed.
    """

    def __init__(self, rounds: int | None = None):
        self.rounds = rounds if rounds is not None else get_settings().bcrypt_rounds
        # Fixed hash for timing equalisation when no real hash exists
        self._dummy_hash = bcrypt.hashpw(
            b"blog-auth-timing-dummy", bcrypt.gensalt(rounds=self.rounds)
        ).decode("utf-8")

    def _hash_sync(self, secret: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")

    def _verify_sync(self, secret: str, hashed: str) -> bool:
        try:
            return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            logger.warning("hash_verify_malformed_hash")
            return False

    async def hash(self, secret: str) -> str:
        """Hash a secret with a fresh salt.

        Args:
            secret: Plain-text secret (at most 72 bytes)

        Returns:
            Bcrypt hash string
        """
        return await asyncio.to_thread(self._hash_sync, secret)

    async def verify(self, secret: str, hashed: str) -> bool:
        """Check a secret against a bcrypt hash.

        Returns False for a mismatch and for a malformed stored hash.
        """
        return await asyncio.to_thread(self._verify_sync, secret, hashed)

    async def dummy_verify(self, secret: str) -> bool:
        """Spend the same work as verify() when there is nothing to compare."""
        await self.verify(secret, self._dummy_hash)
        return False

    # Refresh tokens are JWTs whose first 72 bytes are nearly constant, so
    # they are reduced to a SHA-256 digest before bcrypt sees them.

    @staticmethod
    def _token_digest(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    async def hash_token(self, token: str) -> str:
        """Hash a long token (e.g. a refresh JWT) for storage."""
        return await self.hash(self._token_digest(token))

    async def verify_token(self, token: str, hashed: str) -> bool:
        """Check a long token against a hash produced by hash_token()."""
        return await self.verify(self._token_digest(token), hashed)
