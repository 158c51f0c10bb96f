"""Single-use password reset tokens."""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from blog_auth.config import get_settings
from blog_auth.models.user import ResetToken

RESET_TOKEN_BYTES = 32  # 256 bits of entropy


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResetTokenGenerator:
    """Generates unpredictable reset tokens with a fixed lifetime."""

    def __init__(
        self,
        ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ttl = ttl or timedelta(minutes=get_settings().reset_token_expire_minutes)
        self._clock = clock

    def generate(self) -> ResetToken:
        """Return a 64-char hex token and the moment it expires."""
        return ResetToken(
            token=secrets.token_hex(RESET_TOKEN_BYTES),
            expires_at=self._clock() + self.ttl,
        )
