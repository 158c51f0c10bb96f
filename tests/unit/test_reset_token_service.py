"""Unit tests for ResetTokenGenerator."""

import re
from datetime import datetime, timedelta, timezone

from blog_auth.services.reset_token_service import ResetTokenGenerator


def test_token_is_64_hex_chars():
    reset = ResetTokenGenerator().generate()
    assert re.fullmatch(r"[0-9a-f]{64}", reset.token)


def test_expires_exactly_one_hour_after_generation():
    now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
    reset = ResetTokenGenerator(clock=lambda: now).generate()
    assert reset.expires_at == now + timedelta(hours=1)


def test_tokens_are_not_reused():
    generator = ResetTokenGenerator()
    tokens = {generator.generate().token for _ in range(50)}
    assert len(tokens) == 50


def test_custom_ttl():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    reset = ResetTokenGenerator(ttl=timedelta(minutes=5), clock=lambda: now).generate()
    assert reset.expires_at == now + timedelta(minutes=5)
