"""Unit tests for AbuseGuard and the in-memory rate-limit backend."""

import pytest

from blog_auth.services.abuse_guard import (
    BLACKLISTED_MESSAGE,
    AbuseGuard,
    InMemoryRateLimitBackend,
    resolve_tracker,
)
from blog_auth.services.errors import RateLimitExceeded


class FakeMonotonic:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeMonotonic()


@pytest.fixture
def guard(clock):
    return AbuseGuard(
        InMemoryRateLimitBackend(clock=clock),
        limits={"login": (5, 60), "forgot_password": (3, 60), "reset_password": (5, 60)},
        denied={"192.168.1.100", "10.0.0.50"},
    )


class TestResolveTracker:
    def test_prefers_ip(self):
        assert resolve_tracker("1.2.3.4", 7) == "1.2.3.4"

    def test_falls_back_to_user_id(self):
        assert resolve_tracker(None, 7) == "7"

    def test_falls_back_to_unknown(self):
        assert resolve_tracker(None, None) == "unknown"
        assert resolve_tracker("", None) == "unknown"


class TestSlidingWindow:
    async def test_sixth_login_in_a_minute_is_rejected(self, guard):
        for attempt in range(5):
            decision = await guard.check("1.2.3.4", "login")
            assert decision.allowed, f"attempt {attempt + 1} should pass"

        decision = await guard.check("1.2.3.4", "login")
        assert decision.allowed is False
        assert decision.reason == "rate_limited"
        assert decision.limit == 5
        assert decision.retry_after == 60

    async def test_remaining_counts_down(self, guard):
        remaining = [(await guard.check("1.2.3.4", "login")).remaining for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

    async def test_forgot_password_limit_is_three(self, guard):
        results = [(await guard.check("1.2.3.4", "forgot_password")).allowed for _ in range(4)]
        assert results == [True, True, True, False]

    async def test_window_slides(self, guard, clock):
        for _ in range(5):
            await guard.check("1.2.3.4", "login")
            clock.now += 10  # requests at t=0, 10, 20, 30, 40

        # t=50: window still holds all five
        assert (await guard.check("1.2.3.4", "login")).allowed is False

        # t=61: the request made at t=0 has left the window
        clock.now = 1061.0
        assert (await guard.check("1.2.3.4", "login")).allowed is True
        assert (await guard.check("1.2.3.4", "login")).allowed is False

    async def test_retry_after_points_at_oldest_hit(self, guard, clock):
        for _ in range(5):
            await guard.check("1.2.3.4", "login")
        clock.now += 45
        assert (await guard.check("1.2.3.4", "login")).retry_after == 15

    async def test_trackers_are_independent(self, guard):
        for _ in range(5):
            await guard.check("1.2.3.4", "login")
        assert (await guard.check("5.6.7.8", "login")).allowed is True

    async def test_endpoints_are_independent(self, guard):
        for _ in range(5):
            await guard.check("1.2.3.4", "login")
        assert (await guard.check("1.2.3.4", "reset_password")).allowed is True

    async def test_unknown_endpoint(self, guard):
        with pytest.raises(ValueError):
            await guard.check("1.2.3.4", "register")

    async def test_reset_clears_counters(self, guard):
        for _ in range(5):
            await guard.check("1.2.3.4", "login")
        await guard.backend.reset()
        assert (await guard.check("1.2.3.4", "login")).allowed is True


class TestInMemoryBackend:
    async def test_idle_keys_expire_after_window(self, clock):
        backend = InMemoryRateLimitBackend(clock=clock)
        for i in range(1000):
            await backend.hit(f"login:10.0.{i // 256}.{i % 256}", limit=5, window_seconds=60)
        assert len(backend._hits) == 1000

        clock.now += 3600
        await backend.hit("login:1.2.3.4", limit=5, window_seconds=60)

        assert list(backend._hits) == ["login:1.2.3.4"]

    async def test_sweep_keeps_keys_inside_their_window(self, clock):
        backend = InMemoryRateLimitBackend(clock=clock)
        await backend.hit("forgot_password:1.2.3.4", limit=3, window_seconds=600)

        clock.now += 120
        await backend.hit("login:5.6.7.8", limit=5, window_seconds=60)

        assert "forgot_password:1.2.3.4" in backend._hits

    async def test_zero_limit_rejects_without_error(self, clock):
        backend = InMemoryRateLimitBackend(clock=clock)

        state = await backend.hit("login:1.2.3.4", limit=0, window_seconds=60)

        assert state.allowed is False
        assert state.retry_after == 60
        assert backend._hits == {}


class TestDenyList:
    async def test_denied_ip_always_rejected(self, guard):
        decision = await guard.check("192.168.1.100", "login")
        assert decision.allowed is False
        assert decision.reason == "blacklisted"
        assert decision.as_body() == {
            "message": BLACKLISTED_MESSAGE,
            "retryAfter": 60,
            "limit": 5,
        }

    async def test_denied_ip_does_not_consume_counter(self, guard):
        await guard.check("10.0.0.50", "login")
        assert guard.backend._hits == {}

    async def test_defaults_come_from_settings(self):
        guard = AbuseGuard(InMemoryRateLimitBackend())
        assert guard.limits["login"] == (5, 60)
        assert guard.limits["forgot_password"] == (3, 60)
        assert guard.limits["reset_password"] == (5, 60)
        assert guard.is_denied("192.168.1.100")
        assert guard.is_denied("10.0.0.50")
        assert not guard.is_denied("127.0.0.1")


class TestEnforce:
    async def test_raises_with_decision(self, guard):
        for _ in range(5):
            await guard.enforce("1.2.3.4", "login")

        with pytest.raises(RateLimitExceeded) as exc_info:
            await guard.enforce("1.2.3.4", "login")
        assert exc_info.value.decision.reason == "rate_limited"
        assert exc_info.value.decision.as_body()["message"] == "Too many requests"

    async def test_returns_decision_when_allowed(self, guard):
        decision = await guard.enforce("1.2.3.4", "login")
        assert decision.allowed is True
