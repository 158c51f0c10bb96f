"""Request-rate tracking and deny-listing in front of sensitive endpoints."""

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional, Protocol

import structlog

from blog_auth.config import get_settings
from blog_auth.services.errors import RateLimitExceeded

logger = structlog.get_logger(__name__)

UNKNOWN_TRACKER = "unknown"

BLACKLISTED_MESSAGE = "Too many requests from this IP"
RATE_LIMITED_MESSAGE = "Too many requests"


@dataclass(frozen=True)
class WindowState:
    """Outcome of recording one request in a sliding window."""

    allowed: bool
    remaining: int
    retry_after: int  # seconds until a slot frees up, 0 when allowed


@dataclass(frozen=True)
class GuardDecision:
    """Whether a request may proceed, with the metadata a 429 needs."""

    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    reason: Optional[str] = None  # "blacklisted" or "rate_limited"

    @property
    def message(self) -> str:
        if self.reason == "blacklisted":
            return BLACKLISTED_MESSAGE
        if self.reason == "rate_limited":
            return RATE_LIMITED_MESSAGE
        return "OK"

    def as_body(self) -> dict:
        return {
            "message": self.message,
            "retryAfter": self.retry_after,
            "limit": self.limit,
        }


class RateLimitBackend(Protocol):
    """Counter storage for the sliding window."""

    async def hit(self, key: str, limit: int, window_seconds: int) -> WindowState:
        """Record a request under ``key`` if it fits within ``limit``."""
        ...

    async def reset(self, key: Optional[str] = None) -> None: ...


class InMemoryRateLimitBackend:
    """Process-local sliding log of request timestamps.

    Safe to share between threads and event loops; only suitable for a
    single-instance deployment.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ):
        self._hits: dict[str, deque[float]] = {}
        self._windows: dict[str, int] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()

    def _sweep(self, now: float) -> None:
        """Drop every key whose newest hit has left its window. Caller holds the lock."""
        for key, hits in list(self._hits.items()):
            if not hits or hits[-1] <= now - self._windows[key]:
                del self._hits[key]
                del self._windows[key]
        self._last_sweep = now

    async def hit(self, key: str, limit: int, window_seconds: int) -> WindowState:
        now = self._clock()
        cutoff = now - window_seconds

        with self._lock:
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)

            hits = self._hits.get(key) or deque()
            while hits and hits[0] <= cutoff:
                hits.popleft()

            if len(hits) >= limit:
                oldest = hits[0] if hits else now
                retry_after = max(1, math.ceil(oldest + window_seconds - now))
                if not hits:
                    self._hits.pop(key, None)
                    self._windows.pop(key, None)
                return WindowState(allowed=False, remaining=0, retry_after=retry_after)

            hits.append(now)
            self._hits[key] = hits
            self._windows[key] = window_seconds
            return WindowState(allowed=True, remaining=limit - len(hits), retry_after=0)

    async def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
                self._windows.clear()
            else:
                self._hits.pop(key, None)
                self._windows.pop(key, None)


def resolve_tracker(ip: Optional[str] = None, user_id: Optional[object] = None) -> str:
    """Pick the identity requests are counted under: IP, then user id."""
    if ip:
        return ip
    if user_id is not None and str(user_id):
        return str(user_id)
    return UNKNOWN_TRACKER


class AbuseGuard:
    """Rejects deny-listed identities and throttles per endpoint.

    Both checks run before the auth service and neither touches the
    credential store.
    """

    def __init__(
        self,
        backend: RateLimitBackend,
        limits: Optional[Mapping[str, tuple[int, int]]] = None,
        denied: Optional[Iterable[str]] = None,
    ):
        settings = get_settings()
        self.backend = backend
        self.limits = dict(limits if limits is not None else settings.rate_limits)
        self.denied = frozenset(denied if denied is not None else settings.denied_ips_list)

    def is_denied(self, tracker: str) -> bool:
        return tracker in self.denied

    async def check(self, tracker: str, endpoint: str) -> GuardDecision:
        """Decide whether one request to ``endpoint`` from ``tracker`` may run.

        Raises:
            ValueError: If ``endpoint`` has no configured limit
        """
        try:
            limit, window = self.limits[endpoint]
        except KeyError:
            raise ValueError(f"No rate limit configured for endpoint {endpoint!r}")

        if self.is_denied(tracker):
            logger.warning("request_blacklisted", tracker=tracker, endpoint=endpoint)
            return GuardDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                retry_after=window,
                reason="blacklisted",
            )

        state = await self.backend.hit(f"{endpoint}:{tracker}", limit, window)
        if not state.allowed:
            logger.warning(
                "rate_limit_exceeded",
                tracker=tracker,
                endpoint=endpoint,
                limit=limit,
                retry_after=state.retry_after,
            )
            return GuardDecision(
                allowed=False,
                limit=limit,
                remaining=0,
                retry_after=state.retry_after,
                reason="rate_limited",
            )

        return GuardDecision(
            allowed=True,
            limit=limit,
            remaining=state.remaining,
            retry_after=0,
        )

    async def enforce(self, tracker: str, endpoint: str) -> GuardDecision:
        """Like check(), but raise RateLimitExceeded on rejection."""
        decision = await self.check(tracker, endpoint)
        if not decision.allowed:
            raise RateLimitExceeded(decision)
        return decision
