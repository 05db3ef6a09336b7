"""
Rate Limiting - Sliding log limiter keyed by caller.

Each limiter keeps, per key, the timestamps of requests inside the current
window. State lives in process memory; run one worker per limiter scope or
accept per-worker limits.
"""

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from structlog import get_logger

if TYPE_CHECKING:
    from app.config import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateDecision:
    """Outcome of one limiter hit."""

    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


class SlidingWindowLimiter:
    """Allow at most max_requests per key in any window_seconds span."""

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: int,
        message: str = "Too many requests, please try again later.",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._log: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._last_cleanup = clock()

    async def hit(self, key: str) -> RateDecision:
        """Record a request for key if the window has room."""
        async with self._lock:
            now = self._clock()
            self._maybe_cleanup(now)
            entries = self._prune(key, now)

            if len(entries) >= self.max_requests:
                retry_after = int(entries[0] + self.window_seconds - now) + 1
                return RateDecision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    retry_after_seconds=max(retry_after, 1),
                )

            entries.append(now)
            return RateDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(entries),
                retry_after_seconds=0,
            )

    async def undo(self, key: str) -> None:
        """Forget the most recent request for key (successful requests not counted)."""
        async with self._lock:
            entries = self._log.get(key)
            if entries:
                entries.pop()

    async def reset(self) -> None:
        async with self._lock:
            self._log.clear()

    def _prune(self, key: str, now: float) -> deque[float]:
        entries = self._log.setdefault(key, deque())
        cutoff = now - self.window_seconds
        while entries and entries[0] <= cutoff:
            entries.popleft()
        return entries

    def _maybe_cleanup(self, now: float) -> None:
        """Drop idle keys once per window."""
        if now - self._last_cleanup < self.window_seconds:
            return
        cutoff = now - self.window_seconds
        stale = [key for key, entries in self._log.items() if not entries or entries[-1] <= cutoff]
        for key in stale:
            del self._log[key]
        self._last_cleanup = now
        if stale:
            logger.debug("rate_limit_cleanup", limiter=self.name, removed=len(stale))


class RateLimiters:
    """Named limiters for each route group."""

    def __init__(self, settings: "Settings"):
        self.general = SlidingWindowLimiter(
            "general",
            settings.general_rate_limit,
            settings.general_rate_window_seconds,
            "Too many requests from this IP, please try again later.",
        )
        self.auth = SlidingWindowLimiter(
            "auth",
            settings.auth_rate_limit,
            settings.auth_rate_window_seconds,
            "Too many login attempts, please try again after 15 minutes.",
        )
        self.admin = SlidingWindowLimiter(
            "admin",
            settings.admin_rate_limit,
            settings.admin_rate_window_seconds,
            "Too many admin operations, please slow down.",
        )
        self.copy = SlidingWindowLimiter(
            "copy",
            settings.copy_rate_limit,
            settings.copy_rate_window_seconds,
            "Copy limit reached. Please wait before copying more API keys.",
        )

    def get(self, name: str) -> SlidingWindowLimiter:
        limiter = getattr(self, name, None)
        if not isinstance(limiter, SlidingWindowLimiter):
            raise KeyError(f"Unknown rate limiter: {name}")
        return limiter

    async def reset(self) -> None:
        for limiter in (self.general, self.auth, self.admin, self.copy):
            await limiter.reset()


_rate_limiters: RateLimiters | None = None


def get_rate_limiters() -> RateLimiters:
    """Process-wide limiters built from settings."""
    global _rate_limiters
    if _rate_limiters is None:
        from app.config import settings

        _rate_limiters = RateLimiters(settings)
    return _rate_limiters
