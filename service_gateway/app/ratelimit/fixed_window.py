"""
Fixed-window rate limiters for the Gateway service.

Policy: a client's first request opens a window that ends ``window_seconds``
later. Every call increments the window's counter, including calls that are
rejected, and a call is rejected once the counter exceeds ``max_requests``.
A client can therefore land up to ``2 * max_requests`` requests in any span
that straddles a window reset; that burst is accepted behaviour.
"""

import math
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis

from newsfeed_shared.logging import get_logger


@dataclass
class ClientWindow:
    """Request count for one client in its current window."""

    client_key: str
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single admission check."""

    allowed: bool
    count: int
    limit: int
    reset_at: float
    now: float

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the window resets, never less than one."""
        return max(1, math.ceil(self.reset_at - self.now))


class FixedWindowRateLimiter:
    """In-process fixed-window limiter with a bounded client table.

    Windows are kept in an ``OrderedDict`` ordered by window start. All windows
    share one duration, so the front of the table always holds the earliest
    resets and sweeping stops at the first live window.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        *,
        max_clients: int = 100_000,
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.max_clients = max_clients
        self.sweep_interval_seconds = sweep_interval_seconds
        self.logger = get_logger("gateway.rate_limiter")

        self._clock = clock
        self._windows: "OrderedDict[str, ClientWindow]" = OrderedDict()
        self._lock = threading.Lock()
        self._last_sweep = clock()
        self._evicted = 0

    async def admit(self, client_key: str, now: Optional[float] = None) -> RateLimitDecision:
        """Count a request for ``client_key`` and decide whether to admit it."""
        return self.check(client_key, now)

    def check(self, client_key: str, now: Optional[float] = None) -> RateLimitDecision:
        """Synchronous admission check; read-and-increment happens under the lock."""
        if now is None:
            now = self._clock()

        with self._lock:
            if now - self._last_sweep >= self.sweep_interval_seconds:
                self._sweep_locked(now)

            window = self._windows.get(client_key)
            if window is None or now > window.window_reset_at:
                window = ClientWindow(client_key, 0, now + self.window_seconds)
                self._windows.pop(client_key, None)
                self._make_room_locked(now)
                self._windows[client_key] = window

            window.count += 1
            decision = RateLimitDecision(
                allowed=window.count <= self.max_requests,
                count=window.count,
                limit=self.max_requests,
                reset_at=window.window_reset_at,
                now=now,
            )

        if not decision.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                client_key=client_key,
                count=decision.count,
                limit=decision.limit,
                retry_after=decision.retry_after_seconds
            )
        return decision

    def sweep(self, now: Optional[float] = None) -> int:
        """Drop every expired window and return how many were removed."""
        if now is None:
            now = self._clock()
        with self._lock:
            return self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        removed = 0
        while self._windows:
            key, window = next(iter(self._windows.items()))
            if now <= window.window_reset_at:
                break
            del self._windows[key]
            removed += 1

        self._last_sweep = now
        if removed:
            self.logger.debug("Swept expired rate limit windows", removed=removed)
        return removed

    def _make_room_locked(self, now: float) -> None:
        if len(self._windows) < self.max_clients:
            return
        self._sweep_locked(now)
        while len(self._windows) >= self.max_clients:
            key, _ = self._windows.popitem(last=False)
            self._evicted += 1
            self.logger.warning("Evicted live rate limit window at capacity", client_key=key)

    def get_window(self, client_key: str) -> Optional[ClientWindow]:
        """Return the tracked window for a client, if any."""
        with self._lock:
            return self._windows.get(client_key)

    def get_stats(self) -> Dict[str, Any]:
        """Get limiter statistics."""
        with self._lock:
            return {
                "backend": "memory",
                "tracked_clients": len(self._windows),
                "max_clients": self.max_clients,
                "evicted_clients": self._evicted,
                "limit": self.max_requests,
                "window_seconds": self.window_seconds,
            }

    async def close(self) -> None:
        """Nothing to release for the in-process table."""


class RedisFixedWindowRateLimiter:
    """Fixed-window limiter shared across gateway processes through Redis.

    Opening the window (``SET NX PX``), counting (``INCR``) and reading the
    remaining lifetime (``PTTL``) run in one MULTI transaction, so the counter
    is incremented atomically per request. Redis errors fail open.
    """

    def __init__(
        self,
        redis_url: str,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.redis_url = redis_url
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.logger = get_logger("gateway.rate_limiter")
        self._clock = clock
        self._redis: Optional[redis.Redis] = None

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, client_key: str) -> str:
        """Generate rate limit key."""
        return f"rate_limit:{client_key}"

    async def admit(self, client_key: str, now: Optional[float] = None) -> RateLimitDecision:
        """Count a request for ``client_key`` and decide whether to admit it."""
        if now is None:
            now = self._clock()
        window_ms = int(self.window_seconds * 1000)
        key = self._make_key(client_key)

        try:
            redis_client = await self._get_redis()
            async with redis_client.pipeline(transaction=True) as pipeline:
                pipeline.set(key, 0, px=window_ms, nx=True)
                pipeline.incr(key)
                pipeline.pttl(key)
                _, count, ttl_ms = await pipeline.execute()
        except Exception as e:
            self.logger.error("Rate limit check error", error=str(e), client_key=client_key)
            return RateLimitDecision(
                allowed=True,
                count=0,
                limit=self.max_requests,
                reset_at=now + self.window_seconds,
                now=now,
            )

        if ttl_ms is None or ttl_ms < 0:
            ttl_ms = window_ms

        decision = RateLimitDecision(
            allowed=int(count) <= self.max_requests,
            count=int(count),
            limit=self.max_requests,
            reset_at=now + ttl_ms / 1000.0,
            now=now,
        )
        if not decision.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                client_key=client_key,
                count=decision.count,
                limit=decision.limit,
                retry_after=decision.retry_after_seconds
            )
        return decision

    def get_stats(self) -> Dict[str, Any]:
        """Get limiter statistics."""
        return {
            "backend": "redis",
            "limit": self.max_requests,
            "window_seconds": self.window_seconds,
        }

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
