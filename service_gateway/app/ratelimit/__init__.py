"""
Rate limiting package for the Gateway.

Holds fixed-window limiters that enforce per-client request budgets, either
in-process or shared through Redis.
"""

from typing import Union

from newsfeed_shared.config import BaseConfig

from .fixed_window import (
    ClientWindow,
    FixedWindowRateLimiter,
    RateLimitDecision,
    RedisFixedWindowRateLimiter,
)

RateLimiter = Union[FixedWindowRateLimiter, RedisFixedWindowRateLimiter]


def build_rate_limiter(config: BaseConfig) -> RateLimiter:
    """Create the limiter selected by ``rate_limit_backend``."""
    backend = config.rate_limit_backend.lower()
    if backend == "redis":
        return RedisFixedWindowRateLimiter(
            config.redis_url,
            max_requests=config.rate_limit_max_requests,
            window_seconds=config.rate_limit_window_seconds,
        )
    if backend != "memory":
        raise ValueError(f"Unknown rate limit backend: {config.rate_limit_backend}")
    return FixedWindowRateLimiter(
        max_requests=config.rate_limit_max_requests,
        window_seconds=config.rate_limit_window_seconds,
        max_clients=config.rate_limit_max_clients,
        sweep_interval_seconds=config.rate_limit_sweep_interval_seconds,
    )


__all__ = [
    "ClientWindow",
    "FixedWindowRateLimiter",
    "RateLimitDecision",
    "RateLimiter",
    "RedisFixedWindowRateLimiter",
    "build_rate_limiter",
]
