"""
Request gate for the Gateway: rate limiting, then authentication.

Each inbound request moves through ``Received -> RateChecked ->
(Unauthenticated | Authenticated) -> Dispatched``. A request rejected at either
check never reaches a route handler, so no downstream call is made for it.
"""

import math
from typing import Iterable, Optional

from fastapi import Request
from starlette.responses import Response

from newsfeed_shared.base_service import render_error
from newsfeed_shared.errors import AuthenticationError, MissingCredentialError, RateLimitError
from newsfeed_shared.logging import get_logger, set_user_context
from newsfeed_shared.metrics import MetricsCollector

from ..auth import Identity, TokenVerifier
from ..ratelimit import RateLimitDecision, RateLimiter

PUBLIC_PATHS = frozenset({
    "/health",
    "/register",
    "/login",
    "/metrics",
    "/docs",
    "/docs/oauth2-redirect",
    "/redoc",
    "/openapi.json",
})


class AuthGate:
    """Composes the rate limiter and token verifier in front of every route."""

    def __init__(
        self,
        token_verifier: TokenVerifier,
        rate_limiter: RateLimiter,
        *,
        metrics: Optional[MetricsCollector] = None,
        public_paths: Iterable[str] = PUBLIC_PATHS,
        rate_limit_exempt_paths: Iterable[str] = ("/metrics",),
        trust_forwarded_for: bool = False,
    ):
        self.token_verifier = token_verifier
        self.rate_limiter = rate_limiter
        self.metrics = metrics
        self.public_paths = frozenset(public_paths)
        self.rate_limit_exempt_paths = frozenset(rate_limit_exempt_paths)
        self.trust_forwarded_for = trust_forwarded_for
        self.logger = get_logger("gateway.auth_gate")

    def is_public(self, path: str) -> bool:
        return path in self.public_paths

    def client_key(self, request: Request) -> str:
        """Key the rate limiter counts against: the caller's address."""
        if self.trust_forwarded_for:
            forwarded = request.headers.get("x-forwarded-for", "")
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
        if request.client is not None and request.client.host:
            return request.client.host
        return "unknown"

    def authenticate(self, request: Request) -> Identity:
        """Verify the request's bearer credential."""
        return self.token_verifier.verify_header(request.headers.get("Authorization"))

    async def dispatch(self, request: Request, call_next) -> Response:
        """``BaseHTTPMiddleware`` entry point."""
        path = request.url.path
        decision: Optional[RateLimitDecision] = None

        if path not in self.rate_limit_exempt_paths:
            decision = await self.rate_limiter.admit(self.client_key(request))
            if not decision.allowed:
                self._increment("rate_limit_rejections_total")
                response = render_error(RateLimitError(decision.retry_after_seconds))
                self._add_rate_limit_headers(response, decision)
                return response

        if not self.is_public(path):
            try:
                identity = self.authenticate(request)
            except AuthenticationError as exc:
                self._increment("auth_failures_total", reason=exc.code.lower())
                self.logger.warning(
                    "Authentication failed",
                    path=path,
                    method=request.method,
                    code=exc.code,
                    status_code=exc.status_code
                )
                response = render_error(exc)
                self._add_rate_limit_headers(response, decision)
                return response

            request.state.identity = identity
            set_user_context(str(identity.user_id))

        response = await call_next(request)
        self._add_rate_limit_headers(response, decision)
        return response

    @staticmethod
    def _add_rate_limit_headers(response: Response, decision: Optional[RateLimitDecision]) -> None:
        if decision is None:
            return
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        response.headers["X-RateLimit-Reset"] = str(math.ceil(decision.reset_at))

    def _increment(self, metric_name: str, **labels) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)


def get_identity(request: Request) -> Identity:
    """Route dependency returning the identity attached by :class:`AuthGate`."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise MissingCredentialError()
    return identity
