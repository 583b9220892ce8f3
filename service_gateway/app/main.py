"""
API Gateway service for the Newsfeed Access Layer.
"""

from typing import Dict, Optional

from fastapi import Depends, Query, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from newsfeed_shared.base_service import BaseService
from newsfeed_shared.circuit_breaker import CircuitBreaker
from newsfeed_shared.config import ServiceConfig, get_config
from newsfeed_shared.errors import DownstreamError, as_gateway_error
from newsfeed_shared.retry import RetryConfig

from .adapters import PostServiceClient, ServiceClient, UserServiceClient
from .adapters.service_client import counts_against_breaker
from .auth import Identity, TokenVerifier
from .domain import AuthGate, FeedResponse, ProfileResponse, get_identity
from .domain.auth_middleware import PUBLIC_PATHS
from .domain.feed import FeedAggregator
from .domain.profile import ProfileAggregator, parse_user_id
from .ratelimit import build_rate_limiter

FORWARDED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]
FORWARDED_HEADERS = ("content-type", "accept")


class GatewayService(BaseService):
    """API Gateway service implementation."""

    def __init__(self, config: Optional[ServiceConfig] = None):
        super().__init__("gateway", 3000, config or get_config("gateway", 3000))

    def _init_components(self):
        config = self.config
        retry_config = RetryConfig(
            max_attempts=config.downstream_retry_attempts,
            base_delay=config.downstream_retry_base_delay,
            max_delay=2.0,
        )

        self.user_client = UserServiceClient(
            config.user_service_url,
            config.internal_secret,
            timeout=config.downstream_timeout_seconds,
            circuit_breaker=self._build_circuit_breaker("user_service"),
            retry_config=retry_config,
            metrics=self.metrics,
        )
        self.post_client = PostServiceClient(
            config.post_service_url,
            config.internal_secret,
            timeout=config.downstream_timeout_seconds,
            circuit_breaker=self._build_circuit_breaker("post_service"),
            retry_config=retry_config,
            metrics=self.metrics,
        )

        self.token_verifier = TokenVerifier(
            config.jwt_secret,
            algorithms=[config.jwt_algorithm],
            leeway_seconds=config.jwt_leeway_seconds,
        )
        self.rate_limiter = build_rate_limiter(config)
        self.auth_gate = AuthGate(
            self.token_verifier,
            self.rate_limiter,
            metrics=self.metrics,
            public_paths=PUBLIC_PATHS,
            rate_limit_exempt_paths=config.rate_limit_exempt_paths,
            trust_forwarded_for=config.trust_forwarded_for,
        )

        self.feed_aggregator = FeedAggregator(
            self.user_client,
            self.post_client,
            default_limit=config.feed_default_limit,
            max_limit=config.feed_max_limit,
            author_lookup_concurrency=config.author_lookup_concurrency,
            author_lookup_timeout=config.author_lookup_timeout_seconds,
            metrics=self.metrics,
        )
        self.profile_aggregator = ProfileAggregator(
            self.user_client,
            self.post_client,
            secondary_timeout=config.author_lookup_timeout_seconds,
        )

    def _build_circuit_breaker(self, name: str) -> CircuitBreaker:
        return CircuitBreaker(
            failure_threshold=self.config.circuit_failure_threshold,
            recovery_timeout=self.config.circuit_recovery_timeout,
            is_failure=counts_against_breaker,
            name=name,
        )

    async def on_shutdown(self):
        await self.user_client.close()
        await self.post_client.close()
        await self.rate_limiter.close()
        self.logger.info("Gateway stopped")

    def _add_service_middleware(self):
        self.app.add_middleware(BaseHTTPMiddleware, dispatch=self.auth_gate.dispatch)

    def _check_dependencies(self) -> Dict[str, str]:
        return {
            "user_service": self.user_client.get_state()["state"],
            "post_service": self.post_client.get_state()["state"],
            "rate_limiter": self.rate_limiter.get_stats()["backend"],
        }

    def _setup_routes(self):
        super()._setup_routes()
        self.app.state.gateway_service = self
        self._setup_auth_routes()
        self._setup_feed_routes()
        self._setup_forwarding_routes()

    def _setup_auth_routes(self):
        """Public account routes, forwarded without an identity."""

        @self.app.post("/register")
        async def register(request: Request):
            return await self._forward(request, self.user_client, "/auth/register")

        @self.app.post("/login")
        async def login(request: Request):
            return await self._forward(request, self.user_client, "/auth/login")

    def _setup_feed_routes(self):
        """Aggregate routes built from several downstream calls."""

        @self.app.get("/feed", response_model=FeedResponse)
        async def get_feed(
            limit: Optional[int] = Query(None, ge=1),
            identity: Identity = Depends(get_identity),
        ):
            """Personalized feed of posts by the users the caller follows."""
            return await self.feed_aggregator.build_feed(identity.user_id, limit)

        @self.app.get("/users/profile/{user_id}", response_model=ProfileResponse)
        async def get_profile(user_id: str, identity: Identity = Depends(get_identity)):
            """Profile details, posts and (for the caller) follow counts."""
            return await self.profile_aggregator.build_profile(parse_user_id(user_id), identity.user_id)

    def _setup_forwarding_routes(self):
        """Everything else under /users and /posts is forwarded 1:1."""

        @self.app.api_route("/users", methods=FORWARDED_METHODS)
        @self.app.api_route("/users/{path:path}", methods=FORWARDED_METHODS)
        async def forward_users(request: Request, identity: Identity = Depends(get_identity)):
            return await self._forward(request, self.user_client, request.url.path, identity)

        @self.app.api_route("/posts", methods=FORWARDED_METHODS)
        @self.app.api_route("/posts/{path:path}", methods=FORWARDED_METHODS)
        async def forward_posts(request: Request, identity: Identity = Depends(get_identity)):
            return await self._forward(request, self.post_client, request.url.path, identity)

    async def _forward(
        self,
        request: Request,
        client: ServiceClient,
        path: str,
        identity: Optional[Identity] = None,
    ) -> Response:
        """Relay one request to ``client`` and its response back to the caller."""
        headers = {
            name: request.headers[name] for name in FORWARDED_HEADERS if name in request.headers
        }
        body = await request.body()

        try:
            upstream = await client.request(
                request.method,
                path,
                user_id=identity.user_id if identity is not None else None,
                headers=headers,
                params=list(request.query_params.multi_items()),
                content=body or None,
            )
        except DownstreamError as exc:
            raise as_gateway_error(exc) from exc

        response_headers = {}
        if upstream.content_type:
            response_headers["content-type"] = upstream.content_type
        return Response(
            content=upstream.content,
            status_code=upstream.status_code,
            headers=response_headers,
        )


def create_app(config: Optional[ServiceConfig] = None):
    """Create FastAPI application."""
    service = GatewayService(config)
    return service.app


if __name__ == "__main__":
    service = GatewayService()
    service.run()
