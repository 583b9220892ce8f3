"""
Unit tests for Gateway main service.
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from newsfeed_shared.errors import TransportError
from service_gateway.app.domain.models import AuthorSummary, PostSummary
from service_gateway.app.main import GatewayService, create_app

from factories import (
    POST_SERVICE_URL,
    TEST_INTERNAL_SECRET,
    USER_SERVICE_URL,
    make_post,
    make_user,
)

POST_HOST = "post-service.test"


class TestGatewayService:
    """Test cases for GatewayService."""

    @pytest.fixture
    def app(self, gateway_config):
        """Create FastAPI app instance."""
        return create_app(gateway_config)

    @pytest.fixture
    def client(self, app):
        """Create test client."""
        return TestClient(app)

    @pytest.fixture
    def service(self, client) -> GatewayService:
        return client.app.state.gateway_service

    @pytest.fixture
    def auth_headers(self, token_factory):
        return token_factory.auth_headers(user_id=1, username="alice")

    def test_health_endpoint(self, client):
        """Health is public and reports dependency state."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "gateway"
        assert data["message"] == "Alive!!"
        assert data["dependencies"] == {
            "user_service": "closed",
            "post_service": "closed",
            "rate_limiter": "memory",
        }

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_is_generated(self, client):
        response = client.get("/health")
        assert response.headers["X-Request-ID"]

    def test_metrics_endpoint(self, client):
        """Prometheus metrics are exposed without a token."""
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text

    def test_feed_requires_token(self, client, service):
        """No token: 401 and no downstream calls."""
        service.user_client.get_following = AsyncMock()

        response = client.get("/feed")

        assert response.status_code == 401
        assert response.json()["message"] == "Access token required"
        service.user_client.get_following.assert_not_called()

    def test_feed_rejects_invalid_token(self, client, service, token_factory):
        """Invalid token: 403 and no downstream calls."""
        service.user_client.get_following = AsyncMock()
        token = token_factory.generate_access_token(secret="forged")

        response = client.get("/feed", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 403
        assert response.json()["message"] == "Invalid or expired token"
        service.user_client.get_following.assert_not_called()

    def test_feed_success(self, client, service, auth_headers):
        """The feed is returned in camelCase with authors joined in."""
        service.user_client.get_following = AsyncMock(return_value=[5])
        service.post_client.get_posts_from_users = AsyncMock(
            return_value=[PostSummary.model_validate(make_post(3, 5, minutes=2))]
        )
        service.user_client.get_user = AsyncMock(return_value=AuthorSummary.model_validate(make_user(5, "erin")))

        response = client.get("/feed?limit=10", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 1
        assert data["message"] == "Feed retrieved successfully"
        entry = data["feed"][0]
        assert entry["postId"] == 3
        assert entry["authorId"] == 5
        assert entry["createdAt"].startswith("2024-05-01T12:02:00")
        assert entry["author"] == {"userId": 5, "username": "erin", "firstName": "First", "lastName": "Last5"}
        service.user_client.get_following.assert_awaited_once_with(1)
        service.post_client.get_posts_from_users.assert_awaited_once_with([5], 10, caller_id=1)

    def test_feed_rejects_bad_limit(self, client, auth_headers):
        response = client.get("/feed?limit=0", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid request parameters"

    def test_feed_upstream_outage(self, client, service, auth_headers):
        """A following-list outage answers 503 with a message."""
        service.user_client.get_following = AsyncMock(
            side_effect=TransportError("user_service", TransportError.TIMEOUT)
        )

        response = client.get("/feed", headers=auth_headers)

        assert response.status_code == 503
        assert response.json()["message"] == "Service unavailable"

    @respx.mock
    def test_feed_end_to_end(self, client, auth_headers):
        """Feed assembly against mocked services, with one author lookup timing out."""
        following = respx.get(f"{USER_SERVICE_URL}/users/following").mock(
            return_value=httpx.Response(200, json={"following": [5, 7, 7]})
        )
        posts = respx.get(host=POST_HOST, path="/posts/from-users").mock(
            return_value=httpx.Response(200, json={"posts": [
                make_post(1, 7, minutes=1),
                make_post(2, 5, minutes=3),
                make_post(3, 5, minutes=2),
            ]})
        )
        respx.get(f"{USER_SERVICE_URL}/users/5").mock(side_effect=httpx.ReadTimeout("slow"))
        user_7 = respx.get(f"{USER_SERVICE_URL}/users/7").mock(
            return_value=httpx.Response(200, json=make_user(7, "gus"))
        )

        response = client.get("/feed", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [entry["postId"] for entry in data["feed"]] == [2, 3, 1]
        assert [entry["author"]["username"] for entry in data["feed"]] == ["Unknown User", "Unknown User", "gus"]
        assert data["count"] == 3

        assert posts.calls.last.request.url.params["ids"] == "5,7"
        assert posts.calls.last.request.url.params["limit"] == "50"
        for route in (following, posts, user_7):
            headers = route.calls.last.request.headers
            assert headers["x-internal-secret"] == TEST_INTERNAL_SECRET
            assert headers["x-user-id"] == "1"
            assert "authorization" not in headers

    @respx.mock
    def test_register_is_forwarded(self, client):
        """Registration is public and forwarded with the secret but no user id."""
        route = respx.post(f"{USER_SERVICE_URL}/auth/register").mock(
            return_value=httpx.Response(201, json={"message": "User registered", "userId": 9})
        )

        response = client.post("/register", json={"username": "hal", "password": "pw"})

        assert response.status_code == 201
        assert response.json() == {"message": "User registered", "userId": 9}
        sent = route.calls.last.request
        assert json.loads(sent.content) == {"username": "hal", "password": "pw"}
        assert sent.headers["x-internal-secret"] == TEST_INTERNAL_SECRET
        assert "x-user-id" not in sent.headers

    @respx.mock
    def test_login_rejection_is_relayed(self, client):
        """Downstream client errors are relayed verbatim."""
        respx.post(f"{USER_SERVICE_URL}/auth/login").mock(
            return_value=httpx.Response(401, json={"message": "Invalid credentials"})
        )

        response = client.post("/login", json={"username": "hal", "password": "nope"})

        assert response.status_code == 401
        assert response.json() == {"message": "Invalid credentials"}

    @respx.mock
    def test_posts_route_is_forwarded(self, client, auth_headers):
        """Protected routes are forwarded 1:1 with the identity injected."""
        route = respx.get(host=POST_HOST, path="/posts/42/comments").mock(
            return_value=httpx.Response(200, json={"comments": []})
        )

        response = client.get(
            "/posts/42/comments?page=2",
            headers={**auth_headers, "X-User-Id": "999", "X-Internal-Secret": "forged"},
        )

        assert response.status_code == 200
        assert response.json() == {"comments": []}
        sent = route.calls.last.request
        assert sent.url.params["page"] == "2"
        assert sent.headers["x-user-id"] == "1"
        assert sent.headers["x-internal-secret"] == TEST_INTERNAL_SECRET

    @respx.mock
    def test_post_creation_is_forwarded(self, client, auth_headers):
        route = respx.post(f"{POST_SERVICE_URL}/posts").mock(
            return_value=httpx.Response(201, json={"postId": 77})
        )

        response = client.post("/posts", json={"title": "Hi"}, headers=auth_headers)

        assert response.status_code == 201
        assert json.loads(route.calls.last.request.content) == {"title": "Hi"}
        assert route.calls.last.request.headers["content-type"] == "application/json"

    @respx.mock
    def test_user_service_error_is_masked(self, client, auth_headers):
        """Downstream 5xx answers surface as 503 without internal detail."""
        respx.delete(f"{USER_SERVICE_URL}/users/5/follow").mock(
            return_value=httpx.Response(500, text="database exploded")
        )

        response = client.delete("/users/5/follow", headers=auth_headers)

        assert response.status_code == 503
        assert "database" not in response.text

    def test_users_route_requires_token(self, client):
        assert client.get("/users/5").status_code == 401

    def test_profile_invalid_id(self, client, auth_headers):
        response = client.get("/users/profile/abc", headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid or missing user id"

    def test_profile(self, client, service, auth_headers):
        """The profile route aggregates details, posts and own counts."""
        service.user_client.get_user = AsyncMock(return_value=AuthorSummary.model_validate(make_user(1, "alice")))
        service.user_client.get_follower_count = AsyncMock(return_value=4)
        service.user_client.get_following_count = AsyncMock(return_value=2)
        service.post_client.get_posts_by_user = AsyncMock(
            return_value=[PostSummary.model_validate(make_post(8, 1))]
        )

        response = client.get("/users/profile/1", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["userId"] == 1
        assert data["followers"] == 4
        assert data["following"] == 2
        assert data["postCount"] == 1
        assert data["posts"][0]["postId"] == 8

    def test_rate_limit(self, gateway_config):
        """Requests over the budget get 429 with retryAfter."""
        config = gateway_config.model_copy(update={"rate_limit_max_requests": 2})
        client = TestClient(create_app(config))

        assert client.get("/health").status_code == 200
        assert client.get("/health").status_code == 200
        response = client.get("/health")

        assert response.status_code == 429
        assert response.json()["retryAfter"].endswith("s")
        assert "Retry-After" in response.headers
        assert response.headers["X-Request-ID"]
