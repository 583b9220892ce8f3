"""
Unit tests for the shared error taxonomy.
"""

import json

from newsfeed_shared.errors import (
    RateLimitError,
    TransportError,
    UpstreamError,
    UpstreamRejectedError,
    UpstreamUnavailableError,
    as_gateway_error,
)


class TestAsGatewayError:
    """Test cases for downstream error translation."""

    def test_transport_error_is_unavailable(self):
        """Transport failures surface as 503 without internal detail."""
        error = as_gateway_error(TransportError("post_service", TransportError.TIMEOUT, "no response within 5s"))

        assert isinstance(error, UpstreamUnavailableError)
        assert error.status_code == 503
        body = error.to_response()
        assert body["message"] == "Service unavailable"
        assert "5s" not in json.dumps(body)

    def test_server_error_is_unavailable(self):
        """5xx answers surface as 503."""
        error = as_gateway_error(UpstreamError("user_service", 500, b"Traceback ..."))

        assert isinstance(error, UpstreamUnavailableError)
        assert "Traceback" not in json.dumps(error.to_response())

    def test_client_error_is_relayed(self):
        """4xx answers keep their status and JSON body."""
        body = json.dumps({"message": "User not found"}).encode()
        error = as_gateway_error(UpstreamError("user_service", 404, body, "application/json"))

        assert isinstance(error, UpstreamRejectedError)
        assert error.status_code == 404
        assert error.to_response() == {"message": "User not found"}

    def test_non_json_client_error_is_wrapped(self):
        """Plain-text 4xx bodies are wrapped in a message field."""
        error = as_gateway_error(UpstreamError("post_service", 400, b"Bad ids", "text/plain"))

        assert error.to_response() == {"message": "Bad ids"}

    def test_empty_client_error_gets_message(self):
        error = as_gateway_error(UpstreamError("post_service", 409))

        assert error.to_response() == {"message": "Upstream request rejected"}


class TestRateLimitError:
    """Test cases for the 429 error."""

    def test_body_and_header(self):
        """The body carries retryAfter with an ``s`` suffix and the header the raw seconds."""
        error = RateLimitError(retry_after=42)

        body = error.to_response()
        assert error.status_code == 429
        assert body["message"] == "Rate limit exceeded. Try again later."
        assert body["retryAfter"] == "42s"
        assert error.headers == {"Retry-After": "42"}
