"""
Unit tests for the shared logging processors.
"""

from newsfeed_shared.logging import (
    add_correlation_context,
    add_service_context,
    clear_context,
    configure_logging,
    set_request_id,
    set_user_context,
)


class TestLoggingContext:
    """Test cases for request correlation."""

    def teardown_method(self):
        clear_context()

    def test_correlation_ids_are_added(self):
        set_request_id("req-1")
        set_user_context("42")

        event = add_correlation_context(None, "info", {"event": "x"})

        assert event["request_id"] == "req-1"
        assert event["user_id"] == "42"

    def test_request_id_is_generated(self):
        """A missing inbound id is replaced by a fresh one."""
        first = set_request_id(None)
        second = set_request_id("")

        assert first and second and first != second

    def test_cleared_context_adds_nothing(self):
        set_request_id("req-1")
        clear_context()

        assert add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_service_name_is_added(self):
        configure_logging("gateway", "info")

        event = add_service_context(None, "info", {"event": "x", "logger": "circuit_breaker.user_service"})

        assert event["service"] == "gateway"
