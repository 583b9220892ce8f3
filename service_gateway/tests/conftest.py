"""
Shared fixtures for the Gateway tests.
"""

import pytest

from newsfeed_shared.config import get_config

from factories import (
    POST_SERVICE_URL,
    TEST_INTERNAL_SECRET,
    TEST_JWT_SECRET,
    USER_SERVICE_URL,
    TokenFactory,
)


@pytest.fixture
def gateway_config():
    """Gateway configuration pointing at fake downstream services."""
    return get_config(
        "gateway",
        3000,
        env="test",
        jwt_secret=TEST_JWT_SECRET,
        internal_secret=TEST_INTERNAL_SECRET,
        user_service_url=USER_SERVICE_URL,
        post_service_url=POST_SERVICE_URL,
        rate_limit_backend="memory",
        downstream_retry_attempts=1,
        downstream_retry_base_delay=0.0,
    )


@pytest.fixture
def token_factory():
    """Token factory sharing the gateway's secret."""
    return TokenFactory()
