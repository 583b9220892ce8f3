"""
Adapters package for the Gateway Service.

Contains HTTP client wrappers for the User and Post services. These adapters
encapsulate:

- Base URLs and request shapes
- Timeouts, retry policies and circuit breakers
- Mapping of failures onto the two downstream error kinds

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .post_client import PostServiceClient
from .service_client import ServiceClient, ServiceResponse
from .user_client import UserServiceClient

__all__ = [
    "PostServiceClient",
    "ServiceClient",
    "ServiceResponse",
    "UserServiceClient",
]
