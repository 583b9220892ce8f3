"""
Domain utilities for the Gateway Service.

Includes the request gate, the payload models, and the feed and profile
aggregators. The aggregators are imported from their modules directly, since
they sit above the adapters.
"""

from .auth_middleware import AuthGate, get_identity
from .models import AuthorSummary, FeedEntry, FeedResponse, PostSummary, ProfileResponse

__all__ = [
    "AuthGate",
    "AuthorSummary",
    "FeedEntry",
    "FeedResponse",
    "PostSummary",
    "ProfileResponse",
    "get_identity",
]
