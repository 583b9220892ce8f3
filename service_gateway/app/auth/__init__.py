"""
Authentication helpers for the Newsfeed Gateway service.
"""

from .token_verifier import Identity, TokenVerifier

__all__ = [
    "Identity",
    "TokenVerifier",
]
