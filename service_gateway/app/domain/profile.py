"""
Profile aggregation: user details plus posts and, for the caller's own
profile, follower and following counts.
"""

import asyncio
from typing import Any, Awaitable, Optional

from newsfeed_shared.errors import DownstreamError, ValidationError, as_gateway_error
from newsfeed_shared.logging import get_logger

from .models import ProfileResponse


def parse_user_id(raw: Any) -> int:
    """Validate a user id taken from a path segment."""
    try:
        user_id = int(str(raw).strip())
    except (TypeError, ValueError):
        raise ValidationError("Invalid or missing user id")
    if user_id < 1:
        raise ValidationError("Invalid or missing user id")
    return user_id


class ProfileAggregator:
    """Builds the profile view of one user."""

    def __init__(self, user_client, post_client, *, secondary_timeout: float = 3.0):
        self.user_client = user_client
        self.post_client = post_client
        self.secondary_timeout = secondary_timeout
        self.logger = get_logger("gateway.profile")

    async def build_profile(self, user_id: int, caller_id: int) -> ProfileResponse:
        """User details are required; everything else degrades."""
        try:
            user = await self.user_client.get_user(user_id, caller_id=caller_id)
        except DownstreamError as exc:
            raise as_gateway_error(exc) from exc

        own_profile = user_id == caller_id
        posts, followers, following = await asyncio.gather(
            self._secondary(
                "posts",
                self.post_client.get_posts_by_user(user_id, caller_id=caller_id, timeout=self.secondary_timeout),
                default=[],
            ),
            self._secondary(
                "followers",
                self.user_client.get_follower_count(caller_id, timeout=self.secondary_timeout),
            ) if own_profile else _none(),
            self._secondary(
                "following",
                self.user_client.get_following_count(caller_id),
            ) if own_profile else _none(),
        )

        return ProfileResponse(
            user_id=user.user_id,
            username=user.username,
            first_name=user.first_name,
            last_name=user.last_name,
            followers=followers,
            following=following,
            posts=posts,
            post_count=len(posts),
        )

    async def _secondary(self, part: str, call: Awaitable[Any], default: Any = None) -> Any:
        try:
            return await call
        except DownstreamError as exc:
            self.logger.warning("Profile section degraded", part=part, error=str(exc))
            return default


async def _none() -> None:
    return None
