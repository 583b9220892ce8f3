"""
User Service client for Gateway.
"""

from typing import Any, List, Optional

from pydantic import ValidationError as PayloadValidationError

from ..domain.models import AuthorSummary
from .service_client import ServiceClient

FOLLOWING_ID_KEYS = ("userId", "user_id", "followingId", "following_id", "id")


class UserServiceClient(ServiceClient):
    """Calls the User Service on behalf of an authenticated caller."""

    def __init__(self, base_url: str, internal_secret: str, **kwargs):
        super().__init__("user_service", base_url, internal_secret, **kwargs)

    async def get_following(self, user_id: int) -> List[int]:
        """Ids the caller follows, in upstream order (may contain repeats).

        The User Service resolves the caller from ``x-user-id``.
        """
        path = "/users/following"
        payload = await self.get_json(path, user_id=user_id, retry=True)
        if not isinstance(payload, dict) or not isinstance(payload.get("following"), list):
            raise self.invalid_payload(path, payload)

        following = []
        for item in payload["following"]:
            followed_id = self._coerce_id(item)
            if followed_id is None:
                self.logger.warning("Skipping malformed following entry", entry=repr(item)[:100])
                continue
            following.append(followed_id)
        return following

    async def get_user(
        self,
        user_id: int,
        caller_id: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> AuthorSummary:
        """Public profile fields for one user."""
        path = f"/users/{user_id}"
        payload = await self.get_json(path, user_id=caller_id, timeout=timeout)
        if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
            payload = payload["user"]
        if not isinstance(payload, dict):
            raise self.invalid_payload(path, payload)

        try:
            return AuthorSummary.model_validate(payload)
        except PayloadValidationError:
            raise self.invalid_payload(path, payload)

    async def get_follower_count(self, caller_id: int, timeout: Optional[float] = None) -> int:
        """Number of followers of the caller."""
        path = "/users/followers"
        payload = await self.get_json(path, user_id=caller_id, timeout=timeout)
        if isinstance(payload, dict):
            if isinstance(payload.get("count"), int):
                return payload["count"]
            if isinstance(payload.get("followers"), list):
                return len(payload["followers"])
        raise self.invalid_payload(path, payload)

    async def get_following_count(self, caller_id: int) -> int:
        """Number of distinct users the caller follows."""
        return len(set(await self.get_following(caller_id)))

    @staticmethod
    def _coerce_id(item: Any) -> Optional[int]:
        if isinstance(item, dict):
            item = next((item[key] for key in FOLLOWING_ID_KEYS if item.get(key) is not None), None)
        if item is None or isinstance(item, bool):
            return None
        try:
            value = int(item)
        except (TypeError, ValueError):
            return None
        return value if value >= 1 else None
