"""
Post Service client for Gateway.
"""

from typing import Any, Iterable, List, Optional

from pydantic import ValidationError as PayloadValidationError

from ..domain.models import PostSummary
from .service_client import ServiceClient


class PostServiceClient(ServiceClient):
    """Calls the Post Service on behalf of an authenticated caller."""

    def __init__(self, base_url: str, internal_secret: str, **kwargs):
        super().__init__("post_service", base_url, internal_secret, **kwargs)

    async def get_posts_from_users(
        self,
        author_ids: Iterable[int],
        limit: int,
        caller_id: Optional[int] = None,
    ) -> List[PostSummary]:
        """Most recent posts by any of ``author_ids``, at most ``limit`` of them."""
        path = "/posts/from-users"
        params = {"ids": ",".join(str(author_id) for author_id in author_ids), "limit": limit}
        payload = await self.get_json(path, user_id=caller_id, params=params, retry=True)
        if not isinstance(payload, dict) or not isinstance(payload.get("posts"), list):
            raise self.invalid_payload(path, payload)
        return self._parse_posts(payload["posts"])

    async def get_posts_by_user(
        self,
        user_id: int,
        caller_id: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> List[PostSummary]:
        """All posts authored by one user."""
        path = f"/posts/by-user/{user_id}"
        payload = await self.get_json(path, user_id=caller_id, timeout=timeout)
        if isinstance(payload, dict):
            payload = payload.get("data", payload.get("posts"))
        if not isinstance(payload, list):
            raise self.invalid_payload(path, payload)
        return self._parse_posts(payload)

    def _parse_posts(self, records: List[Any]) -> List[PostSummary]:
        posts = []
        for record in records:
            try:
                posts.append(PostSummary.model_validate(record))
            except PayloadValidationError as e:
                self.logger.warning("Skipping malformed post record", error_count=e.error_count())
        return posts
