"""
Personalized feed assembly.

The caller's following list and the post fetch are the primary path: without
them there is no feed, so their failures surface to the caller. Author
lookups are secondary: each one degrades independently to a placeholder.
"""

import asyncio
from typing import Dict, Iterable, List, Optional

from newsfeed_shared.errors import DownstreamError, TransportError, UpstreamError, as_gateway_error
from newsfeed_shared.logging import get_logger
from newsfeed_shared.metrics import MetricsCollector

from .models import AuthorSummary, FeedEntry, FeedResponse, PostSummary

NOT_FOLLOWING_MESSAGE = "You are not following anyone yet. Follow users to see their posts."
NO_POSTS_MESSAGE = "The users you follow have not posted anything yet."
FEED_MESSAGE = "Feed retrieved successfully"


class FeedAggregator:
    """Builds a caller's feed from the User and Post services."""

    def __init__(
        self,
        user_client,
        post_client,
        *,
        default_limit: int = 50,
        max_limit: int = 100,
        author_lookup_concurrency: int = 10,
        author_lookup_timeout: float = 3.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.user_client = user_client
        self.post_client = post_client
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.author_lookup_concurrency = author_lookup_concurrency
        self.author_lookup_timeout = author_lookup_timeout
        self.metrics = metrics
        self.logger = get_logger("gateway.feed")

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            limit = self.default_limit
        return max(1, min(limit, self.max_limit))

    async def build_feed(self, caller_id: int, limit: Optional[int] = None) -> FeedResponse:
        """Assemble the caller's feed, newest posts first.

        Raises ``UpstreamUnavailableError`` when the following list or the post
        fetch fails with a transport error or 5xx, and ``UpstreamRejectedError``
        when either answers with a 4xx.
        """
        limit = self.clamp_limit(limit)

        try:
            following = await self.user_client.get_following(caller_id)
        except DownstreamError as exc:
            self.logger.error("Following lookup failed", caller_id=caller_id, error=str(exc))
            raise as_gateway_error(exc) from exc

        author_ids = sorted(set(following))
        if not author_ids:
            self.logger.info("Caller follows nobody, returning empty feed", caller_id=caller_id)
            return FeedResponse(feed=[], count=0, message=NOT_FOLLOWING_MESSAGE)

        try:
            posts = await self.post_client.get_posts_from_users(author_ids, limit, caller_id=caller_id)
        except DownstreamError as exc:
            self.logger.error("Post fetch failed", caller_id=caller_id, error=str(exc))
            raise as_gateway_error(exc) from exc

        posts = self.order_posts(posts, limit, followed=author_ids)
        if not posts:
            return FeedResponse(feed=[], count=0, message=NO_POSTS_MESSAGE)

        authors = await self.resolve_authors({post.author_id for post in posts}, caller_id)
        feed = [FeedEntry.join(post, authors[post.author_id]) for post in posts]

        self.logger.info(
            "Feed built",
            caller_id=caller_id,
            following=len(author_ids),
            posts=len(feed),
            authors=len(authors)
        )
        return FeedResponse(feed=feed, count=len(feed), message=FEED_MESSAGE)

    def order_posts(
        self,
        posts: Iterable[PostSummary],
        limit: int,
        followed: Optional[Iterable[int]] = None,
    ) -> List[PostSummary]:
        """Deduplicate by post id, order newest first and truncate to ``limit``.

        Posts whose author is not in ``followed`` are dropped.
        """
        allowed = set(followed) if followed is not None else None
        unique: Dict[int, PostSummary] = {}
        for post in posts:
            if allowed is not None and post.author_id not in allowed:
                self.logger.warning("Dropping post from unfollowed author", post_id=post.post_id,
                                    author_id=post.author_id)
                continue
            unique.setdefault(post.post_id, post)

        ordered = sorted(unique.values(), key=PostSummary.sort_key, reverse=True)
        return ordered[:limit]

    async def resolve_authors(self, author_ids: Iterable[int], caller_id: int) -> Dict[int, AuthorSummary]:
        """Look up every author concurrently; failed lookups yield placeholders."""
        semaphore = asyncio.Semaphore(self.author_lookup_concurrency)

        async def _lookup(author_id: int) -> AuthorSummary:
            async with semaphore:
                try:
                    return await self.user_client.get_user(
                        author_id, caller_id=caller_id, timeout=self.author_lookup_timeout
                    )
                except UpstreamError as exc:
                    reason = "not_found" if exc.is_not_found else f"status_{exc.status}"
                except TransportError as exc:
                    reason = exc.kind

            self.logger.warning("Author lookup degraded to placeholder", author_id=author_id, reason=reason)
            if self.metrics is not None:
                self.metrics.increment_counter("feed_degraded_lookups_total", reason=reason)
            return AuthorSummary.placeholder(author_id, deleted=reason == "not_found")

        ids = sorted(set(author_ids))
        results = await asyncio.gather(*(_lookup(author_id) for author_id in ids))
        return dict(zip(ids, results))
