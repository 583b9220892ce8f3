"""
Payload models exchanged with the User and Post services and returned by the
gateway's aggregate routes.

Downstream services are not consistent about key casing, so each field accepts
the camelCase and snake_case spellings and always serializes as camelCase.
"""

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

UNKNOWN_USER = "Unknown User"
DELETED_USER = "Deleted User"


def _alias(*names: str) -> dict:
    return {
        "validation_alias": AliasChoices(*names),
        "serialization_alias": names[0],
    }


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")


class PostSummary(_Payload):
    """A post as returned by the Post Service."""

    post_id: int = Field(**_alias("postId", "post_id", "id"))
    author_id: int = Field(**_alias("authorId", "author_id", "author"))
    title: Optional[str] = None
    content: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    media_url: Optional[str] = Field(default=None, **_alias("mediaUrl", "media_url"))
    created_at: datetime = Field(**_alias("createdAt", "created_at"))

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, value):
        return [] if value is None else value

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def sort_key(self):
        """Newest first, ties broken by the higher post id."""
        return (self.created_at, self.post_id)


class AuthorSummary(_Payload):
    """Public author fields as returned by the User Service."""

    user_id: int = Field(**_alias("userId", "user_id", "id"))
    username: str
    first_name: Optional[str] = Field(default=None, **_alias("firstName", "first_name", "firstname"))
    last_name: Optional[str] = Field(default=None, **_alias("lastName", "last_name", "lastname"))

    @classmethod
    def placeholder(cls, user_id: int, *, deleted: bool = False) -> "AuthorSummary":
        """Stand-in used when an author cannot be resolved."""
        return cls(user_id=user_id, username=DELETED_USER if deleted else UNKNOWN_USER)


class FeedEntry(PostSummary):
    """A post joined with its (possibly placeholder) author."""

    author: AuthorSummary

    @classmethod
    def join(cls, post: PostSummary, author: AuthorSummary) -> "FeedEntry":
        return cls(**post.model_dump(), author=author)


class FeedResponse(_Payload):
    feed: List[FeedEntry]
    count: int
    message: str


class ProfileResponse(_Payload):
    """Aggregated profile view of one user."""

    user_id: int = Field(**_alias("userId", "user_id"))
    username: str
    first_name: Optional[str] = Field(default=None, **_alias("firstName", "first_name"))
    last_name: Optional[str] = Field(default=None, **_alias("lastName", "last_name"))
    followers: Optional[int] = None
    following: Optional[int] = None
    posts: List[PostSummary] = Field(default_factory=list)
    post_count: int = Field(default=0, **_alias("postCount", "post_count"))
