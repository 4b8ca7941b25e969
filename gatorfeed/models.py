"""Records stored in and returned by the feed database."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID


@dataclass(frozen=True)
class User:
    id: UUID
    created_at: datetime
    updated_at: datetime
    name: str


@dataclass(frozen=True)
class Feed:
    id: int
    name: str
    url: str
    user_id: UUID
    created_at: datetime
    updated_at: datetime
    last_fetched_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Return a JSON-serialisable view of the feed."""
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "user_id": str(self.user_id),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "last_fetched_at": (
                None if self.last_fetched_at is None else self.last_fetched_at.isoformat()
            ),
        }


@dataclass(frozen=True)
class FeedFollow:
    id: int
    created_at: datetime
    updated_at: datetime
    user_id: UUID
    feed_id: int


@dataclass(frozen=True)
class FeedFollowRow:
    """A feed follow together with the names of its user and feed."""

    id: int
    created_at: datetime
    updated_at: datetime
    user_id: UUID
    feed_id: int
    username: str
    feed_name: str


@dataclass(frozen=True)
class FeedSummary:
    """A feed's name and URL with the name of the user who added it."""

    rss_name: str
    url: str
    username: str


@dataclass(frozen=True)
class Post:
    id: int
    created_at: datetime
    updated_at: datetime
    title: str
    url: str
    description: Optional[str]
    published_at: datetime
    feed_id: int


@dataclass(frozen=True)
class RecentPost:
    """A post reached through one of the user's feed follows."""

    post: Post
    follow: FeedFollow

    @property
    def id(self) -> int:
        return self.post.id

    @property
    def title(self) -> str:
        return self.post.title

    @property
    def url(self) -> str:
        return self.post.url

    @property
    def published_at(self) -> datetime:
        return self.post.published_at

    @property
    def feed_id(self) -> int:
        return self.post.feed_id

    @property
    def user_id(self) -> UUID:
        return self.follow.user_id


@dataclass(frozen=True)
class Bookmark:
    user_id: UUID
    post_id: int
    created_at: datetime