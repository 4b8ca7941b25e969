"""SQLite-backed storage for users, feeds, follows, posts and bookmarks."""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Sequence
from uuid import UUID

from gatorfeed.models import (
    Bookmark,
    Feed,
    FeedFollow,
    FeedFollowRow,
    FeedSummary,
    Post,
    RecentPost,
    User,
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS feeds (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_fetched_at TEXT
);
CREATE TABLE IF NOT EXISTS feed_follows (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
    UNIQUE (user_id, feed_id)
);
CREATE TABLE IF NOT EXISTS posts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    title TEXT NOT NULL,
    url TEXT NOT NULL UNIQUE,
    description TEXT,
    published_at TEXT NOT NULL,
    feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS bookmarks (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    post_id INTEGER NOT NULL REFERENCES posts(id) ON DELETE CASCADE,
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, post_id)
);
"""

_FEED_COLUMNS = "id, name, url, user_id, created_at, updated_at, last_fetched_at"
_POST_COLUMNS = "id, created_at, updated_at, title, url, description, published_at, feed_id"
_USER_COLUMNS = "id, created_at, updated_at, name"
_BOOKMARK_COLUMNS = "user_id, post_id, created_at"


class StoreError(Exception):
    """Raised when a database operation fails."""


class NotFoundError(StoreError):
    """Raised when a query that must return a row returns none."""


class ConflictError(StoreError):
    """Raised when a write would break a uniqueness rule."""


def _to_db_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: Optional[str]) -> Optional[datetime]:
    return None if value is None else datetime.fromisoformat(value)


def _check_limit(limit: int) -> int:
    if limit < 0:
        raise StoreError("LIMIT must not be negative")
    return limit


def _user(row: sqlite3.Row) -> User:
    return User(
        id=UUID(row["id"]),
        created_at=_from_db_time(row["created_at"]),
        updated_at=_from_db_time(row["updated_at"]),
        name=row["name"],
    )


def _feed(row: sqlite3.Row) -> Feed:
    return Feed(
        id=row["id"],
        name=row["name"],
        url=row["url"],
        user_id=UUID(row["user_id"]),
        created_at=_from_db_time(row["created_at"]),
        updated_at=_from_db_time(row["updated_at"]),
        last_fetched_at=_from_db_time(row["last_fetched_at"]),
    )


def _post(row: sqlite3.Row) -> Post:
    return Post(
        id=row["id"],
        created_at=_from_db_time(row["created_at"]),
        updated_at=_from_db_time(row["updated_at"]),
        title=row["title"],
        url=row["url"],
        description=row["description"],
        published_at=_from_db_time(row["published_at"]),
        feed_id=row["feed_id"],
    )


def _follow_row(row: sqlite3.Row) -> FeedFollowRow:
    return FeedFollowRow(
        id=row["id"],
        created_at=_from_db_time(row["created_at"]),
        updated_at=_from_db_time(row["updated_at"]),
        user_id=UUID(row["user_id"]),
        feed_id=row["feed_id"],
        username=row["username"],
        feed_name=row["feed_name"],
    )


def _bookmark(row: sqlite3.Row) -> Bookmark:
    return Bookmark(
        user_id=UUID(row["user_id"]),
        post_id=row["post_id"],
        created_at=_from_db_time(row["created_at"]),
    )


class Store:
    """Queries over a SQLite connection; safe to share between threads."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._conn = connection
        self._conn.isolation_level = None
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._execute("PRAGMA foreign_keys = ON")

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _execute(self, sql: str, params: Sequence = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.IntegrityError as exc:
            if "UNIQUE" in str(exc):
                raise ConflictError(str(exc)) from exc
            raise StoreError(str(exc)) from exc
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def _one(self, sql: str, params: Sequence = ()) -> sqlite3.Row:
        row = self._execute(sql, params).fetchone()
        if row is None:
            raise NotFoundError("no rows in result set")
        return row

    def _many(self, sql: str, params: Sequence = ()) -> List[sqlite3.Row]:
        try:
            return self._execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def create_schema(self) -> None:
        """Create the tables if they do not exist yet."""
        with self._lock:
            try:
                self._conn.executescript(_SCHEMA)
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    @contextmanager
    def transaction(self) -> Iterator["Store"]:
        """Run the enclosed queries atomically; nested blocks join the outer one."""
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            self._execute("BEGIN")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._conn.rollback()
                raise
            else:
                try:
                    self._conn.commit()
                except sqlite3.Error as exc:
                    raise StoreError(str(exc)) from exc
            finally:
                self._depth = 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # users

    def create_user(
        self, user_id: UUID, created_at: datetime, updated_at: datetime, name: str
    ) -> User:
        with self._lock:
            self._execute(
                "INSERT INTO users (id, created_at, updated_at, name) VALUES (?, ?, ?, ?)",
                (str(user_id), _to_db_time(created_at), _to_db_time(updated_at), name),
            )
            return _user(
                self._one(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (str(user_id),))
            )

    def delete_all_users(self) -> None:
        with self._lock:
            self._execute("DELETE FROM users")

    def get_user(self, name: str) -> User:
        with self._lock:
            return _user(self._one(f"SELECT {_USER_COLUMNS} FROM users WHERE name = ?", (name,)))

    def get_users(self) -> List[User]:
        with self._lock:
            return [_user(row) for row in self._many(f"SELECT {_USER_COLUMNS} FROM users")]

    # feeds

    def create_feed(
        self,
        name: str,
        url: str,
        user_id: UUID,
        created_at: datetime,
        updated_at: datetime,
    ) -> Feed:
        with self._lock:
            cursor = self._execute(
                "INSERT INTO feeds (name, url, user_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (name, url, str(user_id), _to_db_time(created_at), _to_db_time(updated_at)),
            )
            return self.get_feed_by_id(cursor.lastrowid)

    def get_all_feeds(self) -> List[FeedSummary]:
        with self._lock:
            rows = self._many(
                "SELECT feeds.name AS rss_name, feeds.url AS url, users.name AS username "
                "FROM users INNER JOIN feeds ON users.id = feeds.user_id "
                "ORDER BY feeds.id"
            )
            return [
                FeedSummary(rss_name=row["rss_name"], url=row["url"], username=row["username"])
                for row in rows
            ]

    def get_feed(self, url: str) -> Feed:
        with self._lock:
            return _feed(self._one(f"SELECT {_FEED_COLUMNS} FROM feeds WHERE url = ?", (url,)))

    def get_feed_by_id(self, feed_id: int) -> Feed:
        with self._lock:
            return _feed(
                self._one(f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (feed_id,))
            )

    def get_next_feed_to_fetch(self) -> Feed:
        """Return a never-fetched feed if any, else the one fetched longest ago."""
        with self._lock:
            return _feed(
                self._one(
                    f"SELECT {_FEED_COLUMNS} FROM feeds "
                    "ORDER BY last_fetched_at IS NOT NULL, last_fetched_at, id LIMIT 1"
                )
            )

    def mark_feed_fetched(self, feed_id: int, last_fetched_at: Optional[datetime]) -> None:
        value = None if last_fetched_at is None else _to_db_time(last_fetched_at)
        with self._lock:
            self._execute("UPDATE feeds SET last_fetched_at = ? WHERE id = ?", (value, feed_id))

    # feed follows

    def create_feed_follow(
        self, created_at: datetime, updated_at: datetime, user_id: UUID, feed_id: int
    ) -> FeedFollowRow:
        with self._lock:
            cursor = self._execute(
                "INSERT INTO feed_follows (created_at, updated_at, user_id, feed_id) "
                "VALUES (?, ?, ?, ?)",
                (_to_db_time(created_at), _to_db_time(updated_at), str(user_id), feed_id),
            )
            return _follow_row(
                self._one(
                    "SELECT feed_follows.id AS id, feed_follows.created_at AS created_at, "
                    "feed_follows.updated_at AS updated_at, feed_follows.user_id AS user_id, "
                    "feed_follows.feed_id AS feed_id, users.name AS username, "
                    "feeds.name AS feed_name "
                    "FROM feed_follows "
                    "INNER JOIN users ON feed_follows.user_id = users.id "
                    "INNER JOIN feeds ON feed_follows.feed_id = feeds.id "
                    "WHERE feed_follows.id = ?",
                    (cursor.lastrowid,),
                )
            )

    def get_feed_follows_for_user(self, name: str) -> List[FeedFollowRow]:
        with self._lock:
            rows = self._many(
                "SELECT feed_follows.id AS id, users.name AS username, "
                "feeds.name AS feed_name, feed_follows.created_at AS created_at, "
                "feed_follows.updated_at AS updated_at, feed_follows.user_id AS user_id, "
                "feed_follows.feed_id AS feed_id "
                "FROM feed_follows "
                "INNER JOIN users ON feed_follows.user_id = users.id "
                "INNER JOIN feeds ON feed_follows.feed_id = feeds.id "
                "WHERE users.name = ? ORDER BY feed_follows.id",
                (name,),
            )
            return [_follow_row(row) for row in rows]

    def unfollow_feed(self, user_id: UUID, feed_id: int) -> None:
        with self._lock:
            self._execute(
                "DELETE FROM feed_follows WHERE user_id = ? AND feed_id = ?",
                (str(user_id), feed_id),
            )

    # posts

    def create_post(
        self,
        created_at: datetime,
        updated_at: datetime,
        title: str,
        url: str,
        description: Optional[str],
        published_at: datetime,
        feed_id: int,
    ) -> Post:
        with self._lock:
            cursor = self._execute(
                "INSERT INTO posts (created_at, updated_at, title, url, description, "
                "published_at, feed_id) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    _to_db_time(created_at),
                    _to_db_time(updated_at),
                    title,
                    url,
                    description,
                    _to_db_time(published_at),
                    feed_id,
                ),
            )
            return _post(
                self._one(
                    f"SELECT {_POST_COLUMNS} FROM posts WHERE id = ?", (cursor.lastrowid,)
                )
            )

    def get_posts_for_user(self, user_id: UUID, limit: int) -> List[Post]:
        with self._lock:
            rows = self._many(
                f"SELECT {_POST_COLUMNS} FROM posts "
                "WHERE feed_id IN (SELECT feed_follows.feed_id FROM feed_follows "
                "INNER JOIN users ON feed_follows.user_id = users.id WHERE users.id = ?) "
                "LIMIT ?",
                (str(user_id), _check_limit(limit)),
            )
            return [_post(row) for row in rows]

    def get_recent_posts_for_user(
        self, user_id: UUID, published_before: datetime, limit: int
    ) -> List[RecentPost]:
        """Posts of the user's followed feeds published before a moment, newest first."""
        with self._lock:
            rows = self._many(
                "SELECT posts.id, posts.created_at, posts.updated_at, posts.title, posts.url, "
                "posts.description, posts.published_at, posts.feed_id, "
                "feed_follows.id AS follow_id, feed_follows.created_at AS follow_created_at, "
                "feed_follows.updated_at AS follow_updated_at, feed_follows.user_id, "
                "feed_follows.feed_id AS follow_feed_id "
                "FROM posts INNER JOIN feed_follows ON posts.feed_id = feed_follows.feed_id "
                "WHERE feed_follows.user_id = ? AND posts.published_at < ? "
                "ORDER BY posts.published_at DESC LIMIT ?",
                (str(user_id), _to_db_time(published_before), _check_limit(limit)),
            )
            return [
                RecentPost(
                    post=_post(row),
                    follow=FeedFollow(
                        id=row["follow_id"],
                        created_at=_from_db_time(row["follow_created_at"]),
                        updated_at=_from_db_time(row["follow_updated_at"]),
                        user_id=UUID(row["user_id"]),
                        feed_id=row["follow_feed_id"],
                    ),
                )
                for row in rows
            ]

    # bookmarks

    def add_bookmark(self, user_id: UUID, post_id: int) -> Bookmark:
        with self._lock:
            self._execute(
                "INSERT INTO bookmarks (user_id, post_id, created_at) VALUES (?, ?, ?)",
                (str(user_id), post_id, _to_db_time(datetime.now(timezone.utc))),
            )
            return self.user_has_bookmark(user_id, post_id)

    def get_user_bookmarks(
        self, user_id: UUID, created_before: datetime, post_id: int, limit: int
    ) -> List[Bookmark]:
        moment = _to_db_time(created_before)
        with self._lock:
            rows = self._many(
                f"SELECT {_BOOKMARK_COLUMNS} FROM bookmarks "
                "WHERE user_id = ? AND (created_at < ? OR (created_at < ? AND post_id < ?)) "
                "ORDER BY created_at DESC, post_id DESC LIMIT ?",
                (str(user_id), moment, moment, post_id, _check_limit(limit)),
            )
            return [_bookmark(row) for row in rows]

    def remove_bookmark(self, user_id: UUID, post_id: int) -> None:
        with self._lock:
            self._execute(
                "DELETE FROM bookmarks WHERE user_id = ? AND post_id = ?",
                (str(user_id), post_id),
            )

    def user_has_bookmark(self, user_id: UUID, post_id: int) -> Bookmark:
        with self._lock:
            return _bookmark(
                self._one(
                    f"SELECT {_BOOKMARK_COLUMNS} FROM bookmarks "
                    "WHERE user_id = ? AND post_id = ?",
                    (str(user_id), post_id),
                )
            )


def connect(url: str) -> Store:
    """Open the SQLite database named by ``url`` and make sure its tables exist.

    Accepted forms: ``sqlite://`` or ``:memory:`` for an in-memory database,
    ``sqlite:///relative/path``, ``sqlite:////absolute/path`` or a plain file path.
    """
    if not url:
        raise StoreError("no database url configured")
    if url in (":memory:", "sqlite://", "sqlite:///:memory:"):
        target = ":memory:"
    elif url.startswith("sqlite:///"):
        target = url[len("sqlite:///"):]
    elif "://" in url:
        raise StoreError(f"unsupported database url: {url!r}")
    else:
        target = url
    try:
        connection = sqlite3.connect(target, check_same_thread=False)
    except sqlite3.Error as exc:
        raise StoreError(str(exc)) from exc
    store = Store(connection)
    store.create_schema()
    return store