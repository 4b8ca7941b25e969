"""Command registry and the handlers behind each command."""

from __future__ import annotations

import functools
import json
import re
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from gatorfeed.config import Config
from gatorfeed.models import User
from gatorfeed.rss import FeedError, RSSFeed, fetch_feed
from gatorfeed.store import Store, StoreError

DEFAULT_BROWSE_LIMIT = 2

_RFC1123Z = "Mon, 02 Jan 2006 15:04:05 -0700"
_MONTHS = {
    name: number
    for number, name in enumerate(
        ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"),
        start=1,
    )
}
_PUB_DATE = re.compile(
    r"(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun), (\d{2}) ("
    + "|".join(_MONTHS)
    + r") (\d{4}) (\d{2}):(\d{2}):(\d{2})(?:\.(\d+))? ([+-])(\d{2})(\d{2})"
)

_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_DURATION_PART = re.compile(r"(\d*\.?\d*)([^\d.]*)")
_INTEGER = re.compile(r"[+-]?\d+")


class CommandError(Exception):
    """Raised when a command is unknown, malformed or cannot be carried out."""


@dataclass
class Command:
    """A command name with its arguments."""

    name: str
    args: List[str] = field(default_factory=list)


@dataclass
class State:
    """Everything a command handler works with."""

    config: Config
    store: Store
    fetch: Callable[[str], RSSFeed] = fetch_feed
    sleep: Callable[[float], None] = time.sleep


Handler = Callable[[State, Command], None]
UserHandler = Callable[[State, Command, User], None]


def command_from_args(argv: Optional[Sequence[str]] = None) -> Command:
    """Build a command from the arguments following the program name."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        raise CommandError("no arguments provided")
    return Command(name=args[0], args=args[1:])


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``1m30s``, ``1.5h`` or ``500ms``."""
    invalid = CommandError(f'time: invalid duration "{text}"')
    rest = text
    negative = False
    if rest[:1] in ("+", "-") and rest:
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise invalid

    total = Decimal(0)
    position = 0
    while position < len(rest):
        match = _DURATION_PART.match(rest, position)
        number, unit = match.group(1), match.group(2)
        if number in ("", "."):
            raise invalid
        if not unit:
            raise CommandError(f'time: missing unit in duration "{text}"')
        if unit not in _DURATION_UNITS:
            raise CommandError(f'time: unknown unit "{unit}" in duration "{text}"')
        try:
            total += Decimal(number) * _DURATION_UNITS[unit]
        except InvalidOperation as exc:
            raise invalid from exc
        position = match.end()

    nanoseconds = int(total)
    if negative:
        nanoseconds = -nanoseconds
    return timedelta(microseconds=int(nanoseconds / 1000))


def _parse_int(text: str) -> int:
    if not _INTEGER.fullmatch(text):
        raise CommandError(f'invalid number "{text}"')
    return int(text)


def _parse_pub_date(text: str) -> datetime:
    match = _PUB_DATE.fullmatch(text)
    if match is None:
        raise ValueError(f'parsing time "{text}" as "{_RFC1123Z}": cannot parse')
    day, month, year, hour, minute, second, fraction, sign, off_h, off_m = match.groups()
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    try:
        offset = timedelta(hours=int(off_h), minutes=int(off_m))
        zone = timezone(-offset if sign == "-" else offset)
        return datetime(
            int(year),
            _MONTHS[month],
            int(day),
            int(hour),
            int(minute),
            int(second),
            microsecond,
            tzinfo=zone,
        )
    except ValueError as exc:
        raise ValueError(f'parsing time "{text}": {exc}') from exc


def logged_in(handler: UserHandler) -> Handler:
    """Wrap a handler so that it receives the active user, who must be registered."""

    @functools.wraps(handler)
    def wrapper(state: State, command: Command) -> None:
        name = state.config.current_user
        try:
            user = state.store.get_user(name)
        except StoreError as exc:
            raise CommandError(f"User '{name}' is not registered") from exc
        handler(state, command, user)

    return wrapper


def scrape_feeds(state: State) -> None:
    """Fetch the feed due next and store its posts."""
    feed = state.store.get_next_feed_to_fetch()
    now = datetime.now(timezone.utc)
    try:
        document = state.fetch(feed.url)
    except FeedError:
        state.store.mark_feed_fetched(feed.id, now)
        raise

    items = document.channel.items
    print(f"Fetching {len(items)} posts...")
    for item in items:
        try:
            published_at = _parse_pub_date(item.pub_date)
        except ValueError as exc:
            print(f"bad formatted publication time: {exc}")
            continue
        try:
            state.store.create_post(
                created_at=now,
                updated_at=now,
                title=item.title,
                url=item.link,
                description=item.description,
                published_at=published_at,
                feed_id=feed.id,
            )
        except StoreError:
            # Posts already stored from an earlier fetch are skipped.
            continue
    state.store.mark_feed_fetched(feed.id, now)


def handle_login(state: State, command: Command) -> None:
    """Make an existing user the active one."""
    if not command.args:
        raise CommandError("error when executing 'login' command: no arguments provided")
    name = command.args[0]
    state.store.get_user(name)
    state.config.set_user(name)
    print(f"User set to: {name}")


def handle_register(state: State, command: Command) -> None:
    """Create a user and make it the active one."""
    if not command.args:
        raise CommandError("no name provided in register command")
    now = datetime.now(timezone.utc)
    name = command.args[0]
    state.store.create_user(uuid4(), now, now, name)
    print("User successfully created!")
    state.config.set_user(name)
    print(f"Current user: {name}")


def handle_reset(state: State, command: Command) -> None:
    """Delete every user, and with them everything they own."""
    state.store.delete_all_users()
    print("Database successfully reset!")


def handle_users(state: State, command: Command) -> None:
    """List all users, marking the active one."""
    for user in state.store.get_users():
        suffix = " (current)" if user.name == state.config.current_user else ""
        print(f"* {user.name}{suffix}")


def handle_agg(state: State, command: Command) -> None:
    """Scrape feeds forever, one every given interval."""
    if not command.args:
        raise CommandError("error in agg command: you need to specify the time between fetch")
    try:
        interval = parse_duration(command.args[0])
    except CommandError as exc:
        raise CommandError(f"error in agg command: {exc}") from exc
    if interval <= timedelta(0):
        raise CommandError("error in agg command: non-positive interval")

    seconds = interval.total_seconds()
    while True:
        try:
            scrape_feeds(state)
        except (StoreError, FeedError) as exc:
            print(f"error in agg command: {exc}")
        state.sleep(seconds)


def handle_feeds(state: State, command: Command) -> None:
    """List every feed with the user who added it."""
    print("All feeds:")
    for index, entry in enumerate(state.store.get_all_feeds()):
        print(f"{index}:")
        print(f"FeedName: {entry.rss_name}")
        print(f"Url: {entry.url}")
        print(f"UserName: {entry.username}")
        print("\n\n-----------\n")


def handle_addfeed(state: State, command: Command, user: User) -> None:
    """Add a feed by name and URL, and follow it."""
    if len(command.args) < 2:
        raise CommandError(
            "error on addfeed command: not enough arguments. "
            f"Expected 2, found {len(command.args)}"
        )
    name, url = command.args[0], command.args[1]
    now = datetime.now(timezone.utc)
    try:
        feed = state.store.create_feed(name, url, user.id, now, now)
    except StoreError as exc:
        raise CommandError(f"error while creating the feed: {exc}") from exc
    print("New feed created:")
    print(json.dumps(feed.to_dict(), indent="\t"))
    handle_follow(state, Command(command.name, [url, *command.args[1:]]), user)


def handle_follow(state: State, command: Command, user: User) -> None:
    """Follow the feed with the given URL."""
    if not command.args:
        raise CommandError(
            "error in follow command: not enough arguments. Expected 1, received 0"
        )
    url = command.args[0]
    try:
        feed = state.store.get_feed(url)
    except StoreError as exc:
        raise CommandError(
            f"error in follow command: the '{url}' feed is not registered yet"
        ) from exc
    now = datetime.now(timezone.utc)
    try:
        follow = state.store.create_feed_follow(now, now, user.id, feed.id)
    except StoreError as exc:
        raise CommandError(
            f"error in follow command: '{user.name}' already follows '{feed.name}'"
        ) from exc
    print(f"'{follow.username}' is now following '{follow.feed_name}'")


def handle_following(state: State, command: Command, user: User) -> None:
    """List the feeds the active user follows."""
    follows = state.store.get_feed_follows_for_user(user.name)
    print(f"'{state.config.current_user}' is following:")
    for follow in follows:
        print(f"* {follow.feed_name}")


def handle_unfollow(state: State, command: Command, user: User) -> None:
    """Stop following the feed with the given URL."""
    if not command.args:
        raise CommandError("error in unfollow command: no url specified")
    try:
        feed = state.store.get_feed(command.args[0])
    except StoreError as exc:
        raise CommandError(
            "error in unfollow command: the specified feed url is not registered"
        ) from exc
    state.store.unfollow_feed(user.id, feed.id)
    print(f"'{user.name}' doesn't follow '{feed.name}' anymore")


def handle_browse(state: State, command: Command, user: User) -> None:
    """Show the next posts older than the last one shown, newest first."""
    limit = DEFAULT_BROWSE_LIMIT
    if command.args:
        limit = _parse_int(command.args[0])
    posts = state.store.get_recent_posts_for_user(
        user.id, state.config.last_post.published_at, limit
    )
    if not posts:
        print("No recent posts")
        state.config.update_last_post(datetime.now().astimezone(), 0)
        return
    for post in posts:
        print(f"* {post.title} - ID: {post.id}")
    last = posts[-1]
    state.config.update_last_post(last.published_at, last.id)


def handle_bookmark(state: State, command: Command, user: User) -> None:
    """Bookmark the post with the given id."""
    if not command.args:
        raise CommandError("no post id provided in bookmark command")
    post_id = _parse_int(command.args[0])
    state.store.add_bookmark(user.id, post_id)
    print(f"Bookmark created on post with id - {post_id}")


class Commands:
    """Registry mapping command names to their handlers."""

    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {}
        self.register("login", handle_login)
        self.register("register", handle_register)
        self.register("reset", handle_reset)
        self.register("users", handle_users)
        self.register("agg", handle_agg)
        self.register("addfeed", logged_in(handle_addfeed))
        self.register("feeds", handle_feeds)
        self.register("follow", logged_in(handle_follow))
        self.register("following", logged_in(handle_following))
        self.register("unfollow", logged_in(handle_unfollow))
        self.register("browse", logged_in(handle_browse))
        self.register("bookmark", logged_in(handle_bookmark))

    def register(self, name: str, handler: Handler) -> None:
        """Register a handler, replacing any previous one of the same name."""
        self._handlers[name] = handler

    def run(self, state: State, command: Command) -> None:
        """Run the handler registered for the command's name."""
        handler = self._handlers.get(command.name)
        if handler is None:
            raise CommandError(
                "error while trying to execute a command: "
                f"the command '{command.name}' is invalid"
            )
        handler(state, command)