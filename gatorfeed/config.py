"""Reading and writing the user's configuration file."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional, Union

CONFIG_FILE_NAME = ".gatorconfig.json"

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)
_TIME_PATTERN = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})",
    re.IGNORECASE,
)


class ConfigError(Exception):
    """Raised when the configuration cannot be located, read or written."""


def _now() -> datetime:
    return datetime.now().astimezone()


def _is_zero(moment: datetime) -> bool:
    try:
        return moment == _ZERO_TIME
    except OverflowError:
        return False


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    text = moment.isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def _parse_time(value: Any) -> datetime:
    match = _TIME_PATTERN.fullmatch(value) if isinstance(value, str) else None
    if match is None:
        raise ConfigError(f"error while trying to read json file: invalid time {value!r}")
    base, fraction, zone = match.groups()
    text = base
    if fraction:
        text += "." + fraction[:6].ljust(6, "0")
    text += "+00:00" if zone.upper() == "Z" else zone
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ConfigError(f"error while trying to read json file: {exc}") from exc


def _string_field(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(f"error while trying to read json file: {key!r} must be a string")
    return value


@dataclass
class LastPost:
    """Position of the most recent post shown by the browse command."""

    published_at: datetime = field(default_factory=_now)
    id: int = 0


@dataclass
class Config:
    """User configuration: database location, active user and browse position."""

    db_url: str = ""
    current_user: str = ""
    last_post: LastPost = field(default_factory=LastPost)
    path: Optional[Path] = field(default=None, compare=False, repr=False)

    def set_user(self, user: str) -> None:
        """Make ``user`` the active user and save the file; on failure nothing changes."""
        previous = self.current_user
        self.current_user = user
        try:
            write(self)
        except ConfigError:
            self.current_user = previous
            raise
        self.update_last_post(_now(), 0)

    def update_last_post(self, published_at: datetime, post_id: int) -> None:
        self.last_post.published_at = published_at
        self.last_post.id = post_id

    def to_dict(self) -> dict:
        return {
            "db_url": self.db_url,
            "current_user_name": self.current_user,
            "last_post": {
                "publicated_at": _format_time(self.last_post.published_at),
                "id": self.last_post.id,
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        if not isinstance(data, dict):
            raise ConfigError("error while trying to read json file: expected an object")
        last = data.get("last_post")
        if last is None:
            last = {}
        if not isinstance(last, dict):
            raise ConfigError("error while trying to read json file: 'last_post' must be an object")
        raw_time = last.get("publicated_at")
        published_at = _ZERO_TIME if raw_time is None else _parse_time(raw_time)
        post_id = last.get("id")
        if post_id is None:
            post_id = 0
        if isinstance(post_id, bool) or not isinstance(post_id, int):
            raise ConfigError("error while trying to read json file: 'id' must be an integer")
        return cls(
            db_url=_string_field(data, "db_url"),
            current_user=_string_field(data, "current_user_name"),
            last_post=LastPost(published_at=published_at, id=post_id),
        )


def default_config_path() -> Path:
    """Return the configuration file inside the user's home directory."""
    try:
        home = Path.home()
    except RuntimeError as exc:
        raise ConfigError(f"error while trying to read home dir path: {exc}") from exc
    return home / CONFIG_FILE_NAME


def read(path: Union[str, Path, None] = None) -> Config:
    """Load the configuration file; an unset browse position becomes the present time."""
    target = Path(path) if path is not None else default_config_path()
    try:
        raw = target.read_bytes()
    except OSError as exc:
        raise ConfigError(f"error while trying to read the config file: {exc}") from exc
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise ConfigError(f"error while trying to read json file: {exc}") from exc
    config = Config.from_dict(data)
    if _is_zero(config.last_post.published_at):
        config.last_post.published_at = _now()
    config.path = target
    return config


def write(config: Config, path: Union[str, Path, None] = None) -> None:
    """Save the configuration as tab-indented JSON."""
    if path is not None:
        target = Path(path)
    elif config.path is not None:
        target = config.path
    else:
        target = default_config_path()
    try:
        text = json.dumps(config.to_dict(), indent="\t", ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"error while trying to marshal the json config: {exc}") from exc
    try:
        target.write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ConfigError(
            f"error while trying to write the config into the file: {exc}"
        ) from exc