"""Entry point of the gator command line."""

from __future__ import annotations

import sys
from typing import Optional, Sequence

from gatorfeed import config as config_file
from gatorfeed.commands import CommandError, Commands, State, command_from_args
from gatorfeed.config import ConfigError
from gatorfeed.rss import FeedError
from gatorfeed.store import StoreError, connect


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run one command and save the configuration; return the exit status."""
    try:
        cfg = config_file.read()
    except ConfigError as exc:
        print(exc)
        return 1

    try:
        store = connect(cfg.db_url)
    except StoreError as exc:
        print(exc, file=sys.stderr)
        return 1

    with store:
        try:
            command = command_from_args(argv)
            Commands().run(State(config=cfg, store=store), command)
            config_file.write(cfg)
        except (CommandError, StoreError, ConfigError, FeedError) as exc:
            print(exc, file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            return 130
    return 0


if __name__ == "__main__":
    raise SystemExit(main())