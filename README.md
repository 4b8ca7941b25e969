# gatorfeed

A small command-line RSS aggregator. Register users, add feeds, follow
the feeds you care about, let the aggregator collect posts, then browse
and bookmark the newest ones. Everything is kept in a SQLite database.

## Installation

```
pip install .
```

This installs the `gator` command. There are no third-party
dependencies.

## Configuration

`gator` reads its settings from `.gatorconfig.json` in your home
directory and writes them back after every successful command. The
file must exist before the first run. A minimal file looks like this:

```json
{
	"db_url": "/home/me/gator.db",
	"current_user_name": ""
}
```

- `db_url` names the SQLite database. It may be a plain file path,
  `sqlite:///relative/path`, `sqlite:////absolute/path`, or
  `sqlite://` / `:memory:` for a throwaway in-memory database. Any other
  `scheme://` URL is rejected. The tables are created on first use.
- `current_user_name` is the user commands act as; `login` and
  `register` update it for you.
- `last_post` is kept by `gator` itself to remember where browsing
  stopped (`publicated_at` and `id`); you do not need to write it.

## Usage

```
gator <command> [arguments...]
```

### Users

```
gator register alice      # create a user and log in as them
gator login alice         # switch to an existing user
gator users               # list users, marking the current one with "(current)"
gator reset               # delete every user, and everything they own
```

### Feeds

```
gator addfeed "Example Blog" https://blog.example.com/rss.xml
gator feeds                                   # every feed and who added it
gator follow https://blog.example.com/rss.xml
gator following                               # feeds the current user follows
gator unfollow https://blog.example.com/rss.xml
```

`addfeed` registers a feed, prints it as JSON and makes the current user
follow it. Feed URLs are unique: adding one that already exists is an
error, and so is following a feed twice.

### Collecting posts

```
gator agg 1m
```

`agg` runs until interrupted (Ctrl-C exits with status 130). It scrapes
once straight away and then once per interval. The interval is a
positive duration made of numbers with units `ns`, `us` (or `µs`),
`ms`, `s`, `m` and `h`, such as `30s`, `1.5h` or `1h30m`.

Each scrape fetches the feed that has never been fetched, or else the
one fetched longest ago, stores its posts and marks it fetched. Items
whose `pubDate` is not an RFC 1123 date with a numeric zone (for
example `Mon, 02 Jan 2006 15:04:05 -0700`) are skipped with a message;
posts whose URL is already stored are skipped silently. Fetch and
database errors are printed and the loop carries on.

### Reading

```
gator browse        # the next 2 posts from feeds you follow
gator browse 10     # the next 10
gator bookmark 42   # bookmark the post with id 42
```

`browse` pages backwards through time: each call shows posts published
before the last one you saw, newest first, as `* <title> - ID: <id>`.
When nothing older is left it prints `No recent posts` and starts over
from the present on the next call. Logging in or registering resets
the position.

`bookmark` needs the id of a stored post; bookmarking a post that does
not exist, or the same post twice, is an error.

Commands other than `register`, `login`, `users`, `reset`, `agg` and
`feeds` need a logged-in user that exists in the database.

## Errors

A config file that cannot be read or parsed is reported on standard
output. Any other failure — an unknown command, missing arguments, an
unknown user or feed, a duplicate follow, a bad duration — is reported
on standard error. In every such case `gator` exits with status 1 and
the config file is left as it was.

## Using it as a library

- `gatorfeed.config`: `read(path)`, `write(config, path)` and the
  `Config` dataclass, with `set_user` and `update_last_post`.
- `gatorfeed.store`: `connect(url)` returns a `Store` with query
  methods for users, feeds, follows, posts and bookmarks, plus a
  `transaction()` context manager. Failures raise `StoreError`, with
  `NotFoundError` and `ConflictError` for missing rows and uniqueness
  clashes.
- `gatorfeed.rss`: `parse_feed(data)` decodes an RSS document and
  `fetch_feed(url, timeout)` downloads one; both raise `FeedError`.
- `gatorfeed.commands`: the `Commands` registry, the `State` handlers
  work with, `parse_duration` and `scrape_feeds`.

## What it does not do

- Storage is SQLite only; there is no client for other database
  servers.
- The store can list and remove bookmarks (`get_user_bookmarks`,
  `remove_bookmark`), but no `gator` command does either.
- There is no command that creates the config file; write it by hand.

## Running the tests

```
pip install ".[test]"
pytest
```