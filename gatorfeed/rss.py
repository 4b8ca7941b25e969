"""RSS document model, parsing and fetching."""

from __future__ import annotations

import html
import urllib.request
from dataclasses import dataclass, field
from typing import List, Optional, Union
from urllib.error import HTTPError, URLError
from xml.etree import ElementTree

USER_AGENT = "gator"


class FeedError(Exception):
    """Raised when a feed cannot be fetched or decoded."""


@dataclass
class RSSItem:
    title: str = ""
    link: str = ""
    description: str = ""
    pub_date: str = ""


@dataclass
class RSSChannel:
    title: str = ""
    link: str = ""
    description: str = ""
    items: List[RSSItem] = field(default_factory=list)


@dataclass
class RSSFeed:
    channel: RSSChannel = field(default_factory=RSSChannel)


def _local_name(tag: object) -> str:
    return tag.rsplit("}", 1)[-1] if isinstance(tag, str) else ""


def _direct_text(element: ElementTree.Element) -> str:
    return (element.text or "") + "".join(child.tail or "" for child in element)


def _parse_item(element: ElementTree.Element) -> RSSItem:
    item = RSSItem()
    for child in element:
        name = _local_name(child.tag)
        if name == "title":
            item.title = _direct_text(child)
        elif name == "link":
            item.link = _direct_text(child)
        elif name == "description":
            item.description = _direct_text(child)
        elif name == "pubDate":
            item.pub_date = _direct_text(child)
    return item


def parse_feed(data: Union[bytes, str]) -> RSSFeed:
    """Decode an RSS document; the channel title and description are HTML-unescaped."""
    try:
        root = ElementTree.fromstring(data)
    except ElementTree.ParseError as exc:
        raise FeedError(f"error in xml decode: {exc}") from exc

    channel = RSSChannel()
    for element in root:
        if _local_name(element.tag) != "channel":
            continue
        for child in element:
            name = _local_name(child.tag)
            if name == "title":
                channel.title = _direct_text(child)
            elif name == "link":
                channel.link = _direct_text(child)
            elif name == "description":
                channel.description = _direct_text(child)
            elif name == "item":
                channel.items.append(_parse_item(child))

    channel.title = html.unescape(channel.title)
    channel.description = html.unescape(channel.description)
    return RSSFeed(channel=channel)


def fetch_feed(url: str, timeout: Optional[float] = None) -> RSSFeed:
    """Download ``url`` and decode it as RSS, whatever the HTTP status."""
    try:
        request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    except ValueError as exc:
        raise FeedError(f"error while doing a get request: {exc}") from exc

    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            body = response.read()
    except HTTPError as exc:
        with exc:
            try:
                body = exc.read()
            except OSError as read_exc:
                raise FeedError(f"error in xml decode: {read_exc}") from read_exc
    except (URLError, ValueError, OSError) as exc:
        raise FeedError(f"error in client.Do: {exc}") from exc

    return parse_feed(body)