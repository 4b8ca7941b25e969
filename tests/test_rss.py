import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from gatorfeed.rss import FeedError, RSSFeed, RSSItem, fetch_feed, parse_feed

SAMPLE = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">
  <channel>
    <title>Tom &amp;amp; Jerry</title>
    <link>https://example.com/</link>
    <description>Cartoon &amp;lt;news&amp;gt;</description>
    <item>
      <title>First &amp;amp; post</title>
      <link>https://example.com/first</link>
      <description><![CDATA[<p>Hello</p>]]></description>
      <pubDate>Mon, 01 Jan 2024 10:00:00 +0000</pubDate>
    </item>
    <item>
      <title>Second</title>
      <link>https://example.com/second</link>
      <description>Plain</description>
      <pubDate>Tue, 02 Jan 2024 10:00:00 +0000</pubDate>
    </item>
  </channel>
</rss>
"""


def test_parse_items():
    feed = parse_feed(SAMPLE)
    assert [item.link for item in feed.channel.items] == [
        "https://example.com/first",
        "https://example.com/second",
    ]
    assert feed.channel.items[1] == RSSItem(
        title="Second",
        link="https://example.com/second",
        description="Plain",
        pub_date="Tue, 02 Jan 2024 10:00:00 +0000",
    )
    assert feed.channel.items[0].description == "<p>Hello</p>"
    assert feed.channel.link == "https://example.com/"


def test_channel_text_is_html_unescaped_but_items_are_not():
    feed = parse_feed(SAMPLE)
    assert feed.channel.title == "Tom & Jerry"
    assert feed.channel.description == "Cartoon <news>"
    assert feed.channel.items[0].title == "First &amp; post"


def test_parse_accepts_text():
    feed = parse_feed("<rss><channel><title>T</title></channel></rss>")
    assert feed.channel.title == "T"
    assert feed.channel.items == []


def test_document_without_channel_is_empty():
    assert parse_feed(b"<rss><other/></rss>") == RSSFeed()


def test_malformed_document_raises():
    with pytest.raises(FeedError, match="^error in xml decode"):
        parse_feed(b"<rss><channel></rss>")


def test_empty_document_raises():
    with pytest.raises(FeedError):
        parse_feed(b"")


@pytest.fixture
def feed_server(monkeypatch):
    for name in ("http_proxy", "HTTP_PROXY", "all_proxy", "ALL_PROXY"):
        monkeypatch.delenv(name, raising=False)
    routes = {
        "/feed": (200, SAMPLE),
        "/broken": (500, SAMPLE),
        "/junk": (200, b"not xml at all"),
    }
    seen = {}

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            seen["user_agent"] = self.headers.get("User-Agent")
            status, body = routes.get(self.path, (404, b"missing"))
            self.send_response(status)
            self.send_header("Content-Type", "application/rss+xml")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, *args):
            pass

    server = HTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_port}", seen
    server.shutdown()
    server.server_close()


def test_fetch_feed_sends_user_agent(feed_server):
    base, seen = feed_server
    feed = fetch_feed(base + "/feed", timeout=5)
    assert seen["user_agent"] == "gator"
    assert feed == parse_feed(SAMPLE)


def test_fetch_feed_decodes_body_of_error_status(feed_server):
    base, _ = feed_server
    feed = fetch_feed(base + "/broken", timeout=5)
    assert len(feed.channel.items) == 2


def test_fetch_feed_rejects_non_xml(feed_server):
    base, _ = feed_server
    with pytest.raises(FeedError, match="xml decode"):
        fetch_feed(base + "/junk", timeout=5)


def test_fetch_feed_invalid_url():
    with pytest.raises(FeedError):
        fetch_feed("not a url")