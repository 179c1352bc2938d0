"""Feed parsing for RSS 2.0 and Atom documents."""

from __future__ import annotations

import calendar
import io
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union
from xml.etree import ElementTree as ET

import feedparser

from .errors import ParseError, UnsupportedFormatError
from .models import Article, Feed
from .timeutil import utc_now

logger = logging.getLogger(__name__)

DEFAULT_FEED_TITLE = "Unknown Feed"
DEFAULT_ARTICLE_TITLE = "No Title"

# Already-decoded text is re-encoded as UTF-8; this stops feedparser from
# trusting a stale encoding in the XML declaration.
_DECODED_TEXT_HEADERS = {"content-type": "application/xml; charset=utf-8"}


def feed_id_for(url: str) -> str:
    """Stable feed identity derived from the feed URL."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, url))


def article_id_for(feed_url: str, link: str, title: str, published: datetime) -> str:
    """Stable article identity; falls back to title and date when there is no link."""
    if link:
        key = f"{feed_url}\n{link}"
    else:
        key = f"{feed_url}\n{title}\n{published.isoformat()}"
    return str(uuid.uuid5(uuid.NAMESPACE_URL, key))


def to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """Convert feedparser's UTC ``*_parsed`` timestamps to timezone-aware datetimes."""
    if not value:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (OverflowError, ValueError, TypeError):
        return None


def _local(tag: str) -> str:
    return tag.split("}", 1)[1] if tag.startswith("{") else tag


def detect_dialect(root: ET.Element) -> Optional[str]:
    """``"atom"`` or ``"rss"`` from the document root, ``None`` for anything else."""
    name = _local(root.tag)
    if name == "feed":
        return "atom"
    if name == "rss" and any(_local(child.tag) == "channel" for child in root):
        return "rss"
    return None


def _decoded(data: bytes, encoding: Optional[str]) -> Union[str, bytes]:
    """Decode with the charset feedparser settled on; expat only handles single-byte ones."""
    if not encoding:
        return data
    try:
        return data.decode(encoding)
    except (LookupError, UnicodeDecodeError):
        return data


def _clean(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _entry_link(entry) -> str:
    links = entry.get("links") or []
    for link in links:
        if link.get("rel", "alternate") == "alternate" and link.get("href"):
            return link["href"].strip()
    for link in links:
        if link.get("href"):
            return link["href"].strip()
    return _clean(entry.get("link"))


def _entry_description(entry) -> str:
    # feedparser copies content into ``summary`` when an entry has none; only
    # a real summary/description carries ``summary_detail``.
    if "summary_detail" not in entry:
        return ""
    return _clean(entry.get("summary"))


def _entry_content(entry, description: str) -> str:
    for block in entry.get("content") or []:
        value = _clean(block.get("value"))
        if value:
            return value
    return description


def _entry_author(entry) -> str:
    author = _clean(entry.get("author"))
    if author:
        return author
    detail = entry.get("author_detail") or {}
    return _clean(detail.get("name"))


def _entry_published(entry, now: datetime) -> datetime:
    for attr in ("published_parsed", "updated_parsed"):
        published = to_datetime(entry.get(attr))
        if published:
            return published
    return now


def parse_feed(
    text: Union[str, bytes], url: str, now: Optional[datetime] = None
) -> Tuple[Feed, List[Article]]:
    """Parse an RSS 2.0 or Atom document fetched from ``url``.

    The document must be well-formed XML (``ParseError`` otherwise) with an
    ``<rss><channel>`` or ``<feed>`` root (``UnsupportedFormatError``
    otherwise). Bytes are decoded by feedparser according to the XML
    declaration. Articles without a usable date are stamped with ``now``.
    """
    now = now or utc_now()
    if isinstance(text, str):
        parsed = feedparser.parse(
            io.BytesIO(text.encode("utf-8")), response_headers=_DECODED_TEXT_HEADERS
        )
        document: Union[str, bytes] = text
    else:
        # A stream, so feedparser never treats the body as a URL or file path.
        parsed = feedparser.parse(io.BytesIO(text))
        document = _decoded(text, parsed.get("encoding"))

    try:
        root = ET.fromstring(document)
    except (ET.ParseError, ValueError) as exc:
        raise ParseError(f"Malformed feed document from {url}: {exc}") from exc

    dialect = detect_dialect(root)
    if dialect is None:
        raise UnsupportedFormatError(f"Not an RSS or Atom feed: {url}")

    if parsed.bozo:
        logger.debug("feedparser reported a problem with %s: %s", url, parsed.get("bozo_exception"))

    title = _clean(parsed.feed.get("title")) or DEFAULT_FEED_TITLE
    feed = Feed(
        id=feed_id_for(url),
        title=title,
        url=url,
        description=_clean(parsed.feed.get("subtitle")),
        last_fetched_at=now,
        is_active=True,
    )

    articles: List[Article] = []
    for entry in parsed.entries:
        entry_title = _clean(entry.get("title")) or DEFAULT_ARTICLE_TITLE
        link = _entry_link(entry)
        description = _entry_description(entry)
        published = _entry_published(entry, now)
        articles.append(
            Article(
                id=article_id_for(url, link, entry_title, published),
                title=entry_title,
                link=link,
                description=description,
                content=_entry_content(entry, description),
                published_at=published,
                author=_entry_author(entry),
                feed_id=feed.id,
                feed_title=title,
            )
        )

    logger.info(
        "Parsed %d %s entries from '%s' (%s)",
        len(articles),
        parsed.get("version") or dialect,
        title,
        url,
    )
    return feed, articles
