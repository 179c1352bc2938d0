"""OPML import and export of the subscribed feed list."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Union
from xml.etree import ElementTree as ET

from .errors import ParseError
from .models import Feed
from .templating import get_environment
from .timeutil import utc_now

logger = logging.getLogger(__name__)

EXPORT_TITLE = "RSS Reader Export"


def extract_feed_urls(text: Union[str, bytes]) -> List[str]:
    """Return every ``xmlUrl`` in the document, outer outlines first, without repeats."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ParseError(f"Malformed OPML document: {exc}") from exc

    body = root.find("body")
    if body is None:
        raise ParseError("OPML document is missing the <body> section.")

    urls: List[str] = []
    seen = set()

    def walk(outline: ET.Element) -> None:
        feed_url = (outline.attrib.get("xmlUrl") or "").strip()
        if feed_url and feed_url not in seen:
            seen.add(feed_url)
            urls.append(feed_url)
            logger.debug("Found feed '%s' in OPML", feed_url)
        for child in outline.findall("outline"):
            walk(child)

    for outline in body.findall("outline"):
        walk(outline)

    logger.info("Extracted %d feed URLs from OPML", len(urls))
    return urls


def render_opml(
    feeds: Iterable[Feed], now: Optional[datetime] = None, title: str = EXPORT_TITLE
) -> str:
    """Render the feed list as an OPML 1.0 document."""
    template = get_environment().get_template("opml.xml")
    return template.render(feeds=list(feeds), created=now or utc_now(), title=title)
