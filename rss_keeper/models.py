"""Shared data models for rss_keeper."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .timeutil import ensure_aware


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_aware(value).isoformat()


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return ensure_aware(datetime.fromisoformat(value))


@dataclass
class Feed:
    """A subscribed RSS or Atom source."""

    id: str
    title: str
    url: str
    description: Optional[str] = None
    last_fetched_at: Optional[datetime] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "description": self.description,
            "last_fetched_at": _format_timestamp(self.last_fetched_at),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Feed":
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            url=data["url"],
            description=data.get("description"),
            last_fetched_at=_parse_timestamp(data.get("last_fetched_at")),
            is_active=bool(data.get("is_active", True)),
        )


@dataclass
class Article:
    """One normalised entry from a feed."""

    id: str
    title: str
    link: str
    published_at: datetime
    feed_id: str
    feed_title: str
    description: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "link": self.link,
            "description": self.description,
            "content": self.content,
            "published_at": _format_timestamp(self.published_at),
            "author": self.author,
            "feed_id": self.feed_id,
            "feed_title": self.feed_title,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Article":
        published = _parse_timestamp(data.get("published_at"))
        if published is None:
            raise ValueError(f"Article {data.get('id')!r} has no published_at")
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            link=data.get("link") or "",
            published_at=published,
            feed_id=data["feed_id"],
            feed_title=data.get("feed_title") or "",
            description=data.get("description"),
            content=data.get("content"),
            author=data.get("author"),
        )
