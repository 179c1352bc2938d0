"""Persisted feed list and article corpus with retention rules."""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import FeedNotFoundError, QuotaExceededError, StorageError
from .models import Article, Feed
from .storage import DEFAULT_QUOTA_BYTES, KeyValueStore
from .timeutil import civil_date_key, utc_now

logger = logging.getLogger(__name__)

FEEDS_KEY = "feeds"
ARTICLES_KEY = "articles"
EXCLUDED_DATES_KEY = "excluded_dates"
STORAGE_KEYS = (FEEDS_KEY, ARTICLES_KEY, EXCLUDED_DATES_KEY)

MAX_TODAY_ARTICLES = 500
MAX_PAST_ARTICLES = 500
MAX_PAST_AGE = timedelta(days=30)


@dataclass
class StorageUsage:
    used: int
    total: int
    percentage: int
    breakdown: Dict[str, int]


def format_bytes(size: int) -> str:
    """Return a short human-readable size (B, KB, MB)."""
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024 or unit == "MB":
            return f"{round(value, 2):g} {unit}"
        value /= 1024
    return f"{size} B"


def _newest_first(articles: Iterable[Article]) -> List[Article]:
    return sorted(articles, key=lambda article: article.published_at, reverse=True)


def read_json_list(storage: KeyValueStore, key: str) -> List[Any]:
    """Read a JSON array stored under ``key``; missing or corrupt data reads as empty."""
    try:
        raw = storage.get(key)
    except StorageError as exc:
        logger.error("Failed to read '%s': %s", key, exc)
        return []
    if not raw:
        return []
    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.error("Stored '%s' is not valid JSON; ignoring it: %s", key, exc)
        return []
    if not isinstance(payload, list):
        logger.error("Stored '%s' is not a JSON array; ignoring it", key)
        return []
    return payload


def encode_json(payload: Any) -> bytes:
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


class ArticleStore:
    """Owns the persisted feeds and articles.

    Every read-modify-write runs under one re-entrant lock so concurrent
    callers never interleave their load/merge/save sequences.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        clock: Callable[[], datetime] = utc_now,
        max_today: int = MAX_TODAY_ARTICLES,
        max_past: int = MAX_PAST_ARTICLES,
        max_past_age: timedelta = MAX_PAST_AGE,
    ) -> None:
        self.storage = storage
        self.clock = clock
        self.max_today = max_today
        self.max_past = max_past
        self.max_past_age = max_past_age
        self.lock = threading.RLock()

    # Feeds

    def load_feeds(self) -> List[Feed]:
        """Load feeds, dropping later duplicates of a URL and persisting the cleanup."""
        with self.lock:
            records = read_json_list(self.storage, FEEDS_KEY)
            feeds: List[Feed] = []
            seen_urls = set()
            duplicates = 0
            for record in records:
                try:
                    feed = Feed.from_dict(record)
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping unreadable feed record: %s", exc)
                    continue
                if feed.url in seen_urls:
                    duplicates += 1
                    continue
                seen_urls.add(feed.url)
                feeds.append(feed)

            if duplicates:
                logger.warning("Removed %d duplicate feed(s) from storage", duplicates)
                self.save_feeds(feeds)
            return feeds

    def save_feeds(self, feeds: List[Feed]) -> bool:
        with self.lock:
            try:
                self.storage.set(FEEDS_KEY, encode_json([feed.to_dict() for feed in feeds]))
            except StorageError as exc:
                logger.error("Failed to save feeds: %s", exc)
                return False
            logger.debug("Saved %d feeds", len(feeds))
            return True

    def upsert_feeds(self, fetched: Iterable[Feed], add_new: bool = True) -> List[Feed]:
        """Merge freshly fetched feed metadata into the stored list by URL.

        Stored ids and ``is_active`` are kept; title, description and
        ``last_fetched_at`` are taken from the fetch.
        """
        with self.lock:
            feeds = self.load_feeds()
            by_url = {feed.url: feed for feed in feeds}
            for update in fetched:
                current = by_url.get(update.url)
                if current is not None:
                    current.title = update.title
                    current.description = update.description
                    current.last_fetched_at = update.last_fetched_at
                elif add_new:
                    feeds.append(update)
                    by_url[update.url] = update
            self.save_feeds(feeds)
            return feeds

    def remove_feed(self, feed_id: str) -> int:
        """Delete a feed and every article that references it; return articles removed."""
        with self.lock:
            feeds = self.load_feeds()
            remaining = [feed for feed in feeds if feed.id != feed_id]
            if len(remaining) == len(feeds):
                raise FeedNotFoundError(feed_id)

            articles = self.load_articles()
            kept = [article for article in articles if article.feed_id != feed_id]
            self.save_feeds(remaining)
            self.save_articles(kept)

            removed = len(articles) - len(kept)
            logger.info("Removed feed %s and %d of its articles", feed_id, removed)
            return removed

    # Articles

    def load_articles(self) -> List[Article]:
        with self.lock:
            articles: List[Article] = []
            for record in read_json_list(self.storage, ARTICLES_KEY):
                try:
                    articles.append(Article.from_dict(record))
                except (KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping unreadable article record: %s", exc)
            return articles

    def save_articles(self, articles: List[Article]) -> List[Article]:
        """Persist the corpus and return what was actually stored.

        When the store is over quota the first half of the list is retried
        once; if that also fails the stored corpus is cleared.
        """
        with self.lock:
            try:
                self.storage.set(ARTICLES_KEY, encode_json([a.to_dict() for a in articles]))
                logger.debug("Saved %d articles", len(articles))
                return list(articles)
            except QuotaExceededError as exc:
                logger.warning("Storage quota reached while saving articles: %s", exc)
            except StorageError as exc:
                logger.error("Failed to save articles: %s", exc)
                return list(articles)

            reduced = articles[: len(articles) // 2]
            logger.info("Retrying with %d of %d articles", len(reduced), len(articles))
            try:
                self.storage.set(ARTICLES_KEY, encode_json([a.to_dict() for a in reduced]))
                logger.info("Saved reduced article set")
                return reduced
            except StorageError as exc:
                logger.error("Retry after quota failure also failed: %s", exc)

            try:
                self.storage.delete(ARTICLES_KEY)
                logger.warning("Cleared all stored articles")
            except StorageError as exc:
                logger.error("Failed to clear stored articles: %s", exc)
            return []

    def add_articles(self, new_articles: Iterable[Article]) -> List[Article]:
        """Merge new articles into the corpus, apply retention and persist.

        Articles are bucketed by their UTC+9 civil date against today's:
        future ones are always kept, today's and past ones are capped to the
        most recent entries, and past ones older than the age limit are dropped.
        """
        with self.lock:
            existing = self.load_articles()
            existing_ids = {article.id for article in existing}

            unique_new: List[Article] = []
            for article in new_articles:
                if article.id in existing_ids:
                    continue
                existing_ids.add(article.id)
                unique_new.append(article)

            combined = _newest_first(existing + unique_new)

            now = self.clock()
            today = civil_date_key(now)
            future: List[Article] = []
            todays: List[Article] = []
            past: List[Article] = []
            for article in combined:
                key = civil_date_key(article.published_at)
                if key > today:
                    future.append(article)
                elif key == today:
                    todays.append(article)
                else:
                    past.append(article)

            logger.info(
                "Article buckets: %d today, %d past, %d future (%d new)",
                len(todays),
                len(past),
                len(future),
                len(unique_new),
            )

            if len(todays) > self.max_today:
                logger.info("Trimming today's articles to %d", self.max_today)
                todays = todays[: self.max_today]
            if len(past) > self.max_past:
                logger.info("Trimming past articles to %d", self.max_past)
                past = past[: self.max_past]

            cutoff = now - self.max_past_age
            recent_past = [article for article in past if article.published_at >= cutoff]
            if len(recent_past) != len(past):
                logger.info(
                    "Dropped %d articles older than %s", len(past) - len(recent_past), cutoff
                )

            return self.save_articles(_newest_first(future + todays + recent_past))

    def ingest(self, feeds: List[Feed], articles: List[Article], add_new_feeds: bool = True) -> List[Article]:
        """Register fetched feeds and add their articles in one critical section.

        Articles are re-pointed at the stored feed for their URL; articles
        whose feed is not registered are discarded.
        """
        with self.lock:
            stored = self.upsert_feeds(feeds, add_new=add_new_feeds)
            stored_by_url = {feed.url: feed for feed in stored}
            fetched_to_stored: Dict[str, Feed] = {}
            for feed in feeds:
                if feed.url in stored_by_url:
                    fetched_to_stored[feed.id] = stored_by_url[feed.url]

            accepted: List[Article] = []
            for article in articles:
                owner = fetched_to_stored.get(article.feed_id)
                if owner is None:
                    continue
                article.feed_id = owner.id
                article.feed_title = owner.title
                accepted.append(article)
            return self.add_articles(accepted)

    # Housekeeping

    def clear(self) -> bool:
        """Delete the stored feeds and articles; excluded dates are left alone."""
        with self.lock:
            cleared = True
            for key in (FEEDS_KEY, ARTICLES_KEY):
                try:
                    self.storage.delete(key)
                except StorageError as exc:
                    logger.error("Failed to clear '%s': %s", key, exc)
                    cleared = False
            if cleared:
                logger.info("Cleared all stored feeds and articles")
            return cleared

    def usage(self) -> StorageUsage:
        """Best-effort size of each stored section against the store's quota."""
        breakdown: Dict[str, int] = {}
        for key in STORAGE_KEYS:
            try:
                raw = self.storage.get(key)
            except StorageError as exc:
                logger.warning("Could not measure '%s': %s", key, exc)
                raw = None
            breakdown[key] = len(raw) if raw else 0
        used = sum(breakdown.values())
        total = getattr(self.storage, "quota_bytes", None) or DEFAULT_QUOTA_BYTES
        return StorageUsage(
            used=used,
            total=total,
            percentage=round(used / total * 100),
            breakdown=breakdown,
        )

    def log_usage(self, usage: Optional[StorageUsage] = None) -> StorageUsage:
        usage = usage or self.usage()
        logger.info(
            "Storage usage: %s / %s (%d%%)",
            format_bytes(usage.used),
            format_bytes(usage.total),
            usage.percentage,
        )
        for key, size in usage.breakdown.items():
            logger.info("  %s: %s", key, format_bytes(size))
        return usage
