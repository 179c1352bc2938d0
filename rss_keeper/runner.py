"""High-level orchestration for the rss_keeper application."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .config import AppConfig
from .date_filter import DateFilter
from .errors import DuplicateFeedError, FetchError
from .fetching import BatchFetcher, FetchCoordinator
from .models import Article, Feed
from .opml import extract_feed_urls, render_opml
from .storage import SqlStore
from .store import ArticleStore

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Outcome of refreshing a set of feeds."""

    refreshed: int
    failed: Dict[str, str] = field(default_factory=dict)
    articles: int = 0

    @property
    def all_failed(self) -> bool:
        return self.refreshed == 0 and bool(self.failed)


class FeedReader:
    """The mutation entry points used by the presentation layer."""

    def __init__(self, store: ArticleStore, fetcher: BatchFetcher, date_filter: DateFilter) -> None:
        self.store = store
        self.fetcher = fetcher
        self.date_filter = date_filter

    @classmethod
    def from_config(cls, config: AppConfig, session=None) -> "FeedReader":
        storage = SqlStore.from_url(
            config.storage.connection_string, quota_bytes=config.storage.quota_bytes
        )
        coordinator = FetchCoordinator(
            strategies=config.fetch.strategies(),
            session=session,
            timeout=config.fetch.timeout,
        )
        return cls(
            store=ArticleStore(storage),
            fetcher=BatchFetcher(coordinator, concurrency=config.fetch.concurrency),
            date_filter=DateFilter(storage),
        )

    def feeds(self) -> List[Feed]:
        return self.store.load_feeds()

    def articles(self) -> List[Article]:
        return self.store.load_articles()

    def snapshot(self) -> Tuple[List[Feed], List[Article]]:
        with self.store.lock:
            return self.store.load_feeds(), self.store.load_articles()

    def view(self) -> List[Article]:
        """The stored corpus with excluded dates hidden."""
        return self.date_filter.apply(self.store.load_articles())

    def add_feed(self, url: str) -> Feed:
        url = url.strip()
        if not url:
            raise ValueError("Feed URL must not be empty.")
        if any(feed.url == url for feed in self.store.load_feeds()):
            raise DuplicateFeedError(url)

        batch = self.fetcher.fetch_all([url])
        if not batch.feeds:
            raise FetchError(
                url,
                message="no valid feed found at this URL",
            )

        with self.store.lock:
            if any(feed.url == url for feed in self.store.load_feeds()):
                raise DuplicateFeedError(url)
            corpus = self.store.ingest(batch.feeds, batch.articles)
            feed = next(f for f in self.store.load_feeds() if f.url == url)

        logger.info(
            "Added feed '%s' (%s) with %d articles; corpus now %d",
            feed.title,
            feed.url,
            len(batch.articles),
            len(corpus),
        )
        self.store.log_usage()
        return feed

    def remove_feed(self, feed_id: str) -> int:
        removed = self.store.remove_feed(feed_id)
        self.store.log_usage()
        return removed

    def refresh_all(self, urls: Optional[Sequence[str]] = None) -> RefreshResult:
        """Re-fetch registered feeds (or ``urls``) and merge what comes back."""
        if urls is None:
            urls = [feed.url for feed in self.store.load_feeds() if feed.is_active]
        urls = list(urls)
        if not urls:
            logger.info("No feeds to refresh")
            return RefreshResult(refreshed=0, articles=len(self.store.load_articles()))

        batch = self.fetcher.fetch_all(urls)
        corpus = self.store.ingest(batch.feeds, batch.articles, add_new_feeds=False)
        result = RefreshResult(
            refreshed=len(batch.feeds), failed=dict(batch.failures), articles=len(corpus)
        )
        if result.all_failed:
            logger.error("Refresh failed for all %d feeds", len(urls))
        else:
            logger.info(
                "Refreshed %d/%d feeds; corpus now %d articles",
                result.refreshed,
                len(urls),
                result.articles,
            )
        return result

    def exclude_date(self, date: str) -> List[str]:
        return self.date_filter.add(date)

    def include_date(self, date: str) -> List[str]:
        return self.date_filter.remove(date)

    def exclude_today(self) -> List[str]:
        return self.date_filter.exclude_today()

    def import_opml(self, text: str) -> List[Feed]:
        """Subscribe to every new feed listed in an OPML document."""
        registered = {feed.url for feed in self.store.load_feeds()}
        urls = [url for url in extract_feed_urls(text) if url not in registered]
        if not urls:
            logger.info("OPML import found no new feeds")
            return []

        batch = self.fetcher.fetch_all(urls)
        self.store.ingest(batch.feeds, batch.articles)
        for url, reason in batch.failures.items():
            logger.warning("Skipped %s from OPML: %s", url, reason)
        logger.info("Imported %d of %d feeds from OPML", len(batch.feeds), len(urls))
        return batch.feeds

    def export_opml(self) -> str:
        return render_opml(self.store.load_feeds())
