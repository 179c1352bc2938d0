"""Feed retrieval through an ordered list of proxy strategies."""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union
from urllib.parse import quote

import requests

from .errors import FeedReaderError, FetchError
from .feeds import parse_feed
from .models import Article, Feed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 15.0
DEFAULT_CONCURRENCY = 8


@dataclass
class ProxyStrategy:
    """One way of reaching a feed URL.

    ``template`` receives ``{url}`` (raw) and ``{quoted_url}`` (percent-encoded).
    When ``unwrap`` is set the response is a JSON envelope holding the feed
    body under that field.
    """

    name: str
    template: str
    headers: Dict[str, str] = field(default_factory=dict)
    unwrap: Optional[str] = None

    def build_url(self, url: str) -> str:
        return self.template.format(url=url, quoted_url=quote(url, safe=""))

    def decode(self, response) -> Union[str, bytes]:
        """Feed body from a response: raw bytes, or the unwrapped JSON field."""
        if not self.unwrap:
            # Raw bytes let the XML declaration choose the encoding.
            return response.content
        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError(f"{self.name}: expected a JSON object")
        body = payload.get(self.unwrap)
        if not isinstance(body, str) or not body:
            raise ValueError(f"{self.name}: response has no '{self.unwrap}' field")
        return body


def default_strategies() -> List[ProxyStrategy]:
    """Local CORS relay first, then the public allorigins mirror."""
    return [
        ProxyStrategy(
            name="local-relay",
            template="http://localhost:8080/{url}",
            headers={
                "X-Requested-With": "XMLHttpRequest",
                "Origin": "http://localhost:5173",
            },
        ),
        ProxyStrategy(
            name="allorigins",
            template="https://api.allorigins.win/get?url={quoted_url}",
            headers={"X-Requested-With": "XMLHttpRequest"},
            unwrap="contents",
        ),
    ]


class FetchCoordinator:
    """Resolve one feed URL, trying each strategy in order until one parses."""

    def __init__(
        self,
        strategies: Optional[Sequence[ProxyStrategy]] = None,
        session=None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.strategies = list(default_strategies() if strategies is None else strategies)
        self.session = session or requests.Session()
        self.timeout = timeout

    def _attempt(self, strategy: ProxyStrategy, url: str) -> Tuple[Feed, List[Article]]:
        target = strategy.build_url(url)
        logger.debug("Fetching %s via %s (%s)", url, strategy.name, target)
        response = self.session.get(
            target, headers=dict(strategy.headers), timeout=self.timeout
        )
        response.raise_for_status()
        return parse_feed(strategy.decode(response), url)

    def fetch(self, url: str) -> Tuple[Feed, List[Article]]:
        """Return the parsed feed, or raise FetchError with the last cause."""
        last_error: Optional[BaseException] = None
        for index, strategy in enumerate(self.strategies, start=1):
            try:
                result = self._attempt(strategy, url)
            except (requests.RequestException, ValueError, FeedReaderError) as exc:
                last_error = exc
                logger.warning(
                    "Strategy %d/%d (%s) failed for %s: %s",
                    index,
                    len(self.strategies),
                    strategy.name,
                    url,
                    exc,
                )
                continue
            logger.info("Fetched %s via %s", url, strategy.name)
            return result

        if last_error is None:
            raise FetchError(url, message=f"No fetch strategies configured for {url}")
        raise FetchError(url, last_error) from last_error


@dataclass
class BatchResult:
    """Aggregate of a batch fetch; ``failures`` maps URL to error message."""

    feeds: List[Feed] = field(default_factory=list)
    articles: List[Article] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)


class BatchFetcher:
    """Fetch many feed URLs concurrently, tolerating individual failures."""

    def __init__(self, coordinator: FetchCoordinator, concurrency: int = DEFAULT_CONCURRENCY) -> None:
        self.coordinator = coordinator
        self.concurrency = max(1, concurrency)

    def fetch_all(self, urls: Sequence[str]) -> BatchResult:
        urls = list(urls)
        if not urls:
            return BatchResult()

        lock = threading.Lock()
        successes: Dict[int, Tuple[Feed, List[Article]]] = {}
        failures: Dict[int, str] = {}

        def process(index: int, url: str) -> None:
            try:
                result = self.coordinator.fetch(url)
            except FetchError as exc:
                logger.error("Feed fetch failed for %s: %s", url, exc)
                with lock:
                    failures[index] = str(exc)
                return
            except Exception as exc:  # noqa: BLE001 - one feed must not sink the batch
                logger.exception("Unexpected error while fetching %s", url)
                with lock:
                    failures[index] = str(exc)
                return
            with lock:
                successes[index] = result

        workers = min(self.concurrency, len(urls))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(process, index, url) for index, url in enumerate(urls)
            ]
            concurrent.futures.wait(futures)

        batch = BatchResult()
        for index, url in enumerate(urls):
            if index in successes:
                feed, articles = successes[index]
                batch.feeds.append(feed)
                batch.articles.extend(articles)
            elif index in failures:
                batch.failures[url] = failures[index]

        logger.info(
            "Batch fetch finished: %d/%d feeds, %d articles",
            len(batch.feeds),
            len(urls),
            len(batch.articles),
        )
        return batch
