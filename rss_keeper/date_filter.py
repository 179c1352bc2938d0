"""User-controlled exclusion of whole publication dates from the article view."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from .errors import StorageError
from .models import Article
from .storage import KeyValueStore
from .store import EXCLUDED_DATES_KEY, encode_json, read_json_list
from .timeutil import civil_date_key, parse_date_key, today_key, utc_now

logger = logging.getLogger(__name__)


class DateFilter:
    """Persisted set of excluded ``YYYY-MM-DD`` dates in the UTC+9 calendar."""

    def __init__(self, storage: KeyValueStore, clock: Callable[[], datetime] = utc_now) -> None:
        self.storage = storage
        self.clock = clock
        self._lock = threading.Lock()

    def excluded_dates(self) -> List[str]:
        dates = set()
        for value in read_json_list(self.storage, EXCLUDED_DATES_KEY):
            try:
                parse_date_key(value)
            except ValueError:
                logger.warning("Ignoring invalid excluded date %r", value)
                continue
            dates.add(value)
        return sorted(dates)

    def _save(self, dates: Iterable[str]) -> None:
        try:
            self.storage.set(EXCLUDED_DATES_KEY, encode_json(sorted(set(dates))))
        except StorageError as exc:
            logger.error("Failed to save excluded dates: %s", exc)

    def add(self, date: str) -> List[str]:
        parse_date_key(date)
        with self._lock:
            dates = self.excluded_dates()
            if date not in dates:
                dates.append(date)
                self._save(dates)
                logger.info("Excluding articles published on %s", date)
            return sorted(dates)

    def remove(self, date: str) -> List[str]:
        parse_date_key(date)
        with self._lock:
            dates = self.excluded_dates()
            if date in dates:
                dates.remove(date)
                self._save(dates)
                logger.info("Including articles published on %s again", date)
            return dates

    def exclude_today(self) -> List[str]:
        return self.add(today_key(self.clock()))

    def apply(self, articles: Iterable[Article], excluded: Optional[Iterable[str]] = None) -> List[Article]:
        """Return articles whose UTC+9 publication date is not excluded, in input order."""
        excluded_set = set(self.excluded_dates() if excluded is None else excluded)
        articles = list(articles)
        if not excluded_set:
            return articles
        visible = [
            article
            for article in articles
            if civil_date_key(article.published_at) not in excluded_set
        ]
        logger.debug(
            "Date filter hides %d of %d articles (%d dates excluded)",
            len(articles) - len(visible),
            len(articles),
            len(excluded_set),
        )
        return visible
