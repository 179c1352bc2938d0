from datetime import datetime, timedelta, timezone

import pytest

from rss_keeper.models import Article, Feed
from rss_keeper.storage import MemoryStore
from rss_keeper.store import ArticleStore

# 12:00 on 2024-06-15 in UTC+9.
FIXED_NOW = datetime(2024, 6, 15, 3, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def storage():
    return MemoryStore()


@pytest.fixture
def store(storage):
    return ArticleStore(storage, clock=lambda: FIXED_NOW)


@pytest.fixture
def make_article():
    counter = {"n": 0}

    def factory(published=None, feed_id="feed-1", **overrides):
        counter["n"] += 1
        values = {
            "id": f"article-{counter['n']}",
            "title": f"Article {counter['n']}",
            "link": f"https://example.com/{counter['n']}",
            "published_at": published or FIXED_NOW - timedelta(minutes=counter["n"]),
            "feed_id": feed_id,
            "feed_title": "Example Feed",
        }
        values.update(overrides)
        return Article(**values)

    return factory


@pytest.fixture
def make_feed():
    def factory(url="https://example.com/feed.xml", **overrides):
        values = {
            "id": f"id-{url}",
            "title": "Example Feed",
            "url": url,
            "description": "Things",
            "last_fetched_at": FIXED_NOW,
        }
        values.update(overrides)
        return Feed(**values)

    return factory
