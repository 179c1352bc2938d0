"""Error types raised across rss_keeper."""

from __future__ import annotations

from typing import Optional


class FeedReaderError(RuntimeError):
    """Base class for every error with a human-readable message."""


class ParseError(FeedReaderError):
    """The document is not well-formed XML."""


class UnsupportedFormatError(FeedReaderError):
    """The document is XML but neither RSS 2.0 nor Atom."""


class FetchError(FeedReaderError):
    """Every access strategy failed for a feed URL."""

    def __init__(
        self, url: str, last_error: Optional[BaseException] = None, message: Optional[str] = None
    ) -> None:
        self.url = url
        self.last_error = last_error
        if message is None:
            message = f"Failed to fetch feed {url}"
            if last_error is not None:
                message = f"{message}: {last_error}"
        super().__init__(message)


class StorageError(FeedReaderError):
    """The key-value store rejected an operation."""


class QuotaExceededError(StorageError):
    """A write would push the key-value store over its capacity."""


class DuplicateFeedError(FeedReaderError):
    """The feed URL is already registered."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__("this feed is already registered")


class FeedNotFoundError(FeedReaderError):
    """No registered feed carries the given id."""

    def __init__(self, feed_id: str) -> None:
        self.feed_id = feed_id
        super().__init__(f"no feed with id {feed_id}")
