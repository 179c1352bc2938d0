"""Command-line interface for the rss_keeper application."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, parse_app_config
from .errors import FeedReaderError
from .runner import FeedReader
from .store import format_bytes
from .timeutil import civil_date_key

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Collect RSS and Atom feeds into a local article store."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the configuration XML file. Built-in defaults apply when omitted.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g. DEBUG, INFO, WARNING). Overrides config.",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Optional path to a log file. Overrides config.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Subscribe to a feed URL.")
    add.add_argument("url")

    remove = commands.add_parser("remove", help="Unsubscribe a feed and delete its articles.")
    remove.add_argument("feed_id")

    commands.add_parser("refresh", help="Re-fetch every subscribed feed.")
    commands.add_parser("feeds", help="List subscribed feeds.")

    articles = commands.add_parser("articles", help="List stored articles.")
    articles.add_argument("--limit", type=int, default=50)
    articles.add_argument(
        "--all", action="store_true", help="Ignore excluded dates."
    )

    exclude = commands.add_parser("exclude", help="Hide articles published on a date.")
    exclude.add_argument("date", help="YYYY-MM-DD (UTC+9) or 'today'.")

    include = commands.add_parser("include", help="Show a previously excluded date again.")
    include.add_argument("date")

    commands.add_parser("excluded", help="List excluded dates.")

    import_opml = commands.add_parser("import-opml", help="Subscribe to feeds from an OPML file.")
    import_opml.add_argument("path")

    export_opml = commands.add_parser("export-opml", help="Write subscriptions as OPML.")
    export_opml.add_argument("path", nargs="?", help="Output file; stdout when omitted.")

    commands.add_parser("usage", help="Show storage usage.")
    commands.add_parser("clear", help="Delete all stored feeds and articles (excluded dates are kept).")

    return parser


def configure_logging(level_name: str, log_file: Optional[str] = None) -> None:
    """Initialise logging according to options."""
    log_level = getattr(logging, level_name.upper(), None)
    if not isinstance(log_level, int):
        raise ValueError(f"Unsupported log level: {level_name}")

    formatter = logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    root_logger.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    if log_file:
        log_path = Path(log_file)
        if log_path.parent and not log_path.parent.exists():
            log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logger.debug(
            "Logger initialised with level %s and file output to %s",
            level_name.upper(),
            log_path,
        )
    else:
        logger.debug(
            "Logger initialised with console output at level %s", level_name.upper()
        )


def build_reader(config: AppConfig) -> FeedReader:
    return FeedReader.from_config(config)


def run_command(reader: FeedReader, args: argparse.Namespace) -> int:
    """Execute one sub-command and print its result."""
    command = args.command

    if command == "add":
        feed = reader.add_feed(args.url)
        print(f"Added {feed.title} ({feed.url}) as {feed.id}")
    elif command == "remove":
        removed = reader.remove_feed(args.feed_id)
        print(f"Removed feed {args.feed_id} and {removed} articles")
    elif command == "refresh":
        result = reader.refresh_all()
        if result.all_failed:
            print("refresh failed", file=sys.stderr)
            return 1
        print(f"Refreshed {result.refreshed} feeds; {result.articles} articles stored")
        for url, reason in result.failed.items():
            print(f"  failed: {url}: {reason}", file=sys.stderr)
    elif command == "feeds":
        for feed in reader.feeds():
            print(f"{feed.id}\t{feed.title}\t{feed.url}")
    elif command == "articles":
        articles = reader.articles() if args.all else reader.view()
        for article in articles[: max(args.limit, 0)]:
            print(
                f"{civil_date_key(article.published_at)}\t{article.feed_title}\t"
                f"{article.title}\t{article.link}"
            )
    elif command == "exclude":
        if args.date == "today":
            dates = reader.exclude_today()
        else:
            dates = reader.exclude_date(args.date)
        print("Excluded dates: " + (", ".join(dates) or "none"))
    elif command == "include":
        dates = reader.include_date(args.date)
        print("Excluded dates: " + (", ".join(dates) or "none"))
    elif command == "excluded":
        for date in reader.date_filter.excluded_dates():
            print(date)
    elif command == "import-opml":
        text = Path(args.path).read_text(encoding="utf-8")
        added = reader.import_opml(text)
        print(f"Imported {len(added)} feeds")
    elif command == "export-opml":
        document = reader.export_opml()
        if args.path:
            Path(args.path).write_text(document, encoding="utf-8")
            logger.info("Wrote OPML to %s", args.path)
        else:
            print(document, end="")
    elif command == "usage":
        usage = reader.store.log_usage()
        print(f"{format_bytes(usage.used)} / {format_bytes(usage.total)} ({usage.percentage}%)")
        for key, size in usage.breakdown.items():
            print(f"  {key}: {format_bytes(size)}")
    elif command == "clear":
        if not reader.store.clear():
            print("clear failed; see the log for details", file=sys.stderr)
            return 1
        print("Cleared stored feeds and articles")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = parse_app_config(args.config) if args.config else AppConfig()

        # CLI overrides config
        log_level = args.log_level or app_config.logging.level
        log_file = args.log_file or app_config.logging.file
        configure_logging(log_level, log_file)

        reader = build_reader(app_config)
        return run_command(reader, args)
    except ValueError as exc:
        parser.error(str(exc))
    except FeedReaderError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    except Exception:  # noqa: BLE001
        logger.exception("Unexpected error during execution.")
        return 1
