"""Jinja2 environment for rss_keeper templates."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime
from importlib import resources

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .timeutil import ensure_aware

_ENV: Environment | None = None


def _rfc2822(value: datetime | None) -> str:
    """Format a datetime the way OPML head dates are written."""
    if value is None:
        return ""
    return format_datetime(ensure_aware(value).astimezone(timezone.utc), usegmt=True)


def get_environment() -> Environment:
    """Return a cached Jinja environment configured for package templates."""
    global _ENV
    if _ENV is None:
        template_dir = resources.files(__package__) / "templates"
        loader = FileSystemLoader(str(template_dir))
        _ENV = Environment(
            loader=loader,
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        _ENV.filters["rfc2822"] = _rfc2822
    return _ENV
