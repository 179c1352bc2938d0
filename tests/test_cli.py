import logging
import types

import pytest

from rss_keeper import cli
from rss_keeper.config import AppConfig, LoggingConfig
from rss_keeper.errors import DuplicateFeedError
from rss_keeper.models import Feed
from rss_keeper.runner import RefreshResult


@pytest.fixture
def restore_root_logging():
    original_handlers = list(logging.getLogger().handlers)
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
    yield
    for handler in logging.getLogger().handlers[:]:
        logging.getLogger().removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        logging.getLogger().addHandler(handler)


def test_configure_logging_defaults_to_console_only(restore_root_logging):
    cli.configure_logging("INFO")

    handlers = logging.getLogger().handlers
    assert any(isinstance(handler, logging.StreamHandler) for handler in handlers)
    assert not any(isinstance(handler, logging.FileHandler) for handler in handlers)


def test_configure_logging_with_log_file_creates_file_handler(restore_root_logging, tmp_path):
    log_path = tmp_path / "nested" / "custom.log"
    cli.configure_logging("INFO", str(log_path))

    assert log_path.exists()
    assert any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)


class FakeReader:
    def __init__(self):
        self.calls = []

    def add_feed(self, url):
        self.calls.append(("add", url))
        if url == "https://dup.example.com":
            raise DuplicateFeedError(url)
        return Feed(id="abc", title="Example", url=url)

    def refresh_all(self):
        self.calls.append(("refresh",))
        return self.refresh_result

    def exclude_today(self):
        return ["2024-06-15"]

    def exclude_date(self, date):
        if date == "bad":
            raise ValueError("Invalid date 'bad'; expected YYYY-MM-DD")
        return [date]


@pytest.fixture
def fake_reader(monkeypatch):
    reader = FakeReader()
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    monkeypatch.setattr(cli, "build_reader", lambda config: reader)
    return reader


def test_main_adds_feed(fake_reader, capsys):
    exit_code = cli.main(["add", "https://example.com/rss"])

    assert exit_code == 0
    assert fake_reader.calls == [("add", "https://example.com/rss")]
    assert "Added Example" in capsys.readouterr().out


def test_main_prints_duplicate_message(fake_reader, capsys):
    exit_code = cli.main(["add", "https://dup.example.com"])

    assert exit_code == 1
    assert capsys.readouterr().err.strip() == "this feed is already registered"


def test_main_reports_refresh_failure(fake_reader, capsys):
    fake_reader.refresh_result = RefreshResult(refreshed=0, failed={"https://x": "down"})

    assert cli.main(["refresh"]) == 1
    assert capsys.readouterr().err.strip() == "refresh failed"


def test_main_refresh_success(fake_reader, capsys):
    fake_reader.refresh_result = RefreshResult(refreshed=2, articles=10)

    assert cli.main(["refresh"]) == 0
    assert "Refreshed 2 feeds; 10 articles stored" in capsys.readouterr().out


def test_main_exclude_today(fake_reader, capsys):
    assert cli.main(["exclude", "today"]) == 0
    assert "2024-06-15" in capsys.readouterr().out


def test_main_invalid_date_is_a_usage_error(fake_reader):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["exclude", "bad"])

    assert excinfo.value.code == 2


def test_main_cli_overrides_logging(monkeypatch):
    captured = {}

    def fake_configure(level, log_file=None):
        captured["level"] = level
        captured["file"] = log_file

    monkeypatch.setattr(cli, "configure_logging", fake_configure)
    monkeypatch.setattr(
        cli,
        "parse_app_config",
        lambda path: AppConfig(logging=LoggingConfig(level="INFO", file="config.log")),
    )
    monkeypatch.setattr(cli, "build_reader", lambda config: types.SimpleNamespace())
    monkeypatch.setattr(cli, "run_command", lambda reader, args: 0)

    cli.main(["--config", "config.xml", "--log-level", "DEBUG", "--log-file", "cli.log", "feeds"])

    assert captured == {"level": "DEBUG", "file": "cli.log"}


def test_main_end_to_end_with_sqlite(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr(cli, "configure_logging", lambda level, log_file=None: None)
    db_url = f"sqlite:///{tmp_path / 'keeper.db'}"
    config_file = tmp_path / "config.xml"
    config_file.write_text(
        f"<config><storage><connection-string>{db_url}</connection-string></storage></config>",
        encoding="utf-8",
    )

    assert cli.main(["--config", str(config_file), "exclude", "2024-01-01"]) == 0
    capsys.readouterr()
    assert cli.main(["--config", str(config_file), "excluded"]) == 0
    assert capsys.readouterr().out.strip() == "2024-01-01"

    assert cli.main(["--config", str(config_file), "export-opml"]) == 0
    assert "<opml" in capsys.readouterr().out

    assert cli.main(["--config", str(config_file), "usage"]) == 0
    assert "excluded_dates" in capsys.readouterr().out

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--config", str(config_file), "include", "2024-1-1"])
    assert excinfo.value.code == 2
    capsys.readouterr()

    assert cli.main(["--config", str(config_file), "clear"]) == 0
    assert "Cleared stored feeds and articles" in capsys.readouterr().out
    assert cli.main(["--config", str(config_file), "excluded"]) == 0
    assert capsys.readouterr().out.strip() == "2024-01-01"
