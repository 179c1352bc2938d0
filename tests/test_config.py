import textwrap

import pytest

from rss_keeper.config import AppConfig, parse_app_config


def test_parse_app_config_reads_all_sections(tmp_path):
    config_file = tmp_path / "config.xml"
    config_file.write_text(
        textwrap.dedent(
            """\
            <config>
              <storage>
                <connection-string>sqlite:///feeds.db</connection-string>
                <quota-bytes>1048576</quota-bytes>
              </storage>
              <fetch>
                <timeout>5</timeout>
                <concurrency>3</concurrency>
                <proxies>
                  <proxy name="relay" template="http://relay.local/{url}">
                    <header name="Origin">http://reader.local</header>
                  </proxy>
                  <proxy name="mirror" template="https://mirror/get?url={quoted_url}" unwrap="contents" />
                </proxies>
              </fetch>
              <logging>
                <level>DEBUG</level>
                <file>logs/keeper.log</file>
              </logging>
            </config>
            """
        ),
        encoding="utf-8",
    )

    config = parse_app_config(str(config_file))

    assert config.storage.connection_string == "sqlite:///feeds.db"
    assert config.storage.quota_bytes == 1048576
    assert config.fetch.timeout == 5.0
    assert config.fetch.concurrency == 3
    strategies = config.fetch.strategies()
    assert [s.name for s in strategies] == ["relay", "mirror"]
    assert strategies[0].headers == {"Origin": "http://reader.local"}
    assert strategies[1].unwrap == "contents"
    assert config.logging.level == "DEBUG"
    assert config.logging.file == str((tmp_path / "logs" / "keeper.log").resolve())


def test_empty_config_uses_defaults(tmp_path):
    config_file = tmp_path / "config.xml"
    config_file.write_text("<config />", encoding="utf-8")

    config = parse_app_config(str(config_file))

    assert config == AppConfig()
    assert [s.name for s in config.fetch.strategies()] == ["local-relay", "allorigins"]


def test_missing_config_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_app_config(str(tmp_path / "absent.xml"))


def test_proxy_without_template_is_rejected(tmp_path):
    config_file = tmp_path / "config.xml"
    config_file.write_text(
        "<config><fetch><proxies><proxy name='x' /></proxies></fetch></config>",
        encoding="utf-8",
    )

    with pytest.raises(ValueError):
        parse_app_config(str(config_file))
