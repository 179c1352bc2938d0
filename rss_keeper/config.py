"""Configuration loading for rss_keeper."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional
from xml.etree import ElementTree as ET

from .fetching import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT, ProxyStrategy, default_strategies
from .storage import DEFAULT_QUOTA_BYTES

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_STRING = "sqlite:///rss_keeper.db"


@dataclass
class StorageConfig:
    connection_string: str = DEFAULT_CONNECTION_STRING
    quota_bytes: int = DEFAULT_QUOTA_BYTES


@dataclass
class ProxyConfig:
    name: str
    template: str
    headers: Dict[str, str] = field(default_factory=dict)
    unwrap: Optional[str] = None

    def to_strategy(self) -> ProxyStrategy:
        return ProxyStrategy(
            name=self.name,
            template=self.template,
            headers=dict(self.headers),
            unwrap=self.unwrap,
        )


@dataclass
class FetchConfig:
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    proxies: List[ProxyConfig] = field(default_factory=list)

    def strategies(self) -> List[ProxyStrategy]:
        if not self.proxies:
            return default_strategies()
        return [proxy.to_strategy() for proxy in self.proxies]


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass
class AppConfig:
    storage: StorageConfig = field(default_factory=StorageConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _resolve_path(base_path: Path, target_path: str) -> str:
    """Resolve a path relative to the base config file if it's not absolute."""
    target = Path(target_path)
    if target.is_absolute():
        return str(target)
    return str((base_path.parent / target).resolve())


def _parse_proxy(node: ET.Element) -> ProxyConfig:
    name = node.attrib.get("name")
    template = node.attrib.get("template")
    if not name or not template:
        raise ValueError("Each <proxy> needs 'name' and 'template' attributes.")

    headers: Dict[str, str] = {}
    for header in node.findall("header"):
        header_name = header.attrib.get("name")
        if not header_name:
            raise ValueError(f"Proxy '{name}' has a <header> without a name.")
        headers[header_name] = (header.text or "").strip()

    return ProxyConfig(
        name=name,
        template=template,
        headers=headers,
        unwrap=node.attrib.get("unwrap") or None,
    )


def parse_app_config(path: str) -> AppConfig:
    """Parse the main application configuration XML."""
    config_path = Path(path).resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    logger.info("Loading application configuration from %s", config_path)
    root = ET.parse(config_path).getroot()

    # Storage
    storage = StorageConfig()
    storage_node = root.find("storage")
    if storage_node is not None:
        storage.connection_string = (
            storage_node.findtext("connection-string") or DEFAULT_CONNECTION_STRING
        ).strip()
        quota = storage_node.findtext("quota-bytes")
        if quota:
            storage.quota_bytes = int(quota)
            if storage.quota_bytes <= 0:
                raise ValueError("<quota-bytes> must be positive.")

    # Fetching
    fetch = FetchConfig()
    fetch_node = root.find("fetch")
    if fetch_node is not None:
        fetch.timeout = float(fetch_node.findtext("timeout", str(DEFAULT_TIMEOUT)))
        fetch.concurrency = int(fetch_node.findtext("concurrency", str(DEFAULT_CONCURRENCY)))
        if fetch.concurrency < 1:
            raise ValueError("<concurrency> must be at least 1.")
        proxies_node = fetch_node.find("proxies")
        if proxies_node is not None:
            fetch.proxies = [_parse_proxy(node) for node in proxies_node.findall("proxy")]

    # Logging
    logging_config = LoggingConfig()
    log_node = root.find("logging")
    if log_node is not None:
        logging_config.level = log_node.findtext("level", "INFO")
        log_file = log_node.findtext("file")
        if log_file:
            logging_config.file = _resolve_path(config_path, log_file)

    return AppConfig(storage=storage, fetch=fetch, logging=logging_config)
