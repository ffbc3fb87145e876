"""Managed-sites configuration: model, loading, validation and watching."""

from .config_parser import (
    ConfigError,
    ConfigNotFoundError,
    ConfigParseError,
    ConfigReadError,
    load_config,
)
from .model import (
    PROXY_TYPE_APACHE,
    Database,
    ManagerConfig,
    Proxy,
    Site,
    SiteWordpress,
    WordpressGlobal,
)
from .watcher import ConfigWatcher, WatchError, watch

__all__ = [
    "PROXY_TYPE_APACHE",
    "ConfigError",
    "ConfigNotFoundError",
    "ConfigParseError",
    "ConfigReadError",
    "ConfigWatcher",
    "Database",
    "ManagerConfig",
    "Proxy",
    "Site",
    "SiteWordpress",
    "WatchError",
    "WordpressGlobal",
    "load_config",
    "watch",
]
