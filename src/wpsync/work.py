"""Units of work run by the worker, and loading them from dotted paths.

A unit of work is any callable ``fn(stop_event, config)`` where config is the
current ManagerConfig or None when nothing has been loaded yet. It signals
failure by raising. It may be called any number of times and must not assume
two consecutive calls are related.
"""

from __future__ import annotations

import importlib
import logging
import threading
from typing import Optional

from .config.model import ManagerConfig
from .worker import WorkFunc

logger = logging.getLogger(__name__)

DEFAULT_WORK = "wpsync.work:log_summary"


def log_summary(stop_event: threading.Event, cfg: Optional[ManagerConfig]) -> None:
    """Default unit of work: report what would be kept in sync."""
    if cfg is None:
        logger.info("worker: no config loaded yet; skipping run")
        return
    logger.info(
        "worker: %d site(s) under %s (proxy=%s)",
        len(cfg.sites),
        cfg.wordpress_global.base_path or "<unset>",
        cfg.proxy.type or "<none>",
    )
    for site in cfg.sites:
        if stop_event.is_set():
            logger.info("worker: shutdown requested; stopping early")
            return
        logger.info(
            "worker: site %s (force_https=%s)",
            site.domain_name,
            site.wordpress.force_https,
        )


def load_work_function(identifier: str) -> WorkFunc:
    """
    Resolve a unit of work from "package.module:attr" or "package.module.attr".

    Args:
        identifier: Dotted import path of a callable.

    Returns:
        The callable.

    Raises:
        ValueError: identifier is malformed.
        ImportError: the module cannot be imported.
        AttributeError: the module has no such attribute.
        TypeError: the attribute is not callable.

    Example:
        >>> load_work_function("wpsync.work:log_summary") is log_summary
        True
    """
    ident = identifier.strip()
    if ":" in ident:
        modname, _, attr = ident.partition(":")
    else:
        modname, _, attr = ident.rpartition(".")
    if not modname or not attr:
        raise ValueError(f"Invalid work function path '{identifier}'")

    module = importlib.import_module(modname)
    fn = getattr(module, attr)
    if not callable(fn):
        raise TypeError(f"{identifier} is not callable")
    return fn
