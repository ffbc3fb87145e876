"""Loading of the managed-sites configuration document.

Brief:
  load_config() turns a YAML file into an immutable ManagerConfig snapshot:
    - read the whole file
    - parse YAML
    - JSON Schema structural validation (unknown keys are only warned about)
    - build the frozen pydantic model

  Every failure is raised as a ConfigError subclass so callers can tell a
  missing file apart from a malformed one. Nothing is silently defaulted.
"""

from __future__ import annotations

import logging
import os
from datetime import date
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from .config_schema import validate_config
from .model import ManagerConfig

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Base class for configuration loading failures."""


class ConfigNotFoundError(ConfigError):
    """The configuration file does not exist."""


class ConfigReadError(ConfigError):
    """The configuration file exists but could not be read."""


class ConfigParseError(ConfigError):
    """The configuration file was read but is not a valid document."""


def _read_text(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read()
    except FileNotFoundError as exc:
        raise ConfigNotFoundError(f"config file not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigReadError(f"read config {path}: {exc}") from exc


def _dates_as_text(value: Any) -> Any:
    # YAML timestamps load as date objects; text fields want them as written.
    if isinstance(value, dict):
        return {k: _dates_as_text(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_dates_as_text(v) for v in value]
    if isinstance(value, date):
        return value.isoformat()
    return value


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_nulls(v) for v in value]
    return value


def parse_config_text(text: str, *, config_path: str | None = None) -> ManagerConfig:
    """Brief: Parse YAML text into a ManagerConfig snapshot.

    Inputs:
      - text: YAML document.
      - config_path: Source path used in error messages.

    Outputs:
      - ManagerConfig: New immutable snapshot.

    Raises:
      - ConfigParseError: YAML syntax error, non-mapping root, schema
        violation, or model validation failure.
    """

    where = config_path or "<string>"
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigParseError(f"parse config {where}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigParseError(
            f"parse config {where}: root must be a mapping, got {type(raw).__name__}"
        )

    raw = _dates_as_text(raw)
    try:
        validate_config(raw, config_path=where)
    except ValueError as exc:
        raise ConfigParseError(str(exc)) from exc

    # Explicit nulls (e.g. "sites:" with no entries) mean "use the default".
    cleaned: Dict[str, Any] = _drop_nulls(raw)
    try:
        return ManagerConfig(**cleaned)
    except ValidationError as exc:
        raise ConfigParseError(f"parse config {where}: {exc}") from exc


def load_config(path: str | os.PathLike[str]) -> ManagerConfig:
    """
    Read and parse the YAML configuration file at path.

    Args:
        path: Configuration file path.

    Returns:
        A new ManagerConfig snapshot.

    Raises:
        ConfigNotFoundError: the file does not exist.
        ConfigReadError: the file could not be read.
        ConfigParseError: the contents are not a valid configuration.

    Example:
        >>> cfg = load_config("config.yaml")  # doctest: +SKIP
        >>> len(cfg.sites)  # doctest: +SKIP
        2
    """
    config_path = os.fspath(path)
    text = _read_text(config_path)
    cfg = parse_config_text(text, config_path=config_path)
    logger.debug("Parsed %s: %d site(s)", config_path, len(cfg.sites))
    return cfg
