"""JSON Schema-based structural validation for the managed-sites YAML document.

The schema ships inside the package as ``wpsync/assets/config-schema.json``.
It only checks the shape of the document (types, required keys, unknown
keys) and says nothing about whether a domain name or URL is meaningful.
"""

from __future__ import annotations

import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator, ValidationError
from jsonschema.exceptions import SchemaError

logger = logging.getLogger(__name__)

_SCHEMA_FILENAME = "config-schema.json"


def get_default_schema_path() -> Path:
    """Brief: Resolve the default JSON Schema path.

    Inputs:
      - None.

    Outputs:
      - Path to the ``assets/config-schema.json`` bundled with the wpsync
        package, for source checkouts and installed wheels alike.
    """

    return Path(str(resources.files("wpsync") / "assets" / _SCHEMA_FILENAME))


def _load_schema(schema_path: Path) -> Dict[str, Any]:
    with schema_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Render jsonschema errors as one line per offending path.

    Inputs:
      - errors: jsonschema.ValidationError instances.
      - config_path: Path of the YAML document, used in the header only.

    Outputs:
      - str: Multi-line message suitable for logs.
    """

    lines: List[str] = [f"Invalid configuration in {config_path or '<config dict>'}:"]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def _split_extra_property_errors(
    errors: List[ValidationError],
) -> Tuple[List[ValidationError], List[ValidationError]]:
    extra: List[ValidationError] = []
    other: List[ValidationError] = []
    for err in errors:
        if err.validator in {"additionalProperties", "unevaluatedProperties"}:
            extra.append(err)
        else:
            other.append(err)
    return extra, other


def validate_config(
    cfg: Any,
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = None,
    unknown_keys: str = "warn",
) -> None:
    """Brief: Validate a parsed YAML document against the configuration schema.

    Inputs:
      - cfg: Object produced by yaml.safe_load.
      - schema_path: Optional explicit schema file; defaults to
        get_default_schema_path().
      - config_path: Path of the YAML document, used in messages only.
      - unknown_keys: "ignore", "warn" (default) or "error" for keys the
        schema does not describe.

    Outputs:
      - None on success.

    Raises:
      - ValueError: on structural errors, or on unknown keys when
        unknown_keys is "error".

    Notes:
      - A missing or unreadable schema file is logged and validation is
        skipped; the typed model still rejects malformed documents.

    Example:
      >>> validate_config({"sites": [{"domain_name": "a.example"}]})
    """

    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    effective_schema_path = schema_path or get_default_schema_path()
    if not effective_schema_path.is_file():
        logger.warning(
            "Configuration schema file %s not found; skipping JSON Schema validation",
            effective_schema_path,
        )
        return None

    try:
        schema = _load_schema(effective_schema_path)
        validator = Draft202012Validator(schema)
    except (OSError, json.JSONDecodeError, SchemaError) as exc:
        logger.warning(
            "Failed to load configuration schema at %s: %s; skipping JSON Schema validation",
            effective_schema_path,
            exc,
        )
        return None

    all_errors = sorted(validator.iter_errors(cfg), key=lambda e: list(map(str, e.path)))
    if not all_errors:
        return None

    extra_errors, other_errors = _split_extra_property_errors(all_errors)
    if other_errors:
        raise ValueError(
            _format_errors(other_errors + extra_errors, config_path=config_path)
        )

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "error":
        raise ValueError(message)
    if unknown_keys == "warn":
        logger.warning(message)
    return None
