"""
Configuration resolver — defaults ← persisted file ← command line.

This is the single entry point for building the run's Configuration.
Sources are merged field by field (later wins), then validated once
against the pydantic model. Any failure surfaces as ConfigError before
the host is touched.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from src.core.errors import ConfigError
from src.core.models.config import Configuration
from src.core.persistence.config_file import (
    ConfigFileError,
    load_config_file,
    save_config_file,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("/etc/nms-provision.conf")

# Documented defaults, as written to a fresh config file.
DEFAULTS: dict[str, Any] = Configuration().model_dump()

# Keys accepted from older config files.
LEGACY_KEYS = {
    "node_version": "runtime_version",
    "nms_log_file": "log_file",
}

# Command-line flag → boolean field set to True.
FLAG_FIELDS = {
    "--force": "force_cleanup",
    "--quiet": "quiet",
    "--no-rollback": "no_rollback",
    "--dry-run": "dry_run",
}

_FIELDS = frozenset(Configuration.model_fields)


def normalize_keys(raw: Mapping[str, str], source: str = "config") -> dict[str, str]:
    """Map file keys onto Configuration field names.

    Keys are case-insensitive; legacy names are translated; unknown keys
    are dropped with a warning.
    """
    values: dict[str, str] = {}
    for key, value in raw.items():
        name = key.strip().lower()
        name = LEGACY_KEYS.get(name, name)
        if name not in _FIELDS:
            logger.warning("Ignoring unknown key '%s' in %s", key, source)
            continue
        values[name] = value
    return values


def parse_flags(argv: Sequence[str]) -> dict[str, bool]:
    """Translate recognised flags; anything else is ignored."""
    overrides: dict[str, bool] = {}
    for arg in argv:
        field = FLAG_FIELDS.get(arg)
        if field is None:
            logger.debug("Ignoring unrecognised argument '%s'", arg)
            continue
        overrides[field] = True
    return overrides


def resolve(
    defaults: Mapping[str, Any] | None = None,
    config_path: Path | None = None,
    argv: Sequence[str] = (),
    *,
    privileged: bool | None = None,
) -> Configuration:
    """Build the immutable Configuration for this run.

    Args:
        defaults: Base values; ``DEFAULTS`` when omitted.
        config_path: Persisted key=value file (``/etc/nms-provision.conf``).
        argv: Command-line arguments; recognised flags override the file.
        privileged: Whether a missing file may be created. Defaults to
            ``euid == 0``.

    Returns:
        Validated Configuration.

    Raises:
        ConfigError: If the file is malformed or a value is invalid.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    merged: dict[str, Any] = dict(DEFAULTS if defaults is None else defaults)

    try:
        raw = load_config_file(path)
    except ConfigFileError as e:
        raise ConfigError(str(e)) from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if raw is None:
        if privileged is None:
            privileged = os.geteuid() == 0
        if privileged:
            _write_defaults(merged, path)
    else:
        merged.update(normalize_keys(raw, source=str(path)))

    merged.update(parse_flags(argv))

    try:
        config = Configuration.model_validate(merged)
    except ValidationError as e:
        raise ConfigError(_format_validation(e), context=str(path)) from e

    logger.debug("Resolved configuration: %s", config.model_dump())
    return config


def _write_defaults(values: Mapping[str, Any], path: Path) -> None:
    try:
        config = Configuration.model_validate(values)
    except ValidationError as e:
        raise ConfigError(_format_validation(e), context="defaults") from e
    try:
        save_config_file(config.to_file_values(), path, mode=0o644)
    except OSError as e:
        raise ConfigError(f"Cannot write default config file {path}: {e}") from e


def _format_validation(error: ValidationError) -> str:
    problems = []
    for err in error.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "config"
        problems.append(f"{location}: {err.get('msg', 'invalid value')}")
    return "Invalid configuration: " + "; ".join(problems)
