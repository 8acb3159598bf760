"""
Logging configuration — central setup for the CLI.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Console level is resolved in precedence order:
    CLI flag  >  NMS_PROVISION_LOG_LEVEL env var  >  INFO (default)

The run transcript (``/var/log/nms-provision.log`` by default, or
NMS_PROVISION_LOG_FILE) always receives full DEBUG detail, is appended
to and never truncated, and is created with mode 0640. In quiet mode
the console only shows errors and the transcript is the sole record of
the narration.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = "NMS_PROVISION_LOG_LEVEL"
LOG_FILE_ENV = "NMS_PROVISION_LOG_FILE"
DEFAULT_TRANSCRIPT = "/var/log/nms-provision.log"
TRANSCRIPT_MODE = 0o640

# ── Format strings ──────────────────────────────────────────────

# INFO level — narration, no noise
_FMT_MINIMAL = "%(message)s"

# DEBUG level — full diagnostic with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_DEBUG = "%H:%M:%S"

# Transcript — always full detail
_FMT_FILE = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d — %(message)s"
_DATEFMT_FILE = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO/DEBUG
_NOISY_LOGGERS = ("urllib3", "charset_normalizer")


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    *,
    quiet: bool = False,
) -> str | None:
    """Configure Python logging for the entire process.

    Args:
        level: Console level name; falls back to the environment, then INFO.
        log_file: Transcript path; falls back to the environment, then
            the default. An empty string disables the transcript.
        quiet: Console shows ERROR and above only.

    Returns:
        The transcript path actually opened, or None.
    """
    numeric_level = _parse_level(level or os.environ.get(LOG_LEVEL_ENV), logging.INFO)
    if quiet:
        numeric_level = max(numeric_level, logging.ERROR)

    # ── Console handler (stderr) ────────────────────────────────
    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))

    # ── Root logger ─────────────────────────────────────────────
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.addHandler(console)
    root.setLevel(numeric_level)

    # ── Transcript ──────────────────────────────────────────────
    if log_file is None:
        log_file = os.environ.get(LOG_FILE_ENV, DEFAULT_TRANSCRIPT)
    opened = None
    if log_file:
        try:
            fh = open_transcript(log_file)
        except OSError as e:
            logger.warning("Cannot open transcript %s: %s", log_file, e)
        else:
            root.addHandler(fh)
            root.setLevel(logging.DEBUG)
            opened = log_file

    # ── Third-party noise control ───────────────────────────────
    if numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # Don't propagate exceptions from logging itself
    logging.raiseExceptions = False
    return opened


def open_transcript(path: str) -> logging.FileHandler:
    """Append-mode file handler at DEBUG; the file is created 0640."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    if not target.exists():
        fd = os.open(target, os.O_CREAT | os.O_WRONLY | os.O_APPEND, TRANSCRIPT_MODE)
        os.close(fd)
    os.chmod(target, TRANSCRIPT_MODE)

    fh = logging.FileHandler(target, mode="a", encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FMT_FILE, datefmt=_DATEFMT_FILE))
    return fh


def _parse_level(level: str | None, default: int = logging.WARNING) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return default
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return default
    return numeric
