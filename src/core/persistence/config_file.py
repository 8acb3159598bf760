"""
Persisted configuration file — atomic read/write of ``key=value`` lines.

The file lives at ``/etc/nms-provision.conf``. It is plain shell-style
assignments so operators can edit it by hand:

    # comment
    service_user=mediauser
    ports="1935,8000"

Writes are atomic (write to temp file, then rename) so a crash never
leaves a half-written configuration behind.
"""

from __future__ import annotations

import logging
import os
import shlex
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

_HEADER = (
    "# nms-provision configuration\n"
    "# key=value per line; later command-line flags override these values.\n"
)


class ConfigFileError(ValueError):
    """A line of the persisted file cannot be parsed."""

    def __init__(self, path: Path, lineno: int, line: str):
        self.path = path
        self.lineno = lineno
        super().__init__(f"{path}:{lineno}: expected key=value, got {line!r}")


def parse_config_text(text: str, path: Path = Path("<string>")) -> dict[str, str]:
    """Parse ``key=value`` lines. Later duplicates win.

    Blank lines and ``#`` comments are skipped; values may be single- or
    double-quoted; a leading ``export`` is tolerated.
    """
    values: dict[str, str] = {}
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key or any(c.isspace() for c in key):
            raise ConfigFileError(path, lineno, raw)
        try:
            parts = shlex.split(value, comments=True)
        except ValueError as e:
            raise ConfigFileError(path, lineno, raw) from e
        values[key] = " ".join(parts)
    return values


def load_config_file(path: Path) -> dict[str, str] | None:
    """Read the persisted file.

    Returns:
        Raw string values keyed as written, or None if the file is absent.

    Raises:
        ConfigFileError: On a malformed line.
        OSError: If the file exists but cannot be read.
    """
    if not path.is_file():
        logger.info("No configuration file at %s", path)
        return None
    values = parse_config_text(path.read_text(encoding="utf-8"), path)
    logger.debug("Loaded %d settings from %s", len(values), path)
    return values


def render_config_text(values: dict[str, str]) -> str:
    lines = [_HEADER]
    for key, value in values.items():
        rendered = shlex.quote(value) if value else '""'
        lines.append(f"{key}={rendered}\n")
    return "".join(lines)


def save_config_file(values: dict[str, str], path: Path, mode: int = 0o644) -> None:
    """Write *values* to *path* atomically and apply *mode*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = render_config_text(values)

    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".nms-provision_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(tmp, mode)
            tmp.replace(path)
            logger.info("Default configuration written to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        logger.error("Failed to write configuration to %s: %s", path, e)
        raise
