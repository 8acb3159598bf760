"""
Host configuration generators — journald, journal vacuum, zram, resolver
and Debian package sources.

INI-style files (journald.conf, resolved.conf) are edited in place:
``apply_ini_settings`` sets each key inside its section, replacing an
existing (possibly commented-out) assignment and appending the rest,
so operator settings outside our keys survive.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping

from src.core.models.template import RenderedFile

# ── journald ────────────────────────────────────────────────────

JOURNALD_SETTINGS: dict[str, str] = {
    "Storage": "persistent",
    "SystemMaxUse": "200M",
    "SystemMaxFileSize": "50M",
    "SystemMaxFiles": "5",
    "MaxRetentionSec": "30day",
    "Compress": "yes",
    "SyncIntervalSec": "5m",
    "RateLimitInterval": "30s",
    "RateLimitBurst": "500",
    "ForwardToSyslog": "no",
}

JOURNAL_VACUUM_CRON = "0 3 * * 7 root journalctl --vacuum-time=30d\n"

# ── zram ────────────────────────────────────────────────────────

ZRAM_SETTINGS: dict[str, str] = {"ALGO": "zstd", "PERCENT": "50"}

_SECTION_RE = re.compile(r"^\s*\[(?P<name>[^\]]+)\]\s*$")


def parse_ini_section(text: str, section: str) -> dict[str, str]:
    """Active (uncommented) ``key=value`` pairs of one section."""
    values: dict[str, str] = {}
    current = None
    for line in text.splitlines():
        match = _SECTION_RE.match(line)
        if match:
            current = match.group("name").strip()
            continue
        stripped = line.strip()
        if current != section or not stripped or stripped[0] in "#;" or "=" not in stripped:
            continue
        key, _, value = stripped.partition("=")
        values[key.strip()] = value.strip()
    return values


def settings_applied(text: str, section: str, settings: Mapping[str, str]) -> bool:
    """Whether every key of *settings* is already active with the same value."""
    current = parse_ini_section(text, section)
    return all(current.get(k) == v for k, v in settings.items())


def apply_ini_settings(text: str, section: str, settings: Mapping[str, str]) -> str:
    """Return *text* with *settings* set inside ``[section]``."""
    lines = text.splitlines()
    pending = dict(settings)
    out: list[str] = []
    current = None
    section_seen = False

    def flush() -> None:
        for key, value in pending.items():
            out.append(f"{key}={value}")
        pending.clear()

    for line in lines:
        match = _SECTION_RE.match(line)
        if match:
            if current == section:
                flush()
            current = match.group("name").strip()
            section_seen = section_seen or current == section
            out.append(line)
            continue
        if current == section:
            candidate = line.strip().lstrip("#;").strip()
            key = candidate.partition("=")[0].strip()
            if "=" in candidate and key in settings:
                if key in pending:
                    out.append(f"{key}={pending.pop(key)}")
                # duplicate assignment of a managed key: drop it
                continue
        out.append(line)

    if current == section:
        flush()
    elif pending:
        if not section_seen:
            if out and out[-1].strip():
                out.append("")
            out.append(f"[{section}]")
        flush()
    return "\n".join(out) + "\n"


def render_journald(existing: str, path: Path) -> RenderedFile:
    return RenderedFile(
        path=str(path),
        content=apply_ini_settings(existing, "Journal", JOURNALD_SETTINGS),
        reason="persistent journal with bounded size and retention",
    )


def render_vacuum_cron(path: Path) -> RenderedFile:
    return RenderedFile(
        path=str(path),
        content="# Weekly journal vacuum (managed by nms-provision)\n" + JOURNAL_VACUUM_CRON,
        reason="weekly journal vacuum",
    )


def render_zram(path: Path) -> RenderedFile:
    content = "".join(f"{k}={v}\n" for k, v in ZRAM_SETTINGS.items())
    return RenderedFile(path=str(path), content=content, reason="compressed swap in RAM")


def resolved_settings(dns: tuple[str, ...], fallback: tuple[str, ...]) -> dict[str, str]:
    settings = {"DNS": " ".join(dns)}
    if fallback:
        settings["FallbackDNS"] = " ".join(fallback)
    return settings


def render_resolved(existing: str, path: Path, dns: tuple[str, ...], fallback: tuple[str, ...]) -> RenderedFile:
    return RenderedFile(
        path=str(path),
        content=apply_ini_settings(existing, "Resolve", resolved_settings(dns, fallback)),
        reason="static resolver configuration",
    )


# ── Debian package sources ──────────────────────────────────────

_DEBIAN_COMPONENTS = "main contrib non-free non-free-firmware"


def render_debian_sources(codename: str, path: Path) -> RenderedFile:
    """Canonical Debian mirrors for *codename*."""
    content = (
        f"deb http://deb.debian.org/debian {codename} {_DEBIAN_COMPONENTS}\n"
        f"deb http://security.debian.org/debian-security {codename}-security {_DEBIAN_COMPONENTS}\n"
        f"deb http://deb.debian.org/debian {codename}-updates {_DEBIAN_COMPONENTS}\n"
    )
    return RenderedFile(path=str(path), content=content, reason=f"Debian {codename} sources")


def disable_deb_lines(text: str) -> str:
    """Comment out every active ``deb``/``deb-src`` line."""
    return re.sub(r"^deb", "#deb", text, flags=re.MULTILINE)
