"""
Platform detection — distribution family, package manager, firewall,
SELinux and init system.

Read-only probes only. Detection never raises: anything missing
degrades to the generic/none choice and is dealt with later as a
"skip with recorded warning" by the phase that needs it.
"""

from __future__ import annotations

import logging
import shlex
from pathlib import Path

from src.adapters.firewall.backends import FIREWALL_BACKENDS
from src.adapters.shell.command import CommandRunner
from src.core.config.platform_loader import load_families, match_family
from src.core.context import HostPaths
from src.core.models.platform import (
    DistroFamily,
    FirewallKind,
    PackageCommands,
    PlatformProfile,
)

logger = logging.getLogger(__name__)


def parse_os_release(text: str) -> dict[str, str]:
    """Parse ``/etc/os-release`` KEY=value lines (values may be quoted)."""
    info: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        info[key.strip()] = parts[0] if parts else ""
    return info


class PlatformDetector:
    """Detect the host's PlatformProfile once and cache it for the run."""

    def __init__(
        self,
        runner: CommandRunner,
        paths: HostPaths | None = None,
        families: list[DistroFamily] | None = None,
    ):
        self.runner = runner
        self.paths = paths or HostPaths()
        self._families = families
        self._profile: PlatformProfile | None = None

    def detect(self) -> PlatformProfile:
        if self._profile is None:
            self._profile = self._detect()
        return self._profile

    # ── Steps ───────────────────────────────────────────────────

    def _detect(self) -> PlatformProfile:
        release = self._read_os_release()
        distro_id = release.get("ID", "unknown").lower() or "unknown"
        id_like = release.get("ID_LIKE", "").lower().split()

        families = self._families if self._families is not None else load_families()
        family = match_family(distro_id, id_like, families)

        if family is None:
            logger.warning(
                "Unknown distribution '%s'; using generic profile without a package manager",
                distro_id,
            )
            commands = PackageCommands()
            family_name = "generic"
            required_tools: dict[str, str] = {}
            auto_updates = ""
        else:
            commands = self._select_manager(family)
            family_name = family.name
            required_tools = dict(family.required_tools)
            auto_updates = family.auto_updates_package

        profile = PlatformProfile(
            distro_id=distro_id,
            family=family_name,
            package_commands=commands,
            required_tools=required_tools,
            firewall_backend=self._detect_firewall(),
            selinux_enabled=self._detect_selinux(family),
            init_system=self._detect_init_system(),
            auto_updates_package=auto_updates,
        )
        logger.info(
            "Detected platform: %s (family %s, packages %s, firewall %s, selinux %s)",
            profile.distro_id,
            profile.family,
            profile.package_commands.manager or "none",
            profile.firewall_backend.value,
            "enforcing" if profile.selinux_enabled else "off",
        )
        return profile

    def _read_os_release(self) -> dict[str, str]:
        for candidate in (self.paths.os_release, Path("/usr/lib/os-release")):
            try:
                return parse_os_release(candidate.read_text(encoding="utf-8"))
            except OSError:
                continue
        logger.warning("No os-release file found; distribution unknown")
        return {}

    def _select_manager(self, family: DistroFamily) -> PackageCommands:
        """First manager of the family whose binary exists on the host."""
        for commands in (family.packages, *family.fallback_managers):
            if commands.available and self.runner.which(commands.manager):
                return commands
        logger.warning(
            "No package manager binary found for family '%s'; package phases will be skipped",
            family.name,
        )
        return PackageCommands()

    def _detect_firewall(self) -> FirewallKind:
        for backend_cls in FIREWALL_BACKENDS:
            backend = backend_cls(self.runner)
            if backend.is_available():
                return FirewallKind(backend.name)
        return FirewallKind.NONE

    def _detect_selinux(self, family: DistroFamily | None) -> bool:
        if family is not None and family.selinux_family and self.runner.which("getenforce"):
            result = self.runner.probe(["getenforce"])
            return result.ok and result.output.strip().lower() == "enforcing"
        # Generic fallback: kernel interface
        try:
            return self.paths.selinux_enforce.read_text().strip() == "1"
        except OSError:
            return False

    def _detect_init_system(self) -> str:
        if self.paths.systemd_run.exists():
            return "systemd"
        if self.runner.which("rc-service"):
            return "openrc"
        return "unknown"


def detect_platform(runner: CommandRunner, paths: HostPaths | None = None) -> PlatformProfile:
    """Convenience wrapper: detect with the built-in family table."""
    return PlatformDetector(runner, paths).detect()
