"""
Package manager adapter — drives apt, dnf/yum, zypper, pacman or apk.

One class covers every family: the argv templates come from the
PackageCommands record of the detected PlatformProfile. Hosts with no
known package manager get ``NullPackageManager``, whose operations
raise CapabilityMissing so package phases degrade to warnings.
"""

from __future__ import annotations

import logging
from typing import Sequence

from src.adapters.base import PackageManager
from src.adapters.shell.command import CommandRunner
from src.core.errors import CapabilityMissing
from src.core.models.platform import PackageCommands

logger = logging.getLogger(__name__)


class CommandPackageManager(PackageManager):
    """Package manager driven by argv templates."""

    def __init__(self, runner: CommandRunner, commands: PackageCommands):
        super().__init__(runner)
        self.commands = commands

    @property
    def name(self) -> str:
        return self.commands.manager

    def is_available(self) -> bool:
        return self.runner.which(self.commands.manager) is not None

    def refresh(self) -> None:
        self._run("update", self.commands.update)

    def upgrade(self) -> None:
        self._run("upgrade", self.commands.upgrade)

    def install(self, packages: Sequence[str]) -> None:
        if not packages:
            return
        self._run("install", self.commands.install, list(packages))

    def autoremove(self) -> None:
        self._run("autoremove", self.commands.autoremove)

    def clean(self) -> None:
        self._run("clean", self.commands.clean)

    def is_installed(self, package: str) -> bool:
        if not self.commands.query:
            return False
        result = self.runner.probe([*self.commands.query, package])
        if not result.ok:
            return False
        # dpkg-query reports removed-but-configured packages with exit 0
        if self.commands.manager == "apt-get":
            return "install ok installed" in result.output
        return True

    def _run(self, operation: str, template: list[str], extra: list[str] | None = None) -> None:
        if not template:
            logger.debug("%s has no '%s' operation, skipping", self.name, operation)
            return
        self.runner.run([*template, *(extra or [])])


class NullPackageManager(PackageManager):
    """Stand-in for hosts with no supported package manager."""

    @property
    def name(self) -> str:
        return "none"

    def is_available(self) -> bool:
        return False

    def refresh(self) -> None:
        raise CapabilityMissing("No supported package manager on this host")

    def upgrade(self) -> None:
        raise CapabilityMissing("No supported package manager on this host")

    def install(self, packages: Sequence[str]) -> None:
        raise CapabilityMissing(
            "No supported package manager on this host",
            context=f"cannot install {', '.join(packages)}",
        )

    def autoremove(self) -> None:
        raise CapabilityMissing("No supported package manager on this host")

    def clean(self) -> None:
        raise CapabilityMissing("No supported package manager on this host")

    def is_installed(self, package: str) -> bool:
        return False


def build_package_manager(runner: CommandRunner, commands: PackageCommands) -> PackageManager:
    """Pick the concrete package manager for a profile's command set."""
    if not commands.available:
        return NullPackageManager(runner)
    return CommandPackageManager(runner, commands)
