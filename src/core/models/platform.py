"""
Platform models — detected host capabilities.

A PlatformProfile is produced once per run by the platform detector
and shared read-only. DistroFamily entries are loaded from
``src/core/data/platforms.yml``.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FirewallKind(str, Enum):
    """Supported firewall backends, in detection priority order."""

    UFW = "ufw"
    FIREWALLD = "firewalld"
    IPTABLES = "iptables"
    NONE = "none"


class PackageCommands(BaseModel):
    """Argv templates for one package manager.

    ``install`` and ``query`` receive package names appended at the end.
    An empty list means the operation is not supported.
    """

    model_config = ConfigDict(frozen=True)

    manager: str = ""
    update: list[str] = Field(default_factory=list)
    upgrade: list[str] = Field(default_factory=list)
    install: list[str] = Field(default_factory=list)
    autoremove: list[str] = Field(default_factory=list)
    clean: list[str] = Field(default_factory=list)
    query: list[str] = Field(default_factory=list)

    @property
    def available(self) -> bool:
        return bool(self.manager)


class DistroFamily(BaseModel):
    """A distribution family: how to recognise it and how to drive it."""

    model_config = ConfigDict(frozen=True)

    name: str
    ids: list[str] = Field(default_factory=list)
    packages: PackageCommands = Field(default_factory=PackageCommands)
    fallback_managers: list[PackageCommands] = Field(default_factory=list)
    required_tools: dict[str, str] = Field(default_factory=dict)
    selinux_family: bool = False
    auto_updates_package: str = ""


class PlatformProfile(BaseModel):
    """Read-only capability set of the current host."""

    model_config = ConfigDict(frozen=True)

    distro_id: str = "unknown"
    family: str = "generic"
    package_commands: PackageCommands = Field(default_factory=PackageCommands)
    required_tools: dict[str, str] = Field(default_factory=dict)
    firewall_backend: FirewallKind = FirewallKind.NONE
    selinux_enabled: bool = False
    init_system: str = "unknown"
    auto_updates_package: str = ""

    @property
    def has_package_manager(self) -> bool:
        return self.package_commands.available

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
