"""
Capability set — the adapters selected for this host.

Built once by the platform detector from the PlatformProfile. Phases
look capabilities up here and never branch on which tool backs them.
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from src.adapters.base import Adapter, FirewallBackend, MacLabeler, PackageManager
from src.adapters.firewall.backends import NullFirewall, build_firewall
from src.adapters.mac.selinux import NullLabeler, SELinuxLabeler
from src.adapters.packages.manager import NullPackageManager, build_package_manager
from src.adapters.shell.command import CommandRunner
from src.adapters.systemd.service_manager import ServiceManager
from src.core.models.platform import PlatformProfile

logger = logging.getLogger(__name__)


class CapabilitySet:
    """One adapter per capability: packages, firewall, labels, services."""

    def __init__(
        self,
        packages: PackageManager,
        firewall: FirewallBackend,
        labeler: MacLabeler,
        services: ServiceManager,
    ):
        self.packages = packages
        self.firewall = firewall
        self.labeler = labeler
        self.services = services

    @classmethod
    def for_profile(cls, profile: PlatformProfile, runner: CommandRunner) -> CapabilitySet:
        """Select concrete adapters for a detected profile."""
        capabilities = cls(
            packages=build_package_manager(runner, profile.package_commands),
            firewall=build_firewall(runner, profile.firewall_backend),
            labeler=SELinuxLabeler(runner) if profile.selinux_enabled else NullLabeler(runner),
            services=ServiceManager(runner),
        )
        logger.debug("Selected adapters: %s", capabilities.adapter_names())
        return capabilities

    @classmethod
    def null(cls, runner: CommandRunner) -> CapabilitySet:
        """Capability set of a host with nothing detected."""
        return cls(
            packages=NullPackageManager(runner),
            firewall=NullFirewall(runner),
            labeler=NullLabeler(runner),
            services=ServiceManager(runner),
        )

    def __iter__(self) -> Iterator[tuple[str, Adapter]]:
        yield "packages", self.packages
        yield "firewall", self.firewall
        yield "labels", self.labeler
        yield "services", self.services

    def adapter_names(self) -> dict[str, str]:
        return {role: adapter.name for role, adapter in self}

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability status of every selected adapter."""
        status = {}
        for role, adapter in self:
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[role] = {
                "name": adapter.name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status
