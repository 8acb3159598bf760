"""
Adapter base — the capability contract between the engine and host tools.

Phases never branch on tool identity. They talk to a capability
interface (PackageManager, FirewallBackend, MacLabeler); the platform
detector picks one concrete implementation per detected tool, or the
null implementation when the tool is absent.

Adapters execute through a CommandRunner and never call subprocess
directly, so dry-run and error capture apply uniformly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from src.adapters.shell.command import CommandRunner


class Adapter(ABC):
    """Abstract base class for all host tool adapters."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'ufw', 'selinux')."""

    def is_available(self) -> bool:
        """Whether the underlying tool exists. Fast and never raises."""
        return True

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class PackageManager(Adapter):
    """Package installation capability."""

    @abstractmethod
    def refresh(self) -> None:
        """Refresh the package index."""

    @abstractmethod
    def upgrade(self) -> None:
        """Upgrade installed packages."""

    @abstractmethod
    def install(self, packages: Sequence[str]) -> None:
        """Install packages by name."""

    @abstractmethod
    def autoremove(self) -> None:
        """Remove orphaned dependencies."""

    @abstractmethod
    def clean(self) -> None:
        """Clean the package cache."""

    @abstractmethod
    def is_installed(self, package: str) -> bool:
        """Whether *package* is installed (read-only)."""


class FirewallBackend(Adapter):
    """Port-allow capability of a host firewall."""

    @abstractmethod
    def is_active(self) -> bool:
        """Whether the firewall is installed AND currently enforcing."""

    @abstractmethod
    def is_port_allowed(self, port: int, protocol: str = "tcp") -> bool:
        """Whether a permanent allow rule for *port* exists (read-only)."""

    @abstractmethod
    def allow_port(self, port: int, protocol: str = "tcp") -> None:
        """Add a permanent allow rule for *port*."""

    @abstractmethod
    def remove_port(self, port: int, protocol: str = "tcp") -> None:
        """Remove the allow rule for *port* (best effort)."""

    def reload(self) -> None:
        """Apply permanent rules. No-op for backends that apply immediately."""


class MacLabeler(Adapter):
    """Mandatory-access-control labeling capability."""

    @property
    @abstractmethod
    def enforcing(self) -> bool:
        """Whether labels matter on this host."""

    @abstractmethod
    def label(self, path: str, context_type: str, *, recursive: bool = False) -> bool:
        """Set the context type of *path*. Returns False on failure."""

    @abstractmethod
    def restore(self, path: str, *, recursive: bool = False) -> bool:
        """Restore the policy-default label of *path*. Returns False on failure."""
