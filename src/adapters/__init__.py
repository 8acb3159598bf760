"""Adapters — bindings to the host tools the provisioner drives.

Public re-exports for convenient access.
"""

from src.adapters.base import Adapter, FirewallBackend, MacLabeler, PackageManager
from src.adapters.mock import MockCommandRunner
from src.adapters.registry import CapabilitySet
from src.adapters.shell.command import CommandRunner

__all__ = [
    "Adapter",
    "CapabilitySet",
    "CommandRunner",
    "FirewallBackend",
    "MacLabeler",
    "MockCommandRunner",
    "PackageManager",
]
