"""
SELinux labeling adapter.

Labels are applied per artifact with ``chcon`` and then normalised with
``restorecon``. A failure is reported to the caller (who records a
warning); labeling never aborts a run.
"""

from __future__ import annotations

import logging

from src.adapters.base import MacLabeler

logger = logging.getLogger(__name__)


class SELinuxLabeler(MacLabeler):
    @property
    def name(self) -> str:
        return "selinux"

    @property
    def enforcing(self) -> bool:
        return True

    def is_available(self) -> bool:
        return self.runner.which("chcon") is not None

    def label(self, path: str, context_type: str, *, recursive: bool = False) -> bool:
        cmd = ["chcon"]
        if recursive:
            cmd.append("-R")
        cmd += ["-t", context_type, path]
        return self.runner.run(cmd, tolerate=True).ok

    def restore(self, path: str, *, recursive: bool = False) -> bool:
        cmd = ["restorecon"]
        if recursive:
            cmd.append("-R")
        cmd += ["-v", path]
        return self.runner.run(cmd, tolerate=True).ok


class NullLabeler(MacLabeler):
    """Hosts without label enforcement."""

    @property
    def name(self) -> str:
        return "none"

    @property
    def enforcing(self) -> bool:
        return False

    def is_available(self) -> bool:
        return False

    def label(self, path: str, context_type: str, *, recursive: bool = False) -> bool:
        return True

    def restore(self, path: str, *, recursive: bool = False) -> bool:
        return True
