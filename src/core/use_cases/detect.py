"""
Detection use case — read-only platform report.

Runs the platform detector and the adapter selection without touching
the host, for the ``detect`` CLI command.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from src.adapters.registry import CapabilitySet
from src.adapters.shell.command import CommandRunner
from src.core.context import HostPaths
from src.core.models.platform import PlatformProfile
from src.core.services.platform_detect import PlatformDetector

logger = logging.getLogger(__name__)


@dataclass
class DetectResult:
    """Result of the detect use case."""

    profile: PlatformProfile | None = None
    adapters: dict[str, dict[str, Any]] = field(default_factory=dict)
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "platform": self.profile.to_dict() if self.profile else {},
            "adapters": self.adapters,
        }


def run_detect(
    runner: CommandRunner | None = None,
    paths: HostPaths | None = None,
) -> DetectResult:
    """Detect the platform and report the adapters that would be used."""
    runner = runner or CommandRunner(dry_run=True)
    result = DetectResult()
    profile = PlatformDetector(runner, paths).detect()
    result.profile = profile
    result.adapters = CapabilitySet.for_profile(profile, runner).adapter_status()
    return result
