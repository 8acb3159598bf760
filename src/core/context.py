"""
Run context — everything a phase needs, passed explicitly.

One RunContext is built per invocation by the provision use case and
handed to every phase, the executor, the rollback controller and the
health validator. Nothing in the engine reads module-level state:

    - Configuration and PlatformProfile are read-only snapshots.
    - The ErrorLog is owned by the runner/executor pair.
    - ``state`` and ``descriptor`` are advanced by the executor and
      the deployer as the run progresses.

Tests build a context with ``HostPaths.under(tmp_path)`` and a
MockCommandRunner; no host file outside the temporary root is touched.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from src.core.models.config import Configuration
from src.core.models.platform import PlatformProfile
from src.core.models.result import ErrorLog
from src.core.models.run import RunState
from src.core.models.service import ServiceDescriptor

if TYPE_CHECKING:
    from src.adapters.registry import CapabilitySet
    from src.adapters.shell.command import CommandRunner
    from src.core.observability.health import HealthReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostPaths:
    """Fixed host locations the provisioner reads and writes."""

    config_file: Path = Path("/etc/nms-provision.conf")
    transcript: Path = Path("/var/log/nms-provision.log")
    os_release: Path = Path("/etc/os-release")
    unit_dir: Path = Path("/etc/systemd/system")
    logrotate_dir: Path = Path("/etc/logrotate.d")
    home_root: Path = Path("/home")
    apt_sources: Path = Path("/etc/apt/sources.list")
    apt_sources_dir: Path = Path("/etc/apt/sources.list.d")
    journald_conf: Path = Path("/etc/systemd/journald.conf")
    journal_dir: Path = Path("/var/log/journal")
    cron_dir: Path = Path("/etc/cron.d")
    zram_conf: Path = Path("/etc/default/zramswap")
    resolved_conf: Path = Path("/etc/systemd/resolved.conf")
    sys_block: Path = Path("/sys/block")
    selinux_enforce: Path = Path("/sys/fs/selinux/enforce")
    systemd_run: Path = Path("/run/systemd/system")
    disk_root: Path = Path("/")

    @classmethod
    def under(cls, root: Path) -> HostPaths:
        """Rebase every path below *root* (for tests and chroots)."""
        defaults = cls()
        rebased = {
            f.name: root / str(getattr(defaults, f.name)).lstrip("/")
            for f in fields(cls)
        }
        return cls(**rebased)

    def home_of(self, user: str) -> Path:
        return self.home_root / user

    def unit_path(self, unit_name: str) -> Path:
        return self.unit_dir / unit_name

    def logrotate_path(self, service_name: str) -> Path:
        return self.logrotate_dir / service_name


def disk_free_mb(path: Path) -> int:
    """Free space on the filesystem holding *path*, in MiB."""
    return shutil.disk_usage(path).free // (1024 * 1024)


def _decline(_prompt: str) -> bool:
    return False


@dataclass
class RunContext:
    """Explicit per-run state shared by every component."""

    config: Configuration
    runner: CommandRunner
    capabilities: CapabilitySet
    profile: PlatformProfile = field(default_factory=PlatformProfile)
    paths: HostPaths = field(default_factory=HostPaths)
    confirm: Callable[[str], bool] = _decline
    disk_free: Callable[[Path], int] = disk_free_mb
    state: RunState = RunState.INIT
    descriptor: ServiceDescriptor | None = None
    service_started: bool = False
    health: HealthReport | None = None
    notes: dict[str, Any] = field(default_factory=dict)

    @property
    def error_log(self) -> ErrorLog:
        return self.runner.error_log

    @property
    def dry_run(self) -> bool:
        return self.config.dry_run

    def warn(self, phase: str, message: str) -> None:
        """Record a degradation in the ErrorLog and the transcript.

        A dry run only narrates it; its ErrorLog stays empty.
        """
        if self.dry_run:
            logger.info("[DRY-RUN] would skip: %s", message)
            return
        logger.warning("Warning: %s", message)
        self.error_log.warn(phase, message)
