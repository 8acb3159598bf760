"""
Shared test fixtures and configuration.

Every test runs against a fake host rooted in ``tmp_path``: HostPaths
are rebased there and commands are answered by ``tests.fakes.FakeHost``.
No file outside the temporary root is read or written.
"""

from pathlib import Path

import pytest

from src.adapters.mock import MockCommandRunner
from src.adapters.registry import CapabilitySet
from src.core.context import HostPaths, RunContext
from src.core.models.config import Configuration
from src.core.reliability.retry import RetryPolicy
from src.core.services.platform_detect import PlatformDetector

from tests.fakes import DEBIAN_TOOLS, JOURNALD_CONF, OS_RELEASE, RESOLVED_CONF, FakeHost

# ── Paths and files ─────────────────────────────────────────────────


@pytest.fixture
def paths(tmp_path: Path) -> HostPaths:
    """Host paths rebased under a temporary root, with a Debian host laid out."""
    host = HostPaths.under(tmp_path / "host")
    host.os_release.parent.mkdir(parents=True, exist_ok=True)
    host.os_release.write_text(OS_RELEASE)
    host.journald_conf.parent.mkdir(parents=True, exist_ok=True)
    host.journald_conf.write_text(JOURNALD_CONF)
    host.resolved_conf.write_text(RESOLVED_CONF)
    host.apt_sources.parent.mkdir(parents=True, exist_ok=True)
    host.apt_sources.write_text("deb http://mirror.example/debian bookworm main\n")
    host.systemd_run.mkdir(parents=True, exist_ok=True)
    host.home_root.mkdir(parents=True, exist_ok=True)
    rotational = host.sys_block / "sda" / "queue" / "rotational"
    rotational.parent.mkdir(parents=True, exist_ok=True)
    rotational.write_text("0\n")
    return host


@pytest.fixture
def log_file(tmp_path: Path) -> Path:
    return tmp_path / "host" / "var" / "log" / "nms.log"


@pytest.fixture
def write_config(paths: HostPaths, log_file: Path):
    """Write the persisted config file; ``log_file`` always points into tmp."""

    def _write(**values) -> Path:
        values.setdefault("log_file", str(log_file))
        lines = [f"{key}={value}" for key, value in values.items()]
        paths.config_file.parent.mkdir(parents=True, exist_ok=True)
        paths.config_file.write_text("\n".join(lines) + "\n")
        return paths.config_file

    return _write


# ── Runner and host model ───────────────────────────────────────────


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner(tools=DEBIAN_TOOLS)


@pytest.fixture
def host(runner: MockCommandRunner) -> FakeHost:
    return FakeHost(runner)


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, delay=0, sleep=lambda _s: None)


# ── Context ─────────────────────────────────────────────────────────


@pytest.fixture
def make_context(paths: HostPaths, runner: MockCommandRunner, host: FakeHost, log_file: Path):
    """Build a RunContext for the fake Debian host."""

    def _make(**overrides) -> RunContext:
        overrides.setdefault("log_file", str(log_file))
        config = Configuration(**overrides)
        runner.dry_run = config.dry_run
        profile = PlatformDetector(runner, paths).detect()
        return RunContext(
            config=config,
            runner=runner,
            capabilities=CapabilitySet.for_profile(profile, runner),
            profile=profile,
            paths=paths,
            disk_free=lambda _p: 50_000,
        )

    return _make
