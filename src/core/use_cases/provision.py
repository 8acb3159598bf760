"""
Provision use case — one full run.

This is the top-level orchestrator:

    resolve config → identity pre-flight → detect platform
        → select adapters → run phases → report

Configuration and identity problems end the run before the first
phase, with nothing on the host changed (apart from writing a missing
default config file, which is part of the config contract).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Sequence

from src.adapters.registry import CapabilitySet
from src.adapters.shell.command import CommandRunner
from src.core.config.loader import resolve
from src.core.context import HostPaths, RunContext
from src.core.engine.executor import PhaseExecutor
from src.core.engine.phases import build_phases
from src.core.errors import PrivilegeError, ProvisionError
from src.core.models.config import Configuration
from src.core.models.phase import Phase, PhaseStatus
from src.core.models.result import ExecutionResult
from src.core.models.run import RunReport, RunState
from src.core.services.platform_detect import PlatformDetector
from src.core.services.user_lifecycle import UserLifecycleManager

logger = logging.getLogger(__name__)


def run_provisioning(
    argv: Sequence[str] = (),
    *,
    config_path: Path | None = None,
    paths: HostPaths | None = None,
    runner: CommandRunner | None = None,
    privileged: bool | None = None,
    confirm: Callable[[str], bool] | None = None,
    disk_free: Callable[[Path], int] | None = None,
    phases: Sequence[Phase] | None = None,
    on_config: Callable[[Configuration], None] | None = None,
) -> RunReport:
    """Provision the host.

    Args:
        argv: Raw command-line flags (unknown ones are ignored).
        config_path: Persisted config file; defaults to ``paths.config_file``.
        paths: Host locations (tests rebase them under a temp dir).
        runner: Command runner; a real one is created when omitted.
        privileged: Whether we run as root; defaults to ``euid == 0``.
        confirm: Interactive yes/no prompt for destructive cleanup.
        disk_free: Free-space probe in MiB.
        phases: Pipeline override; defaults to ``build_phases()``.
        on_config: Called once with the resolved configuration, before
            anything else runs (the CLI re-applies logging there).

    Returns:
        RunReport with final state, exit code, outcomes and the ErrorLog.
    """
    paths = paths or HostPaths()
    if privileged is None:
        privileged = os.geteuid() == 0
    report = RunReport()

    # ── Configuration ───────────────────────────────────────────
    try:
        config = resolve(None, config_path or paths.config_file, argv, privileged=privileged)
    except ProvisionError as e:
        return _abort(report, e)
    if on_config is not None:
        on_config(config)

    if runner is None:
        runner = CommandRunner(dry_run=config.dry_run)
    else:
        runner.dry_run = config.dry_run
    report.error_log = runner.error_log
    report.dry_run = config.dry_run

    ctx = RunContext(
        config=config,
        runner=runner,
        capabilities=CapabilitySet.null(runner),
        paths=paths,
        state=RunState.CONFIG_RESOLVED,
    )
    if confirm is not None:
        ctx.confirm = confirm
    if disk_free is not None:
        ctx.disk_free = disk_free

    if config.dry_run:
        logger.info("[DRY-RUN] No changes will be made to this host")
    elif not privileged:
        return _abort(report, PrivilegeError("Run as root (or use --dry-run)"))

    # ── Identity pre-flight ─────────────────────────────────────
    try:
        UserLifecycleManager(ctx).ensure_identity()
    except ProvisionError as e:
        return _abort(report, e)

    # ── Platform ────────────────────────────────────────────────
    ctx.profile = PlatformDetector(runner, paths).detect()
    ctx.capabilities = CapabilitySet.for_profile(ctx.profile, runner)
    ctx.state = RunState.PLATFORM_DETECTED

    # ── Phases ──────────────────────────────────────────────────
    executor = PhaseExecutor(ctx)
    executor.run(list(phases) if phases is not None else build_phases())
    result = executor.report
    result.error_log = ctx.error_log
    logger.debug("Run finished in state %s", result.state.value)
    return result


def _abort(report: RunReport, error: ProvisionError) -> RunReport:
    logger.error("Error: %s", error)
    report.error_log.record(
        ExecutionResult.failure(command="preflight", error=str(error), phase="preflight")
    )
    report.state = RunState.FAILED_NO_ROLLBACK
    report.exit_code = 1
    report.error = str(error)
    return report


def format_summary(report: RunReport) -> list[str]:
    """End-of-run summary lines. Printed even in quiet mode."""
    lines: list[str] = []
    if report.outcomes:
        lines.append(
            f"Phases: {report.total} "
            f"(ok {report.count(PhaseStatus.OK)}, "
            f"satisfied {report.count(PhaseStatus.SATISFIED)}, "
            f"skipped {report.count(PhaseStatus.SKIPPED)}, "
            f"warnings {report.count(PhaseStatus.WARNING)}, "
            f"failed {report.count(PhaseStatus.FAILED)})"
        )
    if report.error_log:
        lines.append("Errors encountered during setup:")
        lines.extend(f"- {entry.summary_line()}" for entry in report.error_log)

    if report.dry_run and report.exit_code == 0:
        lines.append("[DRY-RUN] Completed in dry-run mode. No changes were made.")
    elif report.exit_code == 0:
        lines.append("Setup complete.")
    elif report.state == RunState.FAILED_ROLLED_BACK:
        lines.append(f"Setup failed and was rolled back: {report.error}")
    else:
        lines.append(f"Setup failed: {report.error}")
    return lines
