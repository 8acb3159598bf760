"""
Engine executor — the central orchestration loop.

Runs the static phase list strictly in order. For every phase the
idempotency predicate is evaluated first; a satisfied phase is reported
as such and its action never runs. Otherwise the action runs (under the
phase's RetryPolicy, if any) and the executor classifies what it raised:

    NotApplicable       → skipped, logged only
    CapabilityMissing   → skipped, warning recorded
    CommandFailure      → warning in a ``warn`` phase, fatal otherwise
    ValidationFailure   → fatal
    DiskExhausted       → fatal, never rolled back
    other ProvisionError→ fatal

A fatal outcome stops the run. If the host was already mutated and
``no_rollback`` is not set, the RollbackController unwinds the
deployment. Progress is logged after every phase whatever its outcome.

Flow:
    phases → predicate → action → classify → progress → [rollback] → report
"""

from __future__ import annotations

import logging
from typing import Sequence

from src.core.context import RunContext
from src.core.errors import (
    CapabilityMissing,
    CommandFailure,
    DiskExhausted,
    NotApplicable,
    ProvisionError,
)
from src.core.models.phase import Criticality, Phase, PhaseOutcome, PhaseStatus
from src.core.models.result import ErrorLog, ExecutionResult
from src.core.models.run import RunReport, RunState
from src.core.services.rollback import RollbackController

logger = logging.getLogger(__name__)

_COMPLETED = (PhaseStatus.OK, PhaseStatus.SATISFIED, PhaseStatus.WARNING)


class PhaseExecutor:
    """Sequential phase runner with structured error capture."""

    def __init__(self, ctx: RunContext, *, rollback: RollbackController | None = None):
        self.ctx = ctx
        self.rollback_controller = rollback or RollbackController(ctx)
        self.report = RunReport(error_log=ctx.error_log, dry_run=ctx.dry_run)
        self._error: ProvisionError | None = None

    def run(self, phases: Sequence[Phase]) -> tuple[ErrorLog, int]:
        """Execute *phases* in declaration order.

        Returns:
            (ErrorLog, exit_code) — exit code 0 on success, 1 on a fatal failure.
        """
        ctx = self.ctx
        ctx.state = RunState.PHASES
        total = len(phases)
        completed: list[Phase] = []

        for index, phase in enumerate(phases, start=1):
            outcome = self._run_phase(phase)
            self.report.outcomes.append(outcome)
            logger.info(
                "Progress: %d%% (%d/%d phases completed)",
                index * 100 // total, index, total,
            )

            if outcome.status == PhaseStatus.FAILED:
                self._fail(completed)
                return self._finish(1)

            if outcome.status in _COMPLETED:
                completed.append(phase)
                if phase.advances_to is not None and not ctx.dry_run:
                    ctx.state = phase.advances_to

        if not ctx.dry_run:
            ctx.state = RunState.SUCCESS
        return self._finish(0)

    # ── Phase ───────────────────────────────────────────────────

    def _run_phase(self, phase: Phase) -> PhaseOutcome:
        ctx = self.ctx
        runner = ctx.runner
        runner.phase = phase.name
        mark = len(runner.history)
        outcome = PhaseOutcome(name=phase.name, status=PhaseStatus.OK)
        logger.info("==> %s", phase.description or phase.name)

        try:
            if self._satisfied(phase):
                logger.info("%s: already satisfied", phase.name)
                outcome.status = PhaseStatus.SATISFIED
                outcome.message = "already satisfied"
                return outcome

            if phase.retry is not None:
                _, outcome.attempts = phase.retry.call(lambda: phase.action(ctx), label=phase.name)
            else:
                outcome.attempts = 1
                phase.action(ctx)
            outcome.message = "done"

        except NotApplicable as e:
            logger.info("%s: skipped (%s)", phase.name, e)
            outcome.status = PhaseStatus.SKIPPED
            outcome.message = str(e)

        except CapabilityMissing as e:
            ctx.warn(phase.name, str(e))
            outcome.status = PhaseStatus.SKIPPED
            outcome.message = str(e)

        except CommandFailure as e:
            # Already recorded by the runner.
            if phase.criticality == Criticality.WARN:
                logger.warning("%s: completed with warnings (%s)", phase.name, e)
                outcome.status = PhaseStatus.WARNING
            else:
                logger.error("%s: failed (%s)", phase.name, e)
                outcome.status = PhaseStatus.FAILED
                self._error = e
            outcome.message = str(e)

        except ProvisionError as e:
            logger.error("%s: failed (%s)", phase.name, e)
            ctx.error_log.record(
                ExecutionResult.failure(command=phase.name, error=str(e), phase=phase.name)
            )
            outcome.status = PhaseStatus.FAILED
            outcome.message = str(e)
            self._error = e

        finally:
            outcome.commands = [r.command for r in runner.history[mark:]]
            runner.phase = ""

        return outcome

    def _satisfied(self, phase: Phase) -> bool:
        if phase.is_satisfied is None:
            return False
        try:
            return bool(phase.is_satisfied(self.ctx))
        except ProvisionError as e:
            logger.debug("Predicate of %s raised %s; treating as unsatisfied", phase.name, e)
            return False

    # ── Failure ─────────────────────────────────────────────────

    def _host_mutated(self) -> bool:
        return any(not r.dry_run for r in self.ctx.runner.history)

    def _fail(self, completed: list[Phase]) -> None:
        ctx = self.ctx
        self.report.error = str(self._error) if self._error else None

        if isinstance(self._error, DiskExhausted):
            logger.error("Aborting: %s", self._error)
            ctx.state = RunState.FAILED_NO_ROLLBACK
            return
        if not self._host_mutated():
            logger.error("Aborting before any host change; nothing to roll back")
            ctx.state = RunState.FAILED_NO_ROLLBACK
            return

        if self.rollback_controller.rollback(ctx.descriptor, completed):
            ctx.state = RunState.FAILED_ROLLED_BACK
        else:
            ctx.state = RunState.FAILED_NO_ROLLBACK

    def _finish(self, exit_code: int) -> tuple[ErrorLog, int]:
        self.report.state = self.ctx.state
        self.report.exit_code = exit_code
        return self.ctx.error_log, exit_code
