"""
Rollback — best-effort reversal of a failed deployment.

Two parts, in order:

    1. rollback hooks of the phases that completed, newest first
    2. the fixed service reversal: stop + disable the unit, remove the
       unit file and the log rotation policy, reload systemd

Every step tolerates failure and absent artifacts, so rolling back
twice is the same as rolling back once. Accounts and their data are
never touched here; that is the user lifecycle manager's job, and only
with confirmation.
"""

from __future__ import annotations

import logging
from typing import Sequence

from src.core.context import RunContext
from src.core.errors import ProvisionError
from src.core.models.phase import Phase
from src.core.models.service import ServiceDescriptor

logger = logging.getLogger(__name__)


def rollback_plan(completed: Sequence[Phase]) -> list[Phase]:
    """Completed phases that carry a rollback hook, newest first."""
    return [phase for phase in reversed(completed) if phase.rollback is not None]


class RollbackController:
    """Undo what a failed run deployed."""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def rollback(
        self,
        descriptor: ServiceDescriptor | None = None,
        completed: Sequence[Phase] = (),
    ) -> bool:
        """Reverse the deployment.

        Returns:
            False when suppressed by ``no_rollback``, True otherwise.
        """
        ctx = self.ctx
        if ctx.config.no_rollback:
            logger.warning("Rollback suppressed (--no-rollback); artifacts left in place for inspection")
            return False

        descriptor = descriptor or ctx.descriptor
        previous_phase = ctx.runner.phase
        ctx.runner.phase = "rollback"
        logger.warning("Rolling back deployment")
        try:
            for phase in rollback_plan(completed):
                self._run_hook(phase)
            if descriptor is not None:
                self._reverse_service(descriptor)
        finally:
            ctx.runner.phase = previous_phase
        logger.warning("Rollback complete")
        return True

    def _run_hook(self, phase: Phase) -> None:
        logger.info("Reverting phase '%s'", phase.name)
        try:
            phase.rollback(self.ctx)
        except ProvisionError as e:
            logger.error("Rollback of phase '%s' failed: %s", phase.name, e)
            self.ctx.error_log.warn("rollback", f"Rollback of phase '{phase.name}' failed: {e}")

    def _reverse_service(self, descriptor: ServiceDescriptor) -> None:
        runner = self.ctx.runner
        services = self.ctx.capabilities.services
        unit = descriptor.unit_name

        services.stop(unit, best_effort=True)
        services.disable(unit, best_effort=True)
        runner.remove(descriptor.unit_path, check=False)
        runner.remove(descriptor.logrotate_path, check=False)
        services.daemon_reload(check=False)
        logger.info("Removed %s and %s", descriptor.unit_path, descriptor.logrotate_path)
