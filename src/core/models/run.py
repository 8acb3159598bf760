"""
Run-level state machine and report.

    init → config_resolved → platform_detected → phases
         → [deployed → validated] → success | failed_rolled_back | failed_no_rollback

Dry runs never leave ``phases``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from src.core.models.phase import PhaseOutcome, PhaseStatus
from src.core.models.result import ErrorLog


class RunState(str, Enum):
    INIT = "init"
    CONFIG_RESOLVED = "config_resolved"
    PLATFORM_DETECTED = "platform_detected"
    PHASES = "phases"
    DEPLOYED = "deployed"
    VALIDATED = "validated"
    SUCCESS = "success"
    FAILED_ROLLED_BACK = "failed_rolled_back"
    FAILED_NO_ROLLBACK = "failed_no_rollback"

    @property
    def terminal(self) -> bool:
        return self in (
            RunState.SUCCESS,
            RunState.FAILED_ROLLED_BACK,
            RunState.FAILED_NO_ROLLBACK,
        )

    @property
    def failed(self) -> bool:
        return self in (RunState.FAILED_ROLLED_BACK, RunState.FAILED_NO_ROLLBACK)


@dataclass
class RunReport:
    """Result of one provisioning run."""

    state: RunState = RunState.INIT
    exit_code: int = 0
    error_log: ErrorLog = field(default_factory=ErrorLog)
    outcomes: list[PhaseOutcome] = field(default_factory=list)
    error: str | None = None
    dry_run: bool = False

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def count(self, status: PhaseStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def outcome(self, name: str) -> PhaseOutcome | None:
        for o in self.outcomes:
            if o.name == name:
                return o
        return None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "exit_code": self.exit_code,
            "dry_run": self.dry_run,
            "error": self.error,
            "phases": [o.to_dict() for o in self.outcomes],
            "errors": self.error_log.to_list(),
        }
