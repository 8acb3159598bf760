"""
Phase model — one named, idempotent step of the provisioning pipeline.

Phases are declared once, statically, in ``src/core/engine/phases.py``
and executed strictly in declaration order by the PhaseExecutor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from src.core.context import RunContext
    from src.core.models.run import RunState
    from src.core.reliability.retry import RetryPolicy


class Criticality(str, Enum):
    """What a CommandFailure inside the phase means for the run."""

    FATAL = "fatal"
    WARN = "warn"


class PhaseStatus(str, Enum):
    """Reported outcome of a phase."""

    OK = "ok"
    SATISFIED = "satisfied"   # idempotency predicate already true
    SKIPPED = "skipped"       # capability missing (warned) or not applicable
    WARNING = "warning"       # command failed in a warn phase
    FAILED = "failed"         # fatal, run stops


@dataclass(frozen=True)
class Phase:
    """A pipeline step.

    Attributes:
        name:          Stable identifier (used in logs and the ErrorLog).
        description:   Human-readable narration line.
        action:        Forward action; raises a ProvisionError on failure.
        is_satisfied:  Idempotency predicate. True → phase is reported as
                       already satisfied and its action is not run.
        rollback:      Optional reversal hook run by the RollbackController.
        criticality:   fatal or warn.
        retry:         Optional bounded retry policy for the action.
        advances_to:   Run state reached once the phase completes
                       (outside dry runs).
    """

    name: str
    action: Callable[["RunContext"], None]
    description: str = ""
    is_satisfied: Optional[Callable[["RunContext"], bool]] = None
    rollback: Optional[Callable[["RunContext"], None]] = None
    criticality: Criticality = Criticality.FATAL
    retry: Optional["RetryPolicy"] = None
    advances_to: Optional["RunState"] = None


@dataclass
class PhaseOutcome:
    """What happened to one phase during a run."""

    name: str
    status: PhaseStatus
    message: str = ""
    attempts: int = 0
    commands: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "attempts": self.attempts,
            "commands": list(self.commands),
        }
