"""
ExecutionResult and ErrorLog — the execution contract.

Every command the CommandRunner handles yields an ExecutionResult.
Results are never exceptions: failures are captured here and appended
to the ErrorLog, which is the sole input to rollback decisions and is
printed in the end-of-run summary.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ExecutionResult(BaseModel):
    """Outcome of one command or filesystem operation."""

    command: str
    phase: str = ""
    status: Literal["ok", "skipped", "failed", "warning"] = "ok"
    exit_code: int = 0
    output: str = ""
    error: str | None = None
    dry_run: bool = False

    started_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status in ("ok", "skipped")

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def success(cls, command: str, output: str = "", **kwargs: Any) -> ExecutionResult:
        """Create a success result."""
        return cls(command=command, status="ok", output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        command: str,
        error: str,
        exit_code: int = 1,
        **kwargs: Any,
    ) -> ExecutionResult:
        """Create a failure result."""
        return cls(command=command, status="failed", error=error, exit_code=exit_code, **kwargs)

    @classmethod
    def skip(cls, command: str, reason: str = "", **kwargs: Any) -> ExecutionResult:
        """Create a skip result (dry run, or nothing to do)."""
        return cls(command=command, status="skipped", output=reason, **kwargs)

    @classmethod
    def warning(cls, command: str, message: str, **kwargs: Any) -> ExecutionResult:
        """Create a warning entry (degraded, not failed)."""
        return cls(command=command, status="warning", error=message, **kwargs)

    def summary_line(self) -> str:
        prefix = f"[{self.phase}] " if self.phase else ""
        if self.status == "warning":
            return f"{prefix}Warning: {self.error}"
        if not self.command or self.command == self.phase:
            return f"{prefix}{self.error}"
        return f"{prefix}{self.error or 'Command failed'}: {self.command}"


class ErrorLog:
    """Ordered, append-only record of failures and warnings.

    Single writer: only the CommandRunner and the phase executor append.
    """

    def __init__(self) -> None:
        self._entries: list[ExecutionResult] = []

    def record(self, result: ExecutionResult) -> None:
        """Append a failed (or warning) result."""
        self._entries.append(result)

    def warn(self, phase: str, message: str, command: str = "") -> ExecutionResult:
        """Append a warning entry and return it."""
        entry = ExecutionResult.warning(command=command, message=message, phase=phase)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[ExecutionResult, ...]:
        return tuple(self._entries)

    @property
    def failures(self) -> list[ExecutionResult]:
        return [e for e in self._entries if e.failed]

    @property
    def warnings(self) -> list[ExecutionResult]:
        return [e for e in self._entries if e.status == "warning"]

    def for_phase(self, phase: str) -> list[ExecutionResult]:
        return [e for e in self._entries if e.phase == phase]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def to_list(self) -> list[dict]:
        return [e.model_dump(mode="json") for e in self._entries]
