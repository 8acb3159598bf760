"""
Provisioning error taxonomy.

Adapters never raise; they return ExecutionResults. The CommandRunner
turns failed results into the typed errors below and the phase
executor is the single place that catches them and decides between
"warn and continue", "skip" and "roll back and stop".
"""

from __future__ import annotations


class ProvisionError(Exception):
    """Base exception for all provisioning errors."""

    def __init__(self, message: str, context: str | None = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message} ({self.context})"
        return self.message


class ConfigError(ProvisionError):
    """Configuration is invalid or missing. Raised before any mutation."""


class IdentityError(ProvisionError):
    """Service identity is invalid or disallowed (e.g. root)."""


class CapabilityMissing(ProvisionError):
    """An expected host subsystem is absent; the phase is skipped."""


class CommandFailure(ProvisionError):
    """An invoked tool exited non-zero."""

    def __init__(self, command: str, exit_code: int, output: str = "", phase: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.output = output
        self.phase = phase
        super().__init__(f"Command failed (exit {exit_code}): {command}", phase or None)


class ValidationFailure(ProvisionError):
    """Post-deploy health validation failed."""


class DiskExhausted(ProvisionError):
    """Free disk space is below the configured threshold."""

    def __init__(self, required_mb: int, available_mb: int, path: str = "/"):
        self.required_mb = required_mb
        self.available_mb = available_mb
        self.path = path
        super().__init__(
            f"Insufficient disk space on {path}: "
            f"required {required_mb}MB, available {available_mb}MB"
        )


class NotApplicable(ProvisionError):
    """The phase does not apply to this host or run; skipped and logged only."""


class PrivilegeError(ProvisionError):
    """A mutating run was started without root privileges."""
