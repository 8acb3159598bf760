"""
systemd adapter — unit lifecycle through ``systemctl``.

Queries (is-active, is-enabled, show) are read-only probes; lifecycle
changes are mutating commands.
"""

from __future__ import annotations

import logging

from src.adapters.base import Adapter

logger = logging.getLogger(__name__)


class ServiceManager(Adapter):
    """Thin systemctl wrapper."""

    @property
    def name(self) -> str:
        return "systemd"

    def is_available(self) -> bool:
        return self.runner.which("systemctl") is not None

    # ── Queries ─────────────────────────────────────────────────

    def is_active(self, unit: str) -> bool:
        result = self.runner.probe(["systemctl", "is-active", unit])
        return result.ok and result.output.strip() == "active"

    def is_enabled(self, unit: str) -> bool:
        result = self.runner.probe(["systemctl", "is-enabled", unit])
        return result.ok and result.output.strip() in ("enabled", "enabled-runtime", "alias")

    def status(self, unit: str) -> str:
        return self.runner.probe(["systemctl", "status", unit, "--no-pager"]).output

    # ── Lifecycle ───────────────────────────────────────────────

    def daemon_reload(self, *, check: bool = True) -> None:
        self.runner.run(["systemctl", "daemon-reload"], check=check)

    def enable(self, unit: str, *, now: bool = False) -> None:
        cmd = ["systemctl", "enable", unit]
        if now:
            cmd.append("--now")
        self.runner.run(cmd)

    def disable(self, unit: str, *, now: bool = False, best_effort: bool = False) -> None:
        cmd = ["systemctl", "disable", unit]
        if now:
            cmd.append("--now")
        self.runner.run(cmd, tolerate=best_effort)

    def start(self, unit: str) -> None:
        self.runner.run(["systemctl", "start", unit])

    def stop(self, unit: str, *, best_effort: bool = False) -> None:
        self.runner.run(["systemctl", "stop", unit], tolerate=best_effort)

    def restart(self, unit: str, *, check: bool = True) -> None:
        self.runner.run(["systemctl", "restart", unit], check=check)
