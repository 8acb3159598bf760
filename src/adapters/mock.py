"""
Mock command runner — scripted test double for host commands.

Filesystem materialisation (write/remove/copy) is inherited unchanged,
so tests point ``HostPaths`` at a temporary directory and inspect the
real files. Spawned commands are answered from a rule table instead
of a subprocess. Unscripted commands succeed with empty output.
"""

from __future__ import annotations

from typing import Callable, Iterable

from src.adapters.shell.command import CommandRunner, describe
from src.core.models.result import ErrorLog

Responder = Callable[[list[str]], tuple[int, str]]


class MockCommandRunner(CommandRunner):
    """CommandRunner that never spawns processes.

    Rules match on the command descriptor prefix; the most recently
    added matching rule wins. ``tools`` lists what ``which()`` reports
    as installed.
    """

    def __init__(
        self,
        error_log: ErrorLog | None = None,
        *,
        dry_run: bool = False,
        tools: Iterable[str] = (),
    ):
        super().__init__(error_log, dry_run=dry_run)
        self.tools: set[str] = set(tools)
        self._rules: list[tuple[str, Responder]] = []
        self._call_log: list[list[str]] = []

    @property
    def call_log(self) -> list[list[str]]:
        """Every argv that would have been spawned (probes included)."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[str]:
        return [describe(argv) for argv in self._call_log]

    def respond(self, prefix: str, exit_code: int = 0, output: str = "") -> None:
        """Answer commands starting with *prefix* with a fixed result."""
        self._rules.append((prefix, lambda _argv: (exit_code, output)))

    def respond_with(self, prefix: str, responder: Responder) -> None:
        """Answer commands starting with *prefix* by calling *responder*."""
        self._rules.append((prefix, responder))

    def respond_sequence(self, prefix: str, results: list[tuple[int, str]]) -> None:
        """Answer successive matching calls from *results*; the last one repeats."""
        pending = list(results)

        def _next(_argv: list[str]) -> tuple[int, str]:
            return pending.pop(0) if len(pending) > 1 else pending[0]

        self._rules.append((prefix, _next))

    def ran(self, prefix: str) -> bool:
        """Whether any spawned command starts with *prefix*."""
        return any(c.startswith(prefix) for c in self.commands)

    def which(self, tool: str) -> str | None:
        return f"/usr/bin/{tool}" if tool in self.tools else None

    def reset(self) -> None:
        """Clear the call log and history (rules are kept)."""
        self._call_log.clear()
        self.history.clear()

    def _spawn(
        self,
        argv: list[str],
        *,
        cwd: str | None,
        timeout: int,
        interactive: bool,
    ) -> tuple[int, str]:
        self._call_log.append(list(argv))
        command = describe(argv)
        for prefix, responder in reversed(self._rules):
            if command.startswith(prefix):
                return responder(list(argv))
        return 0, ""
