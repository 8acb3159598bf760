"""
Command runner — the single place where host commands are executed.

Every mutating command and every file materialisation goes through
``CommandRunner``. It honours dry-run (record, don't execute), captures
combined output and exit status, appends failures to the ErrorLog and
raises ``CommandFailure`` for the phase executor to classify.

Read-only queries (idempotency predicates, detection) go through
``probe()``: they run even in dry-run mode and never touch the ErrorLog.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Sequence

from src.core.errors import CommandFailure
from src.core.models.result import ErrorLog, ExecutionResult

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 4000


def describe(cmd: Sequence[str]) -> str:
    """Human-readable, shell-quoted command descriptor."""
    return shlex.join(cmd)


class CommandRunner:
    """Execute commands with dry-run support and structured error capture.

    Attributes:
        error_log: Shared ErrorLog (single writer: this runner + executor).
        dry_run:   Record mutating operations without performing them.
        phase:     Name of the phase currently executing (set by the executor).
        history:   Every mutating operation handled, executed or planned.
    """

    def __init__(
        self,
        error_log: ErrorLog | None = None,
        *,
        dry_run: bool = False,
        timeout: int = 900,
    ):
        self.error_log = error_log if error_log is not None else ErrorLog()
        self.dry_run = dry_run
        self.timeout = timeout
        self.phase = ""
        self.history: list[ExecutionResult] = []

    # ── Commands ────────────────────────────────────────────────

    def run(
        self,
        cmd: Sequence[str],
        *,
        check: bool = True,
        tolerate: bool = False,
        as_user: str | None = None,
        cwd: str | None = None,
        interactive: bool = False,
        timeout: int | None = None,
    ) -> ExecutionResult:
        """Run a mutating command.

        Args:
            cmd: argv list (never a shell string).
            check: Raise CommandFailure on non-zero exit.
            tolerate: Best-effort command; a non-zero exit is neither
                recorded nor raised (e.g. disabling a unit that may be gone).
            as_user: Run as this account via ``sudo -u``.
            cwd: Working directory.
            interactive: Inherit the terminal instead of capturing output.
            timeout: Seconds; defaults to the runner's timeout.
        """
        argv = self._wrap(cmd, as_user)
        command = describe(argv)

        if self.dry_run:
            logger.info("[DRY-RUN] Command: %s", command)
            result = ExecutionResult.skip(
                command=command,
                reason="dry-run",
                phase=self.phase,
                dry_run=True,
            )
            self.history.append(result)
            return result

        logger.info("Executing: %s", command)
        start = time.monotonic()
        exit_code, output = self._spawn(
            argv,
            cwd=cwd,
            timeout=timeout or self.timeout,
            interactive=interactive,
        )
        elapsed_ms = int((time.monotonic() - start) * 1000)

        if exit_code == 0:
            result = ExecutionResult.success(
                command=command,
                output=output,
                phase=self.phase,
                duration_ms=elapsed_ms,
            )
            self.history.append(result)
            return result

        result = ExecutionResult.failure(
            command=command,
            error=f"Command failed (exit {exit_code})",
            exit_code=exit_code,
            output=output,
            phase=self.phase,
            duration_ms=elapsed_ms,
        )
        self.history.append(result)

        if tolerate:
            logger.debug("Ignoring failure of best-effort command: %s", command)
            return result

        logger.error("Command failed (exit %d): %s", exit_code, command)
        if output:
            logger.debug("Output of failed command:\n%s", output)
        self.error_log.record(result)
        if check:
            raise CommandFailure(command, exit_code, output, self.phase)
        return result

    def probe(
        self,
        cmd: Sequence[str],
        *,
        as_user: str | None = None,
        cwd: str | None = None,
        timeout: int = 30,
    ) -> ExecutionResult:
        """Run a read-only query. Executes in dry-run; never recorded as an error."""
        argv = self._wrap(cmd, as_user)
        command = describe(argv)
        exit_code, output = self._spawn(argv, cwd=cwd, timeout=timeout, interactive=False)
        logger.debug("Probe (exit %d): %s", exit_code, command)
        if exit_code == 0:
            return ExecutionResult.success(command=command, output=output, phase=self.phase)
        return ExecutionResult.failure(
            command=command,
            error=f"exit {exit_code}",
            exit_code=exit_code,
            output=output,
            phase=self.phase,
        )

    def which(self, tool: str) -> str | None:
        """Locate *tool* on PATH."""
        return shutil.which(tool)

    # ── Filesystem materialisation ──────────────────────────────

    def write_file(
        self,
        path: str | Path,
        content: str,
        *,
        mode: int = 0o644,
        check: bool = True,
    ) -> ExecutionResult:
        """Atomically write *content* to *path* and apply *mode*."""
        target = Path(path)
        command = f"write {target} (mode {mode:o}, {len(content)} bytes)"
        if self.dry_run:
            return self._planned(command)

        logger.info("Writing %s", target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
            tmp = Path(tmp_name)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(content)
                os.chmod(tmp, mode)
                tmp.replace(target)
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
        except OSError as e:
            return self._fs_failure(command, e, check)

        return self._fs_success(command)

    def remove(self, path: str | Path, *, check: bool = True) -> ExecutionResult:
        """Remove a file or directory tree. Missing paths are a no-op."""
        target = Path(path)
        command = f"remove {target}"
        if self.dry_run:
            return self._planned(command)

        if not target.exists() and not target.is_symlink():
            return ExecutionResult.skip(command=command, reason="absent", phase=self.phase)

        logger.info("Removing %s", target)
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as e:
            return self._fs_failure(command, e, check)
        return self._fs_success(command)

    def copy_file(
        self,
        src: str | Path,
        dst: str | Path,
        *,
        mode: int | None = None,
        check: bool = True,
    ) -> ExecutionResult:
        """Copy a file (or directory tree) preserving metadata."""
        source, target = Path(src), Path(dst)
        command = f"copy {source} -> {target}"
        if self.dry_run:
            return self._planned(command)

        logger.info("Copying %s -> %s", source, target)
        try:
            if source.is_dir():
                shutil.copytree(source, target, symlinks=True)
            else:
                shutil.copy2(source, target)
            if mode is not None:
                os.chmod(target, mode)
        except OSError as e:
            return self._fs_failure(command, e, check)
        return self._fs_success(command)

    def make_dir(self, path: str | Path, *, mode: int = 0o755, check: bool = True) -> ExecutionResult:
        """Create a directory (and parents) and apply *mode*."""
        target = Path(path)
        command = f"mkdir {target} (mode {mode:o})"
        if self.dry_run:
            return self._planned(command)
        try:
            target.mkdir(parents=True, exist_ok=True)
            os.chmod(target, mode)
        except OSError as e:
            return self._fs_failure(command, e, check)
        return self._fs_success(command)

    # ── Bookkeeping ─────────────────────────────────────────────

    def mutations(self, phase: str | None = None) -> list[ExecutionResult]:
        """Mutating operations handled so far (optionally for one phase)."""
        if phase is None:
            return list(self.history)
        return [r for r in self.history if r.phase == phase]

    # ── Internals ───────────────────────────────────────────────

    @staticmethod
    def _wrap(cmd: Sequence[str], as_user: str | None) -> list[str]:
        argv = [str(c) for c in cmd]
        if as_user:
            return ["sudo", "-u", as_user, "-H", *argv]
        return argv

    def _planned(self, command: str) -> ExecutionResult:
        logger.info("[DRY-RUN] %s", command)
        result = ExecutionResult.skip(
            command=command, reason="dry-run", phase=self.phase, dry_run=True
        )
        self.history.append(result)
        return result

    def _fs_success(self, command: str) -> ExecutionResult:
        result = ExecutionResult.success(command=command, phase=self.phase)
        self.history.append(result)
        return result

    def _fs_failure(self, command: str, exc: OSError, check: bool) -> ExecutionResult:
        result = ExecutionResult.failure(
            command=command,
            error=f"{exc.__class__.__name__}: {exc}",
            exit_code=exc.errno or 1,
            phase=self.phase,
        )
        self.history.append(result)
        self.error_log.record(result)
        logger.error("%s failed: %s", command, exc)
        if check:
            raise CommandFailure(command, result.exit_code, str(exc), self.phase)
        return result

    def _spawn(
        self,
        argv: list[str],
        *,
        cwd: str | None,
        timeout: int,
        interactive: bool,
    ) -> tuple[int, str]:
        """Execute *argv*; return (exit_code, combined output tail)."""
        try:
            if interactive:
                proc = subprocess.run(argv, cwd=cwd, timeout=timeout)
                return proc.returncode, ""
            proc = subprocess.run(
                argv,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=timeout,
            )
            output = (proc.stdout or "").strip()
            return proc.returncode, output[-_OUTPUT_TAIL:]
        except subprocess.TimeoutExpired:
            return 124, f"Command timed out after {timeout}s"
        except FileNotFoundError:
            return 127, f"{argv[0]}: command not found"
        except OSError as e:
            return 126, f"Command execution error: {e}"
