"""
Tests for the command runner, the mock runner and the retry policy.
"""

import sys
from pathlib import Path

import pytest

from src.adapters.mock import MockCommandRunner
from src.adapters.shell.command import CommandRunner, describe
from src.core.errors import CommandFailure, ConfigError
from src.core.models.result import ErrorLog, ExecutionResult
from src.core.reliability.retry import RetryPolicy

# ── Real runner ──────────────────────────────────────────────────────


class TestCommandRunner:
    def test_success(self):
        runner = CommandRunner()
        result = runner.run([sys.executable, "-c", "print('hello')"])
        assert result.ok
        assert result.output == "hello"
        assert len(runner.history) == 1
        assert not runner.error_log

    def test_failure_recorded_and_raised(self):
        runner = CommandRunner()
        runner.phase = "demo"
        with pytest.raises(CommandFailure) as exc:
            runner.run([sys.executable, "-c", "import sys; print('boom'); sys.exit(3)"])
        assert exc.value.exit_code == 3
        assert exc.value.phase == "demo"
        entry = runner.error_log.failures[0]
        assert entry.exit_code == 3
        assert entry.phase == "demo"
        assert "boom" in entry.output

    def test_failure_without_check(self):
        runner = CommandRunner()
        result = runner.run([sys.executable, "-c", "raise SystemExit(2)"], check=False)
        assert result.failed
        assert len(runner.error_log) == 1

    def test_tolerated_failure_not_recorded(self):
        runner = CommandRunner()
        result = runner.run([sys.executable, "-c", "raise SystemExit(1)"], tolerate=True)
        assert result.failed
        assert not runner.error_log

    def test_missing_binary(self):
        runner = CommandRunner()
        with pytest.raises(CommandFailure) as exc:
            runner.run(["definitely-not-a-real-binary-xyz"])
        assert exc.value.exit_code == 127

    def test_timeout(self):
        runner = CommandRunner()
        result = runner.run(
            [sys.executable, "-c", "import time; time.sleep(5)"], timeout=1, check=False
        )
        assert result.exit_code == 124

    def test_dry_run_does_not_execute(self, tmp_path: Path):
        marker = tmp_path / "marker"
        runner = CommandRunner(dry_run=True)
        result = runner.run([sys.executable, "-c", f"open({str(marker)!r}, 'w')"])
        assert result.status == "skipped"
        assert result.dry_run
        assert not marker.exists()
        assert runner.history[0].dry_run

    def test_probe_runs_in_dry_run(self):
        runner = CommandRunner(dry_run=True)
        result = runner.probe([sys.executable, "-c", "print('x')"])
        assert result.ok
        assert result.output == "x"
        assert runner.history == []

    def test_probe_failure_not_recorded(self):
        runner = CommandRunner()
        result = runner.probe([sys.executable, "-c", "raise SystemExit(1)"])
        assert result.failed
        assert not runner.error_log

    def test_as_user_wraps_sudo(self):
        runner = CommandRunner(dry_run=True)
        result = runner.run(["npm", "i"], as_user="mediauser")
        assert result.command == "sudo -u mediauser -H npm i"

    def test_describe_quotes(self):
        assert describe(["bash", "-c", ". a && b"]) == "bash -c '. a && b'"


class TestFilesystemOps:
    def test_write_file_atomic_with_mode(self, tmp_path: Path):
        runner = CommandRunner()
        target = tmp_path / "etc" / "x.conf"
        runner.write_file(target, "content\n", mode=0o600)
        assert target.read_text() == "content\n"
        assert (target.stat().st_mode & 0o777) == 0o600
        assert [p.name for p in target.parent.iterdir()] == ["x.conf"]

    def test_write_file_dry_run(self, tmp_path: Path):
        runner = CommandRunner(dry_run=True)
        result = runner.write_file(tmp_path / "x", "data")
        assert result.dry_run
        assert not (tmp_path / "x").exists()

    def test_write_failure_recorded(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        runner = CommandRunner()
        with pytest.raises(CommandFailure):
            runner.write_file(blocker / "child", "x")
        assert len(runner.error_log) == 1

    def test_remove_missing_is_noop(self, tmp_path: Path):
        runner = CommandRunner()
        result = runner.remove(tmp_path / "absent")
        assert result.status == "skipped"
        assert runner.history == []

    def test_remove_tree(self, tmp_path: Path):
        tree = tmp_path / "tree"
        (tree / "a").mkdir(parents=True)
        (tree / "a" / "f").write_text("x")
        CommandRunner().remove(tree)
        assert not tree.exists()

    def test_copy_file_with_mode(self, tmp_path: Path):
        src = tmp_path / "src.js"
        src.write_text("console.log(1)")
        dst = tmp_path / "dst.js"
        CommandRunner().copy_file(src, dst, mode=0o600)
        assert dst.read_text() == "console.log(1)"
        assert (dst.stat().st_mode & 0o777) == 0o600

    def test_make_dir(self, tmp_path: Path):
        target = tmp_path / "a" / "b"
        CommandRunner().make_dir(target, mode=0o700)
        assert target.is_dir()
        assert (target.stat().st_mode & 0o777) == 0o700

    def test_mutations_by_phase(self, tmp_path: Path):
        runner = CommandRunner(dry_run=True)
        runner.phase = "one"
        runner.write_file(tmp_path / "a", "")
        runner.phase = "two"
        runner.run(["true"])
        assert len(runner.mutations()) == 2
        assert [r.command for r in runner.mutations("two")] == ["true"]


# ── Mock runner ──────────────────────────────────────────────────────


class TestMockCommandRunner:
    def test_default_success(self):
        mock = MockCommandRunner()
        result = mock.run(["anything", "at", "all"])
        assert result.ok
        assert mock.commands == ["anything at all"]

    def test_scripted_failure(self):
        mock = MockCommandRunner()
        mock.respond("apt-get update", 100, "network down")
        with pytest.raises(CommandFailure):
            mock.run(["apt-get", "update"])
        assert mock.error_log.failures[0].output == "network down"

    def test_newest_rule_wins(self):
        mock = MockCommandRunner()
        mock.respond("systemctl", 0, "old")
        mock.respond("systemctl is-active", 0, "active")
        assert mock.probe(["systemctl", "is-active", "x"]).output == "active"
        assert mock.probe(["systemctl", "is-enabled", "x"]).output == "old"

    def test_sequence_last_repeats(self):
        mock = MockCommandRunner()
        mock.respond_sequence("flaky", [(1, "a"), (0, "b")])
        assert mock.probe(["flaky"]).exit_code == 1
        assert mock.probe(["flaky"]).exit_code == 0
        assert mock.probe(["flaky"]).exit_code == 0

    def test_responder_receives_argv(self):
        mock = MockCommandRunner()
        seen = []
        mock.respond_with("useradd", lambda argv: seen.append(argv) or (0, ""))
        mock.run(["useradd", "-m", "bob"])
        assert seen == [["useradd", "-m", "bob"]]

    def test_dry_run_spawns_nothing(self):
        mock = MockCommandRunner(dry_run=True)
        mock.run(["useradd", "bob"])
        assert mock.call_log == []
        assert mock.history[0].dry_run

    def test_which(self):
        mock = MockCommandRunner(tools=["ufw"])
        assert mock.which("ufw") == "/usr/bin/ufw"
        assert mock.which("firewall-cmd") is None

    def test_ran_and_reset(self):
        mock = MockCommandRunner()
        mock.run(["systemctl", "daemon-reload"])
        assert mock.ran("systemctl daemon")
        mock.reset()
        assert mock.call_count == 0
        assert mock.history == []


# ── Result / ErrorLog ────────────────────────────────────────────────


class TestErrorLog:
    def test_warn_and_failures(self):
        log = ErrorLog()
        log.warn("journald", "conf missing")
        log.record(ExecutionResult.failure(command="apt-get update", error="exit 100", phase="package_refresh"))
        assert len(log) == 2
        assert len(log.warnings) == 1
        assert len(log.failures) == 1
        assert log.for_phase("journald")[0].error == "conf missing"

    def test_summary_lines(self):
        warning = ExecutionResult.warning(command="", message="conf missing", phase="journald")
        assert warning.summary_line() == "[journald] Warning: conf missing"
        failure = ExecutionResult.failure(command="apt-get update", error="Command failed (exit 100)", phase="package_refresh")
        assert failure.summary_line() == "[package_refresh] Command failed (exit 100): apt-get update"
        named = ExecutionResult.failure(command="disk_space", error="Insufficient", phase="disk_space")
        assert named.summary_line() == "[disk_space] Insufficient"

    def test_to_list(self):
        log = ErrorLog()
        log.warn("p", "m")
        assert log.to_list()[0]["status"] == "warning"


# ── Retry ────────────────────────────────────────────────────────────


class TestRetryPolicy:
    def _flaky(self, failures: int):
        calls = {"n": 0}

        def fn():
            calls["n"] += 1
            if calls["n"] <= failures:
                raise CommandFailure("apt-get update", 100)
            return "ok"

        return fn, calls

    def test_succeeds_after_retries(self):
        sleeps = []
        policy = RetryPolicy(max_attempts=3, delay=10, sleep=sleeps.append)
        fn, calls = self._flaky(2)
        assert policy.call(fn) == ("ok", 3)
        assert sleeps == [10, 10]

    def test_exhausted_reraises_last(self):
        policy = RetryPolicy(max_attempts=3, delay=0, sleep=lambda _s: None)
        fn, calls = self._flaky(5)
        with pytest.raises(CommandFailure):
            policy.call(fn)
        assert calls["n"] == 3

    def test_other_errors_not_retried(self):
        policy = RetryPolicy(max_attempts=3, delay=0, sleep=lambda _s: None)
        calls = []

        def fn():
            calls.append(1)
            raise ConfigError("bad")

        with pytest.raises(ConfigError):
            policy.call(fn)
        assert len(calls) == 1

    @pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"delay": -1}])
    def test_invalid_policy(self, kwargs):
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)
