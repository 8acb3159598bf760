"""
Tests for the phase executor — classification, progress, retry,
rollback triggering and run states.
"""

import logging

import pytest

from src.core.engine.executor import PhaseExecutor
from src.core.engine.phases import build_phases, phase_names
from src.core.errors import (
    CapabilityMissing,
    DiskExhausted,
    IdentityError,
    NotApplicable,
    ValidationFailure,
)
from src.core.models.phase import Criticality, Phase, PhaseStatus
from src.core.models.run import RunState
from src.core.reliability.retry import RetryPolicy


class SpyRollback:
    def __init__(self, result=True):
        self.calls = []
        self.result = result

    def rollback(self, descriptor=None, completed=()):
        self.calls.append([p.name for p in completed])
        return self.result


def _raise(error):
    def action(ctx):
        raise error

    return action


def _mutate(ctx):
    ctx.runner.run(["touch", "/tmp/marker"])


def _noop(ctx):
    return None


def _run(ctx, phases, rollback=None):
    executor = PhaseExecutor(ctx, rollback=rollback or SpyRollback())
    error_log, code = executor.run(phases)
    return executor, error_log, code


# ── Classification ───────────────────────────────────────────────────


class TestClassification:
    def test_all_ok(self, make_context):
        ctx = make_context()
        executor, error_log, code = _run(ctx, [Phase(name="a", action=_mutate), Phase(name="b", action=_noop)])
        assert code == 0
        assert not error_log
        assert [o.status for o in executor.report.outcomes] == [PhaseStatus.OK, PhaseStatus.OK]
        assert executor.report.outcomes[0].commands == ["touch /tmp/marker"]
        assert executor.report.state == RunState.SUCCESS

    def test_satisfied_skips_action(self, make_context, runner):
        ctx = make_context()
        calls = []
        phase = Phase(name="a", action=lambda c: calls.append(1), is_satisfied=lambda c: True)
        executor, _, code = _run(ctx, [phase])
        assert calls == []
        assert executor.report.outcomes[0].status == PhaseStatus.SATISFIED
        assert runner.history == []

    def test_predicate_error_means_unsatisfied(self, make_context):
        ctx = make_context()
        calls = []
        phase = Phase(
            name="a",
            action=lambda c: calls.append(1),
            is_satisfied=_raise(CapabilityMissing("probe failed")),
        )
        _run(ctx, [phase])
        assert calls == [1]

    def test_not_applicable_is_silent(self, make_context):
        ctx = make_context()
        executor, error_log, code = _run(ctx, [Phase(name="a", action=_raise(NotApplicable("n/a")))])
        assert code == 0
        assert executor.report.outcomes[0].status == PhaseStatus.SKIPPED
        assert not error_log

    def test_capability_missing_warns(self, make_context):
        ctx = make_context()
        executor, error_log, code = _run(
            ctx, [Phase(name="a", action=_raise(CapabilityMissing("no zram"))), Phase(name="b", action=_noop)]
        )
        assert code == 0
        assert executor.report.outcomes[0].status == PhaseStatus.SKIPPED
        assert executor.report.outcomes[1].status == PhaseStatus.OK
        assert error_log.warnings[0].phase == "a"
        assert error_log.warnings[0].error == "no zram"

    def test_capability_missing_in_dry_run_not_logged(self, make_context):
        ctx = make_context(dry_run=True)
        executor, error_log, code = _run(ctx, [Phase(name="a", action=_raise(CapabilityMissing("no zram")))])
        assert code == 0
        assert executor.report.outcomes[0].status == PhaseStatus.SKIPPED
        assert not error_log

    def test_command_failure_in_warn_phase(self, make_context, runner):
        runner.respond("journalctl", 1, "corrupt")
        ctx = make_context()

        def action(c):
            c.runner.run(["journalctl", "--vacuum-time=30d"])

        phases = [
            Phase(name="a", action=action, criticality=Criticality.WARN),
            Phase(name="b", action=_noop),
        ]
        executor, error_log, code = _run(ctx, phases)
        assert code == 0
        assert executor.report.outcomes[0].status == PhaseStatus.WARNING
        assert executor.report.outcomes[1].status == PhaseStatus.OK
        assert len(error_log.failures) == 1
        assert error_log.failures[0].phase == "a"

    def test_command_failure_in_fatal_phase(self, make_context, runner):
        runner.respond("apt-get install", 100, "E: broken")
        ctx = make_context()
        later = []

        def action(c):
            c.runner.run(["apt-get", "install", "-y", "curl"])

        phases = [Phase(name="a", action=action), Phase(name="b", action=lambda c: later.append(1))]
        executor, error_log, code = _run(ctx, phases)
        assert code == 1
        assert later == []
        assert executor.report.total == 1
        # recorded once, by the runner
        assert len(error_log.failures) == 1
        assert error_log.failures[0].exit_code == 100

    def test_other_error_recorded_by_executor(self, make_context):
        ctx = make_context()
        executor, error_log, code = _run(ctx, [Phase(name="a", action=_raise(IdentityError("bad user")))])
        assert code == 1
        entry = error_log.failures[0]
        assert entry.phase == "a"
        assert entry.command == "a"
        assert entry.error == "bad user"
        assert executor.report.error == "bad user"


# ── Rollback triggering ──────────────────────────────────────────────


class TestFailureStates:
    def test_rollback_after_mutation(self, make_context):
        ctx = make_context()
        spy = SpyRollback()
        phases = [
            Phase(name="a", action=_mutate),
            Phase(name="b", action=_noop, criticality=Criticality.WARN),
            Phase(name="c", action=_raise(ValidationFailure("endpoint down"))),
        ]
        executor, _, code = _run(ctx, phases, spy)
        assert code == 1
        assert spy.calls == [["a", "b"]]
        assert executor.report.state == RunState.FAILED_ROLLED_BACK

    def test_no_rollback_before_mutation(self, make_context):
        ctx = make_context()
        spy = SpyRollback()
        executor, _, _ = _run(ctx, [Phase(name="a", action=_raise(ValidationFailure("x")))], spy)
        assert spy.calls == []
        assert executor.report.state == RunState.FAILED_NO_ROLLBACK

    def test_disk_exhausted_never_rolls_back(self, make_context):
        ctx = make_context()
        spy = SpyRollback()
        phases = [Phase(name="a", action=_mutate), Phase(name="b", action=_raise(DiskExhausted(500, 100)))]
        executor, _, code = _run(ctx, phases, spy)
        assert code == 1
        assert spy.calls == []
        assert executor.report.state == RunState.FAILED_NO_ROLLBACK

    def test_suppressed_rollback(self, make_context):
        ctx = make_context()
        phases = [Phase(name="a", action=_mutate), Phase(name="b", action=_raise(ValidationFailure("x")))]
        executor, _, _ = _run(ctx, phases, SpyRollback(result=False))
        assert executor.report.state == RunState.FAILED_NO_ROLLBACK

    def test_failed_phase_not_in_completed(self, make_context):
        ctx = make_context()
        spy = SpyRollback()
        phases = [
            Phase(name="a", action=_mutate),
            Phase(name="skip", action=_raise(NotApplicable("n/a"))),
            Phase(name="boom", action=_raise(ValidationFailure("x"))),
        ]
        _run(ctx, phases, spy)
        assert spy.calls == [["a"]]


# ── States and progress ──────────────────────────────────────────────


class TestStatesAndProgress:
    def test_advances_state(self, make_context):
        ctx = make_context()
        seen = []
        phases = [
            Phase(name="start", action=_mutate, advances_to=RunState.DEPLOYED),
            Phase(name="check", action=lambda c: seen.append(c.state), advances_to=RunState.VALIDATED),
            Phase(name="after", action=lambda c: seen.append(c.state)),
        ]
        executor, _, _ = _run(ctx, phases)
        assert seen == [RunState.DEPLOYED, RunState.VALIDATED]
        assert executor.report.state == RunState.SUCCESS

    def test_dry_run_stays_in_phases(self, make_context):
        ctx = make_context(dry_run=True)
        phases = [Phase(name="start", action=_mutate, advances_to=RunState.DEPLOYED)]
        executor, _, code = _run(ctx, phases)
        assert code == 0
        assert executor.report.state == RunState.PHASES

    def test_progress_logged_after_every_phase(self, make_context, caplog):
        ctx = make_context()
        phases = [
            Phase(name="a", action=_noop),
            Phase(name="b", action=_raise(NotApplicable("n/a"))),
            Phase(name="c", action=_noop, is_satisfied=lambda c: True),
            Phase(name="d", action=_raise(ValidationFailure("x"))),
        ]
        with caplog.at_level(logging.INFO, logger="src.core.engine.executor"):
            _run(ctx, phases)
        progress = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Progress")]
        assert progress == [
            "Progress: 25% (1/4 phases completed)",
            "Progress: 50% (2/4 phases completed)",
            "Progress: 75% (3/4 phases completed)",
            "Progress: 100% (4/4 phases completed)",
        ]


# ── Retry ────────────────────────────────────────────────────────────


class TestRetry:
    def test_each_failed_attempt_recorded(self, make_context, runner, no_wait_retry):
        runner.respond_sequence("apt-get update", [(100, "timeout"), (100, "timeout"), (0, "")])
        ctx = make_context()

        def action(c):
            c.runner.run(["apt-get", "update"])

        executor, error_log, code = _run(ctx, [Phase(name="refresh", action=action, retry=no_wait_retry)])
        outcome = executor.report.outcomes[0]
        assert code == 0
        assert outcome.status == PhaseStatus.OK
        assert outcome.attempts == 3
        assert len(error_log.failures) == 2
        assert outcome.commands == ["apt-get update"] * 3

    def test_exhausted(self, make_context, runner):
        runner.respond("apt-get update", 100, "timeout")
        ctx = make_context()
        policy = RetryPolicy(max_attempts=2, delay=0, sleep=lambda _s: None)

        def action(c):
            c.runner.run(["apt-get", "update"])

        executor, error_log, code = _run(ctx, [Phase(name="refresh", action=action, retry=policy)])
        assert code == 1
        assert len(error_log.failures) == 2
        assert executor.report.outcomes[0].status == PhaseStatus.FAILED


# ── Pipeline declaration ─────────────────────────────────────────────


class TestPipeline:
    def test_order(self):
        names = phase_names()
        assert names[0] == "disk_space"
        assert names.index("service_user") < names.index("runtime") < names.index("service_unit")
        assert names.index("firewall") < names.index("service_start") < names.index("health_validation")
        assert names[-1] == "final_checks"

    def test_unique_names(self):
        names = phase_names()
        assert len(names) == len(set(names))

    def test_network_phase_has_retry(self):
        phases = {p.name: p for p in build_phases()}
        assert phases["package_refresh"].retry is not None
        assert phases["firewall"].rollback is not None
        assert phases["service_start"].advances_to == RunState.DEPLOYED
        assert phases["health_validation"].advances_to == RunState.VALIDATED

    @pytest.mark.parametrize("name", ["journald", "zram_swap", "dns_resolver", "mac_labels", "final_checks"])
    def test_best_effort_phases(self, name):
        phases = {p.name: p for p in build_phases()}
        assert phases[name].criticality == Criticality.WARN
