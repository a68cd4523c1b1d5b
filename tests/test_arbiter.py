"""TerminationArbiter unit tests.

Test coverage:
- Finalization waits for all three latches
- Same outcome, finalized exactly once, for every arrival order
- ProcessError message and context
- Signal exits and spawn failures
"""

from __future__ import annotations

import itertools

import pytest

from stdio_shell.errors import ProcessError, SpawnError
from stdio_shell.runtime.arbiter import TerminationArbiter
from stdio_shell.runtime.types import InvocationContext, OutcomeKind, TerminationOutcome


@pytest.fixture
def context() -> InvocationContext:
    return InvocationContext(
        executable="/usr/bin/python3",
        options=["-u"],
        script="scripts/job.py",
        args=["--fast"],
    )


def _summary(outcome: TerminationOutcome) -> tuple:
    error = outcome.error
    return (
        outcome.kind,
        outcome.exit_code,
        outcome.exit_signal,
        outcome.diagnostic_text,
        type(error).__name__ if error else None,
        str(error) if error else None,
        error.context if isinstance(error, ProcessError) else None,
    )


def _run_order(context, order, exit_code, exit_signal, diagnostics=""):
    finalized = []
    arbiter = TerminationArbiter(context, on_finalize=finalized.append)
    arbiter.add_diagnostic(diagnostics)
    signals = {
        "stdout": arbiter.output_ended,
        "stderr": arbiter.diagnostic_ended,
        "exit": lambda: arbiter.process_exited(exit_code, exit_signal),
    }
    results = [signals[name]() for name in order]
    return arbiter, finalized, results


class TestLatches:

    def test_not_ready_until_all_three(self, context):
        arbiter = TerminationArbiter(context)
        assert arbiter.output_ended() is None
        assert arbiter.process_exited(0, None) is None
        assert arbiter.finalized is False

        outcome = arbiter.diagnostic_ended()
        assert outcome is not None
        assert arbiter.finalized is True
        assert arbiter.outcome is outcome

    def test_exit_without_code_or_signal_still_counts(self, context):
        arbiter = TerminationArbiter(context)
        arbiter.output_ended()
        arbiter.diagnostic_ended()
        outcome = arbiter.process_exited(None, None)
        assert outcome is not None
        assert outcome.kind == OutcomeKind.SUCCESS

    def test_repeated_signals_do_not_refinalize(self, context):
        finalized = []
        arbiter = TerminationArbiter(context, on_finalize=finalized.append)
        arbiter.output_ended()
        arbiter.diagnostic_ended()
        first = arbiter.process_exited(0, None)

        assert arbiter.output_ended() is first
        assert arbiter.diagnostic_ended() is first
        assert len(finalized) == 1


class TestArrivalOrder:
    """All 3! orders must agree."""

    @pytest.mark.parametrize(
        "exit_code,exit_signal,diagnostics",
        [
            (0, None, ""),
            (1, None, "SyntaxError: bad"),
            (3, None, ""),
            (None, "SIGTERM", "partial"),
        ],
    )
    def test_single_identical_finalization(self, context, exit_code, exit_signal, diagnostics):
        summaries = set()
        for order in itertools.permutations(["stdout", "stderr", "exit"]):
            arbiter, finalized, results = _run_order(
                context, order, exit_code, exit_signal, diagnostics
            )
            assert len(finalized) == 1, order
            # only the last signal produces the outcome
            assert results[:2] == [None, None], order
            assert results[2] is finalized[0]
            summaries.add(_summary(finalized[0]))

        assert len(summaries) == 1


class TestOutcome:

    def test_success(self, context):
        _, finalized, _ = _run_order(context, ["exit", "stdout", "stderr"], 0, None)
        outcome = finalized[0]
        assert outcome.ok
        assert outcome.error is None
        assert outcome.exit_code == 0
        assert outcome.exit_signal is None

    def test_failure_with_diagnostics(self, context):
        _, finalized, _ = _run_order(
            context, ["stdout", "stderr", "exit"], 1, None, "SyntaxError: bad"
        )
        outcome = finalized[0]
        assert outcome.kind == OutcomeKind.PROCESS_ERROR
        error = outcome.error
        assert isinstance(error, ProcessError)
        assert "SyntaxError: bad" in str(error)
        assert error.exit_code == 1
        assert error.traceback == "SyntaxError: bad"

    def test_failure_without_diagnostics(self, context):
        _, finalized, _ = _run_order(context, ["stdout", "stderr", "exit"], 3, None)
        error = finalized[0].error
        assert str(error) == "process exited with code 3"
        assert error.traceback == ""

    def test_error_context(self, context):
        _, finalized, _ = _run_order(context, ["exit", "stderr", "stdout"], 2, None, "boom")
        assert finalized[0].error.context == {
            "executable": "/usr/bin/python3",
            "options": ["-u"],
            "script": "scripts/job.py",
            "args": ["--fast"],
            "exit_code": 2,
        }

    def test_empty_options_and_args_are_none(self):
        context = InvocationContext(executable="python3", script="job.py")
        _, finalized, _ = _run_order(context, ["exit", "stderr", "stdout"], 1, None)
        error = finalized[0].error
        assert error.options is None
        assert error.args is None

    def test_signal_exit_is_not_an_error(self, context):
        _, finalized, _ = _run_order(context, ["stdout", "exit", "stderr"], None, "SIGKILL")
        outcome = finalized[0]
        assert outcome.ok
        assert outcome.exit_code is None
        assert outcome.exit_signal == "SIGKILL"

    def test_diagnostics_accumulate(self, context):
        arbiter = TerminationArbiter(context)
        arbiter.add_diagnostic("Traceback:\n")
        arbiter.add_diagnostic("")
        arbiter.add_diagnostic("ValueError: x\n")
        assert arbiter.diagnostic_text == "Traceback:\nValueError: x\n"

    def test_custom_error_factory(self, context):
        class ScriptFailure(ProcessError):
            pass

        arbiter = TerminationArbiter(context, error_factory=lambda text: ScriptFailure(text.upper()))
        arbiter.add_diagnostic("bad")
        arbiter.output_ended()
        arbiter.diagnostic_ended()
        outcome = arbiter.process_exited(1, None)
        assert isinstance(outcome.error, ScriptFailure)
        assert str(outcome.error) == "BAD"
        assert outcome.error.script == "scripts/job.py"


class TestSpawnFailure:

    def test_spawn_failed_finalizes_immediately(self, context):
        finalized = []
        arbiter = TerminationArbiter(context, on_finalize=finalized.append)
        error = SpawnError(FileNotFoundError("no such file"), context.executable)

        outcome = arbiter.spawn_failed(error)

        assert outcome.kind == OutcomeKind.SPAWN_ERROR
        assert outcome.error is error
        assert finalized == [outcome]
        # late stream signals change nothing
        assert arbiter.output_ended() is outcome
        assert len(finalized) == 1
