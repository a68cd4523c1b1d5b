"""Termination arbiter.

stdio-shell runtime v0.1.0

A session ends through three independent signals that the OS delivers in
no particular order:

- stdout reached end-of-stream
- stderr reached end-of-stream
- the process exited

Each signal sets one latch. The outcome is computed once, when the last
latch is set, and depends only on the latch values, so every arrival order
yields the same TerminationOutcome.
"""

from __future__ import annotations

import logging
from typing import Callable

from ..errors import ProcessError, SpawnError
from .types import InvocationContext, OutcomeKind, TerminationOutcome

__all__ = ["TerminationArbiter", "ErrorFactory", "FinalizeCallback"]

ErrorFactory = Callable[[str], ProcessError]
FinalizeCallback = Callable[[TerminationOutcome], None]

logger = logging.getLogger(__name__)


class TerminationArbiter:
    """Joins the three terminal signals of a session into one outcome.

    Example:
        arbiter = TerminationArbiter(context, on_finalize=notify)
        arbiter.output_ended()
        arbiter.process_exited(1, None)
        arbiter.diagnostic_ended()   # last latch: notify(outcome) runs here

    Attributes:
        context: Invocation details attached to process errors
    """

    def __init__(
        self,
        context: InvocationContext,
        *,
        error_factory: ErrorFactory | None = None,
        on_finalize: FinalizeCallback | None = None,
    ) -> None:
        """Create an arbiter.

        Args:
            context: Invocation details attached to process errors
            error_factory: Builds the error from accumulated stderr text
            on_finalize: Called exactly once with the outcome
        """
        self.context = context
        self._error_factory = error_factory or ProcessError
        self._on_finalize = on_finalize

        # latches
        self._output_ended = False
        self._diagnostic_ended = False
        self._exited = False
        self._exit_code: int | None = None
        self._exit_signal: str | None = None

        self._diagnostic_parts: list[str] = []
        self._outcome: TerminationOutcome | None = None

    @property
    def diagnostic_text(self) -> str:
        """Everything received on stderr so far."""
        return "".join(self._diagnostic_parts)

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    @property
    def exit_signal(self) -> str | None:
        return self._exit_signal

    @property
    def is_ready(self) -> bool:
        """All three latches are set."""
        return self._output_ended and self._diagnostic_ended and self._exited

    @property
    def finalized(self) -> bool:
        return self._outcome is not None

    @property
    def outcome(self) -> TerminationOutcome | None:
        return self._outcome

    def add_diagnostic(self, text: str) -> None:
        """Accumulate raw stderr text for the error message."""
        if text:
            self._diagnostic_parts.append(text)

    def output_ended(self) -> TerminationOutcome | None:
        self._output_ended = True
        return self._try_finalize()

    def diagnostic_ended(self) -> TerminationOutcome | None:
        self._diagnostic_ended = True
        return self._try_finalize()

    def process_exited(self, exit_code: int | None, exit_signal: str | None) -> TerminationOutcome | None:
        """Record exit information.

        Args:
            exit_code: Exit code, None when killed by a signal
            exit_signal: Signal name, None on a normal exit
        """
        self._exited = True
        self._exit_code = exit_code
        self._exit_signal = exit_signal
        return self._try_finalize()

    def spawn_failed(self, error: SpawnError) -> TerminationOutcome:
        """Finalize immediately: a process that never started has no streams."""
        if self._outcome is not None:
            return self._outcome
        self._output_ended = self._diagnostic_ended = self._exited = True
        return self._finish(
            TerminationOutcome(kind=OutcomeKind.SPAWN_ERROR, error=error)
        )

    def _try_finalize(self) -> TerminationOutcome | None:
        if not self.is_ready:
            return None
        if self._outcome is not None:
            # already decided; repeated signals are no-ops
            return self._outcome
        return self._finish(self._compute_outcome())

    def _compute_outcome(self) -> TerminationOutcome:
        code = self._exit_code
        diagnostics = self.diagnostic_text

        if not code:
            return TerminationOutcome(
                kind=OutcomeKind.SUCCESS,
                exit_code=code,
                exit_signal=self._exit_signal,
                diagnostic_text=diagnostics,
            )

        if diagnostics:
            error = self._error_factory(diagnostics)
        else:
            error = ProcessError(f"process exited with code {code}")

        error.traceback = diagnostics
        error.exit_code = code
        error.executable = self.context.executable
        error.options = list(self.context.options) or None
        error.script = self.context.script
        error.args = list(self.context.args) or None

        return TerminationOutcome(
            kind=OutcomeKind.PROCESS_ERROR,
            exit_code=code,
            exit_signal=self._exit_signal,
            error=error,
            diagnostic_text=diagnostics,
        )

    def _finish(self, outcome: TerminationOutcome) -> TerminationOutcome:
        self._outcome = outcome
        logger.debug(
            f"Session finalized: kind={outcome.kind.value} "
            f"exit_code={outcome.exit_code} exit_signal={outcome.exit_signal}"
        )
        if self._on_finalize:
            self._on_finalize(outcome)
        return outcome
