"""Session type definitions.

stdio-shell runtime v0.1.0

Defines the session state machine, event kinds, decoded messages and the
termination outcome shared by the session and the arbiter.
"""

from __future__ import annotations

import signal as _signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from ..errors import ShellError

__all__ = [
    "Mode",
    "SessionState",
    "SessionEvent",
    "OutcomeKind",
    "Message",
    "InvocationContext",
    "TerminationOutcome",
    "split_returncode",
]


class Mode(str, Enum):
    """Channel operating mode."""

    TEXT = "text"
    JSON = "json"
    BINARY = "binary"

    @classmethod
    def from_string(cls, value: str, default: "Mode | None" = None) -> "Mode":
        """Parse a mode name, case-insensitively.

        Args:
            value: Mode name
            default: Returned for unknown names; when None, unknown names raise

        Raises:
            ValueError: Unknown name and no default
        """
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        if default is not None:
            return default
        raise ValueError(f"unknown mode: {value!r}")


class SessionState(str, Enum):
    """Session lifecycle. Transitions are monotonic."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    TERMINATED = "terminated"


class SessionEvent(str, Enum):
    """Events a session emits."""

    MESSAGE = "message"  # one per decoded stdout line
    STDERR = "stderr"    # one per decoded stderr line
    DATA = "data"        # raw stdout chunk, binary mode only
    ERROR = "error"
    CLOSE = "close"


class OutcomeKind(str, Enum):
    """Final result classification."""

    SUCCESS = "success"
    PROCESS_ERROR = "process_error"
    SPAWN_ERROR = "spawn_error"


class Message(BaseModel):
    """A decoded line and the raw line it came from."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    value: Any = None
    raw: str = ""


@dataclass(frozen=True)
class InvocationContext:
    """What was launched, attached to process errors.

    Attributes:
        executable: Interpreter path
        options: Interpreter options
        script: Script path (after joining script_folder)
        args: Script arguments
    """

    executable: str
    options: list[str] = field(default_factory=list)
    script: str = ""
    args: list[str] = field(default_factory=list)

    @property
    def argv(self) -> list[str]:
        """Full command line, executable first."""
        return [self.executable, *self.options, self.script, *self.args]


@dataclass(frozen=True)
class TerminationOutcome:
    """The single result of a session.

    Attributes:
        kind: Outcome classification
        exit_code: Exit code, None when killed by a signal or never spawned
        exit_signal: Signal name (e.g. "SIGTERM"), None on a normal exit
        error: ProcessError / SpawnError, None on success
        diagnostic_text: Everything received on stderr
    """

    kind: OutcomeKind
    exit_code: int | None = None
    exit_signal: str | None = None
    error: ShellError | None = None
    diagnostic_text: str = ""

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    def raise_for_error(self) -> None:
        """Raise the carried error, if any."""
        if self.error is not None:
            raise self.error


def split_returncode(returncode: int | None) -> tuple[int | None, str | None]:
    """Split an asyncio return code into (exit_code, exit_signal).

    POSIX reports a signal death as a negative return code; only one of the
    two values is ever set.
    """
    if returncode is None:
        return None, None
    if returncode < 0:
        try:
            return None, _signal.Signals(-returncode).name
        except ValueError:
            return None, f"SIG{-returncode}"
    return returncode, None
