"""stdio-shell exception types.

stdio-shell v0.1.0
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "ShellError",
    "ArgumentError",
    "SpawnError",
    "ProcessError",
    "DecodeError",
    "SessionClosedError",
    "SyntaxCheckError",
]


class ShellError(Exception):
    """Base exception for stdio-shell."""
    pass


class ArgumentError(ShellError, ValueError):
    """Invalid session arguments (raised before anything is spawned)."""
    pass


class SpawnError(ShellError):
    """The interpreter process could not be started.

    Attributes:
        cause: The underlying OS error
    """

    def __init__(self, cause: BaseException, executable: str | None = None) -> None:
        self.cause = cause
        self.executable = executable
        super().__init__(f"failed to spawn {executable or 'process'}: {cause}")


class ProcessError(ShellError):
    """The script exited with a non-zero exit code.

    The message is the diagnostic text the script wrote to stderr, or a
    generic "process exited with code N" when it wrote nothing.

    Attributes:
        traceback: Accumulated stderr text ("" when none was received)
        exit_code: Process exit code
        executable: Interpreter path
        options: Interpreter options, None when empty
        script: Script path
        args: Script arguments, None when empty
    """

    def __init__(
        self,
        message: str,
        *,
        traceback: str = "",
        exit_code: int | None = None,
        executable: str | None = None,
        options: list[str] | None = None,
        script: str | None = None,
        args: list[str] | None = None,
    ) -> None:
        self.traceback = traceback
        self.exit_code = exit_code
        self.executable = executable
        self.options = options
        self.script = script
        self.args = args
        super().__init__(message)

    @property
    def context(self) -> dict[str, Any]:
        """Invocation context attached to the error."""
        return {
            "executable": self.executable,
            "options": self.options,
            "script": self.script,
            "args": self.args,
            "exit_code": self.exit_code,
        }


class DecodeError(ShellError, ValueError):
    """A decode function rejected a line.

    Attributes:
        line: The raw line that failed to decode
    """

    def __init__(self, message: str, line: str) -> None:
        self.line = line
        super().__init__(message)


class SessionClosedError(ShellError):
    """Write attempted on a session that is not running."""
    pass


class SyntaxCheckError(ShellError):
    """py_compile reported a syntax error.

    Attributes:
        stderr: Compiler output
    """

    def __init__(self, stderr: str) -> None:
        self.stderr = stderr
        super().__init__(stderr.strip() or "syntax check failed")
