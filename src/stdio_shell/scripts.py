"""One-shot script helpers.

Thin wrappers around ProcessSession for running a script to completion,
running a code string, checking syntax with py_compile and querying the
interpreter version.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import subprocess
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import anyio

from .config import ShellConfig, get_config
from .errors import ProcessError, ShellError, SpawnError, SyntaxCheckError
from .runtime import ProcessSession, SessionOptions

__all__ = [
    "run",
    "run_string",
    "check_syntax",
    "check_syntax_file",
    "get_version",
    "get_version_sync",
]

logger = logging.getLogger(__name__)


async def _write_temp_script(code: str, prefix: str) -> str:
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=".py")
    os.close(fd)
    await anyio.Path(path).write_text(code, encoding="utf-8")
    return path


async def run(
    script_path: str | os.PathLike[str],
    options: SessionOptions | None = None,
    *,
    config: ShellConfig | None = None,
    messages: Iterable[Any] = (),
    **overrides: Any,
) -> list[Any]:
    """Run a script to completion and collect its messages.

    Args:
        script_path: Script to run
        options: Launch options
        config: Process-wide defaults
        messages: Messages sent to the script before stdin is closed
        **overrides: SessionOptions fields overriding ``options``

    Returns:
        Decoded stdout messages, in order

    Raises:
        ProcessError: Non-zero exit
        SpawnError: The interpreter could not be started
    """
    session = ProcessSession(script_path, options, config=config, **overrides)
    output: list[Any] = []
    session.on("message", output.append)

    await session.start()
    if session.outcome is not None:
        # spawn failed
        session.outcome.raise_for_error()

    for message in messages:
        session.send(message)

    def on_end(err: ShellError | None, exit_code: int | None, exit_signal: str | None) -> None:
        logger.debug(
            f"run({session.script_path}) finished: exit_code={exit_code} "
            f"exit_signal={exit_signal} error={err!r}"
        )

    session.end(on_end)
    outcome = await session.wait()
    outcome.raise_for_error()
    return output


async def run_string(
    code: str,
    options: SessionOptions | None = None,
    *,
    config: ShellConfig | None = None,
    messages: Iterable[Any] = (),
    **overrides: Any,
) -> list[Any]:
    """Run a string of code and collect its messages.

    The code is written to a temporary file that is removed afterwards.
    Never pass untrusted input here.
    """
    path = await _write_temp_script(code, "stdio_shell_file_")
    try:
        # the temp path is absolute: drop any script_folder
        overrides["script_folder"] = None
        return await run(path, options, config=config, messages=messages, **overrides)
    finally:
        await anyio.Path(path).unlink(missing_ok=True)


async def check_syntax_file(
    file_path: str | os.PathLike[str],
    *,
    python_path: str | None = None,
    config: ShellConfig | None = None,
) -> None:
    """Check a file's syntax without executing it (``python -m py_compile``).

    Raises:
        SyntaxCheckError: Compilation failed; carries the compiler output
        SpawnError: The interpreter could not be started
    """
    config = config or get_config()
    executable = python_path or config.python_path
    argv = [executable, "-m", "py_compile", os.fspath(file_path)]
    logger.debug(f"Syntax check: {' '.join(argv)}")

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise SpawnError(e, executable) from e

    _, stderr = await process.communicate()
    if process.returncode != 0:
        raise SyntaxCheckError(stderr.decode(config.encoding, errors="replace"))


async def check_syntax(
    code: str,
    *,
    python_path: str | None = None,
    config: ShellConfig | None = None,
) -> None:
    """Check a code string's syntax without executing it.

    Raises:
        SyntaxCheckError: Compilation failed
    """
    path = await _write_temp_script(code, "stdio_shell_syntax_check_")
    try:
        await check_syntax_file(path, python_path=python_path, config=config)
    finally:
        await anyio.Path(path).unlink(missing_ok=True)
        # py_compile leaves a cached .pyc next to __pycache__
        cached = Path(path).parent / "__pycache__"
        for pyc in cached.glob(f"{Path(path).stem}.*.pyc") if cached.is_dir() else ():
            pyc.unlink(missing_ok=True)


def get_version_sync(python_path: str | None = None, *, config: ShellConfig | None = None) -> str:
    """Return the interpreter's ``--version`` output, e.g. ``"Python 3.12.1"``.

    Raises:
        SpawnError: The interpreter could not be started
        ProcessError: It exited with a non-zero code
    """
    executable = python_path or (config or get_config()).python_path
    argv = [executable, "--version"]
    try:
        completed = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            check=True,
        )
    except OSError as e:
        raise SpawnError(e, executable) from e
    except subprocess.CalledProcessError as e:
        diagnostics = (e.stderr or e.stdout or "").strip()
        raise ProcessError(
            diagnostics or f"process exited with code {e.returncode}",
            traceback=e.stderr or "",
            exit_code=e.returncode,
            executable=executable,
            args=argv[1:],
        ) from e
    # Python 2 prints its version to stderr
    return (completed.stdout or completed.stderr).strip()


async def get_version(python_path: str | None = None, *, config: ShellConfig | None = None) -> str:
    """Async variant of get_version_sync, run in a worker thread."""
    return await anyio.to_thread.run_sync(
        functools.partial(get_version_sync, python_path, config=config)
    )
