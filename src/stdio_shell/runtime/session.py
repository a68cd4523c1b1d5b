"""Interpreter process session.

stdio-shell runtime v0.1.0

This module provides ProcessSession, a long-lived interpreter subprocess
used as a line-oriented, bidirectional message channel:

- Outgoing messages are encoded and written to stdin, one per line
- stdout is framed into lines and decoded into ``message`` events
- stderr is framed into ``stderr`` events and accumulated for error reports
- stdout EOF, stderr EOF and process exit are joined by a
  TerminationArbiter into exactly one outcome

Key design points:
- One reader task per stream plus one exit waiter; all run on the same
  event loop, so session state needs no locking
- No ordering is assumed between the three tasks
- stdin writes are not throttled; call drain() to apply backpressure
"""

from __future__ import annotations

import asyncio
import codecs
import dataclasses
import functools
import logging
import os
import signal as _signal
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from ..config import ShellConfig, get_config
from ..errors import (
    ArgumentError,
    DecodeError,
    ProcessError,
    SessionClosedError,
    ShellError,
    SpawnError,
)
from .arbiter import TerminationArbiter
from .codec import CodecSpec, Formatter, Parser, resolve_formatter, resolve_parser, to_text
from .events import EventHub, Listener
from .framing import LineFramer
from .types import (
    InvocationContext,
    Message,
    Mode,
    SessionEvent,
    SessionState,
    TerminationOutcome,
    split_returncode,
)

__all__ = [
    "ProcessSession",
    "SessionOptions",
    "EndCallback",
]

logger = logging.getLogger(__name__)

# (error, exit_code, exit_signal)
EndCallback = Callable[[ShellError | None, int | None, str | None], Any]

# Bytes per read from stdout/stderr
READ_CHUNK_SIZE = 4096


@dataclass
class SessionOptions:
    """Launch options for a session.

    Unset fields fall back to the ShellConfig the session is created with.

    Attributes:
        python_path: Interpreter executable
        python_options: Interpreter options placed before the script path
        script_folder: Folder the script path is relative to
        args: Script arguments
        mode: text / json / binary
        formatter: Outgoing codec, built-in name or callable
        parser: stdout codec, built-in name or callable
        stderr_parser: stderr codec, built-in name or callable
        encoding: Text encoding of all three streams
        delimiter: Line delimiter for both directions
        cwd: Working directory of the process
        env: Environment of the process (None = inherit)
        spawn_kwargs: Extra keyword arguments for create_subprocess_exec,
            passed through unchanged
    """

    python_path: str | None = None
    python_options: list[str] | None = None
    script_folder: str | Path | None = None
    args: list[str] = field(default_factory=list)
    mode: Mode | str | None = None
    formatter: CodecSpec | None = None
    parser: CodecSpec | None = None
    stderr_parser: CodecSpec | None = None
    encoding: str | None = None
    delimiter: str | None = None
    cwd: str | Path | None = None
    env: Mapping[str, str] | None = None
    spawn_kwargs: dict[str, Any] = field(default_factory=dict)


def _parse_signal(sig: int | str | _signal.Signals) -> int:
    if isinstance(sig, str):
        name = sig.upper()
        if not name.startswith("SIG"):
            name = f"SIG{name}"
        try:
            return _signal.Signals[name]
        except KeyError:
            raise ArgumentError(f"unknown signal: {sig!r}") from None
    return int(sig)


class ProcessSession:
    """An interpreter subprocess exchanging messages over stdio.

    Example:
        session = ProcessSession("worker.py", SessionOptions(mode="json"))
        session.on("message", print)
        await session.start()

        session.send({"op": "ping"})
        session.end(lambda err, code, sig: print("done", err, code))
        outcome = await session.wait()

    Events:
        message(value): one per decoded stdout line
        stderr(value): one per decoded stderr line
        data(chunk): raw stdout bytes, binary mode only
        error(exc): termination error, or a line that failed to decode
        close(): once, after the outcome is decided

    Attributes:
        script_path: Script path after joining script_folder
        command: Interpreter options, script path and script arguments
        mode: Channel mode
        terminated: Set by terminate() and by finalization
    """

    def __init__(
        self,
        script_path: str | os.PathLike[str],
        options: SessionOptions | None = None,
        *,
        config: ShellConfig | None = None,
        **overrides: Any,
    ) -> None:
        """Validate arguments and resolve codecs. Nothing is spawned here.

        Args:
            script_path: Script to run, relative to options.script_folder
            options: Launch options
            config: Process-wide defaults (default: get_config())
            **overrides: SessionOptions fields overriding ``options``

        Raises:
            ArgumentError: Empty script path, unknown mode or codec name
        """
        script = os.fspath(script_path) if script_path is not None else ""
        if not script.strip():
            raise ArgumentError("script_path cannot be empty! You must give a script to run")

        options = options or SessionOptions()
        if overrides:
            try:
                options = dataclasses.replace(options, **overrides)
            except TypeError as e:
                raise ArgumentError(str(e)) from None
        self.options = options
        self.config = config or get_config()

        mode = options.mode or self.config.mode
        if isinstance(mode, Mode):
            self.mode = mode
        else:
            try:
                self.mode = Mode.from_string(mode)
            except ValueError as e:
                raise ArgumentError(str(e)) from None

        self.encoding = options.encoding or self.config.encoding
        self.delimiter = options.delimiter or self.config.delimiter

        executable = options.python_path or self.config.python_path
        python_options = list(
            options.python_options if options.python_options is not None else self.config.python_options
        )
        self.script_path = os.path.join(os.fspath(options.script_folder or ""), script)
        self.context = InvocationContext(
            executable=executable,
            options=python_options,
            script=self.script_path,
            args=[str(a) for a in options.args],
        )
        self.command = self.context.argv[1:]

        self.formatter: Formatter | None = resolve_formatter(options.formatter or self.mode)
        if self.formatter is to_text:
            # bytes messages are decoded with the stream encoding
            self.formatter = functools.partial(to_text, encoding=self.encoding)
        self.parser: Parser | None = resolve_parser(options.parser or self.mode)
        self.stderr_parser: Parser | None = resolve_parser(
            options.stderr_parser or (Mode.TEXT if self.mode == Mode.BINARY else self.mode)
        )

        # Private session state; mutated only by the reader tasks and the arbiter
        self._state = SessionState.NOT_STARTED
        self.terminated = False
        self._process: asyncio.subprocess.Process | None = None
        self._stdin_closed = False
        self._stdout_framer = LineFramer(self.delimiter)
        self._stderr_framer = LineFramer(self.delimiter)
        self._events = EventHub()
        self._end_callback: EndCallback | None = None
        self._callback_invoked = False
        self._done: asyncio.Future[TerminationOutcome] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._decode_errors: list[DecodeError] = []
        self._arbiter = TerminationArbiter(
            self.context,
            error_factory=self.parse_error,
            on_finalize=self._on_finalize,
        )

    # =========================================================================
    # Construction helpers
    # =========================================================================

    @classmethod
    async def open(
        cls,
        script_path: str | os.PathLike[str],
        options: SessionOptions | None = None,
        *,
        config: ShellConfig | None = None,
        **overrides: Any,
    ) -> "ProcessSession":
        """Create and start a session."""
        session = cls(script_path, options, config=config, **overrides)
        await session.start()
        return session

    async def __aenter__(self) -> "ProcessSession":
        if self._state == SessionState.NOT_STARTED:
            await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._done is None:
            return
        if exc_type is not None and not self._arbiter.finalized:
            self.terminate()
        elif not self._stdin_closed:
            self.end()
        await self.wait()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def exit_code(self) -> int | None:
        return self._arbiter.exit_code

    @property
    def exit_signal(self) -> str | None:
        return self._arbiter.exit_signal

    @property
    def outcome(self) -> TerminationOutcome | None:
        """The final outcome, None until the session finalizes."""
        return self._arbiter.outcome

    @property
    def diagnostic_text(self) -> str:
        """stderr text received so far."""
        return self._arbiter.diagnostic_text

    @property
    def decode_errors(self) -> list[DecodeError]:
        """Lines that failed to decode while reading the streams."""
        return list(self._decode_errors)

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event: SessionEvent | str, listener: Listener) -> "ProcessSession":
        """Register a listener. Returns the session for chaining."""
        self._events.on(event, listener)
        return self

    def off(self, event: SessionEvent | str, listener: Listener) -> "ProcessSession":
        self._events.off(event, listener)
        return self

    def listeners(self, event: SessionEvent | str) -> list[Listener]:
        return self._events.channel(event).listeners

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> "ProcessSession":
        """Spawn the interpreter and start reading its streams.

        A spawn failure does not raise: the session goes straight to
        TERMINATED with a SPAWN_ERROR outcome, delivered like any other
        termination error.

        Raises:
            ShellError: The session was already started or terminated
        """
        if self._state != SessionState.NOT_STARTED or self.terminated:
            raise ShellError(f"session cannot be started from state {self._state.value}")

        loop = asyncio.get_running_loop()
        self._done = loop.create_future()

        argv = self.context.argv
        kwargs = dict(self.options.spawn_kwargs)
        if self.options.cwd is not None:
            kwargs["cwd"] = self.options.cwd
        if self.options.env is not None:
            kwargs["env"] = dict(self.options.env)

        logger.debug(f"[SUBPROCESS] Spawning: {' '.join(argv)}")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                **kwargs,
            )
        except OSError as e:
            logger.warning(f"Failed to spawn {argv[0]}: {e}")
            self._arbiter.spawn_failed(SpawnError(e, self.context.executable))
            return self

        self._state = SessionState.RUNNING
        logger.debug(
            f"[SUBPROCESS] Started: pid={self._process.pid} "
            f"mode={self.mode.value} script={self.script_path}"
        )

        self._spawn_task(self._read_stdout(), "stdout")
        self._spawn_task(self._read_stderr(), "stderr")
        self._spawn_task(self._wait_exit(), "exit")
        return self

    def send(self, message: Any) -> "ProcessSession":
        """Encode a message and write it to stdin.

        In text/json mode a delimiter is appended; in binary mode the
        bytes (or encoded str) are written as-is.

        Raises:
            SessionClosedError: Not started, terminated or stdin ended
        """
        if (
            self._state != SessionState.RUNNING
            or self._stdin_closed
            or self._process is None
            or self._process.stdin is None
        ):
            raise SessionClosedError(
                f"cannot send to a session that is not running (state={self._state.value}, "
                f"stdin_closed={self._stdin_closed})"
            )

        data = self.formatter(message) if self.formatter else message
        if self.mode != Mode.BINARY:
            data = f"{data}{self.delimiter}"
        if isinstance(data, str):
            data = data.encode(self.encoding)
        elif not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"binary mode expects bytes or str, got {type(data).__name__}")

        self._process.stdin.write(data)
        return self

    async def drain(self) -> None:
        """Wait until the stdin buffer is flushed to the process."""
        if self._process is None or self._process.stdin is None or self._stdin_closed:
            return
        try:
            await self._process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"stdin drain failed pid={self.pid}: {e}")

    def end(self, callback: EndCallback | None = None) -> "ProcessSession":
        """Close stdin and register the completion callback.

        The callback receives ``(error, exit_code, exit_signal)`` exactly
        once; if the session has already finalized it is called right away.
        """
        if self._process is not None and self._process.stdin is not None and not self._stdin_closed:
            self._process.stdin.close()
            logger.debug(f"stdin closed pid={self.pid}")
        self._stdin_closed = True

        if callback is not None:
            if callback is not self._end_callback:
                # re-registering the same callback never calls it twice
                self._end_callback = callback
                self._callback_invoked = False
            if self._arbiter.finalized:
                self._invoke_end_callback(self._arbiter.outcome)
        return self

    def terminate(self, sig: int | str | _signal.Signals = _signal.SIGTERM) -> "ProcessSession":
        """Signal the process and mark the session terminated.

        Does not wait: the exit, when it happens, arrives as an ordinary
        exit notification and completes finalization.
        """
        signum = _parse_signal(sig)
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.send_signal(signum)
                logger.debug(f"Sent signal {signum} to pid={self._process.pid}")
            except ProcessLookupError:
                logger.debug(f"Process already exited pid={self._process.pid}")
        self.terminated = True
        self._state = SessionState.TERMINATED
        return self

    async def wait(self) -> TerminationOutcome:
        """Wait for the outcome.

        Raises:
            ShellError: The session was never started
        """
        if self._done is None:
            raise ShellError("session was not started")
        return await asyncio.shield(self._done)

    # =========================================================================
    # Overridable hooks
    # =========================================================================

    def receive(self, data: str | bytes) -> list[Message]:
        """Frame stdout data and emit a ``message`` event per complete line.

        Raises:
            DecodeError: A line could not be decoded. Every other line of the
                chunk is still emitted; the first failure is raised after.
        """
        return self._receive_internal(data, SessionEvent.MESSAGE)

    def receive_stderr(self, data: str | bytes) -> list[Message]:
        """Frame stderr data and emit a ``stderr`` event per complete line."""
        return self._receive_internal(data, SessionEvent.STDERR)

    def parse_error(self, text: str) -> ProcessError:
        """Build the error raised for a non-zero exit from stderr text."""
        return ProcessError(text)

    # =========================================================================
    # Internals
    # =========================================================================

    def _spawn_task(self, coro: Any, name: str) -> None:
        task = asyncio.create_task(coro, name=f"stdio-shell-{name}-{self.pid}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _receive_internal(self, data: str | bytes, event: SessionEvent) -> list[Message]:
        framer = self._stdout_framer if event == SessionEvent.MESSAGE else self._stderr_framer
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode(self.encoding, errors="replace")
        return self._emit_lines(framer.feed(data), event)

    def _emit_lines(self, lines: list[str], event: SessionEvent) -> list[Message]:
        parser = self.parser if event == SessionEvent.MESSAGE else self.stderr_parser
        if parser is None:
            return []

        messages: list[Message] = []
        first_error: DecodeError | None = None
        for line in lines:
            try:
                value = parser(line)
            except Exception as e:
                error = e if isinstance(e, DecodeError) else DecodeError(str(e), line)
                if error is not e:
                    error.__cause__ = e
                if first_error is None:
                    first_error = error
                else:
                    self._report_decode_error(error, event)
                continue
            messages.append(Message(value=value, raw=line))
            self._events.emit(event, value)

        if first_error is not None:
            raise first_error
        return messages

    def _flush(self, event: SessionEvent) -> None:
        framer = self._stdout_framer if event == SessionEvent.MESSAGE else self._stderr_framer
        rest = framer.flush()
        if rest is None:
            return
        try:
            self._emit_lines([rest], event)
        except DecodeError as e:
            self._report_decode_error(e, event)

    def _report_decode_error(self, error: DecodeError, event: SessionEvent) -> None:
        """Surface a decode failure without ending the stream."""
        self._decode_errors.append(error)
        logger.warning(f"Failed to decode {event.value} line pid={self.pid}: {error}")
        if self._events.has_listeners(SessionEvent.ERROR):
            self._events.emit(SessionEvent.ERROR, error)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # receive() called directly, outside any loop: logged above
            return
        loop.call_exception_handler({
            "message": f"stdio-shell: undecodable {event.value} line",
            "exception": error,
            "session": self,
        })

    def _deliver(self, text: str, event: SessionEvent) -> None:
        """Pass decoded text to the receive hook; a failing hook never stops the reader."""
        if not text:
            return
        hook = self.receive if event == SessionEvent.MESSAGE else self.receive_stderr
        try:
            hook(text)
        except DecodeError as e:
            self._report_decode_error(e, event)
        except Exception:
            logger.exception(f"Error handling {event.value} data pid={self.pid}")

    async def _read_stdout(self) -> None:
        stream = self._process.stdout if self._process else None
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")
        try:
            try:
                while stream is not None:
                    chunk = await stream.read(READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    if self.mode == Mode.BINARY:
                        self._events.emit(SessionEvent.DATA, chunk)
                        continue
                    self._deliver(decoder.decode(chunk), SessionEvent.MESSAGE)
            except (ConnectionResetError, BrokenPipeError) as e:
                logger.debug(f"stdout read failed pid={self.pid}: {e}")
            except Exception:
                logger.exception(f"stdout reader failed pid={self.pid}")

            if self.mode != Mode.BINARY:
                self._deliver(decoder.decode(b"", final=True), SessionEvent.MESSAGE)
                self._flush(SessionEvent.MESSAGE)
        finally:
            # the latch is set whatever happened above, so the session still finalizes
            logger.debug(f"stdout ended pid={self.pid}")
            self._arbiter.output_ended()

    async def _read_stderr(self) -> None:
        stream = self._process.stderr if self._process else None
        decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")

        def handle(text: str) -> None:
            if text:
                self._arbiter.add_diagnostic(text)
                self._deliver(text, SessionEvent.STDERR)

        try:
            try:
                while stream is not None:
                    chunk = await stream.read(READ_CHUNK_SIZE)
                    if not chunk:
                        break
                    handle(decoder.decode(chunk))
            except (ConnectionResetError, BrokenPipeError) as e:
                logger.debug(f"stderr read failed pid={self.pid}: {e}")
            except Exception:
                logger.exception(f"stderr reader failed pid={self.pid}")

            handle(decoder.decode(b"", final=True))
            self._flush(SessionEvent.STDERR)
        finally:
            logger.debug(f"stderr ended pid={self.pid}")
            self._arbiter.diagnostic_ended()

    async def _wait_exit(self) -> None:
        assert self._process is not None
        returncode = await self._process.wait()
        exit_code, exit_signal = split_returncode(returncode)
        logger.debug(
            f"[SUBPROCESS] Exited: pid={self._process.pid} "
            f"exit_code={exit_code} exit_signal={exit_signal}"
        )
        self._arbiter.process_exited(exit_code, exit_signal)

    def _on_finalize(self, outcome: TerminationOutcome) -> None:
        error = outcome.error
        if error is not None:
            # Stay quiet when the caller only uses the callback; never when
            # someone explicitly listens for errors.
            if self._events.has_listeners(SessionEvent.ERROR) or self._end_callback is None:
                if not self._events.emit(SessionEvent.ERROR, error):
                    logger.error(f"Unhandled session error ({self.script_path}): {error}")

        self.terminated = True
        self._state = SessionState.TERMINATED
        self._events.emit(SessionEvent.CLOSE)

        if self._end_callback is not None:
            self._invoke_end_callback(outcome)

        if self._done is not None and not self._done.done():
            self._done.set_result(outcome)

    def _invoke_end_callback(self, outcome: TerminationOutcome | None) -> None:
        if outcome is None or self._end_callback is None or self._callback_invoked:
            return
        self._callback_invoked = True
        try:
            self._end_callback(outcome.error, outcome.exit_code, outcome.exit_signal)
        except Exception:
            logger.exception(f"Error in end callback ({self.script_path})")

    def __repr__(self) -> str:
        return (
            f"ProcessSession(script={self.script_path}, "
            f"mode={self.mode.value}, "
            f"state={self._state.value}, "
            f"pid={self.pid})"
        )
