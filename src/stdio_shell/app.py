"""stdio-shell command line entry point.

Sub-commands:
    run SCRIPT [ARGS...]   run a script, print its messages
    exec CODE              run a code string
    check FILE             syntax-check a file
    version                print the interpreter version
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Any

from . import __version__
from .config import MODES, ShellConfig, get_config
from .errors import ProcessError, ShellError, SyntaxCheckError
from .runtime import Mode, ProcessSession, SessionOptions, TerminationOutcome
from .scripts import check_syntax_file, get_version_sync, run_string

__all__ = ["main", "build_parser", "configure_logging"]

logger = logging.getLogger(__name__)


def configure_logging(config: ShellConfig, verbose: bool = False) -> None:
    """Install log handlers: a temp file at DEBUG, or stderr."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.DEBUG if verbose else logging.WARNING

    # third-party loggers stay at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=log_handlers, force=True)
    logging.getLogger("stdio_shell").setLevel(log_level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stdio-shell",
        description="Run interpreter scripts as line-oriented message channels.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")
    parser.add_argument("--python", default=None, help="Interpreter path")

    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser(
        "run",
        help="Run a script and print its messages",
        usage="%(prog)s [--mode MODE] [--send MSG] [--option OPT] [--cwd CWD] SCRIPT [ARGS ...]",
        description="Run a script and print its messages. Options go before SCRIPT; "
        "everything after SCRIPT is passed to the script unchanged.",
    )
    run_p.add_argument("script", metavar="SCRIPT", help="Script path")
    run_p.add_argument(
        "args",
        nargs=argparse.REMAINDER,
        metavar="ARGS",
        help="Script arguments (including anything that looks like an option)",
    )
    _add_session_arguments(run_p)

    exec_p = sub.add_parser("exec", help="Run a string of code")
    exec_p.add_argument("code", help="Code to run")
    _add_session_arguments(exec_p)

    check_p = sub.add_parser("check", help="Check a file's syntax")
    check_p.add_argument("file", help="File to check")

    sub.add_parser("version", help="Print the interpreter version")
    return parser


def _add_session_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--mode", choices=MODES, default=None, help="Channel mode")
    parser.add_argument(
        "--send",
        action="append",
        default=[],
        metavar="MSG",
        help="Message to send before closing stdin (JSON in json mode; repeatable)",
    )
    parser.add_argument(
        "--option",
        action="append",
        default=None,
        metavar="OPT",
        help="Interpreter option (repeatable)",
    )
    parser.add_argument("--cwd", default=None, help="Working directory")


def _print_message(value: Any, mode: Mode) -> None:
    if mode == Mode.JSON:
        print(json.dumps(value, ensure_ascii=False), flush=True)
    else:
        print(value, flush=True)


def _outgoing(raw: list[str], mode: Mode) -> list[Any]:
    if mode == Mode.JSON:
        return [json.loads(item) for item in raw]
    return list(raw)


def _exit_status(outcome: TerminationOutcome) -> int:
    if outcome.exit_code is not None:
        return outcome.exit_code
    if outcome.exit_signal is not None:
        try:
            return 128 + int(signal.Signals[outcome.exit_signal])
        except KeyError:
            return 1
    return 0 if outcome.ok else 1


async def _run_script(args: argparse.Namespace, config: ShellConfig) -> int:
    options = SessionOptions(
        python_path=args.python,
        python_options=args.option,
        args=args.args,
        mode=args.mode,
        cwd=args.cwd,
    )
    session = ProcessSession(args.script, options, config=config)
    session.on("message", lambda value: _print_message(value, session.mode))
    session.on("stderr", lambda line: print(line, file=sys.stderr, flush=True))

    def on_error(error: Exception) -> None:
        # a ProcessError's text is the script's stderr, already printed
        if not isinstance(error, ProcessError):
            print(f"stdio-shell: {error}", file=sys.stderr)

    session.on("error", on_error)
    # parse before spawning: a bad --send must not leave a child behind
    messages = _outgoing(args.send, session.mode)
    await session.start()
    if session.outcome is None:
        for message in messages:
            session.send(message)

    def on_end(err: ShellError | None, exit_code: int | None, exit_signal: str | None) -> None:
        logger.debug(f"Script finished: exit_code={exit_code} exit_signal={exit_signal}")

    session.end(on_end)
    outcome = await session.wait()
    return _exit_status(outcome)


async def _exec_code(args: argparse.Namespace, config: ShellConfig) -> int:
    mode = Mode.from_string(args.mode or config.mode)
    try:
        output = await run_string(
            args.code,
            config=config,
            messages=_outgoing(args.send, mode),
            python_path=args.python,
            python_options=args.option,
            mode=mode,
            cwd=args.cwd,
        )
    except ProcessError as e:
        print(e, file=sys.stderr)
        return e.exit_code or 1
    except ShellError as e:
        print(f"stdio-shell: {e}", file=sys.stderr)
        return 1
    for value in output:
        _print_message(value, mode)
    return 0


async def _check(args: argparse.Namespace, config: ShellConfig) -> int:
    try:
        await check_syntax_file(args.file, python_path=args.python, config=config)
    except SyntaxCheckError as e:
        print(e.stderr, file=sys.stderr, end="" if e.stderr.endswith("\n") else "\n")
        return 1
    except ShellError as e:
        print(f"stdio-shell: {e}", file=sys.stderr)
        return 1
    print(f"{args.file}: OK")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config()
    configure_logging(config, verbose=args.verbose)
    logger.debug(f"Starting stdio-shell: {config}")

    if args.command == "version":
        try:
            print(get_version_sync(args.python, config=config))
        except ShellError as e:
            print(f"stdio-shell: {e}", file=sys.stderr)
            return 1
        return 0

    handlers = {
        "run": _run_script,
        "exec": _exec_code,
        "check": _check,
    }
    try:
        return asyncio.run(handlers[args.command](args, config))
    except json.JSONDecodeError as e:
        parser.error(f"--send expects JSON in json mode: {e}")
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
