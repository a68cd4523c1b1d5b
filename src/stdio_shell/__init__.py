"""stdio-shell - interpreter subprocesses as line-oriented message channels.

环境变量:
    STDIO_SHELL_PYTHON: 解释器路径 (默认 sys.executable)
    STDIO_SHELL_MODE: 默认通道模式 (text/json/binary)
    STDIO_SHELL_LOG_DEBUG: 日志输出到临时文件 (默认 false)

用法:
    stdio-shell run worker.py --mode json --send '{"op": "ping"}'
"""

__version__ = "0.1.0"

from .config import ShellConfig, get_config, load_config
from .errors import (
    ArgumentError,
    DecodeError,
    ProcessError,
    SessionClosedError,
    ShellError,
    SpawnError,
    SyntaxCheckError,
)
from .runtime import (
    Message,
    Mode,
    OutcomeKind,
    ProcessSession,
    SessionEvent,
    SessionOptions,
    SessionState,
    TerminationOutcome,
)
from .scripts import (
    check_syntax,
    check_syntax_file,
    get_version,
    get_version_sync,
    run,
    run_string,
)
from .app import main

__all__ = [
    "__version__",
    "main",
    "ShellConfig",
    "get_config",
    "load_config",
    "ArgumentError",
    "DecodeError",
    "ProcessError",
    "SessionClosedError",
    "ShellError",
    "SpawnError",
    "SyntaxCheckError",
    "Message",
    "Mode",
    "OutcomeKind",
    "ProcessSession",
    "SessionEvent",
    "SessionOptions",
    "SessionState",
    "TerminationOutcome",
    "check_syntax",
    "check_syntax_file",
    "get_version",
    "get_version_sync",
    "run",
    "run_string",
]
