"""stdio-shell 环境变量配置管理。

环境变量:
    STDIO_SHELL_PYTHON: 解释器路径
        - 未设置 = 当前解释器 (sys.executable)

    STDIO_SHELL_OPTIONS: 解释器参数
        - 按 shell 规则切分
        - 默认 "-u"（无缓冲输出，消息实时到达）
        - 例: "-u -X utf8"

    STDIO_SHELL_MODE: 默认通道模式
        - text (默认) / json / binary
        - 无效值回退到 text

    STDIO_SHELL_ENCODING: 文本编码
        - 默认 utf-8

    STDIO_SHELL_DELIMITER: 行分隔符
        - lf = "\\n" (默认)
        - crlf = "\\r\\n"
        - native = os.linesep

    STDIO_SHELL_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import shlex
import sys
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

__all__ = ["ShellConfig", "load_config", "get_config", "reload_config", "MODES"]

# 支持的通道模式
MODES = ("text", "json", "binary")

DEFAULT_PYTHON_OPTIONS: tuple[str, ...] = ("-u",)

# 分隔符名称映射
DELIMITERS = {
    "lf": "\n",
    "crlf": "\r\n",
    "native": os.linesep,
}


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_options(value: str | None) -> list[str]:
    """解析解释器参数。

    Args:
        value: 环境变量值，按 shell 规则切分

    Returns:
        参数列表；未设置时返回默认参数
    """
    if value is None:
        return list(DEFAULT_PYTHON_OPTIONS)
    return shlex.split(value)


def _parse_mode(value: str | None) -> str:
    """解析通道模式，无效值返回 text。"""
    if not value:
        return "text"
    value = value.strip().lower()
    return value if value in MODES else "text"


def _parse_delimiter(value: str | None) -> str:
    """解析行分隔符名称。"""
    if not value:
        return "\n"
    return DELIMITERS.get(value.strip().lower(), "\n")


@dataclass
class ShellConfig:
    """进程级配置，启动时创建一次，传入每个 session。

    Attributes:
        python_path: 解释器路径
        python_options: 解释器参数
        mode: 默认通道模式
        encoding: 文本编码
        delimiter: 行分隔符（收发共用）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    python_path: str = field(default_factory=lambda: sys.executable or "python3")
    python_options: list[str] = field(default_factory=lambda: list(DEFAULT_PYTHON_OPTIONS))
    mode: str = "text"
    encoding: str = "utf-8"
    delimiter: str = "\n"
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"ShellConfig(python_path={self.python_path}, "
            f"python_options={self.python_options}, "
            f"mode={self.mode}, "
            f"encoding={self.encoding}, "
            f"delimiter={self.delimiter!r}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "stdio-shell"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"stdio_shell_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> ShellConfig:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("STDIO_SHELL_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return ShellConfig(
        python_path=os.environ.get("STDIO_SHELL_PYTHON") or sys.executable or "python3",
        python_options=_parse_options(os.environ.get("STDIO_SHELL_OPTIONS")),
        mode=_parse_mode(os.environ.get("STDIO_SHELL_MODE")),
        encoding=os.environ.get("STDIO_SHELL_ENCODING") or "utf-8",
        delimiter=_parse_delimiter(os.environ.get("STDIO_SHELL_DELIMITER")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载，只读使用）
_config: ShellConfig | None = None


def get_config() -> ShellConfig:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> ShellConfig:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
