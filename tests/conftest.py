"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from stdio_shell.config import ShellConfig  # noqa: E402

# 测试脚本目录
FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fake_script() -> str:
    """可配置行为的测试脚本路径。"""
    return str(FIXTURES_DIR / "fake_script.py")


@pytest.fixture
def fixtures_dir() -> Path:
    """测试脚本目录。"""
    return FIXTURES_DIR


@pytest.fixture
def config() -> ShellConfig:
    """与环境变量无关的配置：当前解释器 + 无缓冲输出。"""
    return ShellConfig(python_path=sys.executable, python_options=["-u"])
