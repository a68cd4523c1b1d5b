"""Message codec.

stdio-shell runtime v0.1.0

A codec is a pair of functions: a formatter (value -> line text) used for
outgoing messages and a parser (line text -> value) used for incoming
lines. Built-in codecs are selected by name; custom ones are plain
callables. Either way the choice is resolved once, when the session is
created.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Union

from ..errors import ArgumentError, DecodeError
from .types import Mode

__all__ = [
    "Formatter",
    "Parser",
    "CodecSpec",
    "FORMATTERS",
    "PARSERS",
    "to_text",
    "to_json",
    "as_text",
    "as_json",
    "resolve_formatter",
    "resolve_parser",
]

Formatter = Callable[[Any], str]
Parser = Callable[[str], Any]

# Built-in codec name or a custom function
CodecSpec = Union[str, Mode, Callable[..., Any]]


def to_text(data: Any, encoding: str = "utf-8") -> str:
    """Format a value as text (strings pass through).

    Args:
        data: Value to format
        encoding: Used to decode bytes; sessions pass their stream encoding
    """
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray)):
        return bytes(data).decode(encoding)
    return str(data)


def to_json(data: Any) -> str:
    """Serialize a value as a single compact JSON line."""
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def as_text(data: str) -> str:
    return data


def as_json(data: str) -> Any:
    """Parse a JSON line.

    Raises:
        DecodeError: The line is not well-formed JSON
    """
    try:
        return json.loads(data)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON line: {e.msg} (line: {data!r})", data) from e


# binary has no entry: raw bytes are neither formatted nor parsed
FORMATTERS: dict[Mode, Formatter] = {
    Mode.TEXT: to_text,
    Mode.JSON: to_json,
}

PARSERS: dict[Mode, Parser] = {
    Mode.TEXT: as_text,
    Mode.JSON: as_json,
}


def _resolve(table: dict[Mode, Callable[..., Any]], spec: CodecSpec, kind: str) -> Callable[..., Any] | None:
    if callable(spec) and not isinstance(spec, (str, Mode)):
        # custom function
        return spec
    if not isinstance(spec, str):
        raise ArgumentError(f"{kind} must be a codec name or a callable, got {type(spec).__name__}")
    try:
        mode = spec if isinstance(spec, Mode) else Mode.from_string(spec)
    except ValueError:
        raise ArgumentError(f"unknown {kind}: {spec!r}") from None
    return table.get(mode)


def resolve_formatter(spec: CodecSpec) -> Formatter | None:
    """Resolve a formatter from a built-in name or a callable.

    Returns:
        The formatter, or None for binary mode
    """
    return _resolve(FORMATTERS, spec, "formatter")


def resolve_parser(spec: CodecSpec) -> Parser | None:
    """Resolve a parser from a built-in name or a callable.

    Returns:
        The parser, or None for binary mode
    """
    return _resolve(PARSERS, spec, "parser")
