"""Message codec unit tests."""

from __future__ import annotations

import pytest

from stdio_shell.errors import ArgumentError, DecodeError
from stdio_shell.runtime.codec import (
    as_json,
    as_text,
    resolve_formatter,
    resolve_parser,
    to_json,
    to_text,
)
from stdio_shell.runtime.types import Mode


class TestTextCodec:
    """text formatter/parser."""

    def test_string_passes_through(self):
        assert to_text("hello") == "hello"

    def test_none_is_empty(self):
        assert to_text(None) == ""

    def test_zero_is_stringified(self):
        assert to_text(0) == "0"

    def test_other_values_stringified(self):
        assert to_text(42) == "42"
        assert to_text([1, 2]) == "[1, 2]"

    def test_bytes_decoded(self):
        assert to_text(b"caf\xc3\xa9") == "café"

    def test_bytes_decoded_with_encoding(self):
        assert to_text(b"caf\xe9", encoding="latin-1") == "café"

    def test_parse_is_identity(self):
        assert as_text(" raw line ") == " raw line "


class TestJsonCodec:
    """json formatter/parser."""

    def test_compact_single_line(self):
        assert to_json({"a": 1}) == '{"a":1}'
        assert "\n" not in to_json({"text": "multi\nline"})

    def test_non_ascii_kept(self):
        assert to_json("中文") == '"中文"'

    def test_parse(self):
        assert as_json('{"a": [1, 2, null]}') == {"a": [1, 2, None]}

    def test_parse_error(self):
        with pytest.raises(DecodeError) as exc_info:
            as_json("not json")
        assert exc_info.value.line == "not json"
        assert isinstance(exc_info.value, ValueError)

    def test_parse_error_chains_cause(self):
        with pytest.raises(DecodeError) as exc_info:
            as_json("{")
        assert exc_info.value.__cause__ is not None


class TestResolve:
    """Named-or-callable codec resolution."""

    def test_builtin_by_name(self):
        assert resolve_formatter("json") is to_json
        assert resolve_parser("text") is as_text

    def test_builtin_by_mode(self):
        assert resolve_parser(Mode.JSON) is as_json

    def test_name_case_insensitive(self):
        assert resolve_formatter("JSON") is to_json

    def test_binary_has_no_codec(self):
        assert resolve_formatter("binary") is None
        assert resolve_parser(Mode.BINARY) is None

    def test_custom_callable(self):
        def upper(line: str) -> str:
            return line.upper()

        assert resolve_parser(upper) is upper

    def test_unknown_name(self):
        with pytest.raises(ArgumentError):
            resolve_parser("yaml")

    def test_not_a_codec(self):
        with pytest.raises(ArgumentError):
            resolve_formatter(123)  # type: ignore[arg-type]
