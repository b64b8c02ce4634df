"""
Tests: Value Encoder
--------------------
Covers: quoting and escaping, byte sequences, dispatch priority between
        the value capabilities, compound expansion, depth limits and
        values whose hooks raise.
Run with: pytest tests/ -v
"""

import ast
from decimal import Decimal

import pytest

from kvlog.services.encoder import (
    NIL,
    Loggable,
    Marshaler,
    RawLogString,
    emit,
    encode_value,
    quote,
    quote_bytes,
)


# ── Sample values ─────────────────────────────────────────────────────────────

class Timing:
    def __init__(self, min_ms: int, max_ms: int, median_ms: int):
        self.min_ms = min_ms
        self.max_ms = max_ms
        self.median_ms = median_ms

    def log_values(self):
        return {
            ".min_ms": self.min_ms,
            ".max_ms": self.max_ms,
            ".median_ms": self.median_ms,
        }


class AgeRange:
    def __init__(self, youngest: int, oldest: int):
        self.youngest = youngest
        self.oldest = oldest

    def marshal_log_value(self) -> str:
        return f'"{self.youngest}-{self.oldest}"'


class UserId:
    def __init__(self, value: int):
        self.value = value

    def __str__(self) -> str:
        return f"user {self.value}"


class Cycle:
    def log_values(self):
        return {".self": self}


def _emit(key, value, **kwargs) -> str:
    buf: list[str] = []
    emit(buf, key, value, **kwargs)
    return "".join(buf)


# ── Quoting ───────────────────────────────────────────────────────────────────

class TestQuote:
    def test_plain_text_is_only_wrapped(self):
        assert quote("str with spaces") == '"str with spaces"'

    def test_quotes_and_backslashes_escaped(self):
        assert quote('say "hi" \\o/') == '"say \\"hi\\" \\\\o/"'

    def test_named_control_escapes(self):
        assert quote("\a\b\f\n\r\t\v") == '"\\a\\b\\f\\n\\r\\t\\v"'

    def test_other_controls_use_hex(self):
        assert quote("\x00\x1b\x7f") == '"\\x00\\x1b\\x7f"'

    def test_non_ascii_uses_unicode_escapes(self):
        assert quote("café") == '"caf\\u00e9"'
        assert quote("\U0001f600") == '"\\U0001f600"'

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "plain",
            "line one\nline two",
            'quote " and backslash \\',
            "tab\tbell\a nul\x00 del\x7f",
            "naïve façade — 日本語",
            "emoji \U0001f680 and lone surrogate \ud800",
        ],
    )
    def test_quoted_literal_decodes_to_original(self, text):
        quoted = quote(text)
        assert quoted.isascii()
        assert quoted.isprintable()
        assert ast.literal_eval(quoted) == text


class TestQuoteBytes:
    def test_utf8_bytes_quoted_as_text(self):
        assert quote_bytes("é ok".encode()) == '"\\u00e9 ok"'

    def test_invalid_utf8_bytes_use_hex(self):
        assert quote_bytes(b"abc\xff\xfe") == '"abc\\xff\\xfe"'

    def test_bytearray_accepted(self):
        assert encode_value(bytearray(b"raw")) == '"raw"'


# ── Dispatch ──────────────────────────────────────────────────────────────────

class TestEncodeValue:
    def test_string_quoted(self):
        assert encode_value("value1") == '"value1"'

    def test_none_renders_nil(self):
        assert encode_value(None) == NIL == "<nil>"

    def test_numbers_unquoted(self):
        assert encode_value(123) == "123"
        assert encode_value(1.5) == "1.5"
        assert encode_value(Decimal("1.10")) == "1.10"

    def test_bool_unquoted(self):
        assert encode_value(True) == "True"

    def test_exception_renders_message(self):
        assert encode_value(ValueError("test error")) == '"test error"'

    def test_type_with_str_quoted(self):
        assert encode_value(UserId(7)) == '"user 7"'

    def test_containers_use_default_representation(self):
        assert encode_value([1, 2]) == "[1, 2]"

    def test_marshaler_written_verbatim(self):
        assert encode_value(AgeRange(18, 93)) == '"18-93"'

    def test_raw_log_string_not_quoted(self):
        assert encode_value(RawLogString("a b\nc")) == "a b\nc"

    def test_marshaler_wins_over_str(self):
        class Both(UserId):
            def marshal_log_value(self) -> str:
                return "marshaled"

        assert encode_value(Both(1)) == "marshaled"

    def test_marshaler_wins_over_exception(self):
        class CodedError(Exception):
            def marshal_log_value(self) -> str:
                return "E42"

        assert encode_value(CodedError("boom")) == "E42"

    def test_raising_str_renders_marker(self):
        class Broken:
            def __str__(self) -> str:
                raise RuntimeError("nope")

        assert encode_value(Broken()) == '"!render-error(RuntimeError: nope)"'

    def test_protocols_are_structural(self):
        assert isinstance(Timing(1, 2, 3), Loggable)
        assert isinstance(AgeRange(1, 2), Marshaler)
        assert isinstance(RawLogString("x"), Marshaler)


# ── emit ──────────────────────────────────────────────────────────────────────

class TestEmit:
    def test_leading_space_and_key(self):
        assert _emit("field2", 123) == " field2=123"

    def test_appends_to_existing_buffer(self):
        buf = ["start"]
        emit(buf, "a", "x")
        emit(buf, "b", 2)
        assert "".join(buf) == 'start a="x" b=2'

    def test_loggable_expands_sorted_sub_keys(self):
        assert _emit("exec_times", Timing(5, 93, 30)) == (
            " exec_times.max_ms=93 exec_times.median_ms=30 exec_times.min_ms=5"
        )

    def test_sub_keys_concatenated_without_separator(self):
        class Pair:
            def log_values(self):
                return {".b": "y", ".a": "x"}

        assert _emit("k", Pair()) == ' k.a="x" k.b="y"'

    def test_nested_loggable_values(self):
        class Outer:
            def log_values(self):
                return {"_timing": Timing(1, 3, 2), "_name": "job"}

        assert _emit("run", Outer()) == (
            ' run_name="job" run_timing.max_ms=3 run_timing.median_ms=2 run_timing.min_ms=1'
        )

    def test_loggable_wins_over_marshaler(self):
        class Both(AgeRange):
            def log_values(self):
                return {".youngest": self.youngest}

        assert _emit("ages", Both(18, 93)) == " ages.youngest=18"

    def test_empty_loggable_emits_nothing(self):
        class Empty:
            def log_values(self):
                return {}

        assert _emit("k", Empty()) == ""

    def test_cycle_truncated_at_max_depth(self):
        assert _emit("k", Cycle(), max_depth=3) == " k.self.self.self=<truncated>"

    def test_default_depth_bounds_cycle(self):
        out = _emit("k", Cycle())
        assert out.endswith("=<truncated>")
        assert out.count(".self") == 16

    def test_raising_log_values_renders_marker(self):
        class Broken:
            def log_values(self):
                raise KeyError("gone")

        assert _emit("k", Broken()) == " k=\"!render-error(KeyError: 'gone')\""

    def test_class_objects_are_not_expanded(self):
        out = _emit("cls", Timing)
        assert out.startswith(" cls=")
        assert "cls." not in out
