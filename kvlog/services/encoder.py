"""
Value Encoder
-------------
Renders one key/value pair into a line buffer as ` key=value` or
` key="value"`.

Dispatch, first match wins:
  1. Loggable: expands into one field per sub-key, sorted, each sub-key
     appended to the parent key (`exec_times` + `.min_ms`)
  2. Marshaler: `marshal_log_value()` written verbatim, never quoted
  3. Textual: str, None (`<nil>`), or any type overriding __str__
  4. Exceptions: str(exc), quoted
  5. Bytes: quoted as text, undecodable bytes as \\xNN
  6. Anything else (numbers, bools, containers): str(value), unquoted

Quoted output is pure printable ASCII and is a valid Python string literal.
"""

import numbers
from typing import Any, Mapping, Protocol, runtime_checkable

from kvlog.core.config import DEFAULT_MAX_DEPTH

NIL = "<nil>"
TRUNCATED = "<truncated>"

_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
    '"': '\\"',
}

_BYTES_TYPES = (bytes, bytearray, memoryview)


# ── Capabilities ──────────────────────────────────────────────────────────────

@runtime_checkable
class Loggable(Protocol):
    """
    Implemented by values that carry several key=value pairs.

    Each returned key is appended to the field's own key, so sub-keys
    normally start with a separator such as ".".
    """

    def log_values(self) -> Mapping[str, Any]: ...


@runtime_checkable
class Marshaler(Protocol):
    """
    Implemented by values that render themselves.

    The returned text is not quoted and not escaped; include quotes in it
    if the value may contain spaces.
    """

    def marshal_log_value(self) -> str: ...


class RawLogString(str):
    """A string written verbatim: no quotes, no escaping."""

    def marshal_log_value(self) -> str:
        return str.__str__(self)


# ── Quoting ───────────────────────────────────────────────────────────────────

def _quote(text: str, escaped_bytes: bool = False) -> str:
    if text.isascii() and text.isprintable() and '"' not in text and "\\" not in text:
        return f'"{text}"'

    out = ['"']
    for ch in text:
        esc = _ESCAPES.get(ch)
        if esc is not None:
            out.append(esc)
            continue
        cp = ord(ch)
        if 0x20 <= cp < 0x7F:
            out.append(ch)
        elif cp < 0x20 or cp == 0x7F:
            out.append(f"\\x{cp:02x}")
        elif escaped_bytes and 0xDC80 <= cp <= 0xDCFF:
            # surrogateescape placeholder for a byte that wasn't valid UTF-8
            out.append(f"\\x{cp - 0xDC00:02x}")
        elif cp < 0x10000:
            out.append(f"\\u{cp:04x}")
        else:
            out.append(f"\\U{cp:08x}")
    out.append('"')
    return "".join(out)


def quote(text: str) -> str:
    """Double-quote and escape `text` into printable ASCII."""
    return _quote(text)


def quote_bytes(data: bytes) -> str:
    """Quote a byte sequence as UTF-8 text; invalid bytes become \\xNN."""
    return _quote(bytes(data).decode("utf-8", errors="surrogateescape"), escaped_bytes=True)


def _render_error(exc: Exception) -> str:
    return quote(f"!render-error({type(exc).__name__}: {exc})")


# ── Dispatch ──────────────────────────────────────────────────────────────────

def _is_loggable(value: Any) -> bool:
    return not isinstance(value, type) and isinstance(value, Loggable)


def _has_own_str(value: Any) -> bool:
    if isinstance(value, (numbers.Number, BaseException) + _BYTES_TYPES):
        return False
    return type(value).__str__ is not object.__str__


def encode_value(value: Any) -> str:
    """Render a single (non-compound) value."""
    try:
        if not isinstance(value, type) and isinstance(value, Marshaler):
            return str(value.marshal_log_value())
        if value is None:
            return NIL
        if isinstance(value, str):
            return quote(value)
        if _has_own_str(value):
            return quote(str(value))
        if isinstance(value, BaseException):
            return quote(str(value))
        if isinstance(value, _BYTES_TYPES):
            return quote_bytes(value)
        return str(value)
    except Exception as exc:
        return _render_error(exc)


def emit(
    buf: list[str],
    key: str,
    value: Any,
    depth: int = 0,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> None:
    """
    Append ` key=value` to `buf`.

    Compound values recurse with `depth + 1`; the leaf call writes the
    separating space, so a compound value adds nothing of its own.
    """
    if _is_loggable(value):
        if depth >= max_depth:
            buf.append(f" {key}={TRUNCATED}")
            return
        try:
            values = value.log_values()
            sub_keys = sorted(values)
        except Exception as exc:
            buf.append(f" {key}={_render_error(exc)}")
            return
        for sub_key in sub_keys:
            emit(buf, f"{key}{sub_key}", values[sub_key], depth + 1, max_depth)
        return

    buf.append(f" {key}={encode_value(value)}")
