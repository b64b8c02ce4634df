"""
Line Assembler
--------------
Turns one record into one line:

    <timestamp> ll="<level>" [srcfnc="<fn>" srcline=<n>] <constant fields>
        <primary fields> <remaining fields, sorted> [_msg="<message>"]

Formatters are built once with `new(*options)` and never change afterwards,
so one instance can be shared by every handler and thread.

KVFormatter adapts a Formatter to the standard library `logging` package.
It must stay in this module: the caller resolver skips every frame that
belongs to the module which called it.

Tracebacks and stack dumps attached to a record are written as the
reserved `_exception` and `_stack` fields, replacing any field of the
same name.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import ValidationError

from kvlog.core.config import (
    CALLER_FUNC_KEY,
    CALLER_LINE_KEY,
    DEFAULT_MAX_DEPTH,
    DEFAULT_STACK_DEPTH,
    EXCEPTION_KEY,
    LEVEL_KEY,
    MESSAGE_KEY,
    RECORD_FIELDS_ATTR,
    STACK_KEY,
    Settings,
    get_settings,
)
from kvlog.core.errors import ErrorCode, KVLogError
from kvlog.models.schemas import FormatterConfig, LogEntry
from kvlog.services.caller import resolve_caller
from kvlog.services.encoder import emit, quote

logger = logging.getLogger(__name__)

# Module name of the standard library logging package in frame names.
HOST_MODULE = "logging"

# Attributes every LogRecord has; anything else arrived through `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    RECORD_FIELDS_ATTR,
}


# ── Options ───────────────────────────────────────────────────────────────────

class _Builder:
    def __init__(self) -> None:
        self.primary_fields: list[str] = []
        self.constant_fields: list[str] = []
        self.include_caller = False
        self.max_depth = DEFAULT_MAX_DEPTH
        self.stack_depth = DEFAULT_STACK_DEPTH


Option = Callable[[_Builder], None]


def _check_key(key: Any) -> None:
    if not isinstance(key, str) or not key or any(ch.isspace() or ch in '="' for ch in key):
        raise KVLogError(
            ErrorCode.INVALID_FIELD_KEY,
            f"Field key {key!r} must be a non-empty string without "
            f"whitespace, '=' or '\"'.",
        )


def with_primary_fields(*fields: str) -> Option:
    """
    Fields that, when set, always come first and in this order.
    The remaining fields follow sorted by key.
    """

    def apply(b: _Builder) -> None:
        for field in fields:
            _check_key(field)
        b.primary_fields = list(dict.fromkeys(fields))

    return apply


def with_constant_field(key: str, value: Any) -> Option:
    """
    A field written into every line, right after the level (and caller).
    The value is rendered once, when the formatter is built.
    """

    def apply(b: _Builder) -> None:
        _check_key(key)
        buf: list[str] = []
        emit(buf, key, value, 0, b.max_depth)
        b.constant_fields.append("".join(buf))

    return apply


def include_caller() -> Option:
    """Add the calling function name and line number to each line."""

    def apply(b: _Builder) -> None:
        b.include_caller = True

    return apply


def with_max_depth(depth: int) -> Option:
    """Nesting limit for compound values; deeper values render <truncated>."""

    def apply(b: _Builder) -> None:
        b.max_depth = depth

    return apply


def with_stack_depth(depth: int) -> Option:
    def apply(b: _Builder) -> None:
        b.stack_depth = depth

    return apply


def new(*options: Option) -> "Formatter":
    """
    Build a Formatter from options, applied in order.
    Raises KVLogError if any option is invalid.
    """
    b = _Builder()
    for option in options:
        option(b)

    try:
        config = FormatterConfig(
            primary_fields=tuple(b.primary_fields),
            constant_fields=tuple(b.constant_fields),
            include_caller=b.include_caller,
            max_depth=b.max_depth,
            stack_depth=b.stack_depth,
        )
    except ValidationError as exc:
        raise KVLogError(ErrorCode.INVALID_OPTION, str(exc)) from exc

    logger.debug(
        "formatter configured",
        extra={
            "primary_fields": list(config.primary_fields),
            "constant_field_count": len(config.constant_fields),
            "include_caller": config.include_caller,
        },
    )
    return Formatter(config)


# ── Formatter ─────────────────────────────────────────────────────────────────

def format_timestamp(t: datetime) -> str:
    """Fixed-width UTC timestamp with millisecond precision."""
    # naive values are local time, as with datetime.now()
    t = t.astimezone(timezone.utc)
    return (
        f"{t.year:04d}-{t.month:02d}-{t.day:02d}"
        f"T{t.hour:02d}:{t.minute:02d}:{t.second:02d}"
        f".{t.microsecond // 1000:03d}Z"
    )


class Formatter:
    """Emits plain text log lines made of key=value pairs."""

    def __init__(self, config: Optional[FormatterConfig] = None):
        self.config = config or FormatterConfig()

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Formatter":
        settings = settings or get_settings()
        options = [
            with_max_depth(settings.max_depth),
            with_stack_depth(settings.stack_depth),
            with_primary_fields(*settings.primary_fields),
        ]
        options += [with_constant_field(k, v) for k, v in settings.constant_fields.items()]
        if settings.include_caller:
            options.append(include_caller())
        return new(*options)

    def format(self, entry: LogEntry) -> bytes:
        """Render a single entry as a newline terminated line."""
        return (self._render(entry) + "\n").encode("utf-8")

    def _render(self, entry: LogEntry, calling_module: str = "") -> str:
        cfg = self.config
        buf = [format_timestamp(entry.time), f" {LEVEL_KEY}={quote(str(entry.level))}"]

        if cfg.include_caller:
            self._emit_caller(buf, calling_module)

        buf.extend(cfg.constant_fields)

        data = entry.data
        emitted = set()
        for key in cfg.primary_fields:
            if key in data:
                emitted.add(key)
                emit(buf, key, data[key], 0, cfg.max_depth)

        for key in sorted(k for k in data if k not in emitted):
            emit(buf, key, data[key], 0, cfg.max_depth)

        if entry.message:
            emit(buf, MESSAGE_KEY, entry.message, 0, cfg.max_depth)

        return "".join(buf)

    def _emit_caller(self, buf: list[str], calling_module: str = "") -> None:
        site = resolve_caller(self.config.stack_depth, calling_module=calling_module)
        if not site.known:
            buf.append(f' {CALLER_FUNC_KEY}="unknown"')
            return
        buf.append(f" {CALLER_FUNC_KEY}={quote(site.function)} {CALLER_LINE_KEY}={site.line}")


# ── logging integration ───────────────────────────────────────────────────────

class KVFormatter(logging.Formatter):
    """
    `logging.Formatter` that renders records with a kvlog Formatter.

    Fields come from `extra=` attributes and from FieldLogger; the handler
    adds the line terminator. Pass either a built `formatter` or the options
    to build one.

    For records logged through FieldLogger the caller is the function that
    called the wrapper. Records logged on a `logging.Logger` directly have
    no wrapper in between, so the function that called the `logging` method
    is reported.
    """

    def __init__(self, *options: Option, formatter: Optional[Formatter] = None):
        super().__init__()
        if formatter is not None and options:
            raise KVLogError(
                ErrorCode.INVALID_OPTION,
                "Pass either a formatter or options, not both.",
            )
        self.formatter = formatter or new(*options)

    def format(self, record: logging.LogRecord) -> str:
        calling_module = "" if hasattr(record, RECORD_FIELDS_ATTR) else HOST_MODULE
        return self.formatter._render(self.to_entry(record), calling_module)

    def to_entry(self, record: logging.LogRecord) -> LogEntry:
        data: dict[str, Any] = {
            key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS
        }
        fields = getattr(record, RECORD_FIELDS_ATTR, None)
        if fields:
            data.update((str(k), v) for k, v in fields.items())

        if record.exc_info:
            data[EXCEPTION_KEY] = self.formatException(record.exc_info)
        if record.stack_info:
            data[STACK_KEY] = self.formatStack(record.stack_info)

        return LogEntry(
            time=datetime.fromtimestamp(record.created, tz=timezone.utc),
            level=record.levelname.lower(),
            message=record.getMessage(),
            data=data,
        )
