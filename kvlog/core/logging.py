"""
Structured key=value Logging
----------------------------
Every log line is a single `key="value"` line, readable by people and
split cleanly by tools that tokenize on whitespace and `=`.

    log = get_logger(__name__)
    log.info("User logged in", action="user_login", status="ok")

    2017-01-02T12:00:00.000Z ll="info" action="user_login" status="ok" _msg="User logged in"

Fields emitted on every line:
  - timestamp   UTC, millisecond precision
  - ll          debug | info | warning | error | critical
  - srcfnc      calling function (when KVLOG_INCLUDE_CALLER is set)
  - **fields    all structured data passed by the caller, sorted by key
  - _msg        human-readable description, when not empty
"""

import logging
import sys
from typing import Any, Mapping, Optional

from kvlog.core.config import RECORD_FIELDS_ATTR, Settings, get_settings
from kvlog.core.errors import ErrorCode, KVLogError
from kvlog.services.formatter import Formatter, KVFormatter


class FieldLogger:
    """
    Thin wrapper over a `logging.Logger` that takes fields as keyword
    arguments. `with_fields` returns a copy with fields bound to every call.
    """

    def __init__(self, logger: logging.Logger, fields: Optional[Mapping[str, Any]] = None):
        self.logger = logger
        self.fields = dict(fields or {})

    def with_fields(self, **fields: Any) -> "FieldLogger":
        return FieldLogger(self.logger, {**self.fields, **fields})

    def debug(self, msg: str = "", **fields: Any) -> None:
        self._log(logging.DEBUG, msg, fields)

    def info(self, msg: str = "", **fields: Any) -> None:
        self._log(logging.INFO, msg, fields)

    def warning(self, msg: str = "", **fields: Any) -> None:
        self._log(logging.WARNING, msg, fields)

    def error(self, msg: str = "", **fields: Any) -> None:
        self._log(logging.ERROR, msg, fields)

    def critical(self, msg: str = "", **fields: Any) -> None:
        self._log(logging.CRITICAL, msg, fields)

    def exception(self, msg: str = "", **fields: Any) -> None:
        """Log at ERROR with the active exception's traceback attached."""
        self._log(logging.ERROR, msg, fields, exc_info=True)

    def _log(self, level: int, msg: str, fields: Mapping[str, Any], exc_info: bool = False) -> None:
        if not self.logger.isEnabledFor(level):
            return
        self.logger.log(
            level,
            msg,
            exc_info=exc_info,
            extra={RECORD_FIELDS_ATTR: {**self.fields, **fields}},
        )


def get_logger(name: str, settings: Optional[Settings] = None) -> FieldLogger:
    settings = settings or get_settings()
    logger = logging.getLogger(name)
    if not logger.handlers:
        try:
            logger.setLevel(settings.log_level.upper())
        except ValueError as exc:
            raise KVLogError(
                ErrorCode.INVALID_LOG_LEVEL,
                f"Unknown log level {settings.log_level!r}.",
            ) from exc
        stream = sys.stdout if settings.stream == "stdout" else sys.stderr
        handler = logging.StreamHandler(stream)
        handler.setFormatter(KVFormatter(formatter=Formatter.from_settings(settings)))
        logger.addHandler(handler)
        logger.propagate = False
    return FieldLogger(logger)
