"""
Pydantic Models: Log Entry / Formatter Configuration
----------------------------------------------------
  1. LogEntry is the record handed to the formatter: timestamp, severity,
     message and an unordered mapping of fields.
  2. FormatterConfig is built once by `new()` and frozen; a Formatter only
     ever reads it, so one instance can be shared across threads.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from kvlog.core.config import DEFAULT_MAX_DEPTH, DEFAULT_STACK_DEPTH


# ── Record ────────────────────────────────────────────────────────────────────

class LogEntry(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    time: datetime
    level: str
    message: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


# ── Configuration ─────────────────────────────────────────────────────────────

class FormatterConfig(BaseModel):
    """
    Immutable formatter state.

    `constant_fields` holds fragments already rendered by the value encoder,
    leading space included, written verbatim into every line.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    primary_fields: tuple[str, ...] = ()
    constant_fields: tuple[str, ...] = ()
    include_caller: bool = False
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1)
    stack_depth: int = Field(default=DEFAULT_STACK_DEPTH, ge=1)
