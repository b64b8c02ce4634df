"""
Configuration: loads formatter settings from environment variables.
All values have safe defaults, so a bare `get_logger(__name__)` works.

Every variable is prefixed with KVLOG_, e.g.

    KVLOG_PRIMARY_FIELDS='["action", "status"]'
    KVLOG_CONSTANT_FIELDS='{"commit": "abcd1234"}'
    KVLOG_INCLUDE_CALLER=true
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ── Line layout ───────────────────────────────────────────────────────────────
LEVEL_KEY = "ll"
MESSAGE_KEY = "_msg"
CALLER_FUNC_KEY = "srcfnc"
CALLER_LINE_KEY = "srcline"
EXCEPTION_KEY = "_exception"
STACK_KEY = "_stack"

# LogRecord attribute that FieldLogger stores its fields under.
RECORD_FIELDS_ATTR = "kvlog_fields"

# ── Limits ────────────────────────────────────────────────────────────────────
DEFAULT_MAX_DEPTH = 16       # nesting levels of compound values
DEFAULT_STACK_DEPTH = 32     # frames captured when resolving the caller
DEFAULT_STACK_SKIP = 2       # the resolver itself plus its immediate caller


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KVLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logger ────────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    stream: Literal["stdout", "stderr"] = "stdout"

    # ── Line contents ─────────────────────────────────────────────────────────
    primary_fields: list[str] = Field(default_factory=list)
    constant_fields: dict[str, str] = Field(default_factory=dict)
    include_caller: bool = False

    # ── Limits ────────────────────────────────────────────────────────────────
    max_depth: int = DEFAULT_MAX_DEPTH
    stack_depth: int = DEFAULT_STACK_DEPTH


@lru_cache()
def get_settings() -> Settings:
    return Settings()
