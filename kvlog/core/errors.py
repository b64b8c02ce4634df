"""
Error Contract
--------------
Formatting a record never fails. Building a formatter can: every problem
found while applying options is raised as a KVLogError carrying a stable
`code` the caller can branch on.
"""

from enum import Enum


class ErrorCode(str, Enum):
    # Keys that would break key=value tokenizing
    INVALID_FIELD_KEY = "invalid_field_key"

    # Option values rejected by the configuration model
    INVALID_OPTION = "invalid_option"

    # Unknown logging level name
    INVALID_LOG_LEVEL = "invalid_log_level"


class KVLogError(Exception):
    """Base exception for all configuration errors in this package."""

    def __init__(self, code: ErrorCode, detail: str = ""):
        self.code = code
        self.detail = detail or code.value.replace("_", " ").capitalize()
        super().__init__(self.detail)
