"""pgnav error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Definitions index
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002

    # Definitions index (3xxx)
    SQL_PARSE_ERROR = 3001
    FILE_READ_ERROR = 3002
    INVALID_PATTERN = 3003
    WORKSPACE_NOT_FOUND = 3004

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class PgNavError(Exception):
    """Base error with structured context for logs and CLI output."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'SQL_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(PgNavError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )


class DefinitionError(PgNavError):
    """Failures while building or querying a workspace definitions index.

    These never cross the DefinitionsManager boundary; they exist so the
    per-file and per-pattern failure paths log a structured reason.
    """

    @classmethod
    def parse_failed(cls, uri: str, reason: str) -> "DefinitionError":
        return cls(
            code=ErrorCode.SQL_PARSE_ERROR,
            message=f"Could not parse {uri}: {reason}",
            details={"uri": uri, "reason": reason},
        )

    @classmethod
    def read_failed(cls, uri: str, reason: str) -> "DefinitionError":
        return cls(
            code=ErrorCode.FILE_READ_ERROR,
            message=f"Could not read {uri}: {reason}",
            retryable=True,
            details={"uri": uri, "reason": reason},
        )

    @classmethod
    def invalid_pattern(cls, pattern: str, reason: str) -> "DefinitionError":
        return cls(
            code=ErrorCode.INVALID_PATTERN,
            message=f"Invalid definition file pattern '{pattern}': {reason}",
            details={"pattern": pattern, "reason": reason},
        )

    @classmethod
    def workspace_not_found(cls, uri: str) -> "DefinitionError":
        return cls(
            code=ErrorCode.WORKSPACE_NOT_FOUND,
            message=f"No loaded workspace owns {uri}",
            details={"uri": uri},
        )


class InternalError(PgNavError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
