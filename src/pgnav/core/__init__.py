"""Core module exports."""

from pgnav.core.errors import (
    ConfigError,
    DefinitionError,
    ErrorCode,
    InternalError,
    PgNavError,
)
from pgnav.core.logging import (
    clear_request_id,
    configure_logging,
    get_request_id,
    request_scope,
    set_request_id,
)

__all__ = [
    # Errors
    "ConfigError",
    "DefinitionError",
    "ErrorCode",
    "InternalError",
    "PgNavError",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_request_id",
    "request_scope",
    "set_request_id",
]
