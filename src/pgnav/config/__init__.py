"""Config module exports."""

from pgnav.config.loader import PgNavSettings, load_config
from pgnav.config.models import (
    IndexConfig,
    LoggingConfig,
    PgNavConfig,
    ServerConfig,
    WorkspaceSettings,
)

__all__ = [
    "load_config",
    "PgNavConfig",
    "PgNavSettings",
    "ServerConfig",
    "IndexConfig",
    "LoggingConfig",
    "WorkspaceSettings",
]
