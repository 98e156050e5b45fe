"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (PGNAV__SECTION__KEY)
3. Repo YAML (.pgnav/config.yaml)
4. Global YAML (~/.config/pgnav/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    PGNAV__<SECTION>__<KEY>=<VALUE>

Examples:
    PGNAV__LOGGING__LEVEL=DEBUG
    PGNAV__SERVER__TRANSPORT=tcp
    PGNAV__WORKSPACE__DEFAULT_SCHEMA=app
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from pgnav.config.constants import DEFAULT_SCHEMA, PORT_MAX, PORT_MIN

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        PGNAV__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every extracted declaration.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """Language server transport configuration.

    Env vars:
        PGNAV__SERVER__TRANSPORT: stdio (default) or tcp
        PGNAV__SERVER__HOST: Bind address for tcp (default: 127.0.0.1)
        PGNAV__SERVER__PORT: Port for tcp (default: 2087)
    """

    transport: Literal["stdio", "tcp"] = Field(
        default="stdio",
        description="Editor transport. stdio is what editors spawn by default.",
    )
    host: str = Field(default="127.0.0.1", description="Bind address for tcp transport.")
    port: int = Field(default=2087, description="Port for tcp transport.")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (PORT_MIN <= v <= PORT_MAX):
            raise ValueError(f"Port must be {PORT_MIN}-{PORT_MAX}, got {v}")
        return v


class IndexConfig(BaseModel):
    """Definitions index configuration.

    Env vars:
        PGNAV__INDEX__MAX_FILE_SIZE_MB: Skip definition files larger than this
    """

    max_file_size_mb: int = Field(
        default=10,
        description="Skip definition files larger than this (MB). "
        "Large generated dumps parse slowly and rarely hold hand-written definitions.",
    )

    @field_validator("max_file_size_mb")
    @classmethod
    def validate_max_file_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_file_size_mb must be positive, got {v}")
        return v

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class WorkspaceSettings(BaseModel):
    """Per-workspace settings that drive definition indexing and resolution.

    Editors send these through ``workspace/configuration`` in camelCase
    (``definitionFiles``, ``defaultSchema``); YAML and env use snake_case.
    """

    model_config = ConfigDict(populate_by_name=True)

    definition_files: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("definition_files", "definitionFiles"),
        description="Glob patterns, relative to the workspace root, of files to index.",
    )
    default_schema: str = Field(
        default=DEFAULT_SCHEMA,
        validation_alias=AliasChoices("default_schema", "defaultSchema"),
        description="Schema assumed for unqualified names.",
    )

    @field_validator("default_schema")
    @classmethod
    def validate_default_schema(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("default_schema must not be empty")
        return v


class PgNavConfig(BaseModel):
    """Root configuration for pgnav.

    All settings can be configured via:
    1. Environment variables: PGNAV__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    workspace: WorkspaceSettings = Field(default_factory=WorkspaceSettings)
