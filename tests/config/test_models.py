"""Tests for config/models.py."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from pgnav.config.models import (
    IndexConfig,
    LogOutputConfig,
    PgNavConfig,
    ServerConfig,
    WorkspaceSettings,
)


class TestLogOutputConfig:
    """Log output destination validation."""

    @pytest.mark.parametrize("destination", ["stderr", "stdout"])
    def test_streams_accepted(self, destination: str) -> None:
        assert LogOutputConfig(destination=destination).destination == destination

    def test_absolute_file_accepted(self, tmp_path: Path) -> None:
        path = tmp_path / "pgnav.log"
        assert LogOutputConfig(destination=str(path)).destination == str(path)

    def test_relative_file_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="logs/pgnav.log")


class TestServerConfig:
    """Transport settings."""

    def test_defaults_to_stdio(self) -> None:
        config = ServerConfig()
        assert config.transport == "stdio"
        assert config.host == "127.0.0.1"

    @pytest.mark.parametrize("port", [-1, 70000])
    def test_port_out_of_range_rejected(self, port: int) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(port=port)

    def test_unknown_transport_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ServerConfig(transport="websocket")  # type: ignore[arg-type]


class TestIndexConfig:
    """Index limits."""

    def test_size_in_bytes(self) -> None:
        assert IndexConfig(max_file_size_mb=2).max_file_size_bytes == 2 * 1024 * 1024

    def test_zero_size_rejected(self) -> None:
        with pytest.raises(ValidationError):
            IndexConfig(max_file_size_mb=0)


class TestWorkspaceSettings:
    """Workspace settings accept both editor and file spellings."""

    def test_defaults(self) -> None:
        settings = WorkspaceSettings()
        assert settings.definition_files == []
        assert settings.default_schema == "public"

    def test_camel_case_from_editor(self) -> None:
        """Editors send camelCase keys."""
        settings = WorkspaceSettings.model_validate(
            {"definitionFiles": ["schema/*.sql"], "defaultSchema": "app"}
        )
        assert settings.definition_files == ["schema/*.sql"]
        assert settings.default_schema == "app"

    def test_snake_case_from_yaml(self) -> None:
        settings = WorkspaceSettings.model_validate({"default_schema": "app"})
        assert settings.default_schema == "app"

    def test_blank_default_schema_rejected(self) -> None:
        with pytest.raises(ValidationError):
            WorkspaceSettings(default_schema="  ")

    def test_only_given_fields_are_set(self) -> None:
        """Partial editor settings leave the rest to lower layers."""
        settings = WorkspaceSettings.model_validate({"defaultSchema": "app"})
        assert settings.model_fields_set == {"default_schema"}


class TestPgNavConfig:
    def test_sections_present(self) -> None:
        config = PgNavConfig()
        assert config.index.max_file_size_mb == 10
        assert config.workspace.default_schema == "public"
