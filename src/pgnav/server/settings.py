"""Per-document workspace settings.

Resolution order (first wins):
1. Editor settings from ``workspace/configuration`` (section ``pgnav``)
2. The workspace root's own config (.pgnav/config.yaml, env vars, globals)
3. Built-in defaults

Results are cached per document URI until the document closes or the
editor reports a configuration change.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from pgnav.config.loader import load_config
from pgnav.config.models import WorkspaceSettings
from pgnav.core.errors import ConfigError

logger = structlog.get_logger()

ClientSettingsFetcher = Callable[[str], Awaitable[dict[str, Any] | None]]


class SettingsManager:
    """Caches the effective WorkspaceSettings of each open document."""

    def __init__(
        self,
        fetch_client: ClientSettingsFetcher | None = None,
        load_root: Callable[[Path], WorkspaceSettings] | None = None,
    ) -> None:
        self._fetch_client = fetch_client
        self._load_root = load_root or _load_root_settings
        self._documents: dict[str, WorkspaceSettings] = {}
        self._roots: dict[Path, WorkspaceSettings] = {}

    async def get(self, uri: str, root: Path | None) -> WorkspaceSettings:
        cached = self._documents.get(uri)
        if cached is not None:
            return cached

        settings = self._root_settings(root) if root is not None else WorkspaceSettings()
        client = await self._client_settings(uri)
        if client:
            settings = _overlay(settings, client)

        self._documents[uri] = settings
        return settings

    def delete(self, uri: str) -> None:
        self._documents.pop(uri, None)

    def reset(self) -> None:
        self._documents.clear()
        self._roots.clear()

    def _root_settings(self, root: Path) -> WorkspaceSettings:
        settings = self._roots.get(root)
        if settings is None:
            settings = self._load_root(root)
            self._roots[root] = settings
        return settings

    async def _client_settings(self, uri: str) -> dict[str, Any] | None:
        if self._fetch_client is None:
            return None
        try:
            return await self._fetch_client(uri)
        except Exception as e:  # noqa: BLE001
            # A client that rejects workspace/configuration still gets file settings.
            logger.warning("client_settings_unavailable", uri=uri, error=str(e))
            return None


def _overlay(base: WorkspaceSettings, client: dict[str, Any]) -> WorkspaceSettings:
    try:
        override = WorkspaceSettings.model_validate(client)
    except ValidationError as e:
        logger.warning("client_settings_invalid", error=str(e))
        return base
    return base.model_copy(update=override.model_dump(include=override.model_fields_set))


def _load_root_settings(root: Path) -> WorkspaceSettings:
    try:
        return load_config(root).workspace
    except ConfigError as e:
        logger.warning("workspace_config_invalid", root=str(root), **e.to_dict())
        return WorkspaceSettings()
