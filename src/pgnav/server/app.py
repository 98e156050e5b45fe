"""pygls language server wiring.

The protocol layer stays thin: every handler resolves the document's
workspace folder and settings, then delegates to the DefinitionsManager.
Handlers never raise for missing workspaces or unresolvable names; the
editor simply receives no result.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import Any

import structlog
from lsprotocol import types
from pygls.server import LanguageServer

from pgnav import __version__
from pgnav.config.constants import CLIENT_SETTINGS_SECTION, DISABLE_MARKER
from pgnav.config.models import PgNavConfig
from pgnav.core.logging import request_scope
from pgnav.index.candidates import code_point_index, token_at
from pgnav.index.manager import (
    DefinitionsManager,
    LoadStats,
    WorkspaceState,
    uri_to_path,
)
from pgnav.index.models import Declaration, DeclarationKind, Location, Position, Span
from pgnav.server.settings import SettingsManager

logger = structlog.get_logger()

_PREFIX_RE = re.compile(r'[\w$."]*$')

_COMPLETION_KINDS = {
    DeclarationKind.TABLE: types.CompletionItemKind.Class,
    DeclarationKind.VIEW: types.CompletionItemKind.Interface,
    DeclarationKind.COMPOSITE_TYPE: types.CompletionItemKind.Struct,
    DeclarationKind.FUNCTION: types.CompletionItemKind.Function,
    DeclarationKind.PROCEDURE: types.CompletionItemKind.Method,
    DeclarationKind.TRIGGER: types.CompletionItemKind.Event,
    DeclarationKind.INDEX: types.CompletionItemKind.Reference,
}


def is_disabled(text: str) -> bool:
    """Whether the document opted out with a ``pgnav:disable`` comment on line 1."""
    first_line = text.split("\n", 1)[0]
    return DISABLE_MARKER in first_line


def _lsp_range(span: Span) -> types.Range:
    return types.Range(
        start=types.Position(line=span.start.line, character=span.start.character),
        end=types.Position(line=span.end.line, character=span.end.character),
    )


def _location_link(location: Location) -> types.LocationLink:
    return types.LocationLink(
        target_uri=location.uri,
        target_range=_lsp_range(location.span),
        target_selection_range=_lsp_range(location.selection),
    )


def _hover_markdown(declarations: list[Declaration]) -> str:
    blocks = []
    for decl in declarations:
        path = uri_to_path(decl.uri)
        where = f"{path.name if path else decl.uri}:{decl.location.span.start.line + 1}"
        code = decl.detail or decl.key
        blocks.append(f"```sql\n{code}\n```\n*{decl.kind.value}* `{decl.key}` in {where}")
    return "\n\n".join(blocks)


class PgNavLanguageServer(LanguageServer):
    """Language server answering definition, hover and completion requests."""

    def __init__(self, config: PgNavConfig | None = None) -> None:
        super().__init__("pgnav", f"v{__version__}")
        self.config = config or PgNavConfig()
        self.definitions = DefinitionsManager(
            max_file_size_bytes=self.config.index.max_file_size_bytes
        )
        self.settings = SettingsManager(fetch_client=self._fetch_client_settings)

    # ------------------------------------------------------------------
    # Workspace helpers
    # ------------------------------------------------------------------

    async def _fetch_client_settings(self, uri: str) -> dict[str, Any] | None:
        client = self.client_capabilities
        capabilities = client.workspace if client is not None else None
        if capabilities is None or not capabilities.configuration:
            return None
        result = await self.get_configuration_async(
            types.WorkspaceConfigurationParams(
                items=[types.ConfigurationItem(scope_uri=uri, section=CLIENT_SETTINGS_SECTION)]
            )
        )
        if result and isinstance(result[0], dict):
            return result[0]
        return None

    def folder_for(self, uri: str) -> tuple[Path, str] | None:
        """Workspace folder (root path, name) owning ``uri``."""
        path = uri_to_path(uri)
        if path is None:
            return None
        path = path.resolve()
        candidates: list[tuple[Path, str]] = []
        for folder in self.workspace.folders.values():
            root = uri_to_path(folder.uri)
            if root is not None and path.is_relative_to(root.resolve()):
                candidates.append((root.resolve(), folder.name))
        if not candidates and self.workspace.root_path:
            root = Path(self.workspace.root_path).resolve()
            if path.is_relative_to(root):
                candidates.append((root, root.name))
        if not candidates:
            return None
        return max(candidates, key=lambda item: len(item[0].parts))

    def document_text(self, uri: str) -> str:
        return self.workspace.get_text_document(uri).source

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    async def open_document(self, uri: str) -> asyncio.Task[LoadStats] | None:
        """Start loading the document's workspace definitions on first contact."""
        folder = self.folder_for(uri)
        if folder is None:
            return None
        root, name = folder
        workspace = self.definitions.registry.get(root)
        if workspace is not None and workspace.state is not WorkspaceState.UNLOADED:
            return workspace.load_task

        settings = await self.settings.get(uri, root)
        logger.info("workspace_definitions_loading", workspace=name)
        return self.definitions.ensure_loaded(root, settings.definition_files, name)

    async def save_document(self, uri: str, text: str | None) -> list[Declaration] | None:
        if text is not None and is_disabled(text):
            return None
        folder = self.folder_for(uri)
        settings = await self.settings.get(uri, folder[0] if folder else None)
        if not (
            self.definitions.has_file_definitions(uri)
            or self.definitions.is_definition_target(uri, settings.definition_files)
        ):
            return None
        return await self.definitions.update_file(uri, text, settings.default_schema)

    def close_document(self, uri: str) -> None:
        self.settings.delete(uri)

    async def reload_configuration(self) -> list[LoadStats]:
        """Re-read settings and reload every loaded workspace with its new patterns."""
        self.settings.reset()
        reloads = []
        for workspace in self.definitions.registry.all():
            if workspace.state is WorkspaceState.UNLOADED:
                continue
            settings = await self.settings.get(workspace.uri, workspace.root)
            reloads.append(
                self.definitions.load_workspace(
                    workspace.root, settings.definition_files, reload=True
                )
            )
        return list(await asyncio.gather(*reloads))

    def remove_folders(self, folders: list[types.WorkspaceFolder]) -> None:
        for folder in folders:
            self.definitions.registry.remove(folder.uri)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def definition(
        self, uri: str, text: str, position: types.Position
    ) -> list[types.LocationLink] | None:
        if is_disabled(text):
            return None
        settings = await self.settings.get(uri, self._root_of(uri))
        locations = self.definitions.resolve_at(
            uri, text, Position(position.line, position.character), settings.default_schema
        )
        return [_location_link(location) for location in locations] or None

    async def hover(self, uri: str, text: str, position: types.Position) -> types.Hover | None:
        if is_disabled(text):
            return None
        token = token_at(text, position.line, position.character)
        if token is None:
            return None
        settings = await self.settings.get(uri, self._root_of(uri))
        declarations = self.definitions.describe(uri, token, settings.default_schema)
        if not declarations:
            return None
        return types.Hover(
            contents=types.MarkupContent(
                kind=types.MarkupKind.Markdown,
                value=_hover_markdown(declarations),
            )
        )

    def completion(
        self, uri: str, text: str, position: types.Position
    ) -> types.CompletionList | None:
        if is_disabled(text):
            return None
        lines = text.splitlines()
        line = lines[position.line] if position.line < len(lines) else ""
        prefix = _PREFIX_RE.search(line[: code_point_index(line, position.character)])
        prefix_text = prefix.group(0) if prefix else ""
        qualified = "." in prefix_text

        items: dict[str, types.CompletionItem] = {}
        for decl in self.definitions.complete(uri, prefix_text):
            label = decl.key if qualified else decl.qualified_name.name
            if label not in items:
                items[label] = types.CompletionItem(
                    label=label,
                    kind=_COMPLETION_KINDS[decl.kind],
                    detail=decl.detail or decl.kind.value,
                )
        return types.CompletionList(is_incomplete=False, items=list(items.values()))

    def _root_of(self, uri: str) -> Path | None:
        folder = self.folder_for(uri)
        return folder[0] if folder else None


def create_server(config: PgNavConfig | None = None) -> PgNavLanguageServer:
    """Build a server with every feature registered."""
    server = PgNavLanguageServer(config)

    @server.feature(types.TEXT_DOCUMENT_DID_OPEN)
    async def did_open(ls: PgNavLanguageServer, params: types.DidOpenTextDocumentParams) -> None:
        if is_disabled(params.text_document.text):
            return
        task = await ls.open_document(params.text_document.uri)
        if task is not None and not task.done():
            task.add_done_callback(_log_load_outcome)

    @server.feature(types.TEXT_DOCUMENT_DID_SAVE)
    async def did_save(ls: PgNavLanguageServer, params: types.DidSaveTextDocumentParams) -> None:
        uri = params.text_document.uri
        text = params.text if params.text is not None else ls.document_text(uri)
        await ls.save_document(uri, text)

    @server.feature(types.TEXT_DOCUMENT_DID_CLOSE)
    def did_close(ls: PgNavLanguageServer, params: types.DidCloseTextDocumentParams) -> None:
        ls.close_document(params.text_document.uri)

    @server.feature(types.WORKSPACE_DID_CHANGE_CONFIGURATION)
    async def did_change_configuration(
        ls: PgNavLanguageServer, params: types.DidChangeConfigurationParams
    ) -> None:
        await ls.reload_configuration()

    @server.feature(types.WORKSPACE_DID_CHANGE_WORKSPACE_FOLDERS)
    def did_change_workspace_folders(
        ls: PgNavLanguageServer, params: types.DidChangeWorkspaceFoldersParams
    ) -> None:
        ls.remove_folders(params.event.removed)

    @server.feature(types.TEXT_DOCUMENT_DEFINITION)
    async def definition(
        ls: PgNavLanguageServer, params: types.DefinitionParams
    ) -> list[types.LocationLink] | None:
        with request_scope():
            uri = params.text_document.uri
            return await ls.definition(uri, ls.document_text(uri), params.position)

    @server.feature(types.TEXT_DOCUMENT_HOVER)
    async def hover(ls: PgNavLanguageServer, params: types.HoverParams) -> types.Hover | None:
        with request_scope():
            uri = params.text_document.uri
            return await ls.hover(uri, ls.document_text(uri), params.position)

    @server.feature(
        types.TEXT_DOCUMENT_COMPLETION,
        types.CompletionOptions(trigger_characters=["."]),
    )
    def completion(
        ls: PgNavLanguageServer, params: types.CompletionParams
    ) -> types.CompletionList | None:
        with request_scope():
            uri = params.text_document.uri
            return ls.completion(uri, ls.document_text(uri), params.position)

    return server


def _log_load_outcome(task: asyncio.Task[LoadStats]) -> None:
    if task.cancelled():
        logger.warning("workspace_definitions_load_cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error("workspace_definitions_load_failed", error=repr(error))
        return
    logger.info("workspace_definitions_loaded", files=task.result().files_indexed)


def run(config: PgNavConfig) -> None:
    """Serve over the configured transport until the client disconnects."""
    server = create_server(config)
    if config.server.transport == "tcp":
        logger.info(
            "server_starting",
            transport="tcp",
            host=config.server.host,
            port=config.server.port,
        )
        server.start_tcp(config.server.host, config.server.port)
    else:
        logger.info("server_starting", transport="stdio")
        server.start_io()


__all__ = ["PgNavLanguageServer", "create_server", "is_disabled", "run"]
