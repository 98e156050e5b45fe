"""Workspace registry and definitions manager.

The manager owns every workspace root's definitions index and is the only
component that mutates one. Its contract towards callers:

- Loading and per-file updates run as awaitable units; parsing and file
  reads happen in worker threads so resolution is never blocked by them.
- Resolution only reads the already-built index: no I/O, no parsing.
- Nothing raised while reading, parsing, or globbing escapes. Failures are
  logged and degrade to "no change" for the affected file or pattern.

Workspace lifecycle::

    UNLOADED --ensure_loaded()--> LOADING --load finished--> LOADED
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import structlog

from pgnav.config.constants import DEFAULT_SCHEMA
from pgnav.core.errors import DefinitionError, InternalError
from pgnav.index.candidates import generate_candidates, token_at
from pgnav.index.discovery import expand_patterns, matches_any
from pgnav.index.extraction import extract_declarations
from pgnav.index.models import Declaration, Location, Position
from pgnav.index.parser import parse_statements
from pgnav.index.store import WorkspaceDefinitionsIndex

logger = structlog.get_logger()

DEFAULT_MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024


# =============================================================================
# URIs
# =============================================================================


def uri_to_path(uri: str) -> Path | None:
    """Filesystem path of a ``file:`` URI (None for other schemes)."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return None
    return Path(url2pathname(parsed.path))


def path_to_uri(path: Path) -> str:
    return path.resolve().as_uri()


def canonical_uri(uri: str) -> str:
    """Normalize editor URIs so one file always maps to one index entry."""
    path = uri_to_path(uri)
    return path_to_uri(path) if path is not None else uri


# =============================================================================
# Workspaces
# =============================================================================


class WorkspaceState(Enum):
    """Definitions loading state of one workspace root."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass
class Workspace:
    """One workspace root and its independent definitions index."""

    root: Path
    name: str
    index: WorkspaceDefinitionsIndex = field(default_factory=WorkspaceDefinitionsIndex)
    state: WorkspaceState = WorkspaceState.UNLOADED
    patterns: list[str] = field(default_factory=list)

    load_task: asyncio.Task[LoadStats] | None = field(default=None, init=False, repr=False)
    _generations: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    @property
    def uri(self) -> str:
        return path_to_uri(self.root)

    def next_generation(self, uri: str) -> int:
        """Claim a new generation for ``uri``; older in-flight parses become stale."""
        generation = self._generations.get(uri, 0) + 1
        self._generations[uri] = generation
        return generation

    def is_current(self, uri: str, generation: int) -> bool:
        return self._generations.get(uri) == generation


class WorkspaceRegistry:
    """Explicitly owned set of workspace roots.

    Each root has a fully independent index: no lookup ever crosses roots.
    """

    def __init__(self) -> None:
        self._workspaces: dict[Path, Workspace] = {}

    def ensure(self, root: Path | str, name: str | None = None) -> Workspace:
        key = _root_key(root)
        workspace = self._workspaces.get(key)
        if workspace is None:
            workspace = Workspace(root=key, name=name or key.name or str(key))
            self._workspaces[key] = workspace
            logger.debug("workspace_registered", root=str(key))
        return workspace

    def get(self, root: Path | str) -> Workspace | None:
        return self._workspaces.get(_root_key(root))

    def remove(self, root: Path | str) -> bool:
        workspace = self._workspaces.pop(_root_key(root), None)
        if workspace is None:
            return False
        logger.info("workspace_removed", root=str(workspace.root))
        return True

    def owner_of(self, file_uri: str) -> Workspace | None:
        """Workspace with the deepest root containing ``file_uri``."""
        path = uri_to_path(file_uri)
        if path is None:
            return None
        path = path.resolve()
        owners = [ws for root, ws in self._workspaces.items() if path.is_relative_to(root)]
        if not owners:
            return None
        return max(owners, key=lambda ws: len(ws.root.parts))

    def all(self) -> list[Workspace]:
        return list(self._workspaces.values())

    def __len__(self) -> int:
        return len(self._workspaces)


def _root_key(root: Path | str) -> Path:
    if isinstance(root, str):
        path = uri_to_path(root) if root.startswith("file:") else Path(root)
        if path is None:
            raise ValueError(f"Unsupported workspace URI: {root}")
        root = path
    return root.resolve()


# =============================================================================
# Manager
# =============================================================================


@dataclass
class LoadStats:
    """Outcome of one workspace (re)load."""

    files_indexed: int = 0
    files_failed: int = 0
    files_removed: int = 0
    declarations: int = 0
    patterns_failed: int = 0
    duration_seconds: float = 0.0


class DefinitionsManager:
    """Builds, refreshes, and queries per-workspace definitions indexes."""

    def __init__(
        self,
        registry: WorkspaceRegistry | None = None,
        *,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
    ) -> None:
        self.registry = registry if registry is not None else WorkspaceRegistry()
        self.max_file_size_bytes = max_file_size_bytes

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def ensure_loaded(
        self,
        root: Path | str,
        patterns: list[str],
        name: str | None = None,
    ) -> asyncio.Task[LoadStats] | None:
        """Start loading ``root`` unless it is already loading or loaded.

        Must be called from a running event loop. Returns the load task
        (the existing one for a root that has already left UNLOADED).
        """
        workspace = self.registry.ensure(root, name)
        if workspace.state is not WorkspaceState.UNLOADED:
            return workspace.load_task
        workspace.state = WorkspaceState.LOADING
        workspace.load_task = asyncio.get_running_loop().create_task(
            self.load_workspace(workspace.root, patterns)
        )
        return workspace.load_task

    async def load_workspace(
        self,
        root: Path | str,
        patterns: list[str],
        *,
        reload: bool = False,
    ) -> LoadStats:
        """Index every file matched by ``patterns`` under ``root``.

        Per-pattern and per-file failures are logged and skipped. With
        ``reload=True``, files no longer matched by any pattern are dropped.
        The workspace ends LOADED whatever happened to individual files.
        """
        workspace = self.registry.ensure(root)
        workspace.state = WorkspaceState.LOADING
        workspace.patterns = list(patterns)
        stats = LoadStats()
        start = time.perf_counter()
        logger.info(
            "workspace_load_started",
            workspace=workspace.name,
            patterns=workspace.patterns,
            reload=reload,
        )

        try:
            discovery = await asyncio.to_thread(
                expand_patterns, workspace.root, workspace.patterns
            )
            for error in discovery.errors:
                stats.patterns_failed += 1
                logger.warning("definition_pattern_invalid", **error.details)
            for pattern in discovery.empty_patterns:
                logger.info("definition_pattern_empty", pattern=pattern)

            uris = [path_to_uri(path) for path in discovery.files]
            generations = [workspace.next_generation(uri) for uri in uris]
            results = await asyncio.gather(
                *(
                    asyncio.to_thread(self._extract_path, path, uri)
                    for path, uri in zip(discovery.files, uris, strict=True)
                ),
                return_exceptions=True,
            )

            for uri, generation, result in zip(uris, generations, results, strict=True):
                if isinstance(result, DefinitionError):
                    stats.files_failed += 1
                    logger.warning(
                        "definition_file_failed", error=result.error_name, **result.details
                    )
                elif isinstance(result, BaseException):
                    stats.files_failed += 1
                    crash = InternalError.unexpected(repr(result), uri=uri)
                    logger.error("definition_file_crashed", **crash.to_dict())
                elif workspace.is_current(uri, generation):
                    workspace.index.replace(uri, result)
                    stats.files_indexed += 1
                    stats.declarations += len(result)

            if reload:
                matched = set(uris)
                for uri in workspace.index.files():
                    if uri not in matched and workspace.index.remove(uri):
                        stats.files_removed += 1
        finally:
            workspace.state = WorkspaceState.LOADED
            stats.duration_seconds = time.perf_counter() - start

        logger.info(
            "workspace_load_finished",
            workspace=workspace.name,
            files_indexed=stats.files_indexed,
            files_failed=stats.files_failed,
            files_removed=stats.files_removed,
            declarations=stats.declarations,
            duration_seconds=round(stats.duration_seconds, 3),
        )
        return stats

    def _extract_path(self, path: Path, uri: str) -> list[Declaration]:
        """Read + parse + extract one file. Runs in a worker thread."""
        try:
            size = path.stat().st_size
            if size > self.max_file_size_bytes:
                raise DefinitionError.read_failed(
                    uri, f"{size} bytes exceeds limit of {self.max_file_size_bytes}"
                )
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise DefinitionError.read_failed(uri, str(e)) from e
        return self._extract_text(uri, text)

    @staticmethod
    def _extract_text(uri: str, text: str) -> list[Declaration]:
        return extract_declarations(parse_statements(text, uri), uri, text)

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    async def update_file(
        self,
        file_uri: str,
        content: str | None = None,
        default_schema: str = DEFAULT_SCHEMA,
    ) -> list[Declaration] | None:
        """Re-index one file and return its new declarations.

        ``content`` is read from disk when omitted. Returns None when the
        file is not parseable (its previous declarations stay), when no
        loaded workspace owns it, or when a newer update overtook this one.
        """
        uri = canonical_uri(file_uri)
        workspace = self.registry.owner_of(uri)
        if workspace is None or workspace.state is WorkspaceState.UNLOADED:
            error = DefinitionError.workspace_not_found(uri)
            logger.warning("file_update_skipped", error=error.error_name, **error.details)
            return None

        generation = workspace.next_generation(uri)
        try:
            if content is None:
                path = uri_to_path(uri)
                if path is None:
                    raise DefinitionError.read_failed(uri, "not a file URI")
                declarations = await asyncio.to_thread(self._extract_path, path, uri)
            else:
                declarations = await asyncio.to_thread(self._extract_text, uri, content)
        except DefinitionError as e:
            logger.warning("file_update_failed", error=e.error_name, **e.details)
            return None
        except Exception as e:  # noqa: BLE001
            crash = InternalError.unexpected(repr(e), uri=uri)
            logger.error("file_update_crashed", **crash.to_dict())
            return None

        if not workspace.is_current(uri, generation):
            logger.debug("file_update_superseded", uri=uri, generation=generation)
            return None

        workspace.index.replace(uri, declarations)
        logger.info(
            "file_definitions_updated",
            uri=uri,
            default_schema=default_schema,
            definitions=[decl.key for decl in declarations],
        )
        return declarations

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _queryable(self, file_uri: str) -> Workspace | None:
        workspace = self.registry.owner_of(canonical_uri(file_uri))
        if workspace is None or workspace.state is WorkspaceState.UNLOADED:
            logger.debug("query_without_workspace", uri=file_uri)
            return None
        return workspace

    def describe(
        self,
        file_uri: str,
        token: str,
        default_schema: str = DEFAULT_SCHEMA,
    ) -> list[Declaration]:
        """Declarations for the first candidate form of ``token`` that matches."""
        workspace = self._queryable(file_uri)
        if workspace is None:
            return []
        for form in generate_candidates(token, default_schema):
            if form.any_schema:
                matches = workspace.index.lookup_any_schema(form.name)
            else:
                matches = workspace.index.lookup(form.key)
            if matches:
                logger.debug("token_resolved", token=token, form=form.key, matches=len(matches))
                return matches
        return []

    def resolve(
        self,
        file_uri: str,
        token: str,
        default_schema: str = DEFAULT_SCHEMA,
    ) -> list[Location]:
        """Locations of the declarations ``token`` refers to (empty if none)."""
        locations: list[Location] = []
        for decl in self.describe(file_uri, token, default_schema):
            if decl.location not in locations:
                locations.append(decl.location)
        return locations

    def resolve_at(
        self,
        file_uri: str,
        text: str,
        position: Position,
        default_schema: str = DEFAULT_SCHEMA,
    ) -> list[Location]:
        token = token_at(text, position.line, position.character)
        if token is None:
            return []
        return self.resolve(file_uri, token, default_schema)

    def complete(self, file_uri: str, prefix: str) -> list[Declaration]:
        """Declarations whose name (``schema.name`` for dotted prefixes) starts with ``prefix``."""
        workspace = self._queryable(file_uri)
        if workspace is None:
            return []
        qualified = "." in prefix
        folded = prefix.replace('"', "").lower()
        return [
            decl
            for decl in workspace.index.declarations()
            if (decl.key.replace('"', "") if qualified else decl.qualified_name.name)
            .lower()
            .startswith(folded)
        ]

    def has_file_definitions(self, file_uri: str) -> bool:
        uri = canonical_uri(file_uri)
        workspace = self.registry.owner_of(uri)
        return workspace is not None and workspace.index.has_file(uri)

    def is_definition_target(self, file_uri: str, patterns: list[str]) -> bool:
        uri = canonical_uri(file_uri)
        workspace = self.registry.owner_of(uri)
        path = uri_to_path(uri)
        if workspace is None or path is None:
            return False
        return matches_any(workspace.root, path, patterns)
