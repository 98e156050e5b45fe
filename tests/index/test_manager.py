"""Tests for the workspace registry and definitions manager."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from pgnav.index.manager import (
    DefinitionsManager,
    WorkspaceRegistry,
    WorkspaceState,
    canonical_uri,
    path_to_uri,
    uri_to_path,
)
from pgnav.index.models import Position


def write(root: Path, rel: str, text: str) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def query_uri(root: Path) -> str:
    """A document inside ``root`` to resolve from (need not exist)."""
    return path_to_uri(root / "query.sql")


@pytest.fixture
def root(tmp_path: Path) -> Path:
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws.resolve()


@pytest.fixture
def manager() -> DefinitionsManager:
    return DefinitionsManager()


class TestUris:
    def test_round_trip(self, tmp_path: Path) -> None:
        path = (tmp_path / "a b.sql").resolve()
        assert uri_to_path(path_to_uri(path)) == path

    def test_non_file_scheme(self) -> None:
        assert uri_to_path("untitled:Untitled-1") is None
        assert canonical_uri("untitled:Untitled-1") == "untitled:Untitled-1"

    def test_percent_encoding_normalized(self, tmp_path: Path) -> None:
        path = (tmp_path / "a b.sql").resolve()
        raw = "file://" + str(path).replace(" ", "%20")
        assert canonical_uri(raw) == path_to_uri(path)


class TestWorkspaceRegistry:
    def test_ensure_is_idempotent(self, root: Path) -> None:
        registry = WorkspaceRegistry()
        assert registry.ensure(root) is registry.ensure(str(root))
        assert len(registry) == 1

    def test_accepts_file_uri(self, root: Path) -> None:
        registry = WorkspaceRegistry()
        workspace = registry.ensure(root, "ws")
        assert registry.get(path_to_uri(root)) is workspace

    def test_owner_is_deepest_root(self, root: Path) -> None:
        registry = WorkspaceRegistry()
        outer = registry.ensure(root)
        inner = registry.ensure(root / "nested")

        assert registry.owner_of(path_to_uri(root / "nested" / "x.sql")) is inner
        assert registry.owner_of(path_to_uri(root / "x.sql")) is outer
        assert registry.owner_of(path_to_uri(root.parent / "x.sql")) is None

    def test_remove(self, root: Path) -> None:
        registry = WorkspaceRegistry()
        registry.ensure(root)
        assert registry.remove(root) is True
        assert registry.remove(root) is False
        assert registry.all() == []

    def test_generations(self, root: Path) -> None:
        workspace = WorkspaceRegistry().ensure(root)
        first = workspace.next_generation("file:///a.sql")
        second = workspace.next_generation("file:///a.sql")

        assert not workspace.is_current("file:///a.sql", first)
        assert workspace.is_current("file:///a.sql", second)


class TestLoadWorkspace:
    """Full workspace loads."""

    @pytest.mark.asyncio
    async def test_partial_failure_still_loads(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        """A file that does not parse is skipped; the rest are indexed."""
        write(root, "db/good.sql", "CREATE TABLE orders (id int);\n")
        write(root, "db/bad.sql", "CREATE TABLE (;\n")

        stats = await manager.load_workspace(root, ["db/*.sql"])

        assert stats.files_indexed == 1
        assert stats.files_failed == 1
        assert manager.registry.get(root).state is WorkspaceState.LOADED
        assert len(manager.resolve(query_uri(root), "orders")) == 1

    @pytest.mark.asyncio
    async def test_invalid_pattern_counted(self, root: Path, manager: DefinitionsManager) -> None:
        write(root, "a.sql", "CREATE TABLE a (id int);\n")

        stats = await manager.load_workspace(root, ["", "*.sql"])

        assert stats.patterns_failed == 1
        assert stats.files_indexed == 1

    @pytest.mark.asyncio
    async def test_oversized_file_skipped(self, root: Path) -> None:
        write(root, "big.sql", "CREATE TABLE big (id int);\n")
        manager = DefinitionsManager(max_file_size_bytes=8)

        stats = await manager.load_workspace(root, ["*.sql"])

        assert stats.files_failed == 1
        assert manager.resolve(query_uri(root), "big") == []

    @pytest.mark.asyncio
    async def test_reload_drops_unmatched_files(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        write(root, "a.sql", "CREATE TABLE a (id int);\n")
        write(root, "b.sql", "CREATE TABLE b (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        stats = await manager.load_workspace(root, ["a.sql"], reload=True)

        assert stats.files_removed == 1
        assert manager.resolve(query_uri(root), "b") == []
        assert len(manager.resolve(query_uri(root), "a")) == 1

    @pytest.mark.asyncio
    async def test_duplicates_returned_in_file_order(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        a = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        b = write(root, "b.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        locations = manager.resolve(query_uri(root), "orders")

        assert [loc.uri for loc in locations] == [path_to_uri(a), path_to_uri(b)]


class TestEnsureLoaded:
    @pytest.mark.asyncio
    async def test_single_load_per_root(self, root: Path, manager: DefinitionsManager) -> None:
        """Opening many documents triggers one load."""
        write(root, "a.sql", "CREATE TABLE a (id int);\n")

        first = manager.ensure_loaded(root, ["*.sql"], "ws")
        second = manager.ensure_loaded(root, ["*.sql"], "ws")

        assert first is second
        assert manager.registry.get(root).state is WorkspaceState.LOADING
        stats = await first
        assert stats.files_indexed == 1
        assert manager.ensure_loaded(root, ["*.sql"]) is first
        assert manager.registry.get(root).state is WorkspaceState.LOADED


class TestResolve:
    """Name resolution against a loaded workspace."""

    @pytest.mark.asyncio
    async def test_default_schema_fallback(self, root: Path, manager: DefinitionsManager) -> None:
        """``public.orders`` finds ``CREATE TABLE orders``."""
        schema = write(root, "schema.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        (location,) = manager.resolve(query_uri(root), "public.orders", "public")

        assert location.uri == path_to_uri(schema)
        assert location.selection.start == Position(0, 13)

    @pytest.mark.asyncio
    async def test_bare_name_finds_other_schema(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        write(root, "schema.sql", "CREATE TABLE sales.orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        assert len(manager.resolve(query_uri(root), "orders")) == 1
        assert manager.resolve(query_uri(root), "archive.orders") == []

    @pytest.mark.asyncio
    async def test_bare_name_under_default_schema(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        """Bare ``orders`` finds ``CREATE TABLE public.orders`` via the default schema."""
        schema = write(root, "schema.sql", "CREATE TABLE public.orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        (location,) = manager.resolve(query_uri(root), "orders", "public")

        assert location.uri == path_to_uri(schema)
        assert location.selection.start == Position(0, 13)

    @pytest.mark.asyncio
    async def test_quoted_dotted_name_is_not_qualified(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        """``"a.b"`` (one name) and ``a.b`` (schema a, table b) stay distinct."""
        write(root, "schema.sql", 'CREATE TABLE "a.b" (id int);\nCREATE TABLE a.b (id int);\n')
        await manager.load_workspace(root, ["*.sql"])
        uri = query_uri(root)

        (quoted,) = manager.resolve(uri, '"a.b"')
        (qualified,) = manager.resolve(uri, "a.b")

        assert quoted.selection.start.line == 0
        assert qualified.selection.start.line == 1

    @pytest.mark.asyncio
    async def test_case_rules(self, root: Path, manager: DefinitionsManager) -> None:
        write(root, "schema.sql", 'CREATE TABLE Orders (id int);\nCREATE TABLE "Users" (id int);\n')
        await manager.load_workspace(root, ["*.sql"])
        uri = query_uri(root)

        assert len(manager.resolve(uri, "ORDERS")) == 1
        assert len(manager.resolve(uri, '"Users"')) == 1
        assert len(manager.resolve(uri, "Users")) == 1
        assert manager.resolve(uri, "users") == []
        assert manager.resolve(uri, '"orders"') != []
        assert manager.resolve(uri, '"Orders"') == []

    @pytest.mark.asyncio
    async def test_qualified_function_single_location(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        write(
            root,
            "fn.sql",
            "CREATE FUNCTION app.total(x int) RETURNS int LANGUAGE sql AS $$ SELECT x $$;\n",
        )
        await manager.load_workspace(root, ["*.sql"])
        uri = query_uri(root)

        assert len(manager.resolve(uri, "app.total")) == 1
        assert len(manager.resolve(uri, "total")) == 1

    @pytest.mark.asyncio
    async def test_no_leak_between_roots(self, tmp_path: Path, manager: DefinitionsManager) -> None:
        first = (tmp_path / "first").resolve()
        second = (tmp_path / "second").resolve()
        write(first, "a.sql", "CREATE TABLE orders (id int);\n")
        write(second, "b.sql", "CREATE TABLE users (id int);\n")
        await manager.load_workspace(first, ["*.sql"])
        await manager.load_workspace(second, ["*.sql"])

        assert manager.resolve(query_uri(second), "orders") == []
        assert len(manager.resolve(query_uri(first), "orders")) == 1

    def test_unloaded_workspace_resolves_nothing(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        manager.registry.ensure(root)
        assert manager.resolve(query_uri(root), "orders") == []

    def test_malformed_token(self, root: Path, manager: DefinitionsManager) -> None:
        assert manager.resolve(query_uri(root), '"unclosed') == []

    @pytest.mark.asyncio
    async def test_resolve_at_cursor(self, root: Path, manager: DefinitionsManager) -> None:
        write(root, "schema.sql", "CREATE TABLE sales.orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])
        text = "SELECT *\nFROM sales.orders o;\n"

        hits = manager.resolve_at(query_uri(root), text, Position(1, 8))
        misses = manager.resolve_at(query_uri(root), text, Position(0, 7))

        assert len(hits) == 1
        assert misses == []


class TestUpdateFile:
    """Incremental updates of a single file."""

    @pytest.mark.asyncio
    async def test_update_replaces_declarations(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        decls = await manager.update_file(
            path_to_uri(path), "CREATE TABLE invoices (id int);\n"
        )

        assert [d.key for d in decls or []] == ["invoices"]
        assert manager.resolve(query_uri(root), "orders") == []

    @pytest.mark.asyncio
    async def test_update_is_idempotent(self, root: Path, manager: DefinitionsManager) -> None:
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])
        uri = path_to_uri(path)

        first = await manager.update_file(uri, "CREATE TABLE orders (id int);\n")
        second = await manager.update_file(uri, "CREATE TABLE orders (id int);\n")

        assert first == second
        assert len(manager.registry.get(root).index) == 1

    @pytest.mark.asyncio
    async def test_parse_failure_keeps_previous(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        result = await manager.update_file(path_to_uri(path), "CREATE TABLE orders (id")

        assert result is None
        assert len(manager.resolve(query_uri(root), "orders")) == 1

    @pytest.mark.asyncio
    async def test_unencodable_text_keeps_previous(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        """A lone surrogate in unsaved editor text is a parse failure, not a crash."""
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        result = await manager.update_file(
            path_to_uri(path), "CREATE TABLE x (id int); -- \ud800\n"
        )

        assert result is None
        assert len(manager.resolve(query_uri(root), "orders")) == 1
        assert manager.resolve(query_uri(root), "x") == []

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(
        self, root: Path, manager: DefinitionsManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Extractor bugs are logged and leave the index untouched."""
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])

        def explode(uri: str, text: str) -> list[object]:
            raise RuntimeError("extractor bug")

        monkeypatch.setattr(DefinitionsManager, "_extract_text", staticmethod(explode))

        result = await manager.update_file(path_to_uri(path), "CREATE TABLE invoices (id int);\n")

        assert result is None
        assert len(manager.resolve(query_uri(root), "orders")) == 1

    @pytest.mark.asyncio
    async def test_reads_disk_when_no_content(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        await manager.load_workspace(root, ["*.sql"])
        path.write_text("CREATE VIEW recent AS SELECT 1;\n")

        decls = await manager.update_file(path_to_uri(path))

        assert [d.key for d in decls or []] == ["recent"]

    @pytest.mark.asyncio
    async def test_unloaded_workspace_ignored(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        manager.registry.ensure(root)

        assert await manager.update_file(path_to_uri(path)) is None
        assert not manager.has_file_definitions(path_to_uri(path))

    @pytest.mark.asyncio
    async def test_unknown_workspace_ignored(self, root: Path, manager: DefinitionsManager) -> None:
        path = write(root, "a.sql", "CREATE TABLE orders (id int);\n")
        assert await manager.update_file(path_to_uri(path)) is None

    @pytest.mark.asyncio
    async def test_concurrent_updates_latest_wins(
        self, root: Path, manager: DefinitionsManager
    ) -> None:
        path = write(root, "a.sql", "")
        await manager.load_workspace(root, ["*.sql"])
        uri = path_to_uri(path)

        await asyncio.gather(
            manager.update_file(uri, "CREATE TABLE first_version (id int);\n"),
            manager.update_file(uri, "CREATE TABLE second_version (id int);\n"),
        )

        assert manager.resolve(query_uri(root), "second_version") != []
        assert manager.resolve(query_uri(root), "first_version") == []


class TestMembership:
    @pytest.mark.asyncio
    async def test_definition_file_tracking(self, root: Path, manager: DefinitionsManager) -> None:
        indexed = write(root, "db/a.sql", "CREATE TABLE a (id int);\n")
        other = write(root, "query.sql", "SELECT 1;\n")
        await manager.load_workspace(root, ["db/*.sql"])

        assert manager.has_file_definitions(path_to_uri(indexed))
        assert not manager.has_file_definitions(path_to_uri(other))
        assert manager.is_definition_target(path_to_uri(root / "db" / "new.sql"), ["db/*.sql"])
        assert not manager.is_definition_target(path_to_uri(other), ["db/*.sql"])


class TestComplete:
    @pytest.mark.asyncio
    async def test_prefix_matching(self, root: Path, manager: DefinitionsManager) -> None:
        write(
            root,
            "schema.sql",
            "CREATE TABLE sales.orders (id int);\nCREATE TABLE order_lines (id int);\n"
            "CREATE TABLE users (id int);\n",
        )
        await manager.load_workspace(root, ["*.sql"])
        uri = query_uri(root)

        assert sorted(d.key for d in manager.complete(uri, "Ord")) == [
            "order_lines",
            "sales.orders",
        ]
        assert [d.key for d in manager.complete(uri, "sales.")] == ["sales.orders"]
        assert len(manager.complete(uri, "")) == 3
