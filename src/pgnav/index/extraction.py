"""Declaration extraction from parsed SQL statements.

Raw statements from the parser are narrowed at the boundary into one of
three small variants, and everything else is dropped:

- RelationStatement: CREATE TABLE / VIEW / TYPE ... AS (composite) /
  TABLE AS / MATERIALIZED VIEW, carrying an optional schema
- RoutineStatement: CREATE FUNCTION / PROCEDURE, carrying the name list
- BareNameStatement: CREATE TRIGGER / INDEX, carrying only the bare name
  (the tree for these does not reliably expose a schema)

Extraction never raises. A statement of an unknown kind, or one missing
the fields a variant needs, is simply not a declaration.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from pgnav.index.models import (
    Declaration,
    DeclarationKind,
    Location,
    Position,
    QualifiedName,
    Span,
)
from pgnav.index.parser import RawStatement

logger = structlog.get_logger()

_DETAIL_MAX_CHARS = 200


# =============================================================================
# Statement variants
# =============================================================================


@dataclass(frozen=True, slots=True)
class RelationStatement:
    kind: DeclarationKind
    name: str
    schema: str | None = None
    name_offset: int | None = None


@dataclass(frozen=True, slots=True)
class RoutineStatement:
    kind: DeclarationKind
    names: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class BareNameStatement:
    kind: DeclarationKind
    name: str


StatementVariant = RelationStatement | RoutineStatement | BareNameStatement


def _get(node: Any, *path: str) -> Any:
    """Walk nested mappings; None as soon as a step is missing."""
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _string_node(node: Any) -> str | None:
    """Read a ``String`` list item (``sval`` in libpg_query 15+, ``str`` before)."""
    string = _get(node, "String")
    return _str(_get(string, "sval")) or _str(_get(string, "str"))


def _relation(range_var: Any, kind: DeclarationKind) -> RelationStatement | None:
    name = _str(_get(range_var, "relname"))
    if name is None:
        return None
    location = _get(range_var, "location")
    return RelationStatement(
        kind=kind,
        name=name,
        schema=_str(_get(range_var, "schemaname")),
        name_offset=location if isinstance(location, int) and location >= 0 else None,
    )


def _narrow_create_table_as(node: Any) -> RelationStatement | None:
    # "relkind" before PostgreSQL 14
    objtype = _get(node, "objtype") or _get(node, "relkind")
    kind = DeclarationKind.VIEW if objtype == "OBJECT_MATVIEW" else DeclarationKind.TABLE
    return _relation(_get(node, "into", "rel"), kind)


def _narrow_function(node: Any) -> RoutineStatement | None:
    funcname = _get(node, "funcname")
    if not isinstance(funcname, list):
        return None
    names = tuple(name for name in (_string_node(item) for item in funcname) if name)
    if not names:
        return None
    kind = DeclarationKind.PROCEDURE if _get(node, "is_procedure") else DeclarationKind.FUNCTION
    return RoutineStatement(kind=kind, names=names)


def _narrow_bare(node: Any, field: str, kind: DeclarationKind) -> BareNameStatement | None:
    name = _str(_get(node, field))
    return BareNameStatement(kind=kind, name=name) if name else None


_NARROWERS: dict[str, Callable[[Any], StatementVariant | None]] = {
    "CreateStmt": lambda n: _relation(_get(n, "relation"), DeclarationKind.TABLE),
    "ViewStmt": lambda n: _relation(_get(n, "view"), DeclarationKind.VIEW),
    "CompositeTypeStmt": lambda n: _relation(_get(n, "typevar"), DeclarationKind.COMPOSITE_TYPE),
    "CreateTableAsStmt": _narrow_create_table_as,
    "CreateFunctionStmt": _narrow_function,
    "CreateTrigStmt": lambda n: _narrow_bare(n, "trigname", DeclarationKind.TRIGGER),
    "IndexStmt": lambda n: _narrow_bare(n, "idxname", DeclarationKind.INDEX),
}


def narrow_statement(raw: RawStatement) -> StatementVariant | None:
    """Narrow one raw parser statement to a recognized variant, or None."""
    stmt = _get(raw, "stmt")
    if not isinstance(stmt, dict) or len(stmt) != 1:
        return None
    ((node_type, node),) = stmt.items()
    narrower = _NARROWERS.get(node_type)
    if narrower is None:
        return None
    return narrower(node)


# =============================================================================
# Source positions
# =============================================================================


class SourceMap:
    """Maps parser byte offsets onto LSP positions (UTF-16 columns)."""

    def __init__(self, text: str) -> None:
        self._data = text.encode("utf-8")
        self._line_starts = [0]
        for i, byte in enumerate(self._data):
            if byte == 0x0A:
                self._line_starts.append(i + 1)

    def __len__(self) -> int:
        return len(self._data)

    def position(self, offset: int) -> Position:
        offset = max(0, min(offset, len(self._data)))
        line = bisect_right(self._line_starts, offset) - 1
        prefix = self._data[self._line_starts[line] : offset].decode("utf-8", errors="ignore")
        return Position(line=line, character=len(prefix.encode("utf-16-le")) // 2)

    def statement_bounds(self, raw: RawStatement) -> tuple[int, int]:
        """Byte range of a statement with surrounding whitespace trimmed."""
        start = raw.get("stmt_location")
        start = start if isinstance(start, int) and start >= 0 else 0
        length = raw.get("stmt_len")
        end = start + length if isinstance(length, int) and length > 0 else len(self._data)
        end = min(end, len(self._data))
        while start < end and self._data[start : start + 1].isspace():
            start += 1
        while end > start and self._data[end - 1 : end].isspace():
            end -= 1
        return start, end

    def text(self, start: int, end: int) -> str:
        return self._data[start:end].decode("utf-8", errors="replace")


def _detail(source: SourceMap, start: int, end: int) -> str:
    for line in source.text(start, end).splitlines():
        line = line.strip()
        if line:
            return line[:_DETAIL_MAX_CHARS]
    return ""


# =============================================================================
# Extraction
# =============================================================================


def _names_for(variant: StatementVariant) -> list[QualifiedName]:
    if isinstance(variant, RelationStatement):
        return [QualifiedName(variant.name, variant.schema)]
    if isinstance(variant, RoutineStatement):
        name = variant.names[-1]
        if len(variant.names) == 1:
            return [QualifiedName(name)]
        # Indexed both qualified and bare so the routine resolves either way.
        return [QualifiedName(name, variant.names[-2]), QualifiedName(name)]
    return [QualifiedName(variant.name)]


def extract_declarations(
    statements: list[RawStatement],
    uri: str,
    text: str,
) -> list[Declaration]:
    """Extract declarations from a file's parsed statements, in source order."""
    source = SourceMap(text)
    declarations: list[Declaration] = []
    for raw in statements:
        variant = narrow_statement(raw)
        if variant is None:
            continue

        start, end = source.statement_bounds(raw)
        span = Span(source.position(start), source.position(end))
        name_at = start
        if isinstance(variant, RelationStatement) and variant.name_offset is not None:
            name_at = variant.name_offset
        selection = Span.empty(source.position(name_at))
        location = Location(uri=uri, span=span, selection=selection)
        detail = _detail(source, start, end)

        for qualified_name in _names_for(variant):
            declarations.append(
                Declaration(
                    kind=variant.kind,
                    qualified_name=qualified_name,
                    location=location,
                    detail=detail,
                )
            )

    logger.debug("declarations_extracted", uri=uri, count=len(declarations))
    return declarations
