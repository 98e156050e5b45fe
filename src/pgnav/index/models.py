"""Value types shared by the definitions index.

All of these are immutable: a Declaration produced by extraction is never
edited afterwards. Re-indexing a file replaces its declarations wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


def quote_part(part: str) -> str:
    """Double-quote an identifier part that would otherwise read as two parts."""
    if "." in part or '"' in part:
        return '"' + part.replace('"', '""') + '"'
    return part


def render_key(name: str, schema: str | None = None) -> str:
    if schema is None:
        return quote_part(name)
    return f"{quote_part(schema)}.{quote_part(name)}"


class DeclarationKind(str, Enum):
    """Kinds of SQL objects whose declarations are indexed."""

    TABLE = "table"
    VIEW = "view"
    COMPOSITE_TYPE = "composite_type"
    FUNCTION = "function"
    PROCEDURE = "procedure"
    TRIGGER = "trigger"
    INDEX = "index"


@dataclass(frozen=True, slots=True)
class QualifiedName:
    """Optionally schema-qualified object name.

    ``schema`` is None for declarations written without a schema; those are
    matched against the default schema at lookup time, never at index time.
    """

    name: str
    schema: str | None = None

    @property
    def key(self) -> str:
        """Exact index key: ``schema.name`` or bare ``name``."""
        return render_key(self.name, self.schema)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True, slots=True)
class Position:
    """Zero-based line/character position."""

    line: int
    character: int


@dataclass(frozen=True, slots=True)
class Span:
    start: Position
    end: Position

    @classmethod
    def empty(cls, at: Position | None = None) -> Span:
        at = at or Position(0, 0)
        return cls(start=at, end=at)


@dataclass(frozen=True, slots=True)
class Location:
    """Where a declaration lives.

    ``span`` covers the declaring statement; ``selection`` is a best-effort,
    zero-width marker at the object name (the parser does not always report
    name-token offsets, in which case it sits at the statement start).
    """

    uri: str
    span: Span
    selection: Span


@dataclass(frozen=True, slots=True)
class Declaration:
    """One named, locatable object extracted from source."""

    kind: DeclarationKind
    qualified_name: QualifiedName
    location: Location
    detail: str = ""

    @property
    def key(self) -> str:
        return self.qualified_name.key

    @property
    def uri(self) -> str:
        return self.location.uri
