"""Workspace definitions index.

In-memory store of the declarations extracted from every definition file
of one workspace root. Lookups are served from name -> file -> declarations
mappings, so their cost follows the number of matches rather than the size
of the index.

Invariants:
- A file's declarations are only ever installed or removed as a whole, under
  the lock. Readers never observe two generations of one file at once.
- Matches are returned in file-processing order (a re-indexed file moves to
  the end), then source order within a file. Ties are not resolved here.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from pgnav.index.models import Declaration

_Bucket = dict[str, list[Declaration]]  # uri -> declarations of that file


class WorkspaceDefinitionsIndex:
    """Name-keyed declaration store for one workspace root."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._files: dict[str, tuple[Declaration, ...]] = {}
        self._by_key: dict[str, _Bucket] = {}
        self._by_name: dict[str, _Bucket] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def replace(self, uri: str, declarations: Iterable[Declaration]) -> None:
        """Discard ``uri``'s previous declarations and install ``declarations``."""
        new = tuple(declarations)
        with self._lock:
            self._drop(uri)
            self._files[uri] = new
            for decl in new:
                self._by_key.setdefault(decl.key, {}).setdefault(uri, []).append(decl)
                self._by_name.setdefault(decl.qualified_name.name, {}).setdefault(
                    uri, []
                ).append(decl)

    def remove(self, uri: str) -> bool:
        """Forget a file entirely. Returns False if it was not indexed."""
        with self._lock:
            if uri not in self._files:
                return False
            self._drop(uri)
            return True

    def _drop(self, uri: str) -> None:
        old = self._files.pop(uri, None)
        if not old:
            return
        for decl in old:
            _discard(self._by_key, decl.key, uri)
            _discard(self._by_name, decl.qualified_name.name, uri)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def lookup(self, key: str) -> list[Declaration]:
        """Declarations whose exact key (``schema.name`` or ``name``) equals ``key``."""
        with self._lock:
            return _flatten(self._by_key.get(key))

    def lookup_any_schema(self, name: str) -> list[Declaration]:
        """Declarations named ``name`` in any schema, or in none."""
        with self._lock:
            return _flatten(self._by_name.get(name))

    def has_file(self, uri: str) -> bool:
        with self._lock:
            return uri in self._files

    def has_any_declarations(self) -> bool:
        with self._lock:
            return bool(self._by_key)

    def file_declarations(self, uri: str) -> list[Declaration]:
        with self._lock:
            return list(self._files.get(uri, ()))

    def files(self) -> list[str]:
        with self._lock:
            return list(self._files)

    def declarations(self) -> list[Declaration]:
        """Every declaration, in file-processing order."""
        with self._lock:
            return [decl for decls in self._files.values() for decl in decls]

    def names(self) -> list[str]:
        """Sorted distinct keys, for completion."""
        with self._lock:
            return sorted(self._by_key)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(decls) for decls in self._files.values())


def _discard(mapping: dict[str, _Bucket], key: str, uri: str) -> None:
    bucket = mapping.get(key)
    if bucket is None:
        return
    bucket.pop(uri, None)
    if not bucket:
        del mapping[key]


def _flatten(bucket: _Bucket | None) -> list[Declaration]:
    if not bucket:
        return []
    return [decl for decls in bucket.values() for decl in decls]
