"""Definition file discovery.

Patterns are globs relative to the workspace root (``**`` recurses). A
pattern that cannot be expanded is reported per pattern and never stops
the others from being expanded.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from pgnav.core.errors import DefinitionError


@dataclass
class DiscoveryResult:
    """Files matched by a set of patterns, plus per-pattern failures."""

    files: list[Path] = field(default_factory=list)
    errors: list[DefinitionError] = field(default_factory=list)
    empty_patterns: list[str] = field(default_factory=list)


def expand_patterns(root: Path, patterns: list[str]) -> DiscoveryResult:
    """Expand glob patterns under ``root`` into a sorted, de-duplicated file list."""
    result = DiscoveryResult()
    seen: set[Path] = set()
    for pattern in patterns:
        if not pattern or not pattern.strip():
            result.errors.append(DefinitionError.invalid_pattern(pattern, "empty pattern"))
            continue
        if Path(pattern).is_absolute():
            result.errors.append(
                DefinitionError.invalid_pattern(pattern, "pattern must be relative to the root")
            )
            continue
        try:
            matched = sorted(p for p in root.glob(pattern) if p.is_file())
        except (ValueError, NotImplementedError, OSError) as e:
            result.errors.append(DefinitionError.invalid_pattern(pattern, str(e)))
            continue
        if not matched:
            result.empty_patterns.append(pattern)
        for path in matched:
            resolved = path.resolve()
            if resolved not in seen:
                seen.add(resolved)
                result.files.append(resolved)
    result.files.sort()
    return result


def matches_glob(rel_path: str, pattern: str) -> bool:
    """Check if a path matches a glob pattern, with ** support."""
    if "**" not in pattern:
        # Same semantics as Path.glob: each * stays within one path segment.
        return rel_path.count("/") == pattern.count("/") and PurePosixPath(rel_path).match(pattern)
    if fnmatch.fnmatch(rel_path, pattern):
        return True
    # ** also matches zero directories
    if pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:]):
        return True
    return "/**/" in pattern and fnmatch.fnmatch(rel_path, pattern.replace("/**/", "/"))


def matches_any(root: Path, path: Path, patterns: list[str]) -> bool:
    """Whether ``path`` (inside ``root``) is selected by any of ``patterns``."""
    try:
        rel = path.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return False
    return any(pattern and matches_glob(rel, pattern) for pattern in patterns)
