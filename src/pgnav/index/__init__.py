"""Workspace definitions index: extraction, storage, and name resolution."""

from pgnav.index.candidates import NameForm, generate_candidates, token_at
from pgnav.index.manager import (
    DefinitionsManager,
    LoadStats,
    Workspace,
    WorkspaceRegistry,
    WorkspaceState,
)
from pgnav.index.models import (
    Declaration,
    DeclarationKind,
    Location,
    Position,
    QualifiedName,
    Span,
)
from pgnav.index.store import WorkspaceDefinitionsIndex

__all__ = [
    # Candidates
    "NameForm",
    "generate_candidates",
    "token_at",
    # Manager
    "DefinitionsManager",
    "LoadStats",
    "Workspace",
    "WorkspaceRegistry",
    "WorkspaceState",
    # Models
    "Declaration",
    "DeclarationKind",
    "Location",
    "Position",
    "QualifiedName",
    "Span",
    # Store
    "WorkspaceDefinitionsIndex",
]
