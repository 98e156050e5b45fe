"""Boundary to the external PostgreSQL parser.

pglast wraps libpg_query, the server's own grammar. Its JSON output is
the raw statement tree: a dynamically shaped, partially populated mapping
that extraction reads through presence checks only.

Each raw statement looks like::

    {"stmt": {"CreateStmt": {...}}, "stmt_location": 42, "stmt_len": 120}

``stmt_location`` is omitted when it is 0 and ``stmt_len`` is omitted (or 0)
when the statement runs to the end of the text. Both are UTF-8 byte offsets.
"""

from __future__ import annotations

import json
from typing import Any

from pglast.parser import ParseError, parse_sql_json

from pgnav.core.errors import DefinitionError

RawStatement = dict[str, Any]


def parse_statements(text: str, uri: str = "<memory>") -> list[RawStatement]:
    """Parse SQL text into the parser's raw statement list.

    Raises:
        DefinitionError: The text is not valid SQL.
    """
    try:
        tree = json.loads(parse_sql_json(text))
    except (ParseError, ValueError) as e:
        # UnicodeEncodeError (a ValueError) for text holding lone surrogates
        raise DefinitionError.parse_failed(uri, str(e)) from e
    stmts = tree.get("stmts") if isinstance(tree, dict) else None
    if not isinstance(stmts, list):
        return []
    return [stmt for stmt in stmts if isinstance(stmt, dict)]
