"""Identifier candidate generation for cursor tokens.

Turns the raw text under the cursor into the ordered list of name forms
to try against a definitions index, following PostgreSQL identifier rules:

- ``"Users"`` is quoted: case is kept and only the exact spelling is tried.
- ``Users`` is unquoted: tried folded to lower case, then as typed.
- ``sales.orders`` is split on the dot; each part follows the rules above.
- A bare ``orders`` is tried under the default schema, then unqualified,
  then in any schema.

Generation never fails. Anything malformed yields an empty list, which
callers treat as "no resolution".
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pgnav.index.models import render_key

_QUOTE = '"'

# One identifier part (quoted or not), optionally dotted into more parts.
_TOKEN_RE = re.compile(r'(?:"(?:[^"]|"")*"|[\w$]+)(?:\.(?:"(?:[^"]|"")*"|[\w$]+))*')


def token_at(text: str, line: int, character: int) -> str | None:
    """Return the identifier token touching ``(line, character)``, if any."""
    lines = text.splitlines()
    if not 0 <= line < len(lines):
        return None
    current = lines[line]
    character = code_point_index(current, character)
    for match in _TOKEN_RE.finditer(current):
        if match.start() <= character <= match.end():
            return match.group(0)
        if match.start() > character:
            break
    return None


def code_point_index(line: str, utf16_column: int) -> int:
    """Map an LSP column (UTF-16 code units) onto an index into ``line``."""
    units = 0
    for index, ch in enumerate(line):
        if units >= utf16_column:
            return index
        units += 2 if ord(ch) > 0xFFFF else 1
    return len(line)


@dataclass(frozen=True, slots=True)
class NameForm:
    """One normalized spelling of a cursor token.

    ``any_schema`` asks for every declaration with this bare name, whatever
    schema it was declared in (or none).
    """

    name: str
    schema: str | None = None
    any_schema: bool = False

    @property
    def key(self) -> str:
        return render_key(self.name, self.schema)


@dataclass(frozen=True, slots=True)
class _Part:
    text: str
    quoted: bool

    def variants(self) -> list[str]:
        if self.quoted:
            return [self.text]
        # PostgreSQL folds unquoted identifiers to lower case.
        return _unique([self.text.lower(), self.text])


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def split_identifier(token: str) -> list[_Part] | None:
    """Split a dotted identifier into parts, honoring double quotes.

    Returns None for unbalanced quotes, empty parts, or stray characters
    around a quoted part.
    """
    parts: list[_Part] = []
    buf: list[str] = []
    quoted = False
    in_quote = False
    closed = False
    i = 0
    n = len(token)
    while i < n:
        ch = token[i]
        if in_quote:
            if ch == _QUOTE:
                if i + 1 < n and token[i + 1] == _QUOTE:
                    buf.append(_QUOTE)
                    i += 2
                    continue
                in_quote = False
                closed = True
            else:
                buf.append(ch)
        elif ch == _QUOTE:
            if buf or quoted:
                return None
            in_quote = True
            quoted = True
        elif ch == ".":
            if not buf:
                return None
            parts.append(_Part("".join(buf), quoted))
            buf, quoted, closed = [], False, False
        else:
            if closed or ch.isspace():
                return None
            buf.append(ch)
        i += 1

    if in_quote or not buf:
        return None
    parts.append(_Part("".join(buf), quoted))
    return parts


def generate_candidates(token: str, default_schema: str | None = None) -> list[NameForm]:
    """Return the ordered, de-duplicated name forms to try for ``token``."""
    parts = split_identifier(token.strip()) if token else None
    if not parts:
        return []

    forms: list[NameForm] = []
    if len(parts) == 1:
        for name in parts[0].variants():
            if default_schema:
                forms.append(NameForm(name, default_schema))
            forms.append(NameForm(name))
            forms.append(NameForm(name, any_schema=True))
    else:
        # A leading catalog qualifier (db.schema.name) is ignored.
        schema_part, name_part = parts[-2], parts[-1]
        for schema in schema_part.variants():
            for name in name_part.variants():
                forms.append(NameForm(name, schema))
                if default_schema and schema == default_schema:
                    forms.append(NameForm(name))

    return list(dict.fromkeys(forms))
