"""Statement splitting and placeholder substitution."""

from __future__ import annotations

import base64
import binascii
import json
from typing import Iterable, Mapping

import sqlglot
from sqlglot.errors import TokenError
from sqlglot.tokens import TokenType

STATEMENT_SEPARATOR = ";"
DEFAULT_DIALECT = "mysql"

_LITERAL_TOKENS = frozenset({TokenType.STRING, TokenType.IDENTIFIER, TokenType.NUMBER})


def split_statements(raw: str, sep: str = STATEMENT_SEPARATOR) -> list[str]:
    """Split a raw batch entry into trimmed, non-empty statements.

    The entry may be plain ``sep``-delimited text, a JSON array of statements, or
    the base64 encoding of either.
    """

    text = raw.strip()
    if not text:
        return []
    text = _maybe_base64(text)
    pieces = _maybe_json_list(text)
    if pieces is None:
        pieces = text.split(sep)
    statements: list[str] = []
    for piece in pieces:
        piece = piece.strip()
        if piece:
            statements.append(piece)
    return statements


def substitute(query: str, context: Mapping[str, str]) -> str:
    """Replace every ``{{key}}`` in ``query`` with its value from ``context``."""

    for key, value in context.items():
        query = query.replace("{{" + key + "}}", value)
    return query


def render(raw: str, context: Mapping[str, str]) -> list[str]:
    """Split ``raw`` and substitute placeholders in each resulting statement."""

    return [substitute(statement, context) for statement in split_statements(raw)]


def render_batch(batch: Iterable[str], context: Mapping[str, str]) -> list[str]:
    """Render every raw entry of a batch, preserving batch order."""

    rendered: list[str] = []
    for raw in batch:
        rendered.extend(render(raw, context))
    return rendered


def statement_kind(query: str, *, dialect: str = DEFAULT_DIALECT) -> str:
    """Return the leading keywords of ``query`` (e.g. ``CREATE USER``) for logging."""

    try:
        tokens = sqlglot.tokenize(query, read=dialect)
    except TokenError:
        return "statement"
    if not tokens or tokens[0].token_type in _LITERAL_TOKENS:
        return "statement"
    words = [tokens[0].text.upper()]
    if len(tokens) > 1 and tokens[1].token_type not in _LITERAL_TOKENS and tokens[1].text.isalpha():
        words.append(tokens[1].text.upper())
    return " ".join(words)


def _maybe_base64(text: str) -> str:
    try:
        decoded = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return text
    try:
        candidate = decoded.decode("utf-8")
    except UnicodeDecodeError:
        return text
    # Short keywords such as ROLLBACK happen to be valid base64.
    if not candidate.strip() or not all(ch.isprintable() or ch.isspace() for ch in candidate):
        return text
    return candidate


def _maybe_json_list(text: str) -> list[str] | None:
    if not text.startswith("["):
        return None
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        return None
    return value


__all__ = [
    "render",
    "render_batch",
    "split_statements",
    "statement_kind",
    "substitute",
]
