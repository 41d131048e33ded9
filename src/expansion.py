"""Alias and variable expansion over token streams.

Both passes are pure: they take tokens and return new tokens, leaving the
input list untouched.
"""
from __future__ import annotations

from enum import Enum
from typing import AbstractSet, List, Mapping

from lexer import BOUNDARY_KINDS, TEXT_KINDS, LexicalError, Token, TokenKind, tokenize


class ExpansionError(LexicalError):
    """Raised when a variable reference is malformed."""


class Position(Enum):
    """Where the alias scanner currently stands inside a simple command."""
    COMMAND = "command"
    ARGUMENT = "argument"


def next_position(position: Position, token: Token) -> Position:
    if token.kind in BOUNDARY_KINDS:
        return Position.COMMAND
    if token.kind in TEXT_KINDS:
        return Position.ARGUMENT
    return position


def expand_aliases(
    tokens: List[Token],
    aliases: Mapping[str, str],
    visited: AbstractSet[str] = frozenset(),
) -> List[Token]:
    """Replace aliases in command position by their re-tokenized values.

    Each alias value is expanded recursively with its own name added to
    `visited`; a name already in `visited` stays as it is, so alias chains
    that loop back on themselves still terminate.
    """
    if not tokens or not aliases:
        return tokens

    out: List[Token] = []
    position = Position.COMMAND
    for tok in tokens:
        if (
            position is Position.COMMAND
            and tok.kind is TokenKind.WORD
            and tok.value in aliases
            and tok.value not in visited
        ):
            replacement = tokenize(aliases[tok.value])
            out.extend(expand_aliases(replacement, aliases, visited | {tok.value}))
            position = Position.ARGUMENT
            continue
        out.append(tok)
        position = next_position(position, tok)
    return out


def _is_name_char(ch: str) -> bool:
    return ch == '_' or ('a' <= ch <= 'z') or ('A' <= ch <= 'Z') or ('0' <= ch <= '9')


def expand_text(text: str, env: Mapping[str, str]) -> str:
    """Expand $NAME and ${NAME} in a single string.

    Rules:
    - ${NAME} must be closed, otherwise ExpansionError
    - $NAME takes the longest run of [A-Za-z0-9_]
    - unset names expand to the empty string
    - $? is the special parameter `?`
    - a '$' followed by neither '{' nor a name character stays literal
    """
    out: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch != '$':
            out.append(ch)
            i += 1
            continue
        if i + 1 < n and text[i + 1] == '{':
            close = text.find('}', i + 2)
            if close == -1:
                raise ExpansionError("unterminated variable expansion")
            out.append(env.get(text[i + 2:close], ''))
            i = close + 1
            continue
        if i + 1 < n and text[i + 1] == '?':
            out.append(env.get('?', ''))
            i += 2
            continue
        j = i + 1
        while j < n and _is_name_char(text[j]):
            j += 1
        if j == i + 1:
            out.append('$')
            i += 1
            continue
        out.append(env.get(text[i + 1:j], ''))
        i = j
    return ''.join(out)


def expand_variables(tokens: List[Token], env: Mapping[str, str]) -> List[Token]:
    out: List[Token] = []
    for tok in tokens:
        if tok.kind in (TokenKind.WORD, TokenKind.DSTRING) and '$' in tok.value:
            out.append(Token(tok.kind, expand_text(tok.value, env)))
        else:
            out.append(tok)
    return out
