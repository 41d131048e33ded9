"""Tokenizer for tronsh command lines.

Turns a raw line into a flat list of typed tokens. Whitespace separates
tokens; quoting decides whether a token is a plain word, a double-quoted
string or a single-quoted string.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List


class ShellError(Exception):
    """Base class for every error raised by the tronsh front end."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class LexicalError(ShellError):
    """Raised when a line cannot be split into tokens."""


class TokenKind(Enum):
    WORD = "word"
    DSTRING = "dstring"
    SSTRING = "sstring"
    PIPE = "pipe"
    AND = "and"
    OR = "or"
    REDIRECT = "redirect"
    APPEND = "append"
    SEMICOLON = "semicolon"


# Token kinds that can carry a command name, an argument or a filename
TEXT_KINDS = frozenset({TokenKind.WORD, TokenKind.DSTRING, TokenKind.SSTRING})

# Operators that end one command and start the next
BOUNDARY_KINDS = frozenset({TokenKind.PIPE, TokenKind.AND, TokenKind.OR, TokenKind.SEMICOLON})

_WORD_STOP = frozenset("|&>;")


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str

    def __repr__(self) -> str:
        return f"Token({self.kind.value}, {self.value!r})"


def _scan_quoted(line: str, i: int, quote: str, *, keep_escapes: bool) -> tuple[str, int]:
    """Scan a quoted span starting just after the opening quote.

    Returns the collected text and the index just past the closing quote.
    Inside double quotes only \\" and \\\\ are escapes; single quotes are
    copied verbatim. With keep_escapes the backslash itself is kept, which
    is what a quote embedded in a word needs.
    """
    buf: List[str] = []
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == quote:
            return ''.join(buf), i + 1
        if quote == '"' and ch == '\\' and i + 1 < n and line[i + 1] in ('"', '\\'):
            if keep_escapes:
                buf.append(ch)
            buf.append(line[i + 1])
            i += 2
            continue
        buf.append(ch)
        i += 1
    raise LexicalError("unterminated string")


def tokenize(line: str) -> List[Token]:
    tokens: List[Token] = []
    i = 0
    n = len(line)

    while i < n:
        ch = line[i]
        if ch.isspace():
            i += 1
            continue

        # Two-char operators are checked before their one-char prefixes
        if ch == '|':
            if i + 1 < n and line[i + 1] == '|':
                tokens.append(Token(TokenKind.OR, '||')); i += 2; continue
            tokens.append(Token(TokenKind.PIPE, '|')); i += 1; continue
        if ch == '&':
            if i + 1 < n and line[i + 1] == '&':
                tokens.append(Token(TokenKind.AND, '&&')); i += 2; continue
            raise LexicalError("unsupported operator '&' (background jobs are not supported)")
        if ch == '>':
            if i + 1 < n and line[i + 1] == '>':
                tokens.append(Token(TokenKind.APPEND, '>>')); i += 2; continue
            tokens.append(Token(TokenKind.REDIRECT, '>')); i += 1; continue
        if ch == ';':
            tokens.append(Token(TokenKind.SEMICOLON, ';')); i += 1; continue

        if ch in ('"', "'"):
            value, i = _scan_quoted(line, i + 1, ch, keep_escapes=False)
            kind = TokenKind.DSTRING if ch == '"' else TokenKind.SSTRING
            tokens.append(Token(kind, value))
            continue

        # Plain word; an embedded quoted span keeps its quote characters
        buf: List[str] = []
        while i < n:
            ch = line[i]
            if ch.isspace() or ch in _WORD_STOP:
                break
            if ch in ('"', "'"):
                inner, i = _scan_quoted(line, i + 1, ch, keep_escapes=True)
                buf.append(ch)
                buf.append(inner)
                buf.append(ch)
                continue
            buf.append(ch)
            i += 1
        tokens.append(Token(TokenKind.WORD, ''.join(buf)))

    return tokens


def format_tokens(tokens: List[Token]) -> str:
    """Render tokens as `kind:value` pairs (debug / test aid)."""
    return ' '.join(f"{t.kind.value}:{t.value}" for t in tokens) if tokens else "<empty>"
