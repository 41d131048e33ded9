"""Command tree for tronsh and the parser that builds it.

Precedence, tightest first:
    simple command  ->  pipeline (|)  ->  logical chain (&&, ||)  ->  list (;)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from lexer import TEXT_KINDS, ShellError, Token, TokenKind


class ShellSyntaxError(ShellError):
    """Raised when tokens do not form a valid command list."""


@dataclass(frozen=True)
class Redirect:
    kind: str  # 'redirect' (>) or 'append' (>>)
    file: str

    @property
    def is_input(self) -> bool:
        # '> <path' is the input redirection convention
        return self.kind == 'redirect' and self.file.startswith('<')

    @property
    def input_path(self) -> str:
        return self.file[1:].strip()


@dataclass(frozen=True)
class SimpleCommand:
    command: str
    args: List[str] = field(default_factory=list)
    redirects: List[Redirect] = field(default_factory=list)


@dataclass(frozen=True)
class Pipeline:
    stages: List[SimpleCommand]


@dataclass(frozen=True)
class LogicalSequence:
    left: "ParsedCommand"
    operator: str  # 'and' or 'or'
    right: "ParsedCommand"


ParsedCommand = Union[SimpleCommand, Pipeline, LogicalSequence]


def _describe(tok: Optional[Token]) -> str:
    return tok.kind.value if tok is not None else "end of input"


class _Parser:
    def __init__(self, tokens: List[Token]) -> None:
        self.tokens = tokens
        self.pos = 0

    def peek(self) -> Optional[Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def consume(self) -> Token:
        tok = self.tokens[self.pos]
        self.pos += 1
        return tok

    def at(self, *kinds: TokenKind) -> bool:
        tok = self.peek()
        return tok is not None and tok.kind in kinds

    def parse_simple(self) -> SimpleCommand:
        tok = self.peek()
        if tok is None or tok.kind not in TEXT_KINDS:
            raise ShellSyntaxError(f"expected command name but got {_describe(tok)}")
        command = self.consume().value
        args: List[str] = []
        redirects: List[Redirect] = []
        while True:
            tok = self.peek()
            if tok is None:
                break
            if tok.kind in TEXT_KINDS:
                args.append(self.consume().value)
            elif tok.kind in (TokenKind.REDIRECT, TokenKind.APPEND):
                self.consume()
                target = self.peek()
                if target is None or target.kind not in TEXT_KINDS:
                    raise ShellSyntaxError("expected filename for redirection")
                redirects.append(Redirect(tok.kind.value, self.consume().value))
            else:
                break
        return SimpleCommand(command, args, redirects)

    def parse_pipeline(self) -> ParsedCommand:
        stages = [self.parse_simple()]
        while self.at(TokenKind.PIPE):
            self.consume()
            stages.append(self.parse_simple())
        if len(stages) == 1:
            return stages[0]
        return Pipeline(stages)

    def parse_logical(self) -> ParsedCommand:
        node = self.parse_pipeline()
        while self.at(TokenKind.AND, TokenKind.OR):
            op = self.consume().kind.value
            node = LogicalSequence(node, op, self.parse_pipeline())
        return node

    def parse_list(self) -> List[ParsedCommand]:
        commands: List[ParsedCommand] = []
        while self.peek() is not None:
            commands.append(self.parse_logical())
            if self.at(TokenKind.SEMICOLON):
                self.consume()
            elif self.peek() is not None:
                raise ShellSyntaxError(f"unexpected token: {_describe(self.peek())}")
        return commands


def build_ast(tokens: List[Token]) -> List[ParsedCommand]:
    """Parse expanded tokens into one tree per `;`-separated segment."""
    if not tokens:
        return []
    return _Parser(tokens).parse_list()


# --- Formatting (debug / test aid) ---

def _format(node: ParsedCommand, depth: int, lines: List[str]) -> None:
    pad = "  " * depth
    if isinstance(node, SimpleCommand):
        lines.append(pad + "CMD  " + ' '.join([node.command, *node.args]))
        for r in node.redirects:
            op = '>>' if r.kind == 'append' else '>'
            lines.append(pad + f"  REDIR {op} {r.file}")
    elif isinstance(node, Pipeline):
        lines.append(pad + "PIPE")
        for stage in node.stages:
            _format(stage, depth + 1, lines)
    else:
        lines.append(pad + ("AND" if node.operator == 'and' else "OR"))
        _format(node.left, depth + 1, lines)
        _format(node.right, depth + 1, lines)


def format_tree(nodes: Iterable[ParsedCommand]) -> str:
    lines: List[str] = []
    for node in nodes:
        _format(node, 0, lines)
    return "\n".join(lines) if lines else "<empty>"
