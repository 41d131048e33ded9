"""Execution context, results and the storage contract shared by builtins."""
from __future__ import annotations

import asyncio
import inspect
import posixpath
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Dict, List, Optional, Protocol, TypeVar, Union, runtime_checkable

T = TypeVar("T")
MaybeAwaitable = Union[T, Awaitable[T]]


@runtime_checkable
class Storage(Protocol):
    """What the executor needs from a file store. Failures are exceptions.

    Methods may return their value directly or an awaitable of it; callers
    go through `settle`.
    """

    def read(self, path: str) -> MaybeAwaitable[str]: ...

    def write(self, path: str, content: str) -> MaybeAwaitable[None]: ...

    def append(self, path: str, content: str) -> MaybeAwaitable[None]: ...

    def exists(self, path: str) -> MaybeAwaitable[bool]: ...


async def settle(value: MaybeAwaitable[T]) -> T:
    """Await `value` when a store or builtin handed back an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value  # type: ignore[return-value]


@dataclass
class PendingMutations:
    """State changes a builtin asks the owning session to apply.

    The executor only carries these back up the tree; the session applies
    them once the whole tree has finished.
    """
    exports: Dict[str, str] = field(default_factory=dict)
    unsets: List[str] = field(default_factory=list)
    aliases: Dict[str, str] = field(default_factory=dict)
    unaliases: List[str] = field(default_factory=list)
    clear_aliases: bool = False
    chdir: Optional[str] = None
    source_lines: List[str] = field(default_factory=list)
    exit_code: Optional[int] = None

    def __bool__(self) -> bool:
        return bool(
            self.exports or self.unsets or self.aliases or self.unaliases
            or self.clear_aliases or self.chdir is not None
            or self.source_lines or self.exit_code is not None
        )

    def merge(self, other: "PendingMutations") -> "PendingMutations":
        """Return a new value with `other` applied after this one."""
        merged = PendingMutations(
            exports=dict(self.exports),
            unsets=list(self.unsets),
            aliases=dict(self.aliases),
            unaliases=list(self.unaliases),
            clear_aliases=self.clear_aliases,
            chdir=self.chdir,
            source_lines=list(self.source_lines),
            exit_code=self.exit_code,
        )
        for key, value in other.exports.items():
            merged.exports[key] = value
            if key in merged.unsets:
                merged.unsets.remove(key)
        for key in other.unsets:
            merged.exports.pop(key, None)
            if key not in merged.unsets:
                merged.unsets.append(key)
        if other.clear_aliases:
            merged.clear_aliases = True
            merged.aliases.clear()
            merged.unaliases.clear()
        for name in other.unaliases:
            merged.aliases.pop(name, None)
            if name not in merged.unaliases:
                merged.unaliases.append(name)
        for name, value in other.aliases.items():
            merged.aliases[name] = value
            if name in merged.unaliases:
                merged.unaliases.remove(name)
        if other.chdir is not None:
            merged.chdir = other.chdir
        merged.source_lines.extend(other.source_lines)
        if other.exit_code is not None:
            merged.exit_code = other.exit_code
        return merged


@dataclass
class CommandResult:
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0
    mutations: PendingMutations = field(default_factory=PendingMutations)

    @classmethod
    def failure(cls, message: str, exit_code: int = 1) -> "CommandResult":
        return cls(stdout="", stderr=message, exit_code=exit_code)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class ExecutionContext:
    stdin: str = ""
    env: Dict[str, str] = field(default_factory=dict)
    vfs: Optional[Storage] = None
    terminal: Any = None
    aliases: Optional[Dict[str, str]] = None
    history: Optional[List[str]] = None
    abort: Optional[asyncio.Event] = None

    def with_stdin(self, stdin: str) -> "ExecutionContext":
        return replace(self, stdin=stdin)

    def resolve(self, path: str) -> str:
        """Absolute, normalized form of `path` relative to $PWD."""
        base = self.env.get("PWD") or "/"
        return posixpath.normpath(posixpath.join(base, path))

    @property
    def aborted(self) -> bool:
        return self.abort is not None and self.abort.is_set()

