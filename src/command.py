# Command registry and the core builtins of tronsh

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from context import CommandResult, ExecutionContext, PendingMutations, settle

logger = logging.getLogger(__name__)

Builtin = Callable[[List[str], ExecutionContext], Union[CommandResult, Awaitable[CommandResult]]]

PROGRAM_SUFFIX = ".trx"
DEFAULT_PATH = "/bin"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_BAD_ALIAS_CHARS = re.compile(r"[=\s|&;><]")
_WC_LONG = {'--lines': 'l', '--words': 'w', '--bytes': 'c', '--chars': 'c'}


class CommandRegistry:
    """Name -> builtin table plus installed programs keyed by absolute path."""

    def __init__(self) -> None:
        self.builtins: Dict[str, Builtin] = {}
        self.programs: Dict[str, Builtin] = {}

    def builtin(self, *names: str) -> Callable[[Builtin], Builtin]:
        def register(func: Builtin) -> Builtin:
            for name in names:
                self.builtins[name] = func
            return func
        return register

    def add(self, name: str, func: Builtin) -> None:
        self.builtins[name] = func

    def install(self, path: str, func: Builtin) -> None:
        path = posixpath.normpath(path)
        if not path.startswith('/'):
            raise ValueError(f"program path must be absolute: {path}")
        self.programs[path] = func
        logger.debug("installed program %s", path)

    def is_builtin(self, name: str) -> bool:
        return name in self.builtins

    def find_program(self, name: str, env: Dict[str, str]) -> Optional[str]:
        """Resolve a command name to an installed program path.

        Names containing '/' are taken as paths (relative ones against
        $PWD); anything else is searched along $PATH. In both cases the
        bare name is tried before the name with the program suffix.
        """
        if '/' in name:
            base = env.get("PWD") or "/"
            path = posixpath.normpath(posixpath.join(base, name))
            for candidate in (path, path + PROGRAM_SUFFIX):
                if candidate in self.programs:
                    return candidate
            return None
        for directory in (env.get("PATH") or DEFAULT_PATH).split(':'):
            if not directory:
                continue
            for candidate in (f"{directory.rstrip('/')}/{name}", f"{directory.rstrip('/')}/{name}{PROGRAM_SUFFIX}"):
                if candidate in self.programs:
                    return candidate
        return None

    def resolve(self, name: str, env: Dict[str, str]) -> Optional[Builtin]:
        func = self.builtins.get(name)
        if func is not None:
            return func
        path = self.find_program(name, env)
        if path is not None:
            return self.programs[path]
        return None


def _ok(stdout: str = "", mutations: Optional[PendingMutations] = None) -> CommandResult:
    return CommandResult(stdout=stdout, mutations=mutations or PendingMutations())


def _lines(items: Iterable[str]) -> str:
    text = "\n".join(items)
    return text + "\n" if text else ""


# --- text ---

def _unescape(text: str) -> str:
    table = {'n': '\n', 't': '\t', 'r': '\r', '\\': '\\', 'a': '\a', 'b': '\b', 'v': '\v', 'f': '\f'}
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text) and text[i + 1] in table:
            out.append(table[text[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return ''.join(out)


def echo(args: List[str], ctx: ExecutionContext) -> CommandResult:
    newline = True
    escapes = False
    words: List[str] = []
    for arg in args:
        if not words and arg == '-n':
            newline = False
        elif not words and arg == '-e':
            escapes = True
        elif not words and arg == '-E':
            escapes = False
        else:
            words.append(_unescape(arg) if escapes else arg)
    text = ' '.join(words)
    return _ok(text + "\n" if newline else text)


async def _read_file(ctx: ExecutionContext, name: str) -> str:
    if ctx.vfs is None:
        raise RuntimeError("no filesystem available")
    return await settle(ctx.vfs.read(ctx.resolve(name)))


async def cat(args: List[str], ctx: ExecutionContext) -> CommandResult:
    if not args:
        return _ok(ctx.stdin)
    out: List[str] = []
    errors: List[str] = []
    for name in args:
        if name == '-':
            out.append(ctx.stdin)
            continue
        try:
            out.append(await _read_file(ctx, name))
        except Exception as e:
            errors.append(f"cat: {name}: {e}")
    return CommandResult(stdout=''.join(out), stderr=_lines(errors), exit_code=1 if errors else 0)


def _counts(text: str) -> Tuple[int, int, int]:
    return text.count('\n'), len(text.split()), len(text)


async def wc(args: List[str], ctx: ExecutionContext) -> CommandResult:
    flags = ''
    names: List[str] = []
    for arg in args:
        if arg in _WC_LONG:
            flags += _WC_LONG[arg]
        elif arg.startswith('-') and len(arg) > 1:
            for ch in arg[1:]:
                if ch not in 'lwc':
                    return CommandResult.failure(f"wc: invalid option -- '{ch}'\n")
            flags += arg[1:]
        else:
            names.append(arg)
    show = [f in flags for f in 'lwc'] if flags else [True, True, True]

    def row(counts: Tuple[int, int, int], label: str = '') -> str:
        cols = [str(c) for c, wanted in zip(counts, show) if wanted]
        return ' '.join(cols + ([label] if label else []))

    if not names:
        return _ok(row(_counts(ctx.stdin)) + "\n")

    rows: List[str] = []
    errors: List[str] = []
    total = [0, 0, 0]
    for name in names:
        try:
            counts = _counts(await _read_file(ctx, name))
        except Exception as e:
            errors.append(f"wc: {name}: {e}")
            continue
        total = [a + b for a, b in zip(total, counts)]
        rows.append(row(counts, name))
    if len(rows) > 1:
        rows.append(row((total[0], total[1], total[2]), 'total'))
    return CommandResult(stdout=_lines(rows), stderr=_lines(errors), exit_code=1 if errors else 0)


def true(args: List[str], ctx: ExecutionContext) -> CommandResult:
    return _ok()


def false(args: List[str], ctx: ExecutionContext) -> CommandResult:
    return CommandResult(exit_code=1)


async def sleep(args: List[str], ctx: ExecutionContext) -> CommandResult:
    if len(args) != 1:
        return CommandResult.failure("sleep: usage: sleep SECONDS\n")
    try:
        seconds = float(args[0])
    except ValueError:
        return CommandResult.failure(f"sleep: invalid time interval '{args[0]}'\n")
    if ctx.abort is None:
        await asyncio.sleep(seconds)
        return _ok()
    try:
        await asyncio.wait_for(ctx.abort.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return _ok()
    return CommandResult.failure("sleep: interrupted\n", exit_code=130)


# --- environment ---

def pwd(args: List[str], ctx: ExecutionContext) -> CommandResult:
    return _ok((ctx.env.get("PWD") or "/") + "\n")


async def cd(args: List[str], ctx: ExecutionContext) -> CommandResult:
    if len(args) > 1:
        return CommandResult.failure("cd: too many arguments\n")
    target = args[0] if args else ctx.env.get("HOME", "/")
    if target == '-':
        target = ctx.env.get("OLDPWD") or ctx.env.get("PWD") or "/"
    path = ctx.resolve(target)
    if ctx.vfs is not None:
        is_dir = getattr(ctx.vfs, 'is_dir', None)
        if not await settle(ctx.vfs.exists(path)):
            return CommandResult.failure(f"cd: {target}: No such file or directory\n")
        if callable(is_dir) and not await settle(is_dir(path)):
            return CommandResult.failure(f"cd: {target}: Not a directory\n")
    return _ok(mutations=PendingMutations(chdir=path))


def env(args: List[str], ctx: ExecutionContext) -> CommandResult:
    return _ok(_lines(f"{k}={v}" for k, v in sorted(ctx.env.items())))


def export(args: List[str], ctx: ExecutionContext) -> CommandResult:
    if not args:
        return _ok(_lines(f'declare -x {k}="{v}"' for k, v in sorted(ctx.env.items())))
    mutations = PendingMutations()
    for arg in args:
        if '=' not in arg:
            # bare names are already visible to every command
            continue
        key, value = arg.split('=', 1)
        if not _IDENTIFIER.match(key):
            return CommandResult(
                stderr=f"export: '{key}': not a valid identifier\n",
                exit_code=1,
                mutations=mutations,
            )
        mutations.exports[key] = value
    return _ok(mutations=mutations)


def unset(args: List[str], ctx: ExecutionContext) -> CommandResult:
    mutations = PendingMutations()
    errors: List[str] = []
    for key in args:
        if not _IDENTIFIER.match(key):
            errors.append(f"unset: '{key}': not a valid identifier")
            continue
        mutations.unsets.append(key)
    return CommandResult(stderr=_lines(errors), exit_code=1 if errors else 0, mutations=mutations)


# --- aliases ---

def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def _valid_alias_name(name: str) -> bool:
    return bool(name) and not name[0].isdigit() and not _BAD_ALIAS_CHARS.search(name)


def alias(args: List[str], ctx: ExecutionContext) -> CommandResult:
    aliases = ctx.aliases or {}
    if not args:
        return _ok(_lines(f"alias {k}='{v}'" for k, v in sorted(aliases.items())))

    shown: List[str] = []
    errors: List[str] = []
    mutations = PendingMutations()
    for arg in args:
        if '=' not in arg:
            if arg in aliases:
                shown.append(f"alias {arg}='{aliases[arg]}'")
            else:
                errors.append(f"alias: {arg}: not found")
            continue
        name, value = arg.split('=', 1)
        if not _valid_alias_name(name):
            errors.append(f"alias: '{name}': invalid alias name")
            continue
        mutations.aliases[name] = _strip_quotes(value)
    return CommandResult(
        stdout=_lines(shown),
        stderr=_lines(errors),
        exit_code=1 if errors else 0,
        mutations=mutations,
    )


def unalias(args: List[str], ctx: ExecutionContext) -> CommandResult:
    if not args:
        return CommandResult.failure("unalias: usage: unalias [-a] name [name ...]\n")
    aliases = ctx.aliases or {}
    mutations = PendingMutations()
    errors: List[str] = []
    for arg in args:
        if arg == '-a':
            mutations.clear_aliases = True
            continue
        if not _valid_alias_name(arg):
            errors.append(f"unalias: '{arg}': invalid alias name")
        elif arg not in aliases:
            errors.append(f"unalias: {arg}: not found")
        else:
            mutations.unaliases.append(arg)
    return CommandResult(stderr=_lines(errors), exit_code=1 if errors else 0, mutations=mutations)


# --- session ---

def history(args: List[str], ctx: ExecutionContext) -> CommandResult:
    entries = ctx.history or []
    count = len(entries)
    if args:
        if not args[0].isdigit():
            return CommandResult.failure(f"history: invalid argument '{args[0]}'\n")
        count = int(args[0])
    start = max(0, len(entries) - count)
    return _ok(_lines(f"{i + 1:>6}  {entries[i]}" for i in range(start, len(entries))))


async def source(args: List[str], ctx: ExecutionContext) -> CommandResult:
    if not args:
        return CommandResult.failure("source: missing file operand\n")
    name = args[0]
    try:
        content = await _read_file(ctx, name)
    except Exception as e:
        return CommandResult.failure(f"source: {name}: {e}\n")
    lines = [ln for ln in content.split('\n') if ln.strip() and not ln.strip().startswith('#')]
    return _ok(mutations=PendingMutations(source_lines=lines))


def exit_(args: List[str], ctx: ExecutionContext) -> CommandResult:
    code = 0
    if args:
        try:
            code = int(args[0])
        except ValueError:
            return CommandResult.failure(f"exit: {args[0]}: numeric argument required\n", exit_code=2)
    return CommandResult(exit_code=code, mutations=PendingMutations(exit_code=code))


def _make_type(registry: CommandRegistry) -> Builtin:
    def type_(args: List[str], ctx: ExecutionContext) -> CommandResult:
        if not args:
            return CommandResult.failure("type: usage: type name [name ...]\n")
        aliases = ctx.aliases or {}
        found: List[str] = []
        missing: List[str] = []
        for name in args:
            if name in aliases:
                found.append(f"{name} is aliased to `{aliases[name]}'")
            elif registry.is_builtin(name):
                found.append(f"{name} is a shell builtin")
            else:
                path = registry.find_program(name, ctx.env)
                if path is not None:
                    found.append(f"{name} is {path}")
                else:
                    missing.append(f"type: {name}: not found")
        return CommandResult(stdout=_lines(found), stderr=_lines(missing), exit_code=1 if missing else 0)
    return type_


def default_registry() -> CommandRegistry:
    registry = CommandRegistry()
    for names, func in (
        (('echo',), echo),
        (('cat',), cat),
        (('wc',), wc),
        (('true',), true),
        (('false',), false),
        (('sleep',), sleep),
        (('pwd',), pwd),
        (('cd',), cd),
        (('env',), env),
        (('export',), export),
        (('unset',), unset),
        (('alias',), alias),
        (('unalias',), unalias),
        (('history',), history),
        (('source', '.'), source),
        (('exit', 'quit'), exit_),
    ):
        registry.builtin(*names)(func)
    registry.add('type', _make_type(registry))
    return registry
