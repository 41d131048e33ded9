from __future__ import annotations

import asyncio
import logging
import os
import sys
from typing import Dict, List, Optional

from command import CommandRegistry, default_registry
from context import CommandResult, ExecutionContext, PendingMutations, Storage, settle
from expansion import expand_aliases, expand_variables
from lexer import ShellError, tokenize
from syntax import LogicalSequence, ParsedCommand, Pipeline, SimpleCommand, build_ast
from vfs import FileNotFoundStorageError, MemoryStore

logger = logging.getLogger(__name__)

DEFAULT_ENV: Dict[str, str] = {
    "PATH": "/bin",
    "HOME": "/home/tronos",
    "USER": "tronos",
    "PWD": "/",
}

# Nesting limit for `source` files that source other files
MAX_SOURCE_DEPTH = 16

INTERRUPTED = 130
NOT_FOUND = 127
SYNTAX_ERROR = 2


def _interrupted(mutations: Optional[PendingMutations] = None) -> CommandResult:
    return CommandResult(
        stderr="interrupted\n",
        exit_code=INTERRUPTED,
        mutations=mutations or PendingMutations(),
    )


def _storage_message(exc: Exception) -> str:
    return getattr(exc, 'message', None) or str(exc) or exc.__class__.__name__


# ---- Executor ----

async def execute_command(node: ParsedCommand, ctx: ExecutionContext, registry: CommandRegistry) -> CommandResult:
    """Run one parsed tree. Failures come back as results, never as exceptions."""
    if ctx.aborted:
        return _interrupted()
    if isinstance(node, SimpleCommand):
        return await _exec_simple(node, ctx, registry)
    if isinstance(node, Pipeline):
        return await _exec_pipeline(node, ctx, registry)
    if isinstance(node, LogicalSequence):
        return await _exec_sequence(node, ctx, registry)
    return CommandResult.failure(f"unknown command node: {type(node).__name__}\n")


async def _exec_simple(cmd: SimpleCommand, ctx: ExecutionContext, registry: CommandRegistry) -> CommandResult:
    # Input redirect replaces the inherited stdin; the last one wins
    for r in cmd.redirects:
        if not r.is_input:
            continue
        name = r.input_path
        if ctx.vfs is None:
            return CommandResult.failure(f"{name}: no filesystem available\n")
        try:
            ctx = ctx.with_stdin(await settle(ctx.vfs.read(ctx.resolve(name))))
        except FileNotFoundStorageError:
            return CommandResult.failure(f"{name}: No such file or directory\n")
        except Exception as e:
            return CommandResult.failure(f"{name}: {_storage_message(e)}\n")
        logger.debug("stdin for %s read from %s", cmd.command, name)

    func = registry.resolve(cmd.command, ctx.env)
    if func is None:
        return CommandResult.failure(f"{cmd.command}: command not found\n", exit_code=NOT_FOUND)

    logger.debug("dispatch %s %r", cmd.command, cmd.args)
    try:
        result = await settle(func(list(cmd.args), ctx))
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.debug("%s raised %r", cmd.command, e)
        return CommandResult.failure(f"{cmd.command}: {e}\n")
    if not isinstance(result, CommandResult):
        return CommandResult.failure(f"{cmd.command}: invalid result from command\n")

    outputs = [r for r in cmd.redirects if not r.is_input]
    if not outputs:
        return result
    if ctx.vfs is None:
        return CommandResult(
            stderr=result.stderr + f"{outputs[0].file}: no filesystem available\n",
            exit_code=1,
            mutations=result.mutations,
        )
    for r in outputs:
        path = ctx.resolve(r.file)
        try:
            if r.kind == 'append':
                await settle(ctx.vfs.append(path, result.stdout))
            else:
                await settle(ctx.vfs.write(path, result.stdout))
        except Exception as e:
            return CommandResult(
                stderr=result.stderr + f"{r.file}: {_storage_message(e)}\n",
                exit_code=1,
                mutations=result.mutations,
            )
        logger.debug("%s %s -> %s", r.kind, cmd.command, path)
    return CommandResult(stdout="", stderr=result.stderr, exit_code=result.exit_code, mutations=result.mutations)


async def _exec_pipeline(p: Pipeline, ctx: ExecutionContext, registry: CommandRegistry) -> CommandResult:
    total = len(p.stages)
    if total == 0:
        return CommandResult()

    input_data = ctx.stdin
    mutations = PendingMutations()
    last = CommandResult()
    for idx, stage in enumerate(p.stages):
        if ctx.aborted:
            return _interrupted(mutations)
        last = await _exec_simple(stage, ctx.with_stdin(input_data), registry)
        mutations = mutations.merge(last.mutations)
        # A failed stage feeds nothing downstream
        input_data = last.stdout if last.exit_code == 0 else ""
        if idx + 1 < total:
            logger.debug("stage %d/%d %s exited %d", idx + 1, total, stage.command, last.exit_code)

    return CommandResult(stdout=last.stdout, stderr=last.stderr, exit_code=last.exit_code, mutations=mutations)


async def _exec_sequence(seq: LogicalSequence, ctx: ExecutionContext, registry: CommandRegistry) -> CommandResult:
    left = await execute_command(seq.left, ctx, registry)
    if seq.operator == 'and' and not left.ok:
        return left
    if seq.operator == 'or' and left.ok:
        return left
    if ctx.aborted:
        return _interrupted(left.mutations)
    right = await execute_command(seq.right, ctx, registry)
    # Output is the right operand's alone; state changes from both sides carry on
    return CommandResult(
        stdout=right.stdout,
        stderr=right.stderr,
        exit_code=right.exit_code,
        mutations=left.mutations.merge(right.mutations),
    )


# ---- Session ----

class ShellSession:
    """Holds state that outlives a single line: env, aliases, history and storage."""

    def __init__(
        self,
        store: Optional[Storage] = None,
        registry: Optional[CommandRegistry] = None,
        env: Optional[Dict[str, str]] = None,
        aliases: Optional[Dict[str, str]] = None,
    ) -> None:
        self.env: Dict[str, str] = dict(DEFAULT_ENV)
        if env:
            self.env.update(env)
        if store is None:
            store = MemoryStore(["/bin", "/tmp", self.env["HOME"]])
        self.store: Storage = store
        self.registry: CommandRegistry = registry if registry is not None else default_registry()
        self.aliases: Dict[str, str] = dict(aliases or {})
        self.history: List[str] = []
        self.last_exit_code: int = 0
        self.exit_requested: bool = False
        self.exit_code: int = 0
        self.abort: Optional[asyncio.Event] = None
        self._source_depth = 0

    def expansion_env(self) -> Dict[str, str]:
        merged = dict(self.env)
        merged['?'] = str(self.last_exit_code)
        return merged

    def new_context(self) -> ExecutionContext:
        return ExecutionContext(
            stdin="",
            env=dict(self.env),
            vfs=self.store,
            aliases=dict(self.aliases),
            history=list(self.history),
            abort=self.abort,
        )

    def parse(self, line: str) -> List[ParsedCommand]:
        """Tokenize, expand and parse one line. Raises ShellError subclasses."""
        tokens = tokenize(line)
        tokens = expand_aliases(tokens, self.aliases)
        tokens = expand_variables(tokens, self.expansion_env())
        return build_ast(tokens)

    async def evaluate(self, line: str) -> CommandResult:
        stripped = line.strip()
        if not stripped or stripped.startswith('#'):
            return CommandResult(exit_code=self.last_exit_code)

        try:
            trees = self.parse(line)
        except ShellError as e:
            self.last_exit_code = SYNTAX_ERROR
            return CommandResult.failure(f"tronsh: syntax error: {e.message}\n", exit_code=SYNTAX_ERROR)

        if self._source_depth == 0:
            self.abort = asyncio.Event()
        stdout: List[str] = []
        stderr: List[str] = []
        exit_code = self.last_exit_code
        for tree in trees:
            logger.debug("tree %r", tree)
            result = await execute_command(tree, self.new_context(), self.registry)
            stdout.append(result.stdout)
            stderr.append(result.stderr)
            exit_code = result.exit_code
            self.last_exit_code = exit_code
            if result.mutations:
                extra = await self.apply_mutations(result.mutations)
                if extra is not None:
                    stdout.append(extra.stdout)
                    stderr.append(extra.stderr)
                    exit_code = extra.exit_code
            if self.exit_requested or exit_code == INTERRUPTED:
                break
        return CommandResult(stdout=''.join(stdout), stderr=''.join(stderr), exit_code=exit_code)

    async def apply_mutations(self, m: PendingMutations) -> Optional[CommandResult]:
        """Apply builtin-requested changes. Returns the output of sourced lines, if any."""
        for key, value in m.exports.items():
            self.env[key] = value
        for key in m.unsets:
            self.env.pop(key, None)
        if m.clear_aliases:
            self.aliases.clear()
        for name in m.unaliases:
            self.aliases.pop(name, None)
        self.aliases.update(m.aliases)
        if m.chdir is not None:
            is_dir = getattr(self.store, 'is_dir', None)
            if not callable(is_dir) or await settle(is_dir(m.chdir)):
                self.env["OLDPWD"] = self.env.get("PWD", "/")
                self.env["PWD"] = m.chdir
            else:
                logger.warning("cd target vanished: %s", m.chdir)
        logger.debug("applied %r", m)

        extra: Optional[CommandResult] = None
        if m.source_lines:
            extra = await self.run_lines(m.source_lines)
        if m.exit_code is not None:
            self.exit_requested = True
            self.exit_code = m.exit_code
        return extra

    async def run_lines(self, lines: List[str]) -> CommandResult:
        if self._source_depth >= MAX_SOURCE_DEPTH:
            return CommandResult.failure("source: maximum nesting depth exceeded\n")
        self._source_depth += 1
        stdout: List[str] = []
        stderr: List[str] = []
        exit_code = 0
        try:
            for line in lines:
                result = await self.evaluate(line)
                stdout.append(result.stdout)
                stderr.append(result.stderr)
                exit_code = result.exit_code
                if self.exit_requested:
                    break
        finally:
            self._source_depth -= 1
        return CommandResult(stdout=''.join(stdout), stderr=''.join(stderr), exit_code=exit_code)

    def load_profile(self) -> int:
        """Run $HOME/.profile if the store has one. Returns its exit code."""
        result = asyncio.run(self.run_profile())
        if result is None:
            return 0
        _write_result(result)
        return result.exit_code

    async def run_profile(self) -> Optional[CommandResult]:
        path = self.env.get("HOME", "/").rstrip('/') + "/.profile"
        if not await settle(self.store.exists(path)):
            return None
        try:
            content = await settle(self.store.read(path))
        except Exception as e:
            logger.warning("could not read %s: %s", path, e)
            return CommandResult.failure(f"tronsh: {path}: {e}\n")
        lines = [ln for ln in content.split('\n') if ln.strip() and not ln.strip().startswith('#')]
        result = await self.run_lines(lines)
        if result.exit_code != 0:
            logger.warning("%s exited with %d", path, result.exit_code)
        return result


def _write_result(result: CommandResult) -> None:
    if result.stdout:
        sys.stdout.write(result.stdout)
        sys.stdout.flush()
    if result.stderr:
        sys.stderr.write(result.stderr)
        sys.stderr.flush()


def evaluate_line(line: str, session: ShellSession) -> CommandResult:
    """Synchronous evaluation; Ctrl-C during evaluation becomes exit 130."""
    try:
        return asyncio.run(session.evaluate(line))
    except KeyboardInterrupt:
        session.last_exit_code = INTERRUPTED
        return _interrupted()


def execute_line(line: str, session: ShellSession) -> int:
    if line.strip():
        session.history.append(line)
    result = evaluate_line(line, session)
    _write_result(result)
    return result.exit_code


def parse_line(line: str, session: Optional[ShellSession] = None) -> List[ParsedCommand]:
    """Parse a line with a session's aliases and env (a fresh session if none)."""
    if session is None:
        session = ShellSession(env={"HOME": os.environ.get("TRONSH_HOME", DEFAULT_ENV["HOME"])})
    return session.parse(line)
