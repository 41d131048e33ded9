import asyncio
import sys
from pathlib import Path
import pytest

# Ensure we can import modules from src/ at collection time
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(scope="session", autouse=True)
def add_src_to_path():
    added = str(SRC) not in sys.path
    if added:
        sys.path.insert(0, str(SRC))
    yield
    if added:
        try:
            sys.path.remove(str(SRC))
        except ValueError:
            pass


@pytest.fixture()
def store():
    from vfs import MemoryStore
    return MemoryStore(["/bin", "/tmp", "/home/tronos"])


@pytest.fixture()
def registry():
    from command import default_registry
    return default_registry()


@pytest.fixture()
def ctx(store):
    from context import ExecutionContext
    return ExecutionContext(
        env={"PATH": "/bin", "HOME": "/home/tronos", "PWD": "/"},
        vfs=store,
        aliases={},
        history=[],
    )


@pytest.fixture()
def session(store, registry):
    from ops import ShellSession
    return ShellSession(store=store, registry=registry)


@pytest.fixture()
def run(ctx, registry):
    """Parse one line and run every tree against the shared ctx."""
    from lexer import tokenize
    from ops import execute_command
    from syntax import build_ast

    def _run(line: str):
        async def go():
            results = []
            for node in build_ast(tokenize(line)):
                results.append(await execute_command(node, ctx, registry))
            return results[-1] if results else None
        return asyncio.run(go())

    return _run


class AsyncStore:
    """Coroutine front for a MemoryStore, like a store backed by a network service."""

    def __init__(self, inner):
        self.inner = inner

    async def read(self, path):
        await asyncio.sleep(0)
        return self.inner.read(path)

    async def write(self, path, content):
        await asyncio.sleep(0)
        self.inner.write(path, content)

    async def append(self, path, content):
        await asyncio.sleep(0)
        self.inner.append(path, content)

    async def exists(self, path):
        return self.inner.exists(path)

    async def is_dir(self, path):
        return self.inner.is_dir(path)


@pytest.fixture()
def async_store(store):
    return AsyncStore(store)
