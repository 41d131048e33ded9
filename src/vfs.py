"""In-memory file store backing redirects and file builtins."""
from __future__ import annotations

import logging
import posixpath
from typing import Dict, Iterable, List, Optional, Set

from lexer import ShellError

logger = logging.getLogger(__name__)


class StorageError(ShellError):
    """A file store operation failed; the message is shown to the user."""


class FileNotFoundStorageError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__("No such file or directory")
        self.path = path


class IsADirectoryStorageError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__("Is a directory")
        self.path = path


class NotADirectoryStorageError(StorageError):
    def __init__(self, path: str) -> None:
        super().__init__("Not a directory")
        self.path = path


def _norm(path: str) -> str:
    if not path.startswith('/'):
        path = '/' + path
    path = posixpath.normpath(path)
    # normpath keeps a leading '//' as-is
    return '/' + path.lstrip('/')


class MemoryStore:
    """A flat map of absolute paths to file contents plus a directory set.

    Writing a file requires its parent directory to exist, like a real
    filesystem. Paths given here are always treated as absolute.
    """

    def __init__(self, directories: Optional[Iterable[str]] = None) -> None:
        self._files: Dict[str, str] = {}
        self._dirs: Set[str] = {'/'}
        for d in directories or ():
            self.mkdir(d, parents=True)

    # --- storage capability ---

    def read(self, path: str) -> str:
        p = _norm(path)
        if p in self._dirs:
            raise IsADirectoryStorageError(p)
        try:
            return self._files[p]
        except KeyError:
            raise FileNotFoundStorageError(p) from None

    def write(self, path: str, content: str) -> None:
        p = self._check_writable(path)
        self._files[p] = content
        logger.debug("write %s (%d chars)", p, len(content))

    def append(self, path: str, content: str) -> None:
        p = self._check_writable(path)
        self._files[p] = self._files.get(p, '') + content
        logger.debug("append %s (%d chars)", p, len(content))

    def exists(self, path: str) -> bool:
        p = _norm(path)
        return p in self._files or p in self._dirs

    # --- directories ---

    def is_dir(self, path: str) -> bool:
        return _norm(path) in self._dirs

    def mkdir(self, path: str, parents: bool = False) -> None:
        p = _norm(path)
        if p in self._files:
            raise NotADirectoryStorageError(p)
        parent = posixpath.dirname(p)
        if parent not in self._dirs:
            if not parents:
                raise FileNotFoundStorageError(parent)
            self.mkdir(parent, parents=True)
        self._dirs.add(p)

    def listdir(self, path: str) -> List[str]:
        p = _norm(path)
        if p not in self._dirs:
            if p in self._files:
                raise NotADirectoryStorageError(p)
            raise FileNotFoundStorageError(p)
        names = {
            posixpath.basename(entry)
            for entry in (*self._files, *self._dirs)
            if entry != p and posixpath.dirname(entry) == p
        }
        return sorted(names)

    def _check_writable(self, path: str) -> str:
        p = _norm(path)
        if p in self._dirs:
            raise IsADirectoryStorageError(p)
        parent = posixpath.dirname(p)
        if parent not in self._dirs:
            if parent in self._files:
                raise NotADirectoryStorageError(parent)
            raise FileNotFoundStorageError(parent)
        return p
