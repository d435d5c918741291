"""Database target resolution.

Turns whatever the caller passed to ``open()`` into a :class:`DatabaseTarget`
that the worker hands to ``sqlite3.connect``.

Supported forms
---------------
==================  ==========================================  ============
Form                Example                                     Target
==================  ==========================================  ============
in-memory token     ``":memory:"``, ``"memory"``, ``""``        private RAM
SQLite URL          ``sqlite:///path/to/file.db``               file
SQLite URI          ``file:data.db?mode=ro``                    file (uri)
file path           ``./data/my.db``, ``Path("/tmp/a.db")``     file
==================  ==========================================  ============

Every in-memory target is private to its connection: two connections opened
with ``":memory:"`` never see each other's data.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

MEMORY = ":memory:"

_MEMORY_TOKENS = frozenset({"", "memory", MEMORY})


@dataclass(frozen=True)
class DatabaseTarget:
    """Resolved database location."""

    database: str
    """Value passed to ``sqlite3.connect``."""

    persistent: bool
    """Whether data survives the connection."""

    url: str
    """The original path or URL as given by the caller."""

    uri: bool = False
    """Whether ``database`` is a ``file:`` URI."""

    def __repr__(self) -> str:
        if self.persistent:
            return f"DatabaseTarget(path={self.database!r})"
        return "DatabaseTarget(memory)"

    @property
    def is_memory(self) -> bool:
        return not self.persistent


def resolve_target(path: str | os.PathLike[str] | None) -> DatabaseTarget:
    """Resolve a path, URL or the in-memory token.

    Relative file paths are resolved against the current directory. Parent
    directories are not created: opening a file in a missing directory fails
    with :class:`~litebridge.core.errors.OpenError`.
    """
    if path is None:
        return DatabaseTarget(database=MEMORY, persistent=False, url=MEMORY)

    raw = os.fspath(path)

    if raw in _MEMORY_TOKENS:
        return DatabaseTarget(database=MEMORY, persistent=False, url=raw)

    for prefix in ("sqlite:///", "sqlite://"):
        if raw.startswith(prefix):
            rest = raw[len(prefix):]
            if rest in _MEMORY_TOKENS:
                return DatabaseTarget(database=MEMORY, persistent=False, url=raw)
            return DatabaseTarget(
                database=str(Path(rest).resolve()),
                persistent=True,
                url=raw,
            )

    if raw.startswith("file:"):
        memory = "mode=memory" in raw or raw.startswith("file::memory:")
        return DatabaseTarget(database=raw, persistent=not memory, url=raw, uri=True)

    return DatabaseTarget(database=str(Path(raw).resolve()), persistent=True, url=raw)


__all__ = ["MEMORY", "DatabaseTarget", "resolve_target"]
