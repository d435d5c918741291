"""Process-wide engine state.

The ``sqlite3`` module needs no explicit global setup, but the bridge still
has facts it wants to establish exactly once per process: which SQLite
library is linked, whether it was compiled thread-safe enough for a handle
to live on a non-creating thread, and whether ``RETURNING`` is available.
:func:`ensure_initialized` computes these lazily on the first ``open`` and
caches them behind a lock; every later call is a cheap read.
"""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass

from litebridge.core.errors import OpenError
from litebridge.core.logging import get_logger

logger = get_logger(__name__)

_RETURNING_MIN_VERSION = (3, 35, 0)


@dataclass(frozen=True)
class EngineInfo:
    """Facts about the linked SQLite library."""

    sqlite_version: str
    version_info: tuple[int, ...]
    threadsafety: int

    @property
    def supports_returning(self) -> bool:
        return self.version_info >= _RETURNING_MIN_VERSION


_lock = threading.Lock()
_info: EngineInfo | None = None


def ensure_initialized() -> EngineInfo:
    """Initialize process-wide engine state once and return it.

    Raises:
        OpenError: The linked library was compiled single-threaded
            (``SQLITE_THREADSAFE=0``) and cannot host a handle on a
            worker thread.
    """
    global _info
    if _info is not None:
        return _info

    with _lock:
        if _info is None:
            info = EngineInfo(
                sqlite_version=sqlite3.sqlite_version,
                version_info=tuple(sqlite3.sqlite_version_info),
                threadsafety=getattr(sqlite3, "threadsafety", 1),
            )
            if info.threadsafety == 0:
                raise OpenError(
                    f"SQLite {info.sqlite_version} was built single-threaded; "
                    "connections cannot be moved to a worker thread"
                )
            logger.debug(
                "engine.initialized",
                sqlite_version=info.sqlite_version,
                threadsafety=info.threadsafety,
                supports_returning=info.supports_returning,
            )
            _info = info
    return _info


def reset_engine_state() -> None:
    """Forget cached engine state (tests only)."""
    global _info
    with _lock:
        _info = None


__all__ = ["EngineInfo", "ensure_initialized", "reset_engine_state"]
