"""Connection - the caller-facing async handle to one SQLite database.

Every operation is a work item submitted to the connection's
:class:`~litebridge.execution.worker.ConnectionWorker`, processed strictly
in call order. Two tasks sharing a connection never interleave native calls;
two connections are fully independent and run in parallel.

Usage::

    import litebridge

    async with litebridge.open(":memory:") as conn:
        await conn.execute(
            "CREATE TABLE post (id INTEGER PRIMARY KEY, title TEXT NOT NULL, author BIGINT)"
        )
        rows = await conn.query(
            "INSERT INTO post (title, author) VALUES ($1, $2) RETURNING id",
            ["first post", None],
        )
        row = await rows.next()
        assert row.values()[0] == Integer(1)

    # or without a context manager
    conn = await litebridge.open("app.db")
    ...
    await conn.close()
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator
from typing import Any, TypeVar

from litebridge.core.engine import ensure_initialized
from litebridge.core.errors import ClosedError, MisuseError, WorkerLostError
from litebridge.core.logging import get_logger
from litebridge.core.paths import DatabaseTarget, resolve_target
from litebridge.core.settings import BridgeSettings, get_settings
from litebridge.execution.worker import ConnectionWorker, NativeSession
from litebridge.operations import StatementRunner
from litebridge.transaction import Transaction, TransactionBehavior

logger = get_logger(__name__)

T = TypeVar("T")


class Connection(StatementRunner):
    """Async SQLite connection. Create with :func:`open`."""

    def __init__(
        self,
        worker: ConnectionWorker,
        target: DatabaseTarget,
        settings: BridgeSettings,
    ) -> None:
        self._worker = worker
        self._target = target
        self._settings = settings
        self._closed = False
        # Held by an open transaction; plain operations queue behind it.
        self._gate = asyncio.Lock()
        self._transaction_task: asyncio.Task[Any] | None = None

    # ── Introspection ────────────────────────────────────────────────

    @property
    def target(self) -> DatabaseTarget:
        return self._target

    @property
    def path(self) -> str:
        return self._target.database

    @property
    def closed(self) -> bool:
        return self._closed or self._worker.closed

    @property
    def in_transaction(self) -> bool:
        return self._gate.locked()

    @property
    def settings(self) -> BridgeSettings:
        return self._settings

    # ── Submission ───────────────────────────────────────────────────

    def _check_usable(self) -> None:
        if self._worker.lost:
            raise self._worker_lost()
        if self.closed:
            raise ClosedError("connection is closed").with_context(path=self._target.url)

    def _check_not_reentrant(self) -> None:
        task = self._transaction_task
        if task is not None and task is asyncio.current_task():
            raise MisuseError(
                "this task holds an open transaction on the connection; "
                "use the transaction handle"
            )

    def _worker_lost(self) -> WorkerLostError:
        return WorkerLostError(
            f"worker {self._worker.name} is gone; reopen the connection"
        ).with_context(path=self._target.url)

    async def _submit(
        self,
        fn: Callable[[NativeSession], T],
        *,
        discard: Callable[[NativeSession, T], Any] | None = None,
        label: str = "",
    ) -> T:
        self._check_usable()
        self._check_not_reentrant()
        async with self._gate:
            self._check_usable()
            future = self._worker.submit(fn, discard=discard, label=label)
        return await future

    # ── Transactions ─────────────────────────────────────────────────

    def transaction(self, behavior: TransactionBehavior | str = TransactionBehavior.DEFERRED) -> Transaction:
        """Begin a transaction.

        Use as ``async with conn.transaction() as tx:`` (commit on success,
        rollback on error) or ``tx = await conn.transaction()`` followed by an
        explicit ``commit()``/``rollback()``. While it is open, operations
        issued directly on this connection wait until it finishes.
        """
        self._check_usable()
        return Transaction(self, self._worker, self._gate, TransactionBehavior(behavior))

    # ── Lifecycle ────────────────────────────────────────────────────

    async def close(self) -> None:
        """Finalize outstanding statements and release the native handle.

        Idempotent. Work already submitted completes first. A connection
        whose worker was lost closes without error.
        """
        if self._closed:
            return
        self._closed = True
        await self._worker.close()
        logger.debug("connection.closed", path=self._target.url)

    async def __aenter__(self) -> Connection:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    def __del__(self) -> None:
        if getattr(self, "_closed", True):
            return
        worker = getattr(self, "_worker", None)
        if worker is not None:
            worker.release()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"Connection({self._target!r}, {state})"


class _OpenContext:
    """Return value of :func:`open`: awaitable and an async context manager."""

    def __init__(self, path: str | os.PathLike[str] | None, settings: BridgeSettings | None) -> None:
        self._path = path
        self._settings = settings
        self._connection: Connection | None = None

    async def _open(self) -> Connection:
        ensure_initialized()
        settings = self._settings or get_settings()
        target = resolve_target(self._path)
        worker = ConnectionWorker(target, settings)
        await worker.start()
        logger.debug("connection.opened", path=target.url, worker=worker.name)
        return Connection(worker, target, settings)

    def __await__(self) -> Generator[Any, None, Connection]:
        return self._open().__await__()

    async def __aenter__(self) -> Connection:
        self._connection = await self._open()
        return self._connection

    async def __aexit__(self, *args: Any) -> None:
        if self._connection is not None:
            await self._connection.close()


def open(
    path: str | os.PathLike[str] | None = ":memory:",
    *,
    settings: BridgeSettings | None = None,
) -> _OpenContext:
    """Open a connection to ``path`` (file path, ``sqlite:///`` URL or ``":memory:"``).

    Raises:
        OpenError: the engine cannot open or create the target.
    """
    return _OpenContext(path, settings)


connect = open


__all__ = ["Connection", "open", "connect"]
