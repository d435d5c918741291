"""Transactions on a single connection.

A :class:`Transaction` issues ``BEGIN`` on its connection's worker and holds
the connection's gate until it commits or rolls back. Operations issued
directly on the connection meanwhile wait (FIFO) behind the gate, so
nothing from outside leaks into the transaction. Statements run through the
transaction handle bypass the gate.

Exiting ``async with`` normally commits; an exception rolls back. A
transaction dropped while still active is rolled back through the worker.
Cursors opened inside a transaction are finalized when it ends.

Cancelling a task inside ``begin``, ``commit`` or ``rollback`` never leaves
the gate held. Work already handed to the worker still runs, and anything
issued on the connection afterwards queues behind it: a cancelled ``begin``
is undone with ``ROLLBACK``, and a cancelled ``commit`` moves the
transaction to ``ending`` until the worker reports how ``COMMIT`` went.
"""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Callable, Generator, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from litebridge.core.errors import BridgeError, ClosedError, MisuseError
from litebridge.core.logging import get_logger
from litebridge.execution.worker import ConnectionWorker, NativeSession
from litebridge.operations import StatementRunner
from litebridge.rows import Rows

if TYPE_CHECKING:
    from litebridge.connection import Connection

logger = get_logger(__name__)

T = TypeVar("T")


class TransactionBehavior(str, Enum):
    """Locking behavior of ``BEGIN``."""

    DEFERRED = "DEFERRED"
    IMMEDIATE = "IMMEDIATE"
    EXCLUSIVE = "EXCLUSIVE"


class TransactionState(str, Enum):
    NEW = "new"
    ACTIVE = "active"
    ENDING = "ending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


def _run_sql(sql: str) -> Callable[[NativeSession], None]:
    def run(session: NativeSession) -> None:
        session.connection.execute(sql).close()

    return run


class Transaction(StatementRunner):
    """Handle to an open transaction. Create with ``Connection.transaction()``."""

    def __init__(
        self,
        connection: Connection,
        worker: ConnectionWorker,
        gate: asyncio.Lock,
        behavior: TransactionBehavior = TransactionBehavior.DEFERRED,
    ) -> None:
        self._connection = connection
        self._worker = worker
        self._gate = gate
        self._behavior = behavior
        self._state = TransactionState.NEW
        self._statements: set[int] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def behavior(self) -> TransactionBehavior:
        return self._behavior

    @property
    def closed(self) -> bool:
        return self._state is not TransactionState.ACTIVE or self._connection.closed

    # ── Begin / end ──────────────────────────────────────────────────

    async def begin(self) -> Transaction:
        """Wait for the connection gate and issue ``BEGIN``."""
        if self._state is not TransactionState.NEW:
            raise MisuseError(f"transaction already {self._state.value}")
        self._connection._check_usable()
        self._connection._check_not_reentrant()

        await self._gate.acquire()
        try:
            self._connection._check_usable()
            await self._worker.run(_run_sql(f"BEGIN {self._behavior.value}"), label="begin")
        except BridgeError:
            self._gate.release()
            raise
        except BaseException:
            # BEGIN may still run on the worker
            self._worker.dispatch(self._end_item("ROLLBACK"), label="rollback")
            self._gate.release()
            raise

        self._state = TransactionState.ACTIVE
        self._loop = asyncio.get_running_loop()
        self._connection._transaction_task = asyncio.current_task()
        logger.debug("transaction.begun", behavior=self._behavior.value)
        return self

    async def commit(self) -> None:
        """Commit. If ``COMMIT`` fails the transaction is rolled back and the
        commit error is raised."""
        self._require_active("commit")
        future: asyncio.Future[None] | None = None
        try:
            future = self._worker.submit(self._commit_item(), label="commit")
            await asyncio.shield(future)
        except BridgeError as exc:
            self._finish(TransactionState.ROLLED_BACK)
            raise exc.with_context(operation="commit")
        except asyncio.CancelledError:
            if future is None:
                raise
            # COMMIT still runs on the worker; later work queues behind it
            self._state = TransactionState.ENDING
            future.add_done_callback(self._settle)
            self._release_gate()
            raise
        self._finish(TransactionState.COMMITTED)

    async def rollback(self) -> None:
        """Roll back every change made in the transaction."""
        self._require_active("rollback")
        try:
            await self._worker.run(self._end_item("ROLLBACK"), label="rollback")
        finally:
            self._finish(TransactionState.ROLLED_BACK)

    def _require_active(self, action: str) -> None:
        if self._state is TransactionState.NEW:
            raise MisuseError(f"cannot {action}: transaction was never begun")
        if self._state is not TransactionState.ACTIVE:
            raise MisuseError(f"cannot {action}: transaction already {self._state.value}")

    def _end_item(self, sql: str) -> Callable[[NativeSession], None]:
        statements = tuple(self._statements)

        def run(session: NativeSession) -> None:
            for statement_id in statements:
                session.finalize(statement_id)
            if session.connection.in_transaction:
                session.connection.execute(sql).close()

        return run

    def _commit_item(self) -> Callable[[NativeSession], None]:
        statements = tuple(self._statements)

        def run(session: NativeSession) -> None:
            for statement_id in statements:
                session.finalize(statement_id)
            conn = session.connection
            if not conn.in_transaction:
                return
            try:
                conn.execute("COMMIT").close()
            except sqlite3.Error:
                if conn.in_transaction:
                    try:
                        conn.execute("ROLLBACK").close()
                    except sqlite3.Error as exc:
                        logger.warning("transaction.rollback_failed", error=str(exc))
                raise

        return run

    def _settle(self, future: asyncio.Future[None]) -> None:
        failed = future.cancelled() or future.exception() is not None
        state = TransactionState.ROLLED_BACK if failed else TransactionState.COMMITTED
        self._state = state
        self._statements.clear()
        logger.debug("transaction.finished", state=state.value)

    def _finish(self, state: TransactionState) -> None:
        self._state = state
        self._statements.clear()
        self._release_gate()
        logger.debug("transaction.finished", state=state.value)

    def _release_gate(self) -> None:
        self._connection._transaction_task = None
        if self._gate.locked():
            self._gate.release()

    # ── Statement submission ─────────────────────────────────────────

    async def _submit(
        self,
        fn: Callable[[NativeSession], T],
        *,
        discard: Callable[[NativeSession, T], Any] | None = None,
        label: str = "",
    ) -> T:
        if self._state is not TransactionState.ACTIVE:
            raise MisuseError(f"transaction is {self._state.value}")
        if self._connection.closed:
            raise ClosedError("connection is closed")
        return await self._worker.run(fn, discard=discard, label=label)

    async def query(self, sql: str, params: Sequence[Any] | None = ()) -> Rows:
        rows = await super().query(sql, params)
        self._statements.add(rows._statement_id)
        return rows

    # ── Protocols ────────────────────────────────────────────────────

    def __await__(self) -> Generator[Any, None, Transaction]:
        return self.begin().__await__()

    async def __aenter__(self) -> Transaction:
        if self._state is TransactionState.NEW:
            await self.begin()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._state is not TransactionState.ACTIVE:
            return
        if exc_type is None:
            await self.commit()
        else:
            await self.rollback()

    def __del__(self) -> None:
        if getattr(self, "_state", None) is not TransactionState.ACTIVE:
            return
        self._state = TransactionState.ROLLED_BACK
        self._connection._transaction_task = None
        self._worker.dispatch(self._end_item("ROLLBACK"), label="rollback")
        loop = self._loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(self._release_gate)
        except RuntimeError:
            # loop already closed, nobody can be waiting on the gate
            return

    def __repr__(self) -> str:
        return f"Transaction({self._behavior.value}, {self._state.value})"


__all__ = ["Transaction", "TransactionBehavior", "TransactionState"]
