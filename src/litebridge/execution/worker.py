"""Per-connection worker - runs blocking native calls off the event loop.

WHY
───
``sqlite3`` calls block their thread for the duration of disk I/O and lock
waits, and a native handle must never be used from two threads at once.
``ConnectionWorker`` owns one ``sqlite3.Connection`` on one dedicated daemon
thread and executes *work items* (callables over the native session) one at
a time, strictly in submission order. Callers ``await`` a one-shot
``asyncio.Future`` that the worker resolves through
``loop.call_soon_threadsafe``, so the event loop never blocks.

ARCHITECTURE
────────────
::

    event loop thread                       worker thread
    ─────────────────                       ─────────────
    await worker.run(fn)  ──► SimpleQueue ──► fn(session)
          ▲                                      │
          └──── call_soon_threadsafe(resolve) ◄──┘

    ConnectionWorker
      ├── .start()              ─ spawn thread, open native handle
      ├── .run(fn, discard=)    ─ submit + await result (FIFO)
      ├── .dispatch(fn)         ─ fire-and-forget (safe from __del__)
      ├── .close()              ─ finalize statements, close handle, stop
      └── .lost                 ─ True once the thread faulted

FAILURE MODEL
─────────────
- ``Exception`` raised by a work item is translated into a ``BridgeError``
  and delivered to that item's caller only; the worker keeps running.
- A ``BaseException`` that is not an ``Exception`` escaping a work item is an
  unrecoverable fault: the thread releases the native handle and exits, and
  every outstanding and future submission fails with ``WorkerLostError``.
- An abandoned (cancelled) await does not cancel the work item. It runs to
  completion; its optional ``discard`` callback then releases whatever the
  item produced.
"""

from __future__ import annotations

import asyncio
import itertools
import queue
import sqlite3
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from litebridge.core.errors import (
    BridgeError,
    ClosedError,
    WorkerLostError,
    translate,
)
from litebridge.core.logging import bind_context, clear_context, get_logger
from litebridge.core.paths import DatabaseTarget
from litebridge.core.settings import BridgeSettings

logger = get_logger(__name__)

T = TypeVar("T")

_worker_ids = itertools.count(1)


class NativeSession:
    """The native handle plus the statements currently alive on it.

    Only ever touched from the worker thread. Work items receive it as their
    single argument.
    """

    def __init__(self, connection: sqlite3.Connection) -> None:
        self.connection = connection
        self._statements: dict[int, sqlite3.Cursor] = {}
        self._statement_ids = itertools.count(1)

    def open_statement(self, cursor: sqlite3.Cursor) -> int:
        """Track a live cursor; returns its statement id."""
        statement_id = next(self._statement_ids)
        self._statements[statement_id] = cursor
        return statement_id

    def statement(self, statement_id: int) -> sqlite3.Cursor | None:
        return self._statements.get(statement_id)

    def finalize(self, statement_id: int) -> bool:
        """Close a tracked cursor. Returns False if it was already finalized."""
        cursor = self._statements.pop(statement_id, None)
        if cursor is None:
            return False
        cursor.close()
        return True

    def finalize_all(self) -> int:
        count = 0
        for statement_id in list(self._statements):
            if self.finalize(statement_id):
                count += 1
        return count

    @property
    def live_statements(self) -> int:
        return len(self._statements)


@dataclass(eq=False)
class _WorkItem(Generic[T]):
    fn: Callable[[NativeSession], T]
    future: asyncio.Future[T] | None = None
    loop: asyncio.AbstractEventLoop | None = None
    discard: Callable[[NativeSession, T], Any] | None = None
    label: str = field(default="")


_STOP = object()


class ConnectionWorker:
    """Dedicated thread owning one native connection.

    Parameters
    ----------
    target : DatabaseTarget
        Where to open the database.
    settings : BridgeSettings
        Engine pragmas (busy timeout, statement cache) and thread naming.
    """

    def __init__(self, target: DatabaseTarget, settings: BridgeSettings) -> None:
        self._target = target
        self._settings = settings
        self._queue: queue.SimpleQueue[Any] = queue.SimpleQueue()
        self._session: NativeSession | None = None
        self._pending: set[_WorkItem[Any]] = set()
        self._lock = threading.Lock()
        self._started = False
        self._stopping = False
        self._lost: BaseException | None = None
        self.name = f"{settings.worker_thread_prefix}-{next(_worker_ids)}"
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)

    # ── Lifecycle ────────────────────────────────────────────────────

    async def start(self) -> None:
        """Spawn the thread and open the native handle on it.

        Raises:
            OpenError: The engine could not open or create the target.
        """
        if self._started:
            raise RuntimeError(f"worker {self.name} already started")
        self._started = True
        self._thread.start()
        try:
            await self.run(self._connect, label="open")
        except BaseException:
            self._request_stop()
            raise
        logger.debug("worker.started", worker=self.name, target=repr(self._target))

    async def close(self) -> None:
        """Finalize live statements, close the native handle and stop the thread.

        Idempotent. Items submitted before ``close`` still run first.
        """
        with self._lock:
            if self._stopping or not self._started:
                return
            if self._lost is not None:
                self._stopping = True
                return
        try:
            await self.run(self._disconnect, label="close")
        finally:
            self._request_stop()

    def release(self) -> None:
        """Stop without waiting; used by implicit release (``__del__``).

        Lock-free like :meth:`dispatch`. Queued items still run, then the
        thread finalizes live statements and closes the handle on exit.
        """
        if self._stopping or not self._started:
            return
        self._stopping = True
        self._queue.put(_STOP)

    def _request_stop(self) -> None:
        with self._lock:
            if self._stopping:
                return
            self._stopping = True
        self._queue.put(_STOP)

    @property
    def closed(self) -> bool:
        return self._stopping

    @property
    def lost(self) -> bool:
        return self._lost is not None

    @property
    def session(self) -> NativeSession | None:
        return self._session

    def join(self, timeout: float | None = None) -> bool:
        """Block until the thread exits. Returns True if it did."""
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # ── Submission ───────────────────────────────────────────────────

    def submit(
        self,
        fn: Callable[[NativeSession], T],
        *,
        discard: Callable[[NativeSession, T], Any] | None = None,
        label: str = "",
    ) -> asyncio.Future[T]:
        """Enqueue a work item and return the future it will resolve.

        Raises:
            WorkerLostError: The worker thread has faulted.
            ClosedError: The worker was closed.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        item = _WorkItem(fn=fn, future=future, loop=loop, discard=discard, label=label)
        with self._lock:
            if self._lost is not None:
                raise self._lost_error()
            if self._stopping:
                raise ClosedError("connection is closed")
            if self._started and not self._thread.is_alive():
                self._lost = RuntimeError("worker thread exited")
                raise self._lost_error()
            self._pending.add(item)
            self._queue.put(item)
        return future

    async def run(
        self,
        fn: Callable[[NativeSession], T],
        *,
        discard: Callable[[NativeSession, T], Any] | None = None,
        label: str = "",
    ) -> T:
        """Submit a work item and suspend until the worker delivers its result."""
        return await self.submit(fn, discard=discard, label=label)

    def dispatch(self, fn: Callable[[NativeSession], Any], *, label: str = "") -> bool:
        """Fire-and-forget submission.

        Safe to call from any thread and from ``__del__``: it takes no lock
        (``SimpleQueue.put`` is reentrant). Returns False when the worker no
        longer accepts work; a closing worker finalizes every statement
        itself.
        """
        if self._stopping or self._lost is not None or not self._started:
            return False
        self._queue.put(_WorkItem(fn=fn, label=label))
        return True

    # ── Worker thread ────────────────────────────────────────────────

    def _run(self) -> None:
        bind_context(worker=self.name, path=self._target.url)
        try:
            while True:
                item = self._queue.get()
                if item is _STOP:
                    break
                self._execute(item)
        except BaseException as exc:
            self._mark_lost(exc)
        finally:
            self._release_native()
            clear_context()

    def _execute(self, item: _WorkItem[Any]) -> None:
        with self._lock:
            self._pending.discard(item)

        session = self._session
        started = time.perf_counter()
        try:
            result = item.fn(session)  # type: ignore[arg-type]
        except Exception as exc:
            error = translate(exc)
            if item.future is None:
                logger.debug("worker.dispatch_failed", label=item.label, **error.to_dict())
            else:
                self._deliver(item, None, error)
            return
        except BaseException as exc:
            self._lost = exc
            self._deliver(item, None, self._lost_error())
            raise

        if item.future is not None:
            self._deliver(item, result, None)
        logger.debug(
            "worker.item_done",
            label=item.label,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 3),
        )

    def _deliver(self, item: _WorkItem[Any], result: Any, error: BridgeError | None) -> None:
        assert item.loop is not None
        try:
            item.loop.call_soon_threadsafe(self._resolve, item, result, error)
        except RuntimeError:
            # event loop closed; nobody will consume the result
            if error is None and item.discard is not None and self._session is not None:
                item.discard(self._session, result)

    def _resolve(self, item: _WorkItem[Any], result: Any, error: BridgeError | None) -> None:
        """Runs on the caller's event loop."""
        future = item.future
        assert future is not None
        if future.done():
            if error is None and item.discard is not None:
                discard = item.discard
                self.dispatch(lambda session: discard(session, result), label=f"discard:{item.label}")
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def _mark_lost(self, exc: BaseException) -> None:
        with self._lock:
            if self._lost is None:
                self._lost = exc
            pending = list(self._pending)
            self._pending.clear()
        logger.error(
            "worker.lost",
            error=f"{exc.__class__.__name__}: {exc}",
            failed_pending=len(pending),
        )
        for item in pending:
            if item.future is not None:
                self._deliver(item, None, self._lost_error())

    def _lost_error(self) -> WorkerLostError:
        exc = self._lost
        detail = f"{exc.__class__.__name__}: {exc}" if exc is not None else "unknown fault"
        return WorkerLostError(
            f"worker {self.name} terminated ({detail}); reopen the connection"
        ).with_context(path=self._target.url)

    def _release_native(self) -> None:
        session = self._session
        self._session = None
        if session is None:
            return
        try:
            session.finalize_all()
            session.connection.close()
        except sqlite3.Error as exc:
            logger.warning("worker.release_failed", error=str(exc))

    # ── Native open/close (run as work items) ───────────────────────

    def _connect(self, _session: NativeSession | None) -> None:
        try:
            connection = sqlite3.connect(
                self._target.database,
                timeout=self._settings.busy_timeout,
                isolation_level=None,
                cached_statements=self._settings.statement_cache_size,
                uri=self._target.uri,
            )
        except sqlite3.Error as exc:
            raise translate(exc, path=self._target.url, operation="open") from exc

        try:
            if self._settings.foreign_keys:
                connection.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            connection.close()
            raise translate(exc, path=self._target.url, operation="open") from exc

        self._session = NativeSession(connection)

    def _disconnect(self, session: NativeSession | None) -> int:
        if session is None:
            return 0
        finalized = session.finalize_all()
        session.connection.close()
        self._session = None
        return finalized


__all__ = ["ConnectionWorker", "NativeSession"]
