"""Statement operations shared by connections and transactions.

``execute`` and ``query`` are the same two work items whether they run on a
bare connection or inside a transaction; only the submission path differs
(a connection waits behind an open transaction, a transaction does not).
:class:`StatementRunner` holds the operation logic and leaves ``_submit``
to its subclasses.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from litebridge.binder import BoundStatement, bind
from litebridge.core.errors import BridgeError, MisuseError
from litebridge.core.logging import get_logger
from litebridge.execution.worker import ConnectionWorker, NativeSession
from litebridge.rows import Row, Rows

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Status:
    """Outcome of a statement executed without result rows."""

    rows_affected: int
    last_insert_id: int | None = None


def execute_item(bound: BoundStatement) -> Callable[[NativeSession], Status]:
    """Work item: run ``bound`` to completion and report affected rows."""

    def run(session: NativeSession) -> Status:
        cursor = session.connection.cursor()
        try:
            cursor.execute(bound.sql, bound.parameters)
            if cursor.description is not None and cursor.fetchone() is not None:
                raise MisuseError("execute() statement returned rows; use query() instead")
            return Status(
                rows_affected=max(cursor.rowcount, 0),
                last_insert_id=cursor.lastrowid,
            )
        finally:
            cursor.close()

    return run


def query_item(bound: BoundStatement) -> Callable[[NativeSession], tuple[int, tuple[str, ...]]]:
    """Work item: prepare and bind ``bound``; returns (statement id, columns)."""

    def run(session: NativeSession) -> tuple[int, tuple[str, ...]]:
        cursor = session.connection.cursor()
        try:
            cursor.execute(bound.sql, bound.parameters)
        except BaseException:
            cursor.close()
            raise
        columns = tuple(d[0] for d in cursor.description or ())
        return session.open_statement(cursor), columns

    return run


def _discard_statement(session: NativeSession, result: tuple[int, tuple[str, ...]]) -> None:
    session.finalize(result[0])


class StatementRunner:
    """execute / query / query_row on top of a ``_submit`` hook."""

    _worker: ConnectionWorker

    @property
    def closed(self) -> bool:
        raise NotImplementedError

    async def _submit(
        self,
        fn: Callable[[NativeSession], T],
        *,
        discard: Callable[[NativeSession, T], Any] | None = None,
        label: str = "",
    ) -> T:
        raise NotImplementedError

    async def execute(self, sql: str, params: Sequence[Any] | None = ()) -> int:
        """Run a statement that produces no rows; returns the affected-row count.

        Raises:
            ParameterMismatchError: parameter count differs from placeholders.
            ConstraintError: a schema constraint was violated.
            SqlError: malformed SQL.
            MisuseError: the statement returned rows.
        """
        status = await self.execute_status(sql, params)
        return status.rows_affected

    async def execute_status(self, sql: str, params: Sequence[Any] | None = ()) -> Status:
        """Like :meth:`execute`, also reporting the last inserted rowid."""
        bound = bind(sql, params)
        try:
            return await self._submit(execute_item(bound), label="execute")
        except BridgeError as exc:
            raise exc.with_context(sql=sql, operation="execute")

    async def query(self, sql: str, params: Sequence[Any] | None = ()) -> Rows:
        """Prepare and bind a row-producing statement; returns a live cursor.

        Rows are decoded lazily by :meth:`Rows.next`.
        """
        bound = bind(sql, params)
        try:
            statement_id, columns = await self._submit(
                query_item(bound), discard=_discard_statement, label="query"
            )
        except BridgeError as exc:
            raise exc.with_context(sql=sql, operation="query")
        return Rows(self, self._worker, statement_id, columns, sql=sql)

    async def query_row(self, sql: str, params: Sequence[Any] | None = ()) -> Row | None:
        """Zero or one row.

        Raises:
            MisuseError: the statement produced more than one row.
        """
        rows = await self.query(sql, params)
        try:
            row = await rows.next()
            if row is None:
                return None
            if await rows.next() is not None:
                raise MisuseError("query_row() statement returned more than one row").with_context(sql=sql)
            return row
        finally:
            await rows.aclose()


__all__ = ["Status", "StatementRunner", "execute_item", "query_item"]
