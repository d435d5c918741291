"""Rows - a lazily stepped, asynchronously produced result cursor.

A :class:`Rows` owns one live native statement on its connection's worker.
Each :meth:`Rows.next` call dispatches exactly one *step* work item; the
caller suspends until the worker has either decoded the next row or found
the end of the result set.

State machine::

    ACTIVE ──next()──► Row ──► ACTIVE
    ACTIVE ──next()──► None ─► EXHAUSTED (statement finalized)
    ACTIVE ──next()──► error ► EXHAUSTED (statement finalized, error raised)
    ACTIVE ──aclose()/GC ────► EXHAUSTED (finalization dispatched)
    EXHAUSTED ──next()──► None   (no native interaction)

Usage::

    rows = await conn.query("SELECT id, title FROM post ORDER BY id")
    async for row in rows:
        print(row.get("title").to_str())
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from litebridge.core.errors import ClosedError, MisuseError
from litebridge.core.logging import get_logger
from litebridge.core.values import Value

if TYPE_CHECKING:
    from litebridge.execution.worker import ConnectionWorker, NativeSession

logger = get_logger(__name__)


class Row:
    """One result row: an immutable tuple of Values plus a name lookup."""

    __slots__ = ("_values", "_columns", "_index")

    def __init__(
        self,
        values: tuple[Value, ...],
        columns: tuple[str, ...] = (),
        index: Mapping[str, int] | None = None,
    ) -> None:
        self._values = tuple(values)
        self._columns = tuple(columns)
        self._index = index if index is not None else column_index(self._columns)

    def values(self) -> tuple[Value, ...]:
        return self._values

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    def keys(self) -> tuple[str, ...]:
        return self._columns

    def get(self, key: int | str) -> Value:
        """Value by column position or column name.

        Name lookup is exact first, then case-insensitive (SQLite column
        names are case-insensitive). With duplicate names the leftmost
        column wins.

        Raises:
            MisuseError: unknown column name or index out of range.
        """
        if isinstance(key, bool):
            raise MisuseError(f"invalid column key: {key!r}")
        if isinstance(key, int):
            try:
                return self._values[key]
            except IndexError:
                raise MisuseError(
                    f"column index {key} out of range for row of {len(self._values)} column(s)"
                ) from None
        position = self._index.get(key)
        if position is None:
            position = self._index.get(key.lower())
        if position is None:
            raise MisuseError(f"no column named {key!r}; columns are {list(self._columns)}")
        return self._values[position]

    def __getitem__(self, key: int | str) -> Value:
        return self.get(key)

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[Value]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return self._values == other._values and self._columns == other._columns

    def __hash__(self) -> int:
        return hash((self._values, self._columns))

    def to_dict(self) -> dict[str, Any]:
        """Column name → native Python value (first occurrence wins)."""
        result: dict[str, Any] = {}
        for name, value in zip(self._columns, self._values):
            result.setdefault(name, value.to_python())
        return result

    def __repr__(self) -> str:
        return f"Row({list(self._values)!r})"


def column_index(columns: tuple[str, ...]) -> dict[str, int]:
    index: dict[str, int] = {}
    for position, name in enumerate(columns):
        index.setdefault(name, position)
        index.setdefault(name.lower(), position)
    return index


class Rows:
    """Async cursor over a query's result rows.

    Created by ``Connection.query`` / ``Transaction.query``; never
    constructed directly.
    """

    def __init__(
        self,
        owner: Any,
        worker: ConnectionWorker,
        statement_id: int,
        columns: tuple[str, ...],
        sql: str = "",
    ) -> None:
        self._owner = owner
        self._worker = worker
        self._statement_id = statement_id
        self._columns = columns
        self._index = column_index(columns)
        self._sql = sql
        self._exhausted = False
        self._produced = 0

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    @property
    def rows_produced(self) -> int:
        return self._produced

    async def next(self) -> Row | None:
        """Step the statement once; ``None`` marks the end of the rows.

        Raises:
            ClosedError: the owning connection was closed while the cursor
                was still active.
            BridgeError: the engine failed while stepping; the cursor is
                exhausted afterwards.
        """
        if self._exhausted:
            return None
        if self._owner.closed:
            self._exhausted = True
            raise ClosedError("cursor used after its connection or transaction ended").with_context(sql=self._sql)

        statement_id = self._statement_id

        def step(session: NativeSession) -> tuple[Value, ...] | None:
            cursor = session.statement(statement_id)
            if cursor is None:
                return None
            try:
                raw = cursor.fetchone()
            except Exception:
                session.finalize(statement_id)
                raise
            if raw is None:
                session.finalize(statement_id)
                return None
            return tuple(Value.decode(v) for v in raw)

        try:
            values = await self._worker.run(step, label="step")
        except BaseException:
            self._exhausted = True
            # no-op if the step already finalized it
            self._worker.dispatch(lambda session: session.finalize(statement_id), label="finalize")
            raise

        if values is None:
            self._exhausted = True
            logger.debug("rows.exhausted", rows=self._produced)
            return None

        self._produced += 1
        return Row(values, self._columns, self._index)

    async def fetch_all(self) -> list[Row]:
        """Drain the cursor into a list."""
        rows: list[Row] = []
        while (row := await self.next()) is not None:
            rows.append(row)
        return rows

    async def aclose(self) -> None:
        """Finalize the statement now and wait for the worker to confirm."""
        if self._exhausted:
            return
        self._exhausted = True
        if self._owner.closed:
            return
        statement_id = self._statement_id
        await self._worker.run(lambda session: session.finalize(statement_id), label="finalize")

    def __aiter__(self) -> Rows:
        return self

    async def __anext__(self) -> Row:
        row = await self.next()
        if row is None:
            raise StopAsyncIteration
        return row

    async def __aenter__(self) -> Rows:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def __del__(self) -> None:
        if getattr(self, "_exhausted", True):
            return
        statement_id = self._statement_id
        # FIFO on the worker orders this before any later operation.
        self._worker.dispatch(lambda session: session.finalize(statement_id), label="finalize")

    def __repr__(self) -> str:
        state = "exhausted" if self._exhausted else "active"
        return f"Rows(columns={list(self._columns)!r}, {state})"


__all__ = ["Row", "Rows", "column_index"]
