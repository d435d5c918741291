"""Tests for litebridge.rows: Row lookup and the Rows cursor state machine."""

from __future__ import annotations

import asyncio
import gc
import threading

import pytest

import litebridge
from litebridge.core.errors import ClosedError, MisuseError, SqlError
from litebridge.core.values import NULL, Integer, Real, Text
from litebridge.rows import Row, column_index


async def _seeded(conn, count: int = 3) -> None:
    await conn.execute("CREATE TABLE item (id INTEGER PRIMARY KEY, name TEXT, price REAL)")
    for i in range(1, count + 1):
        await conn.execute(
            "INSERT INTO item (id, name, price) VALUES ($1, $2, $3)",
            [i, f"item-{i}", i * 1.5],
        )


async def _live_statements(conn) -> int:
    return await conn._worker.run(lambda s: s.live_statements)


class TestRow:
    def _row(self) -> Row:
        return Row((Integer(1), Text("a"), NULL), ("id", "Name", "note"))

    def test_get_by_index(self):
        row = self._row()
        assert row.get(0) == Integer(1)
        assert row[1] == Text("a")
        assert row.get(-1) is NULL

    def test_get_by_name(self):
        row = self._row()
        assert row.get("id") == Integer(1)
        assert row["Name"] == Text("a")

    def test_name_lookup_case_insensitive(self):
        assert self._row().get("NAME") == Text("a")
        assert self._row().get("name") == Text("a")

    def test_unknown_name(self):
        with pytest.raises(MisuseError, match="no column named 'missing'"):
            self._row().get("missing")

    def test_index_out_of_range(self):
        with pytest.raises(MisuseError, match="out of range"):
            self._row().get(3)

    def test_bool_key_rejected(self):
        with pytest.raises(MisuseError):
            self._row().get(True)

    def test_sequence_protocol(self):
        row = self._row()
        assert len(row) == 3
        assert list(row) == [Integer(1), Text("a"), NULL]
        assert row.values() == (Integer(1), Text("a"), NULL)
        assert row.keys() == ("id", "Name", "note")

    def test_to_dict(self):
        assert self._row().to_dict() == {"id": 1, "Name": "a", "note": None}

    def test_duplicate_names_leftmost_wins(self):
        row = Row((Integer(1), Integer(2)), ("a", "a"))
        assert row.get("a") == Integer(1)
        assert row.to_dict() == {"a": 1}

    def test_equality(self):
        assert self._row() == self._row()
        assert Row((Integer(1),), ("a",)) != Row((Real(1.0),), ("a",))

    def test_column_index(self):
        assert column_index(("Id", "x")) == {"Id": 0, "id": 0, "x": 1}


class TestRowsStepping:
    @pytest.mark.asyncio
    async def test_k_rows_then_none_forever(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 3)
            rows = await conn.query("SELECT id FROM item ORDER BY id")
            produced = [await rows.next() for _ in range(3)]
            assert [r.get(0).to_int() for r in produced] == [1, 2, 3]
            assert await rows.next() is None
            assert rows.exhausted
            assert await rows.next() is None
            assert await rows.next() is None
            assert rows.rows_produced == 3

    @pytest.mark.asyncio
    async def test_empty_result(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 0)
            rows = await conn.query("SELECT * FROM item")
            assert rows.columns == ("id", "name", "price")
            assert await rows.next() is None
            assert await _live_statements(conn) == 0

    @pytest.mark.asyncio
    async def test_values_decoded_per_variant(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 1)
            row = await conn.query_row("SELECT id, name, price, NULL AS nothing, x'00ff' AS raw FROM item")
            assert row.values() == (
                Integer(1),
                Text("item-1"),
                Real(1.5),
                NULL,
                litebridge.Blob(b"\x00\xff"),
            )

    @pytest.mark.asyncio
    async def test_async_iteration(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 4)
            rows = await conn.query("SELECT name FROM item ORDER BY id")
            names = [row.get("name").to_str() async for row in rows]
            assert names == ["item-1", "item-2", "item-3", "item-4"]

    @pytest.mark.asyncio
    async def test_fetch_all(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 2)
            rows = await conn.query("SELECT id FROM item ORDER BY id")
            assert [r[0].to_int() for r in await rows.fetch_all()] == [1, 2]
            assert rows.exhausted

    @pytest.mark.asyncio
    async def test_exhaustion_finalizes_statement(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 1)
            rows = await conn.query("SELECT id FROM item")
            assert await _live_statements(conn) == 1
            await rows.fetch_all()
            assert await _live_statements(conn) == 0

    @pytest.mark.asyncio
    async def test_step_error_exhausts_cursor(self):
        async with litebridge.open() as conn:
            rows = await conn.query(
                "WITH RECURSIVE n(i) AS (SELECT 1 UNION ALL SELECT i + 1 FROM n WHERE i < 3) "
                "SELECT CASE WHEN i < 3 THEN i ELSE abs(-9223372036854775807 - 1) END FROM n"
            )
            assert (await rows.next()).get(0) == Integer(1)
            with pytest.raises(SqlError):
                await rows.next()
            assert rows.exhausted
            assert await rows.next() is None
            assert await _live_statements(conn) == 0


class TestRowsRelease:
    @pytest.mark.asyncio
    async def test_aclose(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 3)
            rows = await conn.query("SELECT id FROM item")
            await rows.next()
            await rows.aclose()
            assert rows.exhausted
            assert await rows.next() is None
            assert await _live_statements(conn) == 0

    @pytest.mark.asyncio
    async def test_context_manager(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 3)
            async with await conn.query("SELECT id FROM item") as rows:
                await rows.next()
            assert await _live_statements(conn) == 0

    @pytest.mark.asyncio
    async def test_drop_mid_iteration_finalizes(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 3)
            rows = await conn.query("SELECT id FROM item")
            await rows.next()
            del rows
            gc.collect()
            # a pending statement on the table would make DROP fail with Locked
            await conn.execute("DROP TABLE item")
            assert await _live_statements(conn) == 0

    @pytest.mark.asyncio
    async def test_next_after_connection_closed(self):
        conn = await litebridge.open()
        await _seeded(conn, 3)
        rows = await conn.query("SELECT id FROM item")
        await conn.close()
        with pytest.raises(ClosedError):
            await rows.next()
        assert await rows.next() is None

    @pytest.mark.asyncio
    async def test_cancelled_query_discards_statement(self):
        async with litebridge.open() as conn:
            await _seeded(conn, 3)
            gate = threading.Event()
            blocker = conn._worker.submit(lambda s: gate.wait(5))
            task = asyncio.create_task(conn.query("SELECT id FROM item"))
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            gate.set()
            await blocker
            await conn.execute("SELECT 1 WHERE 0")
            assert await _live_statements(conn) == 0
