"""Tests for litebridge.core.errors: taxonomy and sqlite3 translation."""

from __future__ import annotations

import sqlite3

import pytest

from litebridge.core.errors import (
    BridgeError,
    BusyError,
    ClosedError,
    ConstraintError,
    ErrorContext,
    ErrorKind,
    LockedError,
    MisuseError,
    OpenError,
    ParameterMismatchError,
    SqlError,
    TypeMismatchError,
    ValueOutOfRangeError,
    WorkerLostError,
    translate,
)


def _native_error(sql: str, setup: str | None = None) -> sqlite3.Error:
    conn = sqlite3.connect(":memory:")
    try:
        if setup:
            conn.executescript(setup)
        conn.execute(sql)
    except sqlite3.Error as exc:
        return exc
    finally:
        conn.close()
    raise AssertionError(f"{sql!r} did not fail")


class TestErrorContext:
    def test_to_dict_skips_unset(self):
        ctx = ErrorContext(path="app.db")
        assert ctx.to_dict() == {"path": "app.db"}

    def test_metadata_merged(self):
        ctx = ErrorContext(sql="SELECT 1", metadata={"worker": "litebridge-1"})
        assert ctx.to_dict() == {"sql": "SELECT 1", "worker": "litebridge-1"}


class TestBridgeError:
    def test_default_kind(self):
        assert BridgeError("x").kind == ErrorKind.SQL
        assert OpenError("x").kind == ErrorKind.OPEN
        assert WorkerLostError("x").kind == ErrorKind.WORKER_LOST

    def test_subclass_kinds(self):
        assert LockedError("x").kind == ErrorKind.LOCKED
        assert isinstance(LockedError("x"), BusyError)
        assert ClosedError("x").kind == ErrorKind.MISUSE
        assert ValueOutOfRangeError("x").kind == ErrorKind.TYPE_MISMATCH

    def test_never_retryable(self):
        assert BusyError("database is locked").retryable is False

    def test_with_context_is_fluent(self):
        err = SqlError("boom").with_context(sql="SELEC 1", operation="execute", attempt=2)
        assert err.context.sql == "SELEC 1"
        assert err.context.operation == "execute"
        assert err.context.metadata == {"attempt": 2}

    def test_to_dict(self):
        cause = ValueError("inner")
        err = ConstraintError(
            "UNIQUE constraint failed: t.a",
            native_code=2067,
            native_name="SQLITE_CONSTRAINT_UNIQUE",
            cause=cause,
        ).with_context(sql="INSERT INTO t VALUES (1)")
        data = err.to_dict()
        assert data["error_type"] == "ConstraintError"
        assert data["kind"] == "CONSTRAINT"
        assert data["native_code"] == 2067
        assert data["context"] == {"sql": "INSERT INTO t VALUES (1)"}
        assert data["cause"] == "inner"
        assert err.__cause__ is cause

    def test_parameter_mismatch_default_message(self):
        err = ParameterMismatchError(expected=2, supplied=1)
        assert str(err) == "statement expects 2 parameter(s), 1 supplied"
        assert err.to_dict()["expected"] == 2
        assert err.kind == ErrorKind.PARAMETER_MISMATCH

    def test_repr(self):
        assert repr(MisuseError("bad")) == "MisuseError('bad', kind=MISUSE)"


class TestTranslateNative:
    def test_syntax_error_is_sql(self):
        err = translate(_native_error("SELEC 1"))
        assert isinstance(err, SqlError)
        assert "syntax error" in err.message
        assert isinstance(err.cause, sqlite3.OperationalError)

    def test_missing_table_is_sql(self):
        err = translate(_native_error("SELECT * FROM nowhere"))
        assert err.kind == ErrorKind.SQL
        assert "no such table" in err.message

    def test_unique_violation_is_constraint(self):
        native = _native_error(
            "INSERT INTO t VALUES (1)",
            setup="CREATE TABLE t (a INTEGER UNIQUE); INSERT INTO t VALUES (1);",
        )
        err = translate(native)
        assert isinstance(err, ConstraintError)
        assert "UNIQUE" in err.message

    def test_not_null_violation_is_constraint(self):
        native = _native_error(
            "INSERT INTO t VALUES (NULL)",
            setup="CREATE TABLE t (a TEXT NOT NULL);",
        )
        assert translate(native).kind == ErrorKind.CONSTRAINT

    def test_wrong_binding_count_is_parameter_mismatch(self):
        conn = sqlite3.connect(":memory:")
        try:
            with pytest.raises(sqlite3.ProgrammingError) as exc_info:
                conn.execute("SELECT ?", (1, 2))
        finally:
            conn.close()
        assert translate(exc_info.value).kind == ErrorKind.PARAMETER_MISMATCH

    def test_closed_database_is_closed_error(self):
        conn = sqlite3.connect(":memory:")
        conn.close()
        with pytest.raises(sqlite3.ProgrammingError) as exc_info:
            conn.execute("SELECT 1")
        assert isinstance(translate(exc_info.value), ClosedError)

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("database is locked", BusyError),
            ("database table is locked", LockedError),
            ("unable to open database file", OpenError),
            ("file is not a database", OpenError),
        ],
    )
    def test_message_hints_without_code(self, message, expected):
        assert type(translate(sqlite3.OperationalError(message))) is expected

    def test_integrity_error_class_fallback(self):
        assert isinstance(translate(sqlite3.IntegrityError("custom")), ConstraintError)

    def test_interface_error_class_fallback(self):
        assert isinstance(translate(sqlite3.InterfaceError("custom")), MisuseError)

    def test_unknown_operational_error_is_sql(self):
        assert type(translate(sqlite3.OperationalError("something odd"))) is SqlError


class TestTranslateOther:
    def test_bridge_error_passes_through(self):
        err = BusyError("locked")
        assert translate(err) is err

    def test_context_merged(self):
        err = translate(sqlite3.OperationalError("database is locked"), path="app.db")
        assert err.context.path == "app.db"

    def test_overflow_is_value_out_of_range(self):
        err = translate(OverflowError("Python int too large to convert to SQLite INTEGER"))
        assert isinstance(err, ValueOutOfRangeError)
        assert isinstance(err, TypeMismatchError)

    def test_arbitrary_exception_is_sql(self):
        err = translate(KeyError("x"))
        assert isinstance(err, SqlError)
        assert err.message.startswith("KeyError")
