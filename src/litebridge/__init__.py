"""
litebridge - non-blocking asyncio access to SQLite.

SQLite's API blocks and a connection handle must not be shared across
threads. litebridge gives each connection one dedicated worker thread,
serializes every operation on it in FIFO order, and hands results back to the
event loop, so coroutines can use an embedded database without stalling the
loop.

Architecture::

    Layer 1 -- Values & Errors
        core/values.py       Value variants (Null, Integer, Real, Text, Blob)
        core/errors.py       ErrorKind taxonomy + sqlite3 translation
        core/engine.py       Process-wide engine facts (idempotent init)
        core/paths.py        Path / URL / in-memory token resolution
        core/settings.py     BridgeSettings (pydantic-settings)
        core/logging.py      structlog configuration

    Layer 2 -- Bridge
        execution/worker.py  ConnectionWorker: one thread per connection
        binder.py            Placeholder parsing + parameter binding
        rows.py              Row / Rows cursor
        operations.py        execute / query work items
        connection.py        Connection + open()
        transaction.py       Transaction

Example::

    import litebridge

    async with litebridge.open(":memory:") as conn:
        await conn.execute("CREATE TABLE t (a INTEGER)")
        await conn.execute("INSERT INTO t VALUES ($1)", [42])
        row = await conn.query_row("SELECT a FROM t")
        assert row.get("a") == litebridge.Integer(42)
"""

__version__ = "0.1.0"

from litebridge.connection import Connection, connect, open
from litebridge.core.errors import (
    BridgeError,
    BusyError,
    ClosedError,
    ConstraintError,
    ErrorContext,
    ErrorKind,
    IoError,
    LockedError,
    MisuseError,
    OpenError,
    ParameterMismatchError,
    SqlError,
    TypeMismatchError,
    ValueOutOfRangeError,
    WorkerLostError,
)
from litebridge.core.logging import configure_logging
from litebridge.core.paths import MEMORY
from litebridge.core.settings import BridgeSettings
from litebridge.core.values import NULL, Blob, Integer, Null, Real, Text, Value
from litebridge.operations import Status
from litebridge.rows import Row, Rows
from litebridge.transaction import Transaction, TransactionBehavior

__all__ = [
    "__version__",
    # connection
    "open",
    "connect",
    "Connection",
    "Transaction",
    "TransactionBehavior",
    "Rows",
    "Row",
    "Status",
    "MEMORY",
    "BridgeSettings",
    "configure_logging",
    # values
    "Value",
    "Null",
    "NULL",
    "Integer",
    "Real",
    "Text",
    "Blob",
    # errors
    "ErrorKind",
    "ErrorContext",
    "BridgeError",
    "OpenError",
    "IoError",
    "BusyError",
    "LockedError",
    "ConstraintError",
    "SqlError",
    "ParameterMismatchError",
    "TypeMismatchError",
    "ValueOutOfRangeError",
    "MisuseError",
    "ClosedError",
    "WorkerLostError",
]
