"""
Structured error types for litebridge.

Every fallible operation in litebridge raises a subclass of
:class:`BridgeError`. Native ``sqlite3`` exceptions never escape the bridge
untranslated: :func:`translate` maps them onto a closed set of
:class:`ErrorKind` values so callers can match on *what went wrong* without
knowing SQLite result codes.

Manifesto:
    - **Typed taxonomy:** One kind per failure class (open, I/O, busy, ...)
    - **Native diagnostics preserved:** Engine message and result code travel
      with the error
    - **No hidden retries:** ``retryable`` is always False; busy/locked
      conditions are surfaced immediately and retry policy stays with the caller
    - **Error chaining:** The original ``sqlite3`` exception is kept as cause

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                        BridgeError                           │
        │        (kind, message, native_code, context, cause)         │
        ├─────────────────────────────────────────────────────────────┤
        │  OpenError         IoError           SqlError               │
        │  (OPEN)            (IO)              (SQL)                  │
        │                                                              │
        │  BusyError         ConstraintError   ParameterMismatchError │
        │  (BUSY)            (CONSTRAINT)      (PARAMETER_MISMATCH)   │
        │     │                                                        │
        │  LockedError       TypeMismatchError MisuseError            │
        │  (LOCKED)          (TYPE_MISMATCH)   (MISUSE)               │
        │                          │                 │                 │
        │                ValueOutOfRangeError   ClosedError           │
        │                                                              │
        │  WorkerLostError                                             │
        │  (WORKER_LOST)                                               │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> err = translate(sqlite3.IntegrityError("UNIQUE constraint failed: t.a"))
    >>> err.kind
    <ErrorKind.CONSTRAINT: 'CONSTRAINT'>
    >>> isinstance(err, ConstraintError)
    True

Tags:
    error-handling, exception-hierarchy, sqlite, error-context, litebridge
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by the bridge."""

    OPEN = "OPEN"                              # cannot open/create the target
    IO = "IO"                                  # storage I/O failure
    BUSY = "BUSY"                              # database file is locked by another connection
    LOCKED = "LOCKED"                          # table locked within the same connection
    CONSTRAINT = "CONSTRAINT"                  # schema constraint violated
    PARAMETER_MISMATCH = "PARAMETER_MISMATCH"  # placeholder/parameter count disagree
    TYPE_MISMATCH = "TYPE_MISMATCH"            # stored variant does not fit the requested type
    MISUSE = "MISUSE"                          # API used incorrectly
    WORKER_LOST = "WORKER_LOST"                # executor thread is gone
    SQL = "SQL"                                # malformed SQL or generic engine error


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a :class:`BridgeError`.

    Only fields that are set end up in :meth:`to_dict`, so the context can be
    splatted into a structured log event as-is.
    """

    path: str | None = None
    sql: str | None = None
    operation: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["path", "sql", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BridgeError(Exception):
    """
    Base exception for all litebridge errors.

    Attributes:
        message: Human-readable diagnostic (engine text where available)
        kind: :class:`ErrorKind` of this error
        native_code: Extended SQLite result code, if the engine supplied one
        native_name: Symbolic name of ``native_code`` (e.g. ``SQLITE_BUSY``)
        context: :class:`ErrorContext` with path/sql/operation
        cause: The underlying exception, also chained as ``__cause__``
    """

    default_kind: ErrorKind = ErrorKind.SQL

    # Errors raised by the bridge are never retried internally.
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        native_code: int | None = None,
        native_name: str | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.native_code = native_code
        self.native_name = native_name
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BridgeError:
        """
        Add context to this error (fluent API).

        Usage:
            raise translate(exc).with_context(sql=sql, operation="execute")
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "kind": self.kind.value,
            "retryable": self.retryable,
        }
        if self.native_code is not None:
            result["native_code"] = self.native_code
        if self.native_name is not None:
            result["native_name"] = self.native_name
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, kind={self.kind.value})"


# =============================================================================
# ENGINE-SOURCED ERRORS
# =============================================================================


class OpenError(BridgeError):
    """The engine could not open or create the database target."""

    default_kind = ErrorKind.OPEN


class IoError(BridgeError):
    """Underlying storage I/O failure (disk full, corruption, read-only)."""

    default_kind = ErrorKind.IO


class BusyError(BridgeError):
    """The engine could not acquire a lock held by another connection."""

    default_kind = ErrorKind.BUSY


class LockedError(BusyError):
    """A table is locked by a conflicting statement on the same connection."""

    default_kind = ErrorKind.LOCKED


class ConstraintError(BridgeError):
    """A schema constraint (UNIQUE, NOT NULL, CHECK, FOREIGN KEY) was violated."""

    default_kind = ErrorKind.CONSTRAINT


class SqlError(BridgeError):
    """Malformed SQL or a generic engine error."""

    default_kind = ErrorKind.SQL


# =============================================================================
# BRIDGE-SOURCED ERRORS
# =============================================================================


class ParameterMismatchError(BridgeError):
    """Supplied parameter count differs from the statement's placeholder count."""

    default_kind = ErrorKind.PARAMETER_MISMATCH

    def __init__(
        self,
        message: str | None = None,
        *,
        expected: int | None = None,
        supplied: int | None = None,
        **kwargs: Any,
    ):
        if message is None:
            message = f"statement expects {expected} parameter(s), {supplied} supplied"
        super().__init__(message, **kwargs)
        self.expected = expected
        self.supplied = supplied

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.expected is not None:
            result["expected"] = self.expected
        if self.supplied is not None:
            result["supplied"] = self.supplied
        return result


class TypeMismatchError(BridgeError):
    """A value's variant does not match the requested host type."""

    default_kind = ErrorKind.TYPE_MISMATCH


class ValueOutOfRangeError(TypeMismatchError):
    """An integer does not fit the requested width/signedness."""


class MisuseError(BridgeError):
    """The API was used incorrectly."""

    default_kind = ErrorKind.MISUSE


class ClosedError(MisuseError):
    """Operation attempted on a closed connection or cursor."""


class WorkerLostError(BridgeError):
    """The connection's worker thread terminated; the connection must be reopened."""

    default_kind = ErrorKind.WORKER_LOST


# =============================================================================
# TRANSLATION
# =============================================================================

# Primary result codes (low byte of the extended code).
_SQLITE_ERROR = 1
_SQLITE_INTERNAL = 2
_SQLITE_PERM = 3
_SQLITE_BUSY = 5
_SQLITE_LOCKED = 6
_SQLITE_NOMEM = 7
_SQLITE_READONLY = 8
_SQLITE_IOERR = 10
_SQLITE_CORRUPT = 11
_SQLITE_FULL = 13
_SQLITE_CANTOPEN = 14
_SQLITE_PROTOCOL = 15
_SQLITE_TOOBIG = 18
_SQLITE_CONSTRAINT = 19
_SQLITE_MISMATCH = 20
_SQLITE_MISUSE = 21
_SQLITE_AUTH = 23
_SQLITE_RANGE = 25
_SQLITE_NOTADB = 26

_PRIMARY_CODE_MAP: dict[int, type[BridgeError]] = {
    _SQLITE_ERROR: SqlError,
    _SQLITE_INTERNAL: SqlError,
    _SQLITE_PERM: IoError,
    _SQLITE_BUSY: BusyError,
    _SQLITE_LOCKED: LockedError,
    _SQLITE_NOMEM: IoError,
    _SQLITE_READONLY: IoError,
    _SQLITE_IOERR: IoError,
    _SQLITE_CORRUPT: IoError,
    _SQLITE_FULL: IoError,
    _SQLITE_CANTOPEN: OpenError,
    _SQLITE_PROTOCOL: BusyError,
    _SQLITE_TOOBIG: SqlError,
    _SQLITE_CONSTRAINT: ConstraintError,
    _SQLITE_MISMATCH: TypeMismatchError,
    _SQLITE_MISUSE: MisuseError,
    _SQLITE_AUTH: MisuseError,
    _SQLITE_RANGE: ParameterMismatchError,
    _SQLITE_NOTADB: OpenError,
}

# Messages the sqlite3 module raises without a result code.
_MESSAGE_HINTS: tuple[tuple[str, type[BridgeError]], ...] = (
    ("incorrect number of bindings", ParameterMismatchError),
    ("closed database", ClosedError),
    ("closed cursor", ClosedError),
    ("database is locked", BusyError),
    ("database table is locked", LockedError),
    ("unable to open database", OpenError),
    ("not a database", OpenError),
    ("disk i/o error", IoError),
)


def _class_for(exc: sqlite3.Error) -> type[BridgeError]:
    code = getattr(exc, "sqlite_errorcode", None)
    if code is not None:
        mapped = _PRIMARY_CODE_MAP.get(code & 0xFF)
        if mapped is not None:
            return mapped

    lowered = str(exc).lower()
    for hint, error_class in _MESSAGE_HINTS:
        if hint in lowered:
            return error_class

    if isinstance(exc, sqlite3.IntegrityError):
        return ConstraintError
    if isinstance(exc, sqlite3.InterfaceError):
        return MisuseError
    if isinstance(exc, sqlite3.ProgrammingError):
        return MisuseError
    return SqlError


def translate(exc: BaseException, **context: Any) -> BridgeError:
    """Map a native exception onto the bridge taxonomy.

    ``BridgeError`` instances pass through unchanged (context is still
    merged). ``sqlite3`` errors are classified by extended result code first,
    then by message, then by exception class. Anything else becomes a
    :class:`SqlError` carrying the original as cause.
    """
    if isinstance(exc, BridgeError):
        return exc.with_context(**context) if context else exc

    if isinstance(exc, sqlite3.Error):
        error_class = _class_for(exc)
        error = error_class(
            str(exc) or exc.__class__.__name__,
            native_code=getattr(exc, "sqlite_errorcode", None),
            native_name=getattr(exc, "sqlite_errorname", None),
            cause=exc,
        )
    elif isinstance(exc, OverflowError):
        error = ValueOutOfRangeError(str(exc), cause=exc)
    else:
        error = SqlError(f"{exc.__class__.__name__}: {exc}", cause=exc)

    return error.with_context(**context) if context else error


__all__ = [
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
    "translate",
]
