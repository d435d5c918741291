"""Statement binder - placeholders in, bound native statement out.

SQL text is scanned once for parameter markers. Two forms are accepted:

- numbered: ``$1``, ``$2`` … (and SQLite's own ``?1``, ``?2`` …). The
  required parameter count is the highest number used; a number may appear
  more than once.
- anonymous: ``?``. The required count is the number of markers.

String literals, identifiers and comments are skipped, so
``SELECT '$1', "?", a$1`` has no parameters. ``$N`` markers are rewritten to the
engine's native ``?N`` form; parameters are converted to :class:`Value`
first and then to the native object of the same variant, without any
cross-variant coercion.

Example::

    bound = bind("INSERT INTO post (title, author) VALUES ($1, $2)",
                 ["first post", None])
    bound.sql         # 'INSERT INTO post (title, author) VALUES (?1, ?2)'
    bound.parameters  # ('first post', None)
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from litebridge.core.errors import ParameterMismatchError
from litebridge.core.values import Value

_QUOTES = {"'": "'", '"': '"', "`": "`", "[": "]"}


@dataclass(frozen=True)
class ParsedStatement:
    """SQL rewritten to native placeholder syntax plus its parameter count."""

    sql: str
    parameter_count: int
    numbered: bool


@dataclass(frozen=True)
class BoundStatement:
    """Native SQL plus native parameter objects, ready for the worker."""

    sql: str
    parameters: tuple[Any, ...]
    values: tuple[Value, ...]

    @property
    def parameter_count(self) -> int:
        return len(self.parameters)


@lru_cache(maxsize=256)
def parse_placeholders(sql: str) -> ParsedStatement:
    """Scan ``sql`` for parameter markers.

    Raises:
        ParameterMismatchError: anonymous and numbered markers are mixed, or
            a numbered marker is ``0``.
    """
    out: list[str] = []
    anonymous = 0
    highest = 0
    i = 0
    n = len(sql)

    while i < n:
        ch = sql[i]

        if ch in _QUOTES:
            close = _QUOTES[ch]
            j = i + 1
            while j < n:
                if sql[j] == close:
                    # doubled quote is an escaped quote
                    if close != "]" and j + 1 < n and sql[j + 1] == close:
                        j += 2
                        continue
                    break
                j += 1
            out.append(sql[i:j + 1])
            i = j + 1
            continue

        if ch == "-" and sql.startswith("--", i):
            j = sql.find("\n", i)
            j = n if j == -1 else j
            out.append(sql[i:j])
            i = j
            continue

        if ch == "/" and sql.startswith("/*", i):
            j = sql.find("*/", i + 2)
            j = n if j == -1 else j + 2
            out.append(sql[i:j])
            i = j
            continue

        if ch.isalpha() or ch == "_":
            # bare identifier; SQLite allows '$' inside one, as in a$1
            j = i + 1
            while j < n and (sql[j].isalnum() or sql[j] in "_$"):
                j += 1
            out.append(sql[i:j])
            i = j
            continue

        if ch in "$?":
            j = i + 1
            while j < n and sql[j].isdigit():
                j += 1
            digits = sql[i + 1:j]
            if digits:
                number = int(digits)
                if number == 0:
                    raise ParameterMismatchError(
                        f"placeholder {ch}0 is invalid; numbering starts at 1"
                    ).with_context(sql=sql)
                highest = max(highest, number)
                out.append(f"?{number}")
                i = j
                continue
            if ch == "?":
                anonymous += 1
                out.append("?")
                i += 1
                continue

        out.append(ch)
        i += 1

    if anonymous and highest:
        raise ParameterMismatchError(
            "cannot mix anonymous '?' and numbered placeholders in one statement"
        ).with_context(sql=sql)

    if highest:
        return ParsedStatement(sql="".join(out), parameter_count=highest, numbered=True)
    return ParsedStatement(sql="".join(out), parameter_count=anonymous, numbered=False)


def to_values(params: Iterable[Any] | None) -> tuple[Value, ...]:
    """Convert host parameters to Values (total for supported types)."""
    if params is None:
        return ()
    if isinstance(params, (str, bytes, bytearray, memoryview)):
        raise ParameterMismatchError(
            f"parameters must be a sequence of values, not {type(params).__name__}"
        )
    return tuple(Value.from_python(p) for p in params)


def bind(sql: str, params: Sequence[Any] | None = ()) -> BoundStatement:
    """Parse ``sql``, check the parameter count and convert every parameter.

    Raises:
        ParameterMismatchError: ``len(params)`` differs from the placeholder count.
        TypeMismatchError: a parameter has no Value representation.
    """
    parsed = parse_placeholders(sql)
    values = to_values(params)
    if len(values) != parsed.parameter_count:
        raise ParameterMismatchError(
            expected=parsed.parameter_count,
            supplied=len(values),
        ).with_context(sql=sql)
    return BoundStatement(
        sql=parsed.sql,
        parameters=tuple(v.to_python() for v in values),
        values=values,
    )


__all__ = [
    "ParsedStatement",
    "BoundStatement",
    "parse_placeholders",
    "to_values",
    "bind",
]
