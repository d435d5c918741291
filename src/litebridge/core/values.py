"""
Value model - the five storage classes SQLite can hold.

SQLite is dynamically typed per value: any column may hold any of NULL,
INTEGER, REAL, TEXT or BLOB. ``Value`` is a closed set of frozen dataclasses
mirroring exactly those five classes, so a decoded column value is always one
(and only one) of them.

Conversions follow one rule: **host → Value is total, Value → host is
fallible**. Building a Value from a supported Python object never fails
(except for integers outside the signed 64-bit range, which the engine cannot
store). Reading a Python object back out raises :class:`TypeMismatchError`
when the stored variant is not the one requested. Nothing is coerced across
variants: an ``Integer`` is never silently read as a float and
``Integer(1) != Real(1.0)``.

Examples:
    >>> Value.from_python("first post")
    Text(value='first post')
    >>> Value.from_python(None)
    Null()
    >>> Integer(300).to_int(bits=8)
    Traceback (most recent call last):
    ...
    ValueOutOfRangeError: 300 does not fit in i8

Tags:
    value-model, sqlite, storage-class, conversion, litebridge
"""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar, TypeVar

from litebridge.core.errors import TypeMismatchError, ValueOutOfRangeError

T = TypeVar("T")

I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


def _int_bounds(bits: int, signed: bool) -> tuple[int, int]:
    if bits not in (8, 16, 32, 64):
        raise ValueError(f"unsupported integer width: {bits}")
    if signed:
        return -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
    return 0, 2**bits - 1


@dataclass(frozen=True)
class Value:
    """Base of the closed value variant set. Never instantiated directly."""

    type_name: ClassVar[str] = "value"

    # -- Construction ---------------------------------------------------------

    @staticmethod
    def from_python(obj: Any) -> Value:
        """Convert a host object into its Value variant.

        Supported: ``None``, ``bool``, ``int`` (signed 64-bit range),
        ``float``, ``str``, ``bytes``/``bytearray``/``memoryview`` and
        existing ``Value`` instances (returned unchanged).

        Raises:
            ValueOutOfRangeError: integer outside the signed 64-bit range.
            TypeMismatchError: unsupported host type.
        """
        if isinstance(obj, Value):
            return obj
        if obj is None:
            return NULL
        # bool before int: bool is an int subclass
        if isinstance(obj, bool):
            return Integer(1 if obj else 0)
        if isinstance(obj, int):
            return Integer(obj)
        if isinstance(obj, float):
            return Real(obj)
        if isinstance(obj, str):
            return Text(obj)
        if isinstance(obj, (bytes, bytearray, memoryview)):
            return Blob(bytes(obj))
        raise TypeMismatchError(
            f"cannot convert {type(obj).__name__} to a database value"
        )

    @staticmethod
    def decode(native: Any) -> Value:
        """Decode a value produced by the native engine."""
        if native is None:
            return NULL
        if isinstance(native, int):
            return Integer(native)
        if isinstance(native, float):
            return Real(native)
        if isinstance(native, str):
            return Text(native)
        if isinstance(native, (bytes, bytearray, memoryview)):
            return Blob(bytes(native))
        raise TypeMismatchError(
            f"engine returned unsupported value of type {type(native).__name__}"
        )

    # -- Extraction -----------------------------------------------------------

    @property
    def is_null(self) -> bool:
        return False

    def to_python(self) -> Any:
        """The native Python object for this variant (``None`` for Null)."""
        raise NotImplementedError

    def _mismatch(self, wanted: str) -> TypeMismatchError:
        return TypeMismatchError(f"cannot read {self.type_name} as {wanted}")

    def to_int(self, *, bits: int = 64, signed: bool = True) -> int:
        raise self._mismatch("integer")

    def to_bool(self) -> bool:
        raise self._mismatch("bool")

    def to_float(self) -> float:
        raise self._mismatch("float")

    def to_str(self) -> str:
        raise self._mismatch("str")

    def to_bytes(self) -> bytes:
        raise self._mismatch("bytes")

    def to_optional(self, convert: Callable[[Value], T]) -> T | None:
        """``None`` for Null, otherwise ``convert(self)``.

        >>> Integer(5).to_optional(Value.to_int)
        5
        >>> NULL.to_optional(Value.to_int) is None
        True
        """
        if self.is_null:
            return None
        return convert(self)


@dataclass(frozen=True)
class Null(Value):
    type_name: ClassVar[str] = "null"

    @property
    def is_null(self) -> bool:
        return True

    def to_python(self) -> None:
        return None


@dataclass(frozen=True)
class Integer(Value):
    value: int
    type_name: ClassVar[str] = "integer"

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeMismatchError(f"Integer requires int, got {type(self.value).__name__}")
        if not I64_MIN <= self.value <= I64_MAX:
            raise ValueOutOfRangeError(f"{self.value} does not fit in i64")

    def to_python(self) -> int:
        return self.value

    def to_int(self, *, bits: int = 64, signed: bool = True) -> int:
        low, high = _int_bounds(bits, signed)
        if not low <= self.value <= high:
            prefix = "i" if signed else "u"
            raise ValueOutOfRangeError(f"{self.value} does not fit in {prefix}{bits}")
        return self.value

    def to_bool(self) -> bool:
        return self.value != 0


@dataclass(frozen=True)
class Real(Value):
    value: float
    type_name: ClassVar[str] = "real"

    def __post_init__(self) -> None:
        if not isinstance(self.value, float):
            raise TypeMismatchError(f"Real requires float, got {type(self.value).__name__}")
        if math.isnan(self.value):
            raise TypeMismatchError("NaN cannot be stored; SQLite reads it back as NULL")

    def to_python(self) -> float:
        return self.value

    def to_float(self) -> float:
        return self.value


@dataclass(frozen=True)
class Text(Value):
    value: str
    type_name: ClassVar[str] = "text"

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise TypeMismatchError(f"Text requires str, got {type(self.value).__name__}")

    def to_python(self) -> str:
        return self.value

    def to_str(self) -> str:
        return self.value


@dataclass(frozen=True)
class Blob(Value):
    value: bytes
    type_name: ClassVar[str] = "blob"

    def __post_init__(self) -> None:
        if not isinstance(self.value, bytes):
            raise TypeMismatchError(f"Blob requires bytes, got {type(self.value).__name__}")

    def to_python(self) -> bytes:
        return self.value

    def to_bytes(self) -> bytes:
        return self.value


NULL = Null()


__all__ = [
    "Value",
    "Null",
    "Integer",
    "Real",
    "Text",
    "Blob",
    "NULL",
    "I64_MIN",
    "I64_MAX",
]
