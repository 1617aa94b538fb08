"""Conversion between host scalars and engine values."""

import enum
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Union

from .engine.errors import JSRangeError
from .engine.values import (
    DECIMAL_CONTEXT, NULL, UNDEFINED, JSArray, JSArrayBuffer, JSBigInt,
    JSObject, JSUint8Array, check_bigint, is_callable, normalize_number,
)
from .errors import ConversionError

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1

BytesLike = Union[bytes, bytearray, memoryview]


class ValueKind(enum.Enum):
    """Discriminant of a Value."""

    UNDEFINED = "undefined"
    NULL = "null"
    BOOL = "bool"
    INTEGER = "integer"
    FLOAT = "float"
    STRING = "string"
    BIG_INT = "big_int"
    BIG_DECIMAL = "big_decimal"
    OBJECT = "object"
    FUNCTION = "function"
    EXCEPTION = "exception"


def kind_of(payload: Any) -> ValueKind:
    """Kind of a raw engine value."""
    if payload is UNDEFINED:
        return ValueKind.UNDEFINED
    if payload is NULL:
        return ValueKind.NULL
    if isinstance(payload, bool):
        return ValueKind.BOOL
    if isinstance(payload, int):
        return ValueKind.INTEGER
    if isinstance(payload, float):
        return ValueKind.FLOAT
    if isinstance(payload, str):
        return ValueKind.STRING
    if isinstance(payload, JSBigInt):
        return ValueKind.BIG_INT
    if isinstance(payload, Decimal):
        return ValueKind.BIG_DECIMAL
    if is_callable(payload):
        return ValueKind.FUNCTION
    if isinstance(payload, JSObject):
        return ValueKind.OBJECT
    raise TypeError(f"not an engine value: {payload!r}")


def _type_name(value: Any) -> str:
    return type(value).__name__


def check_unicode(text: str) -> str:
    """Reject strings containing lone surrogates."""
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ConversionError(
            "valid Unicode string", "string with lone surrogate",
            f"code unit U+{ord(text[e.start]):04X} at index {e.start}",
        ) from None
    return text


# ---- Host to engine ----

def from_bool(value: bool) -> bool:
    if not isinstance(value, bool):
        raise ConversionError("bool", _type_name(value))
    return value


def from_int64(value: int) -> Union[int, float]:
    """Integers beyond 2**53 become doubles, as JavaScript numbers are."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConversionError("int", _type_name(value))
    if not INT64_MIN <= value <= INT64_MAX:
        raise ConversionError("int64", "int", f"{value} is out of range")
    return normalize_number(value)


def from_float64(value: float) -> Union[int, float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConversionError("float", _type_name(value))
    return normalize_number(float(value))


def from_string(value: Union[str, BytesLike]) -> str:
    """Accept str, or UTF-8 bytes decoded strictly."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConversionError("UTF-8 bytes", "malformed UTF-8", str(e)) from None
    if not isinstance(value, str):
        raise ConversionError("str", _type_name(value))
    return check_unicode(value)


def from_big_int(value: int) -> JSBigInt:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConversionError("int", _type_name(value))
    try:
        return check_bigint(value)
    except JSRangeError as e:
        raise ConversionError("big_int", "int", e.message) from None


def from_big_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """Round to the engine's decimal precision."""
    if isinstance(value, bool):
        raise ConversionError("decimal", "bool")
    if isinstance(value, Decimal):
        decimal = value
    elif isinstance(value, int):
        decimal = Decimal(value)
    elif isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            decimal = Decimal(str(value).replace("inf", "Infinity"))
        else:
            decimal = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            decimal = Decimal(value.strip())
        except InvalidOperation:
            raise ConversionError("decimal string", "str", repr(value)) from None
    else:
        raise ConversionError("decimal", _type_name(value))
    return DECIMAL_CONTEXT.plus(decimal)


def from_bytes(value: BytesLike) -> bytes:
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise ConversionError("bytes", _type_name(value))
    return bytes(value)


def from_scalar(value: Any) -> Any:
    """Dispatch on the host type; returns the engine value ready to wrap."""
    if value is None:
        return NULL
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if INT64_MIN <= value <= INT64_MAX:
            return from_int64(value)
        return from_big_int(value)
    if isinstance(value, float):
        return from_float64(value)
    if isinstance(value, str):
        return check_unicode(value)
    if isinstance(value, Decimal):
        return from_big_decimal(value)
    raise ConversionError("scalar", _type_name(value))


# ---- Engine to host ----

def to_bool(payload: Any) -> bool:
    if not isinstance(payload, bool):
        raise ConversionError("bool", kind_of(payload).value)
    return payload


def to_int64(payload: Any) -> int:
    """Integral numbers within int64 only; fractions and out-of-range values are rejected."""
    if isinstance(payload, bool) or not isinstance(payload, (int, float)):
        raise ConversionError("integer", kind_of(payload).value)
    if isinstance(payload, float):
        if math.isnan(payload) or math.isinf(payload) or not payload.is_integer():
            raise ConversionError("integer", "float", f"{payload!r} is not integral")
    number = int(payload)
    if not INT64_MIN <= number <= INT64_MAX:
        raise ConversionError("integer", kind_of(payload).value, f"{payload!r} is out of int64 range")
    return number


def to_float64(payload: Any) -> float:
    if isinstance(payload, bool) or not isinstance(payload, (int, float)):
        raise ConversionError("float", kind_of(payload).value)
    return float(payload)


def to_str(payload: Any) -> str:
    if not isinstance(payload, str):
        raise ConversionError("string", kind_of(payload).value)
    return check_unicode(payload)


def to_bytes(payload: Any) -> bytes:
    """Bytes of an ArrayBuffer or Uint8Array, or the UTF-8 encoding of a string."""
    if isinstance(payload, JSArrayBuffer):
        return bytes(payload.data)
    if isinstance(payload, JSUint8Array):
        return bytes(payload.buffer.data)
    if isinstance(payload, str):
        return to_str(payload).encode("utf-8")
    raise ConversionError("array_buffer", kind_of(payload).value)


def to_big_int(payload: Any) -> int:
    if not isinstance(payload, JSBigInt):
        raise ConversionError("big_int", kind_of(payload).value)
    return payload.value


def to_big_decimal(payload: Any) -> Decimal:
    if not isinstance(payload, Decimal):
        raise ConversionError("big_decimal", kind_of(payload).value)
    return payload


def array_length(payload: Any) -> int:
    if not isinstance(payload, JSArray):
        raise ConversionError("array", kind_of(payload).value)
    return payload.length
