"""JavaScript value types."""

import decimal
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional, Union, TYPE_CHECKING

from .errors import JSRangeError

if TYPE_CHECKING:
    from .compiler import CompiledFunction


class JSUndefined:
    """JavaScript undefined value (singleton)."""

    _instance: Optional["JSUndefined"] = None

    def __new__(cls) -> "JSUndefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "undefined"

    def __bool__(self) -> bool:
        return False


class JSNull:
    """JavaScript null value (singleton)."""

    _instance: Optional["JSNull"] = None

    def __new__(cls) -> "JSNull":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "null"

    def __bool__(self) -> bool:
        return False


UNDEFINED = JSUndefined()
NULL = JSNull()


@dataclass(frozen=True)
class JSBigInt:
    """Arbitrary-precision integer (the JavaScript ``bigint`` type)."""

    value: int

    def __repr__(self) -> str:
        return f"{self.value}n"


# Big-decimal arithmetic: 34 significant digits, round half to even,
# no signals raised to Python code.
DECIMAL_CONTEXT = decimal.Context(prec=34, rounding=decimal.ROUND_HALF_EVEN, traps=[])

# Largest BigInt magnitude, in bits.
MAX_BIGINT_BITS = 1 << 20

# Largest dense array.
MAX_ARRAY_LENGTH = 1 << 24

MAX_SAFE_INTEGER = 2 ** 53

JSValue = Union[
    JSUndefined, JSNull, bool, int, float, str, JSBigInt, Decimal, "JSObject",
]


def is_nan(value: Any) -> bool:
    """Check if value is NaN."""
    return isinstance(value, float) and math.isnan(value)


def is_infinity(value: Any) -> bool:
    """Check if value is positive or negative infinity."""
    return isinstance(value, float) and math.isinf(value)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_number(value: Union[int, float]) -> Union[int, float]:
    """Keep integral numbers as Python ints while they are exactly representable."""
    if isinstance(value, float):
        if value.is_integer() and abs(value) <= MAX_SAFE_INTEGER and not (
            value == 0 and math.copysign(1.0, value) < 0
        ):
            return int(value)
        return value
    if abs(value) > MAX_SAFE_INTEGER:
        return float(value)
    return value


def check_bigint(value: int) -> JSBigInt:
    if value.bit_length() > MAX_BIGINT_BITS:
        raise JSRangeError("Maximum BigInt size exceeded")
    return JSBigInt(value)


def js_typeof(value: JSValue) -> str:
    """Return the JavaScript typeof for a value."""
    if value is UNDEFINED:
        return "undefined"
    if value is NULL:
        return "object"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, JSBigInt):
        return "bigint"
    if isinstance(value, Decimal):
        return "bigdecimal"
    if isinstance(value, (JSFunction, JSNativeFunction)):
        return "function"
    return "object"


def to_boolean(value: JSValue) -> bool:
    """Convert a JavaScript value to boolean."""
    if value is UNDEFINED or value is NULL:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return not (is_nan(value) or value == 0)
    if isinstance(value, str):
        return len(value) > 0
    if isinstance(value, JSBigInt):
        return value.value != 0
    if isinstance(value, Decimal):
        return not (value.is_nan() or value.is_zero())
    return True


def string_to_number(text: str) -> Union[int, float]:
    """StringToNumber: whitespace-trimmed decimal, hex, octal or binary text."""
    s = text.strip()
    if s == "":
        return 0
    if s in ("Infinity", "+Infinity"):
        return math.inf
    if s == "-Infinity":
        return -math.inf
    lowered = s.lower()
    for prefix, base in (("0x", 16), ("0o", 8), ("0b", 2)):
        if lowered.startswith(prefix):
            try:
                return normalize_number(int(s[2:], base))
            except ValueError:
                return math.nan
    if "inf" in lowered or "nan" in lowered or "_" in s:
        return math.nan
    try:
        return normalize_number(float(s))
    except ValueError:
        return math.nan


def number_to_string(value: Union[int, float], radix: int = 10) -> str:
    """Number::toString as specified for JavaScript."""
    if isinstance(value, bool):
        value = int(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value == 0:
            return "0"
    if radix != 10:
        return _number_to_radix(value, radix)
    if isinstance(value, int):
        if abs(value) < 10 ** 21:
            return str(value)
        value = float(value)

    sign = "-" if value < 0 else ""
    # Shortest round-tripping digits, as repr produces them.
    digits_tuple = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(str(d) for d in digits_tuple.digits)
    k = len(digits)
    n = digits_tuple.exponent + k

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits
    exponent = n - 1
    exp_text = f"e+{exponent}" if exponent >= 0 else f"e-{-exponent}"
    if k == 1:
        return sign + digits + exp_text
    return sign + digits[0] + "." + digits[1:] + exp_text


def _number_to_radix(value: Union[int, float], radix: int) -> str:
    chars = "0123456789abcdefghijklmnopqrstuvwxyz"
    negative = value < 0
    value = abs(value)
    integer = int(value)
    fraction = value - integer
    out = ""
    while True:
        integer, rem = divmod(integer, radix)
        out = chars[rem] + out
        if integer == 0:
            break
    if fraction:
        out += "."
        for _ in range(52):
            fraction *= radix
            digit = int(fraction)
            out += chars[digit]
            fraction -= digit
            if not fraction:
                break
    return ("-" if negative else "") + out


def decimal_to_string(value: Decimal) -> str:
    """Format a big decimal the way numbers print: plain unless very large or small."""
    if value.is_nan():
        return "NaN"
    if value.is_infinite():
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_zero():
        return "-0" if value.is_signed() else "0"
    value = value.normalize(DECIMAL_CONTEXT)
    if -7 < value.adjusted() < 21:
        return format(value, "f")
    return format(value, "e").replace("E", "e")


def primitive_to_string(value: JSValue) -> str:
    """ToString for primitive values."""
    if value is UNDEFINED:
        return "undefined"
    if value is NULL:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return number_to_string(value)
    if isinstance(value, str):
        return value
    if isinstance(value, JSBigInt):
        return str(value.value)
    if isinstance(value, Decimal):
        return decimal_to_string(value)
    raise TypeError(f"not a primitive: {value!r}")


def to_int32(value: Union[int, float]) -> int:
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return 0
        value = int(value)
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def to_uint32(value: Union[int, float]) -> int:
    return to_int32(value) & 0xFFFFFFFF


def utf16_length(text: str) -> int:
    """Length of a string in UTF-16 code units."""
    return len(text) + sum(1 for ch in text if ord(ch) > 0xFFFF)


def array_index(key: str) -> Optional[int]:
    """Return the integer value of a canonical array-index key, or None."""
    if key.isdigit() and (key == "0" or key[0] != "0"):
        index = int(key)
        if index < 0xFFFFFFFF:
            return index
    return None


@dataclass
class Accessor:
    """Getter/setter pair stored in place of a data property."""

    getter: Optional["JSObject"] = None
    setter: Optional["JSObject"] = None


@dataclass
class ClosureCell:
    """A cell for a captured variable, shared between scopes."""

    value: JSValue


class JSObject:
    """JavaScript object.

    Properties are kept in insertion order; accessor properties are stored as
    :class:`Accessor` entries. Non-enumerable keys are recorded in ``_hidden``.
    """

    def __init__(self, prototype: Optional["JSObject"] = None, class_name: str = "Object"):
        self._properties: Dict[str, Any] = {}
        self._hidden: set = set()
        self._prototype = prototype
        self.class_name = class_name

    def has_own(self, key: str) -> bool:
        return key in self._properties

    def own_entry(self, key: str) -> Any:
        """Raw own property: a value, an Accessor, or None when absent."""
        return self._properties.get(key)

    def find(self, key: str) -> Optional["JSObject"]:
        """Return the object on the prototype chain that owns key."""
        obj: Optional[JSObject] = self
        while obj is not None:
            if obj.has_own(key):
                return obj
            obj = obj._prototype
        return None

    def put(self, key: str, value: JSValue) -> None:
        """Set an own data property, keeping its enumerability."""
        self._properties[key] = value

    def define(self, key: str, value: Any, enumerable: bool = True) -> None:
        self._properties[key] = value
        if enumerable:
            self._hidden.discard(key)
        else:
            self._hidden.add(key)

    def define_accessor(self, key: str, getter=None, setter=None, enumerable: bool = True) -> None:
        current = self._properties.get(key)
        if isinstance(current, Accessor):
            getter = getter or current.getter
            setter = setter or current.setter
        self.define(key, Accessor(getter, setter), enumerable)

    def delete(self, key: str) -> bool:
        self._properties.pop(key, None)
        self._hidden.discard(key)
        return True

    def is_enumerable(self, key: str) -> bool:
        return self.has_own(key) and key not in self._hidden

    def own_keys(self, enumerable_only: bool = True) -> List[str]:
        """Own property keys: integer-like keys ascending, then strings in insertion order."""
        keys = [k for k in self._properties if not (enumerable_only and k in self._hidden)]
        indexed = sorted((k for k in keys if array_index(k) is not None), key=int)
        named = [k for k in keys if array_index(k) is None]
        return indexed + named

    def __repr__(self) -> str:
        return f"JSObject({self.class_name})"


class JSArray(JSObject):
    """JavaScript array backed by a dense Python list."""

    def __init__(self, elements: Optional[List[JSValue]] = None, prototype: Optional[JSObject] = None):
        super().__init__(prototype, "Array")
        self._elements: List[JSValue] = list(elements) if elements else []

    @property
    def length(self) -> int:
        return len(self._elements)

    def set_length(self, value: int) -> None:
        if value > MAX_ARRAY_LENGTH:
            raise JSRangeError("Invalid array length")
        if value < len(self._elements):
            del self._elements[value:]
        else:
            self._elements.extend([UNDEFINED] * (value - len(self._elements)))

    def has_own(self, key: str) -> bool:
        index = array_index(key)
        if index is not None:
            return index < len(self._elements)
        return key == "length" or key in self._properties

    def own_entry(self, key: str) -> Any:
        index = array_index(key)
        if index is not None:
            return self._elements[index] if index < len(self._elements) else None
        if key == "length":
            return len(self._elements)
        return self._properties.get(key)

    def put(self, key: str, value: JSValue) -> None:
        index = array_index(key)
        if index is not None:
            self.set_index(index, value)
        elif key == "length":
            self.set_length(_array_length(value))
        else:
            self._properties[key] = value

    def define(self, key: str, value: Any, enumerable: bool = True) -> None:
        if array_index(key) is not None or key == "length":
            self.put(key, value)
        else:
            super().define(key, value, enumerable)

    def delete(self, key: str) -> bool:
        index = array_index(key)
        if index is not None:
            if index < len(self._elements):
                self._elements[index] = UNDEFINED
            return True
        if key == "length":
            return False
        return super().delete(key)

    def is_enumerable(self, key: str) -> bool:
        if key == "length":
            return False
        return super().is_enumerable(key) if array_index(key) is None else self.has_own(key)

    def own_keys(self, enumerable_only: bool = True) -> List[str]:
        keys = [str(i) for i in range(len(self._elements))]
        if not enumerable_only:
            keys.append("length")
        return keys + super().own_keys(enumerable_only)

    def get_index(self, index: int) -> JSValue:
        if 0 <= index < len(self._elements):
            return self._elements[index]
        return UNDEFINED

    def set_index(self, index: int, value: JSValue) -> None:
        if index >= len(self._elements):
            self.set_length(index + 1)
        self._elements[index] = value

    def __repr__(self) -> str:
        return f"JSArray({self._elements})"


def _array_length(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise JSRangeError("Invalid array length")
    if isinstance(value, float) and not value.is_integer() or value < 0:
        raise JSRangeError("Invalid array length")
    return int(value)


class JSFunction(JSObject):
    """A JavaScript function closure over compiled bytecode."""

    def __init__(
        self,
        compiled: "CompiledFunction",
        closure_cells: List[ClosureCell],
        prototype: Optional[JSObject] = None,
        bound_this: Any = None,
    ):
        super().__init__(prototype, "Function")
        self.compiled = compiled
        self.closure_cells = closure_cells
        # Arrow functions capture the enclosing this.
        self.bound_this = bound_this
        self.define("length", len(compiled.params), enumerable=False)
        self.define("name", compiled.name, enumerable=False)

    @property
    def name(self) -> str:
        return self.compiled.name

    @property
    def is_constructor(self) -> bool:
        return not self.compiled.is_arrow

    def __repr__(self) -> str:
        return f"[Function: {self.name}]" if self.name else "[Function (anonymous)]"


class JSNativeFunction(JSObject):
    """A function implemented in Python.

    ``fn`` receives ``(this, args)``. When ``construct`` is given, ``new``
    calls it with ``(args, new_target)`` and uses the returned object.
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[JSValue, List[JSValue]], JSValue],
        length: int = 0,
        prototype: Optional[JSObject] = None,
        construct: Optional[Callable[[List[JSValue], JSObject], JSValue]] = None,
    ):
        super().__init__(prototype, "Function")
        self.name = name
        self.fn = fn
        self.construct = construct
        self.define("length", length, enumerable=False)
        self.define("name", name, enumerable=False)

    @property
    def is_constructor(self) -> bool:
        return self.construct is not None

    def __repr__(self) -> str:
        return f"[Function: {self.name}]"


class JSArrayBuffer(JSObject):
    """Raw binary data (ArrayBuffer)."""

    def __init__(self, data: Union[bytes, bytearray] = b"", prototype: Optional[JSObject] = None):
        super().__init__(prototype, "ArrayBuffer")
        self.data = bytearray(data)

    def has_own(self, key: str) -> bool:
        return key == "byteLength" or key in self._properties

    def own_entry(self, key: str) -> Any:
        if key == "byteLength":
            return len(self.data)
        return self._properties.get(key)

    def __repr__(self) -> str:
        return f"JSArrayBuffer({bytes(self.data)!r})"


class JSUint8Array(JSObject):
    """A Uint8Array view over an ArrayBuffer."""

    def __init__(self, buffer: JSArrayBuffer, prototype: Optional[JSObject] = None):
        super().__init__(prototype, "Uint8Array")
        self.buffer = buffer

    def has_own(self, key: str) -> bool:
        index = array_index(key)
        if index is not None:
            return index < len(self.buffer.data)
        return key in ("length", "buffer") or key in self._properties

    def own_entry(self, key: str) -> Any:
        index = array_index(key)
        if index is not None:
            return self.buffer.data[index] if index < len(self.buffer.data) else None
        if key == "length":
            return len(self.buffer.data)
        if key == "buffer":
            return self.buffer
        return self._properties.get(key)

    def put(self, key: str, value: JSValue) -> None:
        index = array_index(key)
        if index is None:
            self._properties[key] = value
        elif index < len(self.buffer.data):
            number = value if isinstance(value, (int, float)) and not isinstance(value, bool) else 0
            self.buffer.data[index] = to_uint32(number) & 0xFF

    def is_enumerable(self, key: str) -> bool:
        if array_index(key) is not None:
            return self.has_own(key)
        return key not in ("length", "buffer") and super().is_enumerable(key)

    def own_keys(self, enumerable_only: bool = True) -> List[str]:
        return [str(i) for i in range(len(self.buffer.data))] + super().own_keys(enumerable_only)


def is_callable(value: Any) -> bool:
    return isinstance(value, (JSFunction, JSNativeFunction))


def is_error(value: Any) -> bool:
    return isinstance(value, JSObject) and value.class_name == "Error"


def iter_prototypes(obj: Optional[JSObject]) -> Iterator[JSObject]:
    while obj is not None:
        yield obj
        obj = obj._prototype
