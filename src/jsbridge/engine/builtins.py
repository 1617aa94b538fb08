"""Standard library objects installed into every realm."""

import json
import math
import random
import re
import struct
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import cmp_to_key
from typing import Any, Callable, List, Optional, TYPE_CHECKING

from .compiler import compile_source
from .errors import JSRangeError, JSSyntaxError, JSTypeError
from .values import (
    DECIMAL_CONTEXT, MAX_ARRAY_LENGTH, NULL, UNDEFINED, JSArray, JSArrayBuffer,
    JSBigInt, JSFunction, JSNativeFunction, JSObject, JSUint8Array, JSValue,
    check_bigint, is_callable, is_nan, js_typeof, normalize_number,
    number_to_string, to_boolean, to_int32, to_uint32,
)
from .vm import number_pow, strict_equals

if TYPE_CHECKING:
    from .realm import Realm

ERROR_NAMES = ("Error", "TypeError", "ReferenceError", "SyntaxError", "RangeError", "InternalError")

_PRIMITIVE_TAGS = {
    "number": "Number",
    "string": "String",
    "boolean": "Boolean",
    "bigint": "BigInt",
    "bigdecimal": "BigDecimal",
}

_FLOAT_PREFIX =re.compile(r"[+-]?(?:Infinity|\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)")
_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def install(realm: "Realm") -> None:
    """Populate the realm's prototypes and global object."""
    Intrinsics(realm).install()


def _arg(args: List[JSValue], index: int) -> JSValue:
    return args[index] if index < len(args) else UNDEFINED


def to_integer(value: Any) -> Any:
    """ToIntegerOrInfinity for an already numeric value."""
    if is_nan(value):
        return 0
    if isinstance(value, float) and math.isinf(value):
        return value
    return int(value)


def relative_index(value: Any, length: int) -> int:
    """Resolve a possibly negative start/end argument against length."""
    if isinstance(value, float) and math.isinf(value):
        return 0 if value < 0 else length
    if value < 0:
        return max(length + value, 0)
    return min(value, length)


def parse_int(text: str, radix: int) -> Any:
    s = text.strip()
    sign = 1
    if s[:1] in ("+", "-"):
        if s[0] == "-":
            sign = -1
        s = s[1:]
    if radix == 0:
        radix = 10
        if s[:2].lower() == "0x":
            radix = 16
            s = s[2:]
    elif radix == 16 and s[:2].lower() == "0x":
        s = s[2:]
    if not 2 <= radix <= 36:
        return math.nan
    end = 0
    while end < len(s) and s[end].lower() in _DIGITS[:radix]:
        end += 1
    if end == 0:
        return math.nan
    return normalize_number(sign * int(s[:end], radix))


def parse_float(text: str) -> Any:
    match = _FLOAT_PREFIX.match(text.strip())
    if match is None:
        return math.nan
    literal = match.group(0)
    if literal.lstrip("+-") == "Infinity":
        return -math.inf if literal.startswith("-") else math.inf
    return normalize_number(float(literal))


class Intrinsics:
    """Builds the builtin constructors, prototypes and global functions."""

    def __init__(self, realm: "Realm"):
        self.realm = realm

    def install(self) -> None:
        realm = self.realm
        glob = realm.global_object
        self._setup_object_prototype()
        self._setup_function_prototype()

        define = glob.define
        define("globalThis", glob, enumerable=False)
        define("undefined", UNDEFINED, enumerable=False)
        define("NaN", math.nan, enumerable=False)
        define("Infinity", math.inf, enumerable=False)

        define("Object", self._create_object_constructor(), enumerable=False)
        define("Function", self._create_function_constructor(), enumerable=False)
        define("Array", self._create_array_constructor(), enumerable=False)
        for name in ERROR_NAMES:
            define(name, self._create_error_constructor(name), enumerable=False)
        define("Math", self._create_math_object(), enumerable=False)
        define("JSON", self._create_json_object(), enumerable=False)
        define("Number", self._create_number_constructor(), enumerable=False)
        define("String", self._create_string_constructor(), enumerable=False)
        define("Boolean", self._create_boolean_constructor(), enumerable=False)
        define("BigInt", self._create_bigint_constructor(), enumerable=False)
        define("BigDecimal", self._create_bigdecimal_constructor(), enumerable=False)
        define("ArrayBuffer", self._create_arraybuffer_constructor(), enumerable=False)
        define("Uint8Array", self._create_uint8array_constructor(), enumerable=False)

        number = glob.own_entry("Number")
        define("parseInt", number.own_entry("parseInt"), enumerable=False)
        define("parseFloat", number.own_entry("parseFloat"), enumerable=False)
        self._method(glob, "isNaN", lambda this, args: is_nan(realm.to_number(_arg(args, 0))), 1)
        self._method(glob, "isFinite", lambda this, args: _is_finite(realm.to_number(_arg(args, 0))), 1)
        self._method(glob, "eval", self._global_eval, 1)

    # ---- Helpers ----

    def _method(self, obj: JSObject, name: str, fn: Callable, length: int = 0) -> JSNativeFunction:
        native = self.realm.native_function(name, fn, length)
        obj.define(name, native, enumerable=False)
        return native

    def _constructor(
        self, name: str, fn: Callable, length: int, prototype: JSObject,
        construct: Optional[Callable] = None,
    ) -> JSNativeFunction:
        ctor = self.realm.native_function(name, fn, length, construct)
        ctor.define("prototype", prototype, enumerable=False)
        prototype.define("constructor", ctor, enumerable=False)
        return ctor

    def _this_array(self, this: JSValue, method: str) -> JSArray:
        if not isinstance(this, JSArray):
            raise JSTypeError(f"Array.prototype.{method} called on non-array")
        return this

    def _this_string(self, this: JSValue, method: str) -> str:
        if this is UNDEFINED or this is NULL:
            raise JSTypeError(f"String.prototype.{method} called on null or undefined")
        return self.realm.to_string(this)

    def _integer_arg(self, args: List[JSValue], index: int, default: Any = 0) -> Any:
        if index >= len(args) or args[index] is UNDEFINED:
            return default
        return to_integer(self.realm.to_number(args[index]))

    def _callback(self, args: List[JSValue], method: str) -> JSValue:
        fn = _arg(args, 0)
        if not is_callable(fn):
            raise JSTypeError(f"{method}: {self.realm.describe(fn)} is not a function")
        return fn

    # ---- Object ----

    def _setup_object_prototype(self) -> None:
        realm = self.realm
        proto = realm.object_prototype

        def to_string_fn(this, args):
            if this is UNDEFINED:
                return "[object Undefined]"
            if this is NULL:
                return "[object Null]"
            if isinstance(this, JSObject):
                return f"[object {this.class_name}]"
            return f"[object {_PRIMITIVE_TAGS[js_typeof(this)]}]"

        def has_own_property(this, args):
            key = realm.to_property_key(_arg(args, 0))
            return isinstance(this, JSObject) and this.has_own(key)

        def property_is_enumerable(this, args):
            key = realm.to_property_key(_arg(args, 0))
            return isinstance(this, JSObject) and this.is_enumerable(key)

        def is_prototype_of(this, args):
            value = _arg(args, 0)
            if not isinstance(value, JSObject):
                return False
            current = value._prototype
            while current is not None:
                if current is this:
                    return True
                current = current._prototype
            return False

        self._method(proto, "toString", to_string_fn)
        self._method(proto, "valueOf", lambda this, args: this)
        self._method(proto, "hasOwnProperty", has_own_property, 1)
        self._method(proto, "propertyIsEnumerable", property_is_enumerable, 1)
        self._method(proto, "isPrototypeOf", is_prototype_of, 1)

    def _create_object_constructor(self) -> JSNativeFunction:
        """Create the Object constructor with static methods."""
        realm = self.realm

        def object_call(this, args):
            value = _arg(args, 0)
            if isinstance(value, JSObject):
                return value
            return realm.new_object()

        def target(args, method):
            obj = _arg(args, 0)
            if obj is UNDEFINED or obj is NULL:
                raise JSTypeError(f"Object.{method} called on null or undefined")
            return obj

        def own_keys(obj):
            if isinstance(obj, str):
                return [str(i) for i in range(len(obj))]
            if isinstance(obj, JSObject):
                return obj.own_keys()
            return []

        def keys_fn(this, args):
            return realm.new_array(own_keys(target(args, "keys")))

        def values_fn(this, args):
            obj = target(args, "values")
            return realm.new_array([realm.get_property(obj, k) for k in own_keys(obj)])

        def entries_fn(this, args):
            obj = target(args, "entries")
            return realm.new_array([
                realm.new_array([k, realm.get_property(obj, k)]) for k in own_keys(obj)
            ])

        def assign_fn(this, args):
            dest = target(args, "assign")
            for source in args[1:]:
                if isinstance(source, JSObject):
                    for key in source.own_keys():
                        realm.set_property(dest, key, realm.get_property(source, key))
            return dest

        def create_fn(this, args):
            proto = _arg(args, 0)
            if proto is not NULL and not isinstance(proto, JSObject):
                raise JSTypeError("Object prototype may only be an Object or null")
            return JSObject(None if proto is NULL else proto)

        def get_prototype_of(this, args):
            obj = target(args, "getPrototypeOf")
            if isinstance(obj, JSObject):
                proto = obj._prototype
            else:
                proto = realm.prototype_for(obj, "")
            return NULL if proto is None else proto

        def set_prototype_of(this, args):
            obj = target(args, "setPrototypeOf")
            proto = _arg(args, 1)
            if proto is not NULL and not isinstance(proto, JSObject):
                raise JSTypeError("Object prototype may only be an Object or null")
            if isinstance(obj, JSObject):
                current = None if proto is NULL else proto
                while current is not None:
                    if current is obj:
                        raise JSTypeError("circular prototype chain")
                    current = current._prototype
                obj._prototype = None if proto is NULL else proto
            return obj

        def define_property(this, args):
            obj = _arg(args, 0)
            descriptor = _arg(args, 2)
            if not isinstance(obj, JSObject):
                raise JSTypeError("Object.defineProperty called on non-object")
            if not isinstance(descriptor, JSObject):
                raise JSTypeError("property descriptor must be an object")
            key = realm.to_property_key(_arg(args, 1))
            enumerable = to_boolean(realm.get_property(descriptor, "enumerable"))
            getter = realm.get_property(descriptor, "get")
            setter = realm.get_property(descriptor, "set")
            if getter is not UNDEFINED or setter is not UNDEFINED:
                for accessor in (getter, setter):
                    if accessor is not UNDEFINED and not is_callable(accessor):
                        raise JSTypeError("invalid getter or setter")
                obj.define_accessor(
                    key,
                    getter if getter is not UNDEFINED else None,
                    setter if setter is not UNDEFINED else None,
                    enumerable,
                )
            else:
                obj.define(key, realm.get_property(descriptor, "value"), enumerable)
            return obj

        def get_own_property_names(this, args):
            obj = target(args, "getOwnPropertyNames")
            if isinstance(obj, JSObject):
                return realm.new_array(obj.own_keys(enumerable_only=False))
            return realm.new_array(own_keys(obj))

        ctor = self._constructor(
            "Object", object_call, 1, realm.object_prototype,
            construct=lambda args, new_target: object_call(UNDEFINED, args),
        )
        self._method(ctor, "keys", keys_fn, 1)
        self._method(ctor, "values", values_fn, 1)
        self._method(ctor, "entries", entries_fn, 1)
        self._method(ctor, "assign", assign_fn, 2)
        self._method(ctor, "create", create_fn, 2)
        self._method(ctor, "getPrototypeOf", get_prototype_of, 1)
        self._method(ctor, "setPrototypeOf", set_prototype_of, 2)
        self._method(ctor, "defineProperty", define_property, 3)
        self._method(ctor, "getOwnPropertyNames", get_own_property_names, 1)
        return ctor

    # ---- Function ----

    def _setup_function_prototype(self) -> None:
        realm = self.realm
        proto = realm.function_prototype

        def this_function(this, method):
            if not is_callable(this):
                raise JSTypeError(f"Function.prototype.{method} called on non-function")
            return this

        def call_fn(this, args):
            return realm.call(this_function(this, "call"), _arg(args, 0), list(args[1:]))

        def apply_fn(this, args):
            fn = this_function(this, "apply")
            arg_list = _arg(args, 1)
            if arg_list is UNDEFINED or arg_list is NULL:
                values = []
            elif isinstance(arg_list, JSArray):
                values = list(arg_list._elements)
            else:
                raise JSTypeError("CreateListFromArrayLike called on non-object")
            return realm.call(fn, _arg(args, 0), values)

        def bind_fn(this, args):
            fn = this_function(this, "bind")
            bound_this = _arg(args, 0)
            bound_args = list(args[1:])

            def bound_call(_this, call_args):
                return realm.call(fn, bound_this, bound_args + list(call_args))

            construct = None
            if getattr(fn, "is_constructor", False):
                def construct(call_args, new_target):
                    return realm.construct(fn, bound_args + list(call_args))

            length = realm.get_property(fn, "length")
            length = max(length - len(bound_args), 0) if isinstance(length, int) else 0
            return realm.native_function(f"bound {fn.name}", bound_call, length, construct)

        def to_string_fn(this, args):
            fn = this_function(this, "toString")
            return f"function {fn.name}() {{\n    [native code]\n}}"

        self._method(proto, "call", call_fn, 1)
        self._method(proto, "apply", apply_fn, 2)
        self._method(proto, "bind", bind_fn, 1)
        self._method(proto, "toString", to_string_fn)

    def _create_function_constructor(self) -> JSNativeFunction:
        realm = self.realm

        def function_call(this, args):
            strings = [realm.to_string(a) for a in args]
            params = ", ".join(strings[:-1])
            body = strings[-1] if strings else ""
            source = f"(function anonymous({params}\n) {{\n{body}\n}})"
            return realm.evaluate(compile_source(source, "<function>"))

        return self._constructor(
            "Function", function_call, 1, realm.function_prototype,
            construct=lambda args, new_target: function_call(UNDEFINED, args),
        )

    def _global_eval(self, this, args):
        source = _arg(args, 0)
        if not isinstance(source, str):
            return source
        return self.realm.evaluate(compile_source(source, "<eval>"))

    # ---- Array ----

    def _create_array_constructor(self) -> JSNativeFunction:
        """Create the Array constructor and Array.prototype."""
        realm = self.realm
        proto = realm.array_prototype

        def array_call(this, args):
            if len(args) == 1 and isinstance(args[0], (int, float)) and not isinstance(args[0], bool):
                length = args[0]
                if is_nan(length) or length < 0 or length != int(length) or length > MAX_ARRAY_LENGTH:
                    raise JSRangeError("Invalid array length")
                realm.runtime.check_allocation(int(length) * 8)
                return realm.new_array([UNDEFINED] * int(length))
            return realm.new_array(list(args))

        def is_array(this, args):
            return isinstance(_arg(args, 0), JSArray)

        def from_fn(this, args):
            source = _arg(args, 0)
            if isinstance(source, JSArray):
                items = list(source._elements)
            elif isinstance(source, str):
                items = list(source)
            elif isinstance(source, JSUint8Array):
                items = list(source.buffer.data)
            elif isinstance(source, JSObject):
                length = to_integer(realm.to_number(realm.get_property(source, "length")))
                items = [realm.get_property(source, i) for i in range(int(max(length, 0)))]
            else:
                items = []
            mapper = _arg(args, 1)
            if is_callable(mapper):
                items = [realm.call(mapper, UNDEFINED, [item, i]) for i, item in enumerate(items)]
            return realm.new_array(items)

        ctor = self._constructor(
            "Array", array_call, 1, proto,
            construct=lambda args, new_target: array_call(UNDEFINED, args),
        )
        self._method(ctor, "isArray", is_array, 1)
        self._method(ctor, "from", from_fn, 1)
        self._setup_array_prototype(proto)
        return ctor

    def _setup_array_prototype(self, proto: JSObject) -> None:
        realm = self.realm

        def push(this, args):
            arr = self._this_array(this, "push")
            if arr.length + len(args) > MAX_ARRAY_LENGTH:
                raise JSRangeError("Invalid array length")
            arr._elements.extend(args)
            return arr.length

        def pop(this, args):
            arr = self._this_array(this, "pop")
            return arr._elements.pop() if arr._elements else UNDEFINED

        def shift(this, args):
            arr = self._this_array(this, "shift")
            return arr._elements.pop(0) if arr._elements else UNDEFINED

        def unshift(this, args):
            arr = self._this_array(this, "unshift")
            arr._elements[0:0] = args
            return arr.length

        def slice_fn(this, args):
            arr = self._this_array(this, "slice")
            length = arr.length
            start = relative_index(self._integer_arg(args, 0), length)
            end = relative_index(self._integer_arg(args, 1, length), length)
            return realm.new_array(arr._elements[start:end])

        def splice(this, args):
            arr = self._this_array(this, "splice")
            length = arr.length
            start = relative_index(self._integer_arg(args, 0), length)
            if len(args) < 2:
                count = length - start
            else:
                count = min(max(self._integer_arg(args, 1), 0), length - start)
            removed = arr._elements[start:start + count]
            arr._elements[start:start + count] = args[2:]
            return realm.new_array(removed)

        def concat(this, args):
            arr = self._this_array(this, "concat")
            result = list(arr._elements)
            for item in args:
                if isinstance(item, JSArray):
                    result.extend(item._elements)
                else:
                    result.append(item)
            return realm.new_array(result)

        def join(this, args):
            arr = self._this_array(this, "join")
            sep = _arg(args, 0)
            sep = "," if sep is UNDEFINED else realm.to_string(sep)
            parts = [
                "" if item is UNDEFINED or item is NULL else realm.to_string(item)
                for item in arr._elements
            ]
            realm.runtime.check_allocation(2 * (sum(len(p) for p in parts) + len(sep) * len(parts)))
            return sep.join(parts)

        def index_of(this, args):
            arr = self._this_array(this, "indexOf")
            target = _arg(args, 0)
            start = relative_index(self._integer_arg(args, 1), arr.length)
            for i in range(start, arr.length):
                if strict_equals(arr._elements[i], target):
                    return i
            return -1

        def last_index_of(this, args):
            arr = self._this_array(this, "lastIndexOf")
            target = _arg(args, 0)
            start = arr.length - 1
            if len(args) > 1:
                start = self._integer_arg(args, 1)
                start = min(start, arr.length - 1) if start >= 0 else arr.length + start
            for i in range(int(start), -1, -1):
                if strict_equals(arr._elements[i], target):
                    return i
            return -1

        def includes(this, args):
            arr = self._this_array(this, "includes")
            target = _arg(args, 0)
            start = relative_index(self._integer_arg(args, 1), arr.length)
            for item in arr._elements[start:]:
                if strict_equals(item, target) or (is_nan(item) and is_nan(target)):
                    return True
            return False

        def iterate(this, args, method):
            arr = self._this_array(this, method)
            fn = self._callback(args, method)
            this_arg = _arg(args, 1)
            i = 0
            # Re-check the live length: callbacks may mutate the array
            while i < arr.length:
                item = arr._elements[i]
                yield i, item, realm.call(fn, this_arg, [item, i, arr])
                i += 1

        def map_fn(this, args):
            return realm.new_array([result for _, _, result in iterate(this, args, "map")])

        def filter_fn(this, args):
            return realm.new_array([
                item for _, item, result in iterate(this, args, "filter") if to_boolean(result)
            ])

        def for_each(this, args):
            for _ in iterate(this, args, "forEach"):
                pass

        def some(this, args):
            return any(to_boolean(result) for _, _, result in iterate(this, args, "some"))

        def every(this, args):
            return all(to_boolean(result) for _, _, result in iterate(this, args, "every"))

        def find(this, args):
            for _, item, result in iterate(this, args, "find"):
                if to_boolean(result):
                    return item
            return UNDEFINED

        def find_index(this, args):
            for i, _, result in iterate(this, args, "findIndex"):
                if to_boolean(result):
                    return i
            return -1

        def reducer(method, reverse):
            def reduce_fn(this, args):
                arr = self._this_array(this, method)
                fn = self._callback(args, method)
                indexes = list(range(arr.length))
                if reverse:
                    indexes.reverse()
                if len(args) > 1:
                    acc = args[1]
                elif indexes:
                    acc = arr._elements[indexes.pop(0)]
                else:
                    raise JSTypeError("reduce of empty array with no initial value")
                for i in indexes:
                    if i < arr.length:
                        acc = realm.call(fn, UNDEFINED, [acc, arr._elements[i], i, arr])
                return acc
            return reduce_fn

        def reverse(this, args):
            arr = self._this_array(this, "reverse")
            arr._elements.reverse()
            return arr

        def sort(this, args):
            arr = self._this_array(this, "sort")
            compare = _arg(args, 0)
            if compare is not UNDEFINED and not is_callable(compare):
                raise JSTypeError("comparator must be a function")

            def compare_items(a, b):
                if compare is UNDEFINED:
                    x, y = realm.to_string(a), realm.to_string(b)
                    return (x > y) - (x < y)
                result = realm.to_number(realm.call(compare, UNDEFINED, [a, b]))
                if is_nan(result):
                    return 0
                return (result > 0) - (result < 0)

            defined = [v for v in arr._elements if v is not UNDEFINED]
            undefined_count = arr.length - len(defined)
            defined.sort(key=cmp_to_key(compare_items))
            arr._elements[:] = defined + [UNDEFINED] * undefined_count
            return arr

        def fill(this, args):
            arr = self._this_array(this, "fill")
            length = arr.length
            start = relative_index(self._integer_arg(args, 1), length)
            end = relative_index(self._integer_arg(args, 2, length), length)
            for i in range(start, end):
                arr._elements[i] = _arg(args, 0)
            return arr

        def at(this, args):
            arr = self._this_array(this, "at")
            index = self._integer_arg(args, 0)
            if index < 0:
                index += arr.length
            return arr.get_index(index) if 0 <= index < arr.length else UNDEFINED

        methods = [
            ("push", push, 1), ("pop", pop, 0), ("shift", shift, 0),
            ("unshift", unshift, 1), ("slice", slice_fn, 2), ("splice", splice, 2),
            ("concat", concat, 1), ("join", join, 1), ("indexOf", index_of, 1),
            ("lastIndexOf", last_index_of, 1), ("includes", includes, 1),
            ("map", map_fn, 1), ("filter", filter_fn, 1), ("forEach", for_each, 1),
            ("some", some, 1), ("every", every, 1), ("find", find, 1),
            ("findIndex", find_index, 1), ("reduce", reducer("reduce", False), 1),
            ("reduceRight", reducer("reduceRight", True), 1), ("reverse", reverse, 0),
            ("sort", sort, 1), ("fill", fill, 1), ("at", at, 1),
        ]
        for name, fn, length in methods:
            self._method(proto, name, fn, length)
        self._method(proto, "toString", lambda this, args: join(this, []))

    # ---- Errors ----

    def _create_error_constructor(self, error_name: str) -> JSNativeFunction:
        """Create an Error constructor."""
        realm = self.realm
        if error_name == "Error":
            proto = JSObject(realm.object_prototype)

            def to_string_fn(this, args):
                if not isinstance(this, JSObject):
                    raise JSTypeError("Error.prototype.toString called on non-object")
                name = realm.get_property(this, "name")
                message = realm.get_property(this, "message")
                name = "Error" if name is UNDEFINED else realm.to_string(name)
                message = "" if message is UNDEFINED else realm.to_string(message)
                if not message:
                    return name
                if not name:
                    return message
                return f"{name}: {message}"

            self._method(proto, "toString", to_string_fn)
        else:
            proto = JSObject(realm.error_prototypes["Error"])
        proto.define("name", error_name, enumerable=False)
        proto.define("message", "", enumerable=False)
        realm.error_prototypes[error_name] = proto

        def construct(args, new_target):
            prototype = realm.get_property(new_target, "prototype")
            error = JSObject(prototype if isinstance(prototype, JSObject) else proto, "Error")
            message = _arg(args, 0)
            if message is not UNDEFINED:
                error.define("message", realm.to_string(message), enumerable=False)
            error.define("stack", realm.capture_stack(), enumerable=False)
            return error

        def error_call(this, args):
            return construct(args, ctor)

        ctor = self._constructor(error_name, error_call, 1, proto, construct)
        return ctor

    # ---- Math ----

    def _create_math_object(self) -> JSObject:
        """Create the Math global object."""
        realm = self.realm
        math_obj = realm.new_object()
        math_obj.class_name = "Math"

        def number_args(args):
            return [realm.to_number(a) for a in args]

        def unary(fn):
            def wrapper(this, args):
                x = realm.to_number(_arg(args, 0))
                if is_nan(x):
                    return math.nan
                try:
                    return normalize_number(fn(x))
                except ValueError:
                    return math.nan
                except OverflowError:
                    return math.inf
            return wrapper

        def rounding(fn):
            def wrapper(x):
                if isinstance(x, float) and math.isinf(x):
                    return x
                return fn(x)
            return wrapper

        def sign(x):
            if x == 0:
                return x
            return 1 if x > 0 else -1

        def log_fn(x):
            if x == 0:
                return -math.inf
            return math.log(x)

        def log2_fn(x):
            if x == 0:
                return -math.inf
            return math.log2(x)

        def log10_fn(x):
            if x == 0:
                return -math.inf
            return math.log10(x)

        def sqrt_fn(x):
            if isinstance(x, float) and math.isinf(x) and x > 0:
                return x
            return math.sqrt(x)

        def cbrt(x):
            if isinstance(x, float) and math.isinf(x):
                return x
            return math.copysign(abs(x) ** (1.0 / 3.0), x)

        def atanh(x):
            if abs(x) == 1:
                return math.copysign(math.inf, x)
            return math.atanh(x)

        def min_fn(this, args):
            values = number_args(args)
            if any(is_nan(v) for v in values):
                return math.nan
            return min(values, default=math.inf)

        def max_fn(this, args):
            values = number_args(args)
            if any(is_nan(v) for v in values):
                return math.nan
            return max(values, default=-math.inf)

        def pow_fn(this, args):
            x, y = number_args([_arg(args, 0), _arg(args, 1)])
            return number_pow(x, y)

        def atan2(this, args):
            y, x = number_args([_arg(args, 0), _arg(args, 1)])
            return normalize_number(math.atan2(y, x))

        def hypot(this, args):
            values = number_args(args)
            if any(isinstance(v, float) and math.isinf(v) for v in values):
                return math.inf
            return normalize_number(math.hypot(*values))

        def imul(this, args):
            x, y = number_args([_arg(args, 0), _arg(args, 1)])
            return to_int32(to_int32(x) * to_int32(y))

        def clz32(this, args):
            x = to_uint32(realm.to_number(_arg(args, 0)))
            return 32 - x.bit_length()

        def fround(this, args):
            x = realm.to_number(_arg(args, 0))
            try:
                return normalize_number(struct.unpack("f", struct.pack("f", x))[0])
            except OverflowError:
                return math.copysign(math.inf, x)

        def round_fn(x):
            return math.floor(x + 0.5)

        unary_functions = {
            "abs": abs,
            "floor": rounding(math.floor),
            "ceil": rounding(math.ceil),
            "round": rounding(round_fn),
            "trunc": rounding(math.trunc),
            "sign": sign,
            "sqrt": sqrt_fn,
            "cbrt": cbrt,
            "exp": math.exp,
            "expm1": math.expm1,
            "log": log_fn,
            "log2": log2_fn,
            "log10": log10_fn,
            "log1p": math.log1p,
            "sin": math.sin,
            "cos": math.cos,
            "tan": math.tan,
            "asin": math.asin,
            "acos": math.acos,
            "atan": math.atan,
            "sinh": math.sinh,
            "cosh": math.cosh,
            "tanh": math.tanh,
            "asinh": math.asinh,
            "acosh": math.acosh,
            "atanh": atanh,
        }
        for name, fn in unary_functions.items():
            self._method(math_obj, name, unary(fn), 1)

        self._method(math_obj, "min", min_fn, 2)
        self._method(math_obj, "max", max_fn, 2)
        self._method(math_obj, "pow", pow_fn, 2)
        self._method(math_obj, "atan2", atan2, 2)
        self._method(math_obj, "hypot", hypot, 2)
        self._method(math_obj, "imul", imul, 2)
        self._method(math_obj, "clz32", clz32, 1)
        self._method(math_obj, "fround", fround, 1)
        self._method(math_obj, "random", lambda this, args: random.random())

        constants = {
            "PI": math.pi,
            "E": math.e,
            "LN2": math.log(2),
            "LN10": math.log(10),
            "LOG2E": 1 / math.log(2),
            "LOG10E": 1 / math.log(10),
            "SQRT2": math.sqrt(2),
            "SQRT1_2": math.sqrt(0.5),
        }
        for name, value in constants.items():
            math_obj.define(name, value, enumerable=False)
        return math_obj

    # ---- JSON ----

    def _create_json_object(self) -> JSObject:
        """Create the JSON global object."""
        realm = self.realm
        json_obj = realm.new_object()
        json_obj.class_name = "JSON"

        def reject_constant(name):
            raise ValueError(f"unexpected token {name}")

        def to_js(value):
            if value is None:
                return NULL
            if isinstance(value, bool) or isinstance(value, str):
                return value
            if isinstance(value, (int, float)):
                return normalize_number(value)
            if isinstance(value, list):
                return realm.new_array([to_js(v) for v in value])
            obj = realm.new_object()
            for key, item in value.items():
                obj.define(key, to_js(item))
            return obj

        def parse_fn(this, args):
            text = realm.to_string(_arg(args, 0))
            try:
                value = json.loads(text, parse_constant=reject_constant)
            except (json.JSONDecodeError, ValueError) as e:
                raise JSSyntaxError(f"JSON.parse: {e}")
            return to_js(value)

        def stringify_fn(this, args):
            seen = set()

            def to_json_value(v):
                if v is UNDEFINED or is_callable(v):
                    return _OMIT
                if v is NULL:
                    return None
                if isinstance(v, (bool, str)):
                    return v
                if isinstance(v, (int, float)):
                    if isinstance(v, float) and (math.isnan(v) or math.isinf(v)):
                        return None
                    return v
                if isinstance(v, JSBigInt):
                    raise JSTypeError("BigInt value can't be serialized in JSON")
                if isinstance(v, Decimal):
                    raise JSTypeError("BigDecimal value can't be serialized in JSON")
                if id(v) in seen:
                    raise JSTypeError("circular reference in JSON.stringify")
                seen.add(id(v))
                try:
                    if isinstance(v, JSArray):
                        items = [to_json_value(item) for item in v._elements]
                        return [None if item is _OMIT else item for item in items]
                    result = {}
                    for key in v.own_keys():
                        item = to_json_value(realm.get_property(v, key))
                        if item is not _OMIT:
                            result[key] = item
                    return result
                finally:
                    seen.discard(id(v))

            value = to_json_value(_arg(args, 0))
            if value is _OMIT:
                return UNDEFINED
            indent = _arg(args, 2)
            if isinstance(indent, (int, float)) and not isinstance(indent, bool):
                indent = " " * min(10, max(0, int(indent))) if not is_nan(indent) else None
            elif isinstance(indent, str):
                indent = indent[:10]
            else:
                indent = None
            if indent:
                return json.dumps(value, indent=indent, ensure_ascii=False, separators=(",", ": "))
            return json.dumps(value, ensure_ascii=False, separators=(",", ":"))

        self._method(json_obj, "parse", parse_fn, 2)
        self._method(json_obj, "stringify", stringify_fn, 3)
        return json_obj

    # ---- Number, String, Boolean ----

    def _create_number_constructor(self) -> JSNativeFunction:
        """Create the Number constructor with static methods."""
        realm = self.realm
        proto = realm.number_prototype

        def number_call(this, args):
            if not args:
                return 0
            value = realm.to_numeric(args[0])
            if isinstance(value, JSBigInt):
                return normalize_number(float(value.value))
            if isinstance(value, Decimal):
                return normalize_number(float(value))
            return value

        def this_number(this, method):
            if isinstance(this, (int, float)) and not isinstance(this, bool):
                return this
            raise JSTypeError(f"Number.prototype.{method} requires a number")

        def to_string_fn(this, args):
            value = this_number(this, "toString")
            radix = self._integer_arg(args, 0, 10)
            if not 2 <= radix <= 36:
                raise JSRangeError("toString() radix must be between 2 and 36")
            return number_to_string(value, int(radix))

        def to_fixed(this, args):
            value = this_number(this, "toFixed")
            digits = self._integer_arg(args, 0)
            if not 0 <= digits <= 100:
                raise JSRangeError("toFixed() digits argument must be between 0 and 100")
            if is_nan(value) or abs(value) >= 1e21:
                return number_to_string(value)
            exact = Decimal(value).quantize(Decimal(1).scaleb(-int(digits)), rounding=ROUND_HALF_UP)
            text = format(exact, "f")
            return text[1:] if text.startswith("-") and exact.is_zero() else text

        def is_integer(value):
            return (isinstance(value, (int, float)) and not isinstance(value, bool)
                    and _is_finite(value) and value == int(value))

        parse_int_fn = lambda this, args: parse_int(
            realm.to_string(_arg(args, 0)), int(to_int32(self._integer_arg(args, 1))))
        parse_float_fn = lambda this, args: parse_float(realm.to_string(_arg(args, 0)))

        ctor = self._constructor("Number", number_call, 1, proto)
        self._method(proto, "toString", to_string_fn, 1)
        self._method(proto, "toFixed", to_fixed, 1)
        self._method(proto, "valueOf", lambda this, args: this_number(this, "valueOf"))

        number = lambda v: isinstance(v, (int, float)) and not isinstance(v, bool)
        self._method(ctor, "isNaN", lambda this, args: number(_arg(args, 0)) and is_nan(args[0]), 1)
        self._method(ctor, "isFinite", lambda this, args: number(_arg(args, 0)) and _is_finite(args[0]), 1)
        self._method(ctor, "isInteger", lambda this, args: is_integer(_arg(args, 0)), 1)
        self._method(ctor, "isSafeInteger", lambda this, args: (
            is_integer(_arg(args, 0)) and abs(args[0]) <= 2 ** 53 - 1), 1)
        self._method(ctor, "parseInt", parse_int_fn, 2)
        self._method(ctor, "parseFloat", parse_float_fn, 1)

        constants = {
            "MAX_SAFE_INTEGER": 2 ** 53 - 1,
            "MIN_SAFE_INTEGER": -(2 ** 53 - 1),
            "MAX_VALUE": 1.7976931348623157e308,
            "MIN_VALUE": 5e-324,
            "EPSILON": 2.0 ** -52,
            "POSITIVE_INFINITY": math.inf,
            "NEGATIVE_INFINITY": -math.inf,
            "NaN": math.nan,
        }
        for name, value in constants.items():
            ctor.define(name, value, enumerable=False)
        return ctor

    def _create_string_constructor(self) -> JSNativeFunction:
        """Create the String constructor and String.prototype."""
        realm = self.realm
        proto = realm.string_prototype

        def string_call(this, args):
            if not args:
                return ""
            return realm.to_string(args[0])

        def from_char_code(this, args):
            units = [to_uint32(realm.to_number(a)) & 0xFFFF for a in args]
            data = b"".join(u.to_bytes(2, "big") for u in units)
            return data.decode("utf-16-be", "surrogatepass")

        def from_code_point(this, args):
            chars = []
            for a in args:
                code = realm.to_number(a)
                if is_nan(code) or code != int(code) or not 0 <= code <= 0x10FFFF:
                    raise JSRangeError(f"invalid code point {realm.to_string(a)}")
                chars.append(chr(int(code)))
            return "".join(chars)

        ctor = self._constructor("String", string_call, 1, proto)
        self._method(ctor, "fromCharCode", from_char_code, 1)
        self._method(ctor, "fromCodePoint", from_code_point, 1)
        self._setup_string_prototype(proto)
        return ctor

    def _setup_string_prototype(self, proto: JSObject) -> None:
        realm = self.realm
        s_arg = lambda args, i: realm.to_string(_arg(args, i))

        def char_at(this, args):
            s = self._this_string(this, "charAt")
            index = self._integer_arg(args, 0)
            return s[index] if 0 <= index < len(s) else ""

        def char_code_at(this, args):
            s = self._this_string(this, "charCodeAt")
            index = self._integer_arg(args, 0)
            if not 0 <= index < len(s):
                return math.nan
            code = ord(s[index])
            if code > 0xFFFF:
                return 0xD800 + ((code - 0x10000) >> 10)
            return code

        def code_point_at(this, args):
            s = self._this_string(this, "codePointAt")
            index = self._integer_arg(args, 0)
            return ord(s[index]) if 0 <= index < len(s) else UNDEFINED

        def index_of(this, args):
            s = self._this_string(this, "indexOf")
            start = min(max(self._integer_arg(args, 1), 0), len(s))
            return s.find(s_arg(args, 0), start)

        def last_index_of(this, args):
            s = self._this_string(this, "lastIndexOf")
            search = s_arg(args, 0)
            position = realm.to_number(_arg(args, 1))
            end = len(s) if is_nan(position) else min(max(to_integer(position), 0), len(s))
            return s.rfind(search, 0, int(end) + len(search))

        def includes(this, args):
            s = self._this_string(this, "includes")
            start = min(max(self._integer_arg(args, 1), 0), len(s))
            return s_arg(args, 0) in s[start:]

        def starts_with(this, args):
            s = self._this_string(this, "startsWith")
            start = min(max(self._integer_arg(args, 1), 0), len(s))
            return s.startswith(s_arg(args, 0), start)

        def ends_with(this, args):
            s = self._this_string(this, "endsWith")
            end = min(max(self._integer_arg(args, 1, len(s)), 0), len(s))
            return s[:end].endswith(s_arg(args, 0))

        def slice_fn(this, args):
            s = self._this_string(this, "slice")
            start = relative_index(self._integer_arg(args, 0), len(s))
            end = relative_index(self._integer_arg(args, 1, len(s)), len(s))
            return s[start:end]

        def substring(this, args):
            s = self._this_string(this, "substring")
            start = min(max(self._integer_arg(args, 0), 0), len(s))
            end = min(max(self._integer_arg(args, 1, len(s)), 0), len(s))
            if start > end:
                start, end = end, start
            return s[start:end]

        def split(this, args):
            s = self._this_string(this, "split")
            sep = _arg(args, 0)
            limit = _arg(args, 1)
            limit = MAX_ARRAY_LENGTH if limit is UNDEFINED else to_uint32(realm.to_number(limit))
            if sep is UNDEFINED:
                parts = [s]
            else:
                sep = realm.to_string(sep)
                if sep == "":
                    parts = list(s)
                else:
                    parts = s.split(sep)
            return realm.new_array(parts[:limit])

        def concat(this, args):
            s = self._this_string(this, "concat")
            return s + "".join(realm.to_string(a) for a in args)

        def repeat(this, args):
            s = self._this_string(this, "repeat")
            count = self._integer_arg(args, 0)
            if count < 0 or (isinstance(count, float) and math.isinf(count)):
                raise JSRangeError("Invalid count value")
            realm.runtime.check_allocation(2 * len(s) * count)
            return s * count

        def pad(at_start):
            def pad_fn(this, args):
                s = self._this_string(this, "padStart" if at_start else "padEnd")
                target = self._integer_arg(args, 0)
                filler = _arg(args, 1)
                filler = " " if filler is UNDEFINED else realm.to_string(filler)
                if target <= len(s) or not filler:
                    return s
                realm.runtime.check_allocation(2 * target)
                count = target - len(s)
                padding = (filler * (count // len(filler) + 1))[:count]
                return padding + s if at_start else s + padding
            return pad_fn

        def replace(replace_all):
            def replace_fn(this, args):
                s = self._this_string(this, "replaceAll" if replace_all else "replace")
                search = s_arg(args, 0)
                replacement = _arg(args, 1)
                positions = []
                start = s.find(search)
                while start >= 0:
                    positions.append(start)
                    if not replace_all:
                        break
                    start = s.find(search, start + max(len(search), 1))
                    if start > len(s):
                        break
                pieces = []
                last = 0
                for position in positions:
                    pieces.append(s[last:position])
                    if is_callable(replacement):
                        pieces.append(realm.to_string(
                            realm.call(replacement, UNDEFINED, [search, position, s])))
                    else:
                        pieces.append(realm.to_string(replacement).replace("$&", search))
                    last = position + len(search)
                pieces.append(s[last:])
                return "".join(pieces)
            return replace_fn

        def at(this, args):
            s = self._this_string(this, "at")
            index = self._integer_arg(args, 0)
            if index < 0:
                index += len(s)
            return s[index] if 0 <= index < len(s) else UNDEFINED

        def this_string_value(this, args):
            if isinstance(this, str):
                return this
            raise JSTypeError("String.prototype.toString requires a string")

        methods = [
            ("charAt", char_at, 1), ("charCodeAt", char_code_at, 1),
            ("codePointAt", code_point_at, 1), ("indexOf", index_of, 1),
            ("lastIndexOf", last_index_of, 1), ("includes", includes, 1),
            ("startsWith", starts_with, 1), ("endsWith", ends_with, 1),
            ("slice", slice_fn, 2), ("substring", substring, 2), ("split", split, 2),
            ("concat", concat, 1), ("repeat", repeat, 1), ("padStart", pad(True), 2),
            ("padEnd", pad(False), 2), ("replace", replace(False), 2),
            ("replaceAll", replace(True), 2), ("at", at, 1),
            ("toString", this_string_value, 0), ("valueOf", this_string_value, 0),
        ]
        for name, fn, length in methods:
            self._method(proto, name, fn, length)
        self._method(proto, "toUpperCase", lambda this, args: self._this_string(this, "toUpperCase").upper())
        self._method(proto, "toLowerCase", lambda this, args: self._this_string(this, "toLowerCase").lower())
        self._method(proto, "trim", lambda this, args: self._this_string(this, "trim").strip())
        self._method(proto, "trimStart", lambda this, args: self._this_string(this, "trimStart").lstrip())
        self._method(proto, "trimEnd", lambda this, args: self._this_string(this, "trimEnd").rstrip())

    def _create_boolean_constructor(self) -> JSNativeFunction:
        realm = self.realm
        proto = realm.boolean_prototype

        def this_boolean(this):
            if isinstance(this, bool):
                return this
            raise JSTypeError("Boolean.prototype method requires a boolean")

        ctor = self._constructor("Boolean", lambda this, args: to_boolean(_arg(args, 0)), 1, proto)
        self._method(proto, "toString", lambda this, args: "true" if this_boolean(this) else "false")
        self._method(proto, "valueOf", lambda this, args: this_boolean(this))
        return ctor

    # ---- BigInt and BigDecimal ----

    def _create_bigint_constructor(self) -> JSNativeFunction:
        realm = self.realm
        proto = realm.bigint_prototype

        def bigint_call(this, args):
            value = realm.to_primitive(_arg(args, 0), "number")
            if isinstance(value, JSBigInt):
                return value
            if isinstance(value, bool):
                return JSBigInt(int(value))
            if isinstance(value, (int, float)):
                if not _is_finite(value) or value != int(value):
                    raise JSRangeError("cannot convert to BigInt: not an integer")
                return JSBigInt(int(value))
            if isinstance(value, Decimal):
                if not value.is_finite() or value != value.to_integral_value():
                    raise JSRangeError("cannot convert to BigInt: not an integer")
                return JSBigInt(int(value))
            if isinstance(value, str):
                text = value.strip() or "0"
                try:
                    return check_bigint(int(text, 0) if text[:2].lower() in ("0x", "0o", "0b") else int(text, 10))
                except ValueError:
                    raise JSSyntaxError(f"cannot convert {value!r} to BigInt")
            raise JSTypeError(f"cannot convert {realm.to_string(value)} to BigInt")

        def this_bigint(this):
            if isinstance(this, JSBigInt):
                return this
            raise JSTypeError("BigInt.prototype method requires a BigInt")

        def to_string_fn(this, args):
            value = this_bigint(this).value
            radix = self._integer_arg(args, 0, 10)
            if not 2 <= radix <= 36:
                raise JSRangeError("toString() radix must be between 2 and 36")
            return number_to_string(value, int(radix)) if radix != 10 else str(value)

        def as_uint_n(this, args):
            bits = int(self._integer_arg(args, 0))
            value = bigint_call(UNDEFINED, [_arg(args, 1)]).value
            return JSBigInt(value & ((1 << bits) - 1))

        def as_int_n(this, args):
            bits = int(self._integer_arg(args, 0))
            value = as_uint_n(this, args).value
            if bits and value >= 1 << (bits - 1):
                value -= 1 << bits
            return JSBigInt(value)

        ctor = self._constructor("BigInt", bigint_call, 1, proto)
        self._method(ctor, "asUintN", as_uint_n, 2)
        self._method(ctor, "asIntN", as_int_n, 2)
        self._method(proto, "toString", to_string_fn)
        self._method(proto, "valueOf", lambda this, args: this_bigint(this))
        return ctor

    def _create_bigdecimal_constructor(self) -> JSNativeFunction:
        realm = self.realm
        proto = realm.bigdecimal_prototype

        def bigdecimal_call(this, args):
            value = realm.to_primitive(_arg(args, 0), "number")
            if isinstance(value, Decimal):
                return value
            if isinstance(value, JSBigInt):
                return DECIMAL_CONTEXT.plus(Decimal(value.value))
            if isinstance(value, bool):
                return Decimal(int(value))
            if isinstance(value, (int, float)):
                if not _is_finite(value):
                    raise JSRangeError("cannot convert a non-finite number to BigDecimal")
                return DECIMAL_CONTEXT.plus(Decimal(repr(value)) if isinstance(value, float) else Decimal(value))
            if isinstance(value, str):
                try:
                    return DECIMAL_CONTEXT.create_decimal(value.strip())
                except InvalidOperation:
                    raise JSSyntaxError(f"cannot convert {value!r} to BigDecimal")
            raise JSTypeError(f"cannot convert {realm.to_string(value)} to BigDecimal")

        def this_decimal(this):
            if isinstance(this, Decimal):
                return this
            raise JSTypeError("BigDecimal.prototype method requires a BigDecimal")

        ctor = self._constructor("BigDecimal", bigdecimal_call, 1, proto)
        self._method(proto, "toString", lambda this, args: realm.to_string(this_decimal(this)))
        self._method(proto, "valueOf", lambda this, args: this_decimal(this))
        return ctor

    # ---- Binary data ----

    def _create_arraybuffer_constructor(self) -> JSNativeFunction:
        realm = self.realm
        proto = realm.array_buffer_prototype

        def construct(args, new_target):
            length = self._integer_arg(args, 0)
            if length < 0 or length > MAX_ARRAY_LENGTH:
                raise JSRangeError("invalid array buffer length")
            realm.runtime.check_allocation(length)
            return JSArrayBuffer(bytes(int(length)), proto)

        def require_new(this, args):
            raise JSTypeError("ArrayBuffer constructor requires 'new'")

        def slice_fn(this, args):
            if not isinstance(this, JSArrayBuffer):
                raise JSTypeError("ArrayBuffer.prototype.slice called on incompatible receiver")
            length = len(this.data)
            start = relative_index(self._integer_arg(args, 0), length)
            end = relative_index(self._integer_arg(args, 1, length), length)
            return JSArrayBuffer(this.data[start:end], proto)

        ctor = self._constructor("ArrayBuffer", require_new, 1, proto, construct)
        self._method(proto, "slice", slice_fn, 2)
        return ctor

    def _create_uint8array_constructor(self) -> JSNativeFunction:
        realm = self.realm
        proto = realm.uint8_array_prototype

        def construct(args, new_target):
            source = _arg(args, 0)
            if isinstance(source, JSArrayBuffer):
                return JSUint8Array(source, proto)
            if isinstance(source, JSArray):
                buffer = JSArrayBuffer(bytes(source.length), realm.array_buffer_prototype)
                view = JSUint8Array(buffer, proto)
                for i, item in enumerate(source._elements):
                    view.put(str(i), realm.to_number(item))
                return view
            length = self._integer_arg(args, 0)
            if length < 0 or length > MAX_ARRAY_LENGTH:
                raise JSRangeError("invalid typed array length")
            realm.runtime.check_allocation(length)
            return JSUint8Array(JSArrayBuffer(bytes(int(length)), realm.array_buffer_prototype), proto)

        def require_new(this, args):
            raise JSTypeError("Uint8Array constructor requires 'new'")

        def this_view(this):
            if not isinstance(this, JSUint8Array):
                raise JSTypeError("Uint8Array method called on incompatible receiver")
            return this

        def join(this, args):
            sep = _arg(args, 0)
            sep = "," if sep is UNDEFINED else realm.to_string(sep)
            return sep.join(str(b) for b in this_view(this).buffer.data)

        ctor = self._constructor("Uint8Array", require_new, 1, proto, construct)
        self._method(proto, "join", join, 1)
        self._method(proto, "toString", lambda this, args: join(this, []))
        return ctor


class _Omitted:
    pass


_OMIT = _Omitted()


def _is_finite(value: Any) -> bool:
    return not (is_nan(value) or (isinstance(value, float) and math.isinf(value)))
