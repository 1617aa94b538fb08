"""Engine runtimes and realms.

An :class:`EngineRuntime` owns the atom table and the resource limits shared
by all of its realms. A :class:`Realm` is one global environment: global
object, lexical bindings, module registry, intrinsic prototypes and a VM.
"""

import math
import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .atoms import AtomTable
from .compiler import CompiledFunction
from .errors import JSError, JSThrow, JSTypeError, MemoryLimitError, TimeLimitError
from .values import (
    NULL, UNDEFINED, Accessor, JSArray, JSBigInt, JSFunction, JSNativeFunction,
    JSObject, JSValue, ClosureCell, array_index, is_callable, is_error,
    primitive_to_string, string_to_number, utf16_length,
)

DEFAULT_MAX_STACK_DEPTH = 256


class EngineRuntime:
    """One isolated engine instance."""

    def __init__(
        self,
        memory_limit: Optional[int] = None,
        time_limit: Optional[float] = None,
        max_stack_depth: int = DEFAULT_MAX_STACK_DEPTH,
    ):
        self.atoms = AtomTable()
        self.memory_limit = memory_limit
        self.time_limit = time_limit
        self.max_stack_depth = max_stack_depth
        self.realms: List["Realm"] = []
        self.depth = 0
        self.instruction_count = 0
        self.start_time = 0.0
        self._active = 0

    @contextmanager
    def evaluation(self) -> Iterator[None]:
        """Scope one evaluation; the time limit restarts at the outermost one."""
        if self._active == 0:
            self.start_time = time.monotonic()
            self.instruction_count = 0
        self._active += 1
        try:
            yield
        finally:
            self._active -= 1

    def check_time(self) -> None:
        if self.time_limit is not None and time.monotonic() - self.start_time > self.time_limit:
            raise TimeLimitError()

    def check_allocation(self, size: int) -> None:
        """Reject a single allocation larger than the memory limit."""
        if self.memory_limit is not None and size > self.memory_limit:
            raise MemoryLimitError()


class Realm:
    """A global environment inside a runtime."""

    def __init__(self, runtime: EngineRuntime):
        from .builtins import install
        from .vm import VM

        self.runtime = runtime
        self.object_prototype = JSObject(None)
        self.function_prototype = JSObject(self.object_prototype, "Function")
        self.array_prototype = JSObject(self.object_prototype)
        self.string_prototype = JSObject(self.object_prototype)
        self.number_prototype = JSObject(self.object_prototype)
        self.boolean_prototype = JSObject(self.object_prototype)
        self.bigint_prototype = JSObject(self.object_prototype)
        self.bigdecimal_prototype = JSObject(self.object_prototype)
        self.array_buffer_prototype = JSObject(self.object_prototype)
        self.uint8_array_prototype = JSObject(self.object_prototype)
        self.error_prototypes: Dict[str, JSObject] = {}

        self.global_object = JSObject(self.object_prototype, "global")
        self.lexical: Dict[str, JSValue] = {}
        self.const_names: set = set()
        self.modules: Dict[str, JSObject] = {}

        self.vm = VM(self)
        install(self)
        runtime.realms.append(self)

    # ---- Evaluation ----

    def evaluate(self, compiled: CompiledFunction) -> JSValue:
        this_value = UNDEFINED if compiled.is_module else self.global_object
        return self.vm.run(compiled, this_value)

    def call(self, fn: JSValue, this: JSValue, args: List[JSValue]) -> JSValue:
        if not is_callable(fn):
            raise JSTypeError(f"{self.describe(fn)} is not a function")
        return self.vm.call_function(fn, this, args)

    def construct(self, fn: JSValue, args: List[JSValue]) -> JSValue:
        if isinstance(fn, JSFunction) and fn.is_constructor:
            prototype = self.get_property(fn, "prototype")
            if not isinstance(prototype, JSObject):
                prototype = self.object_prototype
            target = JSObject(prototype)
            return self.vm.call_function(fn, target, args, construct_target=target)
        if isinstance(fn, JSNativeFunction) and fn.construct is not None:
            return fn.construct(args, fn)
        raise JSTypeError(f"{self.describe(fn)} is not a constructor")

    # ---- Object creation ----

    def new_object(self) -> JSObject:
        return JSObject(self.object_prototype)

    def new_array(self, elements: Optional[List[JSValue]] = None) -> JSArray:
        return JSArray(elements, self.array_prototype)

    def make_function(
        self, compiled: CompiledFunction, cells: List[ClosureCell], bound_this: JSValue = None,
    ) -> JSFunction:
        fn = JSFunction(compiled, cells, self.function_prototype, bound_this)
        if not compiled.is_arrow:
            prototype = JSObject(self.object_prototype)
            prototype.define("constructor", fn, enumerable=False)
            fn.define("prototype", prototype, enumerable=False)
        return fn

    def native_function(self, name: str, fn, length: int = 0, construct=None) -> JSNativeFunction:
        return JSNativeFunction(name, fn, length, self.function_prototype, construct)

    def make_error(self, name: str, message: str) -> JSObject:
        """Create an Error object of the named type with a captured stack."""
        prototype = self.error_prototypes.get(name) or self.error_prototypes["Error"]
        error = JSObject(prototype, "Error")
        error.define("message", message, enumerable=False)
        error.define("stack", self.capture_stack(), enumerable=False)
        return error

    def error_from_exception(self, exc: JSError) -> JSObject:
        return self.make_error(exc.name, exc.message)

    def capture_stack(self) -> str:
        """Format the live JavaScript call stack, innermost frame first."""
        lines = []
        for frame in reversed(self.vm.call_stack):
            func = frame.func
            if func.is_program:
                name = "<eval>"
            else:
                name = func.name or "<anonymous>"
            line = func.line_for(max(frame.ip - 1, 0))
            lines.append(f"    at {name} ({func.filename}:{line})")
        return "\n".join(lines)

    # ---- Property access ----

    def prototype_for(self, value: JSValue, key: str) -> JSObject:
        if isinstance(value, JSObject):
            return value
        if value is UNDEFINED or value is NULL:
            raise JSTypeError(f"cannot read property '{key}' of {primitive_to_string(value)}")
        if isinstance(value, bool):
            return self.boolean_prototype
        if isinstance(value, (int, float)):
            return self.number_prototype
        if isinstance(value, str):
            return self.string_prototype
        if isinstance(value, JSBigInt):
            return self.bigint_prototype
        if isinstance(value, Decimal):
            return self.bigdecimal_prototype
        raise JSTypeError(f"unsupported value {value!r}")

    def get_property(self, obj: JSValue, key: Any) -> JSValue:
        """Read obj[key], following the prototype chain and invoking getters."""
        key = key if isinstance(key, str) else self.to_property_key(key)
        if isinstance(obj, str):
            if key == "length":
                return utf16_length(obj)
            index = array_index(key)
            if index is not None:
                return obj[index] if index < len(obj) else UNDEFINED
        target = self.prototype_for(obj, key)
        owner = target.find(key)
        if owner is None:
            return UNDEFINED
        entry = owner.own_entry(key)
        if isinstance(entry, Accessor):
            if entry.getter is None:
                return UNDEFINED
            return self.call(entry.getter, obj, [])
        return entry

    def set_property(self, obj: JSValue, key: Any, value: JSValue) -> None:
        """Assign obj[key] = value, invoking setters."""
        key = key if isinstance(key, str) else self.to_property_key(key)
        if obj is UNDEFINED or obj is NULL:
            raise JSTypeError(f"cannot set property '{key}' of {primitive_to_string(obj)}")
        if not isinstance(obj, JSObject):
            return
        owner = obj.find(key)
        if owner is not None:
            entry = owner.own_entry(key)
            if isinstance(entry, Accessor):
                if entry.setter is not None:
                    self.call(entry.setter, obj, [value])
                return
        obj.put(key, value)

    def delete_property(self, obj: JSValue, key: Any) -> bool:
        key = key if isinstance(key, str) else self.to_property_key(key)
        if obj is UNDEFINED or obj is NULL:
            raise JSTypeError(f"cannot delete property '{key}' of {primitive_to_string(obj)}")
        if isinstance(obj, JSObject):
            return obj.delete(key)
        return True

    def has_property(self, obj: JSValue, key: Any) -> bool:
        if not isinstance(obj, JSObject):
            raise JSTypeError("invalid 'in' operand")
        key = key if isinstance(key, str) else self.to_property_key(key)
        return obj.find(key) is not None

    # ---- Conversions ----

    def to_primitive(self, value: JSValue, hint: str = "default") -> JSValue:
        if not isinstance(value, JSObject):
            return value
        order = ("toString", "valueOf") if hint == "string" else ("valueOf", "toString")
        for name in order:
            method = self.get_property(value, name)
            if is_callable(method):
                result = self.call(method, value, [])
                if not isinstance(result, JSObject):
                    return result
        raise JSTypeError("cannot convert object to primitive value")

    def to_number(self, value: JSValue):
        value = self.to_primitive(value, "number")
        if value is UNDEFINED:
            return math.nan
        if value is NULL:
            return 0
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            return string_to_number(value)
        if isinstance(value, JSBigInt):
            raise JSTypeError("cannot convert bigint to number")
        if isinstance(value, Decimal):
            raise JSTypeError("cannot convert bigdecimal to number")
        return math.nan

    def to_numeric(self, value: JSValue):
        """ToNumeric: keeps BigInt and BigDecimal values, converts the rest to Number."""
        value = self.to_primitive(value, "number")
        if isinstance(value, (JSBigInt, Decimal)):
            return value
        return self.to_number(value)

    def to_string(self, value: JSValue) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, JSObject):
            value = self.to_primitive(value, "string")
        return primitive_to_string(value)

    def to_property_key(self, value: JSValue) -> str:
        if isinstance(value, str):
            return value
        if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
            return str(value)
        return self.to_string(value)

    def describe(self, value: JSValue) -> str:
        """Short description of a value for error messages."""
        if isinstance(value, (JSFunction, JSNativeFunction)):
            return f"function {value.name}" if value.name else "function"
        if isinstance(value, JSArray):
            return "array"
        if isinstance(value, JSObject):
            return "object"
        if isinstance(value, str):
            return repr(value) if len(value) < 32 else "string"
        return primitive_to_string(value)

    # ---- Exceptions ----

    def exception_details(self, value: JSValue) -> Tuple[str, str]:
        """Cause and stack text of a thrown value."""
        stack = ""
        if isinstance(value, JSObject):
            entry = value.own_entry("stack")
            if isinstance(entry, str):
                stack = entry
        try:
            cause = self.to_string(value)
        except (JSThrow, JSError):
            cause = "[exception]" if not is_error(value) else "Error"
        return cause, stack

    def error_name_and_message(self, value: JSValue) -> Tuple[str, str]:
        if not is_error(value):
            return "", ""
        try:
            name = self.to_string(self.get_property(value, "name"))
            message = self.to_string(self.get_property(value, "message"))
        except (JSThrow, JSError):
            return "Error", ""
        return name, message
