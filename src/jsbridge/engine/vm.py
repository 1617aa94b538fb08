"""Virtual machine for executing JavaScript bytecode."""

import math
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple, Union, TYPE_CHECKING

from .compiler import CompiledFunction
from .errors import (
    JSError, JSInternalError, JSRangeError, JSReferenceError, JSSyntaxError,
    JSThrow, JSTypeError, MemoryLimitError, TimeLimitError,
)
from .opcodes import OPERAND_KINDS, OpCode
from .values import (
    DECIMAL_CONTEXT, MAX_BIGINT_BITS, NULL, UNDEFINED, ClosureCell, JSArray,
    JSBigInt, JSFunction, JSNativeFunction, JSObject, JSUint8Array, JSValue,
    check_bigint, is_callable, is_nan, js_typeof, normalize_number,
    string_to_number, to_boolean, to_int32, to_uint32,
)

if TYPE_CHECKING:
    from .realm import Realm

_HAS_OPERAND = frozenset(int(op) for op in OPERAND_KINDS)


@dataclass
class CallFrame:
    """Call frame on the call stack."""
    func: CompiledFunction
    ip: int  # Instruction pointer
    bp: int  # Stack base for this frame
    locals: List[JSValue]
    this_value: JSValue
    closure_cells: List[ClosureCell] = field(default_factory=list)  # From the enclosing function
    cells: List[ClosureCell] = field(default_factory=list)  # Locals captured by inner functions
    handlers: List[Tuple[int, int]] = field(default_factory=list)  # (catch_ip, stack length)
    construct_target: Optional[JSObject] = None


class ForInIterator:
    """Iterator for for-in loops; skips keys deleted during iteration."""

    def __init__(self, obj: Any, keys: List[str]):
        self.obj = obj
        self.keys = keys
        self.index = 0

    def next(self) -> Tuple[JSValue, bool]:
        while self.index < len(self.keys):
            key = self.keys[self.index]
            self.index += 1
            if not isinstance(self.obj, JSObject) or self.obj.find(key) is not None:
                return key, False
        return UNDEFINED, True


class ValueIterator:
    """Iterator for for-of loops over arrays, typed arrays and strings."""

    def __init__(self, source: Any):
        self.source = source
        self.index = 0

    def next(self) -> Tuple[JSValue, bool]:
        source = self.source
        if isinstance(source, JSArray):
            if self.index >= source.length:
                return UNDEFINED, True
            value = source.get_index(self.index)
        elif isinstance(source, JSUint8Array):
            data = source.buffer.data
            if self.index >= len(data):
                return UNDEFINED, True
            value = data[self.index]
        else:
            if self.index >= len(source):
                return UNDEFINED, True
            value = source[self.index]
        self.index += 1
        return value, False


class VM:
    """JavaScript virtual machine; one per realm."""

    def __init__(self, realm: "Realm"):
        self.realm = realm
        self.stack: List[JSValue] = []
        self.call_stack: List[CallFrame] = []

    # ---- Entry points ----

    def run(self, compiled: CompiledFunction, this_value: JSValue) -> JSValue:
        """Run a compiled program and return its completion value."""
        runtime = self.realm.runtime
        with runtime.evaluation():
            stop_depth = len(self.call_stack)
            self._enter()
            self.call_stack.append(CallFrame(
                func=compiled,
                ip=0,
                bp=len(self.stack),
                locals=[UNDEFINED] * compiled.num_locals,
                this_value=this_value,
                cells=[ClosureCell(UNDEFINED) for _ in compiled.cell_vars],
            ))
            return self._execute(stop_depth)

    def call_function(
        self, fn: JSValue, this: JSValue, args: List[JSValue],
        construct_target: Optional[JSObject] = None,
    ) -> JSValue:
        """Call a function from Python, re-entering the interpreter if needed."""
        if isinstance(fn, JSNativeFunction):
            return self._call_native(fn, this, args)
        if not isinstance(fn, JSFunction):
            raise JSTypeError("not a function")
        with self.realm.runtime.evaluation():
            stop_depth = len(self.call_stack)
            self._push_frame(fn, this, args, construct_target)
            return self._execute(stop_depth)

    # ---- Frames ----

    def _enter(self) -> None:
        runtime = self.realm.runtime
        if runtime.depth >= runtime.max_stack_depth:
            raise JSInternalError("stack overflow")
        runtime.depth += 1

    def _push_frame(
        self, fn: JSFunction, this: JSValue, args: List[JSValue],
        construct_target: Optional[JSObject] = None,
    ) -> None:
        func = fn.compiled
        self._enter()
        if func.is_arrow:
            this = fn.bound_this
        elif not func.strict and (this is UNDEFINED or this is NULL):
            this = self.realm.global_object

        local_values = [UNDEFINED] * func.num_locals
        for i in range(min(len(args), len(func.params))):
            local_values[i] = args[i]
        if func.arguments_slot >= 0:
            local_values[func.arguments_slot] = self.realm.new_array(args)
        if func.self_slot >= 0:
            local_values[func.self_slot] = fn
        cells = [ClosureCell(local_values[func.locals.index(name)]) for name in func.cell_vars]

        self.call_stack.append(CallFrame(
            func=func,
            ip=0,
            bp=len(self.stack),
            locals=local_values,
            this_value=this,
            closure_cells=fn.closure_cells,
            cells=cells,
            construct_target=construct_target,
        ))

    def _pop_frame(self) -> CallFrame:
        frame = self.call_stack.pop()
        del self.stack[frame.bp:]
        self.realm.runtime.depth -= 1
        return frame

    def _unwind(self, stop_depth: int) -> None:
        while len(self.call_stack) > stop_depth:
            self._pop_frame()

    def _call_native(self, fn: JSNativeFunction, this: JSValue, args: List[JSValue]) -> JSValue:
        self._enter()
        try:
            result = fn.fn(this, args)
        finally:
            self.realm.runtime.depth -= 1
        return UNDEFINED if result is None else result

    # ---- Execution ----

    def _execute(self, stop_depth: int) -> JSValue:
        """Run until the frame at stop_depth returns; dispatch exceptions to handlers."""
        while True:
            try:
                return self._loop(stop_depth)
            except (MemoryLimitError, TimeLimitError):
                self._unwind(stop_depth)
                raise
            except JSThrow as e:
                value = e.value
            except JSError as e:
                value = self.realm.error_from_exception(e)
            except RecursionError:
                value = self.realm.make_error("InternalError", "stack overflow")
            except BaseException:
                self._unwind(stop_depth)
                raise
            if not self._dispatch_exception(value, stop_depth):
                raise JSThrow(value)

    def _dispatch_exception(self, value: JSValue, stop_depth: int) -> bool:
        """Transfer control to the innermost handler; False if none is left."""
        while len(self.call_stack) > stop_depth:
            frame = self.call_stack[-1]
            if frame.handlers:
                catch_ip, stack_len = frame.handlers.pop()
                del self.stack[stack_len:]
                self.stack.append(value)
                frame.ip = catch_ip
                return True
            self._pop_frame()
        return False

    def _check_limits(self) -> None:
        """Check memory and time limits."""
        runtime = self.realm.runtime
        runtime.instruction_count += 1
        if runtime.time_limit is not None and runtime.instruction_count % 1000 == 0:
            runtime.check_time()
        if runtime.memory_limit is not None:
            # Rough estimate: 100 bytes per stack item, 200 per frame
            used = len(self.stack) * 100 + len(self.call_stack) * 200
            if used > runtime.memory_limit:
                raise MemoryLimitError()

    def _loop(self, stop_depth: int) -> JSValue:
        stack = self.stack
        while True:
            self._check_limits()
            frame = self.call_stack[-1]
            bytecode = frame.func.bytecode
            ip = frame.ip
            if ip >= len(bytecode):
                op = OpCode.RETURN_UNDEFINED
                arg = 0
            else:
                op = bytecode[ip]
                if op in _HAS_OPERAND:
                    arg = bytecode[ip + 1] | (bytecode[ip + 2] << 8)
                    frame.ip = ip + 3
                else:
                    arg = 0
                    frame.ip = ip + 1

            if op == OpCode.RETURN or op == OpCode.RETURN_UNDEFINED:
                value = stack.pop() if op == OpCode.RETURN else UNDEFINED
                self._pop_frame()
                if frame.construct_target is not None and not isinstance(value, JSObject):
                    value = frame.construct_target
                if len(self.call_stack) == stop_depth:
                    return value
                stack.append(value)
                continue

            self._execute_opcode(op, arg, frame)

    def _execute_opcode(self, op: int, arg: int, frame: CallFrame) -> None:
        """Execute a single opcode."""
        stack = self.stack
        realm = self.realm

        # Stack operations
        if op == OpCode.POP:
            stack.pop()
        elif op == OpCode.DUP:
            stack.append(stack[-1])
        elif op == OpCode.DUP2:
            stack.extend(stack[-2:])
        elif op == OpCode.ROT3:
            a = stack[-3]
            stack[-3] = stack[-2]
            stack[-2] = stack[-1]
            stack[-1] = a

        # Constants
        elif op == OpCode.LOAD_CONST:
            stack.append(frame.func.constants[arg])
        elif op == OpCode.LOAD_UNDEFINED:
            stack.append(UNDEFINED)
        elif op == OpCode.LOAD_NULL:
            stack.append(NULL)
        elif op == OpCode.LOAD_TRUE:
            stack.append(True)
        elif op == OpCode.LOAD_FALSE:
            stack.append(False)

        # Frame slots
        elif op == OpCode.LOAD_LOCAL:
            stack.append(frame.locals[arg])
        elif op == OpCode.STORE_LOCAL:
            frame.locals[arg] = stack[-1]
        elif op == OpCode.LOAD_CELL:
            stack.append(frame.cells[arg].value)
        elif op == OpCode.STORE_CELL:
            frame.cells[arg].value = stack[-1]
        elif op == OpCode.LOAD_CLOSURE:
            stack.append(frame.closure_cells[arg].value)
        elif op == OpCode.STORE_CLOSURE:
            frame.closure_cells[arg].value = stack[-1]

        # Global and lexical bindings
        elif op == OpCode.LOAD_NAME:
            stack.append(self._load_name(frame.func.constants[arg]))
        elif op == OpCode.STORE_NAME:
            self._store_name(frame.func.constants[arg], stack[-1], frame.func.strict)
        elif op == OpCode.TYPEOF_NAME:
            name = frame.func.constants[arg]
            if name in realm.lexical or realm.global_object.find(name) is not None:
                stack.append(js_typeof(self._load_name(name)))
            else:
                stack.append("undefined")
        elif op == OpCode.DECLARE_VAR:
            name = frame.func.constants[arg]
            if realm.global_object.find(name) is None:
                realm.global_object.define(name, UNDEFINED)
        elif op == OpCode.DEFINE_LET or op == OpCode.DEFINE_CONST:
            name = frame.func.constants[arg]
            if name in realm.lexical:
                raise JSSyntaxError(f"redeclaration of '{name}'")
            realm.lexical[name] = stack.pop()
            if op == OpCode.DEFINE_CONST:
                realm.const_names.add(name)

        # Properties
        elif op == OpCode.GET_PROP:
            key = stack.pop()
            obj = stack.pop()
            if isinstance(obj, JSArray) and type(key) is int and 0 <= key < obj.length:
                stack.append(obj.get_index(key))
            else:
                stack.append(realm.get_property(obj, key))
        elif op == OpCode.SET_PROP:
            value = stack.pop()
            key = stack.pop()
            obj = stack.pop()
            if isinstance(obj, JSArray) and type(key) is int and key >= 0:
                obj.set_index(key, value)
            else:
                realm.set_property(obj, key, value)
            stack.append(value)
        elif op == OpCode.DELETE_PROP:
            key = stack.pop()
            obj = stack.pop()
            stack.append(realm.delete_property(obj, key))

        # Literals
        elif op == OpCode.BUILD_ARRAY:
            elements = stack[len(stack) - arg:] if arg else []
            del stack[len(stack) - arg:]
            stack.append(realm.new_array(elements))
        elif op == OpCode.NEW_OBJECT:
            stack.append(realm.new_object())
        elif op == OpCode.INIT_PROP:
            value = stack.pop()
            key = realm.to_property_key(stack.pop())
            stack[-1].define(key, value)
        elif op == OpCode.INIT_GETTER:
            fn = stack.pop()
            key = realm.to_property_key(stack.pop())
            stack[-1].define_accessor(key, getter=fn)
        elif op == OpCode.INIT_SETTER:
            fn = stack.pop()
            key = realm.to_property_key(stack.pop())
            stack[-1].define_accessor(key, setter=fn)

        # Arithmetic
        elif op == OpCode.ADD:
            b = stack.pop()
            a = stack.pop()
            stack.append(self._add(a, b))
        elif op in _ARITHMETIC:
            b = stack.pop()
            a = stack.pop()
            stack.append(self._arithmetic(_ARITHMETIC[op], a, b))
        elif op == OpCode.NEG:
            stack.append(self._negate(realm.to_numeric(stack.pop())))
        elif op == OpCode.POS:
            value = stack.pop()
            if isinstance(value, Decimal):
                stack.append(value)
            else:
                stack.append(realm.to_number(value))
        elif op == OpCode.TO_NUMERIC:
            stack.append(realm.to_numeric(stack.pop()))
        elif op == OpCode.INC or op == OpCode.DEC:
            value = realm.to_numeric(stack.pop())
            delta = 1 if op == OpCode.INC else -1
            if isinstance(value, JSBigInt):
                stack.append(JSBigInt(value.value + delta))
            elif isinstance(value, Decimal):
                stack.append(DECIMAL_CONTEXT.add(value, delta))
            else:
                stack.append(normalize_number(value + delta))
        elif op == OpCode.BNOT:
            value = realm.to_numeric(stack.pop())
            if isinstance(value, JSBigInt):
                stack.append(JSBigInt(~value.value))
            elif isinstance(value, Decimal):
                raise JSTypeError("invalid operand for bitwise operation")
            else:
                stack.append(~to_int32(value))

        # Comparison
        elif op == OpCode.LT:
            b = stack.pop()
            a = stack.pop()
            stack.append(self._compare(a, b) is True)
        elif op == OpCode.GT:
            b = stack.pop()
            a = stack.pop()
            stack.append(self._compare(b, a) is True)
        elif op == OpCode.LE:
            b = stack.pop()
            a = stack.pop()
            stack.append(self._compare(b, a) is False)
        elif op == OpCode.GE:
            b = stack.pop()
            a = stack.pop()
            stack.append(self._compare(a, b) is False)
        elif op == OpCode.EQ:
            b = stack.pop()
            a = stack.pop()
            stack.append(self._loose_equals(a, b))
        elif op == OpCode.NE:
            b = stack.pop()
            a = stack.pop()
            stack.append(not self._loose_equals(a, b))
        elif op == OpCode.SEQ:
            b = stack.pop()
            a = stack.pop()
            stack.append(strict_equals(a, b))
        elif op == OpCode.SNE:
            b = stack.pop()
            a = stack.pop()
            stack.append(not strict_equals(a, b))

        # Logical and type operations
        elif op == OpCode.NOT:
            stack.append(not to_boolean(stack.pop()))
        elif op == OpCode.TYPEOF:
            stack.append(js_typeof(stack.pop()))
        elif op == OpCode.INSTANCEOF:
            constructor = stack.pop()
            value = stack.pop()
            stack.append(self._instance_of(value, constructor))
        elif op == OpCode.IN:
            obj = stack.pop()
            key = stack.pop()
            stack.append(realm.has_property(obj, key))

        # Control flow
        elif op == OpCode.JUMP:
            frame.ip = arg
        elif op == OpCode.JUMP_IF_FALSE:
            if not to_boolean(stack.pop()):
                frame.ip = arg
        elif op == OpCode.JUMP_IF_TRUE:
            if to_boolean(stack.pop()):
                frame.ip = arg

        # Calls
        elif op == OpCode.CALL or op == OpCode.CALL_METHOD:
            args = stack[len(stack) - arg:] if arg else []
            del stack[len(stack) - arg:]
            fn = stack.pop()
            this = stack.pop() if op == OpCode.CALL_METHOD else UNDEFINED
            self._invoke(fn, this, args)
        elif op == OpCode.NEW:
            args = stack[len(stack) - arg:] if arg else []
            del stack[len(stack) - arg:]
            constructor = stack.pop()
            if isinstance(constructor, JSFunction) and constructor.is_constructor:
                prototype = realm.get_property(constructor, "prototype")
                if not isinstance(prototype, JSObject):
                    prototype = realm.object_prototype
                target = JSObject(prototype)
                self._push_frame(constructor, target, args, construct_target=target)
            else:
                stack.append(realm.construct(constructor, args))
        elif op == OpCode.THIS:
            stack.append(frame.this_value)
        elif op == OpCode.MAKE_CLOSURE:
            compiled = frame.func.constants[arg]
            cells = []
            for name in compiled.free_vars:
                if name in frame.func.cell_vars:
                    cells.append(frame.cells[frame.func.cell_vars.index(name)])
                else:
                    cells.append(frame.closure_cells[frame.func.free_vars.index(name)])
            bound_this = frame.this_value if compiled.is_arrow else None
            stack.append(realm.make_function(compiled, cells, bound_this))

        # Exceptions
        elif op == OpCode.THROW:
            raise JSThrow(stack.pop())
        elif op == OpCode.TRY_START:
            frame.handlers.append((arg, len(stack)))
        elif op == OpCode.TRY_END:
            frame.handlers.pop()

        # Iteration
        elif op == OpCode.FOR_IN_INIT:
            stack.append(self._for_in_iterator(stack.pop()))
        elif op == OpCode.FOR_OF_INIT:
            source = stack.pop()
            if not isinstance(source, (JSArray, JSUint8Array, str)):
                raise JSTypeError(f"{realm.describe(source)} is not iterable")
            stack.append(ValueIterator(source))
        elif op == OpCode.ITER_NEXT:
            value, done = stack.pop().next()
            stack.append(value)
            stack.append(done)

        # Modules
        elif op == OpCode.IMPORT_MODULE:
            name = frame.func.constants[arg]
            namespace = realm.modules.get(name)
            if namespace is None:
                raise JSReferenceError(f"could not load module '{name}'")
            stack.append(namespace)
        elif op == OpCode.EXPORT_MODULE:
            realm.modules[frame.func.filename] = stack.pop()

        else:
            raise JSInternalError(f"invalid opcode {op}")

    def _invoke(self, fn: JSValue, this: JSValue, args: List[JSValue]) -> None:
        if isinstance(fn, JSFunction):
            self._push_frame(fn, this, args)
        elif isinstance(fn, JSNativeFunction):
            self.stack.append(self._call_native(fn, this, args))
        else:
            raise JSTypeError(f"{self.realm.describe(fn)} is not a function")

    # ---- Names ----

    def _load_name(self, name: str) -> JSValue:
        realm = self.realm
        if name in realm.lexical:
            return realm.lexical[name]
        if realm.global_object.find(name) is None:
            raise JSReferenceError(f"{name} is not defined")
        return realm.get_property(realm.global_object, name)

    def _store_name(self, name: str, value: JSValue, strict: bool) -> None:
        realm = self.realm
        if name in realm.lexical:
            if name in realm.const_names:
                raise JSTypeError(f"'{name}' is read-only")
            realm.lexical[name] = value
            return
        if strict and realm.global_object.find(name) is None:
            raise JSReferenceError(f"{name} is not defined")
        realm.set_property(realm.global_object, name, value)

    def _for_in_iterator(self, obj: JSValue) -> ForInIterator:
        if isinstance(obj, str):
            return ForInIterator(obj, [str(i) for i in range(len(obj))])
        if not isinstance(obj, JSObject):
            return ForInIterator(obj, [])
        keys: List[str] = []
        seen = set()
        current: Optional[JSObject] = obj
        while current is not None:
            for key in current.own_keys(enumerable_only=False):
                if key in seen:
                    continue
                seen.add(key)
                if current.is_enumerable(key):
                    keys.append(key)
            current = current._prototype
        return ForInIterator(obj, keys)

    def _instance_of(self, value: JSValue, constructor: JSValue) -> bool:
        if not is_callable(constructor):
            raise JSTypeError("invalid 'instanceof' right operand")
        if not isinstance(value, JSObject):
            return False
        prototype = self.realm.get_property(constructor, "prototype")
        current = value._prototype
        while current is not None:
            if current is prototype:
                return True
            current = current._prototype
        return False

    # ---- Operators ----

    def _add(self, a: JSValue, b: JSValue) -> JSValue:
        """The + operator: string concatenation or numeric addition."""
        if type(a) in (int, float) and type(b) in (int, float):
            return normalize_number(a + b)
        if isinstance(a, str) and isinstance(b, str):
            return self._concat(a, b)
        realm = self.realm
        a = realm.to_primitive(a)
        b = realm.to_primitive(b)
        if isinstance(a, str) or isinstance(b, str):
            return self._concat(realm.to_string(a), realm.to_string(b))
        return self._arithmetic("+", a, b)

    def _concat(self, a: str, b: str) -> str:
        self.realm.runtime.check_allocation(2 * (len(a) + len(b)))
        return a + b

    def _arithmetic(self, op: str, a: JSValue, b: JSValue) -> JSValue:
        realm = self.realm
        a = realm.to_numeric(a)
        b = realm.to_numeric(b)
        if isinstance(a, Decimal) or isinstance(b, Decimal):
            return decimal_arithmetic(op, to_decimal(a), to_decimal(b))
        if isinstance(a, JSBigInt) or isinstance(b, JSBigInt):
            if not (isinstance(a, JSBigInt) and isinstance(b, JSBigInt)):
                raise JSTypeError("cannot mix BigInt and other types, use explicit conversions")
            return bigint_arithmetic(op, a.value, b.value)
        return number_arithmetic(op, a, b)

    def _negate(self, value: Any) -> JSValue:
        if isinstance(value, JSBigInt):
            return JSBigInt(-value.value)
        if isinstance(value, Decimal):
            return DECIMAL_CONTEXT.minus(value)
        if value == 0 and isinstance(value, int):
            return -0.0
        return normalize_number(-value)

    def _compare(self, a: JSValue, b: JSValue) -> Optional[bool]:
        """Abstract relational comparison a < b; None when undefined (NaN)."""
        realm = self.realm
        a = realm.to_primitive(a, "number")
        b = realm.to_primitive(b, "number")
        if isinstance(a, str) and isinstance(b, str):
            # UTF-16 code unit order
            return a.encode("utf-16-be", "surrogatepass") < b.encode("utf-16-be", "surrogatepass")
        a = _comparable(realm.to_numeric(a) if not isinstance(a, str) else _string_numeric(a, b))
        b = _comparable(realm.to_numeric(b) if not isinstance(b, str) else _string_numeric(b, a))
        if a is None or b is None:
            return None
        return a < b

    def _loose_equals(self, a: JSValue, b: JSValue) -> bool:
        """JavaScript == operator."""
        while True:
            tag_a = type_tag(a)
            tag_b = type_tag(b)
            if tag_a == tag_b:
                return strict_equals(a, b)
            if {tag_a, tag_b} == {"undefined", "null"}:
                return True
            if tag_a in ("undefined", "null") or tag_b in ("undefined", "null"):
                return False
            if tag_a == "boolean":
                a = int(a)
                continue
            if tag_b == "boolean":
                b = int(b)
                continue
            if tag_a == "object":
                a = self.realm.to_primitive(a)
                continue
            if tag_b == "object":
                b = self.realm.to_primitive(b)
                continue
            if tag_a == "string":
                a = _string_numeric(a, b)
                if a is None:
                    return False
                continue
            if tag_b == "string":
                b = _string_numeric(b, a)
                if b is None:
                    return False
                continue
            # Mixed numeric kinds compare by mathematical value
            x = _comparable(a)
            y = _comparable(b)
            return x is not None and y is not None and x == y


_ARITHMETIC = {
    OpCode.SUB: "-",
    OpCode.MUL: "*",
    OpCode.DIV: "/",
    OpCode.MOD: "%",
    OpCode.POW: "**",
    OpCode.BAND: "&",
    OpCode.BOR: "|",
    OpCode.BXOR: "^",
    OpCode.SHL: "<<",
    OpCode.SHR: ">>",
    OpCode.USHR: ">>>",
}


def type_tag(value: JSValue) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is NULL:
        return "null"
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
    return "object"


def strict_equals(a: JSValue, b: JSValue) -> bool:
    """JavaScript === operator."""
    tag = type_tag(a)
    if tag != type_tag(b):
        return False
    if tag == "object":
        return a is b
    if tag == "bigdecimal":
        return not a.is_nan() and a == b
    return a == b


def _string_numeric(text: str, other: JSValue):
    """Convert a string operand to the numeric kind of the other operand."""
    if isinstance(other, JSBigInt):
        try:
            return JSBigInt(int(text.strip() or "0", 0))
        except ValueError:
            return None
    return string_to_number(text)


def _comparable(value: Any):
    """Mathematical value for cross-kind comparison; None for NaN."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, JSBigInt):
        return value.value
    if isinstance(value, Decimal):
        return None if value.is_nan() else value
    if is_nan(value):
        return None
    return value


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, JSBigInt):
        return Decimal(value.value)
    if isinstance(value, float):
        if math.isnan(value):
            return Decimal("NaN")
        if math.isinf(value):
            return Decimal("Infinity") if value > 0 else Decimal("-Infinity")
        return Decimal(repr(value))
    return Decimal(int(value))


def decimal_arithmetic(op: str, a: Decimal, b: Decimal) -> Decimal:
    ctx = DECIMAL_CONTEXT
    if op == "+":
        return ctx.add(a, b)
    if op == "-":
        return ctx.subtract(a, b)
    if op == "*":
        return ctx.multiply(a, b)
    if op == "/":
        if b.is_zero():
            raise JSRangeError("division by zero")
        return ctx.divide(a, b)
    if op == "%":
        if b.is_zero():
            raise JSRangeError("division by zero")
        return ctx.remainder(a, b)
    if op == "**":
        try:
            return ctx.power(a, b)
        except InvalidOperation:
            return Decimal("NaN")
    raise JSTypeError("invalid operand for bitwise operation")


def bigint_arithmetic(op: str, a: int, b: int) -> JSBigInt:
    if op == "+":
        return check_bigint(a + b)
    if op == "-":
        return check_bigint(a - b)
    if op == "*":
        return check_bigint(a * b)
    if op in ("/", "%"):
        if b == 0:
            raise JSRangeError("division by zero")
        quotient = abs(a) // abs(b)
        if (a < 0) != (b < 0):
            quotient = -quotient
        return JSBigInt(quotient if op == "/" else a - quotient * b)
    if op == "**":
        if b < 0:
            raise JSRangeError("negative exponent")
        if abs(a) > 1 and b * a.bit_length() > MAX_BIGINT_BITS:
            raise JSRangeError("Maximum BigInt size exceeded")
        return check_bigint(a ** b)
    if op == "&":
        return JSBigInt(a & b)
    if op == "|":
        return JSBigInt(a | b)
    if op == "^":
        return JSBigInt(a ^ b)
    if op in ("<<", ">>"):
        shift = b if op == "<<" else -b
        if shift > MAX_BIGINT_BITS:
            raise JSRangeError("Maximum BigInt size exceeded")
        return check_bigint(a << shift if shift >= 0 else a >> -shift)
    raise JSTypeError("BigInts have no unsigned right shift, use >> instead")


def number_arithmetic(op: str, a: Union[int, float], b: Union[int, float]) -> Union[int, float]:
    if op == "-":
        return normalize_number(a - b)
    if op == "*":
        return normalize_number(a * b)
    if op == "+":
        return normalize_number(a + b)
    if op == "/":
        if b == 0:
            if a == 0 or is_nan(a):
                return math.nan
            sign = math.copysign(1.0, a) * math.copysign(1.0, b)
            return math.inf if sign > 0 else -math.inf
        return normalize_number(a / b)
    if op == "%":
        if b == 0 or is_nan(a) or is_nan(b) or math.isinf(a):
            return math.nan
        if math.isinf(b):
            return a
        return normalize_number(math.fmod(a, b))
    if op == "**":
        return number_pow(a, b)
    if op == "&":
        return to_int32(to_int32(a) & to_int32(b))
    if op == "|":
        return to_int32(to_int32(a) | to_int32(b))
    if op == "^":
        return to_int32(to_int32(a) ^ to_int32(b))
    shift = to_uint32(b) & 31
    if op == "<<":
        return to_int32(to_int32(a) << shift)
    if op == ">>":
        return to_int32(a) >> shift
    return to_uint32(a) >> shift


def number_pow(a: Union[int, float], b: Union[int, float]) -> Union[int, float]:
    """Number exponentiation with JavaScript edge cases."""
    if is_nan(b):
        return math.nan
    if b == 0:
        return 1
    if is_nan(a) or (abs(a) == 1 and math.isinf(b)):
        return math.nan
    if isinstance(a, int) and isinstance(b, int) and b > 0 and abs(a).bit_length() * b <= 1100:
        return normalize_number(a ** b)
    odd_integer = float(b).is_integer() and not math.isinf(b) and int(b) % 2 == 1
    if a == 0 and b < 0:
        negative = math.copysign(1.0, a) < 0 and odd_integer
        return -math.inf if negative else math.inf
    try:
        result = math.pow(a, b)
    except OverflowError:
        return -math.inf if a < 0 and odd_integer else math.inf
    except ValueError:
        return math.nan
    return normalize_number(result)
