"""Execution contexts: one global environment each."""

import enum
import logging
import weakref
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Iterable, Union

from . import bytecode, marshal
from .engine import api
from .engine.values import NULL, UNDEFINED
from .errors import ProtocolViolation, engine_errors
from .properties import Atom
from .trampoline import HostFunction, make_function
from .value import Value

if TYPE_CHECKING:
    from .runtime import Runtime

logger = logging.getLogger(__name__)


class EvalMode(enum.Enum):
    """How source text is evaluated."""

    GLOBAL = "global"
    MODULE = "module"


class Context:
    """A global environment within a :class:`Runtime`.

    All Values are created through a Context and may only be used with it.
    Free the Context (or leave its ``with`` block) before freeing the
    Runtime.
    """

    def __init__(self, runtime: "Runtime"):
        self._runtime = runtime
        self._realm = api.new_context(runtime._engine)
        self._live: "weakref.WeakSet[Value]" = weakref.WeakSet()
        self._closed = False
        logger.debug("Created context %#x in runtime %d", id(self), runtime.id)

    @property
    def runtime(self) -> "Runtime":
        return self._runtime

    @property
    def closed(self) -> bool:
        return self._closed

    def _check(self) -> None:
        if self._closed:
            raise ProtocolViolation("context used after free")

    def _track(self, value: Value) -> None:
        self._live.add(value)

    def _untrack(self, value: Value) -> None:
        self._live.discard(value)

    def _wrap(self, payload: Any) -> Value:
        return Value(self, payload)

    # ---- Lifecycle ----

    def free(self) -> None:
        """Release the context. Values still held become unusable."""
        if self._closed:
            raise ProtocolViolation("double free of context")
        leaked = len(self._live)
        if leaked:
            logger.warning("Context freed with %d unreleased value handle(s)", leaked)
        self._live.clear()
        api.free_context(self._realm)
        self._closed = True
        self._runtime._forget(self)
        logger.debug("Freed context %#x", id(self))

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._closed:
            self.free()

    # ---- Evaluation ----

    def eval(self, source: str, mode: EvalMode = EvalMode.GLOBAL, filename: str = "<input>") -> Value:
        """Run source text; returns the completion value of a script.

        Raises :class:`CompileError` for invalid source and
        :class:`RuntimeException` for an uncaught throw.
        """
        self._check()
        source = marshal.from_string(source)
        with engine_errors(self._realm):
            result = api.eval_source(self._realm, source, filename, mode is EvalMode.MODULE)
        return self._wrap(result)

    def compile(self, source: str, mode: EvalMode = EvalMode.GLOBAL, filename: str = "<input>") -> bytes:
        """Compile source text to a serialized program."""
        self._check()
        source = marshal.from_string(source)
        return bytecode.compile_program(self._realm, source, filename, mode is EvalMode.MODULE)

    def eval_binary(self, data: bytes) -> Value:
        """Load and run a program produced by :meth:`compile`."""
        self._check()
        return self._wrap(bytecode.load_program(self._realm, data))

    def globals(self) -> Value:
        self._check()
        return self._wrap(api.global_object(self._realm))

    # ---- Value constructors ----

    def undefined(self) -> Value:
        self._check()
        return self._wrap(UNDEFINED)

    def null(self) -> Value:
        self._check()
        return self._wrap(NULL)

    def bool(self, value: bool) -> Value:
        self._check()
        return self._wrap(marshal.from_bool(value))

    def int64(self, value: int) -> Value:
        self._check()
        return self._wrap(marshal.from_int64(value))

    def float64(self, value: float) -> Value:
        self._check()
        return self._wrap(marshal.from_float64(value))

    def string(self, value: Union[str, bytes]) -> Value:
        self._check()
        return self._wrap(marshal.from_string(value))

    def big_int(self, value: int) -> Value:
        self._check()
        return self._wrap(marshal.from_big_int(value))

    def big_decimal(self, value: Union[Decimal, int, float, str]) -> Value:
        self._check()
        return self._wrap(marshal.from_big_decimal(value))

    def array_buffer(self, data: bytes) -> Value:
        self._check()
        data = marshal.from_bytes(data)
        with engine_errors(self._realm):
            return self._wrap(api.new_array_buffer(self._realm, data))

    def value(self, value: Any) -> Value:
        """Wrap a host scalar, choosing the kind from its Python type.

        None maps to null, bytes to an ArrayBuffer, ints outside int64 to a
        BigInt and Decimal to a BigDecimal.
        """
        self._check()
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self.array_buffer(value)
        return self._wrap(marshal.from_scalar(value))

    def object(self) -> Value:
        self._check()
        return self._wrap(api.new_object(self._realm))

    def array(self, values: Iterable[Value] = ()) -> Value:
        """New array of the given Values; the element handles are consumed."""
        self._check()
        handles = list(values)
        for handle in handles:
            if not isinstance(handle, Value):
                raise ProtocolViolation(f"expected a Value, got {type(handle).__name__}")
            handle._check()
            if handle.context is not self:
                raise ProtocolViolation("value belongs to a different context")
        elements = [handle._release() for handle in handles]
        with engine_errors(self._realm):
            return self._wrap(api.new_array(self._realm, elements))

    def function(self, host_fn: HostFunction, name: str = "", length: int = 0) -> Value:
        """Wrap a host callable ``host_fn(ctx, this, args) -> Value`` as a function."""
        self._check()
        return self._wrap(make_function(self, host_fn, name, length))

    # ---- Exceptions ----

    def throw(self, value: Value) -> Value:
        """Exception-kind Value for a host function to return; consumes value."""
        self._check()
        if not isinstance(value, Value):
            raise ProtocolViolation(f"expected a Value, got {type(value).__name__}")
        value._check()
        if value.context is not self:
            raise ProtocolViolation("value belongs to a different context")
        return Value(self, value._release(), exception=True)

    def throw_error(self, message: str, name: str = "Error") -> Value:
        """Exception-kind Value wrapping a new Error object of the named type."""
        self._check()
        error = api.new_error(self._realm, name, marshal.from_string(message))
        return Value(self, error, exception=True)

    # ---- Atoms ----

    def atom(self, name: str) -> Atom:
        self._check()
        return self._runtime.atom(name)

    def atom_to_string(self, atom: Atom) -> str:
        self._check()
        return self._runtime.atom_to_string(atom)

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"{len(self._live)} live values"
        return f"<Context {state}>"
