"""Reference-counted handles to engine values."""

from decimal import Decimal
from typing import TYPE_CHECKING, Any, List, Optional

from . import marshal
from .engine import api
from .engine.values import (
    UNDEFINED, JSArray, JSArrayBuffer, JSObject, JSUint8Array, is_error,
)
from .errors import ProtocolViolation, engine_errors
from .marshal import ValueKind
from .properties import Atom, PropertyName

if TYPE_CHECKING:
    from .context import Context


class _Ref:
    """Shared reference count of one engine datum."""

    __slots__ = ("payload", "count")

    def __init__(self, payload: Any):
        self.payload = payload
        self.count = 1


class Value:
    """A handle to engine data scoped to one Context.

    A Value returned by any operation is owned by the caller and must be
    released exactly once with :meth:`free` (or by leaving a ``with`` block).
    :meth:`dup` returns a second owned handle to the same datum; the datum
    stays reachable until every handle is released.

    Arguments passed to host functions are *borrowed*: they are valid only
    for the duration of the call and may not be freed. Call :meth:`dup` to
    keep one.
    """

    __slots__ = ("_ctx", "_ref", "_freed", "_borrowed", "_expired", "_exception", "__weakref__")

    def __init__(
        self, ctx: "Context", payload: Any, *, exception: bool = False,
        borrowed: bool = False, ref: Optional[_Ref] = None,
    ):
        self._ctx = ctx
        self._ref = ref if ref is not None else _Ref(payload)
        self._freed = False
        self._borrowed = borrowed
        self._expired = False
        self._exception = exception
        if not borrowed:
            ctx._track(self)

    # ---- Ownership ----

    def _check(self) -> None:
        if self._expired:
            raise ProtocolViolation("argument handle used after its host function returned")
        if self._freed:
            raise ProtocolViolation("value used after free")
        if self._ctx.closed:
            raise ProtocolViolation("value used after its context was freed")

    def _check_peer(self, other: Any) -> "Value":
        if not isinstance(other, Value):
            raise ProtocolViolation(f"expected a Value, got {type(other).__name__}")
        other._check()
        if other._ctx is not self._ctx:
            raise ProtocolViolation("value belongs to a different context")
        return other

    @property
    def _payload(self) -> Any:
        self._check()
        return self._ref.payload

    @property
    def context(self) -> "Context":
        return self._ctx

    @property
    def ref_count(self) -> int:
        """Number of owned handles sharing this datum."""
        return self._ref.count

    @property
    def freed(self) -> bool:
        return self._freed

    def dup(self) -> "Value":
        """Return a new owned handle to the same datum."""
        self._check()
        self._ref.count += 1
        return Value(self._ctx, self._ref.payload, exception=self._exception, ref=self._ref)

    def free(self) -> None:
        """Release this handle. Releasing twice is a protocol violation."""
        if self._borrowed:
            raise ProtocolViolation("borrowed argument handles must not be freed")
        if self._freed:
            raise ProtocolViolation("double free of value")
        if self._ctx.closed:
            raise ProtocolViolation("value freed after its context was freed")
        self._freed = True
        self._ref.count -= 1
        self._ctx._untrack(self)

    def _release(self) -> Any:
        """Free this handle and return its payload, for operations that consume a Value."""
        payload = self._payload
        self.free()
        return payload

    def _expire(self) -> None:
        self._expired = True

    def __enter__(self) -> "Value":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._freed and not self._borrowed and not self._ctx.closed:
            self.free()

    # ---- Kind ----

    @property
    def kind(self) -> ValueKind:
        payload = self._payload
        if self._exception:
            return ValueKind.EXCEPTION
        return marshal.kind_of(payload)

    def is_undefined(self) -> bool:
        return self.kind is ValueKind.UNDEFINED

    def is_null(self) -> bool:
        return self.kind is ValueKind.NULL

    def is_bool(self) -> bool:
        return self.kind is ValueKind.BOOL

    def is_integer(self) -> bool:
        return self.kind is ValueKind.INTEGER

    def is_float(self) -> bool:
        return self.kind is ValueKind.FLOAT

    def is_number(self) -> bool:
        return self.kind in (ValueKind.INTEGER, ValueKind.FLOAT)

    def is_string(self) -> bool:
        return self.kind is ValueKind.STRING

    def is_big_int(self) -> bool:
        return self.kind is ValueKind.BIG_INT

    def is_big_decimal(self) -> bool:
        return self.kind is ValueKind.BIG_DECIMAL

    def is_object(self) -> bool:
        return self.kind in (ValueKind.OBJECT, ValueKind.FUNCTION)

    def is_function(self) -> bool:
        return self.kind is ValueKind.FUNCTION

    def is_exception(self) -> bool:
        self._check()
        return self._exception

    def is_array(self) -> bool:
        return isinstance(self._payload, JSArray)

    def is_error(self) -> bool:
        return is_error(self._payload)

    def is_array_buffer(self) -> bool:
        return isinstance(self._payload, (JSArrayBuffer, JSUint8Array))

    # ---- Typed extraction ----

    def as_bool(self) -> bool:
        return marshal.to_bool(self._payload)

    def as_int64(self) -> int:
        return marshal.to_int64(self._payload)

    def as_float64(self) -> float:
        return marshal.to_float64(self._payload)

    def as_str(self) -> str:
        return marshal.to_str(self._payload)

    def as_bytes(self) -> bytes:
        return marshal.to_bytes(self._payload)

    def as_big_int(self) -> int:
        return marshal.to_big_int(self._payload)

    def as_big_decimal(self) -> Decimal:
        return marshal.to_big_decimal(self._payload)

    @property
    def length(self) -> int:
        return marshal.array_length(self._payload)

    def to_string(self) -> str:
        """The engine's default string coercion."""
        payload = self._payload
        realm = self._ctx._realm
        with engine_errors(realm):
            return api.to_string(realm, payload)

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        if self._freed:
            return "<Value freed>"
        kind = "exception" if self._exception else marshal.kind_of(self._ref.payload).value
        return f"<Value {kind}>"

    # ---- Properties ----

    def get(self, name: str) -> "Value":
        payload = self._payload
        realm = self._ctx._realm
        with engine_errors(realm):
            return Value(self._ctx, api.get_property(realm, payload, name))

    def set(self, name: str, value: "Value") -> None:
        """Set a property; the value handle is consumed."""
        payload = self._payload
        item = self._check_peer(value)._release()
        realm = self._ctx._realm
        with engine_errors(realm):
            api.set_property(realm, payload, name, item)

    def has(self, name: str) -> bool:
        payload = self._payload
        if not isinstance(payload, JSObject):
            return False
        realm = self._ctx._realm
        with engine_errors(realm):
            return api.has_property(realm, payload, name)

    def delete(self, name: str) -> bool:
        payload = self._payload
        realm = self._ctx._realm
        with engine_errors(realm):
            return api.delete_property(realm, payload, name)

    def _atom_name(self, atom: Atom) -> str:
        runtime = self._ctx.runtime
        if not isinstance(atom, Atom) or atom.runtime_id != runtime.id:
            raise ProtocolViolation("atom belongs to a different runtime")
        return runtime.atom_to_string(atom)

    def get_by_atom(self, atom: Atom) -> "Value":
        """Property lookup by atom; a missing key yields undefined."""
        self._check()
        return self.get(self._atom_name(atom))

    def set_by_atom(self, atom: Atom, value: "Value") -> None:
        self._check()
        self.set(self._atom_name(atom), value)

    def property_names(self) -> List[PropertyName]:
        """Snapshot of the own enumerable property names, in own-key order."""
        payload = self._payload
        runtime = self._ctx.runtime
        names = []
        for atom_id in api.own_property_atoms(self._ctx._realm, payload):
            atom = Atom(runtime.id, atom_id)
            names.append(PropertyName(atom, runtime.atom_to_string(atom)))
        return names

    # ---- Calls ----

    def call(self, *args: "Value", this: Optional["Value"] = None) -> "Value":
        """Call this function; argument handles are borrowed, the result is owned."""
        payload = self._payload
        this_payload = UNDEFINED if this is None else self._check_peer(this)._payload
        arg_payloads = [self._check_peer(arg)._payload for arg in args]
        realm = self._ctx._realm
        with engine_errors(realm):
            return Value(self._ctx, api.call(realm, payload, this_payload, arg_payloads))
