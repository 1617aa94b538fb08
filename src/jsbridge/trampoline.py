"""Host functions callable from JavaScript.

The engine calls a native function as ``fn(this, args)`` with raw engine
values. The trampoline wraps those in borrowed :class:`Value` handles, calls
the host closure as ``host_fn(ctx, this, args)`` and hands the returned
Value's datum back to the engine. Each invocation keeps its own handles, so
host closures may re-enter the context freely.
"""

import logging
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from .engine import api
from .engine.errors import JSThrow
from .engine.values import UNDEFINED, JSNativeFunction
from .errors import ProtocolViolation
from .value import Value

if TYPE_CHECKING:
    from .context import Context

logger = logging.getLogger(__name__)

HostFunction = Callable[["Context", Value, List[Value]], Optional[Value]]


def _take_result(ctx: "Context", name: str, result: Any) -> Any:
    """Take ownership of a host function's result and return its datum."""
    if result is None:
        return UNDEFINED
    if not isinstance(result, Value):
        raise ProtocolViolation(
            f"host function {name or '<anonymous>'} returned {type(result).__name__}, not a Value"
        )
    result._check()
    if result.context is not ctx:
        raise ProtocolViolation("host function returned a value from a different context")
    if result._borrowed:
        payload = result._ref.payload
    else:
        payload = result._release()
    if result._exception:
        raise JSThrow(payload)
    return payload


def make_function(ctx: "Context", host_fn: HostFunction, name: str = "", length: int = 0) -> JSNativeFunction:
    """Wrap host_fn as an engine function bound to ctx."""
    if not callable(host_fn):
        raise TypeError(f"host function must be callable, got {type(host_fn).__name__}")
    name = name or getattr(host_fn, "__name__", "")
    if name == "<lambda>":
        name = ""

    def invoke(this: Any, args: List[Any]) -> Any:
        this_value = Value(ctx, this, borrowed=True)
        arg_values = [Value(ctx, arg, borrowed=True) for arg in args]
        logger.debug("Calling host function %s with %d arguments", name or "<anonymous>", len(args))
        try:
            result = host_fn(ctx, this_value, arg_values)
            return _take_result(ctx, name, result)
        finally:
            this_value._expire()
            for value in arg_values:
                value._expire()

    return api.new_function(ctx._realm, name, invoke, length)
