"""The narrow interface through which embedders drive the engine.

Everything here works on raw engine objects: :class:`EngineRuntime`,
:class:`Realm` (one context) and plain engine values. Script exceptions leave
as :class:`JSThrow` carrying the thrown value; syntax errors as
:class:`JSSyntaxError`; resource exhaustion as :class:`MemoryLimitError` or
:class:`TimeLimitError`; malformed serialized programs as
:class:`BytecodeError`.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Tuple

from . import serialize
from .compiler import CompiledFunction, compile_source as _compile
from .errors import JSError, JSThrow, MemoryLimitError, TimeLimitError
from .realm import DEFAULT_MAX_STACK_DEPTH, EngineRuntime, Realm
from .values import JSArray, JSArrayBuffer, JSNativeFunction, JSObject, JSValue

BYTECODE_MAGIC = serialize.MAGIC
BYTECODE_HEADER_SIZE = serialize.HEADER_SIZE

__all__ = [
    "new_runtime", "free_runtime", "new_context", "free_context",
    "eval_source", "compile_source", "run_compiled", "call",
    "get_property", "set_property", "delete_property", "has_property",
    "own_property_atoms", "new_atom", "atom_to_string",
    "write_object", "read_object", "check_header", "exception_details",
    "error_name_and_message", "to_string", "global_object", "new_object",
    "new_array", "new_array_buffer", "new_error", "new_function",
]


@contextmanager
def _script_errors(realm: Realm) -> Iterator[None]:
    """Turn engine errors raised outside the interpreter loop into thrown Error objects."""
    try:
        yield
    except (MemoryLimitError, TimeLimitError):
        raise
    except JSError as e:
        raise JSThrow(realm.error_from_exception(e)) from e
    except RecursionError:
        raise JSThrow(realm.make_error("InternalError", "stack overflow")) from None


# ---- Runtimes and contexts ----

def new_runtime(
    memory_limit: Optional[int] = None,
    time_limit: Optional[float] = None,
    max_stack_depth: int = DEFAULT_MAX_STACK_DEPTH,
) -> EngineRuntime:
    return EngineRuntime(memory_limit, time_limit, max_stack_depth)


def free_runtime(runtime: EngineRuntime) -> None:
    runtime.realms.clear()


def new_context(runtime: EngineRuntime) -> Realm:
    return Realm(runtime)


def free_context(realm: Realm) -> None:
    runtime = realm.runtime
    if realm in runtime.realms:
        runtime.realms.remove(realm)
    realm.modules.clear()
    realm.lexical.clear()


# ---- Evaluation ----

def compile_source(source: str, filename: str = "<input>", module: bool = False) -> CompiledFunction:
    return _compile(source, filename, module)


def run_compiled(realm: Realm, compiled: CompiledFunction) -> JSValue:
    with _script_errors(realm):
        return realm.evaluate(compiled)


def eval_source(realm: Realm, source: str, filename: str = "<input>", module: bool = False) -> JSValue:
    """Compile and run source text; returns the completion value of a script."""
    return run_compiled(realm, compile_source(source, filename, module))


def call(realm: Realm, fn: JSValue, this: JSValue, args: List[JSValue]) -> JSValue:
    with _script_errors(realm):
        return realm.call(fn, this, args)


# ---- Properties and atoms ----

def get_property(realm: Realm, obj: JSValue, key: str) -> JSValue:
    with _script_errors(realm):
        return realm.get_property(obj, key)


def set_property(realm: Realm, obj: JSValue, key: str, value: JSValue) -> None:
    with _script_errors(realm):
        realm.set_property(obj, key, value)


def delete_property(realm: Realm, obj: JSValue, key: str) -> bool:
    with _script_errors(realm):
        return realm.delete_property(obj, key)


def has_property(realm: Realm, obj: JSValue, key: str) -> bool:
    with _script_errors(realm):
        return realm.has_property(obj, key)


def own_property_atoms(realm: Realm, obj: JSValue) -> List[int]:
    """Atoms of the own enumerable keys of obj, in own-key order."""
    if not isinstance(obj, JSObject):
        return []
    atoms = realm.runtime.atoms
    return [atoms.intern(key) for key in obj.own_keys()]


def new_atom(runtime: EngineRuntime, name: str) -> int:
    return runtime.atoms.intern(name)


def atom_to_string(runtime: EngineRuntime, atom: int) -> str:
    return runtime.atoms.name(atom)


# ---- Serialized programs ----

def write_object(compiled: CompiledFunction) -> bytes:
    return serialize.write_object(compiled)


def read_object(data: bytes) -> CompiledFunction:
    return serialize.read_object(data)


def check_header(data: bytes) -> None:
    serialize.check_header(data)


# ---- Exceptions and conversion ----

def exception_details(realm: Realm, value: JSValue) -> Tuple[str, str]:
    """Cause and stack text of a thrown value."""
    return realm.exception_details(value)


def error_name_and_message(realm: Realm, value: JSValue) -> Tuple[str, str]:
    return realm.error_name_and_message(value)


def to_string(realm: Realm, value: JSValue) -> str:
    with _script_errors(realm):
        return realm.to_string(value)


# ---- Object creation ----

def global_object(realm: Realm) -> JSObject:
    return realm.global_object


def new_object(realm: Realm) -> JSObject:
    return realm.new_object()


def new_array(realm: Realm, elements: List[JSValue]) -> JSArray:
    realm.runtime.check_allocation(len(elements) * 8)
    return realm.new_array(elements)


def new_array_buffer(realm: Realm, data: bytes) -> JSArrayBuffer:
    realm.runtime.check_allocation(len(data))
    return JSArrayBuffer(data, realm.array_buffer_prototype)


def new_error(realm: Realm, name: str, message: str) -> JSObject:
    return realm.make_error(name, message)


def new_function(
    realm: Realm, name: str, fn: Callable[[JSValue, List[JSValue]], JSValue], length: int = 0,
) -> JSNativeFunction:
    return realm.native_function(name, fn, length)
