"""Runtimes: isolated engine instances."""

import itertools
import logging
import weakref
from typing import Optional

from .context import Context
from .engine import api
from .errors import ProtocolViolation
from .properties import Atom

logger = logging.getLogger(__name__)

DEFAULT_MAX_STACK_DEPTH = 256

_runtime_ids = itertools.count(1)


class Runtime:
    """One isolated engine instance.

    Contexts created from the same Runtime share its atom table and resource
    limits but nothing else. Every Context must be freed before the Runtime.

    Limits:

    * ``memory_limit``: approximate bytes for a single allocation, or None
    * ``time_limit``: seconds per outermost evaluation, or None
    * ``max_stack_depth``: nested JavaScript and host function calls
    """

    def __init__(
        self,
        memory_limit: Optional[int] = None,
        time_limit: Optional[float] = None,
        max_stack_depth: int = DEFAULT_MAX_STACK_DEPTH,
    ):
        _check_limit("memory_limit", memory_limit)
        _check_limit("time_limit", time_limit)
        _check_limit("max_stack_depth", max_stack_depth, optional=False)
        self._id = next(_runtime_ids)
        self._engine = api.new_runtime(memory_limit, time_limit, max_stack_depth)
        self._contexts: "weakref.WeakSet[Context]" = weakref.WeakSet()
        self._closed = False
        logger.debug(
            "Created runtime %d (memory_limit=%s, time_limit=%s, max_stack_depth=%d)",
            self._id, memory_limit, time_limit, max_stack_depth,
        )

    @property
    def id(self) -> int:
        return self._id

    @property
    def closed(self) -> bool:
        return self._closed

    def _check(self) -> None:
        if self._closed:
            raise ProtocolViolation("runtime used after free")

    # ---- Limits ----

    @property
    def memory_limit(self) -> Optional[int]:
        return self._engine.memory_limit

    @property
    def time_limit(self) -> Optional[float]:
        return self._engine.time_limit

    @property
    def max_stack_depth(self) -> int:
        return self._engine.max_stack_depth

    def set_memory_limit(self, limit: Optional[int]) -> None:
        self._check()
        _check_limit("memory_limit", limit)
        self._engine.memory_limit = limit

    def set_time_limit(self, limit: Optional[float]) -> None:
        self._check()
        _check_limit("time_limit", limit)
        self._engine.time_limit = limit

    def set_max_stack_depth(self, depth: int) -> None:
        self._check()
        _check_limit("max_stack_depth", depth, optional=False)
        self._engine.max_stack_depth = depth

    # ---- Contexts ----

    def new_context(self) -> Context:
        self._check()
        ctx = Context(self)
        self._contexts.add(ctx)
        return ctx

    def _forget(self, ctx: Context) -> None:
        self._contexts.discard(ctx)

    def free(self) -> None:
        """Release the runtime. All its contexts must already be freed."""
        if self._closed:
            raise ProtocolViolation("double free of runtime")
        live = [ctx for ctx in self._contexts if not ctx.closed]
        if live:
            raise ProtocolViolation(f"runtime freed with {len(live)} live context(s)")
        api.free_runtime(self._engine)
        self._closed = True
        logger.debug("Freed runtime %d", self._id)

    def __enter__(self) -> "Runtime":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if not self._closed:
            self.free()

    # ---- Atoms ----

    def atom(self, name: str) -> Atom:
        """Intern a property name. Atoms live as long as the runtime."""
        self._check()
        if not isinstance(name, str):
            raise TypeError(f"atom name must be a str, got {type(name).__name__}")
        return Atom(self._id, api.new_atom(self._engine, name))

    def atom_to_string(self, atom: Atom) -> str:
        self._check()
        if not isinstance(atom, Atom) or atom.runtime_id != self._id:
            raise ProtocolViolation("atom belongs to a different runtime")
        try:
            return api.atom_to_string(self._engine, atom.id)
        except KeyError:
            raise ProtocolViolation(f"invalid atom {atom.id}") from None

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"{len(self._contexts)} contexts"
        return f"<Runtime {self._id} {state}>"


def _check_limit(name: str, value, optional: bool = True) -> None:
    if value is None and optional:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError(f"{name} must be a positive number, got {value!r}")
    if name == "max_stack_depth" and not isinstance(value, int):
        raise ValueError(f"{name} must be an int, got {value!r}")
