"""Exceptions raised at the host boundary.

Engine failures reach the host as :class:`JSError` subclasses carrying the
``cause`` (string form of the thrown value) and ``stack`` (engine call-stack
text, empty when unavailable). :class:`ProtocolViolation` signals misuse of
handles and deliberately does not derive from :class:`JSError`.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from .engine import api
from .engine.errors import (
    BytecodeError, JSError as EngineError, JSSyntaxError, JSThrow,
    MemoryLimitError, TimeLimitError,
)


class JSError(Exception):
    """Base class for failures reported by the engine."""

    def __init__(self, cause: str, stack: str = ""):
        self.cause = cause
        self.stack = stack
        super().__init__(cause)


class CompileError(JSError):
    """Source text failed to parse or compile."""

    def __init__(self, cause: str, filename: str = "<input>", line: int = 0, column: int = 0):
        self.filename = filename
        self.line = line
        self.column = column
        super().__init__(cause)

    def __str__(self) -> str:
        if self.line:
            return f"{self.cause} ({self.filename}:{self.line}:{self.column})"
        return self.cause


class RuntimeException(JSError):
    """A JavaScript value was thrown and not caught."""

    def __init__(self, cause: str, stack: str = "", name: str = "", message: str = ""):
        self.name = name
        self.message = message
        super().__init__(cause, stack)


class ConversionError(JSError):
    """A typed extraction or construction was attempted on an incompatible kind."""

    def __init__(self, expected: str, actual: str, detail: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        cause = f"expected {expected}, got {actual}"
        if detail:
            cause = f"{cause}: {detail}"
        super().__init__(cause)


class DecodeError(JSError):
    """A serialized program was malformed or built for another engine."""


class ProtocolViolation(Exception):
    """A handle was misused: use after free, double free, cross-context use."""


def translate(realm, exc: BaseException) -> JSError:
    """Convert an engine exception into the matching boundary error."""
    if isinstance(exc, JSSyntaxError):
        return CompileError(f"SyntaxError: {exc.message}", exc.filename, exc.line, exc.column)
    if isinstance(exc, (MemoryLimitError, TimeLimitError)):
        return RuntimeException(f"InternalError: {exc.message}", "", "InternalError", exc.message)
    if isinstance(exc, JSThrow):
        cause, stack = api.exception_details(realm, exc.value)
        name, message = api.error_name_and_message(realm, exc.value)
        return RuntimeException(cause, stack, name, message)
    if isinstance(exc, BytecodeError):
        return DecodeError(str(exc))
    if isinstance(exc, EngineError):
        return RuntimeException(str(exc), "", exc.name, exc.message)
    raise TypeError(f"not an engine error: {exc!r}")


@contextmanager
def engine_errors(realm) -> Iterator[None]:
    """Re-raise engine exceptions from the block as boundary errors."""
    try:
        yield
    except (EngineError, JSThrow, BytecodeError) as e:
        raise translate(realm, e) from e
