"""JavaScript error types raised inside the engine."""

from typing import Any


class JSError(Exception):
    """Base class for errors the engine converts into JavaScript Error objects."""

    def __init__(self, message: str = "", name: str = "Error"):
        self.message = message
        self.name = name
        super().__init__(f"{name}: {message}" if message else name)


class JSSyntaxError(JSError):
    """JavaScript syntax error during parsing or compilation."""

    def __init__(self, message: str = "", line: int = 0, column: int = 0):
        self.line = line
        self.column = column
        self.filename = "<input>"
        super().__init__(message, "SyntaxError")


class JSTypeError(JSError):
    """JavaScript type error."""

    def __init__(self, message: str = ""):
        super().__init__(message, "TypeError")


class JSReferenceError(JSError):
    """JavaScript reference error (undefined variable)."""

    def __init__(self, message: str = ""):
        super().__init__(message, "ReferenceError")


class JSRangeError(JSError):
    """JavaScript range error."""

    def __init__(self, message: str = ""):
        super().__init__(message, "RangeError")


class JSInternalError(JSError):
    """Engine resource error that script code can still catch (stack overflow)."""

    def __init__(self, message: str = ""):
        super().__init__(message, "InternalError")


class JSThrow(Exception):
    """A thrown JavaScript value travelling through Python frames.

    Raised by native functions that want to throw an arbitrary value, and
    by the VM when a throw is not caught inside the current evaluation.
    """

    def __init__(self, value: Any):
        self.value = value
        super().__init__("uncaught JavaScript exception")


class MemoryLimitError(JSError):
    """Raised when the runtime memory limit is exceeded."""

    def __init__(self, message: str = "out of memory"):
        super().__init__(message, "InternalError")


class TimeLimitError(JSError):
    """Raised when the runtime execution time limit is exceeded."""

    def __init__(self, message: str = "interrupted"):
        super().__init__(message, "InternalError")


class BytecodeError(Exception):
    """A serialized program was rejected while decoding or verifying it."""
