"""
jsbridge - Embed isolated JavaScript contexts in Python

Create runtimes and contexts, evaluate source or precompiled bytecode,
exchange values through reference-counted handles and expose Python
callables as JavaScript functions. The JavaScript engine itself is a pure
Python implementation with memory, time and stack-depth limits.
"""

__version__ = "0.1.0"

from .context import Context, EvalMode
from .errors import (
    CompileError, ConversionError, DecodeError, JSError, ProtocolViolation,
    RuntimeException,
)
from .marshal import ValueKind
from .properties import Atom, PropertyName
from .runtime import Runtime
from .value import Value

__all__ = [
    "Runtime",
    "Context",
    "EvalMode",
    "Value",
    "ValueKind",
    "Atom",
    "PropertyName",
    "JSError",
    "CompileError",
    "RuntimeException",
    "ConversionError",
    "DecodeError",
    "ProtocolViolation",
]
