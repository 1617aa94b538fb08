"""Compile source to serialized programs and load them back.

Serialized programs start with a magic tag, a format version and a build tag
derived from the engine's instruction set. Buffers with a missing or foreign
header are rejected here before the engine decoder sees them; the engine then
decodes strictly and verifies every instruction before anything runs.

Loading is not a sandbox: treat bytecode from an untrusted source like
untrusted native code.
"""

import logging

from .engine import api
from .engine.errors import BytecodeError
from .errors import DecodeError, engine_errors

logger = logging.getLogger(__name__)


def compile_program(realm, source: str, filename: str = "<input>", module: bool = False) -> bytes:
    with engine_errors(realm):
        compiled = api.compile_source(source, filename, module)
        data = api.write_object(compiled)
    logger.debug("Compiled %s to %d bytes", filename, len(data))
    return data


def check_buffer(data) -> bytes:
    """Validate the header of a serialized program, raising DecodeError."""
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise DecodeError(f"expected bytes, got {type(data).__name__}")
    data = bytes(data)
    if len(data) < api.BYTECODE_HEADER_SIZE:
        logger.warning("Rejected bytecode buffer: %d bytes is shorter than the header", len(data))
        raise DecodeError("truncated bytecode header")
    if not data.startswith(api.BYTECODE_MAGIC):
        logger.warning("Rejected bytecode buffer: bad magic %r", data[:len(api.BYTECODE_MAGIC)])
        raise DecodeError("not a serialized program")
    try:
        api.check_header(data)
    except BytecodeError as e:
        logger.warning("Rejected bytecode buffer: %s", e)
        raise DecodeError(str(e)) from e
    return data


def load_program(realm, data):
    """Decode, verify and run a serialized program; returns its completion value."""
    data = check_buffer(data)
    try:
        compiled = api.read_object(data)
    except BytecodeError as e:
        logger.warning("Rejected bytecode buffer: %s", e)
        raise DecodeError(str(e)) from e
    logger.debug("Loaded program %s from %d bytes", compiled.filename, len(data))
    with engine_errors(realm):
        return api.run_compiled(realm, compiled)
