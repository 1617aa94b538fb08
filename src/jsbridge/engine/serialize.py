"""Binary serialization of compiled programs.

Layout: ``b"JSBC"``, a format version byte, a 4-byte build tag derived from
the opcode table, then the tagged encoding of the top-level function. All
integers are little-endian.
"""

import struct
import zlib
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from .compiler import CompiledFunction
from .errors import BytecodeError, JSRangeError
from .opcodes import OPERAND_KINDS, OpCode, instruction_size, stack_effect
from .values import JSBigInt, check_bigint

MAGIC = b"JSBC"
FORMAT_VERSION = 1
HEADER_SIZE = len(MAGIC) + 1 + 4


def _build_tag() -> bytes:
    table = ",".join(f"{op.name}={int(op)}:{OPERAND_KINDS.get(op, '')}" for op in OpCode)
    return struct.pack("<I", zlib.crc32(table.encode("ascii")))


BUILD_TAG = _build_tag()

TAG_INT = 0x01
TAG_FLOAT = 0x02
TAG_STRING = 0x03
TAG_BIGINT = 0x04
TAG_DECIMAL = 0x05
TAG_FUNCTION = 0x06

FLAG_ARROW = 0x01
FLAG_PROGRAM = 0x02
FLAG_MODULE = 0x04
FLAG_STRICT = 0x08
_ALL_FLAGS = FLAG_ARROW | FLAG_PROGRAM | FLAG_MODULE | FLAG_STRICT


class _Writer:
    def __init__(self):
        self.out = bytearray()

    def u8(self, value: int) -> None:
        self.out.append(value)

    def u32(self, value: int) -> None:
        self.out += struct.pack("<I", value)

    def i32(self, value: int) -> None:
        self.out += struct.pack("<i", value)

    def blob(self, data: bytes) -> None:
        self.u32(len(data))
        self.out += data

    def string(self, value: str) -> None:
        self.blob(value.encode("utf-8", "surrogatepass"))

    def strings(self, values: List[str]) -> None:
        self.u32(len(values))
        for value in values:
            self.string(value)

    def value(self, value: Any) -> None:
        if isinstance(value, CompiledFunction):
            self.u8(TAG_FUNCTION)
            self.function(value)
        elif isinstance(value, bool):
            raise BytecodeError(f"cannot serialize constant {value!r}")
        elif isinstance(value, int):
            self.u8(TAG_INT)
            self.out += struct.pack("<q", value)
        elif isinstance(value, float):
            self.u8(TAG_FLOAT)
            self.out += struct.pack("<d", value)
        elif isinstance(value, str):
            self.u8(TAG_STRING)
            self.string(value)
        elif isinstance(value, JSBigInt):
            self.u8(TAG_BIGINT)
            self.u8(1 if value.value < 0 else 0)
            magnitude = abs(value.value)
            self.blob(magnitude.to_bytes((magnitude.bit_length() + 7) // 8, "big"))
        elif isinstance(value, Decimal):
            self.u8(TAG_DECIMAL)
            self.string(str(value))
        else:
            raise BytecodeError(f"cannot serialize constant {value!r}")

    def function(self, func: CompiledFunction) -> None:
        self.string(func.name)
        self.strings(func.params)
        self.blob(func.bytecode)
        self.u32(len(func.constants))
        for constant in func.constants:
            self.value(constant)
        self.strings(func.locals)
        self.u32(func.num_locals)
        self.strings(func.free_vars)
        self.strings(func.cell_vars)
        self.u32(len(func.line_table))
        for offset, line in func.line_table:
            self.u32(offset)
            self.u32(line)
        self.string(func.filename)
        flags = 0
        if func.is_arrow:
            flags |= FLAG_ARROW
        if func.is_program:
            flags |= FLAG_PROGRAM
        if func.is_module:
            flags |= FLAG_MODULE
        if func.strict:
            flags |= FLAG_STRICT
        self.u8(flags)
        self.i32(func.self_slot)
        self.i32(func.arguments_slot)


class _Reader:
    def __init__(self, data: bytes, pos: int = 0):
        self.data = data
        self.pos = pos

    def take(self, size: int) -> bytes:
        end = self.pos + size
        if size < 0 or end > len(self.data):
            raise BytecodeError("truncated bytecode")
        chunk = self.data[self.pos:end]
        self.pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def i32(self) -> int:
        return struct.unpack("<i", self.take(4))[0]

    def blob(self) -> bytes:
        return self.take(self.u32())

    def string(self) -> str:
        try:
            return self.blob().decode("utf-8", "surrogatepass")
        except UnicodeDecodeError as e:
            raise BytecodeError(f"invalid string in bytecode: {e}") from e

    def strings(self) -> List[str]:
        return [self.string() for _ in range(self.count())]

    def count(self) -> int:
        n = self.u32()
        # Every element takes at least one byte
        if n > len(self.data) - self.pos:
            raise BytecodeError("truncated bytecode")
        return n

    def value(self, depth: int) -> Any:
        tag = self.u8()
        if tag == TAG_INT:
            return struct.unpack("<q", self.take(8))[0]
        if tag == TAG_FLOAT:
            return struct.unpack("<d", self.take(8))[0]
        if tag == TAG_STRING:
            return self.string()
        if tag == TAG_BIGINT:
            sign = self.u8()
            if sign > 1:
                raise BytecodeError("invalid BigInt sign")
            magnitude = int.from_bytes(self.blob(), "big")
            try:
                return check_bigint(-magnitude if sign else magnitude)
            except JSRangeError as e:
                raise BytecodeError(str(e)) from e
        if tag == TAG_DECIMAL:
            text = self.string()
            try:
                return Decimal(text)
            except InvalidOperation as e:
                raise BytecodeError(f"invalid decimal constant {text!r}") from e
        if tag == TAG_FUNCTION:
            return self.function(depth + 1)
        raise BytecodeError(f"unknown constant tag 0x{tag:02x}")

    def function(self, depth: int = 0) -> CompiledFunction:
        if depth > 200:
            raise BytecodeError("function nesting too deep")
        name = self.string()
        params = self.strings()
        bytecode = self.blob()
        constants = [self.value(depth) for _ in range(self.count())]
        local_names = self.strings()
        num_locals = self.u32()
        free_vars = self.strings()
        cell_vars = self.strings()
        line_table: List[Tuple[int, int]] = []
        for _ in range(self.count()):
            line_table.append((self.u32(), self.u32()))
        filename = self.string()
        flags = self.u8()
        if flags & ~_ALL_FLAGS:
            raise BytecodeError(f"unknown function flags 0x{flags:02x}")
        self_slot = self.i32()
        arguments_slot = self.i32()
        return CompiledFunction(
            name=name,
            params=params,
            bytecode=bytecode,
            constants=constants,
            locals=local_names,
            num_locals=num_locals,
            free_vars=free_vars,
            cell_vars=cell_vars,
            line_table=line_table,
            filename=filename,
            is_arrow=bool(flags & FLAG_ARROW),
            is_program=bool(flags & FLAG_PROGRAM),
            is_module=bool(flags & FLAG_MODULE),
            strict=bool(flags & FLAG_STRICT),
            self_slot=self_slot,
            arguments_slot=arguments_slot,
        )


def write_object(func: CompiledFunction) -> bytes:
    """Serialize a compiled program."""
    writer = _Writer()
    writer.out += MAGIC
    writer.u8(FORMAT_VERSION)
    writer.out += BUILD_TAG
    writer.function(func)
    return bytes(writer.out)


def check_header(data: bytes) -> None:
    """Validate magic, format version and build tag."""
    if len(data) < HEADER_SIZE:
        raise BytecodeError("truncated bytecode header")
    if data[:4] != MAGIC:
        raise BytecodeError("not a serialized program (bad magic)")
    if data[4] != FORMAT_VERSION:
        raise BytecodeError(f"unsupported bytecode version {data[4]}")
    if data[5:9] != BUILD_TAG:
        raise BytecodeError("bytecode was produced by an incompatible engine build")


def read_object(data: bytes) -> CompiledFunction:
    """Decode and verify a serialized program."""
    data = bytes(data)
    check_header(data)
    reader = _Reader(data, HEADER_SIZE)
    func = reader.function()
    if reader.pos != len(data):
        raise BytecodeError(f"{len(data) - reader.pos} trailing bytes after program")
    if not func.is_program:
        raise BytecodeError("top-level function is not a program")
    verify(func)
    return func


def verify(func: CompiledFunction, parent: Optional[CompiledFunction] = None) -> None:
    """Check that every instruction of func and its nested functions is well formed."""
    if len(func.locals) != func.num_locals:
        raise BytecodeError("local table does not match local count")
    if len(func.params) > func.num_locals:
        raise BytecodeError("more parameters than locals")
    for slot in (func.self_slot, func.arguments_slot):
        if not -1 <= slot < func.num_locals:
            raise BytecodeError("special slot out of range")
    for name in func.cell_vars:
        if name not in func.locals:
            raise BytecodeError(f"cell variable {name!r} is not a local")
    if parent is not None:
        for name in func.free_vars:
            if name not in parent.cell_vars and name not in parent.free_vars:
                raise BytecodeError(f"free variable {name!r} cannot be resolved")

    code = func.bytecode
    boundaries = set()
    jumps = []
    ip = 0
    while ip < len(code):
        boundaries.add(ip)
        try:
            op = OpCode(code[ip])
        except ValueError:
            raise BytecodeError(f"invalid opcode {code[ip]} at offset {ip}") from None
        size = instruction_size(op)
        if ip + size > len(code):
            raise BytecodeError(f"truncated instruction at offset {ip}")
        kind = OPERAND_KINDS.get(op)
        if kind is not None:
            arg = code[ip + 1] | (code[ip + 2] << 8)
            _check_operand(func, op, kind, arg, ip)
            if kind == "jump":
                jumps.append((ip, arg))
        ip += size
    boundaries.add(len(code))
    for ip, target in jumps:
        if target not in boundaries:
            raise BytecodeError(f"jump at offset {ip} to invalid target {target}")
    _check_stack(code)

    for constant in func.constants:
        if isinstance(constant, CompiledFunction):
            if constant.is_program:
                raise BytecodeError("nested function marked as program")
            verify(constant, func)


_CONDITIONAL_JUMPS = (OpCode.JUMP_IF_FALSE, OpCode.JUMP_IF_TRUE)
_TERMINATORS = (OpCode.RETURN, OpCode.RETURN_UNDEFINED, OpCode.THROW)


def _check_stack(code: bytes) -> None:
    """Follow every reachable path, tracking operand stack and handler depth.

    Each offset must be reached with the same depths on every path, the stack
    must never underflow and TRY_END must close an open handler. Running off
    the end returns undefined, so any depth is accepted there.
    """
    seen: Dict[int, Tuple[int, int]] = {}
    pending = [(0, 0, 0)]
    while pending:
        ip, depth, handlers = pending.pop()
        while ip < len(code):
            if ip in seen:
                if seen[ip] != (depth, handlers):
                    raise BytecodeError(f"inconsistent stack depth at offset {ip}")
                break
            seen[ip] = (depth, handlers)
            op = OpCode(code[ip])
            arg = (code[ip + 1] | (code[ip + 2] << 8)) if op in OPERAND_KINDS else 0
            required, left = stack_effect(op, arg)
            if depth < required:
                raise BytecodeError(f"stack underflow at offset {ip}")
            depth += left - required
            if op in _TERMINATORS:
                break
            if op == OpCode.JUMP:
                ip = arg
                continue
            if op == OpCode.TRY_START:
                # The handler starts with the thrown value on the saved stack
                pending.append((arg, depth + 1, handlers))
                handlers += 1
            elif op == OpCode.TRY_END:
                if not handlers:
                    raise BytecodeError(f"TRY_END without handler at offset {ip}")
                handlers -= 1
            elif op in _CONDITIONAL_JUMPS:
                pending.append((arg, depth, handlers))
            ip += instruction_size(op)


def _check_operand(func: CompiledFunction, op: OpCode, kind: str, arg: int, ip: int) -> None:
    if kind in ("const", "name", "function"):
        if arg >= len(func.constants):
            raise BytecodeError(f"constant index {arg} out of range at offset {ip}")
        constant = func.constants[arg]
        if kind == "name" and not isinstance(constant, str):
            raise BytecodeError(f"{op.name} operand at offset {ip} is not a name")
        if kind == "function" and not isinstance(constant, CompiledFunction):
            raise BytecodeError(f"{op.name} operand at offset {ip} is not a function")
    elif kind == "local":
        if arg >= func.num_locals:
            raise BytecodeError(f"local slot {arg} out of range at offset {ip}")
    elif kind == "closure":
        if arg >= len(func.free_vars):
            raise BytecodeError(f"closure slot {arg} out of range at offset {ip}")
    elif kind == "cell":
        if arg >= len(func.cell_vars):
            raise BytecodeError(f"cell slot {arg} out of range at offset {ip}")
