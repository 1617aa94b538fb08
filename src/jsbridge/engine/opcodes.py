"""Bytecode opcodes for the JavaScript VM."""

from enum import IntEnum, auto
from typing import Dict, List, Tuple


class OpCode(IntEnum):
    """Bytecode operation codes."""

    # Stack operations
    POP = auto()
    DUP = auto()
    DUP2 = auto()         # a, b -> a, b, a, b
    ROT3 = auto()         # a, b, c -> b, c, a

    # Constants
    LOAD_CONST = auto()   # arg = constant index
    LOAD_UNDEFINED = auto()
    LOAD_NULL = auto()
    LOAD_TRUE = auto()
    LOAD_FALSE = auto()

    # Global and lexical bindings (arg = constant index of the name)
    LOAD_NAME = auto()
    STORE_NAME = auto()
    TYPEOF_NAME = auto()  # typeof on a possibly undeclared name
    DECLARE_VAR = auto()  # create global property if missing
    DEFINE_LET = auto()   # top-level let binding
    DEFINE_CONST = auto() # top-level const binding

    # Frame slots
    LOAD_LOCAL = auto()
    STORE_LOCAL = auto()
    LOAD_CLOSURE = auto()
    STORE_CLOSURE = auto()
    LOAD_CELL = auto()
    STORE_CELL = auto()

    # Properties
    GET_PROP = auto()     # obj, key -> value
    SET_PROP = auto()     # obj, key, value -> value
    DELETE_PROP = auto()  # obj, key -> bool

    # Literals
    BUILD_ARRAY = auto()  # arg = element count
    NEW_OBJECT = auto()
    INIT_PROP = auto()    # obj, key, value -> obj
    INIT_GETTER = auto()
    INIT_SETTER = auto()

    # Arithmetic
    ADD = auto()
    SUB = auto()
    MUL = auto()
    DIV = auto()
    MOD = auto()
    POW = auto()
    NEG = auto()
    POS = auto()
    TO_NUMERIC = auto()
    INC = auto()
    DEC = auto()

    # Bitwise
    BAND = auto()
    BOR = auto()
    BXOR = auto()
    BNOT = auto()
    SHL = auto()
    SHR = auto()
    USHR = auto()

    # Comparison
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()
    EQ = auto()
    NE = auto()
    SEQ = auto()
    SNE = auto()

    # Logical and type operations
    NOT = auto()
    TYPEOF = auto()
    INSTANCEOF = auto()
    IN = auto()

    # Control flow (arg = absolute target)
    JUMP = auto()
    JUMP_IF_FALSE = auto()
    JUMP_IF_TRUE = auto()

    # Calls
    CALL = auto()         # arg = argument count
    CALL_METHOD = auto()  # arg = argument count
    NEW = auto()          # arg = argument count
    RETURN = auto()
    RETURN_UNDEFINED = auto()
    THIS = auto()
    MAKE_CLOSURE = auto() # arg = constant index of a compiled function

    # Exceptions
    THROW = auto()
    TRY_START = auto()    # arg = handler target
    TRY_END = auto()

    # Iteration
    FOR_IN_INIT = auto()  # obj -> iterator
    FOR_OF_INIT = auto()  # iterable -> iterator
    ITER_NEXT = auto()    # iterator -> value, done

    # Modules
    IMPORT_MODULE = auto()  # arg = constant index of the module name
    EXPORT_MODULE = auto()  # namespace ->


# Operand kinds, used by the compiler, the VM decoder and the bytecode verifier.
# Every operand is an unsigned 16-bit little-endian integer.
OPERAND_KINDS: Dict[OpCode, str] = {
    OpCode.LOAD_CONST: "const",
    OpCode.LOAD_NAME: "name",
    OpCode.STORE_NAME: "name",
    OpCode.TYPEOF_NAME: "name",
    OpCode.DECLARE_VAR: "name",
    OpCode.DEFINE_LET: "name",
    OpCode.DEFINE_CONST: "name",
    OpCode.IMPORT_MODULE: "name",
    OpCode.LOAD_LOCAL: "local",
    OpCode.STORE_LOCAL: "local",
    OpCode.LOAD_CLOSURE: "closure",
    OpCode.STORE_CLOSURE: "closure",
    OpCode.LOAD_CELL: "cell",
    OpCode.STORE_CELL: "cell",
    OpCode.BUILD_ARRAY: "count",
    OpCode.CALL: "count",
    OpCode.CALL_METHOD: "count",
    OpCode.NEW: "count",
    OpCode.JUMP: "jump",
    OpCode.JUMP_IF_FALSE: "jump",
    OpCode.JUMP_IF_TRUE: "jump",
    OpCode.TRY_START: "jump",
    OpCode.MAKE_CLOSURE: "function",
}

OPERAND_SIZE = 2
MAX_OPERAND = 0xFFFF

# Operand stack effect as (items required, items left in their place). Count
# operands add to the items required. Instructions that modify an object in
# place below the popped items require it too.
STACK_EFFECTS: Dict[OpCode, Tuple[int, int]] = {
    OpCode.POP: (1, 0),
    OpCode.DUP: (1, 2),
    OpCode.DUP2: (2, 4),
    OpCode.ROT3: (3, 3),
    OpCode.LOAD_CONST: (0, 1),
    OpCode.LOAD_UNDEFINED: (0, 1),
    OpCode.LOAD_NULL: (0, 1),
    OpCode.LOAD_TRUE: (0, 1),
    OpCode.LOAD_FALSE: (0, 1),
    OpCode.LOAD_NAME: (0, 1),
    OpCode.STORE_NAME: (1, 1),
    OpCode.TYPEOF_NAME: (0, 1),
    OpCode.DECLARE_VAR: (0, 0),
    OpCode.DEFINE_LET: (1, 0),
    OpCode.DEFINE_CONST: (1, 0),
    OpCode.LOAD_LOCAL: (0, 1),
    OpCode.STORE_LOCAL: (1, 1),
    OpCode.LOAD_CLOSURE: (0, 1),
    OpCode.STORE_CLOSURE: (1, 1),
    OpCode.LOAD_CELL: (0, 1),
    OpCode.STORE_CELL: (1, 1),
    OpCode.GET_PROP: (2, 1),
    OpCode.SET_PROP: (3, 1),
    OpCode.DELETE_PROP: (2, 1),
    OpCode.BUILD_ARRAY: (0, 1),
    OpCode.NEW_OBJECT: (0, 1),
    OpCode.INIT_PROP: (3, 1),
    OpCode.INIT_GETTER: (3, 1),
    OpCode.INIT_SETTER: (3, 1),
    OpCode.NEG: (1, 1),
    OpCode.POS: (1, 1),
    OpCode.TO_NUMERIC: (1, 1),
    OpCode.INC: (1, 1),
    OpCode.DEC: (1, 1),
    OpCode.BNOT: (1, 1),
    OpCode.NOT: (1, 1),
    OpCode.TYPEOF: (1, 1),
    OpCode.JUMP: (0, 0),
    OpCode.JUMP_IF_FALSE: (1, 0),
    OpCode.JUMP_IF_TRUE: (1, 0),
    OpCode.CALL: (1, 1),
    OpCode.CALL_METHOD: (2, 1),
    OpCode.NEW: (1, 1),
    OpCode.RETURN: (1, 0),
    OpCode.RETURN_UNDEFINED: (0, 0),
    OpCode.THIS: (0, 1),
    OpCode.MAKE_CLOSURE: (0, 1),
    OpCode.THROW: (1, 0),
    OpCode.TRY_START: (0, 0),
    OpCode.TRY_END: (0, 0),
    OpCode.FOR_IN_INIT: (1, 1),
    OpCode.FOR_OF_INIT: (1, 1),
    OpCode.ITER_NEXT: (1, 2),
    OpCode.IMPORT_MODULE: (0, 1),
    OpCode.EXPORT_MODULE: (1, 0),
}
STACK_EFFECTS.update(dict.fromkeys((
    OpCode.ADD, OpCode.SUB, OpCode.MUL, OpCode.DIV, OpCode.MOD, OpCode.POW,
    OpCode.BAND, OpCode.BOR, OpCode.BXOR, OpCode.SHL, OpCode.SHR, OpCode.USHR,
    OpCode.LT, OpCode.LE, OpCode.GT, OpCode.GE, OpCode.EQ, OpCode.NE, OpCode.SEQ, OpCode.SNE,
    OpCode.INSTANCEOF, OpCode.IN,
), (2, 1)))


def instruction_size(op: OpCode) -> int:
    """Size in bytes of an instruction, including its operand."""
    return 1 + OPERAND_SIZE if op in OPERAND_KINDS else 1


def stack_effect(op: OpCode, arg: int) -> Tuple[int, int]:
    """Items an instruction requires on the stack and the items it leaves."""
    required, left = STACK_EFFECTS[op]
    if OPERAND_KINDS.get(op) == "count":
        required += arg
    return required, left


def disassemble(bytecode: bytes, constants: list) -> str:
    """Disassemble bytecode for debugging."""
    lines: List[str] = []
    i = 0
    while i < len(bytecode):
        op = OpCode(bytecode[i])
        line = f"{i:4d}: {op.name}"
        if op in OPERAND_KINDS:
            arg = bytecode[i + 1] | (bytecode[i + 2] << 8)
            if OPERAND_KINDS[op] in ("const", "name") and arg < len(constants):
                line += f" {arg} ({constants[arg]!r})"
            else:
                line += f" {arg}"
        lines.append(line)
        i += instruction_size(op)
    return "\n".join(lines)
