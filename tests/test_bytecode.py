"""Tests for compiling to serialized programs and loading them back."""

import logging
import struct

import pytest

from jsbridge import DecodeError, EvalMode, RuntimeException
from jsbridge.engine import api
from jsbridge.engine.api import BYTECODE_HEADER_SIZE, BYTECODE_MAGIC
from jsbridge.engine.opcodes import STACK_EFFECTS, OpCode

DEFINE_FUNCTION = """
(function(global) {
    global.Deaf = function() {
        return 1;
    };
})(this)
"""


def with_bytecode(code):
    """Serialize a program whose top-level instructions are replaced by code."""
    compiled = api.compile_source("1")
    compiled.bytecode = bytes(code)
    compiled.line_table = []
    return api.write_object(compiled)


def bytecode_offset(data):
    """Offset of the first instruction of the top-level function."""
    pos = BYTECODE_HEADER_SIZE
    (name_len,) = struct.unpack_from("<I", data, pos)
    pos += 4 + name_len
    (param_count,) = struct.unpack_from("<I", data, pos)
    assert param_count == 0
    pos += 4
    (code_len,) = struct.unpack_from("<I", data, pos)
    assert code_len > 0
    return pos + 4


class TestRoundTrip:
    """compile then eval_binary."""

    def test_header(self, ctx):
        """Serialized programs start with the magic tag."""
        data = ctx.compile("1 + 1")
        assert isinstance(data, bytes)
        assert data.startswith(BYTECODE_MAGIC)

    def test_completion_value(self, ctx):
        """Loading runs the program and returns its completion value."""
        data = ctx.compile("var greeting = 'hi'; greeting + '!'")
        with ctx.eval_binary(data) as value:
            assert value.as_str() == "hi!"

    def test_defines_function(self, ctx):
        """A program that installs a global function behaves like the source."""
        data = ctx.compile(DEFINE_FUNCTION, filename="<code>")
        ctx.eval_binary(data).free()
        with ctx.eval("Deaf()") as value:
            assert value.as_int64() == 1

    def test_load_in_another_context(self, runtime):
        """Bytecode is not tied to the context that compiled it."""
        with runtime.new_context() as first, runtime.new_context() as second:
            data = first.compile("function sq(x) { return x * x; } sq(9)")
            with second.eval_binary(data) as value:
                assert value.as_int64() == 81

    def test_constants_survive(self, ctx):
        """Every constant kind is preserved."""
        source = "[1.5, 'text \U0001F600', 12345678901234567890n, 0.125l, 2 ** 60].join('|')"
        with ctx.eval(source) as expected:
            text = expected.as_str()
        with ctx.eval_binary(ctx.compile(source)) as value:
            assert value.as_str() == text

    def test_closures_and_exceptions(self, ctx):
        """Closures, loops and try/finally behave the same after loading."""
        source = """
        function counter() { var n = 0; return function() { return ++n; }; }
        var next = counter(), log = [];
        for (var i = 0; i < 3; i++) {
            try { if (i === 1) throw 'skip'; log.push(next()); }
            catch (e) { log.push(e); }
            finally { log.push('f'); }
        }
        log.join(',')
        """
        with ctx.eval_binary(ctx.compile(source)) as value:
            assert value.as_str() == "1,f,skip,f,2,f"

    def test_try_completion_value(self, ctx):
        """A program ending in try/catch/finally loads with the same value."""
        source = "var log = []; try { null.x; } catch (e) { e.name } finally { log.push(1); 0 }"
        data = ctx.compile(source)
        with ctx.eval_binary(data) as value:
            assert value.as_str() == "TypeError"

    def test_stack_keeps_filename(self, ctx):
        """Stack traces of loaded code name the original file."""
        data = ctx.compile("function f() {\n  throw new Error('e');\n}\nf();", filename="lib.js")
        with pytest.raises(RuntimeException) as info:
            ctx.eval_binary(data)
        assert "    at f (lib.js:2)" in info.value.stack

    def test_module(self, ctx):
        """Modules compile and keep module semantics."""
        data = ctx.compile("export const v = 3; globalThis.seen = typeof this;", EvalMode.MODULE, "m")
        ctx.eval_binary(data).free()
        with ctx.eval("seen") as value:
            assert value.as_str() == "undefined"

    def test_deterministic(self, ctx):
        """The same source compiles to the same bytes."""
        assert ctx.compile(DEFINE_FUNCTION) == ctx.compile(DEFINE_FUNCTION)


class TestOpcodeTable:
    """The opcode table shared by the compiler, the VM and the verifier."""

    def test_every_opcode_has_stack_effect(self):
        """The stack check knows every opcode."""
        assert set(STACK_EFFECTS) == set(OpCode)

    def test_only_emitted_stack_ops(self):
        """Stack shuffles are limited to the ones the compiler emits."""
        shuffles = {op.name for op in OpCode if op.name in ("DUP", "DUP2", "ROT3", "SWAP")}
        assert shuffles == {"DUP", "DUP2", "ROT3"}


class TestRejection:
    """Malformed buffers raise DecodeError before anything runs."""

    def test_empty(self, ctx):
        """An empty buffer has no header."""
        with pytest.raises(DecodeError, match="truncated"):
            ctx.eval_binary(b"")

    def test_truncated_header(self, ctx):
        """A buffer shorter than the header."""
        data = ctx.compile("1")
        with pytest.raises(DecodeError, match="truncated"):
            ctx.eval_binary(data[:BYTECODE_HEADER_SIZE - 1])

    def test_truncated_body(self, ctx):
        """A buffer cut inside the program."""
        data = ctx.compile("var x = 'some text'; x")
        with pytest.raises(DecodeError):
            ctx.eval_binary(data[:-3])

    def test_bad_magic(self, ctx):
        """A buffer that is not a serialized program."""
        data = ctx.compile("1")
        with pytest.raises(DecodeError, match="not a serialized program"):
            ctx.eval_binary(b"XXXX" + data[4:])

    def test_wrong_version(self, ctx):
        """A buffer from another format version."""
        data = bytearray(ctx.compile("1"))
        data[4] = 99
        with pytest.raises(DecodeError, match="version 99"):
            ctx.eval_binary(bytes(data))

    def test_wrong_build(self, ctx):
        """A buffer from an incompatible engine build."""
        data = bytearray(ctx.compile("1"))
        data[5] ^= 0xFF
        with pytest.raises(DecodeError, match="incompatible engine build"):
            ctx.eval_binary(bytes(data))

    def test_trailing_bytes(self, ctx):
        """Extra bytes after the program."""
        data = ctx.compile("1")
        with pytest.raises(DecodeError, match="trailing"):
            ctx.eval_binary(data + b"\x00")

    def test_corrupt_opcode(self, ctx):
        """An invalid instruction is caught by verification."""
        data = bytearray(ctx.compile("1 + 2"))
        data[bytecode_offset(data)] = 0xFF
        with pytest.raises(DecodeError, match="invalid opcode"):
            ctx.eval_binary(bytes(data))

    def test_rejected_program_has_no_effect(self, ctx):
        """Nothing from a rejected buffer runs."""
        data = bytearray(ctx.compile("globalThis.ran = true; 1"))
        data[5] ^= 0xFF
        with pytest.raises(DecodeError):
            ctx.eval_binary(bytes(data))
        with ctx.globals() as g:
            assert not g.has("ran")

    def test_not_bytes(self, ctx):
        """Only bytes-like input is accepted."""
        with pytest.raises(DecodeError, match="expected bytes"):
            ctx.eval_binary("JSBC")

    def test_bytearray_accepted(self, ctx):
        """bytearray and memoryview work like bytes."""
        data = ctx.compile("5")
        with ctx.eval_binary(bytearray(data)) as a, ctx.eval_binary(memoryview(data)) as b:
            assert a.as_int64() == b.as_int64() == 5

    def test_rejection_logged(self, ctx, caplog):
        """Rejected buffers are logged as warnings."""
        with caplog.at_level(logging.WARNING, logger="jsbridge.bytecode"):
            with pytest.raises(DecodeError):
                ctx.eval_binary(b"JSBC")
        assert "Rejected bytecode buffer" in caplog.text

    def test_stack_underflow(self, ctx):
        """Valid opcodes that pop more than was pushed are rejected."""
        data = with_bytecode([OpCode.POP, OpCode.POP, OpCode.POP])
        with pytest.raises(DecodeError, match="stack underflow"):
            ctx.eval_binary(data)

    def test_call_underflow(self, ctx):
        """Argument counts are part of the stack check."""
        data = with_bytecode([OpCode.LOAD_UNDEFINED, OpCode.CALL, 2, 0, OpCode.RETURN])
        with pytest.raises(DecodeError, match="stack underflow"):
            ctx.eval_binary(data)

    def test_inconsistent_depth(self, ctx):
        """Paths that meet with different stack depths are rejected."""
        code = [OpCode.LOAD_TRUE, OpCode.JUMP_IF_FALSE, 5, 0, OpCode.LOAD_NULL, OpCode.RETURN]
        with pytest.raises(DecodeError, match="inconsistent stack depth"):
            ctx.eval_binary(with_bytecode(code))

    def test_unbalanced_try_end(self, ctx):
        """Closing a handler that was never opened is rejected."""
        with pytest.raises(DecodeError, match="without handler"):
            ctx.eval_binary(with_bytecode([OpCode.TRY_END]))

    def test_balanced_code_accepted(self, ctx):
        """Hand-written code that keeps the stack balanced still runs."""
        code = [OpCode.LOAD_TRUE, OpCode.JUMP_IF_FALSE, 6, 0, OpCode.LOAD_NULL, OpCode.POP, OpCode.LOAD_TRUE, OpCode.RETURN]
        with ctx.eval_binary(with_bytecode(code)) as value:
            assert value.as_bool() is True
