"""Tests for error reporting across the boundary."""

import pytest

from jsbridge import (
    CompileError, ConversionError, DecodeError, EvalMode, JSError,
    ProtocolViolation, Runtime, RuntimeException,
)


class TestCompileErrors:
    """Source that fails to parse."""

    def test_syntax_error(self, ctx):
        """Invalid syntax raises CompileError with a message and location."""
        with pytest.raises(CompileError) as info:
            ctx.eval("var x = ;", filename="broken.js")
        error = info.value
        assert error.cause.startswith("SyntaxError: ")
        assert error.filename == "broken.js"
        assert error.line == 1
        assert "broken.js:1:" in str(error)

    def test_line_number(self, ctx):
        """The reported line is where parsing failed."""
        with pytest.raises(CompileError) as info:
            ctx.eval("var a = 1;\nvar b = 2;\nvar = 3;")
        assert info.value.line == 3

    def test_regex_literal(self, ctx):
        """Regular expression literals are not supported."""
        with pytest.raises(CompileError) as info:
            ctx.eval("/abc/.test('abc')")
        assert "Regular expression" in info.value.cause

    def test_module_syntax_in_script(self, ctx):
        """export is only valid in module mode."""
        with pytest.raises(CompileError):
            ctx.eval("export const x = 1;")
        ctx.eval("export const x = 1;", EvalMode.MODULE, "ok").free()

    def test_compile_reports_syntax_errors(self, ctx):
        """Compiling to bytecode reports the same errors."""
        with pytest.raises(CompileError):
            ctx.compile("function (")

    def test_context_usable_after_error(self, ctx):
        """A failed compile leaves the context usable."""
        with pytest.raises(CompileError):
            ctx.eval("{")
        with ctx.eval("1") as value:
            assert value.as_int64() == 1


class TestRuntimeExceptions:
    """Uncaught throws."""

    def test_thrown_error(self, ctx):
        """The cause carries the error text and the stack the call chain."""
        source = "function boom() {\n  throw new Error('x');\n}\nboom();"
        with pytest.raises(RuntimeException) as info:
            ctx.eval(source, filename="app.js")
        error = info.value
        assert error.cause == "Error: x"
        assert error.name == "Error"
        assert error.message == "x"
        assert error.stack.splitlines() == [
            "    at boom (app.js:2)",
            "    at <eval> (app.js:4)",
        ]

    def test_thrown_primitive(self, ctx):
        """Throwing a non-error has a cause but no stack or name."""
        with pytest.raises(RuntimeException) as info:
            ctx.eval("throw 42;")
        assert info.value.cause == "42"
        assert info.value.stack == ""
        assert info.value.name == ""

    def test_engine_errors(self, ctx):
        """Errors raised by the engine itself carry their type."""
        cases = {
            "undefinedName": "ReferenceError",
            "null.x": "TypeError",
            "(1)()": "TypeError",
            "new Array(-1)": "RangeError",
        }
        for source, name in cases.items():
            with pytest.raises(RuntimeException) as info:
                ctx.eval(source)
            assert info.value.name == name, source
            assert info.value.cause.startswith(name + ": ")

    def test_custom_error_type(self, ctx):
        """Subclassed error names come through."""
        source = "var e = new Error('bad'); e.name = 'ValidationError'; throw e;"
        with pytest.raises(RuntimeException) as info:
            ctx.eval(source)
        assert info.value.cause == "ValidationError: bad"

    def test_caught_exceptions_do_not_escape(self, ctx):
        """An exception caught in script does not reach the host."""
        with ctx.eval("try { null.x; } catch (e) { e.name }") as value:
            assert value.as_str() == "TypeError"

    def test_exception_from_call(self, ctx):
        """Value.call reports throws the same way."""
        with ctx.eval("(function() { throw new TypeError('t'); })") as fn:
            with pytest.raises(RuntimeException) as info:
                fn.call()
        assert info.value.cause == "TypeError: t"

    def test_stack_overflow(self, ctx):
        """Unbounded recursion fails with an InternalError."""
        with pytest.raises(RuntimeException) as info:
            ctx.eval("function f() { return f(); } f()")
        assert info.value.cause == "InternalError: stack overflow"

    def test_stack_overflow_catchable(self, ctx):
        """Script can catch a stack overflow."""
        with ctx.eval("function f() { return f(); } try { f(); } catch (e) { e.message }") as value:
            assert value.as_str() == "stack overflow"

    def test_limit_errors(self):
        """Resource exhaustion is a RuntimeException named InternalError."""
        with Runtime(time_limit=0.1) as runtime, runtime.new_context() as ctx:
            with pytest.raises(RuntimeException) as info:
                ctx.eval("try { for (;;) {} } catch (e) { 'caught' }")
            assert info.value.cause == "InternalError: interrupted"


class TestHierarchy:
    """Exception classes."""

    def test_engine_failures_are_js_errors(self):
        """All engine failures share JSError."""
        for cls in (CompileError, RuntimeException, ConversionError, DecodeError):
            assert issubclass(cls, JSError)

    def test_protocol_violation_is_separate(self):
        """Handle misuse is not an engine failure."""
        assert not issubclass(ProtocolViolation, JSError)

    def test_conversion_error_fields(self):
        """ConversionError names what was expected and what was found."""
        error = ConversionError("integer", "string", "detail")
        assert error.cause == "expected integer, got string: detail"
        assert str(error) == error.cause
