"""Tests for runtime and context lifecycle."""

import logging

import pytest

from jsbridge import EvalMode, ProtocolViolation, Runtime, RuntimeException


class TestRuntimeLifecycle:
    """Creating and freeing runtimes."""

    def test_context_manager_frees(self):
        """Leaving the with block frees the runtime."""
        with Runtime() as runtime:
            assert not runtime.closed
        assert runtime.closed

    def test_double_free(self):
        """Freeing a runtime twice is a protocol violation."""
        runtime = Runtime()
        runtime.free()
        with pytest.raises(ProtocolViolation):
            runtime.free()

    def test_free_with_live_context(self):
        """A runtime cannot be freed while a context is alive."""
        runtime = Runtime()
        ctx = runtime.new_context()
        with pytest.raises(ProtocolViolation):
            runtime.free()
        ctx.free()
        runtime.free()

    def test_new_context_after_free(self):
        """A freed runtime cannot create contexts."""
        runtime = Runtime()
        runtime.free()
        with pytest.raises(ProtocolViolation):
            runtime.new_context()

    def test_independent_runtimes(self):
        """Runtimes have distinct ids and atom tables."""
        with Runtime() as a, Runtime() as b:
            assert a.id != b.id
            assert a.atom("x") != b.atom("x")


class TestLimits:
    """Resource limit configuration."""

    def test_defaults(self, runtime):
        """No memory or time limit by default."""
        assert runtime.memory_limit is None
        assert runtime.time_limit is None
        assert runtime.max_stack_depth == 256

    def test_setters(self, runtime):
        """Limits can be changed after creation."""
        runtime.set_memory_limit(1 << 20)
        runtime.set_time_limit(1.5)
        runtime.set_max_stack_depth(64)
        assert runtime.memory_limit == 1 << 20
        assert runtime.time_limit == 1.5
        assert runtime.max_stack_depth == 64
        runtime.set_time_limit(None)
        assert runtime.time_limit is None

    def test_invalid_limits(self):
        """Limits must be positive."""
        with pytest.raises(ValueError):
            Runtime(memory_limit=0)
        with pytest.raises(ValueError):
            Runtime(time_limit=-1)
        with pytest.raises(ValueError):
            Runtime(max_stack_depth=None)

    def test_time_limit_surfaces_as_runtime_exception(self):
        """Exhausting the time limit fails the evaluation with InternalError."""
        with Runtime(time_limit=0.2) as runtime, runtime.new_context() as ctx:
            with pytest.raises(RuntimeException) as info:
                ctx.eval("for (;;) {}")
            assert info.value.name == "InternalError"
            assert "interrupted" in info.value.cause

    def test_memory_limit_surfaces_as_runtime_exception(self):
        """Exhausting the memory limit fails the evaluation."""
        with Runtime(memory_limit=50_000) as runtime, runtime.new_context() as ctx:
            with pytest.raises(RuntimeException) as info:
                ctx.eval("var s = 'ab'; for (;;) { s += s; }")
            assert "out of memory" in info.value.cause

    def test_stack_depth(self):
        """A smaller stack depth overflows sooner."""
        with Runtime(max_stack_depth=20) as runtime, runtime.new_context() as ctx:
            with pytest.raises(RuntimeException) as info:
                ctx.eval("function down(n) { return n ? down(n - 1) : 0; } down(50)")
            assert info.value.cause == "InternalError: stack overflow"
            with ctx.eval("down(10)") as value:
                assert value.as_int64() == 0

    def test_limits_shared_by_contexts(self, runtime):
        """Contexts of one runtime share its limits."""
        runtime.set_time_limit(0.2)
        with runtime.new_context() as ctx:
            with pytest.raises(RuntimeException):
                ctx.eval("while (true) {}")


class TestContext:
    """Context lifecycle and isolation."""

    def test_isolation(self, runtime):
        """A global defined in one context is absent from another."""
        with runtime.new_context() as first, runtime.new_context() as second:
            first.eval("var shared = 1;").free()
            with first.globals() as g1, second.globals() as g2:
                assert g1.has("shared")
                assert not g2.has("shared")
            with pytest.raises(RuntimeException) as info:
                second.eval("shared")
            assert "ReferenceError" in info.value.cause

    def test_contexts_share_atoms(self, runtime):
        """Atoms interned through one context resolve in another."""
        with runtime.new_context() as first, runtime.new_context() as second:
            atom = first.atom("name")
            assert second.atom_to_string(atom) == "name"
            assert second.atom("name") == atom

    def test_double_free(self, runtime):
        """Freeing a context twice is a protocol violation."""
        ctx = runtime.new_context()
        ctx.free()
        with pytest.raises(ProtocolViolation):
            ctx.free()

    def test_use_after_free(self, runtime):
        """A freed context cannot evaluate."""
        ctx = runtime.new_context()
        ctx.free()
        with pytest.raises(ProtocolViolation):
            ctx.eval("1")

    def test_value_unusable_after_context_free(self, runtime):
        """Values die with their context."""
        ctx = runtime.new_context()
        value = ctx.eval("({a: 1})")
        ctx.free()
        with pytest.raises(ProtocolViolation):
            value.get("a")
        with pytest.raises(ProtocolViolation):
            value.free()

    def test_leak_warning(self, runtime, caplog):
        """Freeing a context with unreleased handles logs a warning."""
        ctx = runtime.new_context()
        kept = ctx.eval("1 + 1")
        with caplog.at_level(logging.WARNING, logger="jsbridge.context"):
            ctx.free()
        assert "1 unreleased value handle" in caplog.text
        assert kept.freed is False

    def test_no_warning_when_clean(self, runtime, caplog):
        """A context whose values were all freed logs no warning."""
        ctx = runtime.new_context()
        ctx.eval("1 + 1").free()
        with caplog.at_level(logging.WARNING, logger="jsbridge.context"):
            ctx.free()
        assert caplog.text == ""

    def test_lifecycle_debug_logging(self, caplog):
        """Lifecycle events are logged at DEBUG."""
        with caplog.at_level(logging.DEBUG, logger="jsbridge"):
            with Runtime() as runtime, runtime.new_context():
                pass
        messages = [record.getMessage() for record in caplog.records]
        assert any(m.startswith("Created runtime") for m in messages)
        assert any(m.startswith("Freed context") for m in messages)
        assert any(m.startswith("Freed runtime") for m in messages)


class TestEval:
    """Evaluation entry points."""

    def test_eval_returns_completion_value(self, ctx):
        """Scripts return their last expression value."""
        with ctx.eval("var x = 20; x * 2 + 2") as value:
            assert value.as_int64() == 42

    def test_eval_side_effects(self, ctx):
        """Top-level assignments without a keyword create globals."""
        ctx.eval('HELLO = "world"; TEST = false;').free()
        with ctx.globals() as g:
            with g.get("HELLO") as hello, g.get("TEST") as test:
                assert hello.as_str() == "world"
                assert test.as_bool() is False

    def test_module_mode(self, ctx):
        """Module mode runs strict with this undefined."""
        with ctx.eval("typeof this", EvalMode.MODULE) as value:
            assert value.is_undefined()
        ctx.eval("globalThis.kind = typeof this;", EvalMode.MODULE).free()
        with ctx.eval("kind") as value:
            assert value.as_str() == "undefined"

    def test_modules_import_by_filename(self, ctx):
        """A module can import what an earlier module exported."""
        ctx.eval("export const base = 40;", EvalMode.MODULE, "base").free()
        ctx.eval('import { base } from "base"; globalThis.total = base + 2;', EvalMode.MODULE, "main").free()
        with ctx.eval("total") as value:
            assert value.as_int64() == 42

    def test_eval_rejects_non_string(self, ctx):
        """Source must be text."""
        from jsbridge import ConversionError

        with pytest.raises(ConversionError):
            ctx.eval(42)
