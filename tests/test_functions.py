"""Tests for host functions called from JavaScript."""

import pytest

from jsbridge import ProtocolViolation, RuntimeException


class Counter:
    """Host callable that counts its invocations."""

    def __init__(self):
        self.calls = 0

    def __call__(self, ctx, this, args):
        self.calls += 1
        return ctx.null()


def install(ctx, name, host_fn, length=0):
    with ctx.globals() as g:
        g.set(name, ctx.function(host_fn, name, length))


class TestHostFunctions:
    """Registering and calling host functions."""

    def test_alternating_calls(self, ctx):
        """A loop calling A on even and B on odd iterations calls each five times."""
        a, b = Counter(), Counter()
        install(ctx, "A", a)
        install(ctx, "B", b)
        ctx.eval("for (let i = 0; i < 10; i++) { if (i % 2 === 0) A(); else B(); }").free()
        assert (a.calls, b.calls) == (5, 5)

    def test_arguments_and_result(self, ctx):
        """Arguments arrive as borrowed Values; the result is returned to script."""
        def add(ctx, this, args):
            return ctx.int64(args[0].as_int64() + args[1].as_int64())

        install(ctx, "add", add, 2)
        with ctx.eval("add(40, 2)") as value:
            assert value.as_int64() == 42
        with ctx.eval("add.length") as value:
            assert value.as_int64() == 2
        with ctx.eval("add.name") as value:
            assert value.as_str() == "add"

    def test_none_returns_undefined(self, ctx):
        """Returning None gives undefined."""
        install(ctx, "nothing", lambda ctx, this, args: None)
        with ctx.eval("typeof nothing()") as value:
            assert value.as_str() == "undefined"

    def test_name_defaults_to_python_name(self, ctx):
        """The function name falls back to the callable's name."""
        def greet(ctx, this, args):
            return ctx.string("hi")

        with ctx.function(greet) as fn:
            with fn.get("name") as name:
                assert name.as_str() == "greet"

    def test_this_binding(self, ctx):
        """Method calls pass the receiver as this."""
        def whoami(ctx, this, args):
            return this.get("label")

        with ctx.globals() as g:
            obj = ctx.object()
            obj.set("label", ctx.string("box"))
            obj.set("whoami", ctx.function(whoami))
            g.set("obj", obj)
        with ctx.eval("obj.whoami()") as value:
            assert value.as_str() == "box"

    def test_return_borrowed_argument(self, ctx):
        """A host function may return one of its arguments."""
        install(ctx, "identity", lambda ctx, this, args: args[0])
        with ctx.eval("var o = {}; identity(o) === o") as value:
            assert value.as_bool() is True

    def test_not_callable(self, ctx):
        """Only callables can be wrapped."""
        with pytest.raises(TypeError):
            ctx.function("not a function")

    def test_called_from_host(self, ctx):
        """A wrapped host function can also be called through Value.call."""
        def double(ctx, this, args):
            return ctx.int64(args[0].as_int64() * 2)

        with ctx.function(double) as fn, ctx.int64(21) as arg:
            with fn.call(arg) as result:
                assert result.as_int64() == 42
            assert not arg.freed


class TestBorrowedArguments:
    """Lifetime of argument handles."""

    def test_arguments_expire(self, ctx):
        """Argument handles kept past the call are unusable."""
        kept = []

        def keep(ctx, this, args):
            kept.extend(args)
            return None

        install(ctx, "keep", keep)
        ctx.eval("keep({a: 1})").free()
        with pytest.raises(ProtocolViolation, match="host function returned"):
            kept[0].get("a")

    def test_dup_retains(self, ctx):
        """A dup of an argument outlives the call."""
        kept = []

        def keep(ctx, this, args):
            kept.append(args[0].dup())
            return None

        install(ctx, "keep", keep)
        ctx.eval("keep({a: 1})").free()
        with kept[0] as value, value.get("a") as a:
            assert a.as_int64() == 1

    def test_freeing_argument_is_violation(self, ctx):
        """Borrowed arguments may not be freed."""
        errors = []

        def bad(ctx, this, args):
            try:
                args[0].free()
            except ProtocolViolation as e:
                errors.append(e)
            return None

        install(ctx, "bad", bad)
        ctx.eval("bad(1)").free()
        assert len(errors) == 1


class TestReentrancy:
    """Host functions that evaluate script."""

    def test_nested_eval(self, ctx):
        """A host function can run script in the same context."""
        def inner(ctx, this, args):
            with ctx.eval("base * 2") as doubled:
                return ctx.int64(doubled.as_int64() + args[0].as_int64())

        install(ctx, "inner", inner)
        with ctx.eval("var base = 20; inner(2)") as value:
            assert value.as_int64() == 42

    def test_recursion_through_host(self, ctx):
        """JavaScript and host frames can interleave."""
        def countdown(ctx, this, args):
            n = args[0].as_int64()
            if n == 0:
                return ctx.int64(0)
            with ctx.globals() as g, g.get("step") as step, ctx.int64(n - 1) as arg:
                return step.call(arg)

        install(ctx, "countdown", countdown)
        ctx.eval("function step(n) { return countdown(n) + 1; }").free()
        with ctx.eval("step(5)") as value:
            assert value.as_int64() == 6


class TestThrowing:
    """Exceptions raised by host functions."""

    def test_throw_error_is_catchable(self, ctx):
        """A thrown Error reaches script catch blocks."""
        install(ctx, "fail", lambda ctx, this, args: ctx.throw_error("nope", "TypeError"))
        with ctx.eval("try { fail(); } catch (e) { e instanceof TypeError && e.message }") as value:
            assert value.as_str() == "nope"

    def test_throw_value(self, ctx):
        """Any value can be thrown."""
        install(ctx, "fail", lambda ctx, this, args: ctx.throw(ctx.int64(7)))
        with ctx.eval("try { fail(); 0 } catch (e) { e }") as value:
            assert value.as_int64() == 7

    def test_uncaught_throw(self, ctx):
        """An uncaught host throw fails the evaluation."""
        install(ctx, "fail", lambda ctx, this, args: ctx.throw_error("boom"))
        with pytest.raises(RuntimeException) as info:
            ctx.eval("fail()")
        assert info.value.cause == "Error: boom"
        assert info.value.message == "boom"

    def test_host_exception_propagates(self, ctx):
        """A Python exception inside a host function escapes eval unchanged."""
        def broken(ctx, this, args):
            raise KeyError("missing")

        install(ctx, "broken", broken)
        with pytest.raises(KeyError):
            ctx.eval("try { broken(); } catch (e) { 'caught' }")
        with ctx.eval("1 + 1") as value:
            assert value.as_int64() == 2

    def test_non_value_result(self, ctx):
        """Returning something other than a Value is a protocol violation."""
        install(ctx, "bad", lambda ctx, this, args: 42)
        with pytest.raises(ProtocolViolation):
            ctx.eval("bad()")

    def test_foreign_context_result(self, runtime):
        """Returning a Value from another context is a protocol violation."""
        with runtime.new_context() as ctx, runtime.new_context() as other:
            foreign = other.int64(1)
            install(ctx, "bad", lambda ctx, this, args: foreign)
            with pytest.raises(ProtocolViolation):
                ctx.eval("bad()")
            foreign.free()
