"""Tests for Value handles: ownership, kinds and typed extraction."""

import pytest

from jsbridge import ConversionError, ProtocolViolation, ValueKind


class TestOwnership:
    """dup, free and use-after-free."""

    def test_free(self, ctx):
        """A freed handle reports itself freed."""
        value = ctx.int64(1)
        assert not value.freed
        value.free()
        assert value.freed
        assert repr(value) == "<Value freed>"

    def test_double_free(self, ctx):
        """Releasing the same handle twice is a protocol violation."""
        value = ctx.string("x")
        value.free()
        with pytest.raises(ProtocolViolation, match="double free"):
            value.free()

    def test_use_after_free(self, ctx):
        """Any operation on a freed handle is a protocol violation."""
        value = ctx.eval("({a: 1})")
        value.free()
        with pytest.raises(ProtocolViolation):
            value.get("a")
        with pytest.raises(ProtocolViolation):
            value.kind
        with pytest.raises(ProtocolViolation):
            value.dup()

    def test_dup_shares_datum(self, ctx):
        """A duplicate outlives the original handle."""
        original = ctx.eval("({a: 5})")
        copy = original.dup()
        assert original.ref_count == 2
        original.free()
        assert copy.ref_count == 1
        with copy.get("a") as a:
            assert a.as_int64() == 5
        copy.free()
        assert copy.ref_count == 0

    def test_dup_sees_mutation(self, ctx):
        """Both handles refer to the same object."""
        with ctx.object() as obj, obj.dup() as alias:
            obj.set("x", ctx.int64(1))
            assert alias.has("x")

    def test_with_block_frees(self, ctx):
        """Leaving a with block releases the handle."""
        with ctx.int64(3) as value:
            assert value.as_int64() == 3
        assert value.freed

    def test_with_block_after_manual_free(self, ctx):
        """Freeing inside a with block is not a double free."""
        with ctx.int64(3) as value:
            value.free()
        assert value.freed

    def test_cross_context_use(self, runtime):
        """A Value cannot be used with another context."""
        with runtime.new_context() as first, runtime.new_context() as second:
            with first.object() as obj:
                foreign = second.int64(1)
                with pytest.raises(ProtocolViolation, match="different context"):
                    obj.set("x", foreign)
                foreign.free()

    def test_set_consumes_value(self, ctx):
        """Setting a property releases the value handle."""
        with ctx.object() as obj:
            value = ctx.int64(1)
            obj.set("x", value)
            assert value.freed


class TestKinds:
    """Kind predicates."""

    @pytest.mark.parametrize(
        "source,kind",
        [
            ("undefined", ValueKind.UNDEFINED),
            ("null", ValueKind.NULL),
            ("true", ValueKind.BOOL),
            ("42", ValueKind.INTEGER),
            ("1.5", ValueKind.FLOAT),
            ("'s'", ValueKind.STRING),
            ("10n", ValueKind.BIG_INT),
            ("1.5l", ValueKind.BIG_DECIMAL),
            ("({})", ValueKind.OBJECT),
            ("[1]", ValueKind.OBJECT),
            ("(function() {})", ValueKind.FUNCTION),
            ("Math.max", ValueKind.FUNCTION),
        ],
    )
    def test_kind(self, ctx, source, kind):
        """Evaluated values report their kind."""
        with ctx.eval(source) as value:
            assert value.kind is kind

    def test_number_predicates(self, ctx):
        """Integers and floats are both numbers."""
        with ctx.eval("7") as i, ctx.eval("0.5") as f:
            assert i.is_integer() and i.is_number() and not i.is_float()
            assert f.is_float() and f.is_number() and not f.is_integer()

    def test_integral_result_is_integer(self, ctx):
        """Arithmetic with an integral result yields an integer kind."""
        with ctx.eval("6 / 2") as value:
            assert value.is_integer()

    def test_object_predicates(self, ctx):
        """Functions are objects; arrays and errors are recognised."""
        with ctx.eval("[1, 2]") as arr, ctx.eval("new TypeError('t')") as err:
            assert arr.is_object() and arr.is_array() and not arr.is_function()
            assert err.is_error() and not err.is_array()
        with ctx.eval("(x) => x") as fn:
            assert fn.is_object() and fn.is_function()

    def test_array_buffer_predicate(self, ctx):
        """ArrayBuffers and Uint8Arrays are byte buffers."""
        with ctx.array_buffer(b"ab") as buf, ctx.eval("new Uint8Array(2)") as view:
            assert buf.is_array_buffer()
            assert view.is_array_buffer()

    def test_exception_kind(self, ctx):
        """throw_error produces an exception-kind Value."""
        value = ctx.throw_error("bad")
        assert value.is_exception()
        assert value.kind is ValueKind.EXCEPTION
        assert repr(value) == "<Value exception>"
        value.free()

    def test_repr(self, ctx):
        """repr shows the kind."""
        with ctx.int64(1) as value:
            assert repr(value) == "<Value integer>"


class TestExtraction:
    """Typed extraction and string coercion."""

    def test_wrong_kind(self, ctx):
        """Extracting the wrong kind raises ConversionError naming both kinds."""
        with ctx.string("abc") as value:
            with pytest.raises(ConversionError) as info:
                value.as_int64()
        assert info.value.expected == "integer"
        assert info.value.actual == "string"

    def test_fractional_int64(self, ctx):
        """A fractional number is not an int64."""
        with ctx.eval("2.5") as value:
            with pytest.raises(ConversionError):
                value.as_int64()
            assert value.as_float64() == 2.5

    def test_integral_float_as_int64(self, ctx):
        """An integral double converts to int64."""
        with ctx.eval("2 ** 60") as value:
            assert value.as_int64() == 2 ** 60

    def test_int_as_float(self, ctx):
        """Integers extract as floats."""
        with ctx.int64(3) as value:
            assert value.as_float64() == 3.0

    def test_to_string(self, ctx):
        """to_string applies the engine's coercion to any kind."""
        cases = {
            "undefined": "undefined",
            "null": "null",
            "true": "true",
            "0.1 + 0.2": "0.30000000000000004",
            "[1, [2, 3]]": "1,2,3",
            "({})": "[object Object]",
            "12n": "12",
        }
        for source, expected in cases.items():
            with ctx.eval(source) as value:
                assert value.to_string() == expected
                assert str(value) == expected

    def test_length(self, ctx):
        """length of an array."""
        with ctx.eval("[1, 2, 3]") as value:
            assert value.length == 3
        with ctx.object() as obj:
            with pytest.raises(ConversionError):
                obj.length

    def test_array_construction(self, ctx):
        """Context.array consumes its element handles."""
        items = [ctx.int64(1), ctx.string("two")]
        with ctx.array(items) as arr:
            assert all(item.freed for item in items)
            assert arr.length == 2
            assert arr.to_string() == "1,two"

    def test_array_rejects_non_values(self, ctx):
        """Elements must be Values."""
        with pytest.raises(ProtocolViolation):
            ctx.array([1, 2])
