"""Tests for conversion between host data and engine values."""

import math
from decimal import Decimal

import pytest

from jsbridge import ConversionError, ValueKind
from jsbridge.marshal import INT64_MAX, INT64_MIN, check_unicode, from_scalar, kind_of


class TestIntegers:
    """int64 conversion."""

    @pytest.mark.parametrize("number", [0, 1, -1, 42, -(2 ** 31), 2 ** 53, -(2 ** 53)])
    def test_exact_round_trip(self, ctx, number):
        """Integers within the safe range come back unchanged."""
        with ctx.int64(number) as value:
            assert value.is_integer()
            assert value.as_int64() == number

    def test_beyond_safe_range_becomes_float(self, ctx):
        """Integers beyond 2**53 are stored as doubles."""
        with ctx.int64(2 ** 53 + 2) as value:
            assert value.is_float()
            assert value.as_int64() == 2 ** 53 + 2

    def test_int64_extremes(self, ctx):
        """INT64_MIN is an exact double; INT64_MAX rounds up to 2**63 and no longer fits."""
        with ctx.int64(INT64_MAX) as high, ctx.int64(INT64_MIN) as low:
            assert low.as_int64() == INT64_MIN
            assert high.as_float64() == 2.0 ** 63
            with pytest.raises(ConversionError, match="out of int64 range"):
                high.as_int64()

    def test_exact_beyond_safe_range_via_big_int(self, ctx):
        """big_int keeps integers the double representation would round."""
        with ctx.big_int(INT64_MAX) as value:
            assert value.as_big_int() == INT64_MAX

    def test_out_of_range(self, ctx):
        """Python ints beyond int64 are rejected."""
        with pytest.raises(ConversionError):
            ctx.int64(2 ** 63)

    def test_bool_is_not_int(self, ctx):
        """bool is not accepted as an integer."""
        with pytest.raises(ConversionError):
            ctx.int64(True)

    @pytest.mark.parametrize("source", ["1e300", "-1e300"])
    def test_large_double_rejected(self, ctx, source):
        """Integral doubles outside int64 are rejected on extraction."""
        with ctx.eval(source) as value:
            with pytest.raises(ConversionError, match="out of int64 range"):
                value.as_int64()

    def test_nan_is_not_integer(self, ctx):
        """NaN cannot be extracted as an integer."""
        with ctx.eval("NaN") as value:
            with pytest.raises(ConversionError):
                value.as_int64()


class TestFloats:
    """float64 conversion."""

    @pytest.mark.parametrize("number", [0.5, -2.25, 1e-300, 1.7976931348623157e308])
    def test_round_trip(self, ctx, number):
        """Doubles come back bit for bit."""
        with ctx.float64(number) as value:
            assert value.as_float64() == number

    def test_special_values(self, ctx):
        """Infinities and NaN."""
        with ctx.float64(math.inf) as inf, ctx.float64(math.nan) as nan:
            assert inf.as_float64() == math.inf
            assert math.isnan(nan.as_float64())

    def test_negative_zero(self, ctx):
        """Negative zero keeps its sign."""
        with ctx.float64(-0.0) as value:
            assert math.copysign(1.0, value.as_float64()) < 0

    def test_integral_float_is_integer_kind(self, ctx):
        """An integral double is reported as an integer."""
        with ctx.float64(4.0) as value:
            assert value.is_integer()


class TestStrings:
    """String conversion."""

    @pytest.mark.parametrize("text", ["", "hello", "héllo wörld", "日本語", "emoji \U0001F600 and \U00010348"])
    def test_round_trip(self, ctx, text):
        """Unicode text survives a round trip."""
        with ctx.string(text) as value:
            assert value.as_str() == text

    def test_utf8_bytes(self, ctx):
        """UTF-8 bytes are decoded."""
        with ctx.string("café".encode("utf-8")) as value:
            assert value.as_str() == "café"

    def test_malformed_utf8(self, ctx):
        """Malformed UTF-8 is rejected."""
        with pytest.raises(ConversionError):
            ctx.string(b"\xff\xfe")

    def test_lone_surrogate(self, ctx):
        """Lone surrogates are rejected on the way in."""
        with pytest.raises(ConversionError) as info:
            ctx.string("a\ud800b")
        assert "U+D800" in info.value.cause

    def test_astral_length(self, ctx):
        """Astral characters count as two UTF-16 code units."""
        with ctx.string("\U0001F600") as s, ctx.globals() as g:
            g.set("s", s)
            with ctx.eval("s.length") as length:
                assert length.as_int64() == 2

    def test_string_from_engine(self, ctx):
        """Strings built by script extract as text."""
        with ctx.eval("'a' + 'b'.repeat(3)") as value:
            assert value.as_str() == "abbb"

    def test_check_unicode(self):
        """check_unicode passes valid text through."""
        assert check_unicode("ok") == "ok"


class TestBigNumbers:
    """BigInt and BigDecimal conversion."""

    @pytest.mark.parametrize("number", [0, -5, 2 ** 64, -(3 ** 100)])
    def test_big_int_round_trip(self, ctx, number):
        """Arbitrary-precision integers."""
        with ctx.big_int(number) as value:
            assert value.is_big_int()
            assert value.as_big_int() == number

    def test_big_int_from_script(self, ctx):
        """128n ** 16n is exact."""
        with ctx.eval("128n ** 16n") as value:
            assert value.as_big_int() == 128 ** 16

    def test_big_decimal_round_trip(self, ctx):
        """Decimals keep their digits."""
        with ctx.big_decimal(Decimal("3.14159")) as value:
            assert value.as_big_decimal() == Decimal("3.14159")

    def test_big_decimal_from_text_and_float(self, ctx):
        """Decimals may be given as text or a float."""
        with ctx.big_decimal("0.1") as text, ctx.big_decimal(0.1) as number:
            assert text.as_big_decimal() == Decimal("0.1")
            assert number.as_big_decimal() == Decimal("0.1")

    def test_invalid_decimal_text(self, ctx):
        """Text that is not a number is rejected."""
        with pytest.raises(ConversionError):
            ctx.big_decimal("one")

    def test_big_decimal_from_script(self, ctx):
        """Decimal arithmetic is exact."""
        with ctx.eval("0.1l + 0.2l") as value:
            assert value.as_big_decimal() == Decimal("0.3")

    def test_kind_mismatch(self, ctx):
        """A BigInt is not a Number."""
        with ctx.big_int(1) as value:
            with pytest.raises(ConversionError):
                value.as_int64()


class TestBytes:
    """Binary data."""

    @pytest.mark.parametrize("data", [b"", b"\x00\x01\xff", bytes(range(256))])
    def test_round_trip(self, ctx, data):
        """Bytes survive a round trip through an ArrayBuffer."""
        with ctx.array_buffer(data) as value:
            assert value.as_bytes() == data

    def test_script_sees_bytes(self, ctx):
        """Script can read the buffer through a Uint8Array."""
        with ctx.array_buffer(b"\x01\x02\x03") as buf, ctx.globals() as g:
            g.set("buf", buf)
            with ctx.eval("var v = new Uint8Array(buf); v[0] + v[1] + v[2]") as total:
                assert total.as_int64() == 6

    def test_uint8array_bytes(self, ctx):
        """A Uint8Array extracts its bytes."""
        with ctx.eval("var a = new Uint8Array(3); a[0] = 256 + 7; a[2] = 9; a") as value:
            assert value.as_bytes() == b"\x07\x00\x09"

    def test_string_as_bytes(self, ctx):
        """Strings extract as UTF-8."""
        with ctx.string("é") as value:
            assert value.as_bytes() == b"\xc3\xa9"

    def test_not_bytes(self, ctx):
        """Numbers have no bytes."""
        with ctx.int64(1) as value:
            with pytest.raises(ConversionError):
                value.as_bytes()


class TestScalars:
    """Context.value picks the kind from the Python type."""

    @pytest.mark.parametrize(
        "host,kind",
        [
            (None, ValueKind.NULL),
            (True, ValueKind.BOOL),
            (7, ValueKind.INTEGER),
            (2 ** 70, ValueKind.BIG_INT),
            (0.25, ValueKind.FLOAT),
            ("s", ValueKind.STRING),
            (Decimal("1.5"), ValueKind.BIG_DECIMAL),
        ],
    )
    def test_value(self, ctx, host, kind):
        """Each host scalar maps to one kind."""
        with ctx.value(host) as value:
            assert value.kind is kind

    def test_value_bytes(self, ctx):
        """bytes become an ArrayBuffer."""
        with ctx.value(b"xy") as value:
            assert value.is_array_buffer()

    def test_unsupported(self):
        """Containers are not scalars."""
        with pytest.raises(ConversionError) as info:
            from_scalar([1, 2])
        assert info.value.expected == "scalar"
        assert info.value.actual == "list"

    def test_kind_of_rejects_foreign(self):
        """kind_of only accepts engine values."""
        with pytest.raises(TypeError):
            kind_of(object())
