"""Tests for the JavaScript lexer."""

from decimal import Decimal

import pytest

from jsbridge.engine.errors import JSSyntaxError
from jsbridge.engine.lexer import Lexer
from jsbridge.engine.tokens import TokenType


def token_types(source):
    return [token.type for token in Lexer(source).tokenize()]


class TestLexerBasics:
    """Basic lexer functionality tests."""

    def test_empty_input(self):
        """Empty input should produce EOF token."""
        assert Lexer("").next_token().type == TokenType.EOF

    def test_whitespace_only(self):
        """Whitespace-only input should produce EOF token."""
        assert Lexer("   \t\n\r  ").next_token().type == TokenType.EOF

    def test_comments_skipped(self):
        """Single-line and multi-line comments should be skipped."""
        token = Lexer("// comment\n/* block\ncomment */ 42").next_token()
        assert token.type == TokenType.NUMBER
        assert token.value == 42

    def test_unterminated_comment(self):
        """An unterminated block comment is a syntax error."""
        with pytest.raises(JSSyntaxError):
            Lexer("/* never closed").next_token()

    def test_line_and_column(self):
        """Tokens record the line and column where they start."""
        tokens = list(Lexer("a\n  b").tokenize())
        assert (tokens[0].line, tokens[0].column) == (1, 1)
        assert (tokens[1].line, tokens[1].column) == (2, 3)


class TestLexerNumbers:
    """Number literal tests."""

    def test_integer(self):
        """Integer literals keep an int value."""
        token = Lexer("42").next_token()
        assert token.type == TokenType.NUMBER
        assert token.value == 42
        assert isinstance(token.value, int)

    def test_float(self):
        """Floating-point literals."""
        token = Lexer("3.14").next_token()
        assert token.value == 3.14
        assert isinstance(token.value, float)

    def test_float_no_leading_digit(self):
        """Floating-point literal starting with dot."""
        assert Lexer(".5").next_token().value == 0.5

    def test_exponent(self):
        """Scientific notation."""
        assert Lexer("1e3").next_token().value == 1000.0
        assert Lexer("2.5E-1").next_token().value == 0.25

    def test_prefixed_integers(self):
        """Hex, octal and binary literals."""
        assert Lexer("0xff").next_token().value == 255
        assert Lexer("0o17").next_token().value == 15
        assert Lexer("0b101").next_token().value == 5

    def test_bigint(self):
        """An n suffix makes a BigInt literal."""
        token = Lexer("12345678901234567890n").next_token()
        assert token.type == TokenType.BIGINT
        assert token.value == 12345678901234567890

    def test_decimal_suffixes(self):
        """l and m suffixes make big-decimal literals."""
        for source in ("1.25l", "1.25m"):
            token = Lexer(source).next_token()
            assert token.type == TokenType.DECIMAL
            assert token.value == Decimal("1.25")

    def test_fractional_bigint_rejected(self):
        """BigInt literals must be integers."""
        with pytest.raises(JSSyntaxError):
            Lexer("1.5n").next_token()

    def test_identifier_after_number_rejected(self):
        """An identifier may not start right after a number."""
        with pytest.raises(JSSyntaxError):
            Lexer("3in").next_token()


class TestLexerStrings:
    """String literal tests."""

    def test_quotes(self):
        """Single and double quoted strings."""
        assert Lexer('"hello"').next_token().value == "hello"
        assert Lexer("'hello'").next_token().value == "hello"

    def test_simple_escapes(self):
        """Common escape sequences."""
        assert Lexer(r'"a\nb\tc\\d\"e"').next_token().value == 'a\nb\tc\\d"e'

    def test_hex_and_unicode_escapes(self):
        """\\x, \\u and \\u{} escapes."""
        assert Lexer(r'"\x41B\u{43}"').next_token().value == "ABC"

    def test_surrogate_pair_combined(self):
        """An escaped surrogate pair becomes one code point."""
        assert Lexer(r'"\uD83D\uDE00"').next_token().value == "\U0001F600"

    def test_astral_code_point_escape(self):
        """\\u{} escapes above the BMP."""
        assert Lexer(r'"\u{1F600}"').next_token().value == "\U0001F600"

    def test_unterminated_string(self):
        """A newline inside a string literal is an error."""
        with pytest.raises(JSSyntaxError):
            Lexer('"abc\n"').next_token()

    def test_template(self):
        """Template literals split into text parts and substitution sources."""
        token = Lexer("`a${1 + 2}b${x}`").next_token()
        assert token.type == TokenType.TEMPLATE
        quasis, expressions = token.value
        assert quasis == ["a", "b", ""]
        assert [source for source, _, _ in expressions] == ["1 + 2", "x"]

    def test_template_nested_braces(self):
        """Braces inside a substitution do not end it."""
        quasis, expressions = Lexer("`${ {a: 1}.a }`").next_token().value
        assert expressions[0][0].strip() == "{a: 1}.a"


class TestLexerOperators:
    """Operators and punctuation."""

    def test_longest_match(self):
        """Longer operators win over their prefixes."""
        assert token_types("a >>>= b")[1] == TokenType.URSHIFT_ASSIGN
        assert token_types("a === b")[1] == TokenType.EQEQ
        assert token_types("a ** b")[1] == TokenType.STARSTAR

    def test_arrow(self):
        """Arrow token."""
        assert token_types("x => x")[1] == TokenType.ARROW

    def test_keywords(self):
        """Keywords are recognised, other words are identifiers."""
        assert token_types("var foo")[:2] == [TokenType.VAR, TokenType.IDENTIFIER]
        assert token_types("import export")[:2] == [TokenType.IMPORT, TokenType.EXPORT]

    def test_unexpected_character(self):
        """Characters outside the grammar are rejected."""
        with pytest.raises(JSSyntaxError):
            Lexer("#").next_token()
