"""JavaScript lexer (tokenizer)."""

from decimal import Decimal
from typing import Iterator, List, Tuple

from .errors import JSSyntaxError
from .tokens import KEYWORDS, Token, TokenType

SIMPLE_ESCAPES = {
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}

PUNCTUATION = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ";": TokenType.SEMICOLON,
    ",": TokenType.COMMA,
    ":": TokenType.COLON,
    "?": TokenType.QUESTION,
    "~": TokenType.TILDE,
}

# Longest match first.
OPERATORS = [
    (">>>=", TokenType.URSHIFT_ASSIGN),
    ("===", TokenType.EQEQ),
    ("!==", TokenType.NENE),
    ("**=", TokenType.STARSTAR_ASSIGN),
    ("<<=", TokenType.LSHIFT_ASSIGN),
    (">>=", TokenType.RSHIFT_ASSIGN),
    (">>>", TokenType.URSHIFT),
    ("=>", TokenType.ARROW),
    ("==", TokenType.EQ),
    ("!=", TokenType.NE),
    ("<=", TokenType.LE),
    (">=", TokenType.GE),
    ("<<", TokenType.LSHIFT),
    (">>", TokenType.RSHIFT),
    ("&&", TokenType.AND),
    ("||", TokenType.OR),
    ("++", TokenType.PLUSPLUS),
    ("--", TokenType.MINUSMINUS),
    ("**", TokenType.STARSTAR),
    ("+=", TokenType.PLUS_ASSIGN),
    ("-=", TokenType.MINUS_ASSIGN),
    ("*=", TokenType.STAR_ASSIGN),
    ("/=", TokenType.SLASH_ASSIGN),
    ("%=", TokenType.PERCENT_ASSIGN),
    ("&=", TokenType.AND_ASSIGN),
    ("|=", TokenType.OR_ASSIGN),
    ("^=", TokenType.XOR_ASSIGN),
    ("=", TokenType.ASSIGN),
    ("<", TokenType.LT),
    (">", TokenType.GT),
    ("&", TokenType.AMPERSAND),
    ("|", TokenType.PIPE),
    ("^", TokenType.CARET),
    ("+", TokenType.PLUS),
    ("-", TokenType.MINUS),
    ("*", TokenType.STAR),
    ("/", TokenType.SLASH),
    ("%", TokenType.PERCENT),
    ("!", TokenType.NOT),
    (".", TokenType.DOT),
]


class Lexer:
    """Tokenizes JavaScript source code."""

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 1
        self.column = 1
        self.length = len(source)

    def _current(self) -> str:
        if self.pos >= self.length:
            return ""
        return self.source[self.pos]

    def _peek(self, offset: int = 1) -> str:
        pos = self.pos + offset
        if pos >= self.length:
            return ""
        return self.source[pos]

    def _advance(self) -> str:
        """Advance and return current character."""
        if self.pos >= self.length:
            return ""
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _error(self, message: str) -> JSSyntaxError:
        return JSSyntaxError(message, self.line, self.column)

    def _skip_whitespace(self) -> None:
        """Skip whitespace and comments."""
        while self.pos < self.length:
            ch = self._current()

            if ch in " \t\r\n\v\f\ufeff\u00a0\u2028\u2029":
                self._advance()
                continue

            if ch == "/" and self._peek() == "/":
                while self._current() and self._current() != "\n":
                    self._advance()
                continue

            if ch == "/" and self._peek() == "*":
                self._advance()
                self._advance()
                while True:
                    if self.pos >= self.length:
                        raise self._error("Unterminated comment")
                    if self._current() == "*" and self._peek() == "/":
                        self._advance()
                        self._advance()
                        break
                    self._advance()
                continue

            break

    def _read_hex(self, count: int) -> int:
        digits = ""
        for _ in range(count):
            ch = self._current()
            if not ch or ch not in "0123456789abcdefABCDEF":
                raise self._error("Invalid hexadecimal escape sequence")
            digits += self._advance()
        return int(digits, 16)

    def _read_unicode_escape(self) -> int:
        """Read the code unit or code point after a backslash-u."""
        if self._current() == "{":
            self._advance()
            digits = ""
            while self._current() and self._current() != "}":
                digits += self._advance()
            if self._advance() != "}" or not digits:
                raise self._error("Invalid Unicode escape sequence")
            try:
                code = int(digits, 16)
            except ValueError:
                raise self._error("Invalid Unicode escape sequence")
            if code > 0x10FFFF:
                raise self._error("Undefined Unicode code-point")
            return code
        return self._read_hex(4)

    def _read_escape(self) -> str:
        """Read an escape sequence; the backslash has been consumed."""
        ch = self._advance()
        if not ch:
            raise self._error("Unterminated string literal")
        if ch in SIMPLE_ESCAPES:
            return SIMPLE_ESCAPES[ch]
        if ch == "0" and not self._current().isdigit():
            return "\0"
        if ch == "x":
            return chr(self._read_hex(2))
        if ch == "u":
            code = self._read_unicode_escape()
            # Combine an escaped surrogate pair into a single code point
            if 0xD800 <= code <= 0xDBFF and self._current() == "\\" and self._peek() == "u":
                saved = (self.pos, self.line, self.column)
                self._advance()
                self._advance()
                low = self._read_unicode_escape()
                if 0xDC00 <= low <= 0xDFFF:
                    return chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00))
                self.pos, self.line, self.column = saved
            return chr(code)
        if ch == "\r" and self._current() == "\n":
            self._advance()
            return ""
        if ch in "\n\u2028\u2029":
            return ""
        return ch

    def _read_string(self, quote: str) -> str:
        """Read a string literal."""
        result = []
        self._advance()

        while self._current() and self._current() != quote:
            ch = self._advance()
            if ch == "\\":
                result.append(self._read_escape())
            elif ch == "\n":
                raise self._error("Unterminated string literal")
            else:
                result.append(ch)

        if not self._current():
            raise self._error("Unterminated string literal")

        self._advance()
        return "".join(result)

    def _read_template(self) -> Tuple[List[str], List[Tuple[str, int, int]]]:
        """Read a template literal into its text parts and substitution sources."""
        quasis: List[str] = []
        expressions: List[Tuple[str, int, int]] = []
        buf: List[str] = []
        self._advance()

        while True:
            ch = self._current()
            if not ch:
                raise self._error("Unterminated template literal")
            if ch == "`":
                self._advance()
                break
            if ch == "\\":
                self._advance()
                buf.append(self._read_escape())
            elif ch == "$" and self._peek() == "{":
                self._advance()
                self._advance()
                quasis.append("".join(buf))
                buf = []
                expressions.append(self._read_substitution())
            else:
                buf.append(self._advance())

        quasis.append("".join(buf))
        return quasis, expressions

    def _read_substitution(self) -> Tuple[str, int, int]:
        """Read the raw source of a ${...} substitution up to its closing brace."""
        line, column = self.line, self.column
        start = self.pos
        depth = 0
        while True:
            ch = self._current()
            if not ch:
                raise self._error("Unterminated template literal")
            if ch in "'\"":
                self._read_string(ch)
                continue
            if ch == "`":
                self._read_template()
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                if depth == 0:
                    source = self.source[start:self.pos]
                    self._advance()
                    return source, line, column
                depth -= 1
            self._advance()

    def _read_digits(self, allowed: str) -> str:
        digits = ""
        while self._current() and self._current() in allowed:
            digits += self._advance()
        return digits

    def _read_number(self) -> Token:
        """Read a numeric literal, including BigInt and decimal suffixes."""
        start = self.pos
        line = self.line
        col = self.column

        if self._current() == "0" and self._peek() and self._peek() in "xXoObB":
            self._advance()
            prefix = self._advance().lower()
            allowed, base = {
                "x": ("0123456789abcdefABCDEF", 16),
                "o": ("01234567", 8),
                "b": ("01", 2),
            }[prefix]
            digits = self._read_digits(allowed)
            if not digits:
                raise JSSyntaxError("Invalid number literal", line, col)
            value = int(digits, base)
            if self._current() == "n":
                self._advance()
                return Token(TokenType.BIGINT, value, line, col)
            self._check_number_end(line, col)
            return Token(TokenType.NUMBER, value, line, col)

        self._read_digits("0123456789")
        is_float = False
        if self._current() == "." and (self._peek().isdigit() or self.pos > start):
            is_float = True
            self._advance()
            self._read_digits("0123456789")

        if self._current() and self._current() in "eE":
            is_float = True
            self._advance()
            if self._current() in ("+", "-"):
                self._advance()
            if not self._read_digits("0123456789"):
                raise JSSyntaxError("Invalid number literal", line, col)

        text = self.source[start:self.pos]
        suffix = self._current()
        if suffix == "n":
            if is_float:
                raise JSSyntaxError("Invalid BigInt literal", line, col)
            self._advance()
            return Token(TokenType.BIGINT, int(text), line, col)
        if suffix in ("l", "m"):
            self._advance()
            return Token(TokenType.DECIMAL, Decimal(text), line, col)

        self._check_number_end(line, col)
        if is_float:
            return Token(TokenType.NUMBER, float(text), line, col)
        return Token(TokenType.NUMBER, int(text), line, col)

    def _check_number_end(self, line: int, col: int) -> None:
        ch = self._current()
        if ch and (ch.isalnum() or ch in "_$"):
            raise JSSyntaxError("Invalid number literal", line, col)

    def _read_identifier(self) -> str:
        start = self.pos
        while self._current() and (self._current().isalnum() or self._current() in "_$"):
            self._advance()
        return self.source[start:self.pos]

    def next_token(self) -> Token:
        """Get the next token."""
        self._skip_whitespace()

        line = self.line
        column = self.column

        if self.pos >= self.length:
            return Token(TokenType.EOF, None, line, column)

        ch = self._current()

        if ch in "'\"":
            return Token(TokenType.STRING, self._read_string(ch), line, column)

        if ch == "`":
            return Token(TokenType.TEMPLATE, self._read_template(), line, column)

        if ch.isdigit() or (ch == "." and self._peek().isdigit()):
            return self._read_number()

        if ch.isalpha() or ch in "_$":
            value = self._read_identifier()
            return Token(KEYWORDS.get(value, TokenType.IDENTIFIER), value, line, column)

        if ch in PUNCTUATION:
            self._advance()
            return Token(PUNCTUATION[ch], ch, line, column)

        for text, token_type in OPERATORS:
            if self.source.startswith(text, self.pos):
                for _ in text:
                    self._advance()
                return Token(token_type, text, line, column)

        raise JSSyntaxError(f"Unexpected character: {ch!r}", line, column)

    def tokenize(self) -> Iterator[Token]:
        """Tokenize the entire source."""
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                break
