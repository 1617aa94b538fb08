"""JavaScript parser - produces an AST from tokens."""

from typing import List, Optional, Tuple

from .ast_nodes import (
    ArrayExpression, ArrowFunctionExpression, AssignmentExpression,
    BigIntLiteral, BinaryExpression, BlockStatement, BooleanLiteral,
    BreakStatement, CallExpression, CatchClause, ConditionalExpression,
    ContinueStatement, DecimalLiteral, DoWhileStatement, EmptyStatement,
    ExportNamedDeclaration, ExpressionStatement, ForInStatement,
    ForOfStatement, ForStatement, FunctionDeclaration, FunctionExpression,
    Identifier, IfStatement, ImportDeclaration, LabeledStatement,
    LogicalExpression, MemberExpression, NewExpression, Node, NullLiteral,
    NumericLiteral, ObjectExpression, Program, Property, ReturnStatement,
    SequenceExpression, StringLiteral, SwitchCase, SwitchStatement,
    TemplateLiteral, ThisExpression, ThrowStatement, TryStatement,
    UnaryExpression, UpdateExpression, VariableDeclaration,
    VariableDeclarator, WhileStatement,
)
from .errors import JSSyntaxError
from .lexer import Lexer
from .tokens import CONTEXTUAL_KEYWORDS, KEYWORDS, Token, TokenType

# Operator precedence (higher = binds tighter)
PRECEDENCE = {
    "||": 1,
    "&&": 2,
    "|": 3,
    "^": 4,
    "&": 5,
    "==": 6, "!=": 6, "===": 6, "!==": 6,
    "<": 7, ">": 7, "<=": 7, ">=": 7, "in": 7, "instanceof": 7,
    "<<": 8, ">>": 8, ">>>": 8,
    "+": 9, "-": 9,
    "*": 10, "/": 10, "%": 10,
    "**": 11,
}

BINARY_OPERATORS = {
    TokenType.OR: "||",
    TokenType.AND: "&&",
    TokenType.PIPE: "|",
    TokenType.CARET: "^",
    TokenType.AMPERSAND: "&",
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.EQEQ: "===",
    TokenType.NENE: "!==",
    TokenType.LT: "<",
    TokenType.GT: ">",
    TokenType.LE: "<=",
    TokenType.GE: ">=",
    TokenType.IN: "in",
    TokenType.INSTANCEOF: "instanceof",
    TokenType.LSHIFT: "<<",
    TokenType.RSHIFT: ">>",
    TokenType.URSHIFT: ">>>",
    TokenType.PLUS: "+",
    TokenType.MINUS: "-",
    TokenType.STAR: "*",
    TokenType.SLASH: "/",
    TokenType.PERCENT: "%",
    TokenType.STARSTAR: "**",
}

ASSIGNMENT_OPERATORS = frozenset([
    TokenType.ASSIGN, TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN,
    TokenType.STAR_ASSIGN, TokenType.SLASH_ASSIGN, TokenType.PERCENT_ASSIGN,
    TokenType.STARSTAR_ASSIGN, TokenType.AND_ASSIGN, TokenType.OR_ASSIGN,
    TokenType.XOR_ASSIGN, TokenType.LSHIFT_ASSIGN, TokenType.RSHIFT_ASSIGN,
    TokenType.URSHIFT_ASSIGN,
])

KEYWORD_TYPES = frozenset(KEYWORDS.values())

DECLARATION_KINDS = {
    TokenType.VAR: "var",
    TokenType.LET: "let",
    TokenType.CONST: "const",
}


class Parser:
    """Recursive descent parser for JavaScript.

    ``module=True`` parses module code: import and export declarations are
    allowed at the top level.
    """

    def __init__(self, source: str, module: bool = False):
        self.lexer = Lexer(source)
        self.module = module
        self.current: Token = self.lexer.next_token()
        self.previous: Optional[Token] = None
        self._function_depth = 0

    def _error(self, message: str, token: Optional[Token] = None) -> JSSyntaxError:
        token = token or self.current
        return JSSyntaxError(message, token.line, token.column)

    def _advance(self) -> Token:
        self.previous = self.current
        self.current = self.lexer.next_token()
        return self.previous

    def _check(self, *types: TokenType) -> bool:
        return self.current.type in types

    def _match(self, *types: TokenType) -> bool:
        if self._check(*types):
            self._advance()
            return True
        return False

    def _expect(self, token_type: TokenType, message: str) -> Token:
        if self.current.type != token_type:
            raise self._error(message)
        return self._advance()

    def _expect_identifier(self, message: str) -> str:
        if self.current.type == TokenType.IDENTIFIER or self.current.type in CONTEXTUAL_KEYWORDS:
            return self._advance().value
        raise self._error(message)

    def _expect_property_name(self) -> str:
        """Property names after a dot may be any identifier or keyword."""
        if self.current.type == TokenType.IDENTIFIER or self.current.type in KEYWORD_TYPES:
            return self._advance().value
        raise self._error("Expected property name")

    def _is_at_end(self) -> bool:
        return self.current.type == TokenType.EOF

    def _save(self) -> tuple:
        return (self.lexer.pos, self.lexer.line, self.lexer.column, self.current, self.previous)

    def _restore(self, state: tuple) -> None:
        self.lexer.pos, self.lexer.line, self.lexer.column, self.current, self.previous = state

    def _peek_next(self) -> Token:
        """Peek at the token after the current one without consuming it."""
        state = self._save()
        self._advance()
        token = self.current
        self._restore(state)
        return token

    def parse(self) -> Program:
        """Parse the entire program."""
        body: List[Node] = []
        while not self._is_at_end():
            body.append(self._parse_statement(top_level=True))
        return Program(body, "module" if self.module else "script")

    def parse_expression_source(self) -> Node:
        """Parse source holding a single expression (template substitutions)."""
        expr = self._parse_expression()
        if not self._is_at_end():
            raise self._error("Unexpected token in template substitution")
        return expr

    # ---- Statements ----

    def _parse_statement(self, top_level: bool = False) -> Node:
        line = self.current.line
        stmt = self._parse_statement_body(top_level)
        stmt.line = line
        return stmt

    def _parse_statement_body(self, top_level: bool) -> Node:
        if self._match(TokenType.SEMICOLON):
            return EmptyStatement()

        if self._check(TokenType.LBRACE):
            return self._parse_block_statement()

        if self._check(TokenType.VAR, TokenType.LET, TokenType.CONST):
            kind = DECLARATION_KINDS[self._advance().type]
            decl = self._parse_variable_declaration(kind)
            self._consume_semicolon()
            return decl

        if self._match(TokenType.IF):
            return self._parse_if_statement()

        if self._match(TokenType.WHILE):
            return self._parse_while_statement()

        if self._match(TokenType.DO):
            return self._parse_do_while_statement()

        if self._match(TokenType.FOR):
            return self._parse_for_statement()

        if self._match(TokenType.BREAK):
            label = None
            if self._check(TokenType.IDENTIFIER) and self.current.line == self.previous.line:
                label = Identifier(self._advance().value)
            self._consume_semicolon()
            return BreakStatement(label)

        if self._match(TokenType.CONTINUE):
            label = None
            if self._check(TokenType.IDENTIFIER) and self.current.line == self.previous.line:
                label = Identifier(self._advance().value)
            self._consume_semicolon()
            return ContinueStatement(label)

        if self._match(TokenType.RETURN):
            return self._parse_return_statement()

        if self._match(TokenType.THROW):
            argument = self._parse_expression()
            self._consume_semicolon()
            return ThrowStatement(argument)

        if self._match(TokenType.TRY):
            return self._parse_try_statement()

        if self._match(TokenType.SWITCH):
            return self._parse_switch_statement()

        if self._match(TokenType.FUNCTION):
            return self._parse_function_declaration()

        if self._check(TokenType.IMPORT, TokenType.EXPORT):
            if not self.module:
                raise self._error(f"'{self.current.value}' is only valid in module code")
            if not top_level:
                raise self._error(f"'{self.current.value}' must be at the top level")
            if self._match(TokenType.IMPORT):
                return self._parse_import_declaration()
            self._advance()
            return self._parse_export_declaration()

        if self._check(TokenType.IDENTIFIER) and self._peek_next().type == TokenType.COLON:
            label = self._advance().value
            self._advance()
            return LabeledStatement(Identifier(label), self._parse_statement())

        expr = self._parse_expression()
        self._consume_semicolon()
        return ExpressionStatement(expr)

    def _parse_block_statement(self) -> BlockStatement:
        self._expect(TokenType.LBRACE, "Expected '{'")
        body: List[Node] = []
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            body.append(self._parse_statement())
        self._expect(TokenType.RBRACE, "Expected '}'")
        return BlockStatement(body)

    def _parse_variable_declaration(self, kind: str, exclude_in: bool = False) -> VariableDeclaration:
        """Parse declarators after var/let/const: a = 1, b = 2"""
        declarations: List[VariableDeclarator] = []
        while True:
            name = self._expect_identifier("Expected variable name")
            init = None
            if self._match(TokenType.ASSIGN):
                init = self._parse_assignment_expression(exclude_in)
            elif kind == "const" and not exclude_in:
                raise self._error("Missing initializer in const declaration")
            declarations.append(VariableDeclarator(Identifier(name), init))
            if not self._match(TokenType.COMMA):
                break
        return VariableDeclaration(declarations, kind)

    def _parse_if_statement(self) -> IfStatement:
        self._expect(TokenType.LPAREN, "Expected '(' after 'if'")
        test = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after condition")
        consequent = self._parse_statement()
        alternate = None
        if self._match(TokenType.ELSE):
            alternate = self._parse_statement()
        return IfStatement(test, consequent, alternate)

    def _parse_while_statement(self) -> WhileStatement:
        self._expect(TokenType.LPAREN, "Expected '(' after 'while'")
        test = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after condition")
        return WhileStatement(test, self._parse_statement())

    def _parse_do_while_statement(self) -> DoWhileStatement:
        body = self._parse_statement()
        self._expect(TokenType.WHILE, "Expected 'while' after do block")
        self._expect(TokenType.LPAREN, "Expected '(' after 'while'")
        test = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after condition")
        self._consume_semicolon()
        return DoWhileStatement(body, test)

    def _parse_for_statement(self) -> Node:
        """Parse for, for-in and for-of statements."""
        self._expect(TokenType.LPAREN, "Expected '(' after 'for'")

        init: Optional[Node] = None
        if self._match(TokenType.SEMICOLON):
            pass
        else:
            if self._check(TokenType.VAR, TokenType.LET, TokenType.CONST):
                kind = DECLARATION_KINDS[self._advance().type]
                init = self._parse_variable_declaration(kind, exclude_in=True)
                if self._check(TokenType.IN, TokenType.OF) and len(init.declarations) != 1:
                    raise self._error("Invalid left-hand side in for loop")
            else:
                init = self._parse_expression(exclude_in=True)

            if self._match(TokenType.IN):
                right = self._parse_expression()
                self._expect(TokenType.RPAREN, "Expected ')' after for-in")
                return ForInStatement(init, right, self._parse_statement())
            if self._match(TokenType.OF):
                right = self._parse_assignment_expression()
                self._expect(TokenType.RPAREN, "Expected ')' after for-of")
                return ForOfStatement(init, right, self._parse_statement())

            if isinstance(init, VariableDeclaration) and init.kind == "const":
                if any(d.init is None for d in init.declarations):
                    raise self._error("Missing initializer in const declaration")
            self._expect(TokenType.SEMICOLON, "Expected ';' after for init")

        test = None
        if not self._check(TokenType.SEMICOLON):
            test = self._parse_expression()
        self._expect(TokenType.SEMICOLON, "Expected ';' after for condition")

        update = None
        if not self._check(TokenType.RPAREN):
            update = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after for update")

        return ForStatement(init, test, update, self._parse_statement())

    def _parse_return_statement(self) -> ReturnStatement:
        if self._function_depth == 0:
            raise self._error("return not in a function", self.previous)
        argument = None
        if (
            not self._check(TokenType.SEMICOLON, TokenType.RBRACE, TokenType.EOF)
            and self.current.line == self.previous.line
        ):
            argument = self._parse_expression()
        self._consume_semicolon()
        return ReturnStatement(argument)

    def _parse_try_statement(self) -> TryStatement:
        block = self._parse_block_statement()
        handler = None
        finalizer = None

        if self._match(TokenType.CATCH):
            param = None
            if self._match(TokenType.LPAREN):
                param = Identifier(self._expect_identifier("Expected catch parameter"))
                self._expect(TokenType.RPAREN, "Expected ')' after catch parameter")
            handler = CatchClause(param, self._parse_block_statement())

        if self._match(TokenType.FINALLY):
            finalizer = self._parse_block_statement()

        if handler is None and finalizer is None:
            raise self._error("Missing catch or finally after try")

        return TryStatement(block, handler, finalizer)

    def _parse_switch_statement(self) -> SwitchStatement:
        self._expect(TokenType.LPAREN, "Expected '(' after 'switch'")
        discriminant = self._parse_expression()
        self._expect(TokenType.RPAREN, "Expected ')' after switch expression")
        self._expect(TokenType.LBRACE, "Expected '{' before switch body")

        cases: List[SwitchCase] = []
        seen_default = False
        while not self._check(TokenType.RBRACE) and not self._is_at_end():
            test = None
            if self._match(TokenType.CASE):
                test = self._parse_expression()
            elif self._match(TokenType.DEFAULT):
                if seen_default:
                    raise self._error("Multiple default clauses in switch")
                seen_default = True
            else:
                raise self._error("Expected 'case' or 'default'")
            self._expect(TokenType.COLON, "Expected ':' after case expression")

            consequent: List[Node] = []
            while not self._check(TokenType.CASE, TokenType.DEFAULT, TokenType.RBRACE, TokenType.EOF):
                consequent.append(self._parse_statement())
            cases.append(SwitchCase(test, consequent))

        self._expect(TokenType.RBRACE, "Expected '}' after switch body")
        return SwitchStatement(discriminant, cases)

    def _parse_function_declaration(self) -> FunctionDeclaration:
        name = self._expect_identifier("Expected function name")
        params = self._parse_function_params()
        body = self._parse_function_body()
        return FunctionDeclaration(Identifier(name), params, body)

    def _parse_function_params(self) -> List[Identifier]:
        self._expect(TokenType.LPAREN, "Expected '(' before parameters")
        params: List[Identifier] = []
        if not self._check(TokenType.RPAREN):
            while True:
                params.append(Identifier(self._expect_identifier("Expected parameter name")))
                if not self._match(TokenType.COMMA):
                    break
        self._expect(TokenType.RPAREN, "Expected ')' after parameters")
        return params

    def _parse_function_body(self) -> BlockStatement:
        self._function_depth += 1
        try:
            return self._parse_block_statement()
        finally:
            self._function_depth -= 1

    def _parse_import_declaration(self) -> ImportDeclaration:
        """import { a, b as c } from "m" / import * as ns from "m" / import "m" """
        if self._check(TokenType.STRING):
            source = self._advance().value
            self._consume_semicolon()
            return ImportDeclaration(source)

        specifiers: List[Tuple[str, str]] = []
        namespace = None
        if self._match(TokenType.STAR):
            self._expect_contextual("as")
            namespace = self._expect_identifier("Expected namespace name")
        elif self._match(TokenType.LBRACE):
            while not self._check(TokenType.RBRACE):
                imported = self._expect_property_name()
                local = imported
                if self._check(TokenType.IDENTIFIER) and self.current.value == "as":
                    self._advance()
                    local = self._expect_identifier("Expected local name")
                specifiers.append((imported, local))
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.RBRACE, "Expected '}' after import specifiers")
        else:
            raise self._error("Unsupported import form")

        self._expect_contextual("from")
        source = self._expect(TokenType.STRING, "Expected module name").value
        self._consume_semicolon()
        return ImportDeclaration(source, specifiers, namespace)

    def _parse_export_declaration(self) -> ExportNamedDeclaration:
        if self._check(TokenType.VAR, TokenType.LET, TokenType.CONST):
            kind = DECLARATION_KINDS[self._advance().type]
            decl = self._parse_variable_declaration(kind)
            self._consume_semicolon()
            return ExportNamedDeclaration(decl)
        if self._match(TokenType.FUNCTION):
            return ExportNamedDeclaration(self._parse_function_declaration())
        if self._match(TokenType.LBRACE):
            specifiers: List[Tuple[str, str]] = []
            while not self._check(TokenType.RBRACE):
                local = self._expect_identifier("Expected export name")
                exported = local
                if self._check(TokenType.IDENTIFIER) and self.current.value == "as":
                    self._advance()
                    exported = self._expect_property_name()
                specifiers.append((local, exported))
                if not self._match(TokenType.COMMA):
                    break
            self._expect(TokenType.RBRACE, "Expected '}' after export specifiers")
            self._consume_semicolon()
            return ExportNamedDeclaration(None, specifiers)
        raise self._error("Unsupported export form")

    def _expect_contextual(self, word: str) -> None:
        if not (self._check(TokenType.IDENTIFIER) and self.current.value == word):
            raise self._error(f"Expected '{word}'")
        self._advance()

    def _consume_semicolon(self) -> None:
        """Consume a semicolon if present (lenient automatic semicolon insertion)."""
        self._match(TokenType.SEMICOLON)

    # ---- Expressions ----

    def _parse_expression(self, exclude_in: bool = False) -> Node:
        """Parse an expression (includes comma operator)."""
        expr = self._parse_assignment_expression(exclude_in)
        if self._check(TokenType.COMMA):
            expressions = [expr]
            while self._match(TokenType.COMMA):
                expressions.append(self._parse_assignment_expression(exclude_in))
            return SequenceExpression(expressions)
        return expr

    def _parse_assignment_expression(self, exclude_in: bool = False) -> Node:
        if self._is_arrow_ahead():
            return self._parse_arrow_function()

        expr = self._parse_conditional_expression(exclude_in)

        if self.current.type in ASSIGNMENT_OPERATORS:
            if not isinstance(expr, (Identifier, MemberExpression)):
                raise self._error("Invalid left-hand side in assignment")
            op = self._advance().value
            right = self._parse_assignment_expression(exclude_in)
            return AssignmentExpression(op, expr, right)

        return expr

    def _is_arrow_ahead(self) -> bool:
        """Check whether an arrow function starts at the current token."""
        if self.current.type == TokenType.IDENTIFIER:
            return self._peek_next().type == TokenType.ARROW
        if self.current.type != TokenType.LPAREN:
            return False
        state = self._save()
        try:
            depth = 0
            while not self._is_at_end():
                if self._check(TokenType.LPAREN):
                    depth += 1
                elif self._check(TokenType.RPAREN):
                    depth -= 1
                    if depth == 0:
                        self._advance()
                        return self._check(TokenType.ARROW)
                self._advance()
            return False
        except JSSyntaxError:
            return False
        finally:
            self._restore(state)

    def _parse_arrow_function(self) -> ArrowFunctionExpression:
        if self._check(TokenType.IDENTIFIER):
            params = [Identifier(self._advance().value)]
        else:
            params = self._parse_function_params()
        self._expect(TokenType.ARROW, "Expected '=>'")
        if self._check(TokenType.LBRACE):
            return ArrowFunctionExpression(params, self._parse_function_body(), expression=False)
        body = self._parse_assignment_expression()
        return ArrowFunctionExpression(params, body, expression=True)

    def _parse_conditional_expression(self, exclude_in: bool = False) -> Node:
        expr = self._parse_binary_expression(0, exclude_in)
        if self._match(TokenType.QUESTION):
            consequent = self._parse_assignment_expression()
            self._expect(TokenType.COLON, "Expected ':' in conditional expression")
            alternate = self._parse_assignment_expression(exclude_in)
            return ConditionalExpression(expr, consequent, alternate)
        return expr

    def _parse_binary_expression(self, min_precedence: int = 0, exclude_in: bool = False) -> Node:
        """Parse binary expression with operator precedence climbing."""
        left = self._parse_unary_expression()

        while True:
            op = BINARY_OPERATORS.get(self.current.type)
            if op is None or (exclude_in and op == "in"):
                break
            precedence = PRECEDENCE[op]
            if precedence < min_precedence:
                break
            if op == "**" and isinstance(left, UnaryExpression):
                raise self._error("Unparenthesized unary expression can't appear on the left-hand side of '**'")

            self._advance()
            if op == "**":
                right = self._parse_binary_expression(precedence, exclude_in)
            else:
                right = self._parse_binary_expression(precedence + 1, exclude_in)

            if op in ("&&", "||"):
                left = LogicalExpression(op, left, right)
            else:
                left = BinaryExpression(op, left, right)

        return left

    def _parse_unary_expression(self) -> Node:
        if self._check(
            TokenType.MINUS, TokenType.PLUS, TokenType.NOT, TokenType.TILDE,
            TokenType.TYPEOF, TokenType.VOID, TokenType.DELETE,
        ):
            op = self._advance().value
            return UnaryExpression(op, self._parse_unary_expression())

        if self._check(TokenType.PLUSPLUS, TokenType.MINUSMINUS):
            op = self._advance().value
            argument = self._parse_unary_expression()
            if not isinstance(argument, (Identifier, MemberExpression)):
                raise self._error("Invalid left-hand side expression in prefix operation")
            return UpdateExpression(op, argument, prefix=True)

        return self._parse_postfix_expression()

    def _parse_postfix_expression(self) -> Node:
        expr = self._parse_call_expression()
        if self._check(TokenType.PLUSPLUS, TokenType.MINUSMINUS) and self.current.line == self.previous.line:
            if not isinstance(expr, (Identifier, MemberExpression)):
                raise self._error("Invalid left-hand side expression in postfix operation")
            op = self._advance().value
            return UpdateExpression(op, expr, prefix=False)
        return expr

    def _parse_call_expression(self) -> Node:
        """Parse member access and call chains."""
        expr = self._parse_new_expression()
        while True:
            if self._match(TokenType.DOT):
                expr = MemberExpression(expr, Identifier(self._expect_property_name()), computed=False)
            elif self._match(TokenType.LBRACKET):
                prop = self._parse_expression()
                self._expect(TokenType.RBRACKET, "Expected ']' after index")
                expr = MemberExpression(expr, prop, computed=True)
            elif self._match(TokenType.LPAREN):
                expr = CallExpression(expr, self._parse_arguments())
            elif self._check(TokenType.TEMPLATE):
                raise self._error("Tagged templates are not supported")
            else:
                break
        return expr

    def _parse_new_expression(self) -> Node:
        if not self._match(TokenType.NEW):
            return self._parse_primary_expression()

        callee = self._parse_new_expression()
        # Member accesses bind to the constructor: new a.b.C()
        while True:
            if self._match(TokenType.DOT):
                callee = MemberExpression(callee, Identifier(self._expect_property_name()))
            elif self._match(TokenType.LBRACKET):
                prop = self._parse_expression()
                self._expect(TokenType.RBRACKET, "Expected ']' after index")
                callee = MemberExpression(callee, prop, computed=True)
            else:
                break
        args: List[Node] = []
        if self._match(TokenType.LPAREN):
            args = self._parse_arguments()
        return NewExpression(callee, args)

    def _parse_arguments(self) -> List[Node]:
        """Parse call arguments; the opening parenthesis has been consumed."""
        args: List[Node] = []
        while not self._check(TokenType.RPAREN):
            args.append(self._parse_assignment_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RPAREN, "Expected ')' after arguments")
        return args

    def _parse_primary_expression(self) -> Node:
        token = self.current

        if self._match(TokenType.NUMBER):
            return NumericLiteral(token.value)
        if self._match(TokenType.BIGINT):
            return BigIntLiteral(token.value)
        if self._match(TokenType.DECIMAL):
            return DecimalLiteral(token.value)
        if self._match(TokenType.STRING):
            return StringLiteral(token.value)
        if self._match(TokenType.TEMPLATE):
            return self._parse_template(token)
        if self._match(TokenType.TRUE):
            return BooleanLiteral(True)
        if self._match(TokenType.FALSE):
            return BooleanLiteral(False)
        if self._match(TokenType.NULL):
            return NullLiteral()
        if self._match(TokenType.THIS):
            return ThisExpression()
        if self._check(TokenType.IDENTIFIER) or self.current.type in CONTEXTUAL_KEYWORDS:
            return Identifier(self._advance().value)

        if self._match(TokenType.LPAREN):
            expr = self._parse_expression()
            self._expect(TokenType.RPAREN, "Expected ')' after expression")
            return expr

        if self._match(TokenType.LBRACKET):
            return self._parse_array_literal()

        if self._match(TokenType.LBRACE):
            return self._parse_object_literal()

        if self._match(TokenType.FUNCTION):
            name = None
            if self._check(TokenType.IDENTIFIER):
                name = Identifier(self._advance().value)
            params = self._parse_function_params()
            return FunctionExpression(name, params, self._parse_function_body())

        if self._check(TokenType.SLASH, TokenType.SLASH_ASSIGN):
            raise self._error("Regular expression literals are not supported")

        if self._is_at_end():
            raise self._error("Unexpected end of input")
        raise self._error(f"Unexpected token: {token.value if token.value is not None else token.type.name}")

    def _parse_template(self, token: Token) -> TemplateLiteral:
        quasis, sources = token.value
        expressions: List[Node] = []
        for source, line, column in sources:
            sub = Parser(source)
            try:
                expressions.append(sub.parse_expression_source())
            except JSSyntaxError as e:
                raise JSSyntaxError(e.message, line + e.line - 1, column if e.line == 1 else e.column)
        return TemplateLiteral(quasis, expressions)

    def _parse_array_literal(self) -> ArrayExpression:
        elements: List[Node] = []
        while not self._check(TokenType.RBRACKET):
            elements.append(self._parse_assignment_expression())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACKET, "Expected ']' after array elements")
        return ArrayExpression(elements)

    def _parse_object_literal(self) -> ObjectExpression:
        properties: List[Property] = []
        while not self._check(TokenType.RBRACE):
            properties.append(self._parse_property())
            if not self._match(TokenType.COMMA):
                break
        self._expect(TokenType.RBRACE, "Expected '}' after object properties")
        return ObjectExpression(properties)

    def _parse_property_key(self) -> Tuple[Node, bool]:
        if self._match(TokenType.LBRACKET):
            key = self._parse_assignment_expression()
            self._expect(TokenType.RBRACKET, "Expected ']' after computed property name")
            return key, True
        if self._match(TokenType.STRING):
            return StringLiteral(self.previous.value), False
        if self._match(TokenType.NUMBER):
            return NumericLiteral(self.previous.value), False
        return Identifier(self._expect_property_name()), False

    def _parse_property(self) -> Property:
        """Parse one object literal property."""
        if self._check(TokenType.IDENTIFIER) and self.current.value in ("get", "set"):
            following = self._peek_next().type
            if following not in (TokenType.COLON, TokenType.COMMA, TokenType.RBRACE, TokenType.LPAREN):
                kind = self._advance().value
                key, computed = self._parse_property_key()
                params = self._parse_function_params()
                body = self._parse_function_body()
                return Property(key, FunctionExpression(None, params, body), kind, computed)

        key_token = self.current
        key, computed = self._parse_property_key()

        if self._check(TokenType.LPAREN):
            params = self._parse_function_params()
            body = self._parse_function_body()
            return Property(key, FunctionExpression(None, params, body), "init", computed)

        if self._match(TokenType.COLON):
            return Property(key, self._parse_assignment_expression(), "init", computed)

        if isinstance(key, Identifier) and not computed and key_token.type not in KEYWORD_TYPES:
            return Property(key, Identifier(key.name), "init", shorthand=True)
        raise self._error("Expected ':' after property name")
