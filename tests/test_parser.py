"""Tests for the JavaScript parser."""

from decimal import Decimal

import pytest

from jsbridge.engine.ast_nodes import (
    ArrayExpression, ArrowFunctionExpression, AssignmentExpression,
    BigIntLiteral, BinaryExpression, CallExpression, DecimalLiteral,
    ExportNamedDeclaration, ExpressionStatement, ForInStatement, ForOfStatement,
    ForStatement, FunctionDeclaration, Identifier, IfStatement,
    ImportDeclaration, LabeledStatement, LogicalExpression, MemberExpression,
    NewExpression, NumericLiteral, ObjectExpression, Program, StringLiteral,
    SwitchStatement, TemplateLiteral, TryStatement, UnaryExpression,
    VariableDeclaration,
)
from jsbridge.engine.errors import JSSyntaxError
from jsbridge.engine.parser import Parser


def expression(source):
    ast = Parser(source).parse()
    stmt = ast.body[0]
    assert isinstance(stmt, ExpressionStatement)
    return stmt.expression


class TestParserLiterals:
    """Test parsing of literals."""

    def test_empty_program(self):
        """Empty program."""
        ast = Parser("").parse()
        assert isinstance(ast, Program)
        assert ast.body == []
        assert ast.source_type == "script"

    def test_numeric_literal(self):
        """Integer literal."""
        expr = expression("42;")
        assert isinstance(expr, NumericLiteral)
        assert expr.value == 42

    def test_string_literal(self):
        """String literal."""
        expr = expression('"hello";')
        assert isinstance(expr, StringLiteral)
        assert expr.value == "hello"

    def test_bigint_literal(self):
        """BigInt literal."""
        expr = expression("128n")
        assert isinstance(expr, BigIntLiteral)
        assert expr.value == 128

    def test_decimal_literal(self):
        """Big-decimal literal."""
        expr = expression("0.1l")
        assert isinstance(expr, DecimalLiteral)
        assert expr.value == Decimal("0.1")

    def test_template_literal(self):
        """Template literal substitutions are parsed as expressions."""
        expr = expression("`a${1 + 2}b`")
        assert isinstance(expr, TemplateLiteral)
        assert expr.quasis == ["a", "b"]
        assert isinstance(expr.expressions[0], BinaryExpression)

    def test_array_and_object(self):
        """Array and object literals."""
        assert isinstance(expression("[1, 2, 3]"), ArrayExpression)
        obj = expression("({a: 1, 'b': 2, get c() { return 3; }})")
        assert isinstance(obj, ObjectExpression)
        assert [p.kind for p in obj.properties] == ["init", "init", "get"]

    def test_regex_literal_rejected(self):
        """Regular expression literals are a syntax error."""
        with pytest.raises(JSSyntaxError):
            Parser("/ab+c/.test('abc')").parse()


class TestParserExpressions:
    """Operator precedence and expression forms."""

    def test_multiplication_binds_tighter(self):
        """1 + 2 * 100 - 3 parses as (1 + (2 * 100)) - 3."""
        expr = expression("1 + 2 * 100 - 3")
        assert expr.operator == "-"
        assert expr.left.operator == "+"
        assert expr.left.right.operator == "*"

    def test_exponent_right_associative(self):
        """2 ** 3 ** 2 parses as 2 ** (3 ** 2)."""
        expr = expression("2 ** 3 ** 2")
        assert expr.operator == "**"
        assert isinstance(expr.right, BinaryExpression)
        assert expr.right.operator == "**"

    def test_logical(self):
        """&& binds tighter than ||."""
        expr = expression("a || b && c")
        assert isinstance(expr, LogicalExpression)
        assert expr.operator == "||"
        assert expr.right.operator == "&&"

    def test_member_and_call(self):
        """Member access and calls chain left to right."""
        expr = expression("Math.sin(10)")
        assert isinstance(expr, CallExpression)
        assert isinstance(expr.callee, MemberExpression)
        assert expr.callee.property.name == "sin"

    def test_new(self):
        """new with arguments."""
        expr = expression("new Error('x')")
        assert isinstance(expr, NewExpression)
        assert expr.callee.name == "Error"

    def test_assignment(self):
        """Compound assignment."""
        expr = expression("x += 1")
        assert isinstance(expr, AssignmentExpression)
        assert expr.operator == "+="

    def test_typeof(self):
        """Unary typeof."""
        expr = expression("typeof x")
        assert isinstance(expr, UnaryExpression)
        assert expr.operator == "typeof"

    def test_arrow_function(self):
        """Arrow functions with expression bodies."""
        expr = expression("(a, b) => a + b")
        assert isinstance(expr, ArrowFunctionExpression)
        assert [p.name for p in expr.params] == ["a", "b"]
        assert expr.expression

    def test_invalid_assignment_target(self):
        """Assigning to a literal is a syntax error."""
        with pytest.raises(JSSyntaxError):
            Parser("1 = 2").parse()


class TestParserStatements:
    """Statements."""

    def test_variable_declarations(self):
        """var, let and const."""
        ast = Parser("var a = 1; let b; const c = 3;").parse()
        assert [s.kind for s in ast.body] == ["var", "let", "const"]
        assert all(isinstance(s, VariableDeclaration) for s in ast.body)

    def test_const_requires_initializer(self):
        """const without an initializer is rejected."""
        with pytest.raises(JSSyntaxError):
            Parser("const x;").parse()

    def test_if_else(self):
        """if/else."""
        stmt = Parser("if (a) b(); else c();").parse().body[0]
        assert isinstance(stmt, IfStatement)
        assert stmt.alternate is not None

    def test_for_loops(self):
        """for, for-in and for-of."""
        body = Parser("for (let i = 0; i < 3; i++) {} for (k in o) {} for (const v of a) {}").parse().body
        assert isinstance(body[0], ForStatement)
        assert isinstance(body[1], ForInStatement)
        assert isinstance(body[2], ForOfStatement)

    def test_try_catch_finally(self):
        """try/catch/finally."""
        stmt = Parser("try { f(); } catch (e) { g(e); } finally { h(); }").parse().body[0]
        assert isinstance(stmt, TryStatement)
        assert stmt.handler.param.name == "e"
        assert stmt.finalizer is not None

    def test_switch(self):
        """switch with default."""
        stmt = Parser("switch (x) { case 1: a(); break; default: b(); }").parse().body[0]
        assert isinstance(stmt, SwitchStatement)
        assert stmt.cases[1].test is None

    def test_labeled_statement(self):
        """Labels before loops."""
        stmt = Parser("outer: for (;;) { break outer; }").parse().body[0]
        assert isinstance(stmt, LabeledStatement)
        assert stmt.label.name == "outer"

    def test_function_declaration(self):
        """Function declarations."""
        stmt = Parser("function add(a, b) { return a + b; }").parse().body[0]
        assert isinstance(stmt, FunctionDeclaration)
        assert stmt.id.name == "add"
        assert [p.name for p in stmt.params] == ["a", "b"]

    def test_statement_line_numbers(self):
        """Statements record their starting line."""
        body = Parser("a;\n\nb;").parse().body
        assert [s.line for s in body] == [1, 3]

    def test_error_location(self):
        """Syntax errors report line and column."""
        with pytest.raises(JSSyntaxError) as info:
            Parser("var x = 1;\nvar = 2;").parse()
        assert info.value.line == 2


class TestParserModules:
    """import and export declarations."""

    def test_import_export_need_module(self):
        """import and export are rejected in scripts."""
        with pytest.raises(JSSyntaxError):
            Parser("export const x = 1;").parse()
        with pytest.raises(JSSyntaxError):
            Parser('import { x } from "m";').parse()

    def test_export_declaration(self):
        """export of a declaration."""
        ast = Parser("export const x = 1;", module=True).parse()
        assert ast.source_type == "module"
        stmt = ast.body[0]
        assert isinstance(stmt, ExportNamedDeclaration)
        assert isinstance(stmt.declaration, VariableDeclaration)

    def test_export_specifiers(self):
        """export { a, b as c }."""
        stmt = Parser("export { a, b as c };", module=True).parse().body[0]
        assert stmt.specifiers == [("a", "a"), ("b", "c")]

    def test_import_named(self):
        """import { a, b as c } from "m"."""
        stmt = Parser('import { a, b as c } from "m";', module=True).parse().body[0]
        assert isinstance(stmt, ImportDeclaration)
        assert stmt.source == "m"
        assert stmt.specifiers == [("a", "a"), ("b", "c")]

    def test_import_namespace(self):
        """import * as ns from "m"."""
        stmt = Parser('import * as ns from "m";', module=True).parse().body[0]
        assert stmt.namespace == "ns"

    def test_import_not_top_level(self):
        """import inside a block is rejected."""
        with pytest.raises(JSSyntaxError):
            Parser('{ import { a } from "m"; }', module=True).parse()

    def test_identifier_helpers(self):
        """Identifiers parse as Identifier nodes."""
        assert isinstance(expression("foo"), Identifier)
