"""AST node types for the JavaScript parser."""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple, Union


@dataclass
class Node:
    """Base class for all AST nodes.

    Statements also carry a ``line`` attribute set by the parser; it is kept
    out of the dataclass fields so it never affects equality.
    """

    def to_dict(self) -> dict:
        """Convert node to dictionary for testing/debugging."""
        result = {"type": self.__class__.__name__}
        for key, value in self.__dict__.items():
            if key == "line":
                continue
            if isinstance(value, Node):
                result[key] = value.to_dict()
            elif isinstance(value, list):
                result[key] = [v.to_dict() if isinstance(v, Node) else v for v in value]
            else:
                result[key] = value
        return result


# Literals
@dataclass
class NumericLiteral(Node):
    value: Union[int, float]


@dataclass
class BigIntLiteral(Node):
    """Arbitrary-precision integer literal: 128n"""
    value: int


@dataclass
class DecimalLiteral(Node):
    """Big-decimal literal: 1.5l or 1.5m"""
    value: Decimal


@dataclass
class StringLiteral(Node):
    value: str


@dataclass
class TemplateLiteral(Node):
    """Template literal: `a ${b} c` has quasis ["a ", " c"] and one expression."""
    quasis: List[str]
    expressions: List[Node]


@dataclass
class BooleanLiteral(Node):
    value: bool


@dataclass
class NullLiteral(Node):
    pass


@dataclass
class Identifier(Node):
    name: str


@dataclass
class ThisExpression(Node):
    pass


# Expressions
@dataclass
class ArrayExpression(Node):
    elements: List[Node]


@dataclass
class ObjectExpression(Node):
    properties: List["Property"]


@dataclass
class Property(Node):
    """Object literal property; kind is "init", "get" or "set"."""
    key: Node
    value: Node
    kind: str = "init"
    computed: bool = False
    shorthand: bool = False


@dataclass
class UnaryExpression(Node):
    operator: str
    argument: Node
    prefix: bool = True


@dataclass
class UpdateExpression(Node):
    """++x, x++, --x, x--"""
    operator: str
    argument: Node
    prefix: bool


@dataclass
class BinaryExpression(Node):
    operator: str
    left: Node
    right: Node


@dataclass
class LogicalExpression(Node):
    """a && b, a || b"""
    operator: str
    left: Node
    right: Node


@dataclass
class ConditionalExpression(Node):
    test: Node
    consequent: Node
    alternate: Node


@dataclass
class AssignmentExpression(Node):
    operator: str
    left: Node
    right: Node


@dataclass
class SequenceExpression(Node):
    expressions: List[Node]


@dataclass
class MemberExpression(Node):
    """a.b or a[b]"""
    object: Node
    property: Node
    computed: bool = False


@dataclass
class CallExpression(Node):
    callee: Node
    arguments: List[Node]


@dataclass
class NewExpression(Node):
    callee: Node
    arguments: List[Node]


# Statements
@dataclass
class Program(Node):
    body: List[Node]
    source_type: str = "script"


@dataclass
class ExpressionStatement(Node):
    expression: Node


@dataclass
class BlockStatement(Node):
    body: List[Node]


@dataclass
class EmptyStatement(Node):
    pass


@dataclass
class VariableDeclaration(Node):
    """var/let/const declaration."""
    declarations: List["VariableDeclarator"]
    kind: str = "var"


@dataclass
class VariableDeclarator(Node):
    id: Identifier
    init: Optional[Node] = None


@dataclass
class IfStatement(Node):
    test: Node
    consequent: Node
    alternate: Optional[Node] = None


@dataclass
class WhileStatement(Node):
    test: Node
    body: Node


@dataclass
class DoWhileStatement(Node):
    body: Node
    test: Node


@dataclass
class ForStatement(Node):
    init: Optional[Node]
    test: Optional[Node]
    update: Optional[Node]
    body: Node


@dataclass
class ForInStatement(Node):
    left: Node
    right: Node
    body: Node


@dataclass
class ForOfStatement(Node):
    left: Node
    right: Node
    body: Node


@dataclass
class BreakStatement(Node):
    label: Optional[Identifier] = None


@dataclass
class ContinueStatement(Node):
    label: Optional[Identifier] = None


@dataclass
class ReturnStatement(Node):
    argument: Optional[Node] = None


@dataclass
class ThrowStatement(Node):
    argument: Node


@dataclass
class TryStatement(Node):
    block: BlockStatement
    handler: Optional["CatchClause"] = None
    finalizer: Optional[BlockStatement] = None


@dataclass
class CatchClause(Node):
    param: Optional[Identifier]
    body: BlockStatement


@dataclass
class SwitchStatement(Node):
    discriminant: Node
    cases: List["SwitchCase"]


@dataclass
class SwitchCase(Node):
    """A case clause; test is None for default."""
    test: Optional[Node]
    consequent: List[Node]


@dataclass
class LabeledStatement(Node):
    label: Identifier
    body: Node


@dataclass
class FunctionDeclaration(Node):
    id: Identifier
    params: List[Identifier]
    body: BlockStatement


@dataclass
class FunctionExpression(Node):
    id: Optional[Identifier]
    params: List[Identifier]
    body: BlockStatement


@dataclass
class ArrowFunctionExpression(Node):
    """Arrow function; expression is True when body is a bare expression."""
    params: List[Identifier]
    body: Node
    expression: bool = False


# Modules
@dataclass
class ImportDeclaration(Node):
    """import { a, b as c } from "m" / import * as ns from "m"

    specifiers holds (imported, local) name pairs.
    """
    source: str
    specifiers: List[Tuple[str, str]] = field(default_factory=list)
    namespace: Optional[str] = None


@dataclass
class ExportNamedDeclaration(Node):
    """export <declaration> / export { a, b as c }

    specifiers holds (local, exported) name pairs.
    """
    declaration: Optional[Node] = None
    specifiers: List[Tuple[str, str]] = field(default_factory=list)


FUNCTION_NODES = (FunctionDeclaration, FunctionExpression, ArrowFunctionExpression)
