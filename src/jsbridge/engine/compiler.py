"""Bytecode compiler - compiles AST to bytecode."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from .ast_nodes import (
    FUNCTION_NODES, ArrayExpression, ArrowFunctionExpression,
    AssignmentExpression, BigIntLiteral, BinaryExpression, BlockStatement,
    BooleanLiteral, BreakStatement, CallExpression, CatchClause,
    ConditionalExpression, ContinueStatement, DecimalLiteral,
    DoWhileStatement, EmptyStatement, ExportNamedDeclaration,
    ExpressionStatement, ForInStatement, ForOfStatement, ForStatement,
    FunctionDeclaration, FunctionExpression, Identifier, IfStatement,
    ImportDeclaration, LabeledStatement, LogicalExpression, MemberExpression,
    NewExpression, Node, NullLiteral, NumericLiteral, ObjectExpression,
    Program, Property, ReturnStatement, SequenceExpression, StringLiteral,
    SwitchStatement, TemplateLiteral, ThisExpression, ThrowStatement,
    TryStatement, UnaryExpression, UpdateExpression, VariableDeclaration,
    WhileStatement,
)
from .errors import JSSyntaxError
from .opcodes import MAX_OPERAND, OPERAND_KINDS, OpCode
from .parser import Parser
from .values import DECIMAL_CONTEXT, check_bigint, normalize_number


@dataclass(eq=False)
class CompiledFunction:
    """A compiled function, or the top level of a script or module."""
    name: str
    params: List[str]
    bytecode: bytes
    constants: List[Any]
    locals: List[str]
    num_locals: int
    free_vars: List[str] = field(default_factory=list)  # Captured from enclosing functions
    cell_vars: List[str] = field(default_factory=list)  # Locals captured by inner functions
    line_table: List[Tuple[int, int]] = field(default_factory=list)  # (offset, line)
    filename: str = "<input>"
    is_arrow: bool = False
    is_program: bool = False
    is_module: bool = False
    strict: bool = False
    self_slot: int = -1       # Named function expression binding
    arguments_slot: int = -1

    def line_for(self, ip: int) -> int:
        """Source line of the instruction at ip (0 when unknown)."""
        line = 0
        for offset, candidate in self.line_table:
            if offset > ip:
                break
            line = candidate
        return line

    def __repr__(self) -> str:
        return f"<CompiledFunction {self.name or '(anonymous)'}>"


@dataclass
class LoopContext:
    """Break/continue target; kind is "loop", "switch" or "label"."""
    kind: str = "loop"
    labels: Tuple[str, ...] = ()
    try_depth: int = 0
    break_jumps: List[int] = field(default_factory=list)
    continue_jumps: List[int] = field(default_factory=list)


@dataclass
class Declarations:
    """Names declared directly in a function or program body."""
    var_names: List[str] = field(default_factory=list)
    lexical_top: List[Tuple[str, str]] = field(default_factory=list)  # (name, kind)
    lexical_nested: List[str] = field(default_factory=list)
    catch_names: List[str] = field(default_factory=list)
    hoisted: List[FunctionDeclaration] = field(default_factory=list)

    def local_names(self) -> List[str]:
        names = list(self.var_names)
        names += [fn.id.name for fn in self.hoisted]
        names += [name for name, _ in self.lexical_top]
        names += self.lexical_nested + self.catch_names
        return list(dict.fromkeys(names))


class _FunctionState:
    """Per-function compilation state."""

    def __init__(self, parent: Optional["_FunctionState"], is_function: bool, strict: bool):
        self.parent = parent
        self.is_function = is_function
        self.strict = strict
        self.bytecode = bytearray()
        self.constants: List[Any] = []
        self.const_index: Dict[Tuple[str, str], int] = {}
        self.locals: List[str] = []
        self.cell_vars: List[str] = []
        self.free_vars: List[str] = []
        self.loop_stack: List[LoopContext] = []
        self.try_finalizers: List[Optional[BlockStatement]] = []
        self.line_table: List[Tuple[int, int]] = []
        self.hoisted: Set[int] = set()
        self.temp_count = 0


_BINARY_OPS = {
    "+": OpCode.ADD, "-": OpCode.SUB, "*": OpCode.MUL, "/": OpCode.DIV,
    "%": OpCode.MOD, "**": OpCode.POW,
    "&": OpCode.BAND, "|": OpCode.BOR, "^": OpCode.BXOR,
    "<<": OpCode.SHL, ">>": OpCode.SHR, ">>>": OpCode.USHR,
    "<": OpCode.LT, "<=": OpCode.LE, ">": OpCode.GT, ">=": OpCode.GE,
    "==": OpCode.EQ, "!=": OpCode.NE, "===": OpCode.SEQ, "!==": OpCode.SNE,
    "in": OpCode.IN, "instanceof": OpCode.INSTANCEOF,
}

_UNARY_OPS = {
    "-": OpCode.NEG,
    "+": OpCode.POS,
    "!": OpCode.NOT,
    "~": OpCode.BNOT,
    "typeof": OpCode.TYPEOF,
}

_LOAD_OPS = {
    "cell": OpCode.LOAD_CELL,
    "local": OpCode.LOAD_LOCAL,
    "closure": OpCode.LOAD_CLOSURE,
    "name": OpCode.LOAD_NAME,
}

_STORE_OPS = {
    "cell": OpCode.STORE_CELL,
    "local": OpCode.STORE_LOCAL,
    "closure": OpCode.STORE_CLOSURE,
    "name": OpCode.STORE_NAME,
}


class Compiler:
    """Compiles AST to bytecode."""

    def __init__(self, filename: str = "<input>"):
        self.filename = filename
        self.state: Optional[_FunctionState] = None
        self._line = 0
        self._free_cache: Dict[int, Set[str]] = {}

    def compile(self, node: Program) -> CompiledFunction:
        """Compile a program to bytecode."""
        if node.source_type == "module":
            return self._compile_module(node)
        return self._compile_script(node)

    # ---- Emission helpers ----

    def _error(self, message: str) -> JSSyntaxError:
        error = JSSyntaxError(message, self._line, 0)
        error.filename = self.filename
        return error

    def _emit(self, opcode: OpCode, arg: Optional[int] = None) -> int:
        """Emit an opcode, return its position."""
        code = self.state.bytecode
        pos = len(code)
        code.append(opcode)
        if opcode in OPERAND_KINDS:
            if arg is None or not 0 <= arg <= MAX_OPERAND:
                raise self._error("function too large to compile")
            code.append(arg & 0xFF)
            code.append(arg >> 8)
        return pos

    def _emit_jump(self, opcode: OpCode) -> int:
        """Emit a jump with a placeholder target, return position for patching."""
        return self._emit(opcode, 0)

    def _patch_jump(self, pos: int, target: Optional[int] = None) -> None:
        if target is None:
            target = len(self.state.bytecode)
        if target > MAX_OPERAND:
            raise self._error("function too large to compile")
        self.state.bytecode[pos + 1] = target & 0xFF
        self.state.bytecode[pos + 2] = target >> 8

    def _add_constant(self, value: Any) -> int:
        """Add a constant and return its index."""
        constants = self.state.constants
        if isinstance(value, CompiledFunction):
            constants.append(value)
            return len(constants) - 1
        # Keyed by type so 1, 1.0, true and 1n stay distinct.
        key = (type(value).__name__, repr(value))
        index = self.state.const_index.get(key)
        if index is None:
            index = len(constants)
            constants.append(value)
            self.state.const_index[key] = index
        return index

    def _add_name(self, name: str) -> int:
        return self._add_constant(name)

    def _new_temp(self) -> int:
        state = self.state
        state.temp_count += 1
        state.locals.append(f"%tmp{state.temp_count}")
        return len(state.locals) - 1

    def _mark_line(self, line: int) -> None:
        table = self.state.line_table
        offset = len(self.state.bytecode)
        if table and table[-1][0] == offset:
            table[-1] = (offset, line)
        elif not table or table[-1][1] != line:
            table.append((offset, line))

    def _push_state(self, is_function: bool, strict: bool) -> _FunctionState:
        self.state = _FunctionState(self.state, is_function, strict)
        return self.state

    def _pop_state(self, name: str, params: List[str], **flags: Any) -> CompiledFunction:
        state = self.state
        func = CompiledFunction(
            name=name,
            params=params,
            bytecode=bytes(state.bytecode),
            constants=state.constants,
            locals=state.locals,
            num_locals=len(state.locals),
            free_vars=state.free_vars,
            cell_vars=state.cell_vars,
            line_table=state.line_table,
            filename=self.filename,
            strict=state.strict,
            **flags,
        )
        self.state = state.parent
        return func

    # ---- Scope analysis ----

    def _scan_declarations(self, statements: List[Node]) -> Declarations:
        """Collect declarations of a body without entering nested functions."""
        decls = Declarations()

        def add(names: List[str], name: str) -> None:
            if name not in names:
                names.append(name)

        def visit(node: Optional[Node], top: bool) -> None:
            if node is None:
                return
            if isinstance(node, VariableDeclaration):
                for decl in node.declarations:
                    if node.kind == "var":
                        add(decls.var_names, decl.id.name)
                    elif top:
                        decls.lexical_top.append((decl.id.name, node.kind))
                    else:
                        add(decls.lexical_nested, decl.id.name)
            elif isinstance(node, FunctionDeclaration):
                if top:
                    decls.hoisted.append(node)
                else:
                    add(decls.var_names, node.id.name)
            elif isinstance(node, ExportNamedDeclaration):
                visit(node.declaration, top)
            elif isinstance(node, BlockStatement):
                for stmt in node.body:
                    visit(stmt, False)
            elif isinstance(node, IfStatement):
                visit(node.consequent, False)
                visit(node.alternate, False)
            elif isinstance(node, ForStatement):
                visit(node.init, False)
                visit(node.body, False)
            elif isinstance(node, (ForInStatement, ForOfStatement)):
                visit(node.left, False)
                visit(node.body, False)
            elif isinstance(node, (WhileStatement, DoWhileStatement, LabeledStatement)):
                visit(node.body, False)
            elif isinstance(node, TryStatement):
                visit(node.block, False)
                if node.handler is not None:
                    if node.handler.param is not None:
                        add(decls.catch_names, node.handler.param.name)
                    visit(node.handler.body, False)
                visit(node.finalizer, False)
            elif isinstance(node, SwitchStatement):
                for case in node.cases:
                    for stmt in case.consequent:
                        visit(stmt, False)

        for stmt in statements:
            visit(stmt, True)
        return decls

    def _collect_references(self, node: Any, direct: Set[str], nested: Set[str]) -> None:
        """Collect identifier references; names free in nested functions go to nested."""
        if isinstance(node, list):
            for item in node:
                self._collect_references(item, direct, nested)
            return
        if not isinstance(node, Node):
            return
        if isinstance(node, Identifier):
            direct.add(node.name)
        elif isinstance(node, FUNCTION_NODES):
            nested.update(self._free_names(node))
        elif isinstance(node, MemberExpression):
            self._collect_references(node.object, direct, nested)
            if node.computed:
                self._collect_references(node.property, direct, nested)
        elif isinstance(node, Property):
            if node.computed:
                self._collect_references(node.key, direct, nested)
            self._collect_references(node.value, direct, nested)
        elif isinstance(node, (BreakStatement, ContinueStatement, ImportDeclaration)):
            pass
        elif isinstance(node, LabeledStatement):
            self._collect_references(node.body, direct, nested)
        elif isinstance(node, ExportNamedDeclaration):
            self._collect_references(node.declaration, direct, nested)
            direct.update(local for local, _ in node.specifiers)
        else:
            for value in node.__dict__.values():
                if isinstance(value, (Node, list)):
                    self._collect_references(value, direct, nested)

    def _free_names(self, func: Node) -> Set[str]:
        """Names a function (or anything nested in it) uses but does not declare."""
        cached = self._free_cache.get(id(func))
        if cached is not None:
            return cached
        own = {p.name for p in func.params}
        if isinstance(func.body, BlockStatement):
            own.update(self._scan_declarations(func.body.body).local_names())
        if not isinstance(func, ArrowFunctionExpression):
            own.add("arguments")
        if isinstance(func, FunctionExpression) and func.id is not None:
            own.add(func.id.name)
        direct: Set[str] = set()
        nested: Set[str] = set()
        self._collect_references(func.body, direct, nested)
        free = (direct | nested) - own
        self._free_cache[id(func)] = free
        return free

    def _resolve(self, name: str) -> Tuple[str, int]:
        state = self.state
        if name in state.cell_vars:
            return "cell", state.cell_vars.index(name)
        if name in state.locals:
            return "local", state.locals.index(name)
        slot = self._resolve_free(state, name)
        if slot is not None:
            return "closure", slot
        return "name", self._add_name(name)

    def _resolve_free(self, state: _FunctionState, name: str) -> Optional[int]:
        """Find name in an enclosing function, threading it through every level."""
        if name in state.free_vars:
            return state.free_vars.index(name)
        parent = state.parent
        if parent is None:
            return None
        if name in parent.cell_vars or (
            name not in parent.locals and self._resolve_free(parent, name) is not None
        ):
            state.free_vars.append(name)
            return len(state.free_vars) - 1
        return None

    def _emit_load(self, name: str) -> None:
        kind, index = self._resolve(name)
        self._emit(_LOAD_OPS[kind], index)

    def _emit_store(self, name: str) -> None:
        """Store top of stack into a binding; the value stays on the stack."""
        kind, index = self._resolve(name)
        self._emit(_STORE_OPS[kind], index)

    def _setup_scope(self, statements: List[Node], local_names: List[str]) -> Set[str]:
        """Declare locals and cell variables for the current function state."""
        state = self.state
        for name in local_names:
            if name not in state.locals:
                state.locals.append(name)
        direct: Set[str] = set()
        nested: Set[str] = set()
        self._collect_references(statements, direct, nested)
        state.cell_vars = [name for name in state.locals if name in nested]
        return direct | nested

    # ---- Programs and functions ----

    def _compile_script(self, program: Program) -> CompiledFunction:
        self._push_state(is_function=False, strict=False)
        decls = self._scan_declarations(program.body)
        self._setup_scope(program.body, decls.lexical_nested + decls.catch_names)

        for name in decls.var_names + [fn.id.name for fn in decls.hoisted]:
            self._emit(OpCode.DECLARE_VAR, self._add_name(name))
        self._compile_hoisted(decls.hoisted)

        body = program.body
        for stmt in body[:-1]:
            self._compile_statement(stmt)
        if body:
            self._compile_statement_for_value(body[-1])
        else:
            self._emit(OpCode.LOAD_UNDEFINED)
        self._emit(OpCode.RETURN)

        return self._pop_state("", [], is_program=True)

    def _compile_module(self, program: Program) -> CompiledFunction:
        self._push_state(is_function=True, strict=True)
        decls = self._scan_declarations(program.body)

        imports: List[ImportDeclaration] = []
        exports: List[Tuple[str, str]] = []
        local_names = decls.local_names()
        for stmt in program.body:
            if isinstance(stmt, ImportDeclaration):
                imports.append(stmt)
                local_names += [local for _, local in stmt.specifiers]
                if stmt.namespace:
                    local_names.append(stmt.namespace)
            elif isinstance(stmt, ExportNamedDeclaration):
                exports.extend(self._export_names(stmt))
        self._setup_scope(program.body, local_names)

        for stmt in imports:
            self._line = getattr(stmt, "line", self._line)
            self._mark_line(self._line)
            self._emit(OpCode.IMPORT_MODULE, self._add_name(stmt.source))
            for imported, local in stmt.specifiers:
                self._emit(OpCode.DUP)
                self._emit(OpCode.LOAD_CONST, self._add_constant(imported))
                self._emit(OpCode.GET_PROP)
                self._emit_store(local)
                self._emit(OpCode.POP)
            if stmt.namespace:
                self._emit_store(stmt.namespace)
            self._emit(OpCode.POP)

        self._compile_hoisted(decls.hoisted)
        for stmt in program.body:
            self._compile_statement(stmt)

        self._emit(OpCode.NEW_OBJECT)
        for local, exported in exports:
            self._emit(OpCode.LOAD_CONST, self._add_constant(exported))
            self._emit_load(local)
            self._emit(OpCode.INIT_PROP)
        self._emit(OpCode.EXPORT_MODULE)
        self._emit(OpCode.RETURN_UNDEFINED)

        return self._pop_state("", [], is_program=True, is_module=True)

    def _export_names(self, node: ExportNamedDeclaration) -> List[Tuple[str, str]]:
        declaration = node.declaration
        if isinstance(declaration, VariableDeclaration):
            return [(d.id.name, d.id.name) for d in declaration.declarations]
        if isinstance(declaration, FunctionDeclaration):
            return [(declaration.id.name, declaration.id.name)]
        return list(node.specifiers)

    def _compile_hoisted(self, functions: List[FunctionDeclaration]) -> None:
        """Create hoisted function declarations before the body runs."""
        for node in functions:
            self.state.hoisted.add(id(node))
            line = getattr(node, "line", 0)
            if line:
                self._line = line
                self._mark_line(line)
            self._emit_closure(node, node.id.name)
            self._emit_store(node.id.name)
            self._emit(OpCode.POP)

    def _compile_function(self, node: Node, name: str) -> CompiledFunction:
        """Compile a function declaration, expression or arrow function."""
        is_arrow = isinstance(node, ArrowFunctionExpression)
        params = [p.name for p in node.params]
        body = node.body
        statements = body.body if isinstance(body, BlockStatement) else [body]

        saved_line = self._line
        state = self._push_state(is_function=True, strict=self.state.strict)
        decls = self._scan_declarations(statements) if isinstance(body, BlockStatement) else Declarations()

        local_names = params + decls.local_names()
        self_name = node.id.name if isinstance(node, FunctionExpression) and node.id else None
        if self_name and self_name not in local_names:
            local_names.append(self_name)
        direct: Set[str] = set()
        nested: Set[str] = set()
        self._collect_references(statements, direct, nested)
        uses_arguments = "arguments" in direct or "arguments" in nested
        if not is_arrow and uses_arguments and "arguments" not in local_names:
            local_names.append("arguments")
        self._setup_scope(statements, local_names)

        flags = {"is_arrow": is_arrow}
        if self_name and self_name not in params and self_name not in decls.local_names():
            flags["self_slot"] = state.locals.index(self_name)
        if not is_arrow and "arguments" in state.locals and "arguments" not in params:
            flags["arguments_slot"] = state.locals.index("arguments")

        self._compile_hoisted(decls.hoisted)
        if isinstance(body, BlockStatement):
            for stmt in statements:
                self._compile_statement(stmt)
            self._emit(OpCode.RETURN_UNDEFINED)
        else:
            self._compile_expression(body)
            self._emit(OpCode.RETURN)

        func = self._pop_state(name, params, **flags)
        self._line = saved_line
        return func

    def _emit_closure(self, node: Node, name: str) -> None:
        func = self._compile_function(node, name)
        self._emit(OpCode.MAKE_CLOSURE, self._add_constant(func))

    # ---- Statements ----

    def _compile_statement(self, node: Node, labels: Tuple[str, ...] = ()) -> None:
        """Compile a statement."""
        line = getattr(node, "line", 0)
        if line:
            self._line = line
            self._mark_line(line)

        if isinstance(node, ExpressionStatement):
            self._compile_expression(node.expression)
            self._emit(OpCode.POP)

        elif isinstance(node, BlockStatement):
            for stmt in node.body:
                self._compile_statement(stmt)

        elif isinstance(node, (EmptyStatement, ImportDeclaration)):
            pass

        elif isinstance(node, ExportNamedDeclaration):
            if node.declaration is not None:
                self._compile_statement(node.declaration)

        elif isinstance(node, VariableDeclaration):
            self._compile_variable_declaration(node)

        elif isinstance(node, IfStatement):
            self._compile_expression(node.test)
            jump_false = self._emit_jump(OpCode.JUMP_IF_FALSE)
            self._compile_statement(node.consequent)
            if node.alternate:
                jump_end = self._emit_jump(OpCode.JUMP)
                self._patch_jump(jump_false)
                self._compile_statement(node.alternate)
                self._patch_jump(jump_end)
            else:
                self._patch_jump(jump_false)

        elif isinstance(node, WhileStatement):
            loop_ctx = self._push_loop("loop", labels)
            loop_start = len(self.state.bytecode)
            self._compile_expression(node.test)
            jump_false = self._emit_jump(OpCode.JUMP_IF_FALSE)
            self._compile_statement(node.body)
            self._emit(OpCode.JUMP, loop_start)
            self._patch_jump(jump_false)
            self._pop_loop(loop_ctx, loop_start)

        elif isinstance(node, DoWhileStatement):
            loop_ctx = self._push_loop("loop", labels)
            loop_start = len(self.state.bytecode)
            self._compile_statement(node.body)
            continue_target = len(self.state.bytecode)
            self._compile_expression(node.test)
            self._emit(OpCode.JUMP_IF_TRUE, loop_start)
            self._pop_loop(loop_ctx, continue_target)

        elif isinstance(node, ForStatement):
            if isinstance(node.init, VariableDeclaration):
                self._compile_statement(node.init)
            elif node.init is not None:
                self._compile_expression(node.init)
                self._emit(OpCode.POP)

            loop_ctx = self._push_loop("loop", labels)
            loop_start = len(self.state.bytecode)
            jump_false = None
            if node.test is not None:
                self._compile_expression(node.test)
                jump_false = self._emit_jump(OpCode.JUMP_IF_FALSE)
            self._compile_statement(node.body)
            continue_target = len(self.state.bytecode)
            if node.update is not None:
                self._compile_expression(node.update)
                self._emit(OpCode.POP)
            self._emit(OpCode.JUMP, loop_start)
            if jump_false is not None:
                self._patch_jump(jump_false)
            self._pop_loop(loop_ctx, continue_target)

        elif isinstance(node, (ForInStatement, ForOfStatement)):
            self._compile_for_each(node, labels)

        elif isinstance(node, BreakStatement):
            label = node.label.name if node.label else None
            target = None
            for ctx in reversed(self.state.loop_stack):
                if (label is None and ctx.kind != "label") or (label is not None and label in ctx.labels):
                    target = ctx
                    break
            if target is None:
                raise self._error(f"undefined label '{label}'" if label else "break must be inside loop or switch")
            self._unwind_try(target.try_depth)
            target.break_jumps.append(self._emit_jump(OpCode.JUMP))

        elif isinstance(node, ContinueStatement):
            label = node.label.name if node.label else None
            target = None
            for ctx in reversed(self.state.loop_stack):
                if ctx.kind == "loop" and (label is None or label in ctx.labels):
                    target = ctx
                    break
            if target is None:
                raise self._error("continue must be inside loop")
            self._unwind_try(target.try_depth)
            target.continue_jumps.append(self._emit_jump(OpCode.JUMP))

        elif isinstance(node, ReturnStatement):
            if node.argument is None and not any(self.state.try_finalizers):
                self._emit(OpCode.RETURN_UNDEFINED)
                return
            if node.argument is not None:
                self._compile_expression(node.argument)
            else:
                self._emit(OpCode.LOAD_UNDEFINED)
            if any(self.state.try_finalizers):
                slot = self._new_temp()
                self._emit(OpCode.STORE_LOCAL, slot)
                self._emit(OpCode.POP)
                self._unwind_try(0)
                self._emit(OpCode.LOAD_LOCAL, slot)
            self._emit(OpCode.RETURN)

        elif isinstance(node, ThrowStatement):
            self._compile_expression(node.argument)
            self._emit(OpCode.THROW)

        elif isinstance(node, TryStatement):
            self._compile_try(node)

        elif isinstance(node, SwitchStatement):
            self._compile_switch(node, labels)

        elif isinstance(node, FunctionDeclaration):
            if id(node) not in self.state.hoisted:
                self._emit_closure(node, node.id.name)
                self._emit_store(node.id.name)
                self._emit(OpCode.POP)

        elif isinstance(node, LabeledStatement):
            labels = labels + (node.label.name,)
            body = node.body
            if isinstance(body, (WhileStatement, DoWhileStatement, ForStatement,
                                 ForInStatement, ForOfStatement, LabeledStatement)):
                self._compile_statement(body, labels)
            else:
                loop_ctx = self._push_loop("label", labels)
                self._compile_statement(body)
                self._pop_loop(loop_ctx, None)

        else:
            raise self._error(f"Cannot compile statement: {type(node).__name__}")

    def _compile_variable_declaration(self, node: VariableDeclaration) -> None:
        for decl in node.declarations:
            name = decl.id.name
            if decl.init is None:
                if node.kind == "var":
                    continue
                self._emit(OpCode.LOAD_UNDEFINED)
            else:
                self._compile_expression(decl.init, name)

            if node.kind != "var" and not self.state.is_function and name not in self.state.locals:
                op = OpCode.DEFINE_CONST if node.kind == "const" else OpCode.DEFINE_LET
                self._emit(op, self._add_name(name))
            else:
                self._emit_store(name)
                self._emit(OpCode.POP)

    def _push_loop(self, kind: str, labels: Tuple[str, ...]) -> LoopContext:
        ctx = LoopContext(kind, labels, len(self.state.try_finalizers))
        self.state.loop_stack.append(ctx)
        return ctx

    def _pop_loop(self, ctx: LoopContext, continue_target: Optional[int]) -> None:
        for pos in ctx.break_jumps:
            self._patch_jump(pos)
        for pos in ctx.continue_jumps:
            self._patch_jump(pos, continue_target)
        self.state.loop_stack.pop()

    def _unwind_try(self, depth: int) -> None:
        """Leave active try blocks down to depth, running their finally blocks."""
        state = self.state
        saved = list(state.try_finalizers)
        for index in range(len(saved) - 1, depth - 1, -1):
            self._emit(OpCode.TRY_END)
            finalizer = saved[index]
            if finalizer is not None:
                state.try_finalizers = saved[:index]
                self._compile_statement(finalizer)
        state.try_finalizers = saved

    def _compile_try(self, node: TryStatement, for_value: bool = False) -> None:
        state = self.state
        if node.finalizer is None:
            self._compile_try_catch(node, for_value)
            return

        handler = self._emit_jump(OpCode.TRY_START)
        state.try_finalizers.append(node.finalizer)
        self._compile_try_catch(node, for_value)
        state.try_finalizers.pop()
        self._emit(OpCode.TRY_END)
        if for_value:
            # The finally block runs but keeps the completion value of try/catch
            result = self._new_temp()
            self._emit(OpCode.STORE_LOCAL, result)
            self._emit(OpCode.POP)
            self._compile_statement(node.finalizer)
            self._emit(OpCode.LOAD_LOCAL, result)
        else:
            self._compile_statement(node.finalizer)
        jump_end = self._emit_jump(OpCode.JUMP)

        # Exception path: run the finally block, then rethrow
        self._patch_jump(handler)
        slot = self._new_temp()
        self._emit(OpCode.STORE_LOCAL, slot)
        self._emit(OpCode.POP)
        self._compile_statement(node.finalizer)
        self._emit(OpCode.LOAD_LOCAL, slot)
        self._emit(OpCode.THROW)
        self._patch_jump(jump_end)

    def _compile_try_catch(self, node: TryStatement, for_value: bool = False) -> None:
        compile_body = self._compile_statement_for_value if for_value else self._compile_statement
        if node.handler is None:
            compile_body(node.block)
            return
        state = self.state
        handler = self._emit_jump(OpCode.TRY_START)
        state.try_finalizers.append(None)
        compile_body(node.block)
        state.try_finalizers.pop()
        self._emit(OpCode.TRY_END)
        jump_end = self._emit_jump(OpCode.JUMP)

        self._patch_jump(handler)
        clause: CatchClause = node.handler
        if clause.param is not None:
            self._emit_store(clause.param.name)
        self._emit(OpCode.POP)
        compile_body(clause.body)
        self._patch_jump(jump_end)

    def _compile_switch(self, node: SwitchStatement, labels: Tuple[str, ...]) -> None:
        slot = self._new_temp()
        self._compile_expression(node.discriminant)
        self._emit(OpCode.STORE_LOCAL, slot)
        self._emit(OpCode.POP)

        case_jumps: List[Tuple[int, int]] = []
        default_index = None
        for i, case in enumerate(node.cases):
            if case.test is None:
                default_index = i
                continue
            self._emit(OpCode.LOAD_LOCAL, slot)
            self._compile_expression(case.test)
            self._emit(OpCode.SEQ)
            case_jumps.append((self._emit_jump(OpCode.JUMP_IF_TRUE), i))
        jump_default = self._emit_jump(OpCode.JUMP)

        loop_ctx = self._push_loop("switch", labels)
        positions = []
        for case in node.cases:
            positions.append(len(self.state.bytecode))
            for stmt in case.consequent:
                self._compile_statement(stmt)

        for pos, index in case_jumps:
            self._patch_jump(pos, positions[index])
        if default_index is not None:
            self._patch_jump(jump_default, positions[default_index])
        else:
            self._patch_jump(jump_default)
        self._pop_loop(loop_ctx, None)

    def _compile_for_each(self, node: Node, labels: Tuple[str, ...]) -> None:
        """for-in and for-of: the iterator lives in a temp slot."""
        slot = self._new_temp()
        self._compile_expression(node.right)
        self._emit(OpCode.FOR_IN_INIT if isinstance(node, ForInStatement) else OpCode.FOR_OF_INIT)
        self._emit(OpCode.STORE_LOCAL, slot)
        self._emit(OpCode.POP)

        loop_ctx = self._push_loop("loop", labels)
        loop_start = len(self.state.bytecode)
        self._emit(OpCode.LOAD_LOCAL, slot)
        self._emit(OpCode.ITER_NEXT)
        jump_done = self._emit_jump(OpCode.JUMP_IF_TRUE)

        left = node.left
        if isinstance(left, VariableDeclaration):
            left = left.declarations[0].id
        if isinstance(left, Identifier):
            self._emit_store(left.name)
            self._emit(OpCode.POP)
        elif isinstance(left, MemberExpression):
            # Stack: value, obj, key -> obj, key, value
            self._compile_expression(left.object)
            self._compile_member_key(left)
            self._emit(OpCode.ROT3)
            self._emit(OpCode.SET_PROP)
            self._emit(OpCode.POP)
        else:
            raise self._error("Invalid left-hand side in for loop")

        self._compile_statement(node.body)
        self._emit(OpCode.JUMP, loop_start)
        self._patch_jump(jump_done)
        self._emit(OpCode.POP)
        self._pop_loop(loop_ctx, loop_start)

    def _compile_statement_for_value(self, node: Node) -> None:
        """Compile a statement leaving its completion value on the stack."""
        if isinstance(node, ExpressionStatement):
            line = getattr(node, "line", 0)
            if line:
                self._line = line
                self._mark_line(line)
            self._compile_expression(node.expression)

        elif isinstance(node, BlockStatement):
            if not node.body:
                self._emit(OpCode.LOAD_UNDEFINED)
            else:
                for stmt in node.body[:-1]:
                    self._compile_statement(stmt)
                self._compile_statement_for_value(node.body[-1])

        elif isinstance(node, IfStatement):
            self._compile_expression(node.test)
            jump_false = self._emit_jump(OpCode.JUMP_IF_FALSE)
            self._compile_statement_for_value(node.consequent)
            jump_end = self._emit_jump(OpCode.JUMP)
            self._patch_jump(jump_false)
            if node.alternate:
                self._compile_statement_for_value(node.alternate)
            else:
                self._emit(OpCode.LOAD_UNDEFINED)
            self._patch_jump(jump_end)

        elif isinstance(node, TryStatement):
            self._compile_try(node, for_value=True)

        else:
            self._compile_statement(node)
            self._emit(OpCode.LOAD_UNDEFINED)

    # ---- Expressions ----

    def _compile_member_key(self, node: MemberExpression) -> None:
        if node.computed:
            self._compile_expression(node.property)
        else:
            self._emit(OpCode.LOAD_CONST, self._add_constant(node.property.name))

    def _compile_expression(self, node: Node, name_hint: str = "") -> None:
        """Compile an expression; name_hint names anonymous functions."""
        if isinstance(node, NumericLiteral):
            self._emit(OpCode.LOAD_CONST, self._add_constant(normalize_number(node.value)))

        elif isinstance(node, StringLiteral):
            self._emit(OpCode.LOAD_CONST, self._add_constant(node.value))

        elif isinstance(node, BigIntLiteral):
            self._emit(OpCode.LOAD_CONST, self._add_constant(check_bigint(node.value)))

        elif isinstance(node, DecimalLiteral):
            self._emit(OpCode.LOAD_CONST, self._add_constant(DECIMAL_CONTEXT.plus(node.value)))

        elif isinstance(node, TemplateLiteral):
            self._emit(OpCode.LOAD_CONST, self._add_constant(node.quasis[0]))
            for expr, text in zip(node.expressions, node.quasis[1:]):
                self._compile_expression(expr)
                self._emit(OpCode.ADD)
                if text:
                    self._emit(OpCode.LOAD_CONST, self._add_constant(text))
                    self._emit(OpCode.ADD)

        elif isinstance(node, BooleanLiteral):
            self._emit(OpCode.LOAD_TRUE if node.value else OpCode.LOAD_FALSE)

        elif isinstance(node, NullLiteral):
            self._emit(OpCode.LOAD_NULL)

        elif isinstance(node, Identifier):
            self._emit_load(node.name)

        elif isinstance(node, ThisExpression):
            self._emit(OpCode.THIS)

        elif isinstance(node, ArrayExpression):
            for elem in node.elements:
                self._compile_expression(elem)
            self._emit(OpCode.BUILD_ARRAY, len(node.elements))

        elif isinstance(node, ObjectExpression):
            self._emit(OpCode.NEW_OBJECT)
            for prop in node.properties:
                hint = ""
                if prop.computed:
                    self._compile_expression(prop.key)
                elif isinstance(prop.key, Identifier):
                    hint = prop.key.name
                    self._emit(OpCode.LOAD_CONST, self._add_constant(hint))
                else:
                    hint = str(prop.key.value)
                    self._compile_expression(prop.key)
                self._compile_expression(prop.value, hint)
                if prop.kind == "get":
                    self._emit(OpCode.INIT_GETTER)
                elif prop.kind == "set":
                    self._emit(OpCode.INIT_SETTER)
                else:
                    self._emit(OpCode.INIT_PROP)

        elif isinstance(node, UnaryExpression):
            self._compile_unary(node)

        elif isinstance(node, UpdateExpression):
            self._compile_update(node)

        elif isinstance(node, BinaryExpression):
            self._compile_expression(node.left)
            self._compile_expression(node.right)
            self._emit(_BINARY_OPS[node.operator])

        elif isinstance(node, LogicalExpression):
            self._compile_expression(node.left)
            self._emit(OpCode.DUP)
            jump = self._emit_jump(OpCode.JUMP_IF_FALSE if node.operator == "&&" else OpCode.JUMP_IF_TRUE)
            self._emit(OpCode.POP)
            self._compile_expression(node.right)
            self._patch_jump(jump)

        elif isinstance(node, ConditionalExpression):
            self._compile_expression(node.test)
            jump_false = self._emit_jump(OpCode.JUMP_IF_FALSE)
            self._compile_expression(node.consequent)
            jump_end = self._emit_jump(OpCode.JUMP)
            self._patch_jump(jump_false)
            self._compile_expression(node.alternate)
            self._patch_jump(jump_end)

        elif isinstance(node, AssignmentExpression):
            self._compile_assignment(node)

        elif isinstance(node, SequenceExpression):
            for i, expr in enumerate(node.expressions):
                self._compile_expression(expr)
                if i < len(node.expressions) - 1:
                    self._emit(OpCode.POP)

        elif isinstance(node, MemberExpression):
            self._compile_expression(node.object)
            self._compile_member_key(node)
            self._emit(OpCode.GET_PROP)

        elif isinstance(node, CallExpression):
            if isinstance(node.callee, MemberExpression):
                # Method call: obj.method(args) with obj as this
                self._compile_expression(node.callee.object)
                self._emit(OpCode.DUP)
                self._compile_member_key(node.callee)
                self._emit(OpCode.GET_PROP)
                for arg in node.arguments:
                    self._compile_expression(arg)
                self._emit(OpCode.CALL_METHOD, len(node.arguments))
            else:
                self._compile_expression(node.callee)
                for arg in node.arguments:
                    self._compile_expression(arg)
                self._emit(OpCode.CALL, len(node.arguments))

        elif isinstance(node, NewExpression):
            self._compile_expression(node.callee)
            for arg in node.arguments:
                self._compile_expression(arg)
            self._emit(OpCode.NEW, len(node.arguments))

        elif isinstance(node, FunctionExpression):
            self._emit_closure(node, node.id.name if node.id else name_hint)

        elif isinstance(node, ArrowFunctionExpression):
            self._emit_closure(node, name_hint)

        else:
            raise self._error(f"Cannot compile expression: {type(node).__name__}")

    def _compile_unary(self, node: UnaryExpression) -> None:
        op = node.operator
        if op == "typeof" and isinstance(node.argument, Identifier):
            kind, index = self._resolve(node.argument.name)
            if kind == "name":
                self._emit(OpCode.TYPEOF_NAME, index)
                return
        if op == "delete":
            if isinstance(node.argument, MemberExpression):
                self._compile_expression(node.argument.object)
                self._compile_member_key(node.argument)
                self._emit(OpCode.DELETE_PROP)
            else:
                self._emit(OpCode.LOAD_TRUE)
            return
        self._compile_expression(node.argument)
        if op == "void":
            self._emit(OpCode.POP)
            self._emit(OpCode.LOAD_UNDEFINED)
        else:
            self._emit(_UNARY_OPS[op])

    def _compile_update(self, node: UpdateExpression) -> None:
        """++x, x++, --x, x-- on bindings and properties."""
        inc_op = OpCode.INC if node.operator == "++" else OpCode.DEC
        target = node.argument
        if isinstance(target, Identifier):
            self._emit_load(target.name)
            if node.prefix:
                self._emit(inc_op)
                self._emit_store(target.name)
            else:
                self._emit(OpCode.TO_NUMERIC)
                self._emit(OpCode.DUP)
                self._emit(inc_op)
                self._emit_store(target.name)
                self._emit(OpCode.POP)
            return

        self._compile_expression(target.object)
        self._compile_member_key(target)
        self._emit(OpCode.DUP2)
        self._emit(OpCode.GET_PROP)
        if node.prefix:
            self._emit(inc_op)
            self._emit(OpCode.SET_PROP)
        else:
            slot = self._new_temp()
            self._emit(OpCode.TO_NUMERIC)
            self._emit(OpCode.STORE_LOCAL, slot)
            self._emit(inc_op)
            self._emit(OpCode.SET_PROP)
            self._emit(OpCode.POP)
            self._emit(OpCode.LOAD_LOCAL, slot)

    def _compile_assignment(self, node: AssignmentExpression) -> None:
        compound = node.operator != "="
        binary_op = _BINARY_OPS[node.operator[:-1]] if compound else None
        target = node.left
        if isinstance(target, Identifier):
            if compound:
                self._emit_load(target.name)
                self._compile_expression(node.right)
                self._emit(binary_op)
            else:
                self._compile_expression(node.right, target.name)
            self._emit_store(target.name)
            return

        self._compile_expression(target.object)
        self._compile_member_key(target)
        if compound:
            self._emit(OpCode.DUP2)
            self._emit(OpCode.GET_PROP)
            self._compile_expression(node.right)
            self._emit(binary_op)
        else:
            self._compile_expression(node.right)
        self._emit(OpCode.SET_PROP)


def compile_source(source: str, filename: str = "<input>", module: bool = False) -> CompiledFunction:
    """Parse and compile source text; syntax errors carry the filename."""
    try:
        program = Parser(source, module=module).parse()
        return Compiler(filename).compile(program)
    except JSSyntaxError as e:
        e.filename = filename
        raise
    except RecursionError:
        error = JSSyntaxError("too much recursion in source", 0, 0)
        error.filename = filename
        raise error
