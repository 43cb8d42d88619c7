"""
XScript Code Generator

Walks the AST and emits a single Bytecode unit. Function bodies are emitted
inline, behind a jump, and registered in the unit's function table.
"""

from typing import List, Optional, Tuple
from dataclasses import dataclass, field
from .tokens import TokenType
from .ast import *
from .bytecode import Bytecode, OpCode, Constant, FunctionInfo
from .errors import CompileError

MAX_LOCALS = 255
MAX_UPVALUES = 255
MAX_ARGS = 255


@dataclass
class Local:
    """A local variable slot."""
    name: str
    slot: int
    captured: bool = False


@dataclass
class Upvalue:
    """A variable captured from an enclosing function."""
    name: str
    index: int
    is_local: bool  # captures an enclosing local (True) or upvalue (False)


@dataclass
class LoopContext:
    """Jump bookkeeping for break/continue inside one loop."""
    slot_base: int
    continue_target: Optional[int] = None
    break_jumps: List[int] = field(default_factory=list)
    continue_jumps: List[int] = field(default_factory=list)


class Scope:
    """A lexical scope. Function scopes start a new slot frame."""

    def __init__(self, parent: Optional['Scope'] = None, is_function: bool = False):
        self.parent = parent
        self.is_function = is_function or parent is None
        self.locals: List[Local] = []
        self.upvalues: List[Upvalue] = []
        self.depth = parent.depth + 1 if parent else 0
        self.next_slot = 0 if self.is_function else parent.next_slot
        self.max_slots = self.next_slot

    def function_scope(self) -> 'Scope':
        scope = self
        while not scope.is_function:
            scope = scope.parent
        return scope

    def add_local(self, name: str, line: int = 0) -> int:
        slot = self.next_slot
        if slot >= MAX_LOCALS:
            raise CompileError("Too many local variables in function", line)
        self.locals.append(Local(name, slot))
        self.next_slot += 1
        fn = self.function_scope()
        fn.max_slots = max(fn.max_slots, self.next_slot)
        return slot

    def find_local(self, name: str) -> Optional[Local]:
        """Find a local in this function, innermost scope first."""
        scope = self
        while True:
            for local in reversed(scope.locals):
                if local.name == name:
                    return local
            if scope.is_function:
                return None
            scope = scope.parent

    def resolve_upvalue(self, name: str) -> Optional[int]:
        fn = self.function_scope()
        if fn.parent is None:
            return None

        local = fn.parent.find_local(name)
        if local is not None:
            local.captured = True
            return fn.add_upvalue(name, local.slot, True)

        index = fn.parent.resolve_upvalue(name)
        if index is not None:
            return fn.add_upvalue(name, index, False)
        return None

    def add_upvalue(self, name: str, index: int, is_local: bool) -> int:
        for i, uv in enumerate(self.upvalues):
            if uv.index == index and uv.is_local == is_local:
                return i
        if len(self.upvalues) >= MAX_UPVALUES:
            raise CompileError("Too many captured variables in function")
        self.upvalues.append(Upvalue(name, index, is_local))
        return len(self.upvalues) - 1


BINARY_OPS = {
    TokenType.PLUS: OpCode.ADD,
    TokenType.MINUS: OpCode.SUB,
    TokenType.STAR: OpCode.MUL,
    TokenType.SLASH: OpCode.DIV,
    TokenType.PERCENT: OpCode.MOD,
    TokenType.CARET: OpCode.POW,
    TokenType.EQ: OpCode.EQ,
    TokenType.NE: OpCode.NE,
    TokenType.LT: OpCode.LT,
    TokenType.LE: OpCode.LE,
    TokenType.GT: OpCode.GT,
    TokenType.GE: OpCode.GE,
}

COMPOUND_OPS = {
    TokenType.PLUS_ASSIGN: OpCode.ADD,
    TokenType.MINUS_ASSIGN: OpCode.SUB,
    TokenType.STAR_ASSIGN: OpCode.MUL,
    TokenType.SLASH_ASSIGN: OpCode.DIV,
}


class CodeGenerator:
    """Generates bytecode from a Program AST."""

    def __init__(self):
        self.bytecode = Bytecode()
        self.scope = Scope()
        self.loop_stack: List[LoopContext] = []
        self.line = 0

    def generate(self, program: Program) -> Bytecode:
        self.bytecode = Bytecode()
        self.scope = Scope()
        self.loop_stack = []
        program.accept(self)
        self.emit(OpCode.HALT)
        return self.bytecode

    def emit(self, opcode: OpCode, *operands: int) -> int:
        return self.bytecode.emit(opcode, *operands, line=self.line)

    # =========================================================================
    # Scopes and variables
    # =========================================================================

    def begin_scope(self, is_function: bool = False) -> None:
        self.scope = Scope(self.scope, is_function)

    def end_scope(self) -> None:
        """Leave a block scope, popping its locals off the stack."""
        for _ in range(self.scope.next_slot - self.scope.parent.next_slot):
            self.emit(OpCode.POP)
        self.scope = self.scope.parent

    def resolve_variable(self, name: str) -> Tuple[str, int]:
        """Resolve name to ('local', slot), ('upvalue', index) or ('global', index)."""
        local = self.scope.find_local(name)
        if local is not None:
            return ('local', local.slot)

        upvalue = self.scope.resolve_upvalue(name)
        if upvalue is not None:
            return ('upvalue', upvalue)

        return ('global', self.bytecode.add_global(name))

    def emit_get(self, name: str) -> None:
        kind, index = self.resolve_variable(name)
        op = {'local': OpCode.GET_LOCAL, 'upvalue': OpCode.GET_UPVALUE,
              'global': OpCode.GET_GLOBAL}[kind]
        self.emit(op, index)

    def emit_set(self, name: str) -> None:
        kind, index = self.resolve_variable(name)
        op = {'local': OpCode.SET_LOCAL, 'upvalue': OpCode.SET_UPVALUE,
              'global': OpCode.SET_GLOBAL}[kind]
        self.emit(op, index)

    def string_constant(self, value: str) -> int:
        return self.bytecode.add_constant(Constant.string(value))

    # =========================================================================
    # Expressions
    # =========================================================================

    def visit_literal(self, node: LiteralExpr) -> None:
        self.line = node.token.line
        value = node.value

        if value is None:
            self.emit(OpCode.PUSH_NIL)
        elif value is True:
            self.emit(OpCode.PUSH_TRUE)
        elif value is False:
            self.emit(OpCode.PUSH_FALSE)
        elif isinstance(value, float):
            self.emit(OpCode.PUSH_NUM, self.bytecode.add_constant(Constant.number(value)))
        elif isinstance(value, str):
            self.emit(OpCode.PUSH_STR, self.string_constant(value))
        else:
            raise CompileError(f"Unknown literal type: {type(value).__name__}", self.line)

    def visit_identifier(self, node: IdentifierExpr) -> None:
        self.line = node.token.line
        self.emit_get(node.name)

    def visit_unary(self, node: UnaryExpr) -> None:
        node.operand.accept(self)
        self.line = node.operator.line
        self.emit(OpCode.NEG if node.operator.type == TokenType.MINUS else OpCode.NOT)

    def visit_binary(self, node: BinaryExpr) -> None:
        op = node.operator.type

        if op in (TokenType.AND, TokenType.OR):
            node.left.accept(self)
            self.line = node.operator.line
            jump = self.bytecode.emit_jump(
                OpCode.JMP_IF_NOT if op == TokenType.AND else OpCode.JMP_IF, self.line)
            self.emit(OpCode.POP)
            node.right.accept(self)
            self.bytecode.patch_jump(jump)
            return

        node.left.accept(self)
        node.right.accept(self)
        self.line = node.operator.line
        if op not in BINARY_OPS:
            raise CompileError(f"Unknown binary operator: {node.operator.lexeme}", self.line)
        self.emit(BINARY_OPS[op])

    def visit_group(self, node: GroupExpr) -> None:
        node.expression.accept(self)

    def visit_call(self, node: CallExpr) -> None:
        if len(node.arguments) > MAX_ARGS:
            raise CompileError("Too many call arguments", node.paren.line)
        node.callee.accept(self)
        for arg in node.arguments:
            arg.accept(self)
        self.line = node.paren.line
        self.emit(OpCode.CALL, len(node.arguments))

    def visit_index(self, node: IndexExpr) -> None:
        node.object.accept(self)
        node.index.accept(self)
        self.line = node.bracket.line
        self.emit(OpCode.GET_TABLE)

    def visit_dot(self, node: DotExpr) -> None:
        node.object.accept(self)
        self.line = node.name.line
        self.emit(OpCode.GET_FIELD, self.string_constant(node.name.lexeme))

    def visit_assign(self, node: AssignExpr) -> None:
        """Assignments leave the assigned value on the stack."""
        target = node.target
        op = node.operator.type

        if isinstance(target, IndexExpr):
            target.object.accept(self)
            target.index.accept(self)
        elif isinstance(target, DotExpr):
            target.object.accept(self)

        if op in COMPOUND_OPS:
            target.accept(self)
            node.value.accept(self)
            self.line = node.operator.line
            self.emit(COMPOUND_OPS[op])
        else:
            node.value.accept(self)
            self.line = node.operator.line

        if isinstance(target, IdentifierExpr):
            self.emit(OpCode.DUP)
            self.emit_set(target.name)
        elif isinstance(target, IndexExpr):
            self.emit(OpCode.SET_TABLE)
        else:
            self.emit(OpCode.SET_FIELD, self.string_constant(target.name.lexeme))

    def visit_table(self, node: TableExpr) -> None:
        self.line = node.brace.line
        self.emit(OpCode.NEW_TABLE, min(max(8, len(node.entries) * 2), 255))

        array_index = 0
        for entry in node.entries:
            self.emit(OpCode.DUP)
            if entry.key is None:
                self.emit(OpCode.PUSH_NUM,
                          self.bytecode.add_constant(Constant.number(float(array_index))))
                array_index += 1
            else:
                entry.key.accept(self)
            entry.value.accept(self)
            self.emit(OpCode.SET_TABLE)
            self.emit(OpCode.POP)

    def visit_function_expr(self, node: FunctionExpr) -> None:
        self.line = node.token.line
        index = self.compile_function(f"<anon_{len(self.bytecode.functions)}>",
                                      node.params, node.body, node.token.line)
        self.emit(OpCode.PUSH_FUNC, index)

    def compile_function(self, name: str, params, body: BlockStmt, line: int) -> int:
        """Emit a function body behind a jump and register it; returns its index."""
        skip = self.bytecode.emit_jump(OpCode.JMP, line)
        start = self.bytecode.current_offset()

        enclosing_loops = self.loop_stack
        self.loop_stack = []
        self.begin_scope(is_function=True)
        for param in params:
            self.scope.add_local(param.lexeme, param.line)

        for stmt in body.statements:
            stmt.accept(self)
        self.emit(OpCode.PUSH_NIL)
        self.emit(OpCode.RETURN)

        fn = self.scope
        self.scope = fn.parent
        self.loop_stack = enclosing_loops

        info = FunctionInfo(
            name=name,
            arity=len(params),
            local_count=fn.max_slots,
            upvalue_count=len(fn.upvalues),
            code_offset=start,
            code_length=self.bytecode.current_offset() - start,
            source_line=line,
        )
        self.bytecode.functions.append(info)
        self.bytecode.patch_jump(skip)
        self.line = line
        return len(self.bytecode.functions) - 1

    # =========================================================================
    # Statements
    # =========================================================================

    def visit_program(self, node: Program) -> None:
        for stmt in node.statements:
            stmt.accept(self)

    def visit_expression_stmt(self, node: ExpressionStmt) -> None:
        node.expression.accept(self)
        self.emit(OpCode.POP)

    def visit_var_decl(self, node: VarDeclStmt) -> None:
        self.line = node.name.line
        if node.initializer:
            node.initializer.accept(self)
        else:
            self.emit(OpCode.PUSH_NIL)

        self.line = node.name.line
        if self.scope.depth > 0:
            # The value stays on the stack as the local's slot
            self.scope.add_local(node.name.lexeme, self.line)
        else:
            self.emit(OpCode.SET_GLOBAL, self.bytecode.add_global(node.name.lexeme))

    def visit_function_decl(self, node: FunctionDeclStmt) -> None:
        name = node.name.lexeme
        self.line = node.name.line

        if self.scope.depth > 0:
            # Reserve the slot first so the body can refer to itself
            self.emit(OpCode.PUSH_NIL)
            slot = self.scope.add_local(name, self.line)
            index = self.compile_function(name, node.params, node.body, node.name.line)
            self.emit(OpCode.PUSH_FUNC, index)
            self.emit(OpCode.SET_LOCAL, slot)
        else:
            index = self.compile_function(name, node.params, node.body, node.name.line)
            self.emit(OpCode.PUSH_FUNC, index)
            self.emit(OpCode.SET_GLOBAL, self.bytecode.add_global(name))

    def visit_block(self, node: BlockStmt) -> None:
        self.begin_scope()
        for stmt in node.statements:
            stmt.accept(self)
        self.end_scope()

    def visit_if(self, node: IfStmt) -> None:
        node.condition.accept(self)
        else_jump = self.bytecode.emit_jump(OpCode.JMP_IF_NOT, self.line)
        self.emit(OpCode.POP)
        node.then_branch.accept(self)

        end_jump = self.bytecode.emit_jump(OpCode.JMP, self.line)
        self.bytecode.patch_jump(else_jump)
        self.emit(OpCode.POP)
        if node.else_branch:
            node.else_branch.accept(self)
        self.bytecode.patch_jump(end_jump)

    def visit_while(self, node: WhileStmt) -> None:
        loop_start = self.bytecode.current_offset()
        loop = LoopContext(self.scope.next_slot, continue_target=loop_start)
        self.loop_stack.append(loop)

        node.condition.accept(self)
        exit_jump = self.bytecode.emit_jump(OpCode.JMP_IF_NOT, self.line)
        self.emit(OpCode.POP)
        node.body.accept(self)
        self.bytecode.emit_loop(loop_start, self.line)

        self.bytecode.patch_jump(exit_jump)
        self.emit(OpCode.POP)
        self.finish_loop(loop)

    def visit_for(self, node: ForStmt) -> None:
        self.begin_scope()
        if node.initializer:
            node.initializer.accept(self)

        loop_start = self.bytecode.current_offset()
        loop = LoopContext(self.scope.next_slot)
        self.loop_stack.append(loop)

        exit_jump = None
        if node.condition:
            node.condition.accept(self)
            exit_jump = self.bytecode.emit_jump(OpCode.JMP_IF_NOT, self.line)
            self.emit(OpCode.POP)

        node.body.accept(self)

        for jump in loop.continue_jumps:
            self.bytecode.patch_jump(jump)
        if node.increment:
            node.increment.accept(self)
            self.emit(OpCode.POP)
        self.bytecode.emit_loop(loop_start, self.line)

        if exit_jump is not None:
            self.bytecode.patch_jump(exit_jump)
            self.emit(OpCode.POP)
        self.finish_loop(loop)
        self.end_scope()

    def finish_loop(self, loop: LoopContext) -> None:
        for jump in loop.break_jumps:
            self.bytecode.patch_jump(jump)
        self.loop_stack.pop()

    def pop_loop_locals(self, loop: LoopContext) -> None:
        for _ in range(self.scope.next_slot - loop.slot_base):
            self.emit(OpCode.POP)

    def visit_break(self, node: BreakStmt) -> None:
        self.line = node.keyword.line
        if not self.loop_stack:
            raise CompileError("'break' outside of loop", self.line, node.keyword.column)
        loop = self.loop_stack[-1]
        self.pop_loop_locals(loop)
        loop.break_jumps.append(self.bytecode.emit_jump(OpCode.JMP, self.line))

    def visit_continue(self, node: ContinueStmt) -> None:
        self.line = node.keyword.line
        if not self.loop_stack:
            raise CompileError("'continue' outside of loop", self.line, node.keyword.column)
        loop = self.loop_stack[-1]
        self.pop_loop_locals(loop)
        if loop.continue_target is not None:
            self.bytecode.emit_loop(loop.continue_target, self.line)
        else:
            loop.continue_jumps.append(self.bytecode.emit_jump(OpCode.JMP, self.line))

    def visit_return(self, node: ReturnStmt) -> None:
        self.line = node.keyword.line
        if node.value is not None:
            node.value.accept(self)
        else:
            self.emit(OpCode.PUSH_NIL)
        self.line = node.keyword.line
        self.emit(OpCode.RETURN)
