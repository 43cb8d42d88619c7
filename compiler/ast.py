"""
XScript Abstract Syntax Tree

AST node classes produced by the parser and consumed by the code generator.
Nodes dispatch to ``visitor.visit_<visit_name>(node)``.
"""

from dataclasses import dataclass, fields
from typing import Any, ClassVar, List, Optional
from .tokens import Token


class ASTNode:
    """Base class for all AST nodes."""

    visit_name: ClassVar[str] = 'node'

    def accept(self, visitor: Any) -> Any:
        return getattr(visitor, f"visit_{self.visit_name}")(self)

    def describe(self) -> str:
        """Short inline detail shown by ASTPrinter."""
        return ""


class Expression(ASTNode):
    pass


class Statement(ASTNode):
    pass


# =============================================================================
# Expressions
# =============================================================================

@dataclass
class LiteralExpr(Expression):
    """Number, string, bool or nil literal."""
    value: Any
    token: Token
    visit_name: ClassVar[str] = 'literal'

    def describe(self) -> str:
        return repr(self.value)


@dataclass
class IdentifierExpr(Expression):
    name: str
    token: Token
    visit_name: ClassVar[str] = 'identifier'

    def describe(self) -> str:
        return self.name


@dataclass
class UnaryExpr(Expression):
    operator: Token
    operand: Expression
    visit_name: ClassVar[str] = 'unary'

    def describe(self) -> str:
        return self.operator.lexeme


@dataclass
class BinaryExpr(Expression):
    """Binary operator, including the short-circuit 'and' / 'or'."""
    left: Expression
    operator: Token
    right: Expression
    visit_name: ClassVar[str] = 'binary'

    def describe(self) -> str:
        return self.operator.lexeme


@dataclass
class GroupExpr(Expression):
    expression: Expression
    visit_name: ClassVar[str] = 'group'


@dataclass
class CallExpr(Expression):
    callee: Expression
    arguments: List[Expression]
    paren: Token
    visit_name: ClassVar[str] = 'call'

    def describe(self) -> str:
        return f"argc={len(self.arguments)}"


@dataclass
class IndexExpr(Expression):
    object: Expression
    index: Expression
    bracket: Token
    visit_name: ClassVar[str] = 'index'


@dataclass
class DotExpr(Expression):
    object: Expression
    name: Token
    visit_name: ClassVar[str] = 'dot'

    def describe(self) -> str:
        return self.name.lexeme


@dataclass
class AssignExpr(Expression):
    target: Expression
    operator: Token
    value: Expression
    visit_name: ClassVar[str] = 'assign'

    def describe(self) -> str:
        return self.operator.lexeme


@dataclass
class TableEntry(ASTNode):
    key: Optional[Expression]  # None for array-style entries
    value: Expression
    visit_name: ClassVar[str] = 'table_entry'


@dataclass
class TableExpr(Expression):
    entries: List[TableEntry]
    brace: Token
    visit_name: ClassVar[str] = 'table'


@dataclass
class FunctionExpr(Expression):
    """Anonymous function."""
    params: List[Token]
    body: 'BlockStmt'
    token: Token
    visit_name: ClassVar[str] = 'function_expr'

    def describe(self) -> str:
        return f"({', '.join(p.lexeme for p in self.params)})"


# =============================================================================
# Statements
# =============================================================================

@dataclass
class ExpressionStmt(Statement):
    expression: Expression
    visit_name: ClassVar[str] = 'expression_stmt'


@dataclass
class VarDeclStmt(Statement):
    name: Token
    initializer: Optional[Expression]
    visit_name: ClassVar[str] = 'var_decl'

    def describe(self) -> str:
        return self.name.lexeme


@dataclass
class FunctionDeclStmt(Statement):
    name: Token
    params: List[Token]
    body: 'BlockStmt'
    visit_name: ClassVar[str] = 'function_decl'

    def describe(self) -> str:
        return f"{self.name.lexeme}({', '.join(p.lexeme for p in self.params)})"


@dataclass
class BlockStmt(Statement):
    statements: List[Statement]
    visit_name: ClassVar[str] = 'block'


@dataclass
class IfStmt(Statement):
    condition: Expression
    then_branch: Statement
    else_branch: Optional[Statement]
    visit_name: ClassVar[str] = 'if'


@dataclass
class WhileStmt(Statement):
    condition: Expression
    body: Statement
    visit_name: ClassVar[str] = 'while'


@dataclass
class ForStmt(Statement):
    initializer: Optional[Statement]
    condition: Optional[Expression]
    increment: Optional[Expression]
    body: Statement
    visit_name: ClassVar[str] = 'for'


@dataclass
class BreakStmt(Statement):
    keyword: Token
    visit_name: ClassVar[str] = 'break'


@dataclass
class ContinueStmt(Statement):
    keyword: Token
    visit_name: ClassVar[str] = 'continue'


@dataclass
class ReturnStmt(Statement):
    keyword: Token
    value: Optional[Expression]
    visit_name: ClassVar[str] = 'return'


@dataclass
class Program(ASTNode):
    statements: List[Statement]
    visit_name: ClassVar[str] = 'program'


# =============================================================================
# AST Printer (parse tree dump for verbose compiles)
# =============================================================================

class ASTPrinter:
    """Renders an AST as an indented tree, one node per line."""

    def __init__(self, indent: str = "  "):
        self.indent = indent

    def print(self, node: ASTNode) -> str:
        lines: List[str] = []
        self._dump(node, 0, lines)
        return "\n".join(lines)

    def _dump(self, node: ASTNode, depth: int, lines: List[str]) -> None:
        name = type(node).__name__
        for suffix in ("Expr", "Stmt"):
            if name.endswith(suffix):
                name = name[:-len(suffix)]
        detail = node.describe()
        lines.append(f"{self.indent * depth}{name}{' ' + detail if detail else ''}")

        for f in fields(node):
            value = getattr(node, f.name)
            children = value if isinstance(value, list) else [value]
            for child in children:
                if isinstance(child, ASTNode):
                    self._dump(child, depth + 1, lines)
