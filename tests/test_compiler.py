"""
XScript Compiler Tests

Tests for the XScript compiler: lexer, parser, and code generator.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from compiler import compile_source, parse_source, Lexer, ASTPrinter, OpCode
from compiler.ast import BinaryExpr, ExpressionStmt
from compiler.tokens import TokenType
from compiler.errors import CompileError, SyntaxError


def opcodes(source: str):
    return [op for _, op, _ in compile_source(source).instructions()]


# =============================================================================
# Lexer Tests
# =============================================================================

class TestLexerBasics:
    """Basic lexer functionality tests."""

    def test_empty_source(self):
        tokens = Lexer("").tokenize()
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_whitespace_only(self):
        tokens = Lexer("   \t\n  ").tokenize()
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_token_positions(self):
        tokens = Lexer("a\n  b").tokenize()
        assert (tokens[0].line, tokens[0].column) == (1, 1)
        assert (tokens[1].line, tokens[1].column) == (2, 3)

    def test_unexpected_character_location(self):
        with pytest.raises(SyntaxError) as exc:
            Lexer("var x = @;").tokenize()
        assert exc.value.line == 1
        assert exc.value.column == 9


class TestLexerLiterals:
    """Number and string literal tests."""

    @pytest.mark.parametrize("text,expected", [
        ("42", 42.0),
        ("3.14", 3.14),
        ("1e10", 1e10),
        ("2.5e-3", 2.5e-3),
    ])
    def test_numbers(self, text, expected):
        tokens = Lexer(text).tokenize()
        assert tokens[0].type == TokenType.NUMBER
        assert tokens[0].value == expected

    def test_malformed_exponent(self):
        with pytest.raises(SyntaxError):
            Lexer("1e;").tokenize()

    def test_double_quote_string(self):
        tokens = Lexer('"hello"').tokenize()
        assert tokens[0].type == TokenType.STRING
        assert tokens[0].value == "hello"

    def test_single_quote_string(self):
        tokens = Lexer("'hello'").tokenize()
        assert tokens[0].value == "hello"

    def test_escape_sequences(self):
        tokens = Lexer(r'"hello\nworld\t\"!"').tokenize()
        assert tokens[0].value == 'hello\nworld\t"!'

    def test_unterminated_string(self):
        with pytest.raises(SyntaxError) as exc:
            Lexer('var s = "oops;\n').tokenize()
        assert "Unterminated string" in str(exc.value)


class TestLexerKeywordsAndOperators:

    @pytest.mark.parametrize("keyword,expected_type", [
        ("var", TokenType.VAR),
        ("func", TokenType.FUNC),
        ("if", TokenType.IF),
        ("else", TokenType.ELSE),
        ("for", TokenType.FOR),
        ("while", TokenType.WHILE),
        ("return", TokenType.RETURN),
        ("nil", TokenType.NIL),
        ("true", TokenType.TRUE),
        ("false", TokenType.FALSE),
        ("and", TokenType.AND),
        ("or", TokenType.OR),
        ("not", TokenType.NOT),
    ])
    def test_keywords(self, keyword, expected_type):
        assert Lexer(keyword).tokenize()[0].type == expected_type

    @pytest.mark.parametrize("op,expected_type", [
        ("+", TokenType.PLUS),
        ("-", TokenType.MINUS),
        ("*", TokenType.STAR),
        ("/", TokenType.SLASH),
        ("%", TokenType.PERCENT),
        ("^", TokenType.CARET),
        ("==", TokenType.EQ),
        ("!=", TokenType.NE),
        ("<=", TokenType.LE),
        (">=", TokenType.GE),
        ("=", TokenType.ASSIGN),
        ("+=", TokenType.PLUS_ASSIGN),
        ("/=", TokenType.SLASH_ASSIGN),
    ])
    def test_operators(self, op, expected_type):
        assert Lexer(op).tokenize()[0].type == expected_type


class TestLexerComments:

    def test_line_comment(self):
        tokens = Lexer("42 // this is a comment").tokenize()
        assert len(tokens) == 2  # NUMBER, EOF

    def test_nested_block_comment(self):
        tokens = Lexer("42 /* outer /* inner */ still */ 10").tokenize()
        assert [t.value for t in tokens[:2]] == [42.0, 10.0]

    def test_unterminated_block_comment(self):
        with pytest.raises(SyntaxError):
            Lexer("/* never closed").tokenize()


# =============================================================================
# Parser Tests
# =============================================================================

class TestParser:

    def expression(self, source: str):
        stmt = parse_source(source).statements[0]
        assert isinstance(stmt, ExpressionStmt)
        return stmt.expression

    def test_precedence(self):
        expr = self.expression("1 + 2 * 3;")
        assert expr.operator.type == TokenType.PLUS
        assert isinstance(expr.right, BinaryExpr)
        assert expr.right.operator.type == TokenType.STAR

    def test_left_associative(self):
        expr = self.expression("1 - 2 - 3;")
        assert isinstance(expr.left, BinaryExpr)

    def test_power_right_associative(self):
        expr = self.expression("2 ^ 3 ^ 2;")
        assert isinstance(expr.right, BinaryExpr)
        assert not isinstance(expr.left, BinaryExpr)

    def test_invalid_assignment_target(self):
        with pytest.raises(SyntaxError):
            parse_source("1 = 2;")

    def test_missing_semicolon_reports_line(self):
        with pytest.raises(SyntaxError) as exc:
            parse_source("var x = 1\nvar y = 2;")
        assert exc.value.line == 2

    def test_filename_in_message(self):
        with pytest.raises(SyntaxError) as exc:
            parse_source("var = 1;", "bad.xs")
        assert str(exc.value) == "bad.xs:1:5: Expected variable name"

    def test_ast_printer(self):
        dump = ASTPrinter().print(parse_source("var x = 1 + 2;"))
        assert dump.splitlines() == [
            "Program",
            "  VarDecl x",
            "    Binary +",
            "      Literal 1.0",
            "      Literal 2.0",
        ]


# =============================================================================
# Code Generator Tests
# =============================================================================

class TestCodegenExpressions:

    def test_arithmetic(self):
        assert opcodes("1 + 2;") == [OpCode.PUSH_NUM, OpCode.PUSH_NUM, OpCode.ADD,
                                     OpCode.POP, OpCode.HALT]

    @pytest.mark.parametrize("source,opcode", [
        ('"hello";', OpCode.PUSH_STR),
        ("true;", OpCode.PUSH_TRUE),
        ("false;", OpCode.PUSH_FALSE),
        ("nil;", OpCode.PUSH_NIL),
        ("-42;", OpCode.NEG),
        ("!x;", OpCode.NOT),
        ("1 == 1;", OpCode.EQ),
        ("1 < 2;", OpCode.LT),
        ("x.y;", OpCode.GET_FIELD),
        ("x[1];", OpCode.GET_TABLE),
        ("f(1, 2);", OpCode.CALL),
    ])
    def test_expression_opcodes(self, source, opcode):
        assert opcode in opcodes(source)

    def test_short_circuit_and(self):
        ops = opcodes("a and b;")
        assert ops[:3] == [OpCode.GET_GLOBAL, OpCode.JMP_IF_NOT, OpCode.POP]

    def test_table_literal(self):
        assert opcodes("var t = {x: 10, 20};") == [
            OpCode.NEW_TABLE,
            OpCode.DUP, OpCode.PUSH_STR, OpCode.PUSH_NUM, OpCode.SET_TABLE, OpCode.POP,
            OpCode.DUP, OpCode.PUSH_NUM, OpCode.PUSH_NUM, OpCode.SET_TABLE, OpCode.POP,
            OpCode.SET_GLOBAL,
            OpCode.HALT,
        ]

    def test_field_assignment(self):
        assert opcodes("p.x = 1;") == [OpCode.GET_GLOBAL, OpCode.PUSH_NUM,
                                       OpCode.SET_FIELD, OpCode.POP, OpCode.HALT]


class TestCodegenStatements:

    def test_global_var(self):
        bytecode = compile_source("var x = 10;")
        assert bytecode.globals == {"x": 0}
        assert [op for _, op, _ in bytecode.instructions()] == [
            OpCode.PUSH_NUM, OpCode.SET_GLOBAL, OpCode.HALT]

    def test_block_locals_are_popped(self):
        assert opcodes("{ var x = 1; x; }") == [
            OpCode.PUSH_NUM, OpCode.GET_LOCAL, OpCode.POP, OpCode.POP, OpCode.HALT]

    def test_for_loop(self):
        assert opcodes("for (var i = 0; i < 3; i += 1) { }") == [
            OpCode.PUSH_NUM,
            OpCode.GET_LOCAL, OpCode.PUSH_NUM, OpCode.LT, OpCode.JMP_IF_NOT, OpCode.POP,
            OpCode.GET_LOCAL, OpCode.PUSH_NUM, OpCode.ADD, OpCode.DUP, OpCode.SET_LOCAL,
            OpCode.POP,
            OpCode.LOOP,
            OpCode.POP,
            OpCode.POP,
            OpCode.HALT,
        ]

    def test_while_with_break(self):
        ops = opcodes("while (true) { break; }")
        assert OpCode.LOOP in ops
        assert ops.count(OpCode.JMP) == 1

    def test_if_else(self):
        ops = opcodes("if (x) { 1; } else { 2; }")
        assert ops.count(OpCode.JMP_IF_NOT) == 1
        assert ops.count(OpCode.JMP) == 1

    def test_line_numbers(self):
        bytecode = compile_source("var a = 1;\nvar b = 2;")
        assert bytecode.line_numbers == [1, 1, 2, 2, 2]

    def test_break_outside_loop(self):
        with pytest.raises(CompileError):
            compile_source("break;")

    def test_continue_outside_loop(self):
        with pytest.raises(CompileError):
            compile_source("continue;")

    def test_compile_error_carries_filename(self):
        with pytest.raises(CompileError) as exc:
            compile_source("\nbreak;", "loop.xs")
        assert str(exc.value).startswith("loop.xs:2:")


class TestCodegenFunctions:

    def test_function_declaration(self):
        bytecode = compile_source("func add(a, b) {\n  return a + b;\n}")
        func = bytecode.functions[0]
        assert (func.name, func.arity, func.local_count) == ("add", 2, 2)
        assert func.source_line == 1
        assert bytecode.globals == {"add": 0}

    def test_body_is_jumped_over(self):
        bytecode = compile_source("func f() { return 1; }")
        offset, op, operands = next(bytecode.instructions())
        func = bytecode.functions[0]
        assert op == OpCode.JMP
        assert func.code_offset == offset + 3
        assert operands[0] == func.code_length

    def test_closure_captures_upvalue(self):
        source = '''
        func outer() {
            var x = 1;
            func inner() { return x; }
            return inner;
        }
        '''
        bytecode = compile_source(source)
        inner, outer = bytecode.functions
        assert inner.name == "inner"
        assert inner.upvalue_count == 1
        assert outer.upvalue_count == 0
        assert OpCode.GET_UPVALUE in [op for _, op, _ in bytecode.instructions()]

    def test_anonymous_function(self):
        bytecode = compile_source("var f = func(x) { return x; };")
        assert bytecode.functions[0].name == "<anon_0>"
        assert OpCode.PUSH_FUNC in [op for _, op, _ in bytecode.instructions()]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
