"""
XScript Parser

Recursive descent for statements, precedence climbing for binary operators.
"""

from typing import List, Optional
from .tokens import (Token, TokenType, ASSIGNMENT_OPS, RIGHT_ASSOCIATIVE,
                     get_precedence)
from .ast import *
from .errors import SyntaxError


class Parser:
    """Builds a Program AST from a token list."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.current = 0

    def parse(self) -> Program:
        """Parse the token stream; raises SyntaxError on the first error."""
        statements = []
        while not self.is_at_end():
            statements.append(self.declaration())
        return Program(statements)

    # =========================================================================
    # Declarations
    # =========================================================================

    def declaration(self) -> Statement:
        if self.match(TokenType.VAR):
            return self.var_declaration()
        if self.check(TokenType.FUNC) and self.check_next(TokenType.IDENTIFIER):
            self.advance()
            return self.function_declaration()
        return self.statement()

    def var_declaration(self) -> VarDeclStmt:
        name = self.consume(TokenType.IDENTIFIER, "Expected variable name")

        initializer = None
        if self.match(TokenType.ASSIGN):
            initializer = self.expression()

        self.consume(TokenType.SEMICOLON, "Expected ';' after variable declaration")
        return VarDeclStmt(name, initializer)

    def function_declaration(self) -> FunctionDeclStmt:
        name = self.consume(TokenType.IDENTIFIER, "Expected function name")
        params, body = self.function_body()
        return FunctionDeclStmt(name, params, body)

    def function_body(self):
        """Parse '(params) { body }' shared by declarations and expressions."""
        self.consume(TokenType.LPAREN, "Expected '(' before parameters")
        params = []
        if not self.check(TokenType.RPAREN):
            params.append(self.consume(TokenType.IDENTIFIER, "Expected parameter name"))
            while self.match(TokenType.COMMA):
                params.append(self.consume(TokenType.IDENTIFIER, "Expected parameter name"))
        self.consume(TokenType.RPAREN, "Expected ')' after parameters")

        self.consume(TokenType.LBRACE, "Expected '{' before function body")
        return params, self.block()

    # =========================================================================
    # Statements
    # =========================================================================

    def statement(self) -> Statement:
        if self.match(TokenType.IF):
            return self.if_statement()
        if self.match(TokenType.WHILE):
            return self.while_statement()
        if self.match(TokenType.FOR):
            return self.for_statement()
        if self.match(TokenType.BREAK):
            keyword = self.previous()
            self.consume(TokenType.SEMICOLON, "Expected ';' after 'break'")
            return BreakStmt(keyword)
        if self.match(TokenType.CONTINUE):
            keyword = self.previous()
            self.consume(TokenType.SEMICOLON, "Expected ';' after 'continue'")
            return ContinueStmt(keyword)
        if self.match(TokenType.RETURN):
            return self.return_statement()
        if self.match(TokenType.LBRACE):
            return self.block()

        expr = self.expression()
        self.consume(TokenType.SEMICOLON, "Expected ';' after expression")
        return ExpressionStmt(expr)

    def condition(self, keyword: str) -> Expression:
        self.consume(TokenType.LPAREN, f"Expected '(' after '{keyword}'")
        expr = self.expression()
        self.consume(TokenType.RPAREN, f"Expected ')' after {keyword} condition")
        return expr

    def if_statement(self) -> IfStmt:
        condition = self.condition('if')
        then_branch = self.statement()
        else_branch = self.statement() if self.match(TokenType.ELSE) else None
        return IfStmt(condition, then_branch, else_branch)

    def while_statement(self) -> WhileStmt:
        condition = self.condition('while')
        return WhileStmt(condition, self.statement())

    def for_statement(self) -> ForStmt:
        self.consume(TokenType.LPAREN, "Expected '(' after 'for'")

        initializer = None
        if self.match(TokenType.VAR):
            initializer = self.var_declaration()
        elif not self.match(TokenType.SEMICOLON):
            initializer = ExpressionStmt(self.expression())
            self.consume(TokenType.SEMICOLON, "Expected ';' after for initializer")

        condition = None
        if not self.check(TokenType.SEMICOLON):
            condition = self.expression()
        self.consume(TokenType.SEMICOLON, "Expected ';' after for condition")

        increment = None
        if not self.check(TokenType.RPAREN):
            increment = self.expression()
        self.consume(TokenType.RPAREN, "Expected ')' after for clauses")

        return ForStmt(initializer, condition, increment, self.statement())

    def return_statement(self) -> ReturnStmt:
        keyword = self.previous()
        value = None
        if not self.check(TokenType.SEMICOLON):
            value = self.expression()
        self.consume(TokenType.SEMICOLON, "Expected ';' after return value")
        return ReturnStmt(keyword, value)

    def block(self) -> BlockStmt:
        statements = []
        while not self.check(TokenType.RBRACE) and not self.is_at_end():
            statements.append(self.declaration())
        self.consume(TokenType.RBRACE, "Expected '}' after block")
        return BlockStmt(statements)

    # =========================================================================
    # Expressions
    # =========================================================================

    def expression(self) -> Expression:
        return self.assignment()

    def assignment(self) -> Expression:
        expr = self.binary(1)

        if self.match(*ASSIGNMENT_OPS):
            operator = self.previous()
            value = self.assignment()
            if not isinstance(expr, (IdentifierExpr, IndexExpr, DotExpr)):
                raise SyntaxError("Invalid assignment target", operator.line, operator.column)
            return AssignExpr(expr, operator, value)

        return expr

    def binary(self, min_precedence: int) -> Expression:
        """Precedence climbing over the PRECEDENCE table."""
        left = self.unary()

        while True:
            operator = self.peek()
            precedence = get_precedence(operator.type)
            if precedence < min_precedence or precedence == 0:
                return left
            self.advance()
            next_min = precedence if operator.type in RIGHT_ASSOCIATIVE else precedence + 1
            right = self.binary(next_min)
            left = BinaryExpr(left, operator, right)

    def unary(self) -> Expression:
        if self.match(TokenType.MINUS, TokenType.NOT):
            operator = self.previous()
            return UnaryExpr(operator, self.unary())
        return self.call()

    def call(self) -> Expression:
        expr = self.primary()

        while True:
            if self.match(TokenType.LPAREN):
                paren = self.previous()
                arguments = []
                if not self.check(TokenType.RPAREN):
                    arguments.append(self.expression())
                    while self.match(TokenType.COMMA):
                        arguments.append(self.expression())
                self.consume(TokenType.RPAREN, "Expected ')' after arguments")
                expr = CallExpr(expr, arguments, paren)
            elif self.match(TokenType.DOT):
                name = self.consume(TokenType.IDENTIFIER, "Expected property name after '.'")
                expr = DotExpr(expr, name)
            elif self.match(TokenType.LBRACKET):
                bracket = self.previous()
                index = self.expression()
                self.consume(TokenType.RBRACKET, "Expected ']' after index")
                expr = IndexExpr(expr, index, bracket)
            else:
                return expr

    def primary(self) -> Expression:
        if self.match(TokenType.NIL, TokenType.TRUE, TokenType.FALSE,
                      TokenType.NUMBER, TokenType.STRING):
            token = self.previous()
            return LiteralExpr(token.value, token)

        if self.match(TokenType.IDENTIFIER):
            return IdentifierExpr(self.previous().lexeme, self.previous())

        if self.match(TokenType.LPAREN):
            expr = self.expression()
            self.consume(TokenType.RPAREN, "Expected ')' after expression")
            return GroupExpr(expr)

        if self.match(TokenType.LBRACE):
            return self.table_literal()

        if self.match(TokenType.FUNC):
            token = self.previous()
            params, body = self.function_body()
            return FunctionExpr(params, body, token)

        token = self.peek()
        found = "end of input" if token.type == TokenType.EOF else repr(token.lexeme)
        raise SyntaxError(f"Expected expression, got {found}", token.line, token.column)

    def table_literal(self) -> TableExpr:
        brace = self.previous()
        entries = []

        while not self.check(TokenType.RBRACE):
            entries.append(self.table_entry())
            if not self.match(TokenType.COMMA, TokenType.SEMICOLON):
                break

        self.consume(TokenType.RBRACE, "Expected '}' after table entries")
        return TableExpr(entries, brace)

    def table_entry(self) -> TableEntry:
        # [expr]: value
        if self.match(TokenType.LBRACKET):
            key = self.expression()
            self.consume(TokenType.RBRACKET, "Expected ']' after key")
            self.consume(TokenType.COLON, "Expected ':' after key")
            return TableEntry(key, self.expression())

        # name: value
        if self.check(TokenType.IDENTIFIER) and self.check_next(TokenType.COLON):
            name = self.advance()
            self.advance()
            return TableEntry(LiteralExpr(name.lexeme, name), self.expression())

        return TableEntry(None, self.expression())

    # =========================================================================
    # Helper Methods
    # =========================================================================

    def match(self, *types: TokenType) -> bool:
        for type in types:
            if self.check(type):
                self.advance()
                return True
        return False

    def check(self, type: TokenType) -> bool:
        if self.is_at_end():
            return False
        return self.peek().type == type

    def check_next(self, type: TokenType) -> bool:
        if self.current + 1 >= len(self.tokens):
            return False
        return self.tokens[self.current + 1].type == type

    def advance(self) -> Token:
        if not self.is_at_end():
            self.current += 1
        return self.previous()

    def is_at_end(self) -> bool:
        return self.peek().type == TokenType.EOF

    def peek(self) -> Token:
        return self.tokens[self.current]

    def previous(self) -> Token:
        return self.tokens[self.current - 1]

    def consume(self, type: TokenType, message: str) -> Token:
        if self.check(type):
            return self.advance()
        token = self.peek()
        raise SyntaxError(message, token.line, token.column)
