"""
XScript Lexer

Turns source text into a list of tokens.
"""

from typing import List
from .tokens import (Token, TokenType, KEYWORDS, SINGLE_CHAR_TOKENS,
                     EQUALS_PAIRS)
from .errors import SyntaxError

ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '0': '\0', '\\': '\\'}


class Lexer:
    """Lexical analyzer for XScript source code."""

    def __init__(self, source: str):
        self.source = source
        self.tokens: List[Token] = []
        self.start = 0
        self.current = 0
        self.line = 1
        self.line_start = 0
        self.start_line = 1
        self.start_column = 1

    def tokenize(self) -> List[Token]:
        """Tokenize the whole source, ending with an EOF token."""
        while not self.is_at_end():
            self.start = self.current
            self.start_line = self.line
            self.start_column = self.current - self.line_start + 1
            self.scan_token()

        column = self.current - self.line_start + 1
        self.tokens.append(Token(TokenType.EOF, "", None, self.line, column))
        return self.tokens

    def scan_token(self) -> None:
        c = self.advance()

        if c in ' \t\r':
            return
        if c == '\n':
            self.newline()
            return

        if c == '/' and self.match('/'):
            while self.peek() != '\n' and not self.is_at_end():
                self.advance()
            return
        if c == '/' and self.match('*'):
            self.block_comment()
            return

        if c in SINGLE_CHAR_TOKENS:
            self.add_token(SINGLE_CHAR_TOKENS[c])
        elif c in EQUALS_PAIRS:
            plain, with_equals = EQUALS_PAIRS[c]
            self.add_token(with_equals if self.match('=') else plain)
        elif c in '"\'':
            self.string(c)
        elif c.isdigit():
            self.number()
        elif c.isalpha() or c == '_':
            self.identifier()
        else:
            raise SyntaxError(f"Unexpected character: {c!r}",
                              self.start_line, self.start_column)

    # -------------------------------------------------------------------------
    # Character helpers
    # -------------------------------------------------------------------------

    def advance(self) -> str:
        c = self.source[self.current]
        self.current += 1
        return c

    def peek(self) -> str:
        if self.is_at_end():
            return '\0'
        return self.source[self.current]

    def peek_next(self) -> str:
        if self.current + 1 >= len(self.source):
            return '\0'
        return self.source[self.current + 1]

    def match(self, expected: str) -> bool:
        if self.peek() != expected or self.is_at_end():
            return False
        self.current += 1
        return True

    def is_at_end(self) -> bool:
        return self.current >= len(self.source)

    def newline(self) -> None:
        self.line += 1
        self.line_start = self.current

    def add_token(self, type: TokenType, value=None) -> None:
        lexeme = self.source[self.start:self.current]
        self.tokens.append(Token(type, lexeme, value,
                                 self.start_line, self.start_column))

    # -------------------------------------------------------------------------
    # Literals
    # -------------------------------------------------------------------------

    def string(self, quote: str) -> None:
        """Scan a quoted string literal with backslash escapes."""
        chars = []

        while self.peek() != quote and not self.is_at_end():
            c = self.advance()
            if c == '\n':
                self.newline()
            if c == '\\' and not self.is_at_end():
                escaped = self.advance()
                chars.append(quote if escaped == quote else ESCAPES.get(escaped, escaped))
            else:
                chars.append(c)

        if self.is_at_end():
            raise SyntaxError("Unterminated string", self.start_line, self.start_column)

        self.advance()  # closing quote
        self.add_token(TokenType.STRING, ''.join(chars))

    def number(self) -> None:
        """Scan a decimal number literal with optional fraction and exponent."""
        while self.peek().isdigit():
            self.advance()

        if self.peek() == '.' and self.peek_next().isdigit():
            self.advance()
            while self.peek().isdigit():
                self.advance()

        if self.peek() in 'eE' and not self.is_at_end():
            self.advance()
            if self.peek() in '+-':
                self.advance()
            if not self.peek().isdigit():
                raise SyntaxError("Malformed number exponent",
                                  self.start_line, self.start_column)
            while self.peek().isdigit():
                self.advance()

        self.add_token(TokenType.NUMBER, float(self.source[self.start:self.current]))

    def identifier(self) -> None:
        while self.peek().isalnum() or self.peek() == '_':
            self.advance()

        text = self.source[self.start:self.current]
        token_type = KEYWORDS.get(text, TokenType.IDENTIFIER)
        value = {TokenType.TRUE: True, TokenType.FALSE: False}.get(token_type)
        self.add_token(token_type, value)

    def block_comment(self) -> None:
        """Skip a (nestable) block comment."""
        depth = 1

        while depth > 0 and not self.is_at_end():
            c = self.advance()
            if c == '/' and self.peek() == '*':
                self.advance()
                depth += 1
            elif c == '*' and self.peek() == '/':
                self.advance()
                depth -= 1
            elif c == '\n':
                self.newline()

        if depth > 0:
            raise SyntaxError("Unterminated block comment",
                              self.start_line, self.start_column)
