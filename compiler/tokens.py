"""
XScript Token Definitions
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Dict


class TokenType(Enum):
    """Token kinds produced by the lexer."""

    # Literals
    NUMBER = auto()
    STRING = auto()
    IDENTIFIER = auto()

    # Keywords
    VAR = auto()
    FUNC = auto()
    IF = auto()
    ELSE = auto()
    WHILE = auto()
    FOR = auto()
    BREAK = auto()
    CONTINUE = auto()
    RETURN = auto()
    NIL = auto()
    TRUE = auto()
    FALSE = auto()
    AND = auto()
    OR = auto()
    NOT = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    STAR = auto()
    SLASH = auto()
    PERCENT = auto()
    CARET = auto()
    EQ = auto()
    NE = auto()
    LT = auto()
    LE = auto()
    GT = auto()
    GE = auto()
    ASSIGN = auto()
    PLUS_ASSIGN = auto()
    MINUS_ASSIGN = auto()
    STAR_ASSIGN = auto()
    SLASH_ASSIGN = auto()

    # Delimiters
    LPAREN = auto()
    RPAREN = auto()
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    COMMA = auto()
    DOT = auto()
    COLON = auto()
    SEMICOLON = auto()

    EOF = auto()


KEYWORDS: Dict[str, TokenType] = {
    'var': TokenType.VAR,
    'func': TokenType.FUNC,
    'if': TokenType.IF,
    'else': TokenType.ELSE,
    'while': TokenType.WHILE,
    'for': TokenType.FOR,
    'break': TokenType.BREAK,
    'continue': TokenType.CONTINUE,
    'return': TokenType.RETURN,
    'nil': TokenType.NIL,
    'true': TokenType.TRUE,
    'false': TokenType.FALSE,
    'and': TokenType.AND,
    'or': TokenType.OR,
    'not': TokenType.NOT,
}

# Single-character punctuation
SINGLE_CHAR_TOKENS: Dict[str, TokenType] = {
    '(': TokenType.LPAREN,
    ')': TokenType.RPAREN,
    '{': TokenType.LBRACE,
    '}': TokenType.RBRACE,
    '[': TokenType.LBRACKET,
    ']': TokenType.RBRACKET,
    ',': TokenType.COMMA,
    '.': TokenType.DOT,
    ':': TokenType.COLON,
    ';': TokenType.SEMICOLON,
    '^': TokenType.CARET,
    '%': TokenType.PERCENT,
}

# Operators that change meaning when followed by '='
EQUALS_PAIRS = {
    '+': (TokenType.PLUS, TokenType.PLUS_ASSIGN),
    '-': (TokenType.MINUS, TokenType.MINUS_ASSIGN),
    '*': (TokenType.STAR, TokenType.STAR_ASSIGN),
    '/': (TokenType.SLASH, TokenType.SLASH_ASSIGN),
    '=': (TokenType.ASSIGN, TokenType.EQ),
    '!': (TokenType.NOT, TokenType.NE),
    '<': (TokenType.LT, TokenType.LE),
    '>': (TokenType.GT, TokenType.GE),
}

ASSIGNMENT_OPS = (
    TokenType.ASSIGN, TokenType.PLUS_ASSIGN, TokenType.MINUS_ASSIGN,
    TokenType.STAR_ASSIGN, TokenType.SLASH_ASSIGN,
)


@dataclass
class Token:
    """A single token from the source code."""

    type: TokenType
    lexeme: str
    value: Any
    line: int
    column: int

    def __repr__(self) -> str:
        if self.value is not None:
            return f"Token({self.type.name}, {self.lexeme!r}, {self.value!r}, line={self.line})"
        return f"Token({self.type.name}, {self.lexeme!r}, line={self.line})"


# Binary operator precedence (higher = binds tighter)
PRECEDENCE = {
    TokenType.OR: 1,
    TokenType.AND: 2,
    TokenType.EQ: 3,
    TokenType.NE: 3,
    TokenType.LT: 4,
    TokenType.LE: 4,
    TokenType.GT: 4,
    TokenType.GE: 4,
    TokenType.PLUS: 5,
    TokenType.MINUS: 5,
    TokenType.STAR: 6,
    TokenType.SLASH: 6,
    TokenType.PERCENT: 6,
    TokenType.CARET: 7,  # Right-associative
}

RIGHT_ASSOCIATIVE = {TokenType.CARET}


def get_precedence(token_type: TokenType) -> int:
    """Get the precedence of a binary operator, 0 if not an operator."""
    return PRECEDENCE.get(token_type, 0)
