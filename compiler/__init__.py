"""
XScript Compiler Package

Compiles XScript source code to bytecode units and serializes them as
binary modules or C source.
"""

from typing import Optional

from .tokens import Token, TokenType
from .lexer import Lexer
from .ast import Program, ASTPrinter
from .parser import Parser
from .bytecode import Bytecode, OpCode
from .codegen import CodeGenerator
from .errors import (XScriptError, CompileError, SyntaxError, DumpError,
                     InvalidSymbolError)

__version__ = "0.2.0"
__all__ = [
    "Token",
    "TokenType",
    "Lexer",
    "Parser",
    "Program",
    "ASTPrinter",
    "Bytecode",
    "OpCode",
    "CodeGenerator",
    "XScriptError",
    "CompileError",
    "SyntaxError",
    "DumpError",
    "InvalidSymbolError",
    "parse_source",
    "compile_source",
    "compile_file",
]


def parse_source(source: str, filename: Optional[str] = None) -> Program:
    """
    Parse XScript source code into an AST.

    Raises:
        SyntaxError: If the source is malformed; the error carries filename
    """
    try:
        tokens = Lexer(source).tokenize()
        return Parser(tokens).parse()
    except XScriptError as e:
        if not filename:
            raise
        raise e.with_filename(filename) from None


def compile_source(source: str, filename: Optional[str] = None) -> Bytecode:
    """
    Compile XScript source code to bytecode.

    Args:
        source: XScript source code string
        filename: Name used in error messages

    Returns:
        Bytecode unit

    Raises:
        SyntaxError: If parsing fails
        CompileError: If code generation fails
    """
    program = parse_source(source, filename)
    try:
        return CodeGenerator().generate(program)
    except XScriptError as e:
        if not filename:
            raise
        raise e.with_filename(filename) from None


def compile_file(filepath: str) -> Bytecode:
    """Compile an XScript source file to bytecode."""
    with open(filepath, 'r', encoding='utf-8') as f:
        source = f.read()
    return compile_source(source, filepath)
