"""
XScript Compiler Errors

Exception classes raised by the compiler and the bytecode dumpers.
"""

from typing import Optional


class XScriptError(Exception):
    """Base exception for all XScript errors."""

    def __init__(self, message: str, line: Optional[int] = None,
                 column: Optional[int] = None, filename: Optional[str] = None):
        self.message = message
        self.line = line
        self.column = column
        self.filename = filename
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message as file:line:column: message."""
        location = []

        if self.filename:
            location.append(self.filename)

        if self.line is not None:
            location.append(str(self.line) if location else f"line {self.line}")
            if self.column is not None:
                location.append(str(self.column))

        if location:
            return f"{':'.join(location)}: {self.message}"
        return self.message

    def with_filename(self, filename: str) -> 'XScriptError':
        """Return a copy of this error reported against filename."""
        return type(self)(self.message, self.line, self.column, filename)


class SyntaxError(XScriptError):
    """Raised for syntax errors during lexing or parsing."""
    pass


class CompileError(XScriptError):
    """Raised for semantic errors during code generation."""
    pass


class DumpError(XScriptError):
    """Raised when a compiled unit cannot be serialized."""
    pass


class InvalidSymbolError(DumpError):
    """Raised when a C initializer name is not a valid C identifier."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(f"Invalid C language symbol name: {symbol!r}")

    def with_filename(self, filename: str) -> 'InvalidSymbolError':
        return self
