"""
XScript Context

The engine handle for one process. Every compile and dump call goes through
an open Context, and the Context is closed exactly once when the process is
done with it:

    with Context() as ctx:
        unit = ctx.compile(source, CompileOptions(filename="hello.xs"))
        data = dump_binary(ctx, unit, debug_info=True)
"""

import logging
import sys
from dataclasses import dataclass
from typing import List, Optional, TextIO

from compiler import (ASTPrinter, Bytecode, CodeGenerator, CompileError, XScriptError,
                      parse_source)
from compiler import __version__ as COMPILER_VERSION

logger = logging.getLogger(__name__)

VERSION = COMPILER_VERSION
VERSION_BANNER = f"xscript {VERSION} - XScript bytecode compiler"
COPYRIGHT_BANNER = "xscript - Copyright (c) 2024-2026 XScript Team"


class ContextError(XScriptError):
    """Raised when a Context is misused (closed, unsupported option)."""
    pass


@dataclass(frozen=True)
class CompileOptions:
    """Per-compile settings."""
    filename: Optional[str] = None
    no_exec: bool = True        # compile only, never run the program
    dump_result: bool = False   # print parse tree and bytecode listing


class Context:
    """Process-wide engine state shared by the compiler and the dumpers."""

    def __init__(self, stdout: Optional[TextIO] = None):
        self._stdout = stdout
        self.units: List[Bytecode] = []
        self.closed = False

    @property
    def version(self) -> str:
        return VERSION

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    def __enter__(self) -> 'Context':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if not self.closed:
            logger.debug("closing context (%d unit(s))", len(self.units))
            self.units.clear()
            self.closed = True

    def ensure_open(self) -> None:
        if self.closed:
            raise ContextError("context is closed")

    # =========================================================================
    # Compilation
    # =========================================================================

    def compile(self, source: str, options: Optional[CompileOptions] = None) -> Bytecode:
        """
        Compile source into a bytecode unit registered with this context.

        Raises:
            SyntaxError: If the source cannot be parsed
            CompileError: If code generation fails or the program is nested too deeply
            ContextError: If the context is closed or execution was requested
        """
        self.ensure_open()
        options = options or CompileOptions()
        if not options.no_exec:
            raise ContextError("executing programs is not supported")

        try:
            program = parse_source(source, options.filename)
            if options.dump_result:
                print(ASTPrinter().print(program), file=self.stdout)
            unit = CodeGenerator().generate(program)
        except RecursionError:
            raise CompileError("program is nested too deeply", filename=options.filename) from None
        except XScriptError as e:
            if not options.filename:
                raise
            raise e.with_filename(options.filename) from None
        except ValueError as e:
            # operand or jump out of range for the instruction encoding
            raise CompileError(str(e), filename=options.filename) from e

        if options.dump_result:
            print(unit.disassemble(), file=self.stdout)

        self.units.append(unit)
        logger.debug("compiled %s: %d code bytes, %d function(s)",
                     options.filename or "<source>", len(unit.code), len(unit.functions))
        return unit

    def load(self, data: bytes) -> Bytecode:
        """Decode a binary module and register the unit."""
        self.ensure_open()
        unit = Bytecode.deserialize(data)
        self.units.append(unit)
        return unit

    # =========================================================================
    # Banners
    # =========================================================================

    def show_version(self, file: Optional[TextIO] = None) -> None:
        print(VERSION_BANNER, file=file or self.stdout)

    def show_copyright(self, file: Optional[TextIO] = None) -> None:
        print(COPYRIGHT_BANNER, file=file or self.stdout)
