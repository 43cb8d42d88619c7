"""
xsc compile driver

Runs one compile-and-emit cycle for a RunConfig:

    IDLE -> COMPILING -> SYNTAX_ONLY_DONE
                      -> EMITTING -> DONE

Any step may move to FAILED instead. A state is never entered twice.
"""

import logging
import os
import sys
from contextlib import ExitStack
from enum import Enum
from typing import BinaryIO, Optional, TextIO

from api.context import CompileOptions, Context
from compiler import Bytecode, CompileError, InvalidSymbolError, SyntaxError, XScriptError
from compiler.dump import dump_binary, dump_cfunc

from .args import STDIO, OutputFormat, RunConfig
from .errors import EXIT_FAILURE, EXIT_SUCCESS, CliError, FileError, SerializationError

logger = logging.getLogger(__name__)

SYNTAX_OK = "Syntax OK"


class State(Enum):
    IDLE = "idle"
    COMPILING = "compiling"
    SYNTAX_ONLY_DONE = "syntax-only-done"
    EMITTING = "emitting"
    DONE = "done"
    FAILED = "failed"


TRANSITIONS = {
    State.IDLE: {State.COMPILING, State.FAILED},
    State.COMPILING: {State.SYNTAX_ONLY_DONE, State.EMITTING, State.FAILED},
    State.EMITTING: {State.DONE, State.FAILED},
    State.SYNTAX_ONLY_DONE: set(),
    State.DONE: set(),
    State.FAILED: set(),
}


class StateError(RuntimeError):
    """Raised on a transition the driver does not allow."""
    pass


class Driver:
    """Compiles config.input_stream once and writes the requested artifact."""

    def __init__(self, ctx: Context, config: RunConfig, progname: str = "xsc",
                 stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None):
        self.ctx = ctx
        self.config = config
        self.progname = progname
        self._stdout = stdout
        self._stderr = stderr
        self.state = State.IDLE
        self.unit: Optional[Bytecode] = None
        self._created_output: Optional[str] = None

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    @property
    def stderr(self) -> TextIO:
        return self._stderr if self._stderr is not None else sys.stderr

    def _transition(self, state: State) -> None:
        if state not in TRANSITIONS[self.state]:
            raise StateError(f"cannot go from {self.state.value} to {state.value}")
        logger.debug("%s -> %s", self.state.value, state.value)
        self.state = state

    def run(self) -> int:
        """Run the cycle and return the process exit code."""
        try:
            with ExitStack() as stack:
                self._run(stack)
        except InvalidSymbolError as e:
            message = f"{e.symbol}: Invalid C language symbol name"
        except XScriptError as e:
            message = str(e)
        except CliError as e:
            message = f"{self.progname}: {e.message}"
        else:
            return EXIT_SUCCESS

        self._transition(State.FAILED)
        print(message, file=self.stderr)
        self._remove_partial_output()
        return EXIT_FAILURE

    def _run(self, stack: ExitStack) -> None:
        config = self.config
        output = None
        if not config.check_syntax:
            output = self._open_output(stack)

        self._transition(State.COMPILING)
        self.unit = self.ctx.compile(self._read_source(), CompileOptions(
            filename=config.input_path,
            no_exec=True,
            dump_result=config.verbose,
        ))
        if self.unit is None:
            raise CompileError("compiler produced no result", filename=config.input_path)

        if config.check_syntax:
            self._transition(State.SYNTAX_ONLY_DONE)
            print(SYNTAX_OK, file=self.stdout)
            return

        self._transition(State.EMITTING)
        if config.output_format is OutputFormat.C_SOURCE:
            data = dump_cfunc(self.ctx, self.unit, config.debug_info, config.symbol_name)
        else:
            data = dump_binary(self.ctx, self.unit, config.debug_info)

        if config.writes_stdout:
            # text already printed to stdout must come out ahead of the module
            self.stdout.flush()
        try:
            output.write(data)
            output.flush()
        except OSError as e:
            raise SerializationError(f"Cannot write output file. ({config.output_path}): {e}",
                                     config.output_path) from e
        logger.debug("wrote %d bytes to %s", len(data), config.output_path)
        self._transition(State.DONE)

    def _read_source(self) -> str:
        path = self.config.input_path
        try:
            raw = self.config.input_stream.read()
        except OSError as e:
            raise FileError(f"Cannot read program file. ({path})", path) from e
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise SyntaxError(f"source is not valid UTF-8 (byte {e.start})",
                              filename=path) from None

    def _open_output(self, stack: ExitStack) -> BinaryIO:
        path = self.config.output_path
        if path == STDIO:
            return getattr(self.stdout, 'buffer', self.stdout)
        try:
            output = open(path, 'wb')
        except OSError as e:
            logger.debug("open(%r, 'wb') failed: %s", path, e)
            raise FileError(f"Cannot open output file. ({path})", path) from e
        self._created_output = path
        return stack.enter_context(output)

    def _remove_partial_output(self) -> None:
        """Delete an output file left behind by a failed run."""
        if self._created_output is None:
            return
        try:
            os.remove(self._created_output)
            logger.debug("removed partial output %s", self._created_output)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("could not remove partial output %s: %s", self._created_output, e)
        self._created_output = None
