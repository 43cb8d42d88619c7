"""
xsc argument resolution

Turns the command line into a RunConfig in two steps:

1. scan_args() folds over the switches left to right and records what it
   saw, including banners to print, without touching any file.
2. resolve() validates the scan, opens the program file and settles the
   output path.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Dict, List, Optional, Sequence

from .errors import CliError, FileError, UsageError

logger = logging.getLogger(__name__)

STDIO = "-"
BINARY_EXT = ".mrb"
C_EXT = ".c"

BANNER_VERSION = "version"
BANNER_COPYRIGHT = "copyright"


class OutputFormat(Enum):
    BINARY = BINARY_EXT
    C_SOURCE = C_EXT

    @property
    def extension(self) -> str:
        return self.value


@dataclass
class ScanResult:
    """What the switch scan found, in the order it found it."""
    input_path: Optional[str] = None
    output_path: Optional[str] = None
    symbol_name: Optional[str] = None
    check_syntax: bool = False
    verbose: bool = False
    debug_info: bool = False
    banners: List[str] = field(default_factory=list)
    ignored: List[str] = field(default_factory=list)
    finished: bool = False          # --version / --copyright: nothing else to do
    error: Optional[CliError] = None

    @property
    def output_format(self) -> OutputFormat:
        return OutputFormat.BINARY if self.symbol_name is None else OutputFormat.C_SOURCE


@dataclass(frozen=True)
class RunConfig:
    """Fully resolved settings for one compile. Closes its input on exit."""
    input_path: str
    input_stream: BinaryIO
    output_path: Optional[str]
    output_format: OutputFormat
    symbol_name: Optional[str]
    check_syntax: bool
    verbose: bool
    debug_info: bool

    @property
    def reads_stdin(self) -> bool:
        return self.input_path == STDIO

    @property
    def writes_stdout(self) -> bool:
        return self.output_path == STDIO

    def close(self) -> None:
        if not self.reads_stdin:
            self.input_stream.close()

    def __enter__(self) -> 'RunConfig':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# =============================================================================
# Switch scan
# =============================================================================

def _switch_output(scan: ScanResult, value: str) -> None:
    if scan.output_path is not None:
        raise UsageError(f"An output file is already specified. ({scan.output_path})")
    scan.output_path = value


def _switch_symbol(scan: ScanResult, value: str) -> None:
    if not value:
        raise UsageError("Function name is not specified.")
    scan.symbol_name = value


def _switch_check(scan: ScanResult, value: str) -> None:
    scan.check_syntax = True


def _switch_verbose(scan: ScanResult, value: str) -> None:
    if not scan.verbose:
        scan.banners.append(BANNER_VERSION)
    scan.verbose = True


def _switch_debug(scan: ScanResult, value: str) -> None:
    scan.debug_info = True


def _long_version(scan: ScanResult) -> None:
    scan.banners.append(BANNER_VERSION)
    scan.finished = True


def _long_verbose(scan: ScanResult) -> None:
    scan.verbose = True


def _long_copyright(scan: ScanResult) -> None:
    scan.banners.append(BANNER_COPYRIGHT)
    scan.finished = True


# Short switches take whatever follows the letter as their value ("-ofoo.mrb")
SHORT_SWITCHES: Dict[str, Callable[[ScanResult, str], None]] = {
    'o': _switch_output,
    'B': _switch_symbol,
    'c': _switch_check,
    'v': _switch_verbose,
    'g': _switch_debug,
}

LONG_SWITCHES: Dict[str, Callable[[ScanResult], None]] = {
    'version': _long_version,
    'verbose': _long_verbose,
    'copyright': _long_copyright,
}


def _apply_switch(scan: ScanResult, arg: str) -> None:
    if arg.startswith('--'):
        handler = LONG_SWITCHES.get(arg[2:])
        if handler is None:
            raise UsageError(f"unrecognized option '{arg}'")
        handler(scan)
        return

    handler = SHORT_SWITCHES.get(arg[1])
    if handler is None:
        logger.debug("ignoring unknown switch %r", arg)
        return
    handler(scan, arg[2:])


def scan_args(args: Sequence[str]) -> ScanResult:
    """
    Scan the arguments after the program name.

    Stops at a lone '-' (read the program from stdin), at --version or
    --copyright, and at the first bad switch, which is recorded in
    ScanResult.error. A lone '-' replaces any program file named before it;
    otherwise only the first program file counts and later ones are ignored.
    """
    scan = ScanResult()

    for arg in args:
        if arg == STDIO:
            scan.input_path = STDIO
            break

        if arg.startswith('-'):
            try:
                _apply_switch(scan, arg)
            except CliError as e:
                scan.error = e
                break
            if scan.finished:
                break
        elif scan.input_path is None:
            scan.input_path = arg
        else:
            logger.debug("ignoring extra program file %r", arg)
            scan.ignored.append(arg)

    return scan


# =============================================================================
# Resolution
# =============================================================================

def derive_output_path(input_path: str, output_format: OutputFormat) -> str:
    """Swap the file name's extension (from its last '.') for the format's."""
    dot = input_path.rfind('.')
    separator = max(input_path.rfind('/'), input_path.rfind(os.sep))
    stem = input_path[:dot] if dot > separator else input_path
    return stem + output_format.extension


def open_input(path: str) -> BinaryIO:
    if path == STDIO:
        return sys.stdin.buffer
    try:
        return open(path, 'rb')
    except OSError as e:
        logger.debug("open(%r) failed: %s", path, e)
        raise FileError(f"Cannot open program file. ({path})", path) from e


def resolve(scan: ScanResult) -> RunConfig:
    """
    Turn a finished scan into a RunConfig, opening the program file.

    Raises:
        UsageError: For a recorded switch error or a missing program file
        FileError: If the program file cannot be opened
    """
    if scan.error is not None:
        raise scan.error
    if scan.input_path is None:
        raise UsageError("No program file given.")

    output_path = None
    if not scan.check_syntax:
        if scan.output_path is not None:
            output_path = scan.output_path
        elif scan.input_path == STDIO:
            output_path = STDIO
        else:
            output_path = derive_output_path(scan.input_path, scan.output_format)

    config = RunConfig(
        input_path=scan.input_path,
        input_stream=open_input(scan.input_path),
        output_path=output_path,
        output_format=scan.output_format,
        symbol_name=scan.symbol_name,
        check_syntax=scan.check_syntax,
        verbose=scan.verbose,
        debug_info=scan.debug_info,
    )
    logger.debug("resolved %s", config)
    return config


def resolve_args(args: Sequence[str]) -> Optional[RunConfig]:
    """Scan and resolve; None when the scan ended in an informational exit."""
    scan = scan_args(args)
    if scan.finished and scan.error is None:
        return None
    return resolve(scan)
