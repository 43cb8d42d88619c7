"""
xsc - XScript bytecode compiler

Usage:
    xsc [switches] programfile
    python -m cli [switches] programfile
"""

import logging
import os
import sys
from typing import List, Optional, Sequence, TextIO

from api.context import Context

from .args import (BANNER_COPYRIGHT, BANNER_VERSION, RunConfig, ScanResult,
                   resolve, resolve_args, scan_args)
from .driver import Driver, State
from .errors import EXIT_SUCCESS, CliError

__all__ = [
    'main',
    'usage',
    'scan_args',
    'resolve',
    'resolve_args',
    'RunConfig',
    'ScanResult',
    'Driver',
    'State',
]

USAGE_SWITCHES = [
    "switches:",
    "-c           check syntax only",
    "-o<outfile>  place the output into <outfile>",
    "-v           print version number, then turn on verbose mode",
    "-g           produce debugging information",
    "-B<symbol>   binary <symbol> output in C language format",
    "--verbose    run at verbose mode",
    "--version    print the version",
    "--copyright  print the copyright",
]

LOGGERS = ("cli", "api", "compiler")
_log_handler: Optional[logging.Handler] = None


def usage(progname: str, file: Optional[TextIO] = None) -> None:
    file = file or sys.stderr
    print(f"Usage: {progname} [switches] programfile", file=file)
    for line in USAGE_SWITCHES:
        print(f"  {line}", file=file)


def configure_logging(verbose: bool) -> None:
    """Send this project's log records to stderr; DEBUG when verbose."""
    global _log_handler

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    for name in LOGGERS:
        logger = logging.getLogger(name)
        if _log_handler is not None:
            logger.removeHandler(_log_handler)
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    _log_handler = handler


def flush_banners(ctx: Context, banners: List[str]) -> None:
    for banner in banners:
        if banner == BANNER_VERSION:
            ctx.show_version()
        elif banner == BANNER_COPYRIGHT:
            ctx.show_copyright()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the compiler on argv (sys.argv by default); returns the exit code."""
    argv = list(sys.argv if argv is None else argv)
    progname = os.path.basename(argv[0]) if argv else "xsc"

    scan = scan_args(argv[1:])
    configure_logging(scan.verbose)

    with Context() as ctx:
        flush_banners(ctx, scan.banners)
        if scan.finished:
            return EXIT_SUCCESS

        try:
            config = resolve(scan)
        except CliError as e:
            print(f"{progname}: {e.message}", file=sys.stderr)
            usage(progname)
            return e.exit_code

        with config:
            return Driver(ctx, config, progname).run()
