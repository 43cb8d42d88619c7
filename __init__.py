"""
xsc - XScript Bytecode Compiler

Compiles XScript programs to binary bytecode modules, or to C source that
embeds the module behind an initializer function.

Example:
    $ xsc hello.xs              # writes hello.mrb
    $ xsc -Binit_hello hello.xs # writes hello.c
    $ xsc -c hello.xs           # Syntax OK

From Python:
    from api.context import Context, CompileOptions
    from compiler.dump import dump_binary

    with Context() as ctx:
        unit = ctx.compile('var x = 10; return x + 20;')
        data = dump_binary(ctx, unit, debug_info=True)
"""

from api.context import Context, CompileOptions
from compiler import compile_source, compile_file, Bytecode
from compiler.dump import dump_binary, dump_cfunc
from cli import main

__version__ = "0.2.0"
__author__ = "XScript Team"

__all__ = [
    # Engine
    'Context',
    'CompileOptions',

    # Compiler
    'compile_source',
    'compile_file',
    'Bytecode',
    'dump_binary',
    'dump_cfunc',

    # Command line
    'main',
]


def version() -> str:
    """Get xsc version string."""
    return __version__
