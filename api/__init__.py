"""
XScript Python API

The engine context used to compile and load XScript bytecode units.
"""

from .context import Context, CompileOptions, ContextError, VERSION

__all__ = [
    'Context',
    'CompileOptions',
    'ContextError',
    'VERSION',
]
