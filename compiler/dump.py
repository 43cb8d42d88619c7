"""
XScript Bytecode Dumpers

Serializes a compiled unit either as a raw binary module or as C source
that embeds the module in a byte array plus an initializer function, for
static linking into a host program.
"""

import re
from typing import List

import numpy as np

from .bytecode import Bytecode
from .errors import DumpError, InvalidSymbolError

BYTES_PER_ROW = 16

# C hex literal for every byte value, indexed by the byte
HEX_LITERALS = np.array([f"0x{i:02x}" for i in range(256)])

C_KEYWORDS = frozenset("""
    auto break case char const continue default do double else enum extern
    float for goto if inline int long register restrict return short signed
    sizeof static struct switch typedef union unsigned void volatile while
    _Alignas _Alignof _Atomic _Bool _Complex _Generic _Imaginary _Noreturn
    _Static_assert _Thread_local
""".split())

_IDENTIFIER = re.compile(r'[A-Za-z_][A-Za-z0-9_]*\Z')

C_TEMPLATE = """\
/* dumped in little endian order ({debug} debug info).
   generated by xsc {version}; regenerate instead of editing. */
#include <stddef.h>
#include <stdint.h>

struct xs_state;
void xs_load_bytecode(struct xs_state *xs, const uint8_t *bin, size_t size);

static const uint8_t
#if defined __GNUC__
__attribute__((aligned(4)))
#elif defined _MSC_VER
__declspec(align(4))
#endif
{name}_bytecode[] = {{
{rows}
}};
const size_t {name}_bytecode_size = sizeof({name}_bytecode);

void
{name}(struct xs_state *xs)
{{
  xs_load_bytecode(xs, {name}_bytecode, sizeof({name}_bytecode));
}}
"""


def is_valid_symbol(name: str) -> bool:
    """True if name can be used as a C identifier."""
    return bool(name) and _IDENTIFIER.match(name) is not None and name not in C_KEYWORDS


def format_byte_rows(data: bytes, per_row: int = BYTES_PER_ROW) -> List[str]:
    """Render bytes as comma-separated hex literals, per_row to a line."""
    cells = HEX_LITERALS[np.frombuffer(data, dtype=np.uint8)]
    return [','.join(cells[i:i + per_row]) + ','
            for i in range(0, len(cells), per_row)]


def dump_binary(ctx, unit: Bytecode, debug_info: bool = False) -> bytes:
    """Serialize unit as a binary module."""
    ctx.ensure_open()
    try:
        return unit.serialize(debug_info)
    except ValueError as e:
        raise DumpError(str(e)) from e


def dump_cfunc(ctx, unit: Bytecode, debug_info: bool, initname: str) -> bytes:
    """
    Serialize unit as C source with an initializer named initname.

    Raises:
        InvalidSymbolError: If initname is not a valid C identifier
    """
    if not is_valid_symbol(initname):
        raise InvalidSymbolError(initname)

    data = dump_binary(ctx, unit, debug_info)
    source = C_TEMPLATE.format(
        debug="with" if debug_info else "without",
        version=ctx.version,
        name=initname,
        rows="\n".join(format_byte_rows(data)),
    )
    return source.encode('ascii')
