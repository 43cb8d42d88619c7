"""
XScript Bytecode Format

Instruction set, the compiled unit container and its binary module encoding.

Binary module layout (all integers little endian):

    magic 'XSC\\0' | u16 version | u16 flags
    | u32 constants offset | u32 code offset | u32 functions offset
    | u32 globals offset | u32 debug offset (0 when absent)

followed by the constant pool, function table, globals table, code and,
when FLAG_DEBUG_INFO is set, the debug section (function source lines and
one source line per instruction).
"""

from enum import IntEnum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Tuple
import struct


class OpCode(IntEnum):
    """XScript VM opcodes."""

    # Stack operations
    NOP = 0x00
    PUSH_NIL = 0x01
    PUSH_TRUE = 0x02
    PUSH_FALSE = 0x03
    PUSH_NUM = 0x04      # constant index (u16)
    PUSH_STR = 0x05      # constant index (u16)
    PUSH_FUNC = 0x06     # function index (u16)
    POP = 0x07
    DUP = 0x08

    # Variables
    GET_LOCAL = 0x10     # slot (u8)
    SET_LOCAL = 0x11     # slot (u8)
    GET_GLOBAL = 0x12    # global index (u16)
    SET_GLOBAL = 0x13    # global index (u16)
    GET_UPVALUE = 0x14   # upvalue index (u8)
    SET_UPVALUE = 0x15   # upvalue index (u8)

    # Arithmetic
    ADD = 0x20
    SUB = 0x21
    MUL = 0x22
    DIV = 0x23
    MOD = 0x24
    NEG = 0x25
    POW = 0x26

    # Comparison / logic
    EQ = 0x30
    NE = 0x31
    LT = 0x32
    LE = 0x33
    GT = 0x34
    GE = 0x35
    NOT = 0x36

    # Control flow
    JMP = 0x40           # forward offset (i16)
    JMP_IF = 0x41        # forward offset (i16), leaves condition on stack
    JMP_IF_NOT = 0x42    # forward offset (i16), leaves condition on stack
    LOOP = 0x43          # backward offset (u16)

    # Calls
    CALL = 0x50          # arg count (u8)
    RETURN = 0x51

    # Tables
    NEW_TABLE = 0x60     # initial capacity (u8)
    GET_TABLE = 0x61
    SET_TABLE = 0x62
    GET_FIELD = 0x63     # field name constant (u16)
    SET_FIELD = 0x64     # field name constant (u16)

    HALT = 0xFF


# struct format of each opcode's operands (opcodes not listed take none)
OPERAND_FORMATS: Dict[OpCode, str] = {
    OpCode.PUSH_NUM: 'H',
    OpCode.PUSH_STR: 'H',
    OpCode.PUSH_FUNC: 'H',
    OpCode.GET_LOCAL: 'B',
    OpCode.SET_LOCAL: 'B',
    OpCode.GET_GLOBAL: 'H',
    OpCode.SET_GLOBAL: 'H',
    OpCode.GET_UPVALUE: 'B',
    OpCode.SET_UPVALUE: 'B',
    OpCode.JMP: 'h',
    OpCode.JMP_IF: 'h',
    OpCode.JMP_IF_NOT: 'h',
    OpCode.LOOP: 'H',
    OpCode.CALL: 'B',
    OpCode.NEW_TABLE: 'B',
    OpCode.GET_FIELD: 'H',
    OpCode.SET_FIELD: 'H',
}

OPCODE_SIZES: Dict[OpCode, int] = {
    op: 1 + struct.calcsize('<' + OPERAND_FORMATS.get(op, '')) for op in OpCode
}


@dataclass
class Constant:
    """A constant value in the constant pool."""

    TYPE_NIL = 0
    TYPE_BOOL = 1
    TYPE_NUMBER = 2
    TYPE_STRING = 3

    type: int
    value: Any

    @classmethod
    def nil(cls) -> 'Constant':
        return cls(cls.TYPE_NIL, None)

    @classmethod
    def boolean(cls, value: bool) -> 'Constant':
        return cls(cls.TYPE_BOOL, value)

    @classmethod
    def number(cls, value: float) -> 'Constant':
        return cls(cls.TYPE_NUMBER, value)

    @classmethod
    def string(cls, value: str) -> 'Constant':
        return cls(cls.TYPE_STRING, value)


@dataclass
class FunctionInfo:
    """A compiled function's entry in the function table."""

    name: str
    arity: int
    local_count: int
    upvalue_count: int
    code_offset: int
    code_length: int

    # Debug info
    source_line: int = 0


class _Reader:
    """Sequential little-endian reader over a bytes buffer."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def read(self, fmt: str) -> Any:
        values = struct.unpack_from('<' + fmt, self.data, self.offset)
        self.offset += struct.calcsize('<' + fmt)
        return values[0] if len(values) == 1 else values

    def read_str(self) -> str:
        length = self.read('H')
        raw = self.data[self.offset:self.offset + length]
        if len(raw) != length:
            raise ValueError("Truncated bytecode string")
        self.offset += length
        return raw.decode('utf-8')


def _pack_str(output: bytearray, s: str) -> None:
    encoded = s.encode('utf-8')
    if len(encoded) > 0xFFFF:
        raise ValueError("String too long for bytecode module")
    output.extend(struct.pack('<H', len(encoded)))
    output.extend(encoded)


@dataclass
class Bytecode:
    """Container for one compiled XScript unit."""

    MAGIC = b'XSC\x00'
    VERSION = 2
    FLAG_DEBUG_INFO = 0x0001
    HEADER_FORMAT = '<4sHHIIIII'

    code: bytearray = field(default_factory=bytearray)
    constants: List[Constant] = field(default_factory=list)
    functions: List[FunctionInfo] = field(default_factory=list)
    globals: Dict[str, int] = field(default_factory=dict)

    # Source line of each instruction, in code order
    line_numbers: List[int] = field(default_factory=list)

    # -------------------------------------------------------------------------
    # Building
    # -------------------------------------------------------------------------

    def add_constant(self, constant: Constant) -> int:
        """Add a constant to the pool, reusing an identical entry."""
        for i, c in enumerate(self.constants):
            if c.type == constant.type and c.value == constant.value:
                return i
        if len(self.constants) > 0xFFFF:
            raise ValueError("Too many constants")
        self.constants.append(constant)
        return len(self.constants) - 1

    def add_global(self, name: str) -> int:
        if name not in self.globals:
            self.globals[name] = len(self.globals)
        return self.globals[name]

    def emit(self, opcode: OpCode, *operands: int, line: int = 0) -> int:
        """Emit an instruction with its operands, returning its offset."""
        offset = len(self.code)
        self.code.append(opcode)
        fmt = OPERAND_FORMATS.get(opcode, '')
        if len(operands) != len(fmt):
            raise ValueError(f"{opcode.name} takes {len(fmt)} operand(s)")
        if fmt:
            try:
                self.code.extend(struct.pack('<' + fmt, *operands))
            except struct.error as e:
                raise ValueError(f"{opcode.name} operand out of range: {operands}") from e
        self.line_numbers.append(line)
        return offset

    def emit_jump(self, opcode: OpCode, line: int = 0) -> int:
        """Emit a forward jump with a placeholder offset."""
        return self.emit(opcode, 0, line=line)

    def patch_jump(self, offset: int) -> None:
        """Point the jump at offset to the current end of code."""
        jump = len(self.code) - offset - OPCODE_SIZES[OpCode.JMP]
        if jump > 0x7FFF:
            raise ValueError("Jump offset too large")
        struct.pack_into('<h', self.code, offset + 1, jump)

    def emit_loop(self, loop_start: int, line: int = 0) -> int:
        """Emit a backward jump to loop_start."""
        distance = len(self.code) + OPCODE_SIZES[OpCode.LOOP] - loop_start
        if distance > 0xFFFF:
            raise ValueError("Loop body too large")
        return self.emit(OpCode.LOOP, distance, line=line)

    def current_offset(self) -> int:
        return len(self.code)

    def instructions(self) -> Iterator[Tuple[int, OpCode, Tuple[int, ...]]]:
        """Yield (offset, opcode, operands) for each instruction."""
        offset = 0
        while offset < len(self.code):
            opcode = OpCode(self.code[offset])
            fmt = OPERAND_FORMATS.get(opcode, '')
            operands = struct.unpack_from('<' + fmt, self.code, offset + 1) if fmt else ()
            yield offset, opcode, operands
            offset += OPCODE_SIZES[opcode]

    # -------------------------------------------------------------------------
    # Binary encoding
    # -------------------------------------------------------------------------

    def serialize(self, debug_info: bool = False) -> bytes:
        """Serialize to the binary module format, optionally with debug info."""
        output = bytearray(struct.calcsize(self.HEADER_FORMAT))

        const_offset = len(output)
        output.extend(struct.pack('<I', len(self.constants)))
        for const in self.constants:
            output.append(const.type)
            if const.type == Constant.TYPE_BOOL:
                output.append(1 if const.value else 0)
            elif const.type == Constant.TYPE_NUMBER:
                output.extend(struct.pack('<d', const.value))
            elif const.type == Constant.TYPE_STRING:
                _pack_str(output, const.value)

        func_offset = len(output)
        output.extend(struct.pack('<I', len(self.functions)))
        for func in self.functions:
            _pack_str(output, func.name)
            output.extend(struct.pack('<BBBII', func.arity, func.local_count,
                                      func.upvalue_count, func.code_offset,
                                      func.code_length))

        globals_offset = len(output)
        output.extend(struct.pack('<I', len(self.globals)))
        for name, _ in sorted(self.globals.items(), key=lambda item: item[1]):
            _pack_str(output, name)

        code_offset = len(output)
        output.extend(struct.pack('<I', len(self.code)))
        output.extend(self.code)

        flags = 0
        debug_offset = 0
        if debug_info:
            flags |= self.FLAG_DEBUG_INFO
            debug_offset = len(output)
            output.extend(struct.pack('<I', len(self.functions)))
            for func in self.functions:
                output.extend(struct.pack('<I', func.source_line))
            output.extend(struct.pack('<I', len(self.line_numbers)))
            for line in self.line_numbers:
                output.extend(struct.pack('<I', line))

        struct.pack_into(self.HEADER_FORMAT, output, 0, self.MAGIC, self.VERSION,
                         flags, const_offset, code_offset, func_offset,
                         globals_offset, debug_offset)
        return bytes(output)

    @classmethod
    def deserialize(cls, data: bytes) -> 'Bytecode':
        """Decode a binary module produced by serialize()."""
        if len(data) < struct.calcsize(cls.HEADER_FORMAT):
            raise ValueError("Truncated bytecode header")

        (magic, version, flags, const_offset, code_offset, func_offset,
         globals_offset, debug_offset) = struct.unpack_from(cls.HEADER_FORMAT, data, 0)
        if magic != cls.MAGIC:
            raise ValueError("Invalid bytecode magic number")
        if version != cls.VERSION:
            raise ValueError(f"Unsupported bytecode version: {version}")

        bc = cls()
        try:
            reader = _Reader(data, const_offset)
            for _ in range(reader.read('I')):
                const_type = reader.read('B')
                if const_type == Constant.TYPE_NIL:
                    bc.constants.append(Constant.nil())
                elif const_type == Constant.TYPE_BOOL:
                    bc.constants.append(Constant.boolean(reader.read('B') != 0))
                elif const_type == Constant.TYPE_NUMBER:
                    bc.constants.append(Constant.number(reader.read('d')))
                elif const_type == Constant.TYPE_STRING:
                    bc.constants.append(Constant.string(reader.read_str()))
                else:
                    raise ValueError(f"Unknown constant type: {const_type}")

            reader = _Reader(data, func_offset)
            for _ in range(reader.read('I')):
                name = reader.read_str()
                arity, local_count, upvalue_count, offset, length = reader.read('BBBII')
                bc.functions.append(FunctionInfo(name, arity, local_count,
                                                 upvalue_count, offset, length))

            reader = _Reader(data, globals_offset)
            for index in range(reader.read('I')):
                bc.globals[reader.read_str()] = index

            reader = _Reader(data, code_offset)
            code_len = reader.read('I')
            bc.code = bytearray(data[reader.offset:reader.offset + code_len])
            if len(bc.code) != code_len:
                raise ValueError("Truncated bytecode body")

            if flags & cls.FLAG_DEBUG_INFO:
                reader = _Reader(data, debug_offset)
                func_count = reader.read('I')
                for func in bc.functions[:func_count]:
                    func.source_line = reader.read('I')
                bc.line_numbers = [reader.read('I') for _ in range(reader.read('I'))]
        except struct.error as e:
            raise ValueError(f"Corrupt bytecode module: {e}") from e

        return bc

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def disassemble(self) -> str:
        """Human-readable listing, used for verbose compiles."""
        lines = ["=== XScript Bytecode ===", ""]

        lines.append("Constants:")
        for i, const in enumerate(self.constants):
            lines.append(f"  [{i:4d}] {const.value!r}")
        lines.append("")

        lines.append("Functions:")
        for func in self.functions:
            lines.append(f"  {func.name}(arity={func.arity}, locals={func.local_count}, "
                         f"upvalues={func.upvalue_count}) "
                         f"@{func.code_offset:04x}+{func.code_length}")
        lines.append("")

        lines.append("Globals:")
        for name, idx in self.globals.items():
            lines.append(f"  [{idx:4d}] {name}")
        lines.append("")

        lines.append("Code:")
        for i, (offset, opcode, operands) in enumerate(self.instructions()):
            line = self.line_numbers[i] if i < len(self.line_numbers) else 0
            lines.append(f"  {offset:04x} {line:4d}  {self._format_instruction(offset, opcode, operands)}")

        return "\n".join(lines)

    def _format_instruction(self, offset: int, opcode: OpCode, operands: Tuple[int, ...]) -> str:
        name = f"{opcode.name:12s}"
        if not operands:
            return opcode.name
        operand = operands[0]

        if opcode in (OpCode.PUSH_NUM, OpCode.PUSH_STR, OpCode.GET_FIELD, OpCode.SET_FIELD):
            if operand < len(self.constants):
                return f"{name} {operand} ; {self.constants[operand].value!r}"
        elif opcode in (OpCode.JMP, OpCode.JMP_IF, OpCode.JMP_IF_NOT):
            return f"{name} {operand:+d} -> {offset + 3 + operand:04x}"
        elif opcode == OpCode.LOOP:
            return f"{name} -{operand} -> {offset + 3 - operand:04x}"
        elif opcode == OpCode.PUSH_FUNC and operand < len(self.functions):
            return f"{name} {operand} ; {self.functions[operand].name}"
        return f"{name} {operand}"
