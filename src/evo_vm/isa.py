"""Instruction set for the EVO-VM byte machine.

Every opcode occupies one byte. Ops that carry an address operand are two
bytes wide; the second byte is the target address itself (direct
addressing, no immediates, no indirection).

Opcode Table:
    0x00 NOP   no operation
    0x01 LDA   acc = mem[addr]
    0x02 STA   mem[addr] = acc
    0x03 ADD   acc = acc + mem[addr]
    0x04 SUB   acc = acc - mem[addr]
    0x05 JMP   pc = addr
    0x06 JZ    pc = addr if acc == 0
    0x07 INC   acc = acc + 1
    0x08 DEC   acc = acc - 1
    0x09 SWP   acc <-> mem[addr]
    0x0A CMP   compare acc with mem[addr] (trace only)
    0xFF HLT   stop execution

Any other byte decodes to Opcode.UNKNOWN, which halts the machine.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Sequence


MEM_SIZE = 256
BYTE_MASK = 0xFF

# Stall heuristic: halt once the last TRACE_CAPACITY instructions use at most
# STALL_DISTINCT_LIMIT distinct opcodes.
TRACE_CAPACITY = 16
STALL_DISTINCT_LIMIT = 2

# Mutation rate for partial_randomize, percent of MEM_SIZE
MUTATION_PERCENT_MIN = 1
MUTATION_PERCENT_MAX = 10


class Opcode(IntEnum):
    """Closed set of machine opcodes.

    UNKNOWN is the explicit fallback for every byte that is not a defined
    opcode. Its value lies outside the byte range so it can never collide
    with a real encoding.
    """
    NOP = 0x00
    LDA = 0x01
    STA = 0x02
    ADD = 0x03
    SUB = 0x04
    JMP = 0x05
    JZ = 0x06
    INC = 0x07
    DEC = 0x08
    SWP = 0x09
    CMP = 0x0A
    HLT = 0xFF
    UNKNOWN = 0x100

    @classmethod
    def from_byte(cls, value: int) -> "Opcode":
        """Map a memory byte to its opcode variant.

        Args:
            value: Raw byte (0-255)

        Returns:
            The matching Opcode, or Opcode.UNKNOWN
        """
        return _BYTE_TO_OPCODE.get(value, cls.UNKNOWN)

    @property
    def mnemonic(self) -> str:
        """Short display name used in traces."""
        if self is Opcode.UNKNOWN:
            return "???"
        return self.name

    @property
    def width(self) -> int:
        """Encoded width in bytes (1 or 2)."""
        return 2 if self in OPERAND_OPCODES else 1

    @property
    def has_operand(self) -> bool:
        return self in OPERAND_OPCODES


# Opcodes followed by an address byte
OPERAND_OPCODES = frozenset({
    Opcode.LDA,
    Opcode.STA,
    Opcode.ADD,
    Opcode.SUB,
    Opcode.JMP,
    Opcode.JZ,
    Opcode.SWP,
    Opcode.CMP,
})

_BYTE_TO_OPCODE: Dict[int, Opcode] = {
    op.value: op for op in Opcode if op is not Opcode.UNKNOWN
}


@dataclass(frozen=True)
class DecodedInstruction:
    """One fetched and decoded instruction.

    Attributes:
        pc: Address the opcode byte was fetched from
        raw: Raw opcode byte as stored in memory
        opcode: Decoded opcode variant
        operand: Address byte following the opcode (0 if past end of memory
            or if the opcode takes no operand)
    """
    pc: int
    raw: int
    opcode: Opcode
    operand: int = 0

    def prefix(self) -> str:
        """Trace prefix: ``"<pc:04d>: <MNEMONIC> (0x<raw:02X>)"``."""
        return f"{self.pc:04}: {self.opcode.mnemonic} (0x{self.raw:02X})"


def decode(memory: Sequence[int], pc: int) -> DecodedInstruction:
    """Fetch and decode the instruction at ``pc``.

    Args:
        memory: Memory image
        pc: Address of the opcode byte (must be < len(memory))

    Returns:
        DecodedInstruction for the opcode at pc
    """
    raw = memory[pc]
    opcode = Opcode.from_byte(raw)
    operand = 0
    if opcode.has_operand and pc + 1 < len(memory):
        operand = memory[pc + 1]
    return DecodedInstruction(pc=pc, raw=raw, opcode=opcode, operand=operand)


def mnemonic_for(value: int) -> str:
    """Return the mnemonic for a raw byte ("???" when undefined)."""
    return Opcode.from_byte(value).mnemonic
