"""VMState: Machine state for the EVO-VM byte machine.

State Components:
    - Memory: 256 mutable byte cells (program, data and I/O share them)
    - Initial state: genome snapshot taken at load/randomize time
    - PC: Program counter
    - ACC: 8-bit accumulator
    - Halted: Execution termination flag, with the reason it was set
    - Total steps: Instructions executed in the current run

Unlike a pure functional state, VMState is mutated in place: a population
of engines is stepped millions of times and reseeded without reallocation.
snapshot() provides the copies needed for tracing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from .isa import MEM_SIZE, BYTE_MASK


class HaltReason(Enum):
    """Why a run stopped."""
    HLT = "hlt"
    UNKNOWN_OPCODE = "unknown_opcode"
    PC_OUT_OF_RANGE = "pc_out_of_range"
    STALL = "stall"


def _zeroed() -> bytearray:
    return bytearray(MEM_SIZE)


@dataclass
class VMState:
    """Mutable machine state.

    Attributes:
        memory: Current 256-byte memory image
        initial_state: Genome snapshot; never written by execution
        pc: Program counter (index into memory)
        acc: Accumulator, always in [0, 255]
        halted: Whether the machine has stopped
        total_steps_count: Instructions executed in the current run
        halt_reason: Why the machine halted, None while running
    """
    memory: bytearray = field(default_factory=_zeroed)
    initial_state: bytearray = field(default_factory=_zeroed)
    pc: int = 0
    acc: int = 0
    halted: bool = False
    total_steps_count: int = 0
    halt_reason: Optional[HaltReason] = None

    # =========================================================================
    # Memory access
    # =========================================================================

    def read(self, addr: int) -> int:
        """Read a cell; addresses outside memory read as 0."""
        if 0 <= addr < MEM_SIZE:
            return self.memory[addr]
        return 0

    def write(self, addr: int, value: int) -> None:
        """Write a cell; addresses outside memory are silently dropped."""
        if 0 <= addr < MEM_SIZE:
            self.memory[addr] = value & BYTE_MASK

    def load_image(self, image: Sequence[int]) -> None:
        """Copy an image into memory and initial_state and reset the run.

        The image is truncated or zero-padded to MEM_SIZE.

        Args:
            image: Byte values (each 0-255)

        Raises:
            ValueError: If a value is outside the byte range
        """
        data = bytes(image[:MEM_SIZE])
        padded = data + bytes(MEM_SIZE - len(data))
        self.memory[:] = padded
        self.initial_state[:] = padded
        self.reset_run()

    def reset_run(self) -> None:
        """Reset registers and counters for a new run (memory untouched)."""
        self.pc = 0
        self.acc = 0
        self.halted = False
        self.halt_reason = None
        self.total_steps_count = 0

    def halt(self, reason: HaltReason) -> None:
        """Stop the machine, keeping the first recorded reason."""
        if not self.halted:
            self.halt_reason = reason
        self.halted = True

    # =========================================================================
    # Inspection
    # =========================================================================

    def snapshot(self) -> dict:
        """Create a snapshot of the registers for tracing.

        Returns:
            Dictionary with pc, acc, halted and total_steps_count
        """
        return {
            "pc": self.pc,
            "acc": self.acc,
            "halted": self.halted,
            "total_steps_count": self.total_steps_count,
            # Memory excluded; traces carry the touched address instead
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - memory and initial_state are exactly MEM_SIZE bytes
            - PC is non-negative
            - ACC is a byte
            - step counter is non-negative

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEM_SIZE or len(self.initial_state) != MEM_SIZE:
            return False
        if self.pc < 0:
            return False
        if not 0 <= self.acc <= BYTE_MASK:
            return False
        if self.total_steps_count < 0:
            return False
        return True

    def genome(self) -> bytes:
        """Return an immutable copy of initial_state."""
        return bytes(self.initial_state)

    def __str__(self) -> str:
        """Human-readable state representation."""
        text = f"[Step {self.total_steps_count}] PC={self.pc} ACC={self.acc}"
        if self.halted:
            text += " HALTED"
            if self.halt_reason is not None:
                text += f" ({self.halt_reason.value})"
        return text
