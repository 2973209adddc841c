"""OpcodeRegistry: Instruction primitives for EVO-VM.

Each opcode maps to exactly one handler. A handler applies the opcode's
effect to the VMState in place and returns the detail text that follows
the trace prefix.

Registry Keys (Opcode variants):
    NOP, LDA, STA, ADD, SUB, JMP, JZ, INC, DEC, SWP, CMP, HLT, UNKNOWN

The registry is frozen after initialization and checked to be exhaustive
over Opcode, so a new opcode without a handler fails at construction
rather than at run time.
"""

import logging
from typing import Callable, Dict, Optional

from .isa import BYTE_MASK, DecodedInstruction, Opcode
from .state import HaltReason, VMState


logger = logging.getLogger(__name__)

Handler = Callable[[VMState, DecodedInstruction], str]


class OpcodeRegistry:
    """Frozen registry of opcode handlers.

    Attributes:
        _handlers: Dictionary mapping Opcode to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all opcode handlers."""
        self._handlers: Dict[Opcode, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self._check_exhaustive()
        self.freeze()

    def _register_all_handlers(self) -> None:
        """Register one handler per opcode."""
        # Data movement
        self.register(Opcode.LDA, self._op_lda)
        self.register(Opcode.STA, self._op_sta)
        self.register(Opcode.SWP, self._op_swp)

        # Arithmetic
        self.register(Opcode.ADD, self._op_add)
        self.register(Opcode.SUB, self._op_sub)
        self.register(Opcode.INC, self._op_inc)
        self.register(Opcode.DEC, self._op_dec)

        # Comparison
        self.register(Opcode.CMP, self._op_cmp)

        # Control flow
        self.register(Opcode.JMP, self._op_jmp)
        self.register(Opcode.JZ, self._op_jz)

        # Special
        self.register(Opcode.NOP, self._op_nop)
        self.register(Opcode.HLT, self._op_hlt)
        self.register(Opcode.UNKNOWN, self._op_unknown)

    def _check_exhaustive(self) -> None:
        missing = set(Opcode) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(op.name for op in missing))
            raise RuntimeError(f"No handler registered for: {names}")

    def register(self, opcode: Opcode, handler: Handler) -> None:
        """Register an opcode handler.

        Args:
            opcode: Opcode variant
            handler: Function taking (state, instruction) and returning
                the trace detail text

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If opcode already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if opcode in self._handlers:
            raise ValueError(f"Handler already registered: {opcode.name}")
        self._handlers[opcode] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_opcodes(self) -> set:
        """Get set of all registered opcodes."""
        return set(self._handlers.keys())

    def execute(self, state: VMState, instr: DecodedInstruction) -> str:
        """Apply a decoded instruction to the state.

        Args:
            state: Machine state (mutated in place)
            instr: Decoded instruction at state.pc

        Returns:
            Trace detail text (may be empty)
        """
        return self._handlers[instr.opcode](state, instr)

    # =========================================================================
    # Data Movement
    # =========================================================================

    def _op_lda(self, state: VMState, instr: DecodedInstruction) -> str:
        """LDA addr - acc = mem[addr]."""
        addr = instr.operand
        value = state.read(addr)
        state.acc = value
        state.pc += instr.opcode.width
        return f"addr={addr} -> acc={value}"

    def _op_sta(self, state: VMState, instr: DecodedInstruction) -> str:
        """STA addr - mem[addr] = acc."""
        addr = instr.operand
        detail = f"acc={state.acc} -> addr={addr}"
        state.write(addr, state.acc)
        state.pc += instr.opcode.width
        return detail

    def _op_swp(self, state: VMState, instr: DecodedInstruction) -> str:
        """SWP addr - exchange acc and mem[addr].

        An address outside memory leaves both sides unchanged.
        """
        addr = instr.operand
        value = state.read(addr)
        detail = f"acc={state.acc} <-> addr={addr} val={value}"
        if 0 <= addr < len(state.memory):
            state.memory[addr] = state.acc
            state.acc = value
        state.pc += instr.opcode.width
        return detail

    # =========================================================================
    # Arithmetic (all wrap modulo 256)
    # =========================================================================

    def _op_add(self, state: VMState, instr: DecodedInstruction) -> str:
        """ADD addr - acc = acc + mem[addr]."""
        addr = instr.operand
        value = state.read(addr)
        detail = f"acc={state.acc} + val={value} (addr={addr})"
        state.acc = (state.acc + value) & BYTE_MASK
        state.pc += instr.opcode.width
        return detail

    def _op_sub(self, state: VMState, instr: DecodedInstruction) -> str:
        """SUB addr - acc = acc - mem[addr]."""
        addr = instr.operand
        value = state.read(addr)
        detail = f"acc={state.acc} - val={value} (addr={addr})"
        state.acc = (state.acc - value) & BYTE_MASK
        state.pc += instr.opcode.width
        return detail

    def _op_inc(self, state: VMState, instr: DecodedInstruction) -> str:
        """INC - acc = acc + 1."""
        result = (state.acc + 1) & BYTE_MASK
        detail = f"acc={state.acc} -> {result}"
        state.acc = result
        state.pc += instr.opcode.width
        return detail

    def _op_dec(self, state: VMState, instr: DecodedInstruction) -> str:
        """DEC - acc = acc - 1."""
        result = (state.acc - 1) & BYTE_MASK
        detail = f"acc={state.acc} -> {result}"
        state.acc = result
        state.pc += instr.opcode.width
        return detail

    # =========================================================================
    # Comparison
    # =========================================================================

    def _op_cmp(self, state: VMState, instr: DecodedInstruction) -> str:
        """CMP addr - compare acc with mem[addr].

        No register or memory changes; the ordering only appears in the
        trace.
        """
        addr = instr.operand
        value = state.read(addr)
        if state.acc < value:
            ordering = "acc<val"
        elif state.acc > value:
            ordering = "acc>val"
        else:
            ordering = "acc==val"
        state.pc += instr.opcode.width
        return f"acc={state.acc} addr={addr} val={value} ({ordering})"

    # =========================================================================
    # Control Flow
    # =========================================================================

    def _op_jmp(self, state: VMState, instr: DecodedInstruction) -> str:
        """JMP addr - unconditional absolute jump."""
        addr = instr.operand
        state.pc = addr
        return f"to addr={addr}"

    def _op_jz(self, state: VMState, instr: DecodedInstruction) -> str:
        """JZ addr - jump if acc is zero, else fall through by 2."""
        addr = instr.operand
        detail = f"to addr={addr} if acc==0 (acc={state.acc})"
        if state.acc == 0:
            state.pc = addr
        else:
            state.pc += instr.opcode.width
        return detail

    # =========================================================================
    # Special
    # =========================================================================

    def _op_nop(self, state: VMState, instr: DecodedInstruction) -> str:
        """NOP - advance pc only."""
        state.pc += instr.opcode.width
        return ""

    def _op_hlt(self, state: VMState, instr: DecodedInstruction) -> str:
        """HLT - stop execution, pc stays on the HLT byte."""
        logger.debug("HLT at pc=%d after %d steps", instr.pc, state.total_steps_count)
        state.halt(HaltReason.HLT)
        return ""

    def _op_unknown(self, state: VMState, instr: DecodedInstruction) -> str:
        """Undefined opcode - halt rather than fault."""
        logger.debug("Unknown opcode 0x%02X at pc=%d", instr.raw, instr.pc)
        state.halt(HaltReason.UNKNOWN_OPCODE)
        return ""


# Singleton registry instance
_registry: Optional[OpcodeRegistry] = None


def get_registry() -> OpcodeRegistry:
    """Get the shared opcode registry instance.

    Returns:
        The frozen OpcodeRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = OpcodeRegistry()
    return _registry
