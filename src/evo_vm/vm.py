"""ByteVM: Execution engine for the EVO-VM byte machine.

This module implements the fetch-decode-execute cycle:
    MEMORY -> FETCH -> DECODE -> REGISTRY -> EXECUTE -> STATE -> STALL CHECK

Programs are raw 256-byte images, usually random or evolved. Besides HLT,
an unknown opcode, or a pc running off the end of memory, a run also stops
when the last 16 executed instructions use at most two distinct opcodes.
That stall halt zeroes the step counter, so degenerate loops score no
fitness.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Sequence

from .config import DEFAULT_MAX_CYCLES
from .isa import (
    MEM_SIZE,
    MUTATION_PERCENT_MAX,
    MUTATION_PERCENT_MIN,
    STALL_DISTINCT_LIMIT,
    TRACE_CAPACITY,
    Opcode,
    decode,
)
from .persistence import PathLike, load_program as read_program_file, save_program
from .registry import OpcodeRegistry, get_registry
from .state import HaltReason, VMState


logger = logging.getLogger(__name__)


@dataclass
class TraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Step number within the run (1-indexed)
        pc: Address the instruction was fetched from
        opcode: Decoded opcode
        raw: Raw opcode byte
        text: Formatted trace line
        pre_state: Register snapshot before execution
        post_state: Register snapshot after execution
    """
    cycle: int
    pc: int
    opcode: Opcode
    raw: int
    text: str
    pre_state: dict
    post_state: dict


class ByteVM:
    """256-byte accumulator machine.

    Attributes:
        state: Machine state (memory, genome, registers, counters)
        registry: OpcodeRegistry with one handler per opcode
        recent_instructions: Last TRACE_CAPACITY formatted trace lines
        recent_opcodes: Last TRACE_CAPACITY executed opcodes (stall window)
        history: Every TraceEntry of the run when keep_history is set
    """

    DEFAULT_MAX_CYCLES = DEFAULT_MAX_CYCLES

    def __init__(self, keep_history: bool = False, registry: Optional[OpcodeRegistry] = None):
        """Initialize a zeroed machine.

        Args:
            keep_history: Retain every TraceEntry in ``history``. Off by default
                so long evolutionary runs stay bounded in memory.
            registry: Opcode registry (shared singleton if None)
        """
        self.state = VMState()
        self.registry = registry or get_registry()
        self.recent_instructions: Deque[str] = deque(maxlen=TRACE_CAPACITY)
        self.recent_opcodes: Deque[Opcode] = deque(maxlen=TRACE_CAPACITY)
        self.keep_history = keep_history
        self.history: List[TraceEntry] = []

    # =========================================================================
    # State shortcuts
    # =========================================================================

    @property
    def memory(self) -> bytearray:
        return self.state.memory

    @property
    def initial_state(self) -> bytearray:
        return self.state.initial_state

    @property
    def pc(self) -> int:
        return self.state.pc

    @property
    def acc(self) -> int:
        return self.state.acc

    @property
    def halted(self) -> bool:
        return self.state.halted

    @property
    def total_steps_count(self) -> int:
        return self.state.total_steps_count

    @property
    def halt_reason(self) -> Optional[HaltReason]:
        return self.state.halt_reason

    @property
    def stalled(self) -> bool:
        """True if the current run was stopped by the stall heuristic."""
        return self.state.halt_reason is HaltReason.STALL

    # =========================================================================
    # Loading
    # =========================================================================

    def _reset(self) -> None:
        self.state.reset_run()
        self.recent_instructions.clear()
        self.recent_opcodes.clear()
        self.history = []

    def load_program(self, program: Sequence[int]) -> None:
        """Load a program image at address 0.

        The program is truncated or zero-padded to MEM_SIZE and becomes
        both memory and initial_state.

        Args:
            program: Byte values
        """
        self.state.load_image(program)
        self._reset()

    def randomize(self, rng: Optional[random.Random] = None) -> None:
        """Fill all memory with uniform random bytes and start a new run.

        Args:
            rng: Random source (module-level random if None)
        """
        rng = rng or random
        image = bytes(rng.randrange(256) for _ in range(MEM_SIZE))
        self.state.memory[:] = image
        self.state.initial_state[:] = image
        self._reset()

    def partial_randomize(self, rng: Optional[random.Random] = None) -> List[int]:
        """Mutate 1-10% of memory and start a new run.

        A percentage in [MUTATION_PERCENT_MIN, MUTATION_PERCENT_MAX] is drawn,
        then that share of distinct cells each receive a new value different
        from the old one, in both memory and initial_state. Other cells keep
        their values.

        Args:
            rng: Random source (module-level random if None)

        Returns:
            Sorted list of mutated addresses
        """
        rng = rng or random
        percent = rng.randint(MUTATION_PERCENT_MIN, MUTATION_PERCENT_MAX)
        count = MEM_SIZE * percent // 100
        positions = rng.sample(range(MEM_SIZE), count)
        for idx in positions:
            value = (self.state.memory[idx] + rng.randrange(1, 256)) % 256
            self.state.memory[idx] = value
            self.state.initial_state[idx] = value
        self._reset()
        return sorted(positions)

    def restart(self) -> None:
        """Resume from address 0 after a halt without touching memory.

        Used by embedded agents whose program keeps running for the agent's
        lifetime. acc and the step counter carry over.
        """
        self.state.halted = False
        self.state.halt_reason = None
        self.state.pc = 0

    # =========================================================================
    # Persistence
    # =========================================================================

    def save_to_file(self, path: PathLike) -> None:
        """Save current memory to a raw program file."""
        save_program(path, self.state.memory)

    def save_genome(self, path: PathLike) -> None:
        """Save initial_state (the genome) to a raw program file."""
        save_program(path, self.state.initial_state)

    def load_from_file(self, path: PathLike) -> None:
        """Load a raw program file as a new program.

        Raises:
            ProgramIOError: If the file is shorter than MEM_SIZE
            OSError: If the file cannot be read
        """
        self.load_program(read_program_file(path))

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> Optional[TraceEntry]:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE -> TRACE -> STALL CHECK

        Returns:
            TraceEntry for the executed instruction, or None if the machine
            was already halted or pc was outside memory
        """
        state = self.state
        if state.halted or state.pc >= MEM_SIZE:
            state.halt(HaltReason.PC_OUT_OF_RANGE)
            return None

        pre_state = state.snapshot()
        state.total_steps_count += 1
        cycle = state.total_steps_count

        # FETCH + DECODE
        instr = decode(state.memory, state.pc)

        # EXECUTE
        detail = self.registry.execute(state, instr)
        text = instr.prefix()
        if detail:
            text = f"{text} {detail}"

        self.recent_instructions.append(text)
        self.recent_opcodes.append(instr.opcode)
        self._check_stall()

        entry = TraceEntry(
            cycle=cycle,
            pc=instr.pc,
            opcode=instr.opcode,
            raw=instr.raw,
            text=text,
            pre_state=pre_state,
            post_state=state.snapshot(),
        )
        if self.keep_history:
            self.history.append(entry)
        return entry

    def _check_stall(self) -> None:
        """Halt runs stuck cycling through at most two kinds of instruction."""
        if len(self.recent_opcodes) < TRACE_CAPACITY:
            return
        if len(set(self.recent_opcodes)) <= STALL_DISTINCT_LIMIT:
            logger.debug(
                "Stall at pc=%d after %d steps: %s",
                self.state.pc,
                self.state.total_steps_count,
                sorted(op.mnemonic for op in set(self.recent_opcodes)),
            )
            # Overrides HLT on the same step: the run scores zero either way
            self.state.halted = True
            self.state.halt_reason = HaltReason.STALL
            self.state.total_steps_count = 0

    def run(self, max_cycles: Optional[int] = None) -> List[TraceEntry]:
        """Run until the machine halts.

        Args:
            max_cycles: Safety limit on steps (DEFAULT_MAX_CYCLES if None)

        Returns:
            Execution history (empty unless keep_history is set)

        Raises:
            RuntimeError: If max cycles exceeded before halting
        """
        limit = max_cycles if max_cycles is not None else self.DEFAULT_MAX_CYCLES
        executed = 0
        while not self.state.halted:
            if executed >= limit:
                raise RuntimeError(f"Max cycles ({limit}) exceeded")
            self.step()
            executed += 1
        return self.history

    # =========================================================================
    # Reporting
    # =========================================================================

    def dump_memory(self, width: int = 16) -> str:
        """Hex dump of memory, ``width`` cells per row."""
        lines = []
        for base in range(0, MEM_SIZE, width):
            row = " ".join(f"{b:02X}" for b in self.state.memory[base:base + width])
            lines.append(f"{base:04}: {row}")
        return "\n".join(lines)

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("EVO-VM EXECUTION TRACE")
        print("=" * 70)

        if not self.history:
            # Without history only the bounded window is available
            for line in self.recent_instructions:
                print(f"  {line}")
        else:
            for entry in self.history:
                pre, post = entry.pre_state, entry.post_state
                changes = []
                if pre["acc"] != post["acc"]:
                    changes.append(f"ACC: {pre['acc']} -> {post['acc']}")
                print(f"[Step {entry.cycle}] {entry.text}")
                if changes:
                    print(f"  Changes: {', '.join(changes)}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        summary = self.get_summary()
        print(f"  PC: {summary['pc']}")
        print(f"  ACC: {summary['acc']}")
        print(f"  Steps: {summary['steps']}")
        print(f"  Halted: {summary['halted']} ({summary['halt_reason']})")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final registers
        """
        reason = self.state.halt_reason
        return {
            "steps": self.state.total_steps_count,
            "halted": self.state.halted,
            "halt_reason": reason.value if reason is not None else None,
            "pc": self.state.pc,
            "acc": self.state.acc,
            "recent_instructions": list(self.recent_instructions),
            "trace_length": len(self.history),
        }
