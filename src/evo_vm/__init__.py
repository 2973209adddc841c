"""EVO-VM: Evolvable 256-byte Virtual Machine.

This package implements a tiny accumulator machine whose programs are raw
256-byte images, random or evolved, and a search loop that breeds programs
by how many instructions they survive before halting.

Architecture:
    MEMORY -> FETCH -> DECODE -> OPCODE -> REGISTRY -> EXECUTE -> STATE
                                                                   |
    CHAMPION <- SCORE (steps survived) <- HALT / STALL  <----------+
        |
        +-> MUTATE (1-10% of cells) -> RESEED

Modules:
    isa: Opcode enum, constants and instruction decode
    state: VMState dataclass (memory, genome, registers, counters)
    registry: Frozen table of opcode handlers
    vm: ByteVM execution engine with stall detection
    persistence: Raw 256-byte program files
    mmio: Sensor/actuator address convention for embedded agents
    evolution: Champion record and EvolutionDriver
    config: Session settings and logging setup
"""

__version__ = "0.1.0"
__author__ = "EVO-VM Project"

from .isa import MEM_SIZE, Opcode
from .state import HaltReason, VMState
from .registry import OpcodeRegistry
from .vm import ByteVM, TraceEntry
from .persistence import ProgramIOError
from .evolution import Champion, EvolutionDriver
from .config import EvolutionConfig

__all__ = [
    "MEM_SIZE",
    "Opcode",
    "HaltReason",
    "VMState",
    "OpcodeRegistry",
    "ByteVM",
    "TraceEntry",
    "ProgramIOError",
    "Champion",
    "EvolutionDriver",
    "EvolutionConfig",
]
