"""Memory-mapped I/O convention for agents driven by a ByteVM.

The engine itself treats these addresses like any other cell. An embedding
simulation writes sensor bytes before ``step()`` and reads actuator bytes
after it.

Memory Map (top of the 256-byte space):
    250  food distance X (sensor)
    251  food distance Y (sensor)
    252  move left strength (actuator)
    253  move right strength (actuator)
    254  move up strength (actuator)
    255  move down strength (actuator)

Sensor bytes encode a signed relative position: 0 is maximally negative,
128 neutral, 255 maximally positive.
"""

from typing import Optional, Tuple

from .isa import MEM_SIZE
from .vm import ByteVM


MOVE_LEFT_ADDR = MEM_SIZE - 4
MOVE_RIGHT_ADDR = MEM_SIZE - 3
MOVE_UP_ADDR = MEM_SIZE - 2
MOVE_DOWN_ADDR = MEM_SIZE - 1

FOOD_DISTANCE_X_ADDR = MEM_SIZE - 6
FOOD_DISTANCE_Y_ADDR = MEM_SIZE - 5

SENSOR_NEUTRAL = 128
# World units to sensor units
SENSORY_SCALE_FACTOR = 2.0


def encode_offset(distance: float, scale: float = SENSORY_SCALE_FACTOR) -> int:
    """Convert a signed world distance to a sensor byte.

    Negative distances map to 0-127, positive to 129-255, zero to 128.

    Args:
        distance: Signed world distance
        scale: World-to-sensor scale factor

    Returns:
        Sensor byte (0-255)
    """
    scaled = distance * scale
    clamped = max(-128.0, min(127.0, scaled))
    return int(clamped + 128.0)


def write_sensors(vm: ByteVM, offset: Optional[Tuple[float, float]],
                  scale: float = SENSORY_SCALE_FACTOR) -> None:
    """Write the relative position of the nearest target into sensor cells.

    Args:
        vm: Engine to write into
        offset: (dx, dy) to the target, or None when nothing is in range
        scale: World-to-sensor scale factor
    """
    if offset is None:
        vm.memory[FOOD_DISTANCE_X_ADDR] = SENSOR_NEUTRAL
        vm.memory[FOOD_DISTANCE_Y_ADDR] = SENSOR_NEUTRAL
        return
    dx, dy = offset
    vm.memory[FOOD_DISTANCE_X_ADDR] = encode_offset(dx, scale)
    vm.memory[FOOD_DISTANCE_Y_ADDR] = encode_offset(dy, scale)


def _axis(negative: int, positive: int) -> int:
    if negative > positive:
        return -1
    if positive > negative:
        return 1
    return 0


def read_movement(vm: ByteVM) -> Tuple[int, int]:
    """Decode actuator cells into a movement direction.

    Each axis moves toward the larger of its two strengths; equal
    strengths mean no movement on that axis. Up is negative y.

    Returns:
        (dx, dy), each -1, 0 or 1
    """
    mem = vm.memory
    dx = _axis(mem[MOVE_LEFT_ADDR], mem[MOVE_RIGHT_ADDR])
    dy = _axis(mem[MOVE_UP_ADDR], mem[MOVE_DOWN_ADDR])
    return dx, dy
