"""Configuration for EVO-VM evolution sessions."""

import logging
from dataclasses import dataclass
from typing import Optional


# =============================================================================
# Defaults
# =============================================================================

# 4 x 6 grid of engines
DEFAULT_POPULATION = 24
DEFAULT_BEST_PATH = "best_vm_program.bin"
DEFAULT_TICKS = 10000
DEFAULT_MAX_CYCLES = 10000
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class EvolutionConfig:
    """Settings for one evolution session.

    Attributes:
        population_size: Number of engines stepped per tick
        best_path: File the champion genome is written to (None disables saving)
        ticks: Number of ticks to run
        seed: Random seed for reproducible sessions (None for OS entropy)
        resume_path: Saved genome to start from instead of random programs
        log_level: Logging level name
    """
    population_size: int = DEFAULT_POPULATION
    best_path: Optional[str] = DEFAULT_BEST_PATH
    ticks: int = DEFAULT_TICKS
    seed: Optional[int] = None
    resume_path: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL

    def validate(self) -> None:
        """Check settings.

        Raises:
            ValueError: If a setting is out of range
        """
        if self.population_size <= 0:
            raise ValueError(f"population_size must be positive, got {self.population_size}")
        if self.ticks < 0:
            raise ValueError(f"ticks must be non-negative, got {self.ticks}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    """Install a root log handler for command-line use."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
