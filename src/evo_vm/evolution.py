"""Evolutionary search over ByteVM programs.

A fixed population of engines is stepped in lockstep. Whenever an engine
halts, its run length is its fitness. The single best genome seen so far
(the champion) is kept, saved to disk on every improvement, and used as the
parent for the next program: the halted engine is reloaded with the
champion and 1-10% of its cells are mutated. Before any champion exists,
halted engines restart from fully random memory.

This is (1+lambda)-style hill climbing: strict ``>`` replaces the champion,
ties do not.
"""

import logging
import random
import threading
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import List, Optional

from .config import EvolutionConfig
from .persistence import PathLike, load_program, save_program
from .vm import ByteVM


logger = logging.getLogger(__name__)


@dataclass
class Champion:
    """Best genome found so far.

    Attributes:
        genome: 256-byte program image, None until the first scored run
        fitness: Steps survived by the run that produced genome
    """
    genome: Optional[bytes] = None
    fitness: int = 0

    def offer(self, genome: bytes, fitness: int) -> bool:
        """Replace the champion if ``fitness`` is strictly better.

        Returns:
            True if the champion was replaced
        """
        if fitness > self.fitness:
            self.genome = bytes(genome)
            self.fitness = fitness
            return True
        return False


class EvolutionDriver:
    """Runs a population of engines and evolves their programs.

    Attributes:
        population: Engines stepped each tick, in list order
        champion: Best genome and its fitness
        best_path: File the champion is saved to on improvement (None disables)
        rng: Random source for seeding and mutation
        executor: Optional executor that performs saves off the stepping thread
        ticks: Ticks run so far
        halts: Halted runs handled so far
        stalls: Halted runs that ended in a stall
        improvements: Times the champion was replaced
    """

    def __init__(
        self,
        population_size: int,
        champion: Optional[Champion] = None,
        best_path: Optional[PathLike] = None,
        rng: Optional[random.Random] = None,
        executor: Optional[Executor] = None,
    ):
        if population_size <= 0:
            raise ValueError(f"population_size must be positive, got {population_size}")

        self.champion = champion or Champion()
        self.best_path = best_path
        self.rng = rng or random.Random()
        self.executor = executor

        # Fitness of the most recently submitted save; older saves that run
        # late are skipped so the file always ends at the champion
        self._latest_save_fitness = 0
        self._save_lock = threading.Lock()

        self.ticks = 0
        self.halts = 0
        self.stalls = 0
        self.improvements = 0

        self.population: List[ByteVM] = []
        for _ in range(population_size):
            vm = ByteVM()
            self._reseed(vm)
            self.population.append(vm)

    @classmethod
    def from_config(cls, config: EvolutionConfig, executor: Optional[Executor] = None) -> "EvolutionDriver":
        """Build a driver from an EvolutionConfig.

        Raises:
            ValueError: If the config is invalid
            OSError: If resume_path is set and cannot be loaded
        """
        config.validate()
        champion = None
        if config.resume_path:
            champion = resume_from(config.resume_path)
        return cls(
            population_size=config.population_size,
            champion=champion,
            best_path=config.best_path,
            rng=random.Random(config.seed),
            executor=executor,
        )

    # =========================================================================
    # Main loop
    # =========================================================================

    def tick(self) -> int:
        """Step every engine once, then score and reseed halted ones.

        Returns:
            Number of engines reseeded this tick
        """
        for vm in self.population:
            vm.step()

        reseeded = 0
        for vm in self.population:
            if vm.halted:
                self.handle_halt(vm)
                reseeded += 1
        self.ticks += 1
        return reseeded

    def run(self, ticks: int) -> Champion:
        """Run ``ticks`` ticks.

        Returns:
            The champion after the last tick
        """
        for _ in range(ticks):
            self.tick()
        return self.champion

    def handle_halt(self, vm: ByteVM) -> bool:
        """Score a finished run, then reseed the engine in place.

        Args:
            vm: Halted engine

        Returns:
            True if the run became the new champion
        """
        self.halts += 1
        if vm.stalled:
            self.stalls += 1

        improved = self.champion.offer(vm.initial_state, vm.total_steps_count)
        if improved:
            self.improvements += 1
            logger.info(
                "New best genome: %d steps (tick %d, halt %d)",
                self.champion.fitness, self.ticks, self.halts,
            )
            self._persist(self.champion.genome, self.champion.fitness)

        self._reseed(vm)
        return improved

    def _reseed(self, vm: ByteVM) -> None:
        if self.champion.genome is not None:
            vm.load_program(self.champion.genome)
            vm.partial_randomize(self.rng)
        else:
            vm.randomize(self.rng)

    # =========================================================================
    # Persistence
    # =========================================================================

    def _persist(self, genome: bytes, fitness: int) -> None:
        """Save the champion; failures are logged, never raised."""
        if self.best_path is None:
            return
        with self._save_lock:
            self._latest_save_fitness = fitness

        if self.executor is None:
            try:
                written = self._write_if_latest(genome, fitness)
            except OSError as e:
                logger.warning("Failed to save best genome to %s: %s", self.best_path, e)
            else:
                self._log_saved(written, fitness)
            return

        future = self.executor.submit(self._write_if_latest, genome, fitness)
        future.add_done_callback(lambda f: self._log_save_result(f, fitness))

    def _write_if_latest(self, genome: bytes, fitness: int) -> bool:
        """Write ``genome`` unless a better champion was submitted since.

        Writes are serialized, so with a multi-worker executor the last
        file written is always the latest champion.

        Returns:
            True if the file was written
        """
        with self._save_lock:
            if fitness < self._latest_save_fitness:
                return False
            save_program(self.best_path, genome)
            return True

    def _log_save_result(self, future: Future, fitness: int) -> None:
        error = future.exception()
        if error is not None:
            logger.warning("Failed to save best genome to %s: %s", self.best_path, error)
        else:
            self._log_saved(future.result(), fitness)

    def _log_saved(self, written: bool, fitness: int) -> None:
        if written:
            logger.info("Saved best genome to %s (steps: %d)", self.best_path, fitness)
        else:
            logger.debug("Skipped stale save (steps: %d)", fitness)

    def get_summary(self) -> dict:
        """Get session statistics."""
        return {
            "ticks": self.ticks,
            "halts": self.halts,
            "stalls": self.stalls,
            "improvements": self.improvements,
            "best_fitness": self.champion.fitness,
            "population": len(self.population),
        }


def resume_from(path: PathLike) -> Champion:
    """Start a champion from a saved genome.

    The saved file carries no fitness, so the champion starts at 0 and is
    replaced by the first run that survives at least one step.

    Raises:
        ProgramIOError: If the file is shorter than 256 bytes
        OSError: If the file cannot be read
    """
    genome = load_program(path)
    logger.info("Resuming from genome %s", path)
    return Champion(genome=genome, fitness=0)
