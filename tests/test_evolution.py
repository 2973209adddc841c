"""Tests for the evolutionary driver."""

import logging
import random
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from evo_vm import ByteVM, Champion, EvolutionConfig, EvolutionDriver, MEM_SIZE
from evo_vm import evolution
from evo_vm.evolution import resume_from
from evo_vm.persistence import save_program


def finished_run(genome_byte: int, steps: int) -> ByteVM:
    """A halted engine whose run survived ``steps`` steps."""
    vm = ByteVM()
    vm.load_program([genome_byte] * MEM_SIZE)
    vm.state.total_steps_count = steps
    vm.state.halted = True
    return vm


@pytest.fixture
def driver():
    return EvolutionDriver(population_size=4, rng=random.Random(0))


class TestChampion:
    """Champion replacement rule."""

    def test_starts_empty(self):
        """A new champion has no genome and zero fitness."""
        champion = Champion()
        assert champion.genome is None
        assert champion.fitness == 0

    def test_strictly_better_replaces(self):
        """Higher fitness takes over."""
        champion = Champion()
        assert champion.offer(b"\x01" * MEM_SIZE, 5) is True
        assert champion.fitness == 5

    def test_tie_does_not_replace(self):
        """Equal fitness keeps the incumbent."""
        champion = Champion(genome=b"\x01" * MEM_SIZE, fitness=5)
        assert champion.offer(b"\x02" * MEM_SIZE, 5) is False
        assert champion.genome == b"\x01" * MEM_SIZE

    def test_zero_fitness_never_replaces_empty(self):
        """Stalled runs (fitness 0) cannot become champion."""
        champion = Champion()
        assert champion.offer(b"\x01" * MEM_SIZE, 0) is False
        assert champion.genome is None

    def test_genome_is_copied(self):
        """Later changes to the offered buffer do not leak in."""
        champion = Champion()
        genome = bytearray(MEM_SIZE)
        champion.offer(genome, 3)
        genome[0] = 9
        assert champion.genome[0] == 0


class TestHandleHalt:
    """Scoring and reseeding of halted engines."""

    def test_worse_run_keeps_champion(self, driver):
        """10 then 7 keeps the 10-step genome."""
        driver.handle_halt(finished_run(0x01, 10))
        driver.handle_halt(finished_run(0x02, 7))

        assert driver.champion.fitness == 10
        assert driver.champion.genome == bytes([0x01] * MEM_SIZE)

    def test_better_run_replaces_champion(self, driver):
        """10 then 15 moves to the 15-step genome."""
        driver.handle_halt(finished_run(0x01, 10))
        driver.handle_halt(finished_run(0x02, 15))

        assert driver.champion.fitness == 15
        assert driver.champion.genome == bytes([0x02] * MEM_SIZE)
        assert driver.improvements == 2

    def test_reseed_mutates_champion(self, driver):
        """A halted engine restarts from a mutated champion."""
        vm = finished_run(0x01, 10)
        driver.handle_halt(vm)

        genome = driver.champion.genome
        diff = sum(1 for a, b in zip(vm.initial_state, genome) if a != b)
        assert 2 <= diff <= 25
        assert vm.halted is False
        assert vm.total_steps_count == 0
        assert vm.memory == vm.initial_state

    def test_reseed_without_champion_randomizes(self, driver):
        """With no champion the engine gets fresh random memory."""
        vm = finished_run(0x01, 0)
        driver.handle_halt(vm)

        assert driver.champion.genome is None
        assert vm.halted is False
        assert vm.initial_state != bytearray([0x01] * MEM_SIZE)

    def test_counts_stalls(self, driver):
        """Stall halts are counted and score nothing."""
        vm = ByteVM()
        vm.load_program([0x07, 0x08] * 128)
        vm.run()
        assert vm.stalled

        driver.handle_halt(vm)
        assert driver.halts == 1
        assert driver.stalls == 1
        assert driver.champion.genome is None


class TestPersistence:
    """Champion saving."""

    def test_improvement_is_saved(self, tmp_path):
        """A new champion is written to best_path."""
        path = tmp_path / "best.bin"
        driver = EvolutionDriver(population_size=1, best_path=path, rng=random.Random(0))
        driver.handle_halt(finished_run(0x03, 12))
        assert path.read_bytes() == bytes([0x03] * MEM_SIZE)

    def test_non_improvement_is_not_saved(self, tmp_path):
        """A tie leaves the saved genome alone."""
        path = tmp_path / "best.bin"
        driver = EvolutionDriver(population_size=1, best_path=path, rng=random.Random(0))
        driver.handle_halt(finished_run(0x03, 12))
        driver.handle_halt(finished_run(0x04, 12))
        assert path.read_bytes() == bytes([0x03] * MEM_SIZE)

    def test_save_failure_is_logged(self, tmp_path, caplog):
        """A directory as target fails to open; the driver keeps going."""
        driver = EvolutionDriver(population_size=1, best_path=tmp_path, rng=random.Random(0))
        with caplog.at_level(logging.WARNING, logger="evo_vm.evolution"):
            improved = driver.handle_halt(finished_run(0x03, 12))

        assert improved is True
        assert driver.champion.fitness == 12
        assert "Failed to save best genome" in caplog.text

    def test_save_through_executor(self, tmp_path):
        """Saves can run on an executor."""
        path = tmp_path / "best.bin"
        with ThreadPoolExecutor(max_workers=1) as executor:
            driver = EvolutionDriver(
                population_size=1, best_path=path, rng=random.Random(0), executor=executor,
            )
            driver.handle_halt(finished_run(0x05, 3))
        assert path.read_bytes() == bytes([0x05] * MEM_SIZE)

    @pytest.mark.parametrize("seed", range(8))
    def test_slow_saves_end_at_champion(self, tmp_path, monkeypatch, seed):
        """With several workers and uneven save latency the file ends at the champion."""
        delays = random.Random(seed)
        latency = {fitness: delays.uniform(0, 0.01) for fitness in range(1, 40)}

        def slow_save(path, image):
            time.sleep(latency[image[0]])
            save_program(path, image)

        monkeypatch.setattr(evolution, "save_program", slow_save)

        path = tmp_path / "best.bin"
        with ThreadPoolExecutor(max_workers=4) as executor:
            driver = EvolutionDriver(
                population_size=1, best_path=path, rng=random.Random(0), executor=executor,
            )
            for fitness in range(1, 40):
                driver.handle_halt(finished_run(fitness, fitness))

        assert driver.champion.fitness == 39
        assert path.read_bytes() == driver.champion.genome

    def test_stale_save_is_skipped(self, tmp_path):
        """A save queued behind a better champion does not write."""
        path = tmp_path / "best.bin"
        driver = EvolutionDriver(population_size=1, best_path=path, rng=random.Random(0))
        driver.handle_halt(finished_run(0x09, 9))

        assert driver._write_if_latest(bytes([0x04] * MEM_SIZE), 4) is False
        assert path.read_bytes() == bytes([0x09] * MEM_SIZE)


class TestTick:
    """Population loop."""

    def test_population_size(self, driver):
        """The driver builds the requested number of running engines."""
        assert len(driver.population) == 4
        assert all(not vm.halted for vm in driver.population)

    def test_invalid_population(self):
        """An empty population is rejected."""
        with pytest.raises(ValueError):
            EvolutionDriver(population_size=0)

    def test_no_engine_left_halted(self, driver):
        """Every halted engine is reseeded within the same tick."""
        for _ in range(50):
            driver.tick()
            assert all(not vm.halted for vm in driver.population)
        assert driver.ticks == 50

    def test_random_programs_produce_a_champion(self):
        """Most random bytes are undefined opcodes, so runs end quickly."""
        driver = EvolutionDriver(population_size=8, rng=random.Random(1))
        driver.run(200)
        assert driver.halts > 0
        assert driver.champion.genome is not None
        assert driver.champion.fitness >= 1

    def test_seeded_sessions_are_reproducible(self):
        """Same seed, same session."""
        a = EvolutionDriver(population_size=6, rng=random.Random(123))
        b = EvolutionDriver(population_size=6, rng=random.Random(123))
        a.run(300)
        b.run(300)
        assert a.champion.fitness == b.champion.fitness
        assert a.champion.genome == b.champion.genome
        assert a.get_summary() == b.get_summary()

    def test_fitness_never_decreases(self):
        """Champion fitness is monotonic across ticks."""
        driver = EvolutionDriver(population_size=6, rng=random.Random(5))
        best = 0
        for _ in range(300):
            driver.tick()
            assert driver.champion.fitness >= best
            best = driver.champion.fitness


class TestConfig:
    """Building drivers from EvolutionConfig."""

    def test_from_config(self):
        """Config settings reach the driver."""
        config = EvolutionConfig(population_size=3, best_path=None, seed=9)
        driver = EvolutionDriver.from_config(config)
        assert len(driver.population) == 3
        assert driver.best_path is None

    def test_from_config_invalid(self):
        """Invalid configs are rejected before any engine is built."""
        with pytest.raises(ValueError):
            EvolutionDriver.from_config(EvolutionConfig(population_size=-1))

    def test_resume(self, tmp_path):
        """Resuming seeds every engine from the saved genome."""
        path = tmp_path / "seed.bin"
        genome = bytes([0x07] * MEM_SIZE)
        save_program(path, genome)

        config = EvolutionConfig(population_size=2, best_path=None, seed=1, resume_path=str(path))
        driver = EvolutionDriver.from_config(config)

        assert driver.champion.genome == genome
        assert driver.champion.fitness == 0
        for vm in driver.population:
            diff = sum(1 for a, b in zip(vm.initial_state, genome) if a != b)
            assert 2 <= diff <= 25

    def test_resume_missing_file(self, tmp_path):
        """A missing resume file propagates."""
        with pytest.raises(FileNotFoundError):
            resume_from(tmp_path / "missing.bin")
