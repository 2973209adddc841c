#!/usr/bin/env python3
"""EVO-VM Command Line Interface.

Run saved 256-byte programs, or evolve new ones.

Usage:
    python main.py --program best_vm_program.bin --trace
    python main.py --hex "07 07 07 FF"
    python main.py --evolve --ticks 100000 --population 24 --output best_vm_program.bin
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from evo_vm import ByteVM, EvolutionConfig, EvolutionDriver
from evo_vm.config import (
    DEFAULT_BEST_PATH,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_CYCLES,
    DEFAULT_POPULATION,
    DEFAULT_TICKS,
    configure_logging,
)
from evo_vm.persistence import parse_hex


logger = logging.getLogger("evo_vm.cli")


def run_program(args) -> int:
    """Load a single program, run it and report the result."""
    vm = ByteVM(keep_history=args.trace)

    try:
        if args.program:
            vm.load_from_file(args.program)
            if not args.quiet:
                print(f"Loading program: {args.program}")
        else:
            vm.load_program(parse_hex(args.hex))
            if not args.quiet:
                print("Running inline program")
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    if not args.quiet:
        print("-" * 60)
        print("Executing...")
        print("-" * 60)

    exit_code = 0
    try:
        vm.run(max_cycles=args.max_cycles)
    except RuntimeError as e:
        print(f"Execution error: {e}")
        exit_code = 1

    if args.trace:
        vm.print_trace()
    elif not args.quiet:
        print()
        summary = vm.get_summary()
        print(f"Steps: {summary['steps']}")
        print(f"Halted: {summary['halted']} ({summary['halt_reason']})")
        print(f"PC: {summary['pc']}")
        print(f"ACC: {summary['acc']}")
        print("Recent instructions:")
        for line in summary["recent_instructions"]:
            print(f"  {line}")
    else:
        print(f"steps={vm.total_steps_count} acc={vm.acc}")

    return exit_code


def run_evolution(args) -> int:
    """Run an evolution session and report the champion."""
    config = EvolutionConfig(
        population_size=args.population,
        best_path=args.output,
        ticks=args.ticks,
        seed=args.seed,
        resume_path=args.resume,
        log_level=args.log_level,
    )

    try:
        driver = EvolutionDriver.from_config(config)
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 1

    logger.info(
        "Evolving %d engines for %d ticks", config.population_size, config.ticks,
    )
    try:
        driver.run(config.ticks)
    except KeyboardInterrupt:
        logger.info("Interrupted after %d ticks", driver.ticks)

    summary = driver.get_summary()
    if not args.quiet:
        print()
        print(f"Ticks: {summary['ticks']}")
        print(f"Halts: {summary['halts']} (stalls: {summary['stalls']})")
        print(f"Improvements: {summary['improvements']}")
        print(f"Best fitness: {summary['best_fitness']}")
        if config.best_path and driver.champion.genome is not None:
            print(f"Best genome: {config.best_path}")
    else:
        print(f"best_fitness={summary['best_fitness']}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="EVO-VM: Evolvable 256-byte Virtual Machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the saved best program with a full trace
    python main.py --program best_vm_program.bin --trace

    # Run inline hex bytes (INC, INC, INC, HLT)
    python main.py --hex "07 07 07 FF"

    # Evolve for 100k ticks with a fixed seed
    python main.py --evolve --ticks 100000 --seed 42

    # Continue evolving from a saved genome
    python main.py --evolve --resume best_vm_program.bin
        """
    )

    parser.add_argument(
        "--program", "-p",
        type=str,
        help="Path to a 256-byte program file"
    )
    parser.add_argument(
        "--hex", "-x",
        type=str,
        help="Inline program as hex bytes (e.g. \"07 07 FF\")"
    )
    parser.add_argument(
        "--evolve", "-e",
        action="store_true",
        help="Run an evolution session instead of a single program"
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=DEFAULT_MAX_CYCLES,
        help=f"Maximum execution steps for a single program. Default: {DEFAULT_MAX_CYCLES}"
    )
    parser.add_argument(
        "--ticks",
        type=int,
        default=DEFAULT_TICKS,
        help=f"Evolution ticks to run. Default: {DEFAULT_TICKS}"
    )
    parser.add_argument(
        "--population",
        type=int,
        default=DEFAULT_POPULATION,
        help=f"Number of engines in the population. Default: {DEFAULT_POPULATION}"
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=DEFAULT_BEST_PATH,
        help=f"File the best genome is saved to. Default: {DEFAULT_BEST_PATH}"
    )
    parser.add_argument(
        "--resume",
        type=str,
        help="Start evolution from a saved genome"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for a reproducible session"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output"
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=DEFAULT_LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level. Default: {DEFAULT_LOG_LEVEL}"
    )

    args = parser.parse_args()

    # Validate arguments
    if not args.evolve and not args.program and not args.hex:
        parser.error("One of --program, --hex or --evolve is required")

    configure_logging(args.log_level)

    if args.evolve:
        return run_evolution(args)
    return run_program(args)


if __name__ == "__main__":
    sys.exit(main())
