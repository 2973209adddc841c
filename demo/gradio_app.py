"""EVO-VM Interactive Demo.

A Gradio web interface for running and inspecting EVO-VM programs.

Usage:
    cd /path/to/evo-vm
    python demo/gradio_app.py

Features:
    - Enter a program as hex bytes or upload a saved 256-byte .bin file
    - See step-by-step execution trace and halt reason
    - View the final 16x16 memory grid
    - Run a short evolution session and inspect the champion genome
"""

import random
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from evo_vm import ByteVM, EvolutionDriver
from evo_vm.persistence import parse_hex


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Count to 3": "07 07 07 FF",

    "Count down to zero": """01 09    ; LDA 9      acc = 5
08       ; DEC
06 07    ; JZ 7       done when acc == 0
05 02    ; JMP 2
FF       ; HLT
00
05       ; data: 5""",

    "Add two cells": """01 08    ; LDA 8
03 09    ; ADD 9
02 0A    ; STA 10
FF       ; HLT
00
14 16    ; data: 20, 22""",

    "Stall (INC/DEC)": " ".join(["07 08"] * 16),

    "Custom": ""
}


def strip_comments(source: str) -> str:
    """Drop ``;`` comments from a hex listing."""
    return "\n".join(line.split(";", 1)[0] for line in source.splitlines())


# =============================================================================
# Execution Functions
# =============================================================================

def format_memory(vm: ByteVM) -> str:
    """Format memory as a 16x16 grid, marking the pc cell."""
    lines = ["     " + " ".join(f" {c:X}" for c in range(16))]
    for row in range(16):
        cells = []
        for col in range(16):
            idx = row * 16 + col
            mark = "*" if idx == vm.pc else " "
            cells.append(f"{vm.memory[idx]:02X}{mark}")
        lines.append(f"{row * 16:3}: " + "".join(cells))
    return "\n".join(lines)


def run_program(program: str, upload, max_cycles: int) -> tuple:
    """Execute a program and return results.

    Args:
        program: Hex bytes, optionally with ; comments
        upload: Uploaded program file (takes precedence over program text)
        max_cycles: Maximum execution steps

    Returns:
        Tuple of (summary_text, trace_text, memory_text)
    """
    vm = ByteVM(keep_history=True)

    try:
        if upload is not None:
            vm.load_from_file(upload if isinstance(upload, str) else upload.name)
        else:
            data = parse_hex(strip_comments(program))
            if not data:
                return "Error: No program provided", "", ""
            vm.load_program(data)
    except (OSError, ValueError) as e:
        return f"Error: {e}", "", ""

    try:
        trace = vm.run(max_cycles=int(max_cycles))
    except RuntimeError as e:
        error_msg = str(e)
        trace = vm.history
    else:
        error_msg = None

    # Format summary
    summary = vm.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Steps: {summary['steps']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"Halt reason: {summary['halt_reason']}",
        f"PC: {summary['pc']}",
        f"ACC: {summary['acc']}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")
    summary_text = "\n".join(summary_lines)

    # Format trace
    trace_lines = [
        "EXECUTION TRACE",
        "=" * 60,
    ]
    for entry in trace[:200]:  # Limit to 200 entries
        trace_lines.append(entry.text)
    if len(trace) > 200:
        trace_lines.append(f"\n... ({len(trace) - 200} more entries)")
    trace_text = "\n".join(trace_lines)

    return summary_text, trace_text, format_memory(vm)


def run_evolution(population: int, ticks: int, seed: float) -> tuple:
    """Run a short evolution session in memory.

    Returns:
        Tuple of (summary_text, champion_memory_text)
    """
    rng = random.Random(int(seed))
    driver = EvolutionDriver(population_size=int(population), rng=rng)
    champion = driver.run(int(ticks))
    summary = driver.get_summary()

    summary_text = "\n".join([
        "EVOLUTION SUMMARY",
        "=" * 40,
        f"Ticks: {summary['ticks']}",
        f"Halts: {summary['halts']} (stalls: {summary['stalls']})",
        f"Improvements: {summary['improvements']}",
        f"Best fitness: {summary['best_fitness']}",
    ])

    if champion.genome is None:
        return summary_text, "No run has finished yet"

    vm = ByteVM()
    vm.load_program(champion.genome)
    return summary_text, format_memory(vm)


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="EVO-VM Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # EVO-VM: Evolvable 256-byte Virtual Machine

        A tiny accumulator machine whose programs are raw 256-byte images.
        Programs are scored by how many instructions they survive before halting,
        and evolved by mutating the best one found so far.

        **Cycle**: `fetch -> decode -> registry -> execute -> stall check`
        """)

        with gr.Tab("Run Program"):
            with gr.Row():
                with gr.Column(scale=2):
                    gr.Markdown("### Program")

                    example_dropdown = gr.Dropdown(
                        choices=list(EXAMPLE_PROGRAMS.keys()),
                        value="Count to 3",
                        label="Load Example"
                    )

                    program_input = gr.Textbox(
                        value=EXAMPLE_PROGRAMS["Count to 3"],
                        label="Hex Bytes",
                        lines=10,
                        placeholder="07 07 07 FF"
                    )

                    upload = gr.File(label="Or upload a .bin program", type="filepath")

                    max_cycles = gr.Slider(
                        minimum=16,
                        maximum=100000,
                        value=10000,
                        step=16,
                        label="Max Steps"
                    )

                    run_button = gr.Button("Run Program", variant="primary")

                with gr.Column(scale=3):
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=8,
                        interactive=False
                    )
                    memory_output = gr.Textbox(
                        label="Final Memory (* = PC)",
                        lines=18,
                        interactive=False
                    )

            trace_output = gr.Textbox(
                label="Execution Trace",
                lines=20,
                interactive=False
            )

        with gr.Tab("Evolve"):
            with gr.Row():
                with gr.Column(scale=2):
                    population = gr.Slider(
                        minimum=1,
                        maximum=64,
                        value=24,
                        step=1,
                        label="Population"
                    )
                    ticks = gr.Slider(
                        minimum=100,
                        maximum=200000,
                        value=10000,
                        step=100,
                        label="Ticks"
                    )
                    seed = gr.Number(value=42, label="Seed", precision=0)
                    evolve_button = gr.Button("Evolve", variant="primary")

                with gr.Column(scale=3):
                    evolve_summary = gr.Textbox(
                        label="Summary",
                        lines=8,
                        interactive=False
                    )
                    champion_output = gr.Textbox(
                        label="Champion Genome",
                        lines=18,
                        interactive=False
                    )

        # ISA Reference
        with gr.Accordion("ISA Reference", open=False):
            gr.Markdown("""
            | Opcode | Mnemonic | Width | Effect |
            |--------|----------|-------|--------|
            | `00` | NOP | 1 | no operation |
            | `01 a` | LDA | 2 | acc = mem[a] |
            | `02 a` | STA | 2 | mem[a] = acc |
            | `03 a` | ADD | 2 | acc = acc + mem[a] (mod 256) |
            | `04 a` | SUB | 2 | acc = acc - mem[a] (mod 256) |
            | `05 a` | JMP | 2 | pc = a |
            | `06 a` | JZ | 2 | pc = a if acc == 0 |
            | `07` | INC | 1 | acc = acc + 1 (mod 256) |
            | `08` | DEC | 1 | acc = acc - 1 (mod 256) |
            | `09 a` | SWP | 2 | swap acc and mem[a] |
            | `0A a` | CMP | 2 | compare acc with mem[a] (trace only) |
            | `FF` | HLT | 1 | halt |

            Any other byte halts the machine. A run whose last 16 instructions use
            at most 2 distinct opcodes is stopped as a stall and scores 0.

            **Memory map**: 250/251 food sensors (128 = neutral),
            252-255 move left/right/up/down.
            """)

        # Event handlers
        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, upload, max_cycles],
            outputs=[summary_output, trace_output, memory_output]
        )

        evolve_button.click(
            fn=run_evolution,
            inputs=[population, ticks, seed],
            outputs=[evolve_summary, champion_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
