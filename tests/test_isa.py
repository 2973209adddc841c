"""Tests for the instruction set and decoder."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from evo_vm.isa import MEM_SIZE, DecodedInstruction, Opcode, decode, mnemonic_for


class TestOpcodeFromByte:
    """Test byte to opcode mapping."""

    @pytest.mark.parametrize("value,expected", [
        (0x00, Opcode.NOP),
        (0x01, Opcode.LDA),
        (0x02, Opcode.STA),
        (0x03, Opcode.ADD),
        (0x04, Opcode.SUB),
        (0x05, Opcode.JMP),
        (0x06, Opcode.JZ),
        (0x07, Opcode.INC),
        (0x08, Opcode.DEC),
        (0x09, Opcode.SWP),
        (0x0A, Opcode.CMP),
        (0xFF, Opcode.HLT),
    ])
    def test_defined_opcodes(self, value, expected):
        """Defined bytes map to their opcode."""
        assert Opcode.from_byte(value) is expected

    def test_every_other_byte_is_unknown(self):
        """Undefined bytes all decode to the fallback variant."""
        defined = {op.value for op in Opcode if op is not Opcode.UNKNOWN}
        for value in range(256):
            if value not in defined:
                assert Opcode.from_byte(value) is Opcode.UNKNOWN

    def test_unknown_is_outside_byte_range(self):
        """UNKNOWN cannot collide with a real byte."""
        assert Opcode.UNKNOWN.value > 0xFF


class TestOpcodeProperties:
    """Test widths and mnemonics."""

    @pytest.mark.parametrize("op", [
        Opcode.LDA, Opcode.STA, Opcode.ADD, Opcode.SUB,
        Opcode.JMP, Opcode.JZ, Opcode.SWP, Opcode.CMP,
    ])
    def test_two_byte_opcodes(self, op):
        """Address-operand opcodes are two bytes wide."""
        assert op.width == 2
        assert op.has_operand is True

    @pytest.mark.parametrize("op", [
        Opcode.NOP, Opcode.INC, Opcode.DEC, Opcode.HLT, Opcode.UNKNOWN,
    ])
    def test_one_byte_opcodes(self, op):
        """Operand-free opcodes are one byte wide."""
        assert op.width == 1
        assert op.has_operand is False

    def test_mnemonics(self):
        """Mnemonics are opcode names, ??? for undefined bytes."""
        assert Opcode.JZ.mnemonic == "JZ"
        assert Opcode.HLT.mnemonic == "HLT"
        assert Opcode.UNKNOWN.mnemonic == "???"
        assert mnemonic_for(0x42) == "???"
        assert mnemonic_for(0x09) == "SWP"


class TestDecode:
    """Test decode()."""

    def test_decode_with_operand(self):
        """The byte after the opcode is its operand."""
        memory = bytearray(MEM_SIZE)
        memory[10] = 0x01
        memory[11] = 0x80
        instr = decode(memory, 10)
        assert instr == DecodedInstruction(pc=10, raw=0x01, opcode=Opcode.LDA, operand=0x80)

    def test_decode_without_operand_ignores_next_byte(self):
        """Operand-free opcodes report operand 0."""
        memory = bytearray(MEM_SIZE)
        memory[0] = 0x07
        memory[1] = 0x33
        instr = decode(memory, 0)
        assert instr.opcode is Opcode.INC
        assert instr.operand == 0

    def test_operand_past_end_reads_zero(self):
        """An operand fetch beyond the last cell yields 0."""
        memory = bytearray(MEM_SIZE)
        memory[MEM_SIZE - 1] = 0x05
        instr = decode(memory, MEM_SIZE - 1)
        assert instr.opcode is Opcode.JMP
        assert instr.operand == 0

    def test_unknown_keeps_raw_byte(self):
        """Undefined bytes keep their raw value for the trace."""
        memory = bytearray(MEM_SIZE)
        memory[0] = 0xAB
        instr = decode(memory, 0)
        assert instr.opcode is Opcode.UNKNOWN
        assert instr.raw == 0xAB


class TestTracePrefix:
    """Test trace prefix formatting."""

    def test_prefix_format(self):
        """Trace prefix is pc, mnemonic and opcode byte."""
        instr = DecodedInstruction(pc=7, raw=0x0A, opcode=Opcode.CMP, operand=3)
        assert instr.prefix() == "0007: CMP (0x0A)"

    def test_unknown_prefix(self):
        """Undefined bytes show as ???."""
        instr = DecodedInstruction(pc=123, raw=0xAB, opcode=Opcode.UNKNOWN)
        assert instr.prefix() == "0123: ??? (0xAB)"
