"""CHIP-8 virtual machine engine."""

from .config import Quirks, RunConfig
from .cpu import Chip8CPU, CPUState
from .decoder import Instruction, Op, decode, disassemble, disassemble_program
from .errors import (
    Chip8Error, OutOfBounds, ProgramTooLarge, StackOverflow, StackUnderflow,
    UnsupportedOpcode,
)
from .runner import NullAudio, NullDisplay, NullInput, Runner, load_rom_file

__version__ = "0.1.0"

__all__ = [
    "Chip8CPU", "CPUState", "Quirks", "RunConfig",
    "Instruction", "Op", "decode", "disassemble", "disassemble_program",
    "Chip8Error", "OutOfBounds", "ProgramTooLarge", "StackOverflow",
    "StackUnderflow", "UnsupportedOpcode",
    "Runner", "NullAudio", "NullDisplay", "NullInput", "load_rom_file",
]
