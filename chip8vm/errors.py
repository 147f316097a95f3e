"""Errors raised by the CHIP-8 engine."""

from typing import Optional


class Chip8Error(Exception):
    """Base class for every engine failure"""


class UnsupportedOpcode(Chip8Error):
    """Instruction word does not decode to a known operation"""

    def __init__(self, opcode: int, address: Optional[int] = None):
        self.opcode = opcode
        self.address = address
        where = f" at ${address:03X}" if address is not None else ""
        super().__init__(f"Unsupported opcode ${opcode:04X}{where}")


class OutOfBounds(Chip8Error):
    """Memory or key access beyond the addressable extent"""

    def __init__(self, address: int, what: str = "memory"):
        self.address = address
        self.what = what
        super().__init__(f"{what} access out of bounds: ${address:X}")


class StackOverflow(Chip8Error):
    """CALL with every stack frame already in use"""

    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Stack overflow calling from ${address:03X}")


class StackUnderflow(Chip8Error):
    """RET with an empty stack"""

    def __init__(self, address: int):
        self.address = address
        super().__init__(f"Stack underflow returning from ${address:03X}")


class ProgramTooLarge(Chip8Error):
    """Program image does not fit between 0x200 and the end of memory"""

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Program is {size} bytes, at most {limit} fit in memory")
