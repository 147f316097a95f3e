"""
Instruction decoding for the CHIP-8 engine.

A 16-bit word is parsed once into an :class:`Instruction` carrying the
operation kind and every operand field, so the executor can dispatch on
``Op`` in a single level without re-extracting nibbles per opcode.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional

from .constants import PROGRAM_START
from .errors import UnsupportedOpcode


class Op(Enum):
    CLS = auto()            # 00E0
    RET = auto()            # 00EE
    JP = auto()             # 1NNN
    CALL = auto()           # 2NNN
    SE_VX_NN = auto()       # 3XNN
    SNE_VX_NN = auto()      # 4XNN
    SE_VX_VY = auto()       # 5XY0
    LD_VX_NN = auto()       # 6XNN
    ADD_VX_NN = auto()      # 7XNN
    LD_VX_VY = auto()       # 8XY0
    OR = auto()             # 8XY1
    AND = auto()            # 8XY2
    XOR = auto()            # 8XY3
    ADD_VX_VY = auto()      # 8XY4
    SUB = auto()            # 8XY5
    SHR = auto()            # 8XY6
    SUBN = auto()           # 8XY7
    SHL = auto()            # 8XYE
    SNE_VX_VY = auto()      # 9XY0
    LD_I = auto()           # ANNN
    JP_V0 = auto()          # BNNN
    RND = auto()            # CXNN
    DRW = auto()            # DXYN
    SKP = auto()            # EX9E
    SKNP = auto()           # EXA1
    LD_VX_DT = auto()       # FX07
    LD_VX_K = auto()        # FX0A
    LD_DT_VX = auto()       # FX15
    LD_ST_VX = auto()       # FX18
    ADD_I_VX = auto()       # FX1E
    LD_F_VX = auto()        # FX29
    LD_B_VX = auto()        # FX33
    STORE = auto()          # FX55
    LOAD = auto()           # FX65


_MNEMONICS: Dict[Op, str] = {
    Op.CLS: "CLS",
    Op.RET: "RET",
    Op.JP: "JP ${nnn:03X}",
    Op.CALL: "CALL ${nnn:03X}",
    Op.SE_VX_NN: "SE V{x:X}, ${nn:02X}",
    Op.SNE_VX_NN: "SNE V{x:X}, ${nn:02X}",
    Op.SE_VX_VY: "SE V{x:X}, V{y:X}",
    Op.LD_VX_NN: "LD V{x:X}, ${nn:02X}",
    Op.ADD_VX_NN: "ADD V{x:X}, ${nn:02X}",
    Op.LD_VX_VY: "LD V{x:X}, V{y:X}",
    Op.OR: "OR V{x:X}, V{y:X}",
    Op.AND: "AND V{x:X}, V{y:X}",
    Op.XOR: "XOR V{x:X}, V{y:X}",
    Op.ADD_VX_VY: "ADD V{x:X}, V{y:X}",
    Op.SUB: "SUB V{x:X}, V{y:X}",
    Op.SHR: "SHR V{x:X}",
    Op.SUBN: "SUBN V{x:X}, V{y:X}",
    Op.SHL: "SHL V{x:X}",
    Op.SNE_VX_VY: "SNE V{x:X}, V{y:X}",
    Op.LD_I: "LD I, ${nnn:03X}",
    Op.JP_V0: "JP V0, ${nnn:03X}",
    Op.RND: "RND V{x:X}, ${nn:02X}",
    Op.DRW: "DRW V{x:X}, V{y:X}, {n}",
    Op.SKP: "SKP V{x:X}",
    Op.SKNP: "SKNP V{x:X}",
    Op.LD_VX_DT: "LD V{x:X}, DT",
    Op.LD_VX_K: "LD V{x:X}, K",
    Op.LD_DT_VX: "LD DT, V{x:X}",
    Op.LD_ST_VX: "LD ST, V{x:X}",
    Op.ADD_I_VX: "ADD I, V{x:X}",
    Op.LD_F_VX: "LD F, V{x:X}",
    Op.LD_B_VX: "LD B, V{x:X}",
    Op.STORE: "LD [I], V{x:X}",
    Op.LOAD: "LD V{x:X}, [I]",
}

# Families that dispatch on the whole word, the low nibble or the low byte
_SYSTEM_OPS = {0x00E0: Op.CLS, 0x00EE: Op.RET}

_SINGLE_OPS = {
    0x1: Op.JP, 0x2: Op.CALL, 0x3: Op.SE_VX_NN, 0x4: Op.SNE_VX_NN,
    0x6: Op.LD_VX_NN, 0x7: Op.ADD_VX_NN, 0xA: Op.LD_I, 0xB: Op.JP_V0,
    0xC: Op.RND, 0xD: Op.DRW,
}

_ALU_OPS = {
    0x0: Op.LD_VX_VY, 0x1: Op.OR, 0x2: Op.AND, 0x3: Op.XOR,
    0x4: Op.ADD_VX_VY, 0x5: Op.SUB, 0x6: Op.SHR, 0x7: Op.SUBN, 0xE: Op.SHL,
}

_KEY_OPS = {0x9E: Op.SKP, 0xA1: Op.SKNP}

_MISC_OPS = {
    0x07: Op.LD_VX_DT, 0x0A: Op.LD_VX_K, 0x15: Op.LD_DT_VX, 0x18: Op.LD_ST_VX,
    0x1E: Op.ADD_I_VX, 0x29: Op.LD_F_VX, 0x33: Op.LD_B_VX, 0x55: Op.STORE,
    0x65: Op.LOAD,
}


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction word"""
    op: Op
    raw: int
    x: int
    y: int
    n: int
    nn: int
    nnn: int

    def mnemonic(self) -> str:
        """Assembly-style rendering of the instruction"""
        return _MNEMONICS[self.op].format(x=self.x, y=self.y, n=self.n,
                                          nn=self.nn, nnn=self.nnn)

    def __str__(self) -> str:
        return self.mnemonic()


def _lookup(opcode: int) -> Optional[Op]:
    family = (opcode >> 12) & 0xF
    n = opcode & 0x000F
    nn = opcode & 0x00FF

    if family == 0x0:
        return _SYSTEM_OPS.get(opcode)
    if family in _SINGLE_OPS:
        return _SINGLE_OPS[family]
    if family == 0x5:
        return Op.SE_VX_VY if n == 0 else None
    if family == 0x8:
        return _ALU_OPS.get(n)
    if family == 0x9:
        return Op.SNE_VX_VY if n == 0 else None
    if family == 0xE:
        return _KEY_OPS.get(nn)
    return _MISC_OPS.get(nn)


def decode(opcode: int, address: Optional[int] = None) -> Instruction:
    """Decode a 16-bit word, raising UnsupportedOpcode for unknown patterns"""
    opcode &= 0xFFFF
    op = _lookup(opcode)
    if op is None:
        raise UnsupportedOpcode(opcode, address)

    return Instruction(
        op=op,
        raw=opcode,
        x=(opcode >> 8) & 0x0F,     # 4-bit register index
        y=(opcode >> 4) & 0x0F,     # 4-bit register index
        n=opcode & 0x000F,          # 4-bit constant
        nn=opcode & 0x00FF,         # 8-bit constant
        nnn=opcode & 0x0FFF,        # 12-bit address
    )


def disassemble(opcode: int) -> str:
    """Disassemble opcode to human-readable string"""
    try:
        return decode(opcode).mnemonic()
    except UnsupportedOpcode:
        return f"??? ${opcode & 0xFFFF:04X}"


def disassemble_program(data: bytes, start: int = PROGRAM_START) -> List[str]:
    """
    Convert a raw program image into disassembly lines.

    Each line reads "ADDR:  MNEMONIC". A trailing odd byte is shown as data.
    """
    lines = []
    addr = start
    i = 0
    while i + 1 < len(data):
        op = (data[i] << 8) | data[i + 1]
        lines.append(f"{addr:04X}:  {disassemble(op)}")
        addr += 2
        i += 2
    if i < len(data):
        lines.append(f"{addr:04X}:  .byte ${data[i]:02X}")
    return lines
