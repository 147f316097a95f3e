"""
CHIP-8 virtual machine engine.

The engine owns every piece of emulated hardware state and exposes a single
step primitive; pacing, rendering, audio and input live outside it.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from .config import Quirks
from .constants import (
    DISPLAY_H, DISPLAY_W, FLAG_REGISTER, FONT_GLYPH_SIZE, FONT_START,
    FONTSET, MAX_PROGRAM_SIZE, MEMORY_SIZE, NUM_KEYS, NUM_REGISTERS,
    PROGRAM_START, SPRITE_WIDTH, STACK_SIZE,
)
from .decoder import Instruction, Op, decode
from .errors import (
    OutOfBounds, ProgramTooLarge, StackOverflow, StackUnderflow,
)

logger = logging.getLogger(__name__)

VF = FLAG_REGISTER


# ═══════════════════════════════════════════════════════════════════════════════
# CPU STATE
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass
class CPUState:
    """CHIP-8 CPU state container"""
    # Memory
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))

    # Registers
    V: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)  # V0-VF
    I: int = 0              # Index register (12 bits significant)
    PC: int = PROGRAM_START # Program counter
    SP: int = 0             # Stack pointer

    # Stack
    stack: List[int] = field(default_factory=lambda: [0] * STACK_SIZE)

    # Timers, decremented once per executed cycle
    delay_timer: int = 0
    sound_timer: int = 0

    # Display (64x32), one byte per pixel
    display: np.ndarray = field(default_factory=lambda: np.zeros((DISPLAY_H, DISPLAY_W), dtype=np.uint8))

    # Keypad state
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)


# ═══════════════════════════════════════════════════════════════════════════════
# CHIP-8 CPU CORE
# ═══════════════════════════════════════════════════════════════════════════════

class Chip8CPU:
    """CHIP-8 fetch-decode-execute engine"""

    def __init__(self, quirks: Optional[Quirks] = None,
                 rng: Optional[random.Random] = None):
        self.state = CPUState()
        self.quirks = quirks if quirks is not None else Quirks()
        self.rng = rng if rng is not None else random.Random()
        self.draw_flag = False
        self._audio: Optional[Callable[[], None]] = None

        self._handlers: Dict[Op, Callable[[Instruction], None]] = {
            Op.CLS: self._op_cls,
            Op.RET: self._op_ret,
            Op.JP: self._op_jp,
            Op.CALL: self._op_call,
            Op.SE_VX_NN: self._op_se_vx_nn,
            Op.SNE_VX_NN: self._op_sne_vx_nn,
            Op.SE_VX_VY: self._op_se_vx_vy,
            Op.LD_VX_NN: self._op_ld_vx_nn,
            Op.ADD_VX_NN: self._op_add_vx_nn,
            Op.LD_VX_VY: self._op_ld_vx_vy,
            Op.OR: self._op_or,
            Op.AND: self._op_and,
            Op.XOR: self._op_xor,
            Op.ADD_VX_VY: self._op_add_vx_vy,
            Op.SUB: self._op_sub,
            Op.SHR: self._op_shr,
            Op.SUBN: self._op_subn,
            Op.SHL: self._op_shl,
            Op.SNE_VX_VY: self._op_sne_vx_vy,
            Op.LD_I: self._op_ld_i,
            Op.JP_V0: self._op_jp_v0,
            Op.RND: self._op_rnd,
            Op.DRW: self._op_drw,
            Op.SKP: self._op_skp,
            Op.SKNP: self._op_sknp,
            Op.LD_VX_DT: self._op_ld_vx_dt,
            Op.LD_VX_K: self._op_ld_vx_k,
            Op.LD_DT_VX: self._op_ld_dt_vx,
            Op.LD_ST_VX: self._op_ld_st_vx,
            Op.ADD_I_VX: self._op_add_i_vx,
            Op.LD_F_VX: self._op_ld_f_vx,
            Op.LD_B_VX: self._op_ld_b_vx,
            Op.STORE: self._op_store,
            Op.LOAD: self._op_load,
        }

        self._load_fontset()

    def _load_fontset(self):
        """Load built-in font sprites to memory"""
        self.state.memory[FONT_START:FONT_START + len(FONTSET)] = FONTSET

    def reset(self):
        """Reset CPU to initial state"""
        self.state = CPUState()
        self._load_fontset()
        self.draw_flag = False

    def load(self, data: bytes):
        """Copy a raw program image into memory at 0x200"""
        if len(data) > MAX_PROGRAM_SIZE:
            raise ProgramTooLarge(len(data), MAX_PROGRAM_SIZE)
        self.state.memory[PROGRAM_START:PROGRAM_START + len(data)] = data
        logger.debug("Loaded %d bytes at $%03X", len(data), PROGRAM_START)

    def link_audio(self, callback: Optional[Callable[[], None]]):
        """Install the callable notified when a tone should sound"""
        self._audio = callback

    # ─── Input ───

    def set_keys(self, keys: Sequence[bool]):
        """Overwrite the whole key latch"""
        if len(keys) != NUM_KEYS:
            raise ValueError(f"Expected {NUM_KEYS} key states, got {len(keys)}")
        self.state.keys = [bool(k) for k in keys]

    def key_down(self, key: int):
        """Handle key press"""
        if 0 <= key < NUM_KEYS:
            self.state.keys[key] = True

    def key_up(self, key: int):
        """Handle key release"""
        if 0 <= key < NUM_KEYS:
            self.state.keys[key] = False

    # ─── Redraw protocol ───

    def needs_redraw(self) -> bool:
        return self.draw_flag

    def take_redraw_flag(self) -> bool:
        """Clear the redraw flag, returning whether it was set"""
        pending = self.draw_flag
        self.draw_flag = False
        return pending

    # ─── Introspection ───

    def framebuffer(self) -> np.ndarray:
        """Read-only row-major view of the 64*32 display bytes"""
        view = self.state.display.reshape(-1).view()
        view.flags.writeable = False
        return view

    def registers(self) -> bytes:
        return bytes(self.state.V)

    def program_counter(self) -> int:
        return self.state.PC

    def index_register(self) -> int:
        return self.state.I

    def stack_pointer(self) -> int:
        return self.state.SP

    def delay_timer(self) -> int:
        return self.state.delay_timer

    def sound_timer(self) -> int:
        return self.state.sound_timer

    # ─── Instruction cycle ───

    def fetch(self) -> int:
        """Read the big-endian word at PC without advancing"""
        pc = self.state.PC
        if pc < 0 or pc + 1 >= MEMORY_SIZE:
            raise OutOfBounds(pc, "fetch")
        return (self.state.memory[pc] << 8) | self.state.memory[pc + 1]

    def step(self) -> Instruction:
        """Execute one fetch-decode-execute cycle and tick the timers"""
        pc = self.state.PC
        instr = decode(self.fetch(), pc)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("$%03X: %04X  %s", pc, instr.raw, instr.mnemonic())

        self._handlers[instr.op](instr)
        self._update_timers()
        return instr

    def _update_timers(self):
        """Decrement timers, notifying the audio sink while sound is active"""
        s = self.state
        if s.sound_timer > 0:
            s.sound_timer -= 1
            if self._audio is not None:
                self._audio()
        if s.delay_timer > 0:
            s.delay_timer -= 1

    def _next(self, skip: bool = False):
        self.state.PC += 4 if skip else 2

    def _check_span(self, start: int, length: int):
        """Raise OutOfBounds unless memory[start:start+length] is addressable"""
        if length <= 0:
            return
        end = start + length - 1
        if start < 0 or end >= MEMORY_SIZE:
            raise OutOfBounds(max(start, end))

    # ─── 0x0XXX ───

    def _op_cls(self, ins: Instruction):
        self.state.display.fill(0)
        self.draw_flag = True
        self._next()

    def _op_ret(self, ins: Instruction):
        s = self.state
        if s.SP == 0:
            raise StackUnderflow(s.PC)
        s.SP -= 1
        # Stack holds the CALL's own address, resume after it
        s.PC = s.stack[s.SP] + 2

    # ─── Flow control ───

    def _op_jp(self, ins: Instruction):
        self.state.PC = ins.nnn

    def _op_call(self, ins: Instruction):
        s = self.state
        if s.SP >= STACK_SIZE:
            raise StackOverflow(s.PC)
        s.stack[s.SP] = s.PC
        s.SP += 1
        s.PC = ins.nnn

    def _op_jp_v0(self, ins: Instruction):
        s = self.state
        if self.quirks.jump_pushes_stack:
            if s.SP >= STACK_SIZE:
                raise StackOverflow(s.PC)
            s.stack[s.SP] = s.PC
            s.SP += 1
        s.PC = (s.V[0] + ins.nnn) % MEMORY_SIZE

    def _op_se_vx_nn(self, ins: Instruction):
        self._next(self.state.V[ins.x] == ins.nn)

    def _op_sne_vx_nn(self, ins: Instruction):
        self._next(self.state.V[ins.x] != ins.nn)

    def _op_se_vx_vy(self, ins: Instruction):
        V = self.state.V
        self._next(V[ins.x] == V[ins.y])

    def _op_sne_vx_vy(self, ins: Instruction):
        V = self.state.V
        self._next(V[ins.x] != V[ins.y])

    # ─── Register loads and arithmetic ───

    def _op_ld_vx_nn(self, ins: Instruction):
        self.state.V[ins.x] = ins.nn
        self._next()

    def _op_add_vx_nn(self, ins: Instruction):
        V = self.state.V
        V[ins.x] = (V[ins.x] + ins.nn) & 0xFF
        self._next()

    def _op_ld_vx_vy(self, ins: Instruction):
        V = self.state.V
        V[ins.x] = V[ins.y]
        self._next()

    def _op_or(self, ins: Instruction):
        V = self.state.V
        V[ins.x] |= V[ins.y]
        self._next()

    def _op_and(self, ins: Instruction):
        V = self.state.V
        V[ins.x] &= V[ins.y]
        self._next()

    def _op_xor(self, ins: Instruction):
        V = self.state.V
        V[ins.x] ^= V[ins.y]
        self._next()

    # Flag first, result second: with X == F the result is what survives.

    def _op_add_vx_vy(self, ins: Instruction):
        V = self.state.V
        result = V[ins.x] + V[ins.y]
        V[VF] = 1 if result > 0xFF else 0
        V[ins.x] = result & 0xFF
        self._next()

    def _op_sub(self, ins: Instruction):
        V = self.state.V
        vx, vy = V[ins.x], V[ins.y]
        V[VF] = 1 if vx > vy else 0
        V[ins.x] = (vx - vy) & 0xFF
        self._next()

    def _op_shr(self, ins: Instruction):
        V = self.state.V
        vx = V[ins.x]
        V[VF] = vx & 0x1
        V[ins.x] = vx >> 1
        self._next()

    def _op_subn(self, ins: Instruction):
        V = self.state.V
        vx, vy = V[ins.x], V[ins.y]
        V[VF] = 1 if vy > vx else 0
        V[ins.x] = (vy - vx) & 0xFF
        self._next()

    def _op_shl(self, ins: Instruction):
        V = self.state.V
        vx = V[ins.x]
        V[VF] = (vx >> 7) & 0x1
        V[ins.x] = (vx << 1) & 0xFF
        self._next()

    def _op_ld_i(self, ins: Instruction):
        self.state.I = ins.nnn
        self._next()

    def _op_rnd(self, ins: Instruction):
        self.state.V[ins.x] = self.rng.randint(0, 255) & ins.nn
        self._next()

    # ─── DXYN: DRW Vx, Vy, nibble ───

    def _op_drw(self, ins: Instruction):
        s = self.state
        self._check_span(s.I, ins.n)
        self._draw_sprite(s.V[ins.x], s.V[ins.y], ins.n)
        self._next()

    def _draw_sprite(self, x: int, y: int, height: int):
        """XOR a sprite onto the display, wrapping at the screen edges"""
        s = self.state
        x %= DISPLAY_W
        y %= DISPLAY_H
        collision = 0

        for row in range(height):
            sprite_byte = s.memory[s.I + row]
            py = (y + row) % DISPLAY_H
            for col in range(SPRITE_WIDTH):
                if sprite_byte & (0x80 >> col):
                    px = (x + col) % DISPLAY_W
                    if s.display[py, px]:
                        collision = 1
                    s.display[py, px] ^= 1

        s.V[VF] = collision
        self.draw_flag = True

    # ─── EX9E/EXA1: Key operations ───

    def _key_pressed(self, key: int) -> bool:
        if key >= NUM_KEYS:
            raise OutOfBounds(key, "key")
        return self.state.keys[key]

    def _op_skp(self, ins: Instruction):
        self._next(self._key_pressed(self.state.V[ins.x]))

    def _op_sknp(self, ins: Instruction):
        self._next(not self._key_pressed(self.state.V[ins.x]))

    # ─── FX07-FX65: Misc operations ───

    def _op_ld_vx_dt(self, ins: Instruction):
        self.state.V[ins.x] = self.state.delay_timer
        self._next()

    def _op_ld_vx_k(self, ins: Instruction):
        s = self.state
        for key, pressed in enumerate(s.keys):
            if pressed:
                s.V[ins.x] = key
                self._next()
                return
        # No key yet: leave PC alone so this instruction runs again

    def _op_ld_dt_vx(self, ins: Instruction):
        self.state.delay_timer = self.state.V[ins.x]
        self._next()

    def _op_ld_st_vx(self, ins: Instruction):
        # Any nonzero value plays the tone exactly once
        self.state.sound_timer = 1 if self.state.V[ins.x] else 0
        self._next()

    def _op_add_i_vx(self, ins: Instruction):
        s = self.state
        s.I = (s.I + s.V[ins.x]) & 0xFFFF
        self._next()

    def _op_ld_f_vx(self, ins: Instruction):
        s = self.state
        s.I = FONT_START + s.V[ins.x] * FONT_GLYPH_SIZE
        self._next()

    def _op_ld_b_vx(self, ins: Instruction):
        s = self.state
        self._check_span(s.I, 3)
        value = s.V[ins.x]
        s.memory[s.I] = value // 100
        s.memory[s.I + 1] = (value // 10) % 10
        s.memory[s.I + 2] = value % 10
        self._next()

    def _op_store(self, ins: Instruction):
        s = self.state
        self._check_span(s.I, ins.x + 1)
        s.memory[s.I:s.I + ins.x + 1] = bytes(s.V[:ins.x + 1])
        self._next()

    def _op_load(self, ins: Instruction):
        s = self.state
        self._check_span(s.I, ins.x + 1)
        for i in range(ins.x + 1):
            s.V[i] = s.memory[s.I + i]
        if self.quirks.load_increments_index:
            s.I = (s.I + ins.x + 1) & 0xFFFF
        self._next()
