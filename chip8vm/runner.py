"""
Collaborators around the engine: program loading, the sink/source
interfaces and a headless driver loop.
"""

import logging
import time
from typing import Optional, Protocol, Sequence

import numpy as np

from .config import RunConfig
from .constants import NUM_KEYS
from .cpu import Chip8CPU
from .errors import Chip8Error

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# COLLABORATOR INTERFACES
# ═══════════════════════════════════════════════════════════════════════════════

class DisplaySink(Protocol):
    def render(self, framebuffer: np.ndarray) -> None: ...


class InputSource(Protocol):
    def poll(self) -> Sequence[bool]: ...


class AudioSink(Protocol):
    def play_tone(self) -> None: ...


class NullDisplay:
    """Display sink that only counts frames"""

    def __init__(self):
        self.frames = 0

    def render(self, framebuffer: np.ndarray) -> None:
        self.frames += 1


class NullInput:
    """Input source with no key ever pressed"""

    def poll(self) -> Sequence[bool]:
        return [False] * NUM_KEYS


class NullAudio:
    """Audio sink that only counts tones"""

    def __init__(self):
        self.tones = 0

    def play_tone(self) -> None:
        self.tones += 1


def load_rom_file(path: str) -> bytes:
    """Read a raw program image; there is no header"""
    with open(path, 'rb') as f:
        data = f.read()
    logger.info("Read %d bytes from %s", len(data), path)
    return data


# ═══════════════════════════════════════════════════════════════════════════════
# DRIVER LOOP
# ═══════════════════════════════════════════════════════════════════════════════

class Runner:
    """Feeds input, steps the engine and hands frames to the display"""

    def __init__(self, cpu: Chip8CPU,
                 display: Optional[DisplaySink] = None,
                 input_source: Optional[InputSource] = None,
                 audio: Optional[AudioSink] = None,
                 config: Optional[RunConfig] = None):
        self.cpu = cpu
        self.display = display if display is not None else NullDisplay()
        self.input_source = input_source if input_source is not None else NullInput()
        self.audio = audio if audio is not None else NullAudio()
        self.config = config if config is not None else RunConfig()
        self.cycles = 0
        self.running = False

        self.cpu.link_audio(self.audio.play_tone)

    def tick(self):
        """One driver iteration: keys in, one step, frame out if dirty"""
        self.cpu.set_keys(self.input_source.poll())
        self.cpu.step()
        self.cycles += 1
        if self.cpu.needs_redraw():
            self.display.render(self.cpu.framebuffer())
            self.cpu.take_redraw_flag()

    def stop(self):
        self.running = False

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Step until stopped or the cycle budget runs out; returns cycles run"""
        if max_cycles is None:
            max_cycles = self.config.max_cycles
        delay = self.config.cycle_delay_ms / 1000.0
        start = self.cycles

        self.running = True
        logger.info("Running (delay %.1f ms, budget %s)", self.config.cycle_delay_ms,
                    max_cycles if max_cycles is not None else "unlimited")
        try:
            while self.running:
                if max_cycles is not None and self.cycles - start >= max_cycles:
                    break
                self.tick()
                if delay > 0:
                    time.sleep(delay)
        except Chip8Error as e:
            logger.error("Halted after %d cycles at $%03X: %s",
                         self.cycles - start, self.cpu.program_counter(), e)
            raise
        finally:
            self.running = False

        logger.info("Stopped after %d cycles", self.cycles - start)
        return self.cycles - start
