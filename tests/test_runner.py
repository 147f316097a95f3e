import pytest

from chip8vm import (
    Chip8CPU, NullAudio, NullDisplay, RunConfig, Runner, StackUnderflow,
    load_rom_file,
)
from util import assemble


class RecordingDisplay:
    def __init__(self):
        self.frames = []

    def render(self, framebuffer):
        self.frames.append(framebuffer.copy())


class ScriptedInput:
    """Presses key 5 from the given poll onwards"""

    def __init__(self, press_at):
        self.press_at = press_at
        self.polls = 0

    def poll(self):
        self.polls += 1
        keys = [False] * 16
        if self.polls > self.press_at:
            keys[5] = True
        return keys


def _cpu(*words):
    cpu = Chip8CPU()
    cpu.load(assemble(*words))
    return cpu


def _config(**kwargs):
    return RunConfig(cycle_delay_ms=0.0, **kwargs)


def test_tick_renders_only_when_dirty():
    display = RecordingDisplay()
    runner = Runner(_cpu(0x6000, 0x00E0, 0x6000), display=display, config=_config())
    runner.tick()
    assert display.frames == []
    runner.tick()
    assert len(display.frames) == 1
    assert not runner.cpu.needs_redraw()
    runner.tick()
    assert len(display.frames) == 1


def test_run_respects_cycle_budget():
    runner = Runner(_cpu(0x1200), config=_config(max_cycles=25))
    assert runner.run() == 25
    assert runner.cycles == 25
    assert runner.run(max_cycles=5) == 5
    assert runner.cycles == 30


def test_input_feeds_key_latch():
    source = ScriptedInput(press_at=3)
    runner = Runner(_cpu(0xF20A), input_source=source, config=_config())
    runner.run(max_cycles=3)
    assert runner.cpu.program_counter() == 0x200
    runner.tick()
    assert runner.cpu.state.V[2] == 5
    assert runner.cpu.program_counter() == 0x202


def test_audio_sink_linked():
    audio = NullAudio()
    runner = Runner(_cpu(0x6001, 0xF018, 0x1204), audio=audio, config=_config())
    runner.run(max_cycles=10)
    assert audio.tones == 1


def test_engine_errors_propagate():
    runner = Runner(_cpu(0x00EE), config=_config())
    with pytest.raises(StackUnderflow):
        runner.run(max_cycles=3)
    assert runner.running is False


def test_stop_from_display_sink():
    class StopAfterFirstFrame(NullDisplay):
        def render(self, framebuffer):
            super().render(framebuffer)
            runner.stop()

    runner = Runner(_cpu(0x00E0, 0x1200), display=StopAfterFirstFrame(), config=_config())
    assert runner.run() == 1
    assert runner.display.frames == 1


def test_load_rom_file(tmp_path):
    path = tmp_path / "prog.ch8"
    path.write_bytes(b"\x00\xe0")
    assert load_rom_file(str(path)) == b"\x00\xe0"
