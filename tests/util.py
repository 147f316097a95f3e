from chip8vm import Chip8CPU


def assemble(*words: int) -> bytes:
    """Pack 16-bit instruction words big-endian"""
    out = bytearray()
    for word in words:
        out += bytes([(word >> 8) & 0xFF, word & 0xFF])
    return bytes(out)


def run_steps(cpu: Chip8CPU, count: int) -> None:
    for _ in range(count):
        cpu.step()
