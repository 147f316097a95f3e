import random

import pytest

from chip8vm import Chip8CPU, Quirks
from util import assemble


@pytest.fixture
def make_cpu():
    """Build a seeded CPU with the given words loaded at 0x200"""
    def _make(*words: int, quirks: Quirks = None) -> Chip8CPU:
        cpu = Chip8CPU(quirks=quirks, rng=random.Random(1234))
        cpu.load(assemble(*words))
        return cpu
    return _make
