"""Interpreter quirks and driver-loop configuration."""

import json
from dataclasses import asdict, dataclass, field, fields
from typing import Optional


@dataclass
class Quirks:
    """Behaviour switches where CHIP-8 interpreters disagree"""
    jump_pushes_stack: bool = False     # BNNN also pushes PC like CALL
    load_increments_index: bool = True  # FX65 leaves I past the loaded block

    @classmethod
    def from_dict(cls, data: dict) -> 'Quirks':
        _reject_unknown(cls, data)
        return cls(**data)


@dataclass
class RunConfig:
    """Settings for a headless run"""
    cycle_delay_ms: float = 8.0
    max_cycles: Optional[int] = None
    seed: Optional[int] = None          # RNG seed for CXNN
    quirks: Quirks = field(default_factory=Quirks)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'RunConfig':
        _reject_unknown(cls, data)
        data = dict(data)
        quirks = Quirks.from_dict(data.pop("quirks", {}))
        return cls(quirks=quirks, **data)

    def save(self, path: str) -> None:
        """Save configuration to JSON file."""
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> 'RunConfig':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)


def _reject_unknown(cls, data: dict) -> None:
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")
