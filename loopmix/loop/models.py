from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

MIN_VOLUME = 0
MAX_VOLUME = 100


def validate_volume(volume: float) -> float:
    if not MIN_VOLUME <= volume <= MAX_VOLUME:
        raise ValueError(f"volume must be between {MIN_VOLUME} and {MAX_VOLUME}, got {volume}")
    return volume


@dataclass
class Track:
    """
    One layer of a loop session.

    source: opaque handle understood by the decoder / player backend (usually a path)
    duration_ms: nominal (unscaled) duration in milliseconds
    speed: playback speed multiplier, valid range 0.05 - 2.5
    volume: 0 - 100, perceptually scaled when mixed
    """

    id: str
    source: Any
    duration_ms: float
    speed: float = 1.0
    volume: float = 100
    name: str = ""
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        validate_volume(self.volume)
