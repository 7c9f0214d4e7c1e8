"""
Loop timing calculations.

All durations are in milliseconds. The master loop is defined by the track at
position 0: every other track repeats to fill the master track's
speed-adjusted duration. Nothing here performs I/O or keeps state.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from loopmix.loop.models import Track

DEFAULT_SPEED = 1.0
MIN_SPEED = 0.05
MAX_SPEED = 2.5


def _is_valid_duration(value: float) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def round_half_up(value: float) -> int:
    # Halves round towards +inf, not to even.
    return int(math.floor(value + 0.5))


def normalize_speed(speed: float | None) -> float:
    """Return ``speed`` if it lies in [0.05, 2.5], else the default 1.0."""
    if speed is None or not math.isfinite(speed):
        return DEFAULT_SPEED
    if speed <= 0 or speed < MIN_SPEED or speed > MAX_SPEED:
        return DEFAULT_SPEED
    return float(speed)


def is_valid_speed(speed: float) -> bool:
    return speed is not None and math.isfinite(speed) and MIN_SPEED <= speed <= MAX_SPEED


def speed_adjusted_duration(duration: float, speed: float | None) -> int:
    """
    Effective duration of a track played at ``speed``.

    Half speed doubles the duration, double speed halves it. Invalid speeds
    fall back to 1.0; non-positive or non-finite durations yield 0.
    """
    if not _is_valid_duration(duration):
        return 0
    return round_half_up(duration / normalize_speed(speed))


def master_loop_duration(tracks: Sequence[Track]) -> int:
    """Speed-adjusted duration of the master (first) track, 0 when empty."""
    if len(tracks) == 0:
        return 0
    master = tracks[0]
    return speed_adjusted_duration(master.duration_ms, master.speed)


def loop_count(track_duration: float, master_duration: float) -> int:
    """
    How many times a track repeats to fill the master loop.

    A track as long as or longer than the master loop plays once (possibly
    truncated). Degenerate inputs also give 1.
    """
    if not _is_valid_duration(track_duration) or not _is_valid_duration(master_duration):
        return 1
    return max(1, math.ceil(master_duration / track_duration))


def loop_boundaries(track_duration: float, master_duration: float) -> list[float]:
    """
    Offsets at which a track restarts from its beginning inside one master loop.

    >>> loop_boundaries(4000, 10000)
    [0, 4000, 8000]
    """
    if not _is_valid_duration(track_duration) or not _is_valid_duration(master_duration):
        return []

    boundaries: list[float] = []
    for i in range(loop_count(track_duration, master_duration)):
        boundary = i * track_duration
        if boundary < master_duration:
            boundaries.append(boundary)
    return boundaries


def is_master_track(tracks: Sequence[Track], track_id: str) -> bool:
    if len(tracks) == 0:
        return False
    return tracks[0].id == track_id


def get_master_track(tracks: Sequence[Track]) -> Track | None:
    if len(tracks) == 0:
        return None
    return tracks[0]
