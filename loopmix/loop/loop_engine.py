from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from loopmix.loop import loop_math
from loopmix.loop.models import Track, validate_volume


@dataclass(frozen=True)
class MasterLoopInfo:
    duration: int
    track_id: str | None
    track: Track | None


@dataclass(frozen=True)
class TrackLoopInfo:
    loop_count: int
    boundaries: list[float] = field(default_factory=list)
    total_duration: int = 0


class LoopSession:
    """
    Ordered track collection plus the loop queries built on it.

    Position 0 is the master track. Master loop values are derived on every
    query, so changing the master's speed or duration is reflected at once.
    Removing the master clears the whole collection because every other
    track's loop geometry is expressed relative to it.
    """

    _UPDATABLE_FIELDS = frozenset({"source", "duration_ms", "speed", "volume", "name"})

    def __init__(self, *, loop_mode: bool = True) -> None:
        self._tracks: list[Track] = []
        self.loop_mode = loop_mode
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---------- collection ----------

    @property
    def tracks(self) -> tuple[Track, ...]:
        return tuple(self._tracks)

    @property
    def track_count(self) -> int:
        return len(self._tracks)

    def add_track(self, track: Track) -> None:
        if self.get_track(track.id) is not None:
            raise ValueError(f"duplicate track id: {track.id}")
        self._tracks.append(track)

    def get_track(self, track_id: str) -> Track | None:
        for track in self._tracks:
            if track.id == track_id:
                return track
        return None

    def update_track(self, track_id: str, **changes: Any) -> Track | None:
        unknown = set(changes) - self._UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update track fields: {sorted(unknown)}")
        if "volume" in changes:
            validate_volume(changes["volume"])

        for i, track in enumerate(self._tracks):
            if track.id == track_id:
                updated = replace(track, **changes)
                self._tracks[i] = updated
                return updated
        return None

    def remove_track(self, track_id: str) -> None:
        if loop_math.is_master_track(self._tracks, track_id):
            self.logger.info("Master track %s removed, clearing %d tracks", track_id, len(self._tracks))
            self._tracks.clear()
            return
        self._tracks = [t for t in self._tracks if t.id != track_id]

    def clear_tracks(self) -> None:
        self._tracks.clear()

    # ---------- loop queries ----------

    def get_master_loop_info(self) -> MasterLoopInfo:
        master = loop_math.get_master_track(self._tracks)
        return MasterLoopInfo(
            duration=loop_math.master_loop_duration(self._tracks),
            track_id=master.id if master else None,
            track=master,
        )

    def get_track_loop_info(self, track_id: str) -> TrackLoopInfo:
        track = self.get_track(track_id)
        if track is None:
            return TrackLoopInfo(loop_count=1, boundaries=[], total_duration=0)

        master_duration = loop_math.master_loop_duration(self._tracks)
        return TrackLoopInfo(
            loop_count=loop_math.loop_count(track.duration_ms, master_duration),
            boundaries=loop_math.loop_boundaries(track.duration_ms, master_duration),
            total_duration=master_duration,
        )

    def should_track_loop(self, track_id: str) -> bool:
        if not self.loop_mode:
            return False
        track = self.get_track(track_id)
        if track is None:
            return False
        # The master itself is never shorter than its own loop.
        return track.duration_ms < loop_math.master_loop_duration(self._tracks)

    def calculate_export_duration(self, loop_count: int, fadeout_ms: float) -> float:
        """(master loop * loop_count) + fadeout; only the fadeout when loop_count <= 0."""
        if loop_count <= 0:
            return fadeout_ms
        return loop_math.master_loop_duration(self._tracks) * loop_count + fadeout_ms
