from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from loopmix.loop.loop_math import round_half_up
from loopmix.playback.players import AudioPlayer


class PlaybackCoordinator:
    """
    Drives any number of independently playing handles as one transport.

    Fan-out operations (play/pause/stop/seek) run one task per handle and wait
    for all of them; a failing handle is logged and the others still receive
    the call. Position and drift are read live from the handles and are
    best-effort: playback keeps moving while the reads are collected.
    """

    def __init__(self) -> None:
        self._players: dict[str, AudioPlayer] = {}
        self._track_id_counter = 0
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---------- membership ----------

    def add_track(self, player: AudioPlayer) -> str:
        track_id = self._generate_track_id()
        self._players[track_id] = player
        return track_id

    async def add_track_and_sync(self, player: AudioPlayer) -> str:
        """
        Add ``player`` and, if the session is playing, start it at the current
        average position. The average is taken before the new handle joins.
        """
        playing = self.is_playing()
        current_position = await self.get_position() if playing else 0

        track_id = self.add_track(player)

        if playing:
            await player.set_position(current_position)
            await player.play()
            self.logger.debug("Track %s joined playback at %sms", track_id, current_position)
        return track_id

    def remove_track(self, track_id: str) -> None:
        self._players.pop(track_id, None)

    def clear_all_tracks(self) -> None:
        self._players.clear()

    def get_player(self, track_id: str) -> AudioPlayer | None:
        return self._players.get(track_id)

    @property
    def track_count(self) -> int:
        return len(self._players)

    # ---------- transport ----------

    async def play_all(self) -> None:
        await self._fan_out("playing", lambda p: p.play())

    async def pause_all(self) -> None:
        await self._fan_out("pausing", lambda p: p.pause())

    async def stop_all(self) -> None:
        await self._fan_out("stopping", lambda p: p.stop())

    async def set_position(self, position_ms: float) -> None:
        await self._fan_out("setting position on", lambda p: p.set_position(position_ms))

    def is_playing(self) -> bool:
        """True if any handle reports playing."""
        return any(p.is_playing() for p in self._players.values())

    def all_tracks_loaded(self) -> bool:
        return all(p.is_loaded() for p in self._players.values())

    # ---------- sync ----------

    async def get_position(self) -> int:
        """Rounded mean of all handles' positions (0 without handles)."""
        positions = await self._positions()
        if not positions:
            return 0
        return round_half_up(sum(positions) / len(positions))

    async def get_drift(self) -> float:
        """Spread between the furthest-ahead and furthest-behind handles."""
        positions = await self._positions()
        if len(positions) < 2:
            return 0
        return max(positions) - min(positions)

    async def resync_tracks(self) -> None:
        """Seek every handle to the current average position."""
        average = await self.get_position()
        self.logger.debug("Resyncing %d tracks to %sms", len(self._players), average)
        await self.set_position(average)

    # ---------- helpers ----------

    async def _positions(self) -> list[float]:
        players = list(self._players.values())
        if not players:
            return []
        return list(await asyncio.gather(*(p.get_position() for p in players)))

    async def _fan_out(self, action: str, op: Callable[[AudioPlayer], Awaitable[None]]) -> None:
        async def run(track_id: str, player: AudioPlayer) -> None:
            try:
                await op(player)
            except Exception as e:
                self.logger.error("Error %s track %s: %s", action, track_id, e)

        await asyncio.gather(*(run(tid, p) for tid, p in list(self._players.items())))

    def _generate_track_id(self) -> str:
        self._track_id_counter += 1
        return f"track_{self._track_id_counter}"
