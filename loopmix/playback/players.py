from __future__ import annotations

import abc
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from loopmix.codecs.decoder import AudioDecoder, SoundfileDecoder
from loopmix.core.config import settings
from loopmix.core.errors import AudioError, AudioErrorCode
from loopmix.loop.loop_math import MAX_SPEED, MIN_SPEED, is_valid_speed
from loopmix.loop.models import MAX_VOLUME, MIN_VOLUME

Clock = Callable[[], float]


@runtime_checkable
class AudioPlayer(Protocol):
    """Capability every playback backend provides to the coordinator."""

    async def load(self, source: Any) -> None: ...
    async def play(self) -> None: ...
    async def pause(self) -> None: ...
    async def stop(self) -> None: ...
    async def set_speed(self, speed: float) -> None: ...
    async def set_volume(self, volume: float) -> None: ...
    async def set_looping(self, looping: bool) -> None: ...
    async def get_position(self) -> float: ...
    async def set_position(self, position_ms: float) -> None: ...
    async def get_duration(self) -> float: ...
    def is_playing(self) -> bool: ...
    def is_loaded(self) -> bool: ...


class BaseAudioPlayer(abc.ABC):
    """
    Shared validation and error wrapping for player backends.

    Subclasses implement the underscore hooks; the public methods guard state,
    reject out-of-range speed/volume (never clamp), and convert backend
    exceptions into PLAYBACK_FAILED errors. Speed, volume and looping set
    before a source is loaded are remembered and applied on load.
    """

    def __init__(self) -> None:
        self._source: Any = None
        self._is_playing = False
        self._is_loaded = False
        self._speed = 1.0
        self._volume: float = MAX_VOLUME
        self._looping = True
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---------- backend hooks ----------

    @abc.abstractmethod
    async def _load(self, source: Any) -> None: ...

    @abc.abstractmethod
    async def _play(self) -> None: ...

    @abc.abstractmethod
    async def _pause(self) -> None: ...

    @abc.abstractmethod
    async def _stop(self) -> None: ...

    @abc.abstractmethod
    async def _set_speed(self, speed: float) -> None: ...

    @abc.abstractmethod
    async def _set_volume(self, volume: float) -> None: ...

    @abc.abstractmethod
    async def _set_looping(self, looping: bool) -> None: ...

    @abc.abstractmethod
    async def _get_position(self) -> float: ...

    @abc.abstractmethod
    async def _set_position(self, position_ms: float) -> None: ...

    @abc.abstractmethod
    async def _get_duration(self) -> float: ...

    async def _unload(self) -> None:
        return None

    # ---------- public API ----------

    @property
    def source(self) -> Any:
        return self._source

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def looping(self) -> bool:
        return self._looping

    def is_playing(self) -> bool:
        return self._is_playing

    def is_loaded(self) -> bool:
        return self._is_loaded

    async def load(self, source: Any) -> None:
        if source is None or (isinstance(source, str) and not source.strip()):
            raise AudioError(AudioErrorCode.FILE_NOT_FOUND, "Invalid source provided", "Invalid audio file")

        if self._is_loaded:
            await self.unload()

        try:
            await self._load(source)
            self._source = source
            self._is_loaded = True
            await self._set_speed(self._speed)
            await self._set_volume(self._volume)
            await self._set_looping(self._looping)
        except AudioError:
            self._reset_loaded()
            raise
        except Exception as exc:
            self._reset_loaded()
            raise self._wrap("load audio", exc, source=str(source)) from exc

    async def unload(self) -> None:
        try:
            if self._is_playing:
                await self.stop()
            await self._unload()
        finally:
            self._reset_loaded()

    async def play(self) -> None:
        if not self._is_loaded:
            raise AudioError(
                AudioErrorCode.PLAYBACK_FAILED,
                "Cannot play: no audio loaded",
                "Please load an audio file first",
            )
        try:
            await self._play()
            self._is_playing = True
        except AudioError:
            self._is_playing = False
            raise
        except Exception as exc:
            self._is_playing = False
            raise self._wrap("play audio", exc, source=str(self._source)) from exc

    async def pause(self) -> None:
        if not self._is_loaded:
            return
        try:
            await self._pause()
            self._is_playing = False
        except AudioError:
            raise
        except Exception as exc:
            raise self._wrap("pause audio", exc) from exc

    async def stop(self) -> None:
        if not self._is_loaded:
            return
        try:
            await self._stop()
            self._is_playing = False
        except AudioError:
            raise
        except Exception as exc:
            raise self._wrap("stop audio", exc) from exc

    async def set_speed(self, speed: float) -> None:
        if not is_valid_speed(speed):
            raise AudioError(
                AudioErrorCode.PLAYBACK_FAILED,
                f"Speed must be between {MIN_SPEED:.2f} and {MAX_SPEED:.2f}, got {speed}",
                "Invalid playback speed",
                {"speed": speed},
            )
        if not self._is_loaded:
            self._speed = float(speed)
            return
        try:
            await self._set_speed(float(speed))
            self._speed = float(speed)
        except AudioError:
            raise
        except Exception as exc:
            raise self._wrap("set speed", exc, speed=speed) from exc

    async def set_volume(self, volume: float) -> None:
        if not MIN_VOLUME <= volume <= MAX_VOLUME:
            raise AudioError(
                AudioErrorCode.PLAYBACK_FAILED,
                f"Volume must be between {MIN_VOLUME} and {MAX_VOLUME}, got {volume}",
                "Invalid volume level",
                {"volume": volume},
            )
        if not self._is_loaded:
            self._volume = volume
            return
        try:
            await self._set_volume(volume)
            self._volume = volume
        except AudioError:
            raise
        except Exception as exc:
            raise self._wrap("set volume", exc, volume=volume) from exc

    async def set_looping(self, looping: bool) -> None:
        if not self._is_loaded:
            self._looping = bool(looping)
            return
        try:
            await self._set_looping(bool(looping))
            self._looping = bool(looping)
        except AudioError:
            raise
        except Exception as exc:
            raise self._wrap("set looping", exc, looping=looping) from exc

    async def get_duration(self) -> float:
        if not self._is_loaded:
            return 0
        return await self._get_duration()

    async def get_position(self) -> float:
        if not self._is_loaded:
            return 0
        return await self._get_position()

    async def set_position(self, position_ms: float) -> None:
        if not self._is_loaded:
            return
        if position_ms < 0:
            raise AudioError(
                AudioErrorCode.PLAYBACK_FAILED,
                "Position cannot be negative",
                "Invalid position",
                {"position_ms": position_ms},
            )
        try:
            await self._set_position(float(position_ms))
        except AudioError:
            raise
        except Exception as exc:
            raise self._wrap("set position", exc, position_ms=position_ms) from exc

    # ---------- helpers ----------

    def _reset_loaded(self) -> None:
        self._source = None
        self._is_loaded = False
        self._is_playing = False

    def _wrap(self, action: str, exc: Exception, **context: Any) -> AudioError:
        return AudioError(
            AudioErrorCode.PLAYBACK_FAILED,
            f"Failed to {action}: {exc}",
            context={**context, "original_error": exc},
        )


class SimulatedAudioPlayer(BaseAudioPlayer):
    """
    Clock-driven transport with no audio output.

    The position advances at ``speed`` times wall-clock time from the last
    anchor (play, seek or speed change). Looping wraps at the duration;
    otherwise playback stops there.
    """

    def __init__(self, *, duration_ms: float | None = None, clock: Clock | None = None) -> None:
        super().__init__()
        self._nominal_duration_ms = float(
            settings.SIMULATED_TRACK_DURATION_MS if duration_ms is None else duration_ms
        )
        self._duration_ms = 0.0
        self._clock = clock or time.monotonic
        self._anchor_position_ms = 0.0
        self._anchor_time: float | None = None

    async def _load(self, source: Any) -> None:
        self._duration_ms = self._nominal_duration_ms
        self._anchor_position_ms = 0.0
        self._anchor_time = None
        self.logger.debug("Loaded %s, duration: %.0fms", source, self._duration_ms)

    async def _play(self) -> None:
        if self._anchor_time is None:
            self._anchor_time = self._clock()

    async def _pause(self) -> None:
        self._anchor_position_ms = self._current_position()
        self._anchor_time = None

    async def _stop(self) -> None:
        self._anchor_position_ms = 0.0
        self._anchor_time = None

    async def _set_speed(self, speed: float) -> None:
        self._rebase()

    async def _set_volume(self, volume: float) -> None:
        return None

    async def _set_looping(self, looping: bool) -> None:
        self._rebase()

    async def _get_position(self) -> float:
        position = self._current_position()
        if self._anchor_time is not None and not self._looping and position >= self._duration_ms:
            # Reached the end of a one-shot source.
            self._anchor_position_ms = self._duration_ms
            self._anchor_time = None
            self._is_playing = False
        return position

    async def _set_position(self, position_ms: float) -> None:
        if self._duration_ms > 0:
            position_ms = min(position_ms, self._duration_ms)
        self._anchor_position_ms = position_ms
        if self._anchor_time is not None:
            self._anchor_time = self._clock()

    async def _get_duration(self) -> float:
        return self._duration_ms

    def _rebase(self) -> None:
        if self._anchor_time is None:
            return
        self._anchor_position_ms = self._current_position()
        self._anchor_time = self._clock()

    def _current_position(self) -> float:
        position = self._anchor_position_ms
        if self._anchor_time is not None:
            position += (self._clock() - self._anchor_time) * 1000.0 * self._speed
        if self._duration_ms <= 0:
            return position
        if self._looping:
            return position % self._duration_ms
        return min(position, self._duration_ms)


class HeadlessAudioPlayer(SimulatedAudioPlayer):
    """Simulated transport whose duration comes from actually decoding the source."""

    def __init__(self, *, decoder: AudioDecoder | None = None, clock: Clock | None = None) -> None:
        super().__init__(duration_ms=0.0, clock=clock)
        self.decoder = decoder or SoundfileDecoder()

    async def _load(self, source: Any) -> None:
        decoded = await self.decoder.decode(source)
        self._nominal_duration_ms = decoded.duration_ms
        await super()._load(source)


class PlayerBackend(str, Enum):
    SIMULATED = "simulated"
    HEADLESS = "headless"


_BACKENDS: dict[PlayerBackend, type[BaseAudioPlayer]] = {
    PlayerBackend.SIMULATED: SimulatedAudioPlayer,
    PlayerBackend.HEADLESS: HeadlessAudioPlayer,
}


def create_player(backend: PlayerBackend | str, **kwargs: Any) -> BaseAudioPlayer:
    """Instantiate the player class for ``backend``; kwargs go to its constructor."""
    try:
        cls = _BACKENDS[PlayerBackend(backend)]
    except ValueError as exc:
        raise AudioError(
            AudioErrorCode.RESOURCE_UNAVAILABLE,
            f"No audio player backend named {backend!r}",
            context={"backend": str(backend)},
        ) from exc
    return cls(**kwargs)
