"""Test doubles shared across the suite."""

from __future__ import annotations

import io
from typing import Any

import numpy as np
import soundfile as sf

from loopmix.codecs.decoder import DecodedAudio
from loopmix.core.errors import AudioError, AudioErrorCode


class FakePlayer:
    """Minimal AudioPlayer with a fixed position and a call log."""

    def __init__(
        self,
        *,
        position: float = 0.0,
        playing: bool = False,
        loaded: bool = True,
        fail_on: tuple[str, ...] = (),
    ) -> None:
        self.position = position
        self.playing = playing
        self.loaded = loaded
        self.fail_on = set(fail_on)
        self.calls: list[tuple[Any, ...]] = []

    async def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise AudioError(AudioErrorCode.PLAYBACK_FAILED, f"{name} failed")

    def called(self, name: str) -> bool:
        return any(c[0] == name for c in self.calls)

    async def load(self, source: Any) -> None:
        await self._record("load", source)
        self.loaded = True

    async def play(self) -> None:
        await self._record("play")
        self.playing = True

    async def pause(self) -> None:
        await self._record("pause")
        self.playing = False

    async def stop(self) -> None:
        await self._record("stop")
        self.playing = False
        self.position = 0.0

    async def set_speed(self, speed: float) -> None:
        await self._record("set_speed", speed)

    async def set_volume(self, volume: float) -> None:
        await self._record("set_volume", volume)

    async def set_looping(self, looping: bool) -> None:
        await self._record("set_looping", looping)

    async def get_position(self) -> float:
        return self.position

    async def set_position(self, position_ms: float) -> None:
        await self._record("set_position", position_ms)
        self.position = position_ms

    async def get_duration(self) -> float:
        return 10000.0

    def is_playing(self) -> bool:
        return self.playing

    def is_loaded(self) -> bool:
        return self.loaded


class FakeClock:
    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class StubDecoder:
    """Returns preset buffers keyed by source, no file access."""

    def __init__(self, buffers: dict[Any, DecodedAudio]) -> None:
        self.buffers = buffers
        self.decoded: list[Any] = []

    async def decode(self, source: Any) -> DecodedAudio:
        self.decoded.append(source)
        if source not in self.buffers:
            raise AudioError(AudioErrorCode.INVALID_FORMAT, f"cannot decode {source}")
        return self.buffers[source]


def constant_audio(seconds: float, *, sample_rate: int = 1000, value: float = 0.5, channels: int = 2) -> DecodedAudio:
    frames = int(round(seconds * sample_rate))
    samples = np.full((frames, channels), value, dtype=np.float32)
    return DecodedAudio(samples=samples, sample_rate=sample_rate, channel_count=channels)


def wav_bytes(seconds: float, *, sample_rate: int = 8000, channels: int = 1, freq: float = 220.0) -> bytes:
    t = np.arange(int(round(seconds * sample_rate))) / sample_rate
    tone = (0.25 * np.sin(2 * np.pi * freq * t)).astype(np.float32)
    data = np.repeat(tone[:, None], channels, axis=1)
    buf = io.BytesIO()
    sf.write(buf, data, sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def read_wav(data: bytes) -> tuple[np.ndarray, int]:
    y, sr = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
    return y, int(sr)
