from __future__ import annotations

import asyncio
import io
import os
from dataclasses import dataclass
from typing import Any, Protocol, cast

import numpy as np
import soundfile as sf

from loopmix.core.errors import AudioError, AudioErrorCode


@dataclass(frozen=True)
class DecodedAudio:
    """
    samples: float32 array shaped (frames, channels)
    """
    samples: np.ndarray
    sample_rate: int
    channel_count: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration_ms(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames * 1000.0 / self.sample_rate


class AudioDecoder(Protocol):
    async def decode(self, source: Any) -> DecodedAudio:
        ...


class SoundfileDecoder:
    """Decodes paths, path-likes, raw bytes or file objects through libsndfile."""

    async def decode(self, source: Any) -> DecodedAudio:
        return await asyncio.to_thread(self.decode_sync, source)

    def decode_sync(self, source: Any) -> DecodedAudio:
        if source is None or (isinstance(source, str) and not source.strip()):
            raise AudioError(AudioErrorCode.FILE_NOT_FOUND, "Invalid audio source", "Invalid audio file")

        if isinstance(source, (str, os.PathLike)) and not os.path.exists(source):
            raise AudioError(
                AudioErrorCode.FILE_NOT_FOUND,
                f"Audio file does not exist: {source}",
                context={"source": str(source)},
            )

        stream = io.BytesIO(source) if isinstance(source, (bytes, bytearray)) else source
        try:
            read_result = sf.read(stream, dtype="float32", always_2d=True)
        except (sf.LibsndfileError, RuntimeError, TypeError) as exc:
            raise AudioError(
                AudioErrorCode.INVALID_FORMAT,
                f"Failed to decode audio: {exc}",
                context={"source": self._describe(source), "original_error": exc},
            ) from exc

        y = cast(np.ndarray, read_result[0])
        sr = int(cast(int | float, read_result[1]))
        if y.ndim != 2 or sr <= 0:
            raise AudioError(
                AudioErrorCode.INVALID_FORMAT,
                "Decoded audio has an unexpected shape",
                context={"source": self._describe(source), "shape": tuple(y.shape), "sample_rate": sr},
            )
        return DecodedAudio(samples=y.astype(np.float32, copy=False), sample_rate=sr, channel_count=int(y.shape[1]))

    def _describe(self, source: Any) -> str:
        if isinstance(source, (bytes, bytearray)):
            return f"<{len(source)} bytes>"
        return str(source)
