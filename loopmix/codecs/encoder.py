from __future__ import annotations

import io
import logging
import wave
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import soundfile as sf

from loopmix.codecs.quality import get_mime
from loopmix.core.errors import AudioError, AudioErrorCode


@dataclass(frozen=True)
class EncodedAudio:
    data: bytes
    format: str
    mime: str


class AudioEncoder(Protocol):
    def encode(self, audio: np.ndarray, sample_rate: int, fmt: str, bitrate_kbps: int) -> EncodedAudio:
        ...


class SoundfileEncoder:
    """
    Encodes a rendered float buffer shaped (frames, channels).

    WAV is written as 16-bit PCM and always works. MP3 goes through libsndfile
    (1.1+); M4A has no libsndfile codec. Anything that cannot be produced is
    written as WAV instead and the returned ``format`` says so.
    """

    SAMPWIDTH = 2
    FALLBACK_FORMAT = "wav"
    MP3_MIN_KBPS = 32
    MP3_MAX_KBPS = 320

    def __init__(self) -> None:
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def encode(self, audio: np.ndarray, sample_rate: int, fmt: str, bitrate_kbps: int) -> EncodedAudio:
        fmt = str(fmt or self.FALLBACK_FORMAT).lower().strip()
        if fmt == "mp3":
            try:
                data = self._float_to_mp3_bytes(audio, sample_rate, bitrate_kbps)
                return EncodedAudio(data=data, format="mp3", mime=get_mime("mp3"))
            except (sf.LibsndfileError, RuntimeError, TypeError, ValueError) as exc:
                self.logger.warning("MP3 encoding failed (%s), falling back to WAV", exc)
        elif fmt != "wav":
            self.logger.warning("Format %s is not supported by this encoder, using WAV", fmt)

        return self._encode_fallback(audio, sample_rate)

    def _encode_fallback(self, audio: np.ndarray, sample_rate: int) -> EncodedAudio:
        try:
            data = self._float_to_wav_bytes(audio, sample_rate)
        except (wave.Error, ValueError, OverflowError) as exc:
            raise AudioError(
                AudioErrorCode.MIXING_FAILED,
                f"Failed to encode WAV output: {exc}",
                context={"sample_rate": sample_rate, "original_error": exc},
            ) from exc
        return EncodedAudio(data=data, format=self.FALLBACK_FORMAT, mime=get_mime(self.FALLBACK_FORMAT))

    # ---------- formats ----------

    def _float_to_wav_bytes(self, audio: np.ndarray, sample_rate: int) -> bytes:
        audio = self._as_frames(audio)
        pcm = np.clip(audio, -1.0, 1.0)
        # Asymmetric scaling keeps -1.0 at -32768 and +1.0 at 32767.
        pcm = np.where(pcm < 0, pcm * 32768.0, pcm * 32767.0).astype(np.int16)

        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(int(audio.shape[1]))
            wf.setsampwidth(self.SAMPWIDTH)
            wf.setframerate(int(sample_rate))
            wf.writeframes(pcm.tobytes())
        return buf.getvalue()

    def _float_to_mp3_bytes(self, audio: np.ndarray, sample_rate: int, bitrate_kbps: int) -> bytes:
        audio = np.clip(self._as_frames(audio), -1.0, 1.0)
        buf = io.BytesIO()
        sf.write(
            buf,
            audio,
            int(sample_rate),
            format="MP3",
            subtype="MPEG_LAYER_III",
            compression_level=self._mp3_compression_level(bitrate_kbps),
            bitrate_mode="CONSTANT",
        )
        return buf.getvalue()

    def _mp3_compression_level(self, bitrate_kbps: int) -> float:
        # libsndfile maps 0.0 -> highest bitrate, 1.0 -> lowest.
        span = self.MP3_MAX_KBPS - self.MP3_MIN_KBPS
        level = 1.0 - (float(bitrate_kbps) - self.MP3_MIN_KBPS) / span
        return float(np.clip(level, 0.0, 1.0))

    def _as_frames(self, audio: np.ndarray) -> np.ndarray:
        audio = np.asarray(audio, dtype=np.float32)
        if audio.ndim == 1:
            audio = audio[:, None]
        if audio.ndim != 2 or audio.shape[1] == 0:
            audio = np.zeros((0, 2), dtype=np.float32)
        return audio
