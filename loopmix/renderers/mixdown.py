from __future__ import annotations

import asyncio
import importlib.util
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import librosa
import numpy as np

from loopmix.codecs.decoder import AudioDecoder, DecodedAudio, SoundfileDecoder
from loopmix.codecs.encoder import AudioEncoder, SoundfileEncoder
from loopmix.codecs.quality import get_bitrate
from loopmix.core.config import settings
from loopmix.core.errors import AudioError, AudioErrorCode
from loopmix.renderers.render_graph import RenderPlan, TrackTiming, build_render_plan, render_plan
from loopmix.schemas.mix import MixRequest


@dataclass(frozen=True)
class MixingProgress:
    ratio: float             # 0-1
    time_ms: float
    duration_ms: float


ProgressCallback = Callable[[MixingProgress], None]


@dataclass(frozen=True)
class MixResult:
    rendered_data: bytes
    actual_format: str
    mime: str
    sample_rate: int
    total_duration_ms: float
    frames: int
    debug: dict[str, Any] | None = None


class MixdownEngine:
    """
    Renders a MixRequest to one encoded file.

    Pipeline: decode every source -> resample to a shared rate -> build the
    render plan (loop repetition, seam crossfades, master fade-out) -> render
    in a worker thread -> encode with format fallback.

    The mixdown master loop is the longest speed-adjusted track, which differs
    from the position-0 rule used during interactive playback.
    """

    BASE_MS_PER_TRACK = 1000
    PROGRESS_DECODED = 0.1
    PROGRESS_RENDERED = 0.7

    def __init__(
        self,
        *,
        decoder: AudioDecoder | None = None,
        encoder: AudioEncoder | None = None,
        crossfade_ms: float | None = None,
        default_sample_rate: int | None = None,
        channels: int | None = None,
        resample_res_type: str | None = None,
        enable_timing_logs: bool | None = None,
    ) -> None:
        self.decoder = decoder or SoundfileDecoder()
        self.encoder = encoder or SoundfileEncoder()
        self.crossfade_ms = float(settings.LOOP_CROSSFADE_MS if crossfade_ms is None else crossfade_ms)
        self.default_sample_rate = int(default_sample_rate or settings.RENDER_SAMPLE_RATE)
        self.channels = int(channels or settings.RENDER_CHANNELS)
        self.enable_timing_logs = settings.ENABLE_TIMING_LOGS if enable_timing_logs is None else enable_timing_logs

        # Prefer SoXR (C-accelerated) when available; fallback to resampy (kaiser_fast).
        if resample_res_type:
            self.resample_res_type = str(resample_res_type)
        else:
            self.resample_res_type = (
                "soxr_hq" if importlib.util.find_spec("soxr") is not None else "kaiser_fast"
            )

        self._is_mixing = False
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # ---------- public API ----------

    def is_mixing(self) -> bool:
        return self._is_mixing

    def estimate_mixing_duration(self, request: MixRequest) -> int:
        return len(request.tracks) * self.BASE_MS_PER_TRACK

    async def cancel(self) -> None:
        """
        Accepted but ineffective: once a render has started it runs to completion.
        """
        if not self._is_mixing:
            return
        self.logger.info("Cancel requested but rendering cannot be interrupted once started")

    async def mix(self, request: MixRequest, on_progress: ProgressCallback | None = None) -> MixResult:
        if self._is_mixing:
            raise AudioError(
                AudioErrorCode.MIXING_FAILED,
                "Cannot start mixing: operation already in progress",
                "A mixing operation is already in progress",
            )

        track_count = len(request.tracks)
        self._is_mixing = True
        try:
            return await self._mix(request, on_progress)
        except Exception as exc:
            self.logger.error("Mixing %d tracks failed: %s", track_count, exc)
            raise AudioError(
                AudioErrorCode.MIXING_FAILED,
                f"Failed to mix audio: {exc}",
                "Audio mixing encountered an error",
                {"track_count": track_count, "original_error": exc},
            ) from exc
        finally:
            self._is_mixing = False

    # ---------- pipeline ----------

    async def _mix(self, request: MixRequest, on_progress: ProgressCallback | None) -> MixResult:
        total_start = time.perf_counter()
        debug: dict[str, Any] = {"timing_s": {}, "decisions": {}, "fallbacks": []}

        step_start = time.perf_counter()
        decoded = list(await asyncio.gather(*(self.decoder.decode(t.source) for t in request.tracks)))
        self._record_timing(debug, "decode", step_start)

        sample_rate = decoded[0].sample_rate if decoded else self.default_sample_rate
        timings = [
            TrackTiming(duration_s=d.frames / d.sample_rate, speed=t.speed, volume=t.volume)
            for d, t in zip(decoded, request.tracks)
        ]
        plan = build_render_plan(
            timings,
            loop_count=request.loop_count,
            fadeout_ms=request.fadeout_ms,
            crossfade_ms=self.crossfade_ms,
            sample_rate=sample_rate,
            channels=self.channels,
        )
        total_ms = plan.total_s * 1000.0
        self.logger.info(
            "Master loop: %.2fs, loops: %d, fadeout: %.2fs, total: %.2fs",
            plan.master_loop_s,
            plan.loop_count,
            plan.fadeout_s,
            plan.total_s,
        )
        debug["decisions"]["sample_rate"] = sample_rate
        debug["decisions"]["track_strategies"] = [tp.strategy for tp in plan.tracks]
        self._emit_progress(on_progress, self.PROGRESS_DECODED, 0.0, total_ms)

        step_start = time.perf_counter()
        rendered = await asyncio.to_thread(self._render_sync, plan, decoded)
        self._record_timing(debug, "render", step_start)
        self._emit_progress(on_progress, self.PROGRESS_RENDERED, total_ms, total_ms)

        step_start = time.perf_counter()
        bitrate = get_bitrate(request.target_format, request.target_quality)
        encoded = await asyncio.to_thread(self.encoder.encode, rendered, sample_rate, request.target_format, bitrate)
        self._record_timing(debug, "encode", step_start)
        if encoded.format != request.target_format:
            debug["fallbacks"].append(f"format_{request.target_format}_to_{encoded.format}")
            self.logger.warning("Requested %s output, produced %s", request.target_format, encoded.format)
        self._emit_progress(on_progress, 1.0, total_ms, total_ms)

        self._record_timing(debug, "total", total_start)
        self.logger.info("Mix complete: %d frames, %d bytes (%s)", len(rendered), len(encoded.data), encoded.format)
        return MixResult(
            rendered_data=encoded.data,
            actual_format=encoded.format,
            mime=encoded.mime,
            sample_rate=sample_rate,
            total_duration_ms=total_ms,
            frames=int(len(rendered)),
            debug=debug,
        )

    def _render_sync(self, plan: RenderPlan, decoded: list[DecodedAudio]) -> np.ndarray:
        buffers = [self._resample_frames(d.samples, orig_sr=d.sample_rate, target_sr=plan.sample_rate) for d in decoded]
        for tp in plan.tracks:
            self.logger.debug(
                "Track %d: duration=%.2fs, speed=%s, gain=%.3f, strategy=%s, voices=%d",
                tp.index + 1,
                tp.duration_s,
                tp.speed,
                tp.gain,
                tp.strategy,
                len(tp.voices),
            )
        return render_plan(plan, buffers)

    # ---------- audio utils ----------

    def _resample_frames(self, y: np.ndarray, *, orig_sr: int, target_sr: int) -> np.ndarray:
        y = np.asarray(y, dtype=np.float32)
        if orig_sr == target_sr or y.size == 0:
            return y
        # librosa resamples along the last axis; keep channels aligned in one call.
        y_rs = librosa.resample(y.T, orig_sr=orig_sr, target_sr=target_sr, res_type=self.resample_res_type)
        return np.asarray(y_rs, dtype=np.float32).T

    def _emit_progress(
        self, on_progress: ProgressCallback | None, ratio: float, time_ms: float, duration_ms: float
    ) -> None:
        if on_progress is None:
            return
        on_progress(MixingProgress(ratio=min(1.0, max(0.0, ratio)), time_ms=time_ms, duration_ms=duration_ms))

    def _record_timing(self, debug: dict[str, Any], label: str, start: float) -> None:
        elapsed = float(time.perf_counter() - start)
        timing = debug.setdefault("timing_s", {})
        timing[label] = elapsed
        if self.enable_timing_logs:
            self.logger.info("Mixdown timing %s: %.3fs", label, elapsed)
