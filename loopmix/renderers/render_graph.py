"""
Offline render graph for the mixdown.

The graph is a precomputed event list: every track becomes one or more
``Voice`` entries (onset, play length, gain breakpoints) and the master bus
gets its own breakpoint envelope. ``render_plan`` consumes that list in a
single pass over numpy buffers, so a plan always renders to the same samples.

Times in the plan are seconds; the public inputs (fadeout, crossfade) are
milliseconds like the rest of the package.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

import numpy as np

from loopmix.loop.loop_math import normalize_speed

Strategy = Literal["crossfade", "native_loop", "single"]
Envelope = tuple[tuple[float, float], ...]


@dataclass(frozen=True)
class TrackTiming:
    duration_s: float        # nominal, before speed
    speed: float
    volume: float


@dataclass(frozen=True)
class Voice:
    onset_s: float
    play_s: float
    envelope: Envelope       # absolute (time_s, gain) breakpoints, strictly increasing times
    loop: bool = False       # repeat the buffer verbatim for the whole play length


@dataclass(frozen=True)
class TrackPlan:
    index: int
    speed: float
    gain: float
    duration_s: float        # speed-adjusted
    strategy: Strategy
    voices: tuple[Voice, ...]


@dataclass(frozen=True)
class RenderPlan:
    sample_rate: int
    channels: int
    master_loop_s: float
    loop_count: int
    fadeout_s: float
    crossfade_s: float
    total_s: float
    tracks: tuple[TrackPlan, ...]
    master_envelope: Envelope

    @property
    def total_frames(self) -> int:
        return frames_for(self.total_s, self.sample_rate)


# ---------- timing rules ----------

def volume_to_gain(volume: float) -> float:
    """Perceptual 0-100 volume to linear gain: 1 - log(100 - v) / log(100)."""
    if volume <= 0:
        return 0.0
    if volume >= 100:
        return 1.0
    return float(min(1.0, max(0.0, 1.0 - math.log(100.0 - volume) / math.log(100.0))))


def mixdown_master_duration(adjusted_durations_s: Sequence[float]) -> float:
    """Longest speed-adjusted duration across all tracks (0 for none)."""
    return max((float(d) for d in adjusted_durations_s), default=0.0)


def total_render_duration(master_loop_s: float, loop_count: int, fadeout_s: float) -> float:
    if loop_count <= 0:
        return float(fadeout_s)
    return float(master_loop_s) * loop_count + float(fadeout_s)


def frames_for(duration_s: float, sample_rate: int) -> int:
    if duration_s <= 0:
        return 0
    # Absorb float noise such as 42.000000000000004 * 44100.
    return int(math.ceil(round(duration_s * sample_rate, 6)))


def needs_looping(track_s: float, master_loop_s: float, loop_count: int) -> bool:
    return loop_count > 1 or track_s < master_loop_s * loop_count


def can_crossfade(crossfade_s: float, looping: bool, track_s: float) -> bool:
    return crossfade_s > 0 and looping and track_s > crossfade_s * 2


# ---------- event list ----------

def plan_crossfaded_voices(track_s: float, total_s: float, crossfade_s: float) -> tuple[Voice, ...]:
    """
    Manual repetitions overlapping at each seam.

    Every repetition but the first ramps 0 -> 1 over the crossfade window;
    every repetition but the last ramps 1 -> 0 into the next one's onset.
    """
    voices: list[Voice] = []
    if track_s <= 0:
        return ()

    repetitions = math.ceil(total_s / track_s)
    for rep in range(repetitions):
        start = rep * track_s
        if start >= total_s:
            break
        play = min(track_s, total_s - start)

        points: list[tuple[float, float]] = []
        if rep > 0 and crossfade_s < play:
            points += [(start, 0.0), (start + crossfade_s, 1.0)]
        else:
            points.append((start, 1.0))

        next_start = start + track_s
        if next_start < total_s and crossfade_s < play:
            fade_start = next_start - crossfade_s
            if fade_start > points[-1][0]:
                points.append((fade_start, 1.0))
            points.append((next_start, 0.0))

        voices.append(Voice(onset_s=start, play_s=play, envelope=tuple(points)))
    return tuple(voices)


def plan_track(
    index: int,
    timing: TrackTiming,
    *,
    master_loop_s: float,
    loop_count: int,
    total_s: float,
    crossfade_s: float,
) -> TrackPlan:
    speed = normalize_speed(timing.speed)
    track_s = timing.duration_s / speed if timing.duration_s > 0 else 0.0
    looping = needs_looping(track_s, master_loop_s, loop_count)
    gain = volume_to_gain(timing.volume)

    if can_crossfade(crossfade_s, looping, track_s):
        return TrackPlan(
            index=index,
            speed=speed,
            gain=gain,
            duration_s=track_s,
            strategy="crossfade",
            voices=plan_crossfaded_voices(track_s, total_s, crossfade_s),
        )

    voices: tuple[Voice, ...] = ()
    if total_s > 0:
        voices = (Voice(onset_s=0.0, play_s=total_s, envelope=((0.0, 1.0),), loop=looping),)
    return TrackPlan(
        index=index,
        speed=speed,
        gain=gain,
        duration_s=track_s,
        strategy="native_loop" if looping else "single",
        voices=voices,
    )


def master_envelope(total_s: float, fadeout_s: float) -> Envelope:
    """Unity gain, then a linear ramp to silence over the last ``fadeout_s``."""
    if fadeout_s <= 0 or total_s <= 0:
        return ((0.0, 1.0),)
    fade_start = total_s - fadeout_s
    if fade_start <= 0:
        return ((0.0, 1.0), (total_s, 0.0))
    return ((0.0, 1.0), (fade_start, 1.0), (total_s, 0.0))


def build_render_plan(
    timings: Sequence[TrackTiming],
    *,
    loop_count: int,
    fadeout_ms: float,
    crossfade_ms: float,
    sample_rate: int,
    channels: int = 2,
) -> RenderPlan:
    adjusted = [t.duration_s / normalize_speed(t.speed) for t in timings if t.duration_s > 0]
    master_loop_s = mixdown_master_duration(adjusted)
    fadeout_s = max(0.0, float(fadeout_ms)) / 1000.0
    crossfade_s = max(0.0, float(crossfade_ms)) / 1000.0
    total_s = total_render_duration(master_loop_s, loop_count, fadeout_s)

    tracks = tuple(
        plan_track(
            i,
            t,
            master_loop_s=master_loop_s,
            loop_count=loop_count,
            total_s=total_s,
            crossfade_s=crossfade_s,
        )
        for i, t in enumerate(timings)
    )
    return RenderPlan(
        sample_rate=int(sample_rate),
        channels=int(channels),
        master_loop_s=master_loop_s,
        loop_count=int(loop_count),
        fadeout_s=fadeout_s,
        crossfade_s=crossfade_s,
        total_s=total_s,
        tracks=tracks,
        master_envelope=master_envelope(total_s, fadeout_s),
    )


# ---------- rendering ----------

def evaluate_envelope(envelope: Envelope, times_s: np.ndarray) -> np.ndarray:
    xs = np.fromiter((p[0] for p in envelope), dtype=np.float64, count=len(envelope))
    gs = np.fromiter((p[1] for p in envelope), dtype=np.float64, count=len(envelope))
    return np.interp(times_s, xs, gs).astype(np.float32)


def apply_speed(samples: np.ndarray, speed: float) -> np.ndarray:
    """
    Varispeed by linear interpolation: the buffer is read ``speed`` source
    frames per output frame, so duration scales by 1/speed and pitch follows.
    """
    n = len(samples)
    if n == 0 or speed == 1.0:
        return samples
    out_n = max(1, int(round(n / speed)))
    positions = np.minimum(np.arange(out_n, dtype=np.float64) * speed, n - 1)
    src_idx = np.arange(n, dtype=np.float64)
    channels = [np.interp(positions, src_idx, samples[:, c]) for c in range(samples.shape[1])]
    return np.column_stack(channels).astype(np.float32)


def conform_channels(samples: np.ndarray, channels: int) -> np.ndarray:
    y = np.asarray(samples, dtype=np.float32)
    if y.ndim == 1:
        y = y[:, None]
    if y.ndim != 2 or y.shape[1] == 0:
        return np.zeros((0, channels), dtype=np.float32)
    if y.shape[1] == channels:
        return y
    if y.shape[1] == 1:
        return np.repeat(y, channels, axis=1)
    if y.shape[1] > channels:
        return y[:, :channels]
    # Fewer channels than the bus (but more than one): pad by repeating the last.
    pad = np.repeat(y[:, -1:], channels - y.shape[1], axis=1)
    return np.hstack([y, pad])


def render_plan(plan: RenderPlan, buffers: Sequence[np.ndarray]) -> np.ndarray:
    """
    Render ``plan`` to a float32 array shaped (plan.total_frames, plan.channels).

    ``buffers[i]`` is the decoded audio of ``plan.tracks[i]`` at
    ``plan.sample_rate``.
    """
    if len(buffers) != len(plan.tracks):
        raise ValueError(f"expected {len(plan.tracks)} buffers, got {len(buffers)}")

    sr = plan.sample_rate
    total = plan.total_frames
    out = np.zeros((total, plan.channels), dtype=np.float32)
    if total == 0:
        return out

    for track, buffer in zip(plan.tracks, buffers):
        if track.gain <= 0.0 or not track.voices:
            continue
        src = apply_speed(conform_channels(buffer, plan.channels), track.speed)
        if len(src) == 0:
            continue

        for voice in track.voices:
            onset = int(round(voice.onset_s * sr))
            if onset >= total:
                continue
            n = min(frames_for(voice.play_s, sr), total - onset)
            if n <= 0:
                continue

            if voice.loop:
                reps = int(math.ceil(n / len(src)))
                seg = np.tile(src, (reps, 1))[:n]
            else:
                seg = src[:n]

            times = (onset + np.arange(len(seg), dtype=np.float64)) / sr
            env = evaluate_envelope(voice.envelope, times) * np.float32(track.gain)
            out[onset:onset + len(seg)] += seg * env[:, None]

    times = np.arange(total, dtype=np.float64) / sr
    out *= evaluate_envelope(plan.master_envelope, times)[:, None]
    return out
