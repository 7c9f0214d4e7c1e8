"""Tests for loopmix/renderers/render_graph.py."""

from __future__ import annotations

import numpy as np
import pytest

from loopmix.renderers import render_graph as rg
from loopmix.renderers.render_graph import TrackTiming, build_render_plan, render_plan
from tests.helpers import constant_audio


def _ones(seconds: float, sample_rate: int = 1000) -> np.ndarray:
    return constant_audio(seconds, sample_rate=sample_rate, value=1.0).samples


def _points(envelope: rg.Envelope) -> list[tuple[float, float]]:
    return [(round(t, 6), g) for t, g in envelope]


# ---------------------------------------------------------------------------
# Timing rules
# ---------------------------------------------------------------------------


class TestGain:
    def test_endpoints(self) -> None:
        assert rg.volume_to_gain(0) == 0.0
        assert rg.volume_to_gain(100) == 1.0

    def test_midpoint_is_perceptual(self) -> None:
        assert rg.volume_to_gain(50) == pytest.approx(0.1505, abs=1e-4)

    def test_monotonic(self) -> None:
        gains = [rg.volume_to_gain(v) for v in range(0, 101, 5)]
        assert gains == sorted(gains)


class TestDurations:
    def test_master_is_longest_adjusted_track(self) -> None:
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 100), TrackTiming(3.0, 1.5, 100)],
            loop_count=1,
            fadeout_ms=0,
            crossfade_ms=0,
            sample_rate=1000,
        )
        assert plan.master_loop_s == pytest.approx(2.0)
        assert [t.strategy for t in plan.tracks] == ["native_loop", "single"]

    def test_loops_plus_fadeout(self) -> None:
        plan = build_render_plan(
            [TrackTiming(10.0, 1.0, 100)], loop_count=4, fadeout_ms=2000, crossfade_ms=0, sample_rate=1000
        )
        assert plan.total_s == pytest.approx(42.0)
        assert plan.total_frames == 42000

    def test_no_tracks_is_fadeout_only(self) -> None:
        plan = build_render_plan([], loop_count=4, fadeout_ms=2000, crossfade_ms=0, sample_rate=1000)
        assert plan.total_s == pytest.approx(2.0)
        assert plan.tracks == ()

    def test_zero_loops(self) -> None:
        assert rg.total_render_duration(10.0, 0, 1.5) == 1.5

    def test_frames_absorb_float_noise(self) -> None:
        assert rg.frames_for(0.1 * 3, 44100) == 13230
        assert rg.frames_for(0.0, 44100) == 0

    def test_invalid_speed_treated_as_unity(self) -> None:
        plan = build_render_plan(
            [TrackTiming(2.0, 9.0, 100)], loop_count=1, fadeout_ms=0, crossfade_ms=0, sample_rate=1000
        )
        assert plan.master_loop_s == pytest.approx(2.0)
        assert plan.tracks[0].speed == 1.0


class TestStrategy:
    def test_single_loop_of_master_does_not_loop(self) -> None:
        assert rg.needs_looping(2.0, 2.0, 1) is False

    def test_multiple_loops_always_loop(self) -> None:
        assert rg.needs_looping(2.0, 2.0, 2) is True

    def test_shorter_track_loops(self) -> None:
        assert rg.needs_looping(1.0, 2.0, 1) is True

    @pytest.mark.parametrize(
        "crossfade, looping, track, expected",
        [(0.1, True, 1.0, True), (0.0, True, 1.0, False), (0.1, False, 1.0, False), (0.5, True, 1.0, False)],
    )
    def test_can_crossfade(self, crossfade: float, looping: bool, track: float, expected: bool) -> None:
        assert rg.can_crossfade(crossfade, looping, track) is expected


# ---------------------------------------------------------------------------
# Event list
# ---------------------------------------------------------------------------


class TestCrossfadedVoices:
    def test_seam_envelopes(self) -> None:
        voices = rg.plan_crossfaded_voices(1.0, 3.0, 0.1)
        assert [v.onset_s for v in voices] == [0.0, 1.0, 2.0]
        assert _points(voices[0].envelope) == [(0.0, 1.0), (0.9, 1.0), (1.0, 0.0)]
        assert _points(voices[1].envelope) == [(1.0, 0.0), (1.1, 1.0), (1.9, 1.0), (2.0, 0.0)]
        assert _points(voices[2].envelope) == [(2.0, 0.0), (2.1, 1.0)]

    def test_last_repetition_truncated_to_total(self) -> None:
        voices = rg.plan_crossfaded_voices(1.0, 2.5, 0.1)
        assert len(voices) == 3
        assert voices[-1].play_s == pytest.approx(0.5)

    def test_plan_uses_crossfade_when_possible(self) -> None:
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 100)], loop_count=3, fadeout_ms=0, crossfade_ms=100, sample_rate=1000
        )
        assert plan.tracks[0].strategy == "crossfade"
        assert len(plan.tracks[0].voices) == 3

    def test_short_track_falls_back_to_native_loop(self) -> None:
        plan = build_render_plan(
            [TrackTiming(0.15, 1.0, 100)], loop_count=3, fadeout_ms=0, crossfade_ms=100, sample_rate=1000
        )
        assert plan.tracks[0].strategy == "native_loop"
        assert plan.tracks[0].voices[0].loop is True


class TestMasterEnvelope:
    def test_no_fadeout(self) -> None:
        assert rg.master_envelope(5.0, 0.0) == ((0.0, 1.0),)

    def test_fade_at_tail(self) -> None:
        assert rg.master_envelope(5.0, 2.0) == ((0.0, 1.0), (3.0, 1.0), (5.0, 0.0))

    def test_fade_covers_everything(self) -> None:
        assert rg.master_envelope(2.0, 2.0) == ((0.0, 1.0), (2.0, 0.0))


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


class TestApplySpeed:
    def test_unity_is_passthrough(self) -> None:
        samples = _ones(1.0)
        assert rg.apply_speed(samples, 1.0) is samples

    @pytest.mark.parametrize("speed, frames", [(0.5, 2000), (2.0, 500), (1.25, 800)])
    def test_length_scales_inversely(self, speed: float, frames: int) -> None:
        assert len(rg.apply_speed(_ones(1.0), speed)) == frames


class TestConformChannels:
    def test_mono_is_duplicated(self) -> None:
        y = rg.conform_channels(np.array([0.1, 0.2], dtype=np.float32), 2)
        assert y.shape == (2, 2)
        assert np.allclose(y[:, 0], y[:, 1])

    def test_extra_channels_dropped(self) -> None:
        assert rg.conform_channels(np.zeros((4, 6), dtype=np.float32), 2).shape == (4, 2)


class TestRenderPlan:
    def test_buffer_count_must_match(self) -> None:
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 100)], loop_count=1, fadeout_ms=0, crossfade_ms=0, sample_rate=1000
        )
        with pytest.raises(ValueError):
            render_plan(plan, [])

    def test_crossfade_seams(self) -> None:
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 100)], loop_count=3, fadeout_ms=0, crossfade_ms=100, sample_rate=1000
        )
        out = render_plan(plan, [_ones(1.0)])

        assert out.shape == (3000, 2)
        assert out[500, 0] == pytest.approx(1.0)
        assert out[950, 0] == pytest.approx(0.5, abs=1e-3)
        assert out[1000, 0] == pytest.approx(0.0, abs=1e-3)
        assert out[1050, 0] == pytest.approx(0.5, abs=1e-3)
        assert out[1500, 0] == pytest.approx(1.0)
        assert out[2999, 0] == pytest.approx(1.0)

    def test_native_loop_with_master_fade(self) -> None:
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 100)], loop_count=2, fadeout_ms=500, crossfade_ms=0, sample_rate=1000
        )
        out = render_plan(plan, [_ones(1.0)])

        assert out.shape == (2500, 2)
        assert out[1000, 0] == pytest.approx(1.0)
        assert out[2250, 0] == pytest.approx(0.5, abs=1e-3)
        assert out[2499, 1] == pytest.approx(0.0, abs=5e-3)

    def test_shorter_track_repeats_inside_master(self) -> None:
        ramp = np.linspace(0.0, 1.0, 250, dtype=np.float32)[:, None].repeat(2, axis=1)
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 0), TrackTiming(0.25, 1.0, 100)],
            loop_count=1,
            fadeout_ms=0,
            crossfade_ms=0,
            sample_rate=1000,
        )
        out = render_plan(plan, [_ones(1.0), ramp])

        assert np.allclose(out[0:250], out[250:500])
        assert np.allclose(out[0:250], out[750:1000])

    def test_muted_track_is_silent(self) -> None:
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 0)], loop_count=1, fadeout_ms=0, crossfade_ms=0, sample_rate=1000
        )
        assert not render_plan(plan, [_ones(1.0)]).any()

    def test_volume_scales_output(self) -> None:
        plan = build_render_plan(
            [TrackTiming(1.0, 1.0, 50)], loop_count=1, fadeout_ms=0, crossfade_ms=0, sample_rate=1000
        )
        out = render_plan(plan, [_ones(1.0)])
        assert out[10, 0] == pytest.approx(rg.volume_to_gain(50), rel=1e-5)
