#!/usr/bin/env python
"""Mix every audio file in a directory into one looped, faded file."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from loopmix.codecs.quality import get_extension
from loopmix.core.config import settings
from loopmix.renderers.mixdown import MixdownEngine, MixingProgress, MixResult
from loopmix.schemas.mix import MixRequest, MixTrack


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Render the audio files in a directory as one looped mixdown."
    )
    parser.add_argument(
        "input_dir",
        help="Directory containing input audio tracks.",
    )
    parser.add_argument(
        "--loop-count",
        type=int,
        default=settings.DEFAULT_LOOP_COUNT,
        help="Number of master loop cycles to render.",
    )
    parser.add_argument(
        "--fadeout-ms",
        type=float,
        default=settings.DEFAULT_FADEOUT_MS,
        help="Fade-out appended after the last loop, in milliseconds.",
    )
    parser.add_argument(
        "--crossfade-ms",
        type=float,
        default=settings.LOOP_CROSSFADE_MS,
        help="Crossfade at loop seams, in milliseconds (0 = gapless).",
    )
    parser.add_argument(
        "--format",
        default=settings.DEFAULT_FORMAT,
        choices=["wav", "mp3", "m4a"],
        help="Requested output format (falls back to WAV when it cannot be produced).",
    )
    parser.add_argument(
        "--quality",
        default=settings.DEFAULT_QUALITY,
        choices=["low", "medium", "high"],
        help="Output quality level.",
    )
    parser.add_argument(
        "--tracks-json",
        default=None,
        help="Optional JSON file with a list of {speed, volume} objects (same length/order as discovered tracks).",
    )
    parser.add_argument(
        "--output-audio",
        default=None,
        help="Output mix path (default: ./mixdown_outputs/mixdown<ext>).",
    )
    parser.add_argument(
        "--enable-timing-logs",
        action="store_true",
        help="Enable timing logs from the mixdown engine.",
    )
    return parser.parse_args()


SUPPORTED_AUDIO_EXTENSIONS = {
    ".wav",
    ".flac",
    ".ogg",
    ".mp3",
    ".aiff",
    ".aif",
    ".opus",
}


def _collect_tracks_from_dir(input_dir: Path) -> list[Path]:
    tracks = [
        p.resolve()
        for p in input_dir.iterdir()
        if p.is_file() and p.suffix.lower() in SUPPORTED_AUDIO_EXTENSIONS
    ]
    tracks.sort(key=lambda p: (p.name.lower(), str(p)))
    return tracks


def _load_track_settings(path: str | None, track_paths: list[Path]) -> list[dict[str, Any]]:
    if path is None:
        return [{"speed": 1.0, "volume": 100} for _ in track_paths]

    settings_path = Path(path).expanduser().resolve()
    payload = json.loads(settings_path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("tracks JSON must be a list")
    if len(payload) != len(track_paths):
        raise ValueError("tracks JSON length must match track count")

    out: list[dict[str, Any]] = []
    for i, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ValueError(f"tracks[{i}] must be an object")
        out.append({"speed": float(item.get("speed", 1.0)), "volume": float(item.get("volume", 100))})
    return out


def _resolve_output_audio_path(output_audio: str | None, actual_format: str) -> Path:
    suffix = get_extension(actual_format)
    if output_audio:
        p = Path(output_audio).expanduser().resolve()
        if p.suffix.lower() != suffix:
            p = p.with_suffix(suffix)
        return p
    return Path("mixdown_outputs").resolve() / f"mixdown{suffix}"


def _log_progress(progress: MixingProgress) -> None:
    logging.getLogger("mixdown_tester").info("Progress: %.0f%%", progress.ratio * 100)


async def _run_mixdown(request: MixRequest, *, crossfade_ms: float, enable_timing_logs: bool) -> MixResult:
    engine = MixdownEngine(crossfade_ms=crossfade_ms, enable_timing_logs=enable_timing_logs)
    return await engine.mix(request, on_progress=_log_progress)


def main() -> int:
    args = parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")

    input_dir = Path(args.input_dir).expanduser().resolve()
    if not input_dir.exists():
        raise FileNotFoundError(f"Input directory does not exist: {input_dir}")
    if not input_dir.is_dir():
        raise NotADirectoryError(f"Input path is not a directory: {input_dir}")

    track_paths = _collect_tracks_from_dir(input_dir)
    if not track_paths:
        raise ValueError(
            f"No supported audio files found in {input_dir}. "
            f"Supported extensions: {sorted(SUPPORTED_AUDIO_EXTENSIONS)}"
        )

    track_settings = _load_track_settings(args.tracks_json, track_paths)
    request = MixRequest(
        tracks=[MixTrack(source=str(p), **s) for p, s in zip(track_paths, track_settings)],
        loop_count=int(args.loop_count),
        fadeout_ms=float(args.fadeout_ms),
        target_format=args.format,
        target_quality=args.quality,
    )
    result = asyncio.run(
        _run_mixdown(
            request,
            crossfade_ms=float(args.crossfade_ms),
            enable_timing_logs=bool(args.enable_timing_logs),
        )
    )

    output_audio_path = _resolve_output_audio_path(args.output_audio, result.actual_format)
    output_audio_path.parent.mkdir(parents=True, exist_ok=True)
    output_audio_path.write_bytes(result.rendered_data)

    summary = {
        "input_directory": str(input_dir),
        "input_tracks": [
            {"path": str(p), **s} for p, s in zip(track_paths, track_settings)
        ],
        "loop_count": request.loop_count,
        "fadeout_ms": request.fadeout_ms,
        "crossfade_ms": float(args.crossfade_ms),
        "requested_format": request.target_format,
        "output_audio": {
            "path": str(output_audio_path),
            "format": result.actual_format,
            "mime": result.mime,
            "sample_rate": result.sample_rate,
            "total_duration_ms": result.total_duration_ms,
            "frames": result.frames,
            "bytes": len(result.rendered_data),
        },
        "render_debug": result.debug or {},
    }
    summary_path = output_audio_path.with_name(f"{output_audio_path.stem}_summary.json")
    summary_path.write_text(json.dumps(summary, indent=2), encoding="utf-8")

    print(f"[OK] Rendered mix: {output_audio_path}")
    print(f"[OK] Summary: {summary_path}")
    print(f"[OK] Format: {result.actual_format} | Length: {result.total_duration_ms:.0f} ms")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
