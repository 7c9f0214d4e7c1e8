from __future__ import annotations

from typing import Literal

AudioFormat = Literal["mp3", "wav", "m4a"]
QualityLevel = Literal["low", "medium", "high"]

# kbps. WAV is uncompressed; its entries are the PCM data rate for reference.
_BITRATES: dict[str, dict[str, int]] = {
    "mp3": {"low": 96, "medium": 128, "high": 192},
    "m4a": {"low": 96, "medium": 128, "high": 192},
    "wav": {"low": 705, "medium": 1411, "high": 1411},
}

_MIMES: dict[str, str] = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "wav": "audio/wav",
}


def get_bitrate(fmt: str, quality: str) -> int:
    try:
        return _BITRATES[fmt][quality]
    except KeyError as exc:
        raise ValueError(f"unsupported format/quality: {fmt}/{quality}") from exc


def get_mime(fmt: str) -> str:
    return _MIMES.get(fmt, "application/octet-stream")


def get_extension(fmt: str) -> str:
    return f".{fmt}"
