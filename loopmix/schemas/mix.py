from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from loopmix.core.config import settings

AudioFormat = Literal["mp3", "wav", "m4a"]
QualityLevel = Literal["low", "medium", "high"]


class MixTrack(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    source: Any                                   # path, bytes or file object understood by the decoder
    speed: float = Field(default=1.0, ge=0.05, le=2.5)
    volume: float = Field(default=100, ge=0, le=100)


class MixRequest(BaseModel):
    tracks: List[MixTrack] = Field(default_factory=list)
    loop_count: int = Field(default_factory=lambda: settings.DEFAULT_LOOP_COUNT, ge=0)
    fadeout_ms: float = Field(default_factory=lambda: settings.DEFAULT_FADEOUT_MS, ge=0)
    target_format: AudioFormat = Field(default_factory=lambda: settings.DEFAULT_FORMAT)
    target_quality: QualityLevel = Field(default_factory=lambda: settings.DEFAULT_QUALITY)
