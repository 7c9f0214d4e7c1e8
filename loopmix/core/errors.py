from __future__ import annotations

import sys
import time
from enum import Enum
from typing import Any


class AudioErrorCode(str, Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RECORDING_FAILED = "RECORDING_FAILED"
    PLAYBACK_FAILED = "PLAYBACK_FAILED"
    MIXING_FAILED = "MIXING_FAILED"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"
    INVALID_FORMAT = "INVALID_FORMAT"
    RESOURCE_UNAVAILABLE = "RESOURCE_UNAVAILABLE"
    UNKNOWN = "UNKNOWN"


RECOVERABLE_CODES = frozenset(
    {
        AudioErrorCode.RECORDING_FAILED,
        AudioErrorCode.PLAYBACK_FAILED,
        AudioErrorCode.MIXING_FAILED,
        AudioErrorCode.RESOURCE_UNAVAILABLE,
    }
)

_DEFAULT_USER_MESSAGES: dict[AudioErrorCode, str] = {
    AudioErrorCode.PERMISSION_DENIED: (
        "Microphone permission is required to record audio. Please grant permission in your device settings."
    ),
    AudioErrorCode.RECORDING_FAILED: "Failed to record audio. Please try again.",
    AudioErrorCode.PLAYBACK_FAILED: "Failed to play audio. The file may be corrupted.",
    AudioErrorCode.MIXING_FAILED: "Failed to mix audio tracks. Please try again.",
    AudioErrorCode.FILE_NOT_FOUND: "Audio file not found. It may have been deleted.",
    AudioErrorCode.INVALID_FORMAT: "Unsupported audio format. Please use MP3, WAV, or M4A files.",
    AudioErrorCode.RESOURCE_UNAVAILABLE: "Audio resource is currently unavailable. Please try again later.",
    AudioErrorCode.UNKNOWN: "An unexpected error occurred. Please try again.",
}


class AudioError(Exception):
    """
    Audio failure tagged with a kind code.

    message: developer-facing description
    user_message: short text suitable for display (defaults per code)
    context: extra diagnostic fields (track counts, offending values, original_error, ...)
    """

    def __init__(
        self,
        code: AudioErrorCode,
        message: str,
        user_message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = AudioErrorCode(code)
        self.message = message
        self.user_message = user_message or _DEFAULT_USER_MESSAGES[self.code]
        self.context = context
        self.platform = sys.platform
        self.timestamp = int(time.time() * 1000)

    def is_recoverable(self) -> bool:
        """True when the caller may retry the same operation."""
        return self.code in RECOVERABLE_CODES

    def is_permission_error(self) -> bool:
        return self.code == AudioErrorCode.PERMISSION_DENIED

    def to_dict(self) -> dict[str, Any]:
        context = None
        if self.context is not None:
            context = {k: (repr(v) if isinstance(v, BaseException) else v) for k, v in self.context.items()}
        return {
            "name": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "user_message": self.user_message,
            "platform": self.platform,
            "timestamp": self.timestamp,
            "context": context,
        }

    def __str__(self) -> str:
        return f"AudioError [{self.code.value}]: {self.message}"
