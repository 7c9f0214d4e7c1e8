from loopmix.playback.coordinator import PlaybackCoordinator
from loopmix.playback.players import (
    AudioPlayer,
    BaseAudioPlayer,
    HeadlessAudioPlayer,
    PlayerBackend,
    SimulatedAudioPlayer,
    create_player,
)

__all__ = [
    "PlaybackCoordinator",
    "AudioPlayer",
    "BaseAudioPlayer",
    "HeadlessAudioPlayer",
    "PlayerBackend",
    "SimulatedAudioPlayer",
    "create_player",
]
