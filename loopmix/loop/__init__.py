from loopmix.loop.loop_engine import LoopSession, MasterLoopInfo, TrackLoopInfo
from loopmix.loop.models import Track

__all__ = [
    "LoopSession",
    "MasterLoopInfo",
    "TrackLoopInfo",
    "Track",
]
