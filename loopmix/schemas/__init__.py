from loopmix.schemas.mix import MixRequest, MixTrack

__all__ = ["MixRequest", "MixTrack"]
