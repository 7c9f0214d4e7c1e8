from loopmix.codecs.decoder import AudioDecoder, DecodedAudio, SoundfileDecoder
from loopmix.codecs.encoder import AudioEncoder, EncodedAudio, SoundfileEncoder
from loopmix.codecs.quality import get_bitrate, get_extension, get_mime

__all__ = [
    "AudioDecoder",
    "DecodedAudio",
    "SoundfileDecoder",
    "AudioEncoder",
    "EncodedAudio",
    "SoundfileEncoder",
    "get_bitrate",
    "get_extension",
    "get_mime",
]
