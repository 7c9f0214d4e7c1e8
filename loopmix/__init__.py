"""Loop-layering toolkit: loop timing math, synchronized playback and offline mixdown."""

__version__ = "0.1.0"
