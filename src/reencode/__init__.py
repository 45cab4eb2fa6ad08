"""reencode — segment capture, stream-copy merge and MP4 re-encode benchmark."""

__version__ = "0.1.0"
