"""vinclip: pick up to 90 seconds of a video and export it as a clip plus a thumbnail."""

__version__ = "0.1.0"
