"""Error taxonomy for loading, sampling and capture."""


class LoadError(Exception):
    """The source could not be fetched or probed."""


class SampleError(Exception):
    """One offset could not be sampled. Returned as a value, never fatal."""

    def __init__(self, offset: float, reason: str):
        super().__init__(f"no frame at {offset:.3f}s: {reason}")
        self.offset = offset
        self.reason = reason


class CaptureError(Exception):
    """Fatal to a single capture job; the user may retry the export."""

    kind = "capture_error"


class UnsupportedError(CaptureError):
    kind = "unsupported"


class SeekTimeoutError(CaptureError):
    kind = "seek_timeout"


class PlaybackError(CaptureError):
    kind = "playback_error"


class EmptyCaptureError(CaptureError):
    kind = "empty_capture"


class CaptureCancelled(Exception):
    """Internal signal: the job was abandoned for a newer one or a reset."""
