"""Shared data types used across vinclip."""

import threading
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

MAX_SPAN = 90.0
MIN_SPAN = 1.0 / 30.0


@dataclass(frozen=True)
class SelectionRange:
    """A bounded [start, end) window over a source of known duration."""

    start: float
    end: float
    duration: float
    max_span: float = MAX_SPAN
    min_span: float = MIN_SPAN

    @property
    def span(self) -> float:
        return self.end - self.start

    def as_percentages(self) -> dict[str, float]:
        """Start and width of the window as percentages of the duration."""
        if self.duration <= 0:
            return {"left": 0.0, "width": 0.0}
        return {
            "left": 100.0 * self.start / self.duration,
            "width": 100.0 * self.span / self.duration,
        }

    def to_dict(self) -> dict:
        return {
            "start": self.start,
            "end": self.end,
            "span": self.span,
            "duration": self.duration,
            "max_span": self.max_span,
            **self.as_percentages(),
        }


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int
    height: int
    fps: float | None
    codec_video: str
    codec_audio: str | None = None


@dataclass
class Playback:
    """Playback head of a loaded source: what a player would be showing."""

    position: float = 0.0
    playing: bool = False
    muted: bool = False
    # Pause here when set; selection playback ends at the range end.
    stop_at: float | None = None

    def play_range(self, start: float, end: float) -> None:
        self.position = start
        self.stop_at = end
        self.playing = True

    def advance(self, position: float) -> bool:
        """Move the head to *position*. Returns True if that reached ``stop_at`` and paused."""
        self.position = position
        if self.playing and self.stop_at is not None and position >= self.stop_at:
            self.playing = False
            self.stop_at = None
            return True
        return False

    def restore(self, position: float) -> None:
        self.playing = False
        self.position = position
        self.muted = False
        self.stop_at = None


@dataclass
class MediaSource:
    """A probed, seekable video file."""

    path: Path
    duration: float
    width: int
    height: int
    fps: float | None = None
    codec_video: str | None = None
    has_audio: bool = False
    playback: Playback = field(default_factory=Playback)
    # Seeks on one source are serialized through this lock.
    decode_lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "filename": self.path.name,
            "duration": self.duration,
            "width": self.width,
            "height": self.height,
            "fps": self.fps,
            "has_audio": self.has_audio,
        }


@dataclass
class Artifact:
    """A finished, downloadable byte stream."""

    filename: str
    mimetype: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class Thumbnail:
    """One sampled frame; ``image`` is None when sampling that offset failed."""

    offset: float
    image: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.image is not None


@dataclass
class ThumbnailSet:
    kind: str
    offsets: list[float]
    items: list[Thumbnail] = field(default_factory=list)
    generation: int = 0

    def first_ok(self) -> int | None:
        return next((i for i, t in enumerate(self.items) if t.ok), None)


class CaptureState(Enum):
    IDLE = "idle"
    SEEKING = "seeking"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATES = (CaptureState.SEEKING, CaptureState.RECORDING, CaptureState.FINALIZING)
TERMINAL_STATES = (CaptureState.DONE, CaptureState.FAILED, CaptureState.CANCELLED)


@dataclass
class CaptureJob:
    """One export of a range snapshot. Only the capture pipeline mutates it."""

    range: SelectionRange
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: CaptureState = CaptureState.IDLE
    progress: float = 0.0
    chunks: list[bytes] = field(default_factory=list, repr=False)
    result: Artifact | None = None
    error: Exception | None = None
    _cancel: threading.Event = field(default_factory=threading.Event, repr=False)
    _finished: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def request_cancel(self) -> None:
        self._cancel.set()

    def mark_finished(self) -> None:
        self._finished.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job reaches a terminal state."""
        return self._finished.wait(timeout)

    def snapshot(self) -> dict:
        data = {
            "job_id": self.id,
            "state": self.state.value,
            "progress": round(self.progress, 1),
            "start": self.range.start,
            "end": self.range.end,
        }
        if self.result is not None:
            data["filename"] = self.result.filename
            data["size"] = self.result.size
        if self.error is not None:
            data["error"] = str(self.error)
            data["error_kind"] = getattr(self.error, "kind", "error")
        return data
