"""Session orchestrator: the one "current video" and everything derived from it.

A Session wires the selection controller to the thumbnail service and the
capture pipeline. Sampling and capture both need exclusive control of the
source's playback position, so starting one cancels the other first.
"""

import logging
import threading
from pathlib import Path
from typing import Callable

from vinclip.capture import CapturePipeline, ProgressCallback
from vinclip.config import AppConfig
from vinclip.controller import SelectionController
from vinclip.loader import load_source
from vinclip.models import Artifact, CaptureJob, CaptureState, MediaSource, SelectionRange, ThumbnailSet
from vinclip.sampler import FrameSampler
from vinclip.selection import initial_range
from vinclip.thumbnails import OVERVIEW, PREVIEW, ThumbnailService

logger = logging.getLogger(__name__)

THUMBNAIL_FILENAME = "linkedin-thumbnail.jpg"


class Debouncer:
    """Runs *fn* once input has been quiet for *delay* seconds."""

    def __init__(self, delay: float, fn: Callable[[], object]):
        self.delay = delay
        self._fn = fn
        self._timer: threading.Timer | None = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        if self.delay <= 0:
            self.cancel()
            self._fn()
            return
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self._fn()


class Session:
    def __init__(
        self,
        config: AppConfig | None = None,
        sampler: FrameSampler | None = None,
        pipeline: CapturePipeline | None = None,
        loader: Callable[..., MediaSource] | None = None,
        work_dir: Path | None = None,
        run_async: bool = True,
    ):
        self.config = config or AppConfig()
        sampler = sampler or FrameSampler(seek_timeout=self.config.thumbnails.seek_timeout)
        self._thumbs = ThumbnailService(sampler, self.config.thumbnails)
        self._pipeline = pipeline or CapturePipeline(self.config.capture)
        self._loader = loader or load_source
        self.work_dir = work_dir
        self.run_async = run_async

        self._lock = threading.RLock()
        self._debouncer = Debouncer(self.config.thumbnails.debounce, self._refresh_preview)
        self._capture_thread: threading.Thread | None = None
        self._sampling_thread: threading.Thread | None = None
        self._sampling_kind: str | None = None
        self._resample_after_capture: str | None = None
        self._last_range: SelectionRange | None = None
        self._settled = False

        self.source: MediaSource | None = None
        self.controller: SelectionController | None = None
        self.thumbnails: ThumbnailSet | None = None
        self.selected_thumbnail: int | None = None
        self.job: CaptureJob | None = None

    @property
    def range(self) -> SelectionRange | None:
        return self.controller.range if self.controller else None

    # --- lifecycle ---

    def load(self, locator: str | Path) -> MediaSource:
        """Load a new source, replacing the current one. LoadError propagates."""
        source = self._loader(locator, self.work_dir)
        self.reset()

        sel = self.config.selection
        with self._lock:
            self.source = source
            self.controller = SelectionController(
                initial_range(source.duration, sel.max_span, sel.min_span),
                fps=source.fps,
                coarse_step=sel.coarse_step,
                default_fps=sel.default_fps,
                on_change=self._on_range_change,
                on_settle=self._on_range_settle,
            )
            self._last_range = self.controller.range
        self.refresh_thumbnails(OVERVIEW)
        return source

    def reset(self) -> None:
        """Abandon any capture or sampling and release everything derived from the source."""
        self._debouncer.cancel()
        self._thumbs.invalidate()
        job = self.job
        if job is not None:
            self._pipeline.cancel(job)
        self._join_workers()
        with self._lock:
            if self.source is not None:
                logger.info("Releasing %s", self.source.path.name)
            self.source = None
            self.controller = None
            self.thumbnails = None
            self.selected_thumbnail = None
            self.job = None
            self._resample_after_capture = None
            self._last_range = None

    def update_duration(self, duration: float) -> SelectionRange | None:
        """Metadata changed: re-clamp the selection against the new duration."""
        with self._lock:
            if self.source is None:
                return None
            self.source.duration = duration
            new = self.controller.set_duration(duration)
        self._after_input()
        return new

    # --- selection ---

    def handle_event(self, event: dict) -> SelectionRange | None:
        with self._lock:
            if self.controller is None:
                return None
            was_playing = self.controller.playing
            self.controller.handle_event(event)
            if self.controller.playing != was_playing:
                self.source.playback.playing = self.controller.playing
            new = self.controller.range
        self._after_input()
        return new

    def _after_input(self) -> None:
        # Settling schedules sampling, which may join worker threads; never do
        # that while holding the session lock.
        with self._lock:
            settled, self._settled = self._settled, False
        if settled:
            self._debouncer.trigger()

    def select(self, start: float | None = None, end: float | None = None) -> SelectionRange | None:
        with self._lock:
            if self.controller is None:
                return None
            r = self.controller.range
            start = r.start if start is None else start
            end = start + r.max_span if end is None else end
            new = self.controller.select(start, end)
        self._after_input()
        return new

    def selection(self) -> dict | None:
        with self._lock:
            if self.controller is None:
                return None
            data = self.controller.range.to_dict()
            data["dragging"] = self.controller.drag.handle.value
            data["playing"] = self.source.playback.playing
            data["position"] = self.source.playback.position
            return data

    # --- playback ---

    def play_selection(self) -> dict | None:
        """Play the selected range from its start; playback pauses at its end."""
        with self._lock:
            if self.controller is None:
                return None
            if self.job is not None and self.job.active:
                raise ValueError("Export in progress")
            r = self.controller.range
            self.source.playback.play_range(r.start, r.end)
            self.controller.playing = True
            logger.debug("Playing selection %.2fs-%.2fs", r.start, r.end)
            return self.selection()

    def update_position(self, position: float) -> dict | None:
        """The player's head moved to *position*."""
        with self._lock:
            if self.controller is None:
                return None
            # A running capture owns the playback head.
            if self.job is None or not self.job.active:
                if self.source.playback.advance(position):
                    self.controller.playing = False
            return self.selection()

    def _on_range_change(self, new: SelectionRange) -> None:
        # Show the frame at whichever bound moved.
        old = self._last_range
        playback = self.source.playback
        if old is None or new.start != old.start:
            playback.position = new.start
        else:
            playback.position = new.end
        self._last_range = new

    def _on_range_settle(self, _: SelectionRange) -> None:
        self._settled = True

    # --- thumbnails ---

    def _refresh_preview(self) -> None:
        self.refresh_thumbnails(PREVIEW)

    def refresh_thumbnails(self, kind: str = PREVIEW) -> ThumbnailSet | None:
        """Resample thumbnails; runs in the background when the session is async."""
        with self._lock:
            source, r, job = self.source, self.range, self.job
        if source is None:
            return None
        if job is not None and job.active:
            logger.info("Range changed during export; cancelling capture %s", job.id)
            self._pipeline.cancel(job)
            self._join(self._capture_thread)

        if not self.run_async:
            return self._sample(source, kind, r)
        thread = threading.Thread(target=self._sample, args=(source, kind, r), daemon=True)
        self._sampling_thread = thread
        self._sampling_kind = kind
        thread.start()
        return None

    def _sample(self, source: MediaSource, kind: str, r: SelectionRange) -> ThumbnailSet | None:
        if kind == OVERVIEW:
            result = self._thumbs.overview(source)
        else:
            result = self._thumbs.preview(source, r)
        if result is None:
            return None
        with self._lock:
            if self.source is not source or not self._thumbs.is_current(result.generation):
                return None
            self.thumbnails = result
            self.selected_thumbnail = result.first_ok()
        return result

    def select_thumbnail(self, index: int) -> bool:
        with self._lock:
            thumbs = self.thumbnails
            if thumbs is None or not 0 <= index < len(thumbs.items) or not thumbs.items[index].ok:
                return False
            self.selected_thumbnail = index
            return True

    def thumbnail_artifact(self) -> Artifact | None:
        """The selected frame as a downloadable JPEG."""
        with self._lock:
            if self.thumbnails is None or self.selected_thumbnail is None:
                return None
            image = self.thumbnails.items[self.selected_thumbnail].image
        return Artifact(filename=THUMBNAIL_FILENAME, mimetype="image/jpeg", data=image)

    # --- export ---

    def request_export(self, on_progress: ProgressCallback | None = None) -> CaptureJob:
        """Start a fresh capture of the current range, abandoning any previous one."""
        with self._lock:
            if self.source is None:
                raise ValueError("No video loaded")
            source, r, previous = self.source, self.range, self.job

        resample = self._interrupt_sampling()
        if previous is not None and previous.active:
            logger.info("New export requested; cancelling capture %s", previous.id)
        if previous is not None:
            self._pipeline.cancel(previous)
        self._join(self._capture_thread)

        job = CaptureJob(range=r)
        with self._lock:
            self.job = job
            self._resample_after_capture = resample or self._resample_after_capture

        if not self.run_async:
            self._run_capture(job, source, on_progress)
            return job
        thread = threading.Thread(
            target=self._run_capture, args=(job, source, on_progress), daemon=True
        )
        self._capture_thread = thread
        thread.start()
        return job

    def clip_artifact(self) -> Artifact | None:
        job = self.job
        if job is None or job.state is not CaptureState.DONE:
            return None
        return job.result

    def _run_capture(
        self, job: CaptureJob, source: MediaSource, on_progress: ProgressCallback | None
    ) -> None:
        self._pipeline.run(job, source, on_progress)
        with self._lock:
            if self.job is not job or job.state is CaptureState.CANCELLED:
                return
            kind, self._resample_after_capture = self._resample_after_capture, None
        if kind:
            self.refresh_thumbnails(kind)

    # --- workers ---

    def _interrupt_sampling(self) -> str | None:
        """Stop pending or running sampling; return the kind to redo afterwards."""
        pending = PREVIEW if self._debouncer.pending else None
        self._debouncer.cancel()
        running = self._sampling_thread is not None and self._sampling_thread.is_alive()
        self._thumbs.invalidate()
        self._join(self._sampling_thread)
        if running:
            return pending or self._sampling_kind
        return pending

    def _join_workers(self) -> None:
        self._join(self._sampling_thread)
        self._join(self._capture_thread)

    def _join(self, thread: threading.Thread | None) -> None:
        if thread is None or thread is threading.current_thread() or not thread.is_alive():
            return
        limit = (
            self.config.capture.seek_timeout
            + self.config.capture.flush_timeout
            + self.config.thumbnails.seek_timeout
        )
        thread.join(limit)
        if thread.is_alive():
            logger.warning("Worker %s still running after %.0fs", thread.name, limit)
