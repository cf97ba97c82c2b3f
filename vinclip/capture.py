"""Capture pipeline: plays a range through a live encoder and collects the clip.

A job moves IDLE -> SEEKING -> RECORDING -> FINALIZING -> DONE, or to FAILED
on any error, or to CANCELLED when a newer export or a reset abandons it.
The encoder delivers its output from reader threads onto one event queue;
``run`` is the only consumer of that queue and the only code that touches
the job, so transitions happen on a single control flow. Events carry the
id of the job they were produced for and anything from another job is
dropped.

Boundary behaviour: the encoder seeks with ``-ss`` before the input, so the
clip starts at the keyframe-accurate position ffmpeg settles on, and it is
cut by duration (``-t span``) rather than by an end timestamp.
"""

import logging
import queue
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from vinclip import ffutil
from vinclip.config import CaptureConfig
from vinclip.errors import (
    CaptureCancelled,
    CaptureError,
    EmptyCaptureError,
    PlaybackError,
    SeekTimeoutError,
    UnsupportedError,
)
from vinclip.models import TERMINAL_STATES, Artifact, CaptureJob, CaptureState, MediaSource

logger = logging.getLogger(__name__)

Seeker = Callable[[Path, float, float], bytes]
ProgressCallback = Callable[[CaptureJob], None]

CHUNK = "chunk"
POSITION = "position"
ERROR = "error"
CLOSED = "closed"
CANCEL = "cancel"


@dataclass
class _Event:
    job_id: str
    kind: str
    payload: object = None


class CapturePipeline:
    """Exports one range at a time as a single fixed-format clip."""

    def __init__(
        self,
        config: CaptureConfig | None = None,
        seeker: Seeker | None = None,
        encoder_factory: Callable[..., ffutil.LiveEncoder] | None = None,
        support_check: Callable[[str], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CaptureConfig()
        self._seeker = seeker or ffutil.extract_frame
        self._encoder_factory = encoder_factory or ffutil.LiveEncoder
        self._support_check = support_check or ffutil.has_encoder
        self._supported: bool | None = None
        self._clock = clock
        self._events: queue.Queue[_Event] = queue.Queue()

    def cancel(self, job: CaptureJob) -> None:
        """Abandon *job*; its run stops the encoder and restores playback."""
        job.request_cancel()
        if job.state not in TERMINAL_STATES:
            self._events.put(_Event(job.id, CANCEL))

    def run(
        self,
        job: CaptureJob,
        source: MediaSource,
        on_progress: ProgressCallback | None = None,
    ) -> CaptureJob:
        """Drive *job* to a terminal state. Blocks for roughly the span."""

        def notify() -> None:
            if on_progress:
                on_progress(job)

        encoder = None
        with source.decode_lock:
            try:
                self._seek(job, source, notify)
                encoder = self._start_encoder(job, source)
                closed = self._record(job, source, notify)
                self._finalize(job, encoder, closed, notify)
            except CaptureCancelled:
                job.state = CaptureState.CANCELLED
                logger.info("Capture %s cancelled", job.id)
            except CaptureError as e:
                job.state = CaptureState.FAILED
                job.error = e
                job.progress = 0.0
                logger.warning("Capture %s failed (%s): %s", job.id, e.kind, e)
            finally:
                if encoder is not None and job.state is not CaptureState.DONE:
                    encoder.kill()
                source.playback.restore(job.range.start)
                notify()
                job.mark_finished()
        return job

    # --- states ---

    def _seek(self, job: CaptureJob, source: MediaSource, notify: Callable[[], None]) -> None:
        self._check_cancel(job)
        job.state = CaptureState.SEEKING
        notify()
        if not self._is_supported():
            raise UnsupportedError(f"{self.config.codec} encoder is not available")

        start = job.range.start
        playback = source.playback
        playback.playing = False
        playback.stop_at = None
        playback.position = start
        playback.muted = True
        try:
            self._seeker(source.path, start, self.config.seek_timeout)
        except ffutil.SeekTimeout as e:
            raise SeekTimeoutError(str(e)) from e
        except ffutil.NoFrameError as e:
            raise PlaybackError(str(e)) from e
        except ffutil.FFmpegNotFoundError as e:
            raise UnsupportedError(str(e)) from e
        except subprocess.CalledProcessError as e:
            raise PlaybackError(f"could not decode {source.path.name} at {start:.3f}s") from e
        self._check_cancel(job)

    def _start_encoder(self, job: CaptureJob, source: MediaSource) -> ffutil.LiveEncoder:
        def emit(kind: str, payload: object = None, job_id: str = job.id) -> None:
            self._events.put(_Event(job_id, kind, payload))

        encoder = self._encoder_factory(
            source.path,
            job.range.start,
            job.range.span,
            emit,
            codec=self.config.codec,
            container=self.config.container,
            bitrate=self.config.bitrate,
        )
        try:
            encoder.start()
        except ffutil.FFmpegNotFoundError as e:
            raise UnsupportedError(str(e)) from e
        except OSError as e:
            raise PlaybackError(f"could not start encoder: {e}") from e
        return encoder

    def _record(self, job: CaptureJob, source: MediaSource, notify: Callable[[], None]) -> bool:
        """Collect chunks until the span is covered. True if the encoder already closed."""
        r = job.range
        job.state = CaptureState.RECORDING
        source.playback.playing = True
        logger.info("Capture %s recording %.2fs-%.2fs", job.id, r.start, r.end)
        started = self._clock()

        while True:
            self._check_cancel(job)
            elapsed = self._clock() - started
            job.progress = min(99.0, 100.0 * elapsed / r.span) if r.span > 0 else 99.0
            notify()
            if elapsed >= r.span:
                logger.debug("capture %s: wall clock reached span", job.id)
                return False

            event = self._next_event(job, min(self.config.tick_interval, r.span - elapsed))
            if event is None:
                continue
            if event.kind == CHUNK:
                job.chunks.append(event.payload)
            elif event.kind == POSITION:
                source.playback.position = event.payload
                if event.payload >= r.end:
                    logger.debug("capture %s: playback reached range end", job.id)
                    return False
            elif event.kind == ERROR:
                raise PlaybackError(str(event.payload))
            elif event.kind == CLOSED:
                return True

    def _finalize(
        self,
        job: CaptureJob,
        encoder: ffutil.LiveEncoder,
        closed: bool,
        notify: Callable[[], None],
    ) -> None:
        job.state = CaptureState.FINALIZING
        notify()

        if not closed:
            encoder.stop()
            deadline = self._clock() + self.config.flush_timeout
            while not closed:
                self._check_cancel(job)
                remaining = deadline - self._clock()
                if remaining <= 0:
                    logger.warning(
                        "Capture %s: encoder did not flush within %.1fs, killing it",
                        job.id, self.config.flush_timeout,
                    )
                    encoder.kill()
                    break
                event = self._next_event(job, min(self.config.tick_interval, remaining))
                if event is None:
                    continue
                if event.kind == CHUNK:
                    job.chunks.append(event.payload)
                elif event.kind == ERROR:
                    raise PlaybackError(str(event.payload))
                elif event.kind == CLOSED:
                    closed = True

        if not job.chunks:
            raise EmptyCaptureError("no video data was recorded")

        job.result = Artifact(
            filename=self.config.filename,
            mimetype=self.config.mimetype,
            data=b"".join(job.chunks),
        )
        job.state = CaptureState.DONE
        job.progress = 100.0
        logger.info(
            "Capture %s done: %d chunks, %d bytes", job.id, len(job.chunks), job.result.size
        )

    # --- helpers ---

    def _is_supported(self) -> bool:
        if self._supported is None:
            self._supported = self._support_check(self.config.codec)
        return self._supported

    def _check_cancel(self, job: CaptureJob) -> None:
        if job.cancelled:
            raise CaptureCancelled(job.id)

    def _next_event(self, job: CaptureJob, timeout: float) -> _Event | None:
        try:
            event = self._events.get(timeout=max(timeout, 0.0))
        except queue.Empty:
            return None
        if event.job_id != job.id:
            logger.debug("dropping stale %s event from job %s", event.kind, event.job_id)
            return None
        return event
