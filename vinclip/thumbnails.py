"""Thumbnail policies: which offsets to sample, and stale-result handling."""

import logging
import math
import threading

from vinclip.config import ThumbnailConfig
from vinclip.errors import SampleError
from vinclip.models import MediaSource, SelectionRange, Thumbnail, ThumbnailSet
from vinclip.sampler import FrameSampler

logger = logging.getLogger(__name__)

OVERVIEW = "overview"
PREVIEW = "preview"


def overview_offsets(duration: float, count: int = 5) -> list[float]:
    """*count* offsets evenly spaced strictly inside (0, duration)."""
    if duration <= 0 or count < 1:
        return []
    step = duration / (count + 1)
    return [i * step for i in range(1, count + 1)]


def range_offsets(r: SelectionRange, interval: float = 10.0) -> list[float]:
    """One offset per *interval* seconds of span, centred in equal slices."""
    span = r.span
    count = max(1, math.floor(span / interval))
    step = span / count
    return [r.start + (i + 0.5) * step for i in range(count)]


class ThumbnailService:
    """Drives the sampler for a policy and discards superseded runs.

    Every run takes a new generation number. A run that is no longer the
    latest stops sampling at the next offset and returns None.
    """

    def __init__(self, sampler: FrameSampler, config: ThumbnailConfig | None = None):
        self._sampler = sampler
        self.config = config or ThumbnailConfig()
        self._generation = 0
        self._lock = threading.Lock()

    def invalidate(self) -> None:
        with self._lock:
            self._generation += 1

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _next_generation(self) -> int:
        with self._lock:
            self._generation += 1
            return self._generation

    def overview(self, source: MediaSource) -> ThumbnailSet | None:
        offsets = overview_offsets(source.duration, self.config.overview_count)
        return self._run(source, OVERVIEW, offsets)

    def preview(self, source: MediaSource, r: SelectionRange) -> ThumbnailSet | None:
        offsets = range_offsets(r, self.config.preview_interval)
        return self._run(source, PREVIEW, offsets)

    def _run(self, source: MediaSource, kind: str, offsets: list[float]) -> ThumbnailSet | None:
        generation = self._next_generation()
        items: list[Thumbnail] = []
        for offset, result in self._sampler.sample(
            source, offsets, cancelled=lambda: not self.is_current(generation)
        ):
            if isinstance(result, SampleError):
                items.append(Thumbnail(offset=offset, error=result.reason))
            else:
                items.append(Thumbnail(offset=offset, image=result))

        if not self.is_current(generation):
            logger.debug("discarding stale %s thumbnails (generation %d)", kind, generation)
            return None
        failed = sum(1 for t in items if not t.ok)
        logger.info("Sampled %d %s thumbnails (%d failed)", len(items), kind, failed)
        return ThumbnailSet(kind=kind, offsets=offsets, items=items, generation=generation)
