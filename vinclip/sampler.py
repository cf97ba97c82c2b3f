"""Frame sampler: one still image per requested offset, in order."""

import logging
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Iterator

from vinclip import ffutil
from vinclip.errors import SampleError
from vinclip.models import MediaSource

logger = logging.getLogger(__name__)

Extractor = Callable[[Path, float, float], bytes]


class FrameSampler:
    """Seeks a source to each offset in turn and grabs the frame there.

    Offsets are visited strictly in order and one at a time under the
    source's decode lock. A failed offset yields a SampleError in its slot
    and sampling moves on.
    """

    def __init__(self, extract: Extractor | None = None, seek_timeout: float = 5.0):
        self._extract = extract or ffutil.extract_frame
        self.seek_timeout = seek_timeout

    def sample(
        self,
        source: MediaSource,
        offsets: Iterable[float],
        cancelled: Callable[[], bool] | None = None,
    ) -> Iterator[tuple[float, bytes | SampleError]]:
        for offset in offsets:
            if cancelled and cancelled():
                logger.debug("sampling of %s abandoned", source.path.name)
                return
            yield offset, self._sample_one(source, offset)

    def _sample_one(self, source: MediaSource, offset: float) -> bytes | SampleError:
        if not 0.0 <= offset <= source.duration:
            return SampleError(offset, f"outside source duration {source.duration:.3f}s")
        with source.decode_lock:
            try:
                return self._extract(source.path, offset, self.seek_timeout)
            except ffutil.SeekTimeout:
                reason = "seek timed out"
            except ffutil.NoFrameError:
                reason = "no decodable frame"
            except ffutil.FFmpegNotFoundError:
                reason = "ffmpeg not available"
            except subprocess.CalledProcessError as e:
                reason = f"ffmpeg failed (rc={e.returncode})"
        logger.warning("Thumbnail at %.3fs of %s failed: %s", offset, source.path.name, reason)
        return SampleError(offset, reason)
