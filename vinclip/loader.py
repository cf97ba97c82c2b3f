"""Source acquisition: local files and http(s) URLs."""

import logging
import subprocess
import tempfile
from pathlib import Path
from typing import Callable
from urllib.parse import urlparse

import httpx

from vinclip import ffutil
from vinclip.errors import LoadError
from vinclip.models import MediaSource

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, Path], Path]

_VIDEO_EXTENSIONS = {".mp4", ".webm", ".mov", ".mkv", ".m4v", ".avi", ".ogv"}


def looks_like_url(value: str) -> bool:
    return urlparse(str(value)).scheme in ("http", "https")


def _guess_suffix(url: str) -> str:
    suffix = Path(urlparse(url).path).suffix.lower()
    return suffix if suffix in _VIDEO_EXTENSIONS else ".mp4"


def _http_download(url: str, dest_dir: Path) -> Path:
    path = dest_dir / f"source{_guess_suffix(url)}"
    with httpx.Client(follow_redirects=True, timeout=30.0) as client:
        with client.stream("GET", url) as response:
            response.raise_for_status()
            with path.open("wb") as fh:
                for chunk in response.iter_bytes():
                    fh.write(chunk)
    return path


def load_source(
    locator: str | Path,
    work_dir: Path | None = None,
    fetcher: Fetcher | None = None,
) -> MediaSource:
    """Resolve *locator* to a local file, probe it and return a MediaSource."""
    if looks_like_url(str(locator)):
        dest = Path(work_dir or tempfile.mkdtemp(prefix="vinclip_"))
        dest.mkdir(parents=True, exist_ok=True)
        logger.info("Downloading source from %s", locator)
        try:
            path = (fetcher or _http_download)(str(locator), dest)
        except httpx.HTTPError as e:
            raise LoadError(f"Could not fetch {locator}: {e}") from e
    else:
        path = Path(locator)
        if not path.is_file():
            raise LoadError(f"File not found: {path}")

    try:
        meta = ffutil.probe(path)
    except ffutil.FFmpegNotFoundError as e:
        raise LoadError(str(e)) from e
    except subprocess.CalledProcessError as e:
        raise LoadError(f"Not a readable video: {path.name}") from e
    except ValueError as e:
        raise LoadError(str(e)) from e

    if meta.duration <= 0:
        raise LoadError(f"Video has no playable duration: {path.name}")

    logger.info(
        "Loaded %s (%.1fs, %dx%d, %s fps)",
        path.name, meta.duration, meta.width, meta.height, meta.fps or "?",
    )
    return MediaSource(
        path=path,
        duration=meta.duration,
        width=meta.width,
        height=meta.height,
        fps=meta.fps,
        codec_video=meta.codec_video,
        has_audio=meta.codec_audio is not None,
    )
