"""JSON configuration schema shared by the CLI, web UI and session."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from vinclip.models import MAX_SPAN, MIN_SPAN


@dataclass
class SelectionConfig:
    """Limits and step sizes for the timeline selection."""

    max_span: float = MAX_SPAN
    min_span: float = MIN_SPAN
    coarse_step: float = 1.0
    default_fps: float = 30.0


@dataclass
class ThumbnailConfig:
    """Sampling policy for overview and range-preview thumbnails."""

    overview_count: int = 5
    preview_interval: float = 10.0
    seek_timeout: float = 5.0
    debounce: float = 0.3


@dataclass
class CaptureConfig:
    """Fixed output format and timing for clip capture."""

    codec: str = "libvpx"
    container: str = "webm"
    mimetype: str = "video/webm"
    bitrate: str = "2500k"
    filename: str = "linkedin-video.webm"
    tick_interval: float = 0.1
    seek_timeout: float = 10.0
    flush_timeout: float = 5.0


@dataclass
class AppConfig:
    """Top-level configuration."""

    version: str = "1"
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    thumbnails: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)


_SECTIONS = {
    "selection": SelectionConfig,
    "thumbnails": ThumbnailConfig,
    "capture": CaptureConfig,
}


def load_config(path: str | Path) -> AppConfig:
    """Load and validate a configuration from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    if not isinstance(data, dict):
        raise ValueError("Config must be a JSON object")
    unknown = set(data) - set(_SECTIONS) - {"version"}
    if unknown:
        raise ValueError(f"Unknown config sections: {', '.join(sorted(unknown))}")

    sections = {name: cls(**data[name]) if name in data else cls() for name, cls in _SECTIONS.items()}

    cfg = AppConfig(version=str(data.get("version", "1")), **sections)
    if cfg.selection.max_span <= 0 or cfg.selection.min_span <= 0:
        raise ValueError("Selection spans must be positive")
    if cfg.selection.min_span > cfg.selection.max_span:
        raise ValueError("min_span must not exceed max_span")
    return cfg
