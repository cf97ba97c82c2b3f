"""Shared test fixtures."""

import shutil
from unittest.mock import patch

import pytest

from vinclip.config import AppConfig
from vinclip.models import MediaSource, ProbeResult

requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg/ffprobe not installed",
)


class FakeClock:
    """Monotonic clock that advances by *step* on every read."""

    def __init__(self, step: float = 1.0):
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


class FakeEncoder:
    """Stands in for ffutil.LiveEncoder; emits scripted events on start/stop."""

    instances: list["FakeEncoder"] = []

    def __init__(self, input_path, start, span, on_event, *, on_start=(), on_stop=(("closed", 0),), **kwargs):
        self.input_path = input_path
        self.start_at = start
        self.span = span
        self.on_event = on_event
        self.kwargs = kwargs
        self.on_start = list(on_start)
        self.on_stop = list(on_stop)
        self.started = 0
        self.stopped = 0
        self.killed = 0
        FakeEncoder.instances.append(self)

    def start(self):
        self.started += 1
        for event in self.on_start:
            self.on_event(*event)

    def stop(self):
        self.stopped += 1
        for event in self.on_stop:
            self.on_event(*event)

    def kill(self):
        self.killed += 1


def encoder_factory(on_start=(("chunk", b"webm-a"), ("chunk", b"webm-b")), on_stop=(("closed", 0),)):
    FakeEncoder.instances = []

    def factory(*args, **kwargs):
        return FakeEncoder(*args, on_start=on_start, on_stop=on_stop, **kwargs)

    return factory


@pytest.fixture
def source(tmp_path) -> MediaSource:
    path = tmp_path / "talk.mp4"
    path.write_bytes(b"not really a video")
    return MediaSource(path=path, duration=120.0, width=640, height=360, fps=30.0, codec_video="h264")


@pytest.fixture
def fast_config() -> AppConfig:
    cfg = AppConfig()
    cfg.capture.tick_interval = 0.005
    cfg.capture.flush_timeout = 2.0
    cfg.thumbnails.debounce = 0
    return cfg


@pytest.fixture
def fake_ffmpeg():
    """Patch every ffmpeg touch point; yields the probe mock."""
    meta = ProbeResult(duration=2.0, width=320, height=240, fps=30.0, codec_video="h264")
    with patch("vinclip.ffutil.probe", return_value=meta) as mock_probe, \
            patch("vinclip.ffutil.extract_frame", side_effect=lambda path, offset, timeout: b"\xff\xd8jpeg"), \
            patch("vinclip.ffutil.has_encoder", return_value=True), \
            patch("vinclip.ffutil.LiveEncoder", encoder_factory()):
        yield mock_probe
