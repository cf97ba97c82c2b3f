"""Unit tests for source loading from files and URLs."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from vinclip.errors import LoadError
from vinclip.ffutil import FFmpegNotFoundError
from vinclip.loader import _http_download, load_source, looks_like_url
from vinclip.models import ProbeResult

META = ProbeResult(duration=95.0, width=1280, height=720, fps=25.0, codec_video="h264", codec_audio="aac")


@pytest.fixture
def video(tmp_path) -> Path:
    path = tmp_path / "clip.mp4"
    path.write_bytes(b"fake video data")
    return path


class TestLooksLikeUrl:
    def test_http(self):
        assert looks_like_url("https://example.com/v.mp4")
        assert looks_like_url("http://example.com/v")

    def test_paths(self):
        assert not looks_like_url("/tmp/v.mp4")
        assert not looks_like_url("ftp://example.com/v.mp4")
        assert not looks_like_url("")


class TestLoadFile:
    @patch("vinclip.loader.ffutil.probe", return_value=META)
    def test_local_file(self, mock_probe, video):
        source = load_source(video)
        assert source.path == video
        assert source.duration == 95.0
        assert source.fps == 25.0
        assert source.has_audio
        assert source.playback.position == 0.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(LoadError, match="File not found"):
            load_source(tmp_path / "nope.mp4")

    @patch("vinclip.loader.ffutil.probe")
    def test_unreadable(self, mock_probe, video):
        mock_probe.side_effect = subprocess.CalledProcessError(1, ["ffprobe"])
        with pytest.raises(LoadError, match="Not a readable video"):
            load_source(video)

    @patch("vinclip.loader.ffutil.probe", side_effect=ValueError("No video stream found"))
    def test_no_video_stream(self, mock_probe, video):
        with pytest.raises(LoadError, match="No video stream"):
            load_source(video)

    @patch("vinclip.loader.ffutil.probe", side_effect=FFmpegNotFoundError("ffprobe not found on PATH"))
    def test_no_ffprobe(self, mock_probe, video):
        with pytest.raises(LoadError, match="ffprobe"):
            load_source(video)

    @patch("vinclip.loader.ffutil.probe")
    def test_zero_duration(self, mock_probe, video):
        mock_probe.return_value = ProbeResult(duration=0.0, width=1, height=1, fps=None, codec_video="h264")
        with pytest.raises(LoadError, match="no playable duration"):
            load_source(video)


class TestLoadUrl:
    @patch("vinclip.loader.ffutil.probe", return_value=META)
    def test_uses_fetcher(self, mock_probe, tmp_path):
        fetched = []

        def fetcher(url, dest):
            fetched.append((url, dest))
            path = dest / "source.mp4"
            path.write_bytes(b"data")
            return path

        source = load_source("https://example.com/talk.mp4", work_dir=tmp_path, fetcher=fetcher)
        assert fetched == [("https://example.com/talk.mp4", tmp_path)]
        assert source.path == tmp_path / "source.mp4"

    def test_http_error(self, tmp_path):
        def fetcher(url, dest):
            raise httpx.ConnectError("refused")

        with pytest.raises(LoadError, match="Could not fetch"):
            load_source("https://example.com/talk.mp4", work_dir=tmp_path, fetcher=fetcher)


class TestHttpDownload:
    def test_streams_to_file(self, tmp_path):
        def handler(request):
            return httpx.Response(200, content=b"video bytes")

        transport = httpx.MockTransport(handler)
        real_client = httpx.Client

        with patch("vinclip.loader.httpx.Client", lambda **kw: real_client(transport=transport, **kw)):
            path = _http_download("https://example.com/media/talk.webm?sig=1", tmp_path)
        assert path == tmp_path / "source.webm"
        assert path.read_bytes() == b"video bytes"

    def test_status_error(self, tmp_path):
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        real_client = httpx.Client

        with patch("vinclip.loader.httpx.Client", lambda **kw: real_client(transport=transport, **kw)):
            with pytest.raises(httpx.HTTPStatusError):
                _http_download("https://example.com/missing", tmp_path)
