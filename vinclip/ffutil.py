"""FFmpeg/ffprobe subprocess helpers."""

import json
import logging
import subprocess
import threading
from pathlib import Path
from typing import Callable

from vinclip.models import ProbeResult

logger = logging.getLogger(__name__)


class FFmpegNotFoundError(RuntimeError):
    pass


class SeekTimeout(RuntimeError):
    """Raised when ffmpeg does not produce a frame within the allowed time."""
    pass


class NoFrameError(ValueError):
    """Raised when there is no decodable frame at the requested offset."""
    pass


def _parse_rate(rate: str | None) -> float | None:
    if not rate or "/" not in rate:
        return None
    num, den = rate.split("/")
    if int(den) == 0 or int(num) == 0:
        return None
    return int(num) / int(den)


def probe(input_path: Path) -> ProbeResult:
    """Extract media metadata via ffprobe."""
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
    except FileNotFoundError as e:
        raise FFmpegNotFoundError("ffprobe not found on PATH") from e
    data = json.loads(result.stdout)

    streams = data.get("streams", [])
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

    if video_stream is None:
        raise ValueError(f"No video stream found in {input_path}")

    # Live-muxed webm carries no container duration; fall back to the stream.
    raw_duration = data.get("format", {}).get("duration") or video_stream.get("duration")
    try:
        duration = float(raw_duration)
    except (TypeError, ValueError):
        raise ValueError(f"Unknown duration for {input_path}") from None

    return ProbeResult(
        duration=duration,
        width=int(video_stream["width"]),
        height=int(video_stream["height"]),
        fps=_parse_rate(video_stream.get("avg_frame_rate")) or _parse_rate(video_stream.get("r_frame_rate")),
        codec_video=video_stream["codec_name"],
        codec_audio=audio_stream["codec_name"] if audio_stream else None,
    )


def extract_frame(input_path: Path, offset: float, timeout: float) -> bytes:
    """Seek to *offset* and return the frame there as JPEG bytes.

    Raises SeekTimeout if ffmpeg does not settle within *timeout* seconds and
    NoFrameError if nothing is decoded at that position.
    """
    cmd = [
        "ffmpeg",
        "-hide_banner",
        "-loglevel", "error",
        "-nostdin",
        "-ss", f"{offset:.3f}",
        "-i", str(input_path),
        "-frames:v", "1",
        "-q:v", "2",
        "-f", "image2pipe",
        "-vcodec", "mjpeg",
        "pipe:1",
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=timeout)
    except subprocess.TimeoutExpired:
        raise SeekTimeout(f"seek to {offset:.3f}s did not settle within {timeout}s") from None
    except FileNotFoundError as e:
        raise FFmpegNotFoundError("ffmpeg not found on PATH") from e

    if result.returncode != 0:
        raise subprocess.CalledProcessError(result.returncode, cmd, result.stdout, result.stderr)
    if not result.stdout:
        raise NoFrameError(f"no frame at {offset:.3f}s in {input_path}")
    return result.stdout


def has_encoder(codec: str) -> bool:
    """True if the local ffmpeg build lists *codec* among its encoders."""
    try:
        result = subprocess.run(
            ["ffmpeg", "-hide_banner", "-encoders"], capture_output=True, text=True
        )
    except FileNotFoundError:
        return False
    for line in result.stdout.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] == codec:
            return True
    return False


def parse_progress_line(line: str) -> float | None:
    """Return elapsed output seconds from one ``-progress`` line, if it carries one."""
    key, sep, value = line.strip().partition("=")
    if not sep or key not in ("out_time_us", "out_time_ms"):
        return None
    # Both keys are microseconds in current ffmpeg builds.
    try:
        return int(value) / 1_000_000
    except ValueError:
        return None


EventSink = Callable[[str, object], None]


class LiveEncoder:
    """ffmpeg playing the source at its native rate and encoding as it goes.

    Encoded bytes arrive on stdout and are pushed to *on_event* as
    ``("chunk", bytes)``. Playback position is reported as
    ``("position", seconds)`` in source time. When the process exits the
    encoder emits ``("closed", returncode)`` or ``("error", message)``.
    """

    CHUNK_SIZE = 64 * 1024

    def __init__(
        self,
        input_path: Path,
        start: float,
        span: float,
        on_event: EventSink,
        codec: str = "libvpx",
        container: str = "webm",
        bitrate: str = "2500k",
    ):
        self.input_path = input_path
        self.start_at = start
        self.span = span
        self.on_event = on_event
        self.codec = codec
        self.container = container
        self.bitrate = bitrate
        self._proc: subprocess.Popen | None = None
        self._stderr_tail: list[str] = []
        self._killed = False

    def command(self) -> list[str]:
        cmd = [
            "ffmpeg",
            "-hide_banner",
            "-loglevel", "error",
            "-nostats",
            "-re",
            "-ss", f"{self.start_at:.3f}",
            "-i", str(self.input_path),
            "-t", f"{self.span:.3f}",
            "-an",
            "-c:v", self.codec,
            "-b:v", self.bitrate,
        ]
        if self.codec.startswith("libvpx"):
            cmd += ["-deadline", "realtime", "-cpu-used", "8"]
        cmd += ["-f", self.container, "-progress", "pipe:2", "pipe:1"]
        return cmd

    def start(self) -> None:
        try:
            self._proc = subprocess.Popen(
                self.command(),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise FFmpegNotFoundError("ffmpeg not found on PATH") from e

        readers = [
            threading.Thread(target=self._pump_stdout, daemon=True),
            threading.Thread(target=self._pump_stderr, daemon=True),
        ]
        for t in readers:
            t.start()
        threading.Thread(target=self._wait, args=(readers,), daemon=True).start()

    def _pump_stdout(self) -> None:
        stream = self._proc.stdout
        while True:
            chunk = stream.read1(self.CHUNK_SIZE)
            if not chunk:
                break
            self.on_event("chunk", chunk)

    def _pump_stderr(self) -> None:
        for raw in self._proc.stderr:
            line = raw.decode(errors="replace")
            elapsed = parse_progress_line(line)
            if elapsed is not None:
                self.on_event("position", self.start_at + elapsed)
            elif "=" not in line and line.strip():
                self._stderr_tail = (self._stderr_tail + [line.strip()])[-10:]

    def _wait(self, readers: list[threading.Thread]) -> None:
        for t in readers:
            t.join()
        rc = self._proc.wait()
        if rc == 0 or self._killed:
            self.on_event("closed", rc)
        else:
            message = self._stderr_tail[-1] if self._stderr_tail else f"ffmpeg exited with code {rc}"
            logger.warning("encoder failed (rc=%s): %s", rc, message)
            self.on_event("error", message)

    def stop(self) -> None:
        """Ask ffmpeg to finish the file and exit."""
        if self._proc is None or self._proc.poll() is not None:
            return
        try:
            self._proc.stdin.write(b"q")
            self._proc.stdin.close()
        except (BrokenPipeError, OSError):
            pass

    def kill(self) -> None:
        if self._proc is None or self._proc.poll() is not None:
            return
        self._killed = True
        self._proc.kill()
