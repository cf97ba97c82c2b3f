#!/usr/bin/env python3
"""Generate a synthetic source video for vinclip testing.

Produces a video made of equal-length solid-colour segments with a tone
under each, so thumbnails taken at different offsets are tell-apart:
  segment 0  red     440 Hz
  segment 1  green   660 Hz
  segment 2  blue    880 Hz
  ...        (colours and tones repeat)
"""

import argparse
import subprocess
from pathlib import Path

COLORS = ["red", "green", "blue", "yellow"]
TONES = [440, 660, 880, 550]


def generate_test_video(output: Path, segments: int = 3, segment_seconds: float = 2.0) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)

    audio = []
    video = []
    for i in range(segments):
        audio.append(f"sine=f={TONES[i % len(TONES)]}:d={segment_seconds}[a{i}]")
        video.append(f"color=c={COLORS[i % len(COLORS)]}:s=320x240:d={segment_seconds}:r=30[v{i}]")
    a_in = "".join(f"[a{i}]" for i in range(segments))
    v_in = "".join(f"[v{i}]" for i in range(segments))

    filter_complex = ";".join(
        audio
        + [f"{a_in}concat=n={segments}:v=0:a=1[aout]"]
        + video
        + [f"{v_in}concat=n={segments}:v=1:a=0[vout]"]
    )

    cmd = [
        "ffmpeg", "-y",
        "-hide_banner", "-loglevel", "error",
        "-filter_complex", filter_complex,
        "-map", "[vout]",
        "-map", "[aout]",
        "-c:v", "mpeg4",
        "-q:v", "5",
        "-g", "15",
        "-c:a", "aac",
        "-shortest",
        str(output),
    ]
    subprocess.run(cmd, check=True)
    print(f"Generated: {output}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("output", nargs="?", type=Path, default=Path("tests/fixtures/synthetic.mp4"))
    parser.add_argument("--segments", type=int, default=3)
    parser.add_argument("--segment-seconds", type=float, default=2.0)
    args = parser.parse_args()
    generate_test_video(args.output, args.segments, args.segment_seconds)
