"""Thin CLI entry point: builds a Session and drives it without the web UI."""

import argparse
import logging
import sys
import tempfile
from pathlib import Path

from vinclip.config import AppConfig, load_config
from vinclip.errors import LoadError
from vinclip.models import CaptureJob, CaptureState
from vinclip.session import Session


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vinclip",
        description="vinclip: select up to 90 seconds of a video and export it.",
    )
    parser.add_argument("--config", "-c", type=Path, help="Path to a JSON config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    exp = sub.add_parser("export", help="Export a range of a video as a clip")
    exp.add_argument("video", help="Input video file or http(s) URL")
    exp.add_argument("--start", type=float, default=0.0, help="Range start (seconds)")
    exp.add_argument("--end", type=float, default=None, help="Range end (seconds)")
    exp.add_argument("--output", "-o", type=Path, help="Output clip path")
    exp.add_argument("--thumbnail", type=Path, help="Also write the first range thumbnail here")

    th = sub.add_parser("thumbs", help="Write thumbnails for a video or a range of it")
    th.add_argument("video", help="Input video file or http(s) URL")
    th.add_argument("--start", type=float, default=None, help="Range start (seconds)")
    th.add_argument("--end", type=float, default=None, help="Range end (seconds)")
    th.add_argument("--dir", "-d", type=Path, default=Path("."), help="Output directory")

    serve = sub.add_parser("serve", help="Launch the web UI")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    config = load_config(args.config) if args.config else AppConfig()

    if args.command == "serve":
        from vinclip.web import create_app
        app = create_app(config=config)
        print(f"vinclip web UI: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    config.thumbnails.debounce = 0
    # Downloads land in the work dir; it is removed when the command ends.
    with tempfile.TemporaryDirectory(prefix="vinclip_") as work_dir:
        _run(args, Session(config, work_dir=Path(work_dir), run_async=False))


def _run(args: argparse.Namespace, session: Session) -> None:
    try:
        source = session.load(args.video)
    except LoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "thumbs":
        if args.start is not None or args.end is not None:
            # Settling the new range samples preview thumbnails inline.
            session.select(args.start, args.end)
        thumbs = session.thumbnails
        args.dir.mkdir(parents=True, exist_ok=True)
        for i, thumb in enumerate(thumbs.items if thumbs else [], 1):
            if not thumb.ok:
                print(f"  [{thumb.offset:7.2f}s] failed: {thumb.error}")
                continue
            path = args.dir / f"{Path(source.path).stem}_{i:02d}.jpg"
            path.write_bytes(thumb.image)
            print(f"  [{thumb.offset:7.2f}s] {path}")
        return

    session.select(args.start, args.end)
    r = session.range
    print(f"Exporting {r.start:.2f}s -> {r.end:.2f}s ({r.span:.2f}s)")

    def on_progress(job: CaptureJob) -> None:
        if job.state is CaptureState.RECORDING:
            print(f"\r  [{job.progress:3.0f}%] recording", end="", flush=True)
        elif job.state is CaptureState.FINALIZING:
            print("\r  [ 99%] finalizing ", end="", flush=True)

    job = session.request_export(on_progress=on_progress)
    print()
    if job.state is not CaptureState.DONE:
        print(f"Error: export failed: {job.error}", file=sys.stderr)
        sys.exit(1)

    output = args.output or Path(job.result.filename)
    output.write_bytes(job.result.data)
    print(f"Done! Output: {output} ({job.result.size} bytes)")

    if args.thumbnail:
        artifact = session.thumbnail_artifact()
        if artifact is None:
            print("  No thumbnail could be sampled from the range", file=sys.stderr)
        else:
            args.thumbnail.write_bytes(artifact.data)
            print(f"  Thumbnail: {args.thumbnail}")
