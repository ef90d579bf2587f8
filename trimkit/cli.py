"""Thin CLI entry point — builds a job and hands it to the orchestrator."""

import argparse
import logging
import sys
from pathlib import Path

from trimkit.engine import Orchestrator
from trimkit.ffutil import check_ffmpeg, EngineError
from trimkit.manifest import build_job, build_segments, load_manifest
from trimkit.media import FFmpegEngine
from trimkit.models import (
    AutomationJob,
    JobRun,
    JobStatus,
    MergeJob,
    ProgressEvent,
    ResizeJob,
    TrimJob,
)
from trimkit.presets import PresetStore
from trimkit.progress import ProgressChannel
from trimkit.stages import StageExecutor


def _add_segment_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--segment", "-s",
        nargs=2,
        action="append",
        metavar=("START", "END"),
        required=True,
        help="Time range as HH:MM:SS HH:MM:SS (repeatable, kept in order)",
    )


def _add_size_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--width", type=int, help="Target width in pixels (default 1280)")
    p.add_argument("--height", type=int, help="Target height in pixels (default 720)")
    p.add_argument("--preset", help="Named size preset (movie, laptop, tablet, mobile, custom, ...)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="trimkit",
        description="trimkit — trim, merge and resize videos with ffmpeg.",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    trim = sub.add_parser("trim", help="Cut one file per segment")
    trim.add_argument("video", type=Path, help="Input video file")
    _add_segment_args(trim)

    resize = sub.add_parser("resize", help="Resize one or more files")
    resize.add_argument("videos", nargs="+", type=Path, help="Input video files")
    resize.add_argument("--output", "-o", type=Path, help="Output path (single input only)")
    _add_size_args(resize)

    merge = sub.add_parser("merge", help="Concatenate videos in the given order")
    merge.add_argument("videos", nargs="+", type=Path, help="Input video files (at least 2)")

    auto = sub.add_parser("auto", help="Trim segments, merge them, resize, clean up")
    auto.add_argument("video", type=Path, help="Input video file")
    auto.add_argument("--output", "-o", type=Path, help="Final output path")
    auto.add_argument(
        "--cleanup-on-failure",
        action="store_true",
        help="Delete intermediate files when a stage fails",
    )
    _add_segment_args(auto)
    _add_size_args(auto)

    run = sub.add_parser("run", help="Run a job described by a JSON manifest")
    run.add_argument("manifest", type=Path, help="Path to a JSON manifest file")

    preset = sub.add_parser("preset", help="Manage width/height presets")
    preset_sub = preset.add_subparsers(dest="preset_command")
    save = preset_sub.add_parser("save", help="Save a preset")
    save.add_argument("name")
    save.add_argument("width", type=int)
    save.add_argument("height", type=int)
    show = preset_sub.add_parser("show", help="Show a preset")
    show.add_argument("name", nargs="?", default="custom")
    preset_sub.add_parser("list", help="List preset names")

    serve = sub.add_parser("serve", help="Launch the web API")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    return parser


def _resolve_size(args, parser: argparse.ArgumentParser, store: PresetStore) -> tuple[int, int]:
    width, height = 1280, 720
    if args.preset:
        preset = store.load(args.preset)
        if preset is None:
            parser.error(f"Unknown preset: {args.preset}")
        width, height = preset.width, preset.height
    return args.width or width, args.height or height


class _ConsoleReporter:
    """Prints stage changes and progress in 10% steps."""

    def __init__(self) -> None:
        self._last_decile = -1

    def on_stage(self, run: JobRun) -> None:
        self._last_decile = -1
        if run.status is JobStatus.RUNNING:
            print(f"  [{run.stage_index}] {run.description}")

    def on_progress(self, event: ProgressEvent) -> None:
        decile = int(event.percent // 10)
        if decile > self._last_decile:
            self._last_decile = decile
            print(f"      {event.percent:5.1f}%")


def _execute(job, cleanup_on_failure: bool = False) -> JobRun:
    channel = ProgressChannel()
    reporter = _ConsoleReporter()
    orchestrator = Orchestrator(
        StageExecutor(FFmpegEngine(channel)),
        channel,
        cleanup_on_failure=cleanup_on_failure,
        on_stage=reporter.on_stage,
    )
    with channel.subscribe(reporter.on_progress):
        return orchestrator.execute(job)


def _report(run: JobRun) -> int:
    print()
    if run.status is JobStatus.SUCCEEDED:
        print("Done!")
        for path in run.outputs:
            print(f"  Output: {path}")
        for warning in run.warnings:
            print(f"  Warning: {warning}")
        return 0

    print(f"Failed: {run.error}", file=sys.stderr)
    for path in run.outputs:
        print(f"  Completed before failure: {path}", file=sys.stderr)
    for path in run.intermediates:
        print(f"  Intermediate file left on disk: {path}", file=sys.stderr)
    return 1


def _preset_command(args, parser: argparse.ArgumentParser, store: PresetStore) -> None:
    if args.preset_command == "save":
        try:
            preset = store.save(args.name, args.width, args.height)
        except ValueError as e:
            parser.error(str(e))
        print(f"Saved preset {args.name}: {preset.width}x{preset.height}")
    elif args.preset_command == "show":
        preset = store.load(args.name)
        if preset is None:
            print(f"No preset named {args.name}", file=sys.stderr)
            sys.exit(1)
        print(f"{args.name}: {preset.width}x{preset.height}")
    elif args.preset_command == "list":
        for name in store.names():
            print(name)
    else:
        parser.parse_args(["preset", "--help"])


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    store = PresetStore()

    if args.command == "preset":
        _preset_command(args, parser, store)
        return

    if args.command == "serve":
        from trimkit.web import create_app
        app = create_app()
        print(f"trimkit web API: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return

    cleanup_on_failure = False
    try:
        if args.command == "run":
            m = load_manifest(args.manifest)
            job = build_job(m)
            cleanup_on_failure = m.pipeline.cleanup_on_failure
        elif args.command == "trim":
            job = TrimJob(source=args.video, segments=build_segments(args.segment).list())
        elif args.command == "resize":
            width, height = _resolve_size(args, parser, store)
            job = ResizeJob(
                inputs=tuple(args.videos), width=width, height=height, output=args.output
            )
        elif args.command == "merge":
            job = MergeJob(inputs=tuple(args.videos))
        else:
            width, height = _resolve_size(args, parser, store)
            job = AutomationJob(
                source=args.video,
                segments=build_segments(args.segment).list(),
                width=width,
                height=height,
                output=args.output,
            )
            cleanup_on_failure = args.cleanup_on_failure
    except ValueError as e:
        parser.error(str(e))

    try:
        check_ffmpeg()
    except EngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    run = _execute(job, cleanup_on_failure)
    sys.exit(_report(run))
