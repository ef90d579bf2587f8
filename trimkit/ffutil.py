"""FFmpeg/ffprobe subprocess helpers."""

import json
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

# Only real errors reach stderr
_QUIET = ["-hide_banner", "-nostats", "-loglevel", "error"]


class EngineError(RuntimeError):
    """A media operation failed. The message is ffmpeg's diagnostic text."""
    pass


class FFmpegNotFoundError(EngineError):
    pass


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def probe_duration(input_path: Path) -> float:
    """Return the container duration in seconds via ffprobe."""
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        str(input_path),
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True)
        return float(json.loads(result.stdout)["format"]["duration"])
    except (OSError, subprocess.CalledProcessError, KeyError, ValueError) as e:
        raise EngineError(f"Could not read duration of {input_path}: {e}") from e


def parse_progress_line(line: str) -> int | None:
    """Extract microseconds from an ``out_time_us=`` line of ``-progress`` output."""
    key, sep, value = line.partition("=")
    if not sep or key.strip() != "out_time_us":
        return None
    try:
        return int(value.strip())
    except ValueError:
        # ffmpeg writes N/A before the first frame
        return None


def progress_percent(out_time_us: int, total_us: int) -> float:
    return min(out_time_us / total_us * 100.0, 100.0)


def run_ffmpeg(
    args: list[str],
    total_seconds: float = 0.0,
    on_progress: Callable[[float], None] | None = None,
) -> None:
    """Run ffmpeg with ``-progress pipe:1`` and report percent complete.

    Percent is only reported when ``total_seconds`` is positive.
    stderr goes to a temporary file so a chatty ffmpeg can never block on a
    full pipe while stdout is being read.
    Raises EngineError on a non-zero exit.
    """
    cmd = ["ffmpeg", *_QUIET, *args[:-1], "-y", "-progress", "pipe:1", args[-1]]
    logger.debug("Running %s", " ".join(cmd))

    with tempfile.TemporaryFile("w+", encoding="utf-8", errors="replace") as err:
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=err, text=True)
        except OSError as e:
            raise EngineError(f"Could not start ffmpeg: {e}") from e

        total_us = int(total_seconds * 1_000_000)
        try:
            for line in proc.stdout:
                us = parse_progress_line(line)
                if us is not None and total_us > 0 and on_progress:
                    on_progress(progress_percent(us, total_us))
        except BaseException:
            proc.kill()
            proc.wait()
            raise
        finally:
            proc.stdout.close()

        returncode = proc.wait()
        err.seek(0)
        stderr = err.read()

    if returncode != 0:
        message = f"FFmpeg process exited with code {returncode}"
        if stderr.strip():
            message += f": {stderr.strip()[-500:]}"
        raise EngineError(message)


def trim(
    input_path: Path,
    output_path: Path,
    start: float,
    duration: float,
    on_progress: Callable[[float], None] | None = None,
) -> Path:
    """Stream-copy ``duration`` seconds of the input starting at ``start``."""
    run_ffmpeg(
        [
            "-i", str(input_path),
            "-ss", str(start),
            "-t", str(duration),
            "-c", "copy",
            str(output_path),
        ],
        total_seconds=duration,
        on_progress=on_progress,
    )
    return output_path


def resize(
    input_path: Path,
    output_path: Path,
    width: int,
    height: int,
    total_seconds: float = 0.0,
    on_progress: Callable[[float], None] | None = None,
) -> Path:
    """Scale video to width x height, copying the audio stream."""
    run_ffmpeg(
        [
            "-i", str(input_path),
            "-vf", f"scale={width}:{height}",
            "-c:a", "copy",
            str(output_path),
        ],
        total_seconds=total_seconds,
        on_progress=on_progress,
    )
    return output_path


def _concat_line(path: Path) -> str:
    text = str(path).replace("\\", "/").replace("'", "'\\''")
    return f"file '{text}'\n"


def concat(
    inputs: list[Path],
    output_path: Path,
    total_seconds: float = 0.0,
    on_progress: Callable[[float], None] | None = None,
) -> Path:
    """Join inputs with the concat demuxer (stream copy, no re-encode).

    The list file is written next to the first input and removed afterwards.
    """
    if not inputs:
        raise EngineError("No input files provided")

    try:
        with tempfile.NamedTemporaryFile(
            "w",
            prefix="concat_",
            suffix=".txt",
            dir=Path(inputs[0]).parent,
            delete=False,
            encoding="utf-8",
        ) as fh:
            fh.writelines(_concat_line(Path(p)) for p in inputs)
            list_path = Path(fh.name)
    except OSError as e:
        raise EngineError(f"Could not write concat list: {e}") from e

    try:
        run_ffmpeg(
            [
                "-f", "concat",
                "-safe", "0",
                "-i", str(list_path),
                "-c", "copy",
                str(output_path),
            ],
            total_seconds=total_seconds,
            on_progress=on_progress,
        )
    finally:
        list_path.unlink(missing_ok=True)
    return output_path


def delete_files(paths: list[Path]) -> list[Path]:
    """Best-effort removal. Returns the paths that could not be deleted."""
    failed: list[Path] = []
    for path in paths:
        try:
            os.remove(path)
        except FileNotFoundError:
            logger.debug("Already gone: %s", path)
        except OSError as e:
            logger.warning("Could not delete %s: %s", path, e)
            failed.append(Path(path))
    return failed
