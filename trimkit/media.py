"""ffmpeg-backed media engine: output naming and progress reporting."""

import logging
import time
from pathlib import Path
from typing import Callable, Sequence

from trimkit import ffutil
from trimkit.models import ProgressEvent
from trimkit.progress import ProgressChannel

logger = logging.getLogger(__name__)


def trim_output_path(input_path: Path, index: int | None) -> Path:
    suffix = f"_part{index}" if index is not None else "_trimmed"
    return input_path.with_name(f"{input_path.stem}{suffix}{input_path.suffix}")


def resize_output_path(input_path: Path, width: int, height: int) -> Path:
    return input_path.with_name(
        f"{input_path.stem}_resized_{width}x{height}{input_path.suffix}"
    )


def merge_output_path(first_input: Path, timestamp: int) -> Path:
    return first_input.parent / f"merged_{timestamp}.mp4"


class FFmpegEngine:
    """Implements the MediaEngine operations with the ffmpeg CLI.

    Progress is published to ``channel`` while each operation runs. When a
    duration hint is missing the input is probed so percent can still be
    reported.
    """

    def __init__(
        self,
        channel: ProgressChannel,
        clock: Callable[[], float] = time.time,
    ):
        self.channel = channel
        self.clock = clock

    def _publish(self, percent: float) -> None:
        self.channel.publish(ProgressEvent(percent=percent, status="processing"))

    def _known_duration(self, paths: Sequence[Path], hint: float) -> float:
        if hint > 0:
            return hint
        try:
            return sum(ffutil.probe_duration(p) for p in paths)
        except ffutil.EngineError as e:
            logger.info("Duration unknown, progress will not be reported: %s", e)
            return 0.0

    def trim(self, input_path: Path, start: int, duration: int, index: int | None = None) -> Path:
        input_path = Path(input_path)
        output = trim_output_path(input_path, index)
        return ffutil.trim(input_path, output, start, duration, on_progress=self._publish)

    def merge(self, inputs: Sequence[Path], total_duration: float = 0.0) -> Path:
        if not inputs:
            raise ffutil.EngineError("No input files selected")
        inputs = [Path(p) for p in inputs]
        output = merge_output_path(inputs[0], int(self.clock()))
        return ffutil.concat(
            inputs,
            output,
            total_seconds=self._known_duration(inputs, total_duration),
            on_progress=self._publish,
        )

    def resize(
        self,
        input_path: Path,
        width: int,
        height: int,
        total_duration: float = 0.0,
        output_path: Path | None = None,
    ) -> Path:
        input_path = Path(input_path)
        output = Path(output_path) if output_path else resize_output_path(input_path, width, height)
        return ffutil.resize(
            input_path,
            output,
            width,
            height,
            total_seconds=self._known_duration([input_path], total_duration),
            on_progress=self._publish,
        )

    def delete(self, paths: Sequence[Path]) -> None:
        failed = ffutil.delete_files([Path(p) for p in paths])
        if failed:
            logger.warning("%d of %d files could not be deleted", len(failed), len(paths))
