"""Stage descriptions and the executor that hands them to the media engine."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrimStage:
    input: Path
    start: int
    duration: int
    index: int | None = None

    kind = "trim"


@dataclass(frozen=True)
class MergeStage:
    inputs: tuple[Path, ...]
    total_duration: float = 0.0

    kind = "merge"


@dataclass(frozen=True)
class ResizeStage:
    input: Path
    width: int
    height: int
    total_duration: float = 0.0
    output: Path | None = None

    kind = "resize"


@dataclass(frozen=True)
class DeleteStage:
    paths: tuple[Path, ...]

    kind = "delete"


Stage = TrimStage | MergeStage | ResizeStage | DeleteStage


class MediaEngine(Protocol):
    """The four operations the orchestrator needs from a media backend.

    Implementations raise ``trimkit.ffutil.EngineError`` on failure and push
    progress on their own while an operation runs.
    """

    def trim(self, input_path: Path, start: int, duration: int, index: int | None) -> Path: ...

    def merge(self, inputs: Sequence[Path], total_duration: float) -> Path: ...

    def resize(
        self,
        input_path: Path,
        width: int,
        height: int,
        total_duration: float,
        output_path: Path | None,
    ) -> Path: ...

    def delete(self, paths: Sequence[Path]) -> None: ...


class StageExecutor:
    """Runs one stage and blocks until the engine finishes it.

    No retries and no error handling: failures propagate to the caller.
    """

    def __init__(self, engine: MediaEngine):
        self.engine = engine

    def run(self, stage: Stage) -> Path | None:
        started = time.monotonic()
        logger.debug("Starting stage: %s", stage)

        if isinstance(stage, TrimStage):
            result = self.engine.trim(stage.input, stage.start, stage.duration, stage.index)
        elif isinstance(stage, MergeStage):
            result = self.engine.merge(list(stage.inputs), stage.total_duration)
        elif isinstance(stage, ResizeStage):
            result = self.engine.resize(
                stage.input, stage.width, stage.height, stage.total_duration, stage.output
            )
        elif isinstance(stage, DeleteStage):
            self.engine.delete(list(stage.paths))
            result = None
        else:
            raise TypeError(f"Unknown stage type: {type(stage).__name__}")

        logger.debug("%s stage finished in %.1fs", stage.kind, time.monotonic() - started)
        return Path(result) if result is not None else None
