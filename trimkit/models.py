"""Shared data types used across trimkit."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

MIN_WIDTH, MAX_WIDTH = 100, 7680
MIN_HEIGHT, MAX_HEIGHT = 100, 4320


@dataclass(frozen=True)
class Segment:
    """A user-defined start/end range in whole seconds."""

    id: str
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < 0:
            raise ValueError(f"Segment bounds must be non-negative: {self.start}-{self.end}")
        if self.start >= self.end:
            raise ValueError(f"Segment start must be before end: {self.start}-{self.end}")

    @property
    def duration(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class ProgressEvent:
    """One progress notification pushed by the media engine."""

    percent: float
    status: str = ""


@dataclass(frozen=True)
class StageResult:
    """An artifact produced by one stage of a job."""

    artifact_path: Path
    is_intermediate: bool = False


class JobKind(str, Enum):
    TRIM = "trim"
    RESIZE = "resize"
    MERGE = "merge"
    AUTOMATION = "automation"


def _check_dimensions(width: int, height: int) -> None:
    if not MIN_WIDTH <= width <= MAX_WIDTH:
        raise ValueError(f"Width must be between {MIN_WIDTH} and {MAX_WIDTH}, got {width}")
    if not MIN_HEIGHT <= height <= MAX_HEIGHT:
        raise ValueError(f"Height must be between {MIN_HEIGHT} and {MAX_HEIGHT}, got {height}")


def unique_paths(paths) -> tuple[Path, ...]:
    """Collapse duplicate paths, keeping first-seen order."""
    return tuple(dict.fromkeys(Path(p) for p in paths))


@dataclass(frozen=True)
class TrimJob:
    """Cut every segment out of ``source`` as a separate file."""

    source: Path
    segments: tuple[Segment, ...]

    kind = JobKind.TRIM

    def __post_init__(self) -> None:
        object.__setattr__(self, "source", Path(self.source))
        object.__setattr__(self, "segments", tuple(self.segments))
        if not self.segments:
            raise ValueError("Add at least one segment to trim")


@dataclass(frozen=True)
class ResizeJob:
    """Scale each input to ``width`` x ``height``.

    ``preview_duration`` is the known length of ``preview_source`` (the file
    currently loaded in the UI) and is only used to estimate progress.
    """

    inputs: tuple[Path, ...]
    width: int
    height: int
    output: Path | None = None
    preview_source: Path | None = None
    preview_duration: float = 0.0

    kind = JobKind.RESIZE

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(Path(p) for p in self.inputs))
        if self.output is not None:
            object.__setattr__(self, "output", Path(self.output))
        if self.preview_source is not None:
            object.__setattr__(self, "preview_source", Path(self.preview_source))
        if not self.inputs:
            raise ValueError("Select at least one file to resize")
        _check_dimensions(self.width, self.height)
        if self.output is not None and len(unique_paths(self.inputs)) > 1:
            raise ValueError("An output path can only be given when resizing a single file")


@dataclass(frozen=True)
class MergeJob:
    """Concatenate ``inputs`` in order into one file."""

    inputs: tuple[Path, ...]
    total_duration_hint: float = 0.0

    kind = JobKind.MERGE

    def __post_init__(self) -> None:
        object.__setattr__(self, "inputs", tuple(Path(p) for p in self.inputs))
        if len(self.inputs) < 2:
            raise ValueError("Select at least 2 videos to merge")


@dataclass(frozen=True)
class AutomationJob:
    """Trim every segment, merge the pieces, then resize the result."""

    source: Path
    segments: tuple[Segment, ...]
    width: int
    height: int
    output: Path | None = None

    kind = JobKind.AUTOMATION

    def __post_init__(self) -> None:
        object.__setattr__(self, "source", Path(self.source))
        object.__setattr__(self, "segments", tuple(self.segments))
        if self.output is not None:
            object.__setattr__(self, "output", Path(self.output))
        if not self.segments:
            raise ValueError("Add at least one segment to process")
        _check_dimensions(self.width, self.height)

    @property
    def total_duration(self) -> int:
        return sum(s.duration for s in self.segments)


Job = TrimJob | ResizeJob | MergeJob | AutomationJob


class JobStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class JobRun:
    """Mutable execution record of one job. Written only by the orchestrator."""

    job: Job | None = None
    status: JobStatus = JobStatus.IDLE
    stage_index: int = 0
    stage_kind: str | None = None
    description: str = ""
    progress: float = 0.0
    produced: list[StageResult] = field(default_factory=list)
    final_path: Path | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def outputs(self) -> list[Path]:
        """Artifacts the user keeps (everything not marked intermediate)."""
        return [r.artifact_path for r in self.produced if not r.is_intermediate]

    @property
    def intermediates(self) -> list[Path]:
        return [r.artifact_path for r in self.produced if r.is_intermediate]

    def to_dict(self) -> dict:
        return {
            "kind": self.job.kind.value if self.job is not None else None,
            "status": self.status.value,
            "stage_index": self.stage_index,
            "stage_kind": self.stage_kind,
            "description": self.description,
            "progress": round(self.progress, 1),
            "outputs": [str(p) for p in self.outputs],
            "final_path": str(self.final_path) if self.final_path else None,
            "error": self.error,
            "warnings": list(self.warnings),
        }
