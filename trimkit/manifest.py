"""JSON manifest schema — the contract between CLI/API and orchestrator."""

import json
from dataclasses import dataclass, field, fields
from pathlib import Path

from trimkit.models import (
    AutomationJob,
    Job,
    JobKind,
    MergeJob,
    ResizeJob,
    TrimJob,
)
from trimkit.segments import SegmentSet


@dataclass
class ResizeConfig:
    """Target frame size for resize and automation jobs."""

    width: int = 1280
    height: int = 720


@dataclass
class PipelineConfig:
    """Orchestrator behavior."""

    cleanup_on_failure: bool = False


@dataclass
class Manifest:
    """Top-level job manifest.

    ``segments`` holds ``(start, end)`` pairs of HH:MM:SS text.
    """

    kind: JobKind
    inputs: list[Path]
    output: Path | None = None
    version: str = "1"
    segments: list[tuple[str, str]] = field(default_factory=list)
    resize: ResizeConfig = field(default_factory=ResizeConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def build_segments(pairs: list[tuple[str, str]]) -> SegmentSet:
    """Validate (start, end) text pairs into a SegmentSet.

    Raises trimkit.segments.ValidationError on the first bad pair.
    """
    segments = SegmentSet()
    for start, end in pairs:
        segments.add(start, end)
    return segments


def build_job(manifest: Manifest) -> Job:
    """Turn a manifest into the matching job variant."""
    if not manifest.inputs:
        raise ValueError("Manifest must list at least one input")

    if manifest.kind is JobKind.TRIM:
        return TrimJob(
            source=manifest.inputs[0],
            segments=build_segments(manifest.segments).list(),
        )
    if manifest.kind is JobKind.RESIZE:
        return ResizeJob(
            inputs=tuple(manifest.inputs),
            width=manifest.resize.width,
            height=manifest.resize.height,
            output=manifest.output,
        )
    if manifest.kind is JobKind.MERGE:
        return MergeJob(inputs=tuple(manifest.inputs))
    return AutomationJob(
        source=manifest.inputs[0],
        segments=build_segments(manifest.segments).list(),
        width=manifest.resize.width,
        height=manifest.resize.height,
        output=manifest.output,
    )


def _parse_segments(raw) -> list[tuple[str, str]]:
    if not isinstance(raw, list):
        raise ValueError("'segments' must be a list")
    pairs: list[tuple[str, str]] = []
    for i, item in enumerate(raw, start=1):
        try:
            if isinstance(item, dict):
                start, end = item["start"], item["end"]
            else:
                start, end = item
        except (KeyError, TypeError, ValueError):
            raise ValueError(
                f"Segment {i} must be {{\"start\": ..., \"end\": ...}} or a [start, end] pair"
            ) from None
        pairs.append((str(start), str(end)))
    return pairs


def _section(cls, data: dict, name: str):
    raw = data.get(name)
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ValueError(f"'{name}' section must be an object")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(
            f"Unknown key(s) in '{name}' section: {', '.join(unknown)}"
            f" (expected: {', '.join(sorted(known))})"
        )
    return cls(**raw)


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest from a JSON file.

    Every schema problem is reported as ValueError.
    """
    path = Path(path)
    data = json.loads(path.read_text())
    if not isinstance(data, dict):
        raise ValueError("Manifest must be a JSON object")

    if "kind" not in data:
        raise ValueError("Manifest must contain a 'kind' field")
    try:
        kind = JobKind(data["kind"])
    except (TypeError, ValueError):
        choices = ", ".join(k.value for k in JobKind)
        raise ValueError(f"Unknown job kind {data['kind']!r}, expected one of: {choices}") from None

    if "inputs" in data:
        raw_inputs = data["inputs"]
    elif "input" in data:
        raw_inputs = [data["input"]]
    else:
        raise ValueError("Manifest must contain 'input' or 'inputs'")
    if not isinstance(raw_inputs, list) or not all(isinstance(p, str) for p in raw_inputs):
        raise ValueError("'inputs' must be a list of paths")
    inputs = [Path(p) for p in raw_inputs]
    output = data.get("output")
    if output is not None and not isinstance(output, str):
        raise ValueError("'output' must be a path")

    resize = _section(ResizeConfig, data, "resize")
    try:
        resize.width, resize.height = int(resize.width), int(resize.height)
    except (TypeError, ValueError):
        raise ValueError("'resize' width and height must be integers") from None

    return Manifest(
        version=data.get("version", "1"),
        kind=kind,
        inputs=inputs,
        output=Path(output) if output else None,
        segments=_parse_segments(data.get("segments", [])),
        resize=resize,
        pipeline=_section(PipelineConfig, data, "pipeline"),
    )
