"""Shared test fixtures."""

from pathlib import Path

import pytest

from trimkit.engine import Orchestrator
from trimkit.ffutil import EngineError
from trimkit.models import ProgressEvent
from trimkit.progress import ProgressChannel
from trimkit.stages import StageExecutor

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeEngine:
    """In-memory MediaEngine that records every call.

    ``fail_on`` names operations ("trim", "merge", "resize", "delete") that
    raise EngineError. ``fail_after`` lets the first N calls of a failing
    operation succeed.
    """

    def __init__(self, channel: ProgressChannel | None = None, fail_on=(), fail_after: int = 0):
        self.channel = channel
        self.fail_on = set(fail_on)
        self.fail_after = fail_after
        self.calls: list[tuple] = []
        self.progress_at_start: list[float] = []
        self._counts: dict[str, int] = {}

    def _enter(self, op: str, *args) -> None:
        self.calls.append((op, *args))
        if self.channel is not None:
            self.progress_at_start.append(self.channel.progress)
        self._counts[op] = self._counts.get(op, 0) + 1
        if op in self.fail_on and self._counts[op] > self.fail_after:
            raise EngineError(f"{op} exploded")
        if self.channel is not None:
            self.channel.publish(ProgressEvent(percent=70.0, status="processing"))

    def trim(self, input_path, start, duration, index=None):
        self._enter("trim", Path(input_path), start, duration, index)
        return Path(input_path).with_name(f"{Path(input_path).stem}_part{index}.mp4")

    def merge(self, inputs, total_duration=0.0):
        self._enter("merge", [Path(p) for p in inputs], total_duration)
        return Path(inputs[0]).with_name("merged.mp4")

    def resize(self, input_path, width, height, total_duration=0.0, output_path=None):
        self._enter("resize", Path(input_path), width, height, total_duration, output_path)
        if output_path:
            return Path(output_path)
        return Path(input_path).with_name(f"{Path(input_path).stem}_resized.mp4")

    def delete(self, paths):
        self._enter("delete", [Path(p) for p in paths])

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


@pytest.fixture
def channel() -> ProgressChannel:
    return ProgressChannel()


@pytest.fixture
def engine(channel) -> FakeEngine:
    return FakeEngine(channel)


@pytest.fixture
def make_orchestrator(channel):
    def _make(engine, **kwargs) -> Orchestrator:
        return Orchestrator(StageExecutor(engine), channel, **kwargs)
    return _make


@pytest.fixture
def failing_engine(channel):
    def _make(*ops, after: int = 0) -> FakeEngine:
        return FakeEngine(channel, fail_on=ops, fail_after=after)
    return _make
