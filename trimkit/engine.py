"""Orchestrator — runs the stages of a trim, resize, merge or automation job."""

import logging
from pathlib import Path
from typing import Callable

from trimkit.ffutil import EngineError
from trimkit.models import (
    AutomationJob,
    Job,
    JobRun,
    JobStatus,
    MergeJob,
    ProgressEvent,
    ResizeJob,
    StageResult,
    TrimJob,
    unique_paths,
)
from trimkit.progress import ProgressChannel
from trimkit.stages import (
    DeleteStage,
    MergeStage,
    ResizeStage,
    Stage,
    StageExecutor,
    TrimStage,
)

logger = logging.getLogger(__name__)


class JobAlreadyRunningError(RuntimeError):
    pass


class Orchestrator:
    """Sequences stage executions for one job at a time.

    Stages run strictly one after another, in declared segment order. The
    progress channel is reset before each stage starts.

    Args:
        executor: Runs individual stages against the media engine.
        channel: Progress channel the engine publishes to.
        cleanup_on_failure: When an automation job fails, delete the
            intermediate files produced so far. Off by default, which leaves
            them on disk for inspection.
        on_stage: Optional callback(run) fired when a stage starts and when
            the run reaches a terminal state.
    """

    def __init__(
        self,
        executor: StageExecutor,
        channel: ProgressChannel,
        cleanup_on_failure: bool = False,
        on_stage: Callable[[JobRun], None] | None = None,
    ):
        self.executor = executor
        self.channel = channel
        self.cleanup_on_failure = cleanup_on_failure
        self.on_stage = on_stage
        self.run = JobRun()

    def _notify(self) -> None:
        if self.on_stage:
            self.on_stage(self.run)

    def _on_progress(self, event: ProgressEvent) -> None:
        self.run.progress = event.percent

    def execute(self, job: Job) -> JobRun:
        """Run ``job`` to completion and return its JobRun.

        Engine failures leave the run FAILED with the engine's message; they
        are not raised. Anything else also marks the run FAILED and is
        re-raised.
        """
        if self.run.status is JobStatus.RUNNING:
            raise JobAlreadyRunningError("A job is already running")

        self.run = JobRun(job=job, status=JobStatus.RUNNING)
        logger.info("Starting %s job", job.kind.value)

        handlers = {
            TrimJob: self._run_trim,
            ResizeJob: self._run_resize,
            MergeJob: self._run_merge,
            AutomationJob: self._run_automation,
        }

        with self.channel.subscribe(self._on_progress):
            try:
                final_path = handlers[type(job)](job)
            except EngineError as e:
                self._fail(str(e))
            except Exception as e:
                self._fail(str(e) or type(e).__name__)
                raise
            else:
                self._succeed(final_path)
        return self.run

    def _stage(self, stage: Stage, description: str) -> Path | None:
        self.run.stage_index += 1
        self.run.stage_kind = stage.kind
        self.run.description = description
        self.run.progress = 0.0
        self.channel.reset()
        logger.info("Stage %d: %s", self.run.stage_index, description)
        self._notify()
        return self.executor.run(stage)

    def _record(self, path: Path, intermediate: bool = False) -> Path:
        self.run.produced.append(StageResult(artifact_path=path, is_intermediate=intermediate))
        return path

    def _succeed(self, final_path: Path) -> None:
        self.run.status = JobStatus.SUCCEEDED
        self.run.final_path = final_path
        self.run.description = "Done"
        logger.info("Job finished: %s", final_path)
        self._notify()

    def _fail(self, reason: str) -> None:
        logger.error("Job failed during %s stage: %s", self.run.stage_kind, reason)
        failed_at = (self.run.stage_index, self.run.stage_kind)
        if self.cleanup_on_failure and self.run.intermediates:
            self._cleanup()
        # Report the stage that failed, not the cleanup
        self.run.stage_index, self.run.stage_kind = failed_at
        self.run.description = "Failed"
        self.run.status = JobStatus.FAILED
        self.run.error = reason
        self._notify()

    def _cleanup(self) -> None:
        """Delete every intermediate artifact in one batched call.

        Problems here become warnings; they never change the job outcome.
        """
        paths = tuple(self.run.intermediates)
        if not paths:
            return
        try:
            self._stage(DeleteStage(paths=paths), "Cleaning up temporary files")
        except Exception as e:
            logger.warning("Cleanup of %d intermediate files failed: %s", len(paths), e)
            self.run.warnings.append(f"Cleanup failed: {e}")

    # --- Job shapes ---

    def _run_trim(self, job: TrimJob) -> Path:
        n = len(job.segments)
        for i, seg in enumerate(job.segments, 1):
            out = self._stage(
                TrimStage(input=job.source, start=seg.start, duration=seg.duration, index=i),
                f"Trimming segment {i}/{n}",
            )
            self._record(out)
        return out

    def _run_resize(self, job: ResizeJob) -> Path:
        targets = unique_paths(job.inputs)
        n = len(targets)
        for i, target in enumerate(targets, 1):
            duration = job.preview_duration if target == job.preview_source else 0.0
            out = self._stage(
                ResizeStage(
                    input=target,
                    width=job.width,
                    height=job.height,
                    total_duration=duration,
                    output=job.output,
                ),
                f"Resizing file {i}/{n}",
            )
            self._record(out)
        return out

    def _run_merge(self, job: MergeJob) -> Path:
        out = self._stage(
            MergeStage(inputs=job.inputs, total_duration=job.total_duration_hint),
            f"Merging {len(job.inputs)} videos",
        )
        return self._record(out)

    def _run_automation(self, job: AutomationJob) -> Path:
        n = len(job.segments)
        total = float(job.total_duration)

        trims: list[Path] = []
        for i, seg in enumerate(job.segments, 1):
            out = self._stage(
                TrimStage(input=job.source, start=seg.start, duration=seg.duration, index=i),
                f"Trimming segment {i}/{n}",
            )
            trims.append(self._record(out, intermediate=True))

        # A single trim goes straight to resize
        to_resize = trims[0]
        if len(trims) > 1:
            merged = self._stage(
                MergeStage(inputs=tuple(trims), total_duration=total),
                "Merging segments",
            )
            to_resize = self._record(merged, intermediate=True)

        final = self._stage(
            ResizeStage(
                input=to_resize,
                width=job.width,
                height=job.height,
                total_duration=total,
                output=job.output,
            ),
            "Resizing video",
        )
        self._record(final)

        self._cleanup()
        return final
