"""Web API routes for trimkit."""

import json
import logging
import queue
import threading
import uuid
from pathlib import Path

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    request,
    send_file,
)

from trimkit.engine import Orchestrator
from trimkit.media import FFmpegEngine
from trimkit.models import (
    AutomationJob,
    JobKind,
    JobRun,
    JobStatus,
    MergeJob,
    ResizeJob,
    TrimJob,
)
from trimkit.presets import PresetStore
from trimkit.progress import ProgressChannel
from trimkit.segments import SegmentSet, ValidationError
from trimkit.stages import StageExecutor

logger = logging.getLogger(__name__)

bp = Blueprint("web", __name__)

# In-memory job store: job_id -> job dict
_jobs: dict[str, dict] = {}


def _segment_dict(segment) -> dict:
    return {"id": segment.id, "start": segment.start, "end": segment.end}


def _presets() -> PresetStore:
    return PresetStore(current_app.config.get("PRESETS_PATH"))


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    job_id = uuid.uuid4().hex[:12]
    job_dir = Path(current_app.config["WORK_DIR"]) / job_id
    job_dir.mkdir(parents=True, exist_ok=True)

    ext = Path(f.filename).suffix or ".mp4"
    input_path = job_dir / f"input{ext}"
    f.save(input_path)

    channel = ProgressChannel()
    _jobs[job_id] = {
        "dir": job_dir,
        "input_path": input_path,
        "filename": f.filename,
        "status": "uploaded",
        "segments": SegmentSet(),
        "channel": channel,
        "orchestrator": Orchestrator(StageExecutor(FFmpegEngine(channel)), channel),
    }

    return jsonify({"job_id": job_id, "filename": f.filename})


@bp.route("/api/jobs/<job_id>/segments", methods=["GET"])
def list_segments(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404
    return jsonify({"segments": [_segment_dict(s) for s in _jobs[job_id]["segments"]]})


@bp.route("/api/jobs/<job_id>/segments", methods=["POST"])
def add_segment(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    body = request.get_json(silent=True) or {}
    try:
        segment = _jobs[job_id]["segments"].add(str(body.get("start", "")), str(body.get("end", "")))
    except ValidationError as e:
        return jsonify({"error": str(e), "kind": e.kind.value}), 400
    return jsonify(_segment_dict(segment)), 201


@bp.route("/api/jobs/<job_id>/segments/<segment_id>", methods=["DELETE"])
def remove_segment(job_id: str, segment_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404
    _jobs[job_id]["segments"].remove(segment_id)
    return "", 204


def _uploaded_inputs(ids) -> list[Path]:
    """Resolve extra inputs given as ids of other uploads. Raises ValueError."""
    if not isinstance(ids, list):
        raise ValueError("'inputs' must be a list of uploaded job ids")
    paths = []
    for other_id in ids:
        other = _jobs.get(other_id) if isinstance(other_id, str) else None
        if other is None:
            raise ValueError(f"Unknown input: {other_id!r} is not an uploaded job id")
        paths.append(other["input_path"])
    return paths


def _int_field(config: dict, name: str, value) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"'{name}' must be an integer, got {config.get(name)!r}") from None


def _build_job(job: dict, config: dict):
    """Build the job variant requested by a process call. Raises ValueError."""
    try:
        kind = JobKind(config.get("kind", JobKind.AUTOMATION.value))
    except (TypeError, ValueError):
        raise ValueError(f"Unknown job kind: {config.get('kind')}") from None

    input_path: Path = job["input_path"]
    extra = _uploaded_inputs(config.get("inputs", []))

    width, height = config.get("width"), config.get("height")
    if config.get("preset"):
        preset = _presets().load(str(config["preset"]))
        if preset is None:
            raise ValueError(f"Unknown preset: {config['preset']}")
        width, height = width or preset.width, height or preset.height
    width = _int_field(config, "width", width or 1280)
    height = _int_field(config, "height", height or 720)

    try:
        preview_duration = float(config.get("duration", 0.0))
    except (TypeError, ValueError):
        raise ValueError(f"'duration' must be a number, got {config.get('duration')!r}") from None

    segments = job["segments"].list()

    if kind is JobKind.TRIM:
        return TrimJob(source=input_path, segments=segments)
    if kind is JobKind.MERGE:
        return MergeJob(inputs=(input_path, *extra))
    if kind is JobKind.RESIZE:
        return ResizeJob(
            inputs=(input_path, *extra),
            width=width,
            height=height,
            preview_source=input_path,
            preview_duration=preview_duration,
        )
    return AutomationJob(
        source=input_path,
        segments=segments,
        width=width,
        height=height,
        output=job["dir"] / f"output{input_path.suffix}",
    )


@bp.route("/api/jobs/<job_id>/process", methods=["POST"])
def start_process(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    job = _jobs[job_id]
    if job["status"] not in ("uploaded", "done", "error"):
        return jsonify({"error": f"Job is already {job['status']}"}), 409

    config = request.get_json(silent=True) or {}
    if not isinstance(config, dict):
        return jsonify({"error": "Expected a JSON object"}), 400
    try:
        pipeline_job = _build_job(job, config)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    orchestrator: Orchestrator = job["orchestrator"]
    orchestrator.cleanup_on_failure = bool(config.get("cleanup_on_failure", False))

    progress_queue: queue.Queue = queue.Queue()
    job["progress_queue"] = progress_queue
    job["status"] = "processing"
    job["error"] = None

    def on_stage(run: JobRun) -> None:
        progress_queue.put({
            "stage": run.description,
            "stage_index": run.stage_index,
            "progress": round(run.progress, 1),
        })

    def on_progress(event) -> None:
        progress_queue.put({
            "stage": orchestrator.run.description,
            "stage_index": orchestrator.run.stage_index,
            "progress": round(event.percent, 1),
        })

    orchestrator.on_stage = on_stage

    def run():
        try:
            with job["channel"].subscribe(on_progress):
                result = orchestrator.execute(pipeline_job)
            job["result"] = result.to_dict()
            if result.status is JobStatus.SUCCEEDED:
                job["status"] = "done"
            else:
                job["status"] = "error"
                job["error"] = result.error
        except Exception as e:
            logger.exception("Job %s crashed", job_id)
            job["status"] = "error"
            job["error"] = str(e)
        finally:
            progress_queue.put(None)  # sentinel

    threading.Thread(target=run, daemon=True).start()
    return jsonify({"status": "started", "kind": pipeline_job.kind.value})


@bp.route("/api/jobs/<job_id>/progress")
def progress_stream(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    job = _jobs[job_id]
    q = job.get("progress_queue")

    if q is None:
        return jsonify({"error": "No processing in progress"}), 409

    def generate():
        while True:
            try:
                msg = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            if msg is None:
                if job["status"] == "error":
                    data = json.dumps({"error": job["error"], "result": job.get("result")})
                else:
                    data = json.dumps({
                        "stage": "complete",
                        "progress": 100.0,
                        "result": job.get("result"),
                    })
                yield f"data: {data}\n\n"
                break
            yield f"data: {json.dumps(msg)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/jobs/<job_id>/result")
def download_result(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    job = _jobs[job_id]
    if job["status"] != "done":
        return jsonify({"error": "Job not complete"}), 409

    output_path = Path(job["result"]["final_path"])
    return send_file(output_path, as_attachment=False)


@bp.route("/api/jobs/<job_id>/status")
def job_status(job_id: str):
    if job_id not in _jobs:
        return jsonify({"error": "Job not found"}), 404

    job = _jobs[job_id]
    resp = {"status": job["status"], "filename": job.get("filename")}
    if job["status"] == "processing":
        resp["run"] = job["orchestrator"].run.to_dict()
    if job["status"] in ("done", "error") and "result" in job:
        resp["result"] = job["result"]
    if job["status"] == "error":
        resp["error"] = job.get("error")
    return jsonify(resp)


@bp.route("/api/presets")
def list_presets():
    store = _presets()
    presets = {}
    for name in store.names():
        preset = store.load(name)
        presets[name] = {"width": preset.width, "height": preset.height}
    return jsonify({"presets": presets})


@bp.route("/api/presets/<name>", methods=["PUT"])
def save_preset(name: str):
    body = request.get_json(silent=True) or {}
    try:
        preset = _presets().save(name, int(body.get("width", 0)), int(body.get("height", 0)))
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"name": name, "width": preset.width, "height": preset.height})
