"""Unit tests for the trimkit web API."""

import io
import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from trimkit.ffutil import EngineError
from trimkit.web import create_app
from trimkit.web import routes


class _InlineThread:
    """Runs the worker synchronously so tests see the finished job."""

    def __init__(self, target, daemon=None):
        self._target = target

    def start(self):
        self._target()


@pytest.fixture
def media():
    m = MagicMock()
    m.trim.side_effect = lambda inp, start, dur, index: Path(inp).with_name(f"part{index}.mp4")
    m.merge.side_effect = lambda inputs, total: Path(inputs[0]).with_name("merged.mp4")

    def resize(inp, w, h, total, out):
        out = out or Path(inp).with_name("resized.mp4")
        Path(out).write_bytes(b"RESIZED")
        return out

    m.resize.side_effect = resize
    m.delete.return_value = None
    return m


@pytest.fixture
def app(tmp_path, media):
    app = create_app(work_dir=tmp_path, presets_path=tmp_path / "presets.json")
    app.config["TESTING"] = True
    with patch("trimkit.web.routes.FFmpegEngine", return_value=media):
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def inline_threads():
    with patch("trimkit.web.routes.threading.Thread", _InlineThread):
        yield


def _upload(client, filename="test.mp4", content=b"fake video data"):
    return client.post(
        "/api/upload",
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
    )


def _job_with_segments(client, *ranges) -> str:
    job_id = _upload(client).get_json()["job_id"]
    for start, end in ranges:
        client.post(f"/api/jobs/{job_id}/segments", json={"start": start, "end": end})
    return job_id


class TestUpload:
    def test_upload_success(self, client):
        resp = _upload(client)
        assert resp.status_code == 200
        data = resp.get_json()
        assert "job_id" in data
        assert data["filename"] == "test.mp4"

    def test_upload_no_file(self, client):
        resp = client.post("/api/upload")
        assert resp.status_code == 400

    def test_upload_creates_file(self, client, tmp_path):
        resp = _upload(client, content=b"CONTENT")
        job_id = resp.get_json()["job_id"]
        input_file = tmp_path / job_id / "input.mp4"
        assert input_file.exists()
        assert input_file.read_bytes() == b"CONTENT"


class TestSegments:
    def test_add_and_list(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(
            f"/api/jobs/{job_id}/segments", json={"start": "00:00:05", "end": "00:01:00"}
        )
        assert resp.status_code == 201
        assert resp.get_json()["start"] == 5

        listed = client.get(f"/api/jobs/{job_id}/segments").get_json()["segments"]
        assert [(s["start"], s["end"]) for s in listed] == [(5, 60)]

    def test_invalid_range(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(
            f"/api/jobs/{job_id}/segments", json={"start": "00:00:10", "end": "00:00:10"}
        )
        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "range_order"

    def test_invalid_format(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/segments", json={"start": "5", "end": "10"})
        assert resp.get_json()["kind"] == "invalid_format"

    def test_remove(self, client):
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"), ("00:10:00", "00:20:00"))
        first = client.get(f"/api/jobs/{job_id}/segments").get_json()["segments"][0]

        resp = client.delete(f"/api/jobs/{job_id}/segments/{first['id']}")
        assert resp.status_code == 204
        listed = client.get(f"/api/jobs/{job_id}/segments").get_json()["segments"]
        assert [s["start"] for s in listed] == [600]

    def test_unknown_job(self, client):
        assert client.get("/api/jobs/nonexistent/segments").status_code == 404


class TestProcess:
    def test_process_unknown_job(self, client):
        resp = client.post("/api/jobs/nonexistent/process", json={"kind": "trim"})
        assert resp.status_code == 404

    def test_process_without_segments(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/process", json={"kind": "automation"})
        assert resp.status_code == 400

    def test_process_unknown_kind(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/process", json={"kind": "blur"})
        assert resp.status_code == 400

    def test_busy_job_conflicts(self, client):
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"))
        routes._jobs[job_id]["status"] = "processing"
        resp = client.post(f"/api/jobs/{job_id}/process", json={"kind": "trim"})
        assert resp.status_code == 409

    def test_automation_runs_to_completion(self, client, media, tmp_path, inline_threads):
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"), ("00:00:20", "00:00:30"))

        resp = client.post(
            f"/api/jobs/{job_id}/process",
            json={"kind": "automation", "preset": "mobile"},
        )
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "started", "kind": "automation"}

        job_dir = tmp_path / job_id
        media.resize.assert_called_once_with(
            job_dir / "merged.mp4", 1080, 1920, 20.0, job_dir / "output.mp4"
        )
        media.delete.assert_called_once()

        status = client.get(f"/api/jobs/{job_id}/status").get_json()
        assert status["status"] == "done"
        assert status["result"]["final_path"] == str(job_dir / "output.mp4")

    def test_progress_stream(self, client, inline_threads):
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"))
        client.post(f"/api/jobs/{job_id}/process", json={"kind": "trim"})

        resp = client.get(f"/api/jobs/{job_id}/progress")
        events = [
            json.loads(line[len("data: "):])
            for line in resp.get_data(as_text=True).splitlines()
            if line.startswith("data: ")
        ]
        assert any(e.get("stage") == "Trimming segment 1/1" for e in events)
        assert events[-1]["stage"] == "complete"

    def test_failure_reported(self, client, media, inline_threads):
        media.resize.side_effect = EngineError("FFmpeg process exited with code 1")
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"))
        client.post(f"/api/jobs/{job_id}/process", json={"kind": "automation"})

        status = client.get(f"/api/jobs/{job_id}/status").get_json()
        assert status["status"] == "error"
        assert status["error"] == "FFmpeg process exited with code 1"
        media.delete.assert_not_called()

    def test_cleanup_on_failure_option(self, client, media, inline_threads):
        media.resize.side_effect = EngineError("boom")
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"))
        client.post(
            f"/api/jobs/{job_id}/process",
            json={"kind": "automation", "cleanup_on_failure": True},
        )
        media.delete.assert_called_once()

    def test_merge_needs_extra_inputs(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/process", json={"kind": "merge"})
        assert resp.status_code == 400
        assert "at least 2" in resp.get_json()["error"]

    def test_merge_with_other_upload(self, client, media, tmp_path, inline_threads):
        first = _upload(client).get_json()["job_id"]
        second = _upload(client, filename="other.mp4").get_json()["job_id"]

        resp = client.post(
            f"/api/jobs/{first}/process", json={"kind": "merge", "inputs": [second]}
        )
        assert resp.status_code == 200
        inputs = list(media.merge.call_args.args[0])
        assert inputs == [tmp_path / first / "input.mp4", tmp_path / second / "input.mp4"]

    def test_server_path_input_rejected(self, client, media):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(
            f"/api/jobs/{job_id}/process",
            json={"kind": "resize", "inputs": ["/etc/passwd"]},
        )
        assert resp.status_code == 400
        assert "not an uploaded job id" in resp.get_json()["error"]
        assert routes._jobs[job_id]["status"] == "uploaded"
        media.resize.assert_not_called()

    def test_relative_path_input_rejected(self, client, media):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(
            f"/api/jobs/{job_id}/process",
            json={"kind": "merge", "inputs": [f"../{job_id}/input.mp4"]},
        )
        assert resp.status_code == 400
        media.merge.assert_not_called()

    def test_inputs_must_be_list(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(
            f"/api/jobs/{job_id}/process", json={"kind": "merge", "inputs": "abc"}
        )
        assert resp.status_code == 400

    @pytest.mark.parametrize("field, value", [
        ("width", [1280]),
        ("height", "tall"),
        ("duration", {"s": 5}),
    ])
    def test_malformed_numbers_are_bad_requests(self, client, field, value):
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"))
        resp = client.post(
            f"/api/jobs/{job_id}/process", json={"kind": "resize", field: value}
        )
        assert resp.status_code == 400
        assert field in resp.get_json()["error"]

    def test_non_object_body(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.post(f"/api/jobs/{job_id}/process", json=["resize"])
        assert resp.status_code == 400


class TestStatus:
    def test_status_after_upload(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.get(f"/api/jobs/{job_id}/status")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "uploaded"

    def test_status_unknown_job(self, client):
        resp = client.get("/api/jobs/nonexistent/status")
        assert resp.status_code == 404


class TestDownload:
    def test_download_not_complete(self, client):
        job_id = _upload(client).get_json()["job_id"]
        resp = client.get(f"/api/jobs/{job_id}/result")
        assert resp.status_code == 409

    def test_download_unknown_job(self, client):
        resp = client.get("/api/jobs/nonexistent/result")
        assert resp.status_code == 404

    def test_download_result(self, client, inline_threads):
        job_id = _job_with_segments(client, ("00:00:00", "00:00:10"))
        client.post(f"/api/jobs/{job_id}/process", json={"kind": "automation"})
        resp = client.get(f"/api/jobs/{job_id}/result")
        assert resp.status_code == 200
        assert resp.data == b"RESIZED"


class TestPresets:
    def test_list_includes_builtins(self, client):
        presets = client.get("/api/presets").get_json()["presets"]
        assert presets["movie"] == {"width": 1920, "height": 1080}

    def test_save(self, client):
        resp = client.put("/api/presets/custom", json={"width": 800, "height": 600})
        assert resp.status_code == 200
        presets = client.get("/api/presets").get_json()["presets"]
        assert presets["custom"] == {"width": 800, "height": 600}

    def test_save_invalid(self, client):
        resp = client.put("/api/presets/custom", json={"width": 5, "height": 600})
        assert resp.status_code == 400
