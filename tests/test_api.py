"""
Tests for the HTTP and WebSocket API.
"""

import time

import pytest

from vidconv import __version__
from vidconv.errors import (
    MalformedProbeOutputError,
    ProbeExecutionError,
    ProbeToolUnavailableError,
)

CONVERSION = {
    "job_id": "job-1",
    "input_path": "/media/in.mkv",
    "output_path": "/media/out.mp4",
}


def wait_for_status(client, job_id, status, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        data = client.get(f"/api/conversions/{job_id}").json()
        if data["status"] == status:
            return data
        time.sleep(0.02)
    raise AssertionError(f"{job_id} never reached {status}")


def receive_until_result(ws, limit=20):
    messages = []
    for _ in range(limit):
        message = ws.receive_json()
        messages.append(message)
        if message["type"] == "conversion_result":
            return messages
    raise AssertionError("no conversion_result received")


# =============================================================================
# HEALTH / CAPABILITIES
# =============================================================================

class TestServiceEndpoints:

    def test_health(self, api_client):
        response = api_client.get("/api/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert data["ffmpeg_available"] is False
        assert data["ffprobe_available"] is False
        assert data["active_jobs"] == 0
        assert data["queued_jobs"] == 0
        assert data["uptime_seconds"] >= 0

    def test_capabilities(self, api_client):
        data = api_client.get("/api/capabilities").json()

        assert data["nvenc"] is True
        assert data["qsv"] is False
        assert data["encoders"] == ["h264_nvenc"]

    def test_formats_without_ffmpeg(self, api_client):
        response = api_client.get("/api/formats")
        assert response.status_code == 200
        assert response.json() == []

    def test_stats(self, api_client):
        api_client.post("/api/conversions", json=CONVERSION)
        wait_for_status(api_client, "job-1", "completed")

        data = api_client.get("/api/stats").json()
        assert data["total_jobs_processed"] == 1
        assert data["successful_jobs"] == 1
        assert data["hw_accel_usage"] == {"software": 1}


# =============================================================================
# PROBE
# =============================================================================

class TestProbeEndpoint:

    def test_missing_file(self, api_client, tmp_path):
        response = api_client.post("/api/probe", json={"path": str(tmp_path / "missing.mkv")})
        assert response.status_code == 404

    def test_probe(self, api_client, tmp_path):
        media = tmp_path / "movie.mkv"
        media.write_bytes(b"\x1a\x45\xdf\xa3")

        response = api_client.post("/api/probe", json={"path": str(media)})

        assert response.status_code == 200
        data = response.json()
        assert data["path"] == str(media)
        assert data["resolution"] == "1920x1080"
        assert data["audio_tracks"] == []

    @pytest.mark.parametrize("error,status", [
        (ProbeToolUnavailableError("ffprobe", "not found"), 503),
        (MalformedProbeOutputError("missing streams section"), 422),
        (ProbeExecutionError("movie.mkv", 1, "Invalid data found"), 502),
    ])
    def test_probe_errors(self, api_client, fake_engine, tmp_path, error, status):
        media = tmp_path / "movie.mkv"
        media.write_bytes(b"")
        fake_engine.probe_error = error

        response = api_client.post("/api/probe", json={"path": str(media)})
        assert response.status_code == status


class TestFilenameEndpoint:

    def test_filename_from_metadata(self, api_client, tmp_path):
        media = tmp_path / "movie.mkv"
        media.write_bytes(b"\x1a\x45\xdf\xa3")

        response = api_client.post("/api/filename", json={
            "path": str(media),
            "title": "Dune",
            "release_date": "2021-10-22",
        })

        assert response.status_code == 200
        assert response.json() == {"filename": "Dune (2021) [1080p].mp4"}

    def test_filename_custom_template_without_title(self, api_client, tmp_path):
        media = tmp_path / "movie.mkv"
        media.write_bytes(b"")

        response = api_client.post("/api/filename", json={"path": str(media), "template": "{title} {codec}"})

        assert response.status_code == 200
        assert response.json()["filename"] == "Unknown Title h264.mp4"

    def test_filename_missing_file(self, api_client, tmp_path):
        response = api_client.post("/api/filename", json={"path": str(tmp_path / "missing.mkv"), "title": "Dune"})
        assert response.status_code == 404

    def test_filename_unreadable_media(self, api_client, fake_engine, tmp_path):
        media = tmp_path / "movie.mkv"
        media.write_bytes(b"")
        fake_engine.probe_error = ProbeExecutionError("movie.mkv", 1, "Invalid data found")

        response = api_client.post("/api/filename", json={"path": str(media)})
        assert response.status_code == 502


# =============================================================================
# CONVERSIONS
# =============================================================================

class TestConversionEndpoints:

    def test_start_and_complete(self, api_client):
        response = api_client.post("/api/conversions", json=CONVERSION)

        assert response.status_code == 202
        assert response.json()["job_id"] == "job-1"

        data = wait_for_status(api_client, "job-1", "completed")
        assert data["progress"] == 1.0
        assert data["output_path"] == "/media/out.mp4"
        assert data["result"]["success"] is True
        assert data["last_progress"]["percent"] == 50.0
        assert data["options"]["video_codec"] == "libx264"

    def test_list(self, api_client):
        api_client.post("/api/conversions", json=CONVERSION)
        api_client.post("/api/conversions", json={**CONVERSION, "job_id": "job-2"})

        jobs = api_client.get("/api/conversions").json()
        assert sorted(job["job_id"] for job in jobs) == ["job-1", "job-2"]

    def test_invalid_options(self, api_client):
        response = api_client.post("/api/conversions", json={**CONVERSION, "audio_strategy": "explicit_index"})
        assert response.status_code == 422

        response = api_client.post("/api/conversions", json={**CONVERSION, "job_id": ""})
        assert response.status_code == 422

    def test_duplicate_job(self, api_client, fake_engine):
        fake_engine.hold = True
        assert api_client.post("/api/conversions", json=CONVERSION).status_code == 202

        response = api_client.post("/api/conversions", json=CONVERSION)
        assert response.status_code == 409

    def test_cancel_running(self, api_client, fake_engine):
        fake_engine.hold = True
        api_client.post("/api/conversions", json=CONVERSION)
        wait_for_status(api_client, "job-1", "running")

        response = api_client.post("/api/conversions/job-1/cancel")
        assert response.status_code == 200

        data = wait_for_status(api_client, "job-1", "cancelled")
        assert data["result"]["cancelled"] is True
        assert data["error_message"] == "Conversion stopped by user"

    def test_cancel_unknown(self, api_client):
        assert api_client.post("/api/conversions/missing/cancel").status_code == 404

    def test_get_unknown(self, api_client):
        assert api_client.get("/api/conversions/missing").status_code == 404

    def test_delete(self, api_client):
        api_client.post("/api/conversions", json=CONVERSION)
        wait_for_status(api_client, "job-1", "completed")

        response = api_client.delete("/api/conversions/job-1")
        assert response.status_code == 200
        assert response.json() == {"status": "deleted", "job_id": "job-1"}
        assert api_client.get("/api/conversions/job-1").status_code == 404
        assert api_client.delete("/api/conversions/job-1").status_code == 404


# =============================================================================
# WEBSOCKET
# =============================================================================

class TestWebSocket:

    def test_ping_pong(self, api_client):
        with api_client.websocket_connect("/ws/progress") as ws:
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

    def test_progress_and_result_broadcast(self, api_client):
        with api_client.websocket_connect("/ws/progress") as ws:
            # Handshake round trip so the connection is registered
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            api_client.post("/api/conversions", json=CONVERSION)
            messages = receive_until_result(ws)

        by_type = {}
        for message in messages:
            assert message["job_id"] == "job-1"
            by_type.setdefault(message["type"], []).append(message["data"])

        assert by_type["conversion_progress"][0]["progress"] == 0.5
        assert {"status": "running"} in by_type["status_change"]
        assert by_type["conversion_result"] == [messages[-1]["data"]]
        assert messages[-1]["data"]["success"] is True

    def test_subscription_filters_jobs(self, api_client):
        with api_client.websocket_connect("/ws/progress") as ws:
            ws.send_json({"type": "subscribe", "job_ids": ["job-2"]})
            assert ws.receive_json() == {"type": "subscribed", "job_ids": ["job-2"]}

            api_client.post("/api/conversions", json=CONVERSION)
            wait_for_status(api_client, "job-1", "completed")
            api_client.post("/api/conversions", json={**CONVERSION, "job_id": "job-2"})
            messages = receive_until_result(ws)

        assert {message["job_id"] for message in messages} == {"job-2"}

    def test_unsubscribe_all(self, api_client):
        with api_client.websocket_connect("/ws/progress") as ws:
            ws.send_json({"type": "subscribe", "job_ids": ["a", "b"]})
            assert ws.receive_json()["job_ids"] == ["a", "b"]

            ws.send_json({"type": "unsubscribe", "job_ids": ["a"]})
            assert ws.receive_json()["job_ids"] == ["b"]

            ws.send_json({"type": "unsubscribe"})
            assert ws.receive_json() == {"type": "subscribed", "job_ids": []}
