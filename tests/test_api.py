import asyncio
import io

import cv2
import numpy as np
from PyPDF2 import PdfWriter

from app import middleware
from app.api import face_analysis as face_analysis_api
from app.api.deps import read_upload
from app.config import settings
from app.core.ocr import OCRResult
from app.db import repository
from app.exceptions import AIServiceError
from app.services import actions, tasks
from app.services.gemini_mock import MockGeminiAnalyzer
from app.utils.image_processing import PNG_SIGNATURE

SAMPLE_TEXT = "Hemoglobin: 9.5 g/dL\nTotal Cholesterol: 250 mg/dL\nGlucose: 95 mg/dL"


def upload_face(client, content, headers, content_type="image/png", **data):
    return client.post(
        "/api/v1/analyze/face",
        files={"file": ("face.png", content, content_type)},
        data=data,
        headers=headers
    )


def upload_report(client, content, headers, content_type="image/png"):
    return client.post(
        "/api/v1/analyze/report",
        files={"file": ("report.png", content, content_type)},
        headers=headers
    )


def fake_ocr(monkeypatch, text=SAMPLE_TEXT):
    monkeypatch.setattr(actions, "extract_text", lambda content, content_type: OCRResult(text, 91.5))


class FailingAnalyzer(MockGeminiAnalyzer):
    def __init__(self, message):
        self.message = message

    async def structure_ocr_data(self, raw_text):
        raise AIServiceError(self.message)

    async def generate_risk_assessment(self, lab_data, visual_metrics, user_data):
        raise AIServiceError(self.message)


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "online"


def test_health_without_database(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200

    body = response.json()
    assert body["success"] is True
    assert body["database_status"] == "connection error"
    assert body["cache_status"] == "disabled"
    assert body["ai_mode"] == "rule-based"


def test_request_headers(client):
    response = client.get("/api/v1/languages", headers={"Accept-Language": "fr-CA,fr;q=0.9"})
    assert response.headers["Content-Language"] == "fr"
    assert response.headers["X-Request-Id"]
    assert "X-Process-Time" in response.headers


def test_languages(client):
    response = client.get("/api/v1/languages?lang=ur", headers={"X-Selected-Language": "de"})
    body = response.json()

    assert body["current"] == "ur"
    assert body["default"] == "en"
    assert len(body["languages"]) == 13
    assert {"code": "ar", "name": "Arabic", "native_name": "العربية"} in body["languages"]


def test_overlay_scale(client):
    response = client.post("/api/v1/overlay/scale", json={
        "boxes": [{"x": 100, "y": 80, "width": 200, "height": 250}],
        "natural_width": 1280,
        "natural_height": 960,
        "render_width": 640,
        "render_height": 480
    })
    assert response.status_code == 200

    body = response.json()
    assert body["scale_x"] == 0.5
    assert body["boxes"] == [{"x": 50.0, "y": 40.0, "width": 100.0, "height": 125.0}]


def test_overlay_scale_defaults_and_clamp(client):
    response = client.post("/api/v1/overlay/scale", json={
        "boxes": [{"x": 600, "y": 400, "width": 100, "height": 100}],
        "render_width": 320,
        "render_height": 240,
        "clamp": True
    })
    body = response.json()

    assert (body["natural_width"], body["natural_height"]) == (640, 480)
    assert body["boxes"] == [{"x": 300.0, "y": 200.0, "width": 20.0, "height": 40.0}]


def test_overlay_rejects_negative_box(client):
    response = client.post("/api/v1/overlay/scale", json={
        "boxes": [{"x": 0, "y": 0, "width": -5, "height": 10}]
    })
    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error_type"] == "validation"


def test_face_requires_file(client, auth_headers):
    response = client.post("/api/v1/analyze/face", headers=auth_headers)
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "No file provided", "error_type": "validation"}


def test_face_rejects_wrong_type(client, auth_headers):
    response = upload_face(client, b"hello", auth_headers, content_type="text/plain")
    assert response.status_code == 400
    assert response.json()["error"] == "Please upload a JPEG or PNG image"


def test_face_requires_user(client, red_face_png):
    response = upload_face(client, red_face_png, {})
    assert response.status_code == 401
    assert response.json()["error_type"] == "auth"


def test_face_analysis_saved(client, auth_headers, red_face_png, fake_repository):
    response = upload_face(client, red_face_png, auth_headers)
    assert response.status_code == 200

    body = response.json()
    assert body["success"] is True
    assert body["analysis_id"]
    assert body["data"]["face_detected"] is True
    assert body["data"]["problems_detected"][0]["type"] == "Severe Inflammation"
    assert body["data"]["annotated_image"]

    stored = fake_repository.documents[0]
    assert stored["type"] == "face"
    assert stored["visual_metrics"]["redness_percentage"] > 70
    assert "annotated_image" not in stored["raw_data"]


def test_face_analysis_save_failure_still_succeeds(client, auth_headers, red_face_png, monkeypatch):
    async def broken_save(record):
        raise RuntimeError("MongoDB is not connected. Call connect_to_mongo first.")

    monkeypatch.setattr(repository, "save_analysis", broken_save)
    response = upload_face(client, red_face_png, auth_headers)
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is True
    assert body["warning"] == actions.SAVE_WARNING
    assert body["save_error"]
    assert "analysis_id" not in body


def test_face_async_queues_task(client, auth_headers, red_face_png, monkeypatch):
    queued = {}

    class FakeTask:
        name = "app.services.tasks.analyze_face"

        def delay(self, payload, user_id):
            queued["user_id"] = user_id

            class Result:
                id = "task-1"
            return Result()

    monkeypatch.setattr(tasks, "analyze_face_task", FakeTask())
    response = upload_face(client, red_face_png, auth_headers, async_process="true")

    assert response.status_code == 200
    assert response.json() == {"success": True, "task_id": "task-1"}
    assert queued["user_id"] == "user_123"


def test_task_status(client, auth_headers, monkeypatch):
    monkeypatch.setattr(face_analysis_api, "get_task_status", lambda task_id, user_id: {
        "task_id": task_id,
        "state": "succeeded",
        "result": {"success": True, "analysis_id": "abc"}
    })
    response = client.get("/api/v1/analyze/tasks/task-1", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["state"] == "succeeded"
    assert response.json()["result"]["analysis_id"] == "abc"


def test_task_status_of_other_user(client, auth_headers, monkeypatch):
    monkeypatch.setattr(face_analysis_api, "get_task_status", lambda task_id, user_id: {
        "task_id": task_id, "state": "not_found"
    })
    assert client.get("/api/v1/analyze/tasks/task-1", headers=auth_headers).status_code == 404


def test_report_analysis(client, auth_headers, red_face_png, monkeypatch, fake_repository):
    fake_ocr(monkeypatch)
    response = upload_report(client, red_face_png, auth_headers)
    body = response.json()

    assert response.status_code == 200
    assert body["data"]["ocr_confidence"] == 91.5
    names = [m["name"] for m in body["data"]["structured_data"]["metrics"]]
    assert names == ["Hemoglobin", "Total Cholesterol", "Glucose"]
    assert fake_repository.documents[0]["structured_data"]["metrics"][0]["status"] == "low"


def test_report_without_text(client, auth_headers, red_face_png, monkeypatch):
    fake_ocr(monkeypatch, text="   ")
    body = upload_report(client, red_face_png, auth_headers).json()

    assert body["success"] is True
    assert body["warning"] == actions.NO_TEXT_WARNING
    assert body["data"].get("structured_data") is None


def test_report_quota_falls_back_to_rules(client, auth_headers, red_face_png, monkeypatch):
    fake_ocr(monkeypatch)
    monkeypatch.setattr(actions, "get_analyzer", lambda: FailingAnalyzer("Quota exceeded for model"))
    body = upload_report(client, red_face_png, auth_headers).json()

    assert body["success"] is True
    assert body["data"]["structured_data"]["metrics"][0]["name"] == "Hemoglobin"


def test_report_structuring_failure_keeps_raw_text(client, auth_headers, red_face_png, monkeypatch):
    fake_ocr(monkeypatch)
    monkeypatch.setattr(actions, "get_analyzer", lambda: FailingAnalyzer("Invalid JSON"))
    body = upload_report(client, red_face_png, auth_headers).json()

    assert body["success"] is True
    assert body["warning"] == actions.STRUCTURING_WARNING
    assert body["data"]["raw_text"] == SAMPLE_TEXT


def test_report_accepts_pdf_type_only_with_pdf_bytes(client, auth_headers, red_face_png):
    response = upload_report(client, red_face_png, auth_headers, content_type="application/pdf")
    assert response.status_code == 400


def test_risk_requires_an_analysis(client, auth_headers):
    response = client.post("/api/v1/analyze/risk", json={"user_data": {"age": 30}}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error_type"] == "validation"


def test_risk_unknown_analysis(client, auth_headers):
    response = client.post("/api/v1/analyze/risk", json={
        "face_analysis_id": "65f0c3a2e4b0a1b2c3d4e5f6",
        "user_data": {"age": 30}
    }, headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["error_type"] == "not_found"


def test_risk_from_face_analysis(client, auth_headers, red_face_png, fake_repository):
    face_id = upload_face(client, red_face_png, auth_headers).json()["analysis_id"]

    response = client.post("/api/v1/analyze/risk", json={
        "face_analysis_id": face_id,
        "user_data": {"age": 30, "gender": "male", "symptoms": ["redness"]}
    }, headers=auth_headers)
    body = response.json()

    assert response.status_code == 200
    assert "**Overall Risk Level**: Moderate" in body["data"]["risk_assessment"]
    assert fake_repository.documents[-1]["type"] == "risk"


def test_risk_of_other_users_analysis(client, auth_headers, red_face_png):
    face_id = upload_face(client, red_face_png, auth_headers).json()["analysis_id"]

    response = client.post("/api/v1/analyze/risk", json={
        "face_analysis_id": face_id,
        "user_data": {"age": 30}
    }, headers={"X-User-Id": "someone_else"})
    assert response.status_code == 404


def test_risk_rate_limited(client, auth_headers, red_face_png, monkeypatch):
    face_id = upload_face(client, red_face_png, auth_headers).json()["analysis_id"]
    monkeypatch.setattr(actions, "get_analyzer", lambda: FailingAnalyzer("429 rate limit reached"))

    response = client.post("/api/v1/analyze/risk", json={
        "face_analysis_id": face_id,
        "user_data": {"age": 30}
    }, headers=auth_headers)
    assert response.status_code == 429
    assert response.json()["error"] == actions.RATE_LIMIT_MESSAGE


def test_history_endpoints(client, auth_headers, red_face_png, monkeypatch):
    fake_ocr(monkeypatch)
    face_id = upload_face(client, red_face_png, auth_headers).json()["analysis_id"]
    upload_report(client, red_face_png, auth_headers)

    listing = client.get("/api/v1/analyses", headers=auth_headers).json()
    assert listing["total"] == 2
    assert listing["total_pages"] == 1

    faces = client.get("/api/v1/analyses?type=face", headers=auth_headers).json()
    assert [a["id"] for a in faces["analyses"]] == [face_id]

    single = client.get(f"/api/v1/analyses/{face_id}", headers=auth_headers)
    assert single.status_code == 200
    assert single.json()["type"] == "face"

    stats = client.get("/api/v1/analyses/stats", headers=auth_headers).json()
    assert stats["total_analyses"] == 2
    assert stats["faces_analyzed"] == 1
    assert stats["reports_scanned"] == 1

    summary = client.get("/api/v1/analyses/summary", headers=auth_headers).json()["summary"]
    assert "HEALTH SUMMARY (2 analyses: 1 reports, 1 face, 0 risk" in summary
    assert "ABNORMAL FINDINGS:" in summary

    assert client.delete(f"/api/v1/analyses/{face_id}", headers=auth_headers).status_code == 200
    assert client.get(f"/api/v1/analyses/{face_id}", headers=auth_headers).status_code == 404
    assert client.delete(f"/api/v1/analyses/{face_id}", headers=auth_headers).status_code == 404


def test_history_requires_user(client):
    response = client.get("/api/v1/analyses")
    assert response.status_code == 401
    assert response.json()["detail"] == "Authentication required. Please log in again."


def test_history_limit_bounds(client, auth_headers):
    assert client.get("/api/v1/analyses?limit=500", headers=auth_headers).status_code == 400


def test_history_database_down(client, auth_headers, monkeypatch):
    async def unavailable(user_id):
        raise RuntimeError("MongoDB is not connected. Call connect_to_mongo first.")

    monkeypatch.setattr(repository, "get_user_stats", unavailable)
    assert client.get("/api/v1/analyses/stats", headers=auth_headers).status_code == 503


def test_chat_empty_message(client, auth_headers):
    response = client.post("/api/v1/chat", json={"message": "  "}, headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["error_type"] == "validation"


def test_chat_without_history(client, auth_headers):
    response = client.post("/api/v1/chat", json={"message": "Hello there"}, headers=auth_headers)
    body = response.json()

    assert response.status_code == 200
    assert body["success"] is True
    assert "haven't uploaded any health data yet" in body["response"]


def test_chat_about_reports(client, auth_headers, red_face_png, monkeypatch):
    fake_ocr(monkeypatch)
    upload_report(client, red_face_png, auth_headers)

    response = client.post("/api/v1/chat", json={
        "message": "Can you explain my latest report?",
        "history": [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "Hello!"}]
    }, headers=auth_headers)
    reply = response.json()["response"]

    assert "Based on your uploaded health reports" in reply
    assert "Hemoglobin: 9.5 g/dL [LOW]" in reply


def test_chat_requires_user(client):
    assert client.post("/api/v1/chat", json={"message": "hi"}).status_code == 401


async def too_slow(*args, **kwargs):
    await asyncio.sleep(1)


class SlowAnalyzer(MockGeminiAnalyzer):
    async def generate_risk_assessment(self, lab_data, visual_metrics, user_data):
        await too_slow()


def test_face_timeout(client, auth_headers, red_face_png, monkeypatch):
    monkeypatch.setattr(settings, "FACE_ANALYSIS_TIMEOUT", 0.05)
    monkeypatch.setattr(actions, "run_in_threadpool", too_slow)

    response = upload_face(client, red_face_png, auth_headers)
    assert response.status_code == 504
    assert response.json() == {
        "success": False, "error": actions.FACE_TIMEOUT_MESSAGE, "error_type": "timeout"
    }


def test_report_timeout(client, auth_headers, red_face_png, monkeypatch):
    monkeypatch.setattr(settings, "REPORT_ANALYSIS_TIMEOUT", 0.05)
    monkeypatch.setattr(actions, "run_report_pipeline", too_slow)

    response = upload_report(client, red_face_png, auth_headers)
    assert response.status_code == 504
    assert response.json()["error_type"] == "timeout"
    assert response.json()["error"] == actions.REPORT_TIMEOUT_MESSAGE


def test_risk_timeout(client, auth_headers, red_face_png, monkeypatch):
    face_id = upload_face(client, red_face_png, auth_headers).json()["analysis_id"]
    monkeypatch.setattr(settings, "RISK_ASSESSMENT_TIMEOUT", 0.05)
    monkeypatch.setattr(actions, "get_analyzer", SlowAnalyzer)

    response = client.post("/api/v1/analyze/risk", json={
        "face_analysis_id": face_id,
        "user_data": {"age": 30}
    }, headers=auth_headers)
    assert response.status_code == 504
    assert response.json()["error_type"] == "timeout"
    assert response.json()["error"] == actions.RISK_TIMEOUT_MESSAGE


def test_face_rejects_oversized_upload(client, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 2 * 1024 * 1024)
    content = PNG_SIGNATURE + bytes(3 * 1024 * 1024)

    response = upload_face(client, content, auth_headers)
    assert response.status_code == 400
    assert response.json() == {
        "success": False, "error": "File size must be less than 2MB", "error_type": "validation"
    }


def test_upload_read_stops_past_the_limit(monkeypatch):
    monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 100)

    class Upload:
        requested = None

        async def read(self, size=-1):
            self.requested = size
            return bytes(size)

    upload = Upload()
    content = asyncio.run(read_upload(upload))

    assert upload.requested == 101
    assert len(content) == 101
    assert asyncio.run(read_upload(None)) is None


def test_face_transparent_png_has_no_face(client, auth_headers):
    image = np.zeros((300, 400, 4), dtype=np.uint8)
    image[:, :] = (60, 60, 200, 0)
    success, encoded = cv2.imencode(".png", image)
    assert success

    response = upload_face(client, encoded.tobytes(), auth_headers)
    assert response.status_code == 400
    assert response.json()["error_type"] == "validation"


def test_face_half_transparent_png(client, auth_headers):
    image = np.zeros((300, 400, 4), dtype=np.uint8)
    image[:, :200] = (200, 200, 200, 0)
    image[:, 200:] = (30, 30, 220, 255)
    success, encoded = cv2.imencode(".png", image)
    assert success

    body = upload_face(client, encoded.tobytes(), auth_headers).json()
    assert body["success"] is True
    assert body["data"]["visual_metrics"][0]["redness_percentage"] > 70


def test_request_record_carries_user(client, auth_headers, monkeypatch):
    records = []

    async def record_request(record):
        records.append(record)
        return True

    monkeypatch.setattr(middleware, "save_request_info", record_request)
    client.get("/api/v1/languages", headers=auth_headers)

    assert records[0].user_id == "user_123"
    assert records[0].path == "/api/v1/languages"


def test_chat_addresses_user_by_name(client, auth_headers):
    headers = dict(auth_headers, **{"X-User-Name": "Sara"})
    response = client.post("/api/v1/chat", json={"message": "Hello there"}, headers=headers)
    assert response.json()["response"].startswith("Sara, Welcome to SehatScan AI!")


def test_summary_profile_line(client, auth_headers):
    headers = dict(auth_headers, **{"X-User-Name": "Sara", "X-User-Created-At": "2024-01-02T09:30:00Z"})
    summary = client.get("/api/v1/analyses/summary", headers=headers).json()["summary"]
    assert summary.startswith("USER: Sara (member since Jan 2, 2024)\n\nHEALTH DATA: No health data available yet.")

    summary = client.get("/api/v1/analyses/summary", headers=auth_headers).json()["summary"]
    assert summary.startswith("\nHEALTH DATA:")


def test_profile_with_unreadable_date(client, auth_headers):
    headers = dict(auth_headers, **{"X-User-Name": "Sara", "X-User-Created-At": "last spring"})
    summary = client.get("/api/v1/analyses/summary", headers=headers).json()["summary"]
    assert summary.startswith("USER: Sara\n")


def test_report_pdf_without_text_layer(client, auth_headers):
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    buffer = io.BytesIO()
    writer.write(buffer)

    response = upload_report(client, buffer.getvalue(), auth_headers, content_type="application/pdf")
    assert response.status_code == 400
    assert response.json()["error_type"] == "validation"
    assert "no text layer" in response.json()["error"]
