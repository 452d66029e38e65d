"""
HTTP tests for the upload / status / download routes.

Run with: python -m pytest backend/tests/test_routes.py -v
"""

import asyncio
import io
import zipfile

import pytest
from fastapi.testclient import TestClient

from backend.app.api.deps import get_app_settings, get_batch_manager
from backend.app.config import Settings
from backend.main import app
from backend.tests.conftest import make_image


@pytest.fixture
def client(manager):
    settings = Settings(cleanup_delay_seconds=0, max_files=5, max_upload_mb=1)
    app.dependency_overrides[get_batch_manager] = lambda: manager
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def upload_parts(watermark_png, *files):
    parts = [("watermark", ("wm.png", watermark_png, "image/png"))]
    for name, content, mime in files:
        parts.append(("files", (name, content, mime)))
    return parts


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_upload_status_download(client, manager, watermark_png):
    parts = upload_parts(
        watermark_png,
        ("a.png", make_image(), "image/png"),
        ("b.jpg", make_image(fmt="JPEG"), "image/jpeg"),
    )
    response = client.post("/upload", files=parts, data={"position": "top-left", "opacity": "0.5"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    upload_id = body["uploadId"]

    manager.wait(upload_id, timeout=30)

    status = client.get(f"/status/{upload_id}").json()
    assert status["completed"] is True
    assert status["processed"] == status["total"] == 2
    assert status["errors"] == []
    assert status["percent"] == 100.0

    download = client.get(f"/download/{upload_id}")
    assert download.status_code == 200
    assert download.headers["content-type"] == "application/zip"
    assert "watermarked-files.zip" in download.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(download.content)) as zf:
        assert zf.namelist() == ["a.png", "b.jpg"]

    # cleanup ran after the download
    assert client.get(f"/status/{upload_id}").status_code == 404
    assert client.get(f"/download/{upload_id}").status_code == 404


def test_missing_parts(client, watermark_png):
    response = client.post("/upload", files=[("watermark", ("wm.png", watermark_png, "image/png"))])
    assert response.status_code == 400
    assert response.json() == {"error": "Please provide both watermark and files to process"}


def test_invalid_mime_type_is_rejected(client, watermark_png):
    parts = upload_parts(watermark_png, ("notes.txt", b"hello", "text/plain"))
    response = client.post("/upload", files=parts)
    assert response.status_code == 400
    assert "Invalid file type" in response.json()["error"]


def test_too_many_files(client, watermark_png):
    files = [(f"{i}.png", make_image((10, 10)), "image/png") for i in range(6)]
    response = client.post("/upload", files=upload_parts(watermark_png, *files))
    assert response.status_code == 400


def test_file_too_large(client, watermark_png):
    big = b"\x00" * (1024 * 1024 + 1)
    response = client.post("/upload", files=upload_parts(watermark_png, ("big.mp4", big, "video/mp4")))
    assert response.status_code == 413


def test_unreadable_watermark(client):
    parts = [
        ("watermark", ("wm.png", b"nope", "image/png")),
        ("files", ("a.png", make_image(), "image/png")),
    ]
    response = client.post("/upload", files=parts)
    assert response.status_code == 400
    assert "Watermark" in response.json()["error"]


def test_sync_upload_returns_zip(client, watermark_png):
    parts = upload_parts(
        watermark_png,
        ("a.png", make_image(), "image/png"),
        ("broken.gif", b"GIF89a-broken", "image/gif"),
    )
    response = client.post("/upload/sync", files=parts, data={"scale": "abc"})
    assert response.status_code == 200
    assert response.headers["x-processed-count"] == "1"
    assert response.headers["x-error-count"] == "1"
    with zipfile.ZipFile(io.BytesIO(response.content)) as zf:
        assert zf.namelist() == ["a.png"]


def test_unknown_status_and_download(client):
    assert client.get("/status/unknown").status_code == 404
    assert client.get("/status/unknown").json() == {"error": "Upload not found"}
    assert client.get("/download/unknown").json() == {"error": "File not found"}


def test_delete_upload(client, manager, watermark_png):
    upload_id = client.post(
        "/upload",
        files=upload_parts(watermark_png, ("a.png", make_image(), "image/png"))
    ).json()["uploadId"]
    manager.wait(upload_id, timeout=30)

    assert client.delete(f"/upload/{upload_id}").json() == {"success": True}
    assert client.delete(f"/upload/{upload_id}").status_code == 404


def test_upload_starts_batch_off_the_event_loop(client, manager, watermark_png, monkeypatch):
    running_loops = []
    real_start = manager.start_batch

    def start_batch(*args, **kwargs):
        try:
            running_loops.append(asyncio.get_running_loop())
        except RuntimeError:
            running_loops.append(None)
        return real_start(*args, **kwargs)

    monkeypatch.setattr(manager, "start_batch", start_batch)

    response = client.post("/upload", files=upload_parts(watermark_png, ("a.png", make_image(), "image/png")))
    assert response.status_code == 200
    assert running_loops == [None]
    manager.wait(response.json()["uploadId"], timeout=30)
