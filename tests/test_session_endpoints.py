import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from cutout.core import deps
from cutout.core.errors import NoCandidateError
from cutout.main import app
from cutout.services.session import EditingSession
from cutout.services.session_store import SessionStore


def create_png(width: int, height: int, color=(0, 0, 255, 255)) -> bytes:
    image = Image.new("RGBA", (width, height), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def store(fake_gateway):
    store = SessionStore(
        factory=lambda: EditingSession(fake_gateway, progress_interval=0.001, display_delay=0),
        ttl_seconds=3600,
    )
    app.dependency_overrides[deps.get_session_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


def start_session(client: TestClient, png: bytes | None = None) -> str:
    response = client.post("/api/v1/sessions")
    assert response.status_code == 201
    session_id = response.json()["session_id"]
    if png is not None:
        upload = client.post(
            f"/api/v1/sessions/{session_id}/image",
            files={"file": ("photo.png", png, "image/png")},
        )
        assert upload.status_code == 200
    return session_id


def test_new_session_is_empty(store):
    with TestClient(app) as client:
        response = client.post("/api/v1/sessions")

    payload = response.json()
    assert response.status_code == 201
    assert payload["status"] == "empty"
    assert payload["image"] is None
    assert payload["progress"] == 0
    assert payload["output_format"] == "png"


def test_upload_rejects_non_image(store):
    with TestClient(app) as client:
        session_id = start_session(client)
        response = client.post(
            f"/api/v1/sessions/{session_id}/image",
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        state = client.get(f"/api/v1/sessions/{session_id}").json()

    assert response.status_code == 415
    assert response.json()["request_id"]
    assert state["status"] == "empty"
    assert "valid image" in state["error"]


def test_end_to_end_removal_and_download(store, fake_gateway):
    with TestClient(app) as client:
        session_id = start_session(client, create_png(120, 80))

        state = client.get(f"/api/v1/sessions/{session_id}").json()
        assert state["status"] == "loaded"
        assert state["image"]["natural_width"] == 120
        assert state["crop"] == {"x": 0, "y": 0, "width": 100, "height": 100, "unit": "%"}

        crop = client.put(
            f"/api/v1/sessions/{session_id}/crop",
            json={"x": 10, "y": 10, "width": 50, "height": 50},
        )
        assert crop.status_code == 200

        quality = client.put(f"/api/v1/sessions/{session_id}/quality", json={"quality": "high"})
        assert quality.json()["quality"] == "high"

        removed = client.post(f"/api/v1/sessions/{session_id}/remove-background")
        assert removed.status_code == 200
        assert removed.json()["has_result"] is True
        assert removed.json()["progress"] == 100
        assert removed.json()["download_file_name"] == "background-removed.png"

        download = client.get(f"/api/v1/sessions/{session_id}/download")
        assert download.status_code == 200
        assert download.content == fake_gateway.removal_result
        assert download.headers["content-type"] == "image/png"
        assert download.headers["content-disposition"].endswith('filename="background-removed.png"')

        converted = client.put(
            f"/api/v1/sessions/{session_id}/format", json={"output_format": "jpeg"}
        )
        assert converted.json()["download_file_name"] == "background-removed.jpg"

        jpeg = client.get(f"/api/v1/sessions/{session_id}/download")
        assert jpeg.headers["content-type"] == "image/jpeg"
        with Image.open(io.BytesIO(jpeg.content)) as decoded:
            assert decoded.format == "JPEG"

        preview = client.get(f"/api/v1/sessions/{session_id}/preview").json()
        assert preview["original_base64"].startswith("data:image/png;base64,")
        assert preview["result_base64"].startswith("data:image/png;base64,")

    assert fake_gateway.count("remove_background") == 1


def test_detect_text_endpoint(store, fake_gateway):
    fake_gateway.text_result = "  Grand Opening  "

    with TestClient(app) as client:
        session_id = start_session(client, create_png(32, 32))
        response = client.post(f"/api/v1/sessions/{session_id}/detect-text")

    assert response.status_code == 200
    assert response.json()["text"] == "Grand Opening"


def test_remote_failure_hides_detail(store, fake_gateway):
    fake_gateway.removal_error = NoCandidateError("quota exhausted for project 1234")

    with TestClient(app) as client:
        session_id = start_session(client, create_png(32, 32))
        response = client.post(f"/api/v1/sessions/{session_id}/remove-background")
        state = client.get(f"/api/v1/sessions/{session_id}").json()

    assert response.status_code == 502
    assert "quota" not in response.text
    assert response.json()["detail"].startswith("Failed to process image")
    assert state["status"] == "loaded"
    assert state["progress"] == 0


def test_empty_selection_is_rejected(store, fake_gateway):
    with TestClient(app) as client:
        session_id = start_session(client, create_png(32, 32))
        client.put(
            f"/api/v1/sessions/{session_id}/crop",
            json={"x": 10, "y": 10, "width": 0, "height": 40},
        )
        response = client.post(f"/api/v1/sessions/{session_id}/remove-background")

    assert response.status_code == 422
    assert "select a region" in response.json()["detail"]
    assert fake_gateway.count("remove_background") == 0


def test_crop_outside_image_is_rejected(store):
    with TestClient(app) as client:
        session_id = start_session(client, create_png(32, 32))
        response = client.put(
            f"/api/v1/sessions/{session_id}/crop",
            json={"x": 80, "y": 0, "width": 40, "height": 40},
        )

    assert response.status_code == 422


def test_download_unavailable_before_removal(store):
    with TestClient(app) as client:
        session_id = start_session(client, create_png(32, 32))
        response = client.get(f"/api/v1/sessions/{session_id}/download")

    assert response.status_code == 404


def test_clear_and_close_session(store):
    with TestClient(app) as client:
        session_id = start_session(client, create_png(32, 32))

        cleared = client.delete(f"/api/v1/sessions/{session_id}/image")
        assert cleared.json()["status"] == "empty"
        assert cleared.json()["crop"] is None

        closed = client.delete(f"/api/v1/sessions/{session_id}")
        assert closed.status_code == 204

        missing = client.get(f"/api/v1/sessions/{session_id}")

    assert missing.status_code == 404
    assert missing.json()["title"] == "Not Found"


@pytest.mark.parametrize(
    "path, body",
    [
        ("display", '{"width": 1e400, "height": 100}'),
        ("display", '{"width": NaN, "height": 100}'),
        ("crop", '{"x": 0, "y": 0, "width": Infinity, "height": 10, "unit": "px"}'),
    ],
)
def test_non_finite_numbers_are_rejected(store, path, body):
    with TestClient(app) as client:
        session_id = start_session(client, create_png(32, 32))
        response = client.put(
            f"/api/v1/sessions/{session_id}/{path}",
            content=body,
            headers={"Content-Type": "application/json"},
        )
        state = client.get(f"/api/v1/sessions/{session_id}").json()

    assert response.status_code == 422
    assert state["crop"]["unit"] == "%"
    assert state["crop"]["width"] == 100
