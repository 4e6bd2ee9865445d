from __future__ import annotations

from fastapi.testclient import TestClient

from cutout.core.errors import SessionBusyError
from cutout.main import app


def _register_test_routes() -> None:
    paths = {route.path for route in app.router.routes if hasattr(route, "path")}

    async def boom():
        raise RuntimeError("forced failure")

    async def busy():
        raise SessionBusyError("Cannot start extracting while removing is in progress")

    if "/__test_error" not in paths:
        app.add_api_route("/__test_error", boom, methods=["GET"], include_in_schema=False)
    if "/__test_busy" not in paths:
        app.add_api_route("/__test_busy", busy, methods=["GET"], include_in_schema=False)


_register_test_routes()


def test_problem_details_on_unhandled_error():
    client = TestClient(app, raise_server_exceptions=False)

    response = client.get("/__test_error")

    assert response.status_code == 500
    payload = response.json()
    assert payload["title"] == "Internal Server Error"
    assert payload["status"] == 500
    assert payload["detail"]
    assert "forced failure" not in payload["detail"]
    assert payload["request_id"]
    assert response.headers.get("X-Request-ID") == payload["request_id"]


def test_domain_errors_map_to_their_status():
    client = TestClient(app)

    response = client.get("/__test_busy", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 409
    payload = response.json()
    assert payload["title"] == "Session Busy"
    assert payload["request_id"] == "req-123"
    assert response.headers.get("X-Request-ID") == "req-123"


def test_health_and_ping():
    client = TestClient(app)

    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/api/v1/ping").json() == {"message": "pong"}
