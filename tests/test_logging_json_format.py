import io
import json
from contextlib import redirect_stderr, redirect_stdout

from fastapi.testclient import TestClient

from core_memory.config import Settings
from core_memory.logging import build_sanitizer, configure_logging, logger
from core_memory.main import create_app
from core_memory.store import ContactStore


def _captured_lines(buf_out: io.StringIO, buf_err: io.StringIO) -> list[str]:
    raw = buf_err.getvalue().strip() or buf_out.getvalue().strip()
    return [ln for ln in raw.splitlines() if ln.strip()]


def _events(lines: list[str], event: str) -> list[dict]:
    return [json.loads(ln) for ln in lines if f'"event": "{event}"' in ln]


def test_structlog_outputs_pure_json_without_stdlib_prefix(app_settings: Settings):
    buf_out = io.StringIO()
    buf_err = io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        configure_logging(app_settings)
        logger.info("review_graded", contact_id="c:abc", rating=4, interval_days=6)

    lines = _captured_lines(buf_out, buf_err)
    assert lines, "no log output captured"
    message_text = lines[-1]
    assert not message_text.startswith("INFO:"), message_text

    data = json.loads(message_text)
    assert data["event"] == "review_graded"
    assert data["level"] in {"info", "INFO"}
    assert data["contact_id"] == "c:abc"
    assert data["interval_days"] == 6
    assert "timestamp" in data


def test_sensitive_keys_are_masked(app_settings: Settings):
    buf_out = io.StringIO()
    buf_err = io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        configure_logging(app_settings)
        logger.info("config_dump", api_token="tok-1234567890abcdef", nested={"password": "hunter2"})

    data = json.loads(_captured_lines(buf_out, buf_err)[-1])
    assert data["api_token"] == "tok-…cdef"
    assert data["nested"] == {"password": "***"}


def test_known_secret_literals_are_masked_inside_messages():
    sanitize = build_sanitizer(("supersecretvalue123",))
    event = sanitize(None, "info", {"event": "startup", "detail": "dsn is supersecretvalue123"})
    assert event["detail"] == "dsn is supe…e123"


def test_request_complete_log_contains_request_id_and_status(app_settings: Settings, store: ContactStore):
    buf_out = io.StringIO()
    buf_err = io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        app = create_app(settings=app_settings, store=store)
        with TestClient(app) as client:
            response = client.get("/healthz")
        assert response.status_code == 200

    request_lines = _events(_captured_lines(buf_out, buf_err), "request_complete")
    assert request_lines, "request_complete log line not found"
    data = request_lines[-1]
    assert data["request_id"] == response.headers["X-Request-ID"]
    assert data["status_code"] == 200
    assert data["path"] == "/healthz"
    assert data["is_error"] is False


def test_contact_lifecycle_events_are_logged(app_settings: Settings, store: ContactStore):
    buf_out = io.StringIO()
    buf_err = io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        app = create_app(settings=app_settings, store=store)
        with TestClient(app) as client:
            created = client.post("/api/contacts", json={"name": "Logged"}).json()
            client.delete(f"/api/contacts/{created['id']}")

    lines = _captured_lines(buf_out, buf_err)
    assert _events(lines, "contact_created")[-1]["contact_id"] == created["id"]
    assert _events(lines, "contact_deleted")[-1]["contact_id"] == created["id"]
