import io
import json
from contextlib import redirect_stderr, redirect_stdout

import pytest
from fastapi.testclient import TestClient

from factories import T0
from lingolog import logging as lingolog_logging
from lingolog.clock import FrozenClock
from lingolog.logging import configure_logging, logger
from lingolog.main import create_app
from lingolog.session import build_session
from lingolog.store import InMemoryReviewItemStore


def _log_lines(buf_out: io.StringIO, buf_err: io.StringIO) -> list[dict]:
    raw = buf_err.getvalue().strip() or buf_out.getvalue().strip()
    return [json.loads(ln) for ln in raw.splitlines() if ln.strip().startswith("{")]


def test_structlog_outputs_pure_json_without_stdlib_prefix() -> None:
    buf_out, buf_err = io.StringIO(), io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        configure_logging()
        logger.info("repository_refresh", count=3)

    raw = buf_err.getvalue().strip() or buf_out.getvalue().strip()
    last = [ln for ln in raw.splitlines() if ln.strip()][-1]
    assert not last.startswith("INFO:"), last
    data = json.loads(last)
    assert data["event"] == "repository_refresh"
    assert data["level"] in {"info", "INFO"}
    assert data["count"] == 3
    assert "timestamp" in data


def test_sensitive_values_are_masked_in_logs(monkeypatch: pytest.MonkeyPatch) -> None:
    secret = "sk-proj-1234567890"
    monkeypatch.setattr(lingolog_logging.settings, "openai_api_key", secret)
    buf_out, buf_err = io.StringIO(), io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        configure_logging()
        logger.info(
            "config_dump",
            openai_api_key=secret,
            detail=f"request failed with key {secret}",
            nested={"translator_api_key": "abcdef0123456789"},
        )

    data = [d for d in _log_lines(buf_out, buf_err) if d["event"] == "config_dump"][-1]
    assert secret not in json.dumps(data, ensure_ascii=False)
    assert data["openai_api_key"] == "sk-p…7890"
    assert data["nested"]["translator_api_key"] == "abcd…6789"


def test_event_name_is_never_masked() -> None:
    buf_out, buf_err = io.StringIO(), io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        configure_logging()
        logger.info("translator_key_missing", api_key="short")

    data = _log_lines(buf_out, buf_err)[-1]
    assert data["event"] == "translator_key_missing"
    assert data["api_key"] == "***"


def test_proxy_url_query_secrets_are_masked() -> None:
    buf_out, buf_err = io.StringIO(), io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        configure_logging()
        logger.warning(
            "translation_request_failed",
            error="ConnectError for url 'https://fn.example/api/translate?code=AbC123xyz&to=es'",
        )

    data = _log_lines(buf_out, buf_err)[-1]
    assert "AbC123xyz" not in data["error"]
    assert "?code=***&to=es" in data["error"]


def test_request_complete_log_contains_request_id_and_status() -> None:
    buf_out, buf_err = io.StringIO(), io.StringIO()

    with redirect_stdout(buf_out), redirect_stderr(buf_err):
        session = build_session(store=InMemoryReviewItemStore(), clock=FrozenClock(T0))
        with TestClient(create_app(session)) as client:
            response = client.get("/healthz", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    lines = [d for d in _log_lines(buf_out, buf_err) if d.get("event") == "request_complete"]
    assert lines, "request_complete log line not found"
    assert lines[-1]["request_id"] == "req-123"
    assert lines[-1]["status_code"] == 200
    assert lines[-1]["path"] == "/healthz"
