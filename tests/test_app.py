"""Tests for the HTTP surface."""
from __future__ import annotations

from fastapi.testclient import TestClient

from app import create_app
from conftest import CountingLoader, FakeEngine
from core.logger import LOG_FILE
from services.render.engine import EngineHandle
from services.render.math_renderer import MathRenderer


def _client(handle: EngineHandle) -> TestClient:
    return TestClient(create_app(MathRenderer(handle)))


def test_health() -> None:
    client = _client(EngineHandle.from_engine(FakeEngine()))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "engine": "ready"}


def test_startup_creates_log_directory() -> None:
    with _client(EngineHandle.from_engine(FakeEngine())) as client:
        assert client.get("/health").status_code == 200
    assert LOG_FILE.parent.is_dir()


def test_sanitize_with_subject() -> None:
    client = _client(EngineHandle.from_engine(FakeEngine()))
    response = client.post("/sanitize", json={"content": "H2O", "subject": "chemistry"})
    assert response.status_code == 200
    assert response.json() == {"status": "success", "content": "H_{2}O"}


def test_sanitize_mixed() -> None:
    client = _client(EngineHandle.from_engine(FakeEngine()))
    response = client.post("/sanitize", json={"content": "<b>$x$</b>", "mixed": True})
    assert response.json()["content"] == r"<b>\(x\)</b>"


def test_sanitize_rejects_unknown_subject() -> None:
    client = _client(EngineHandle.from_engine(FakeEngine()))
    response = client.post("/sanitize", json={"content": "x", "subject": "astrology"})
    assert response.status_code == 422


def test_render_waits_for_engine() -> None:
    loader = CountingLoader()
    client = _client(EngineHandle(loader))
    response = client.post("/render", json={"content": r"\(x\)"})
    body = response.json()
    assert body["engine_ready"] is True
    assert "math-rendered" in body["html"]
    assert loader.calls == 1


def test_render_sync_uses_placeholders() -> None:
    client = _client(EngineHandle(CountingLoader()))
    response = client.post("/render", json={"content": r"\(x\)", "sync": True})
    body = response.json()
    assert body["engine_ready"] is False
    assert "math-placeholder" in body["html"]
