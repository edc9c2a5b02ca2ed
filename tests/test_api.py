from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from helpers import FakeBackend, FakeTransport, ScriptedCapture, scratch_dirs, speech_like
from voicecap.audio.transport import VoiceSession
from voicecap.config import Settings
from voicecap.main import app
from voicecap.orchestrator import CaptureOrchestrator, active_key
from voicecap.registry import Registry

SESSION = "guild-9:voice-1"


@pytest.fixture
def wired(monkeypatch, tmp_path):
    """App with its own registry and an orchestrator driven by fakes."""
    registry = Registry(ttl_seconds=3600, max_entries=1000)
    registry.put(VoiceSession(transport=FakeTransport(), guild_id="guild-9", channel_id="voice-1"), SESSION)
    capture = ScriptedCapture([(speech_like(), "silence")])
    backend = FakeBackend(["turn the lights on"])
    settings = Settings(OPENAI_API_KEY="sk-test", CAPTURE_TMP_DIR=str(tmp_path), CAPTURE_MIN_VOICED_MS=500)
    orchestrator = CaptureOrchestrator(registry, backend=backend, capture=capture, settings=settings)
    monkeypatch.setattr(app.state, "registry", registry, raising=False)
    monkeypatch.setattr(app.state, "orchestrator", orchestrator, raising=False)
    return registry, capture, backend


def test_health():
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_capture_returns_transcript(wired, tmp_path):
    registry, capture, _ = wired
    client = TestClient(app)

    r = client.post(
        "/api/voice/capture",
        json={"session_key": SESSION, "speaker_id": "u1", "speaker_name": "Grace", "overrides": {"silence_ms": 1000}},
    )

    assert r.status_code == 200
    body = r.json()
    assert body["transcribed"] is True
    assert body["text"] == "turn the lights on"
    assert body["skipped"] is None
    assert body["stop"] is False
    assert body["fragments"] == 1
    assert body["segments_captured"] == 1
    assert capture.calls[0]["silence_ms"] == 1000
    assert registry.get(active_key(SESSION, "u1")) is None
    assert scratch_dirs(tmp_path) == []

    history = client.get(f"/api/voice/history/{SESSION}").json()
    assert len(history) == 1
    assert history[0]["outcome"] == "ok"
    assert history[0]["speaker_name"] == "Grace"
    assert history[0]["channel_id"] == "voice-1"


def test_capture_unknown_session_is_404(wired):
    client = TestClient(app)
    r = client.post("/api/voice/capture", json={"session_key": "missing", "speaker_id": "u1"})
    assert r.status_code == 404


def test_capture_while_active_is_409(wired):
    registry, capture, _ = wired
    registry.put({"ts": 0}, active_key(SESSION, "u1"))
    client = TestClient(app)

    r = client.post("/api/voice/capture", json={"session_key": SESSION, "speaker_id": "u1"})

    assert r.status_code == 409
    assert capture.calls == []
    assert registry.get(active_key(SESSION, "u1")) == {"ts": 0}


def test_quality_skip_is_200_with_reason(wired):
    client = TestClient(app)

    r = client.post(
        "/api/voice/capture",
        json={"session_key": SESSION, "speaker_id": "u1", "overrides": {"snr_db_min": 500}},
    )

    assert r.status_code == 200
    assert r.json()["skipped"] == "no_voiced_frames"
    assert r.json()["stop"] is True
    assert r.json()["transcribed"] is False


def test_capture_validates_body(wired):
    client = TestClient(app)
    r = client.post("/api/voice/capture", json={"session_key": SESSION})
    assert r.status_code == 422


def test_history_empty_for_unknown_session(wired):
    client = TestClient(app)
    assert client.get("/api/voice/history/none").json() == []


def test_startup_keeps_injected_state(wired):
    registry, _, _ = wired
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert app.state.registry is registry
