"""
FastAPI app: HTTP surface of the voice transcriber.

The voice gateway registers live sessions (VoiceSession) in the process registry;
POST /api/voice/capture triggers one capture -> filter -> transcribe run for a
speaker in such a session and returns the transcript or the skip reason.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request

from voicecap.config import get_settings
from voicecap.history import get_capture_history
from voicecap.logging_setup import configure_logging
from voicecap.orchestrator import (
    DESCRIBE_AND_TRANSCRIBE,
    CaptureOrchestrator,
    SkipReason,
    VoiceContext,
    VoiceIntent,
)
from voicecap.registry import Registry, get_registry
from voicecap.schemas import CaptureHistoryItem, CaptureRequest, CaptureResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(get_settings())
    # Keep anything injected before startup (e.g. a gateway-owned registry)
    if getattr(app.state, "registry", None) is None:
        app.state.registry = get_registry()
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = CaptureOrchestrator(app.state.registry)
    logger.info("Voice transcriber ready (STT_BACKEND=%s)", get_settings().STT_BACKEND)
    yield


app = FastAPI(
    title="Voice capture & transcription",
    description="Per-speaker voice capture with hand-rolled VAD filtering and remote Whisper",
    lifespan=lifespan,
)


def _registry(request: Request) -> Registry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        registry = request.app.state.registry = get_registry()
    return registry


def _orchestrator(request: Request) -> CaptureOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        orchestrator = request.app.state.orchestrator = CaptureOrchestrator(_registry(request))
    return orchestrator


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.post("/api/voice/capture", response_model=CaptureResponse)
async def capture(body: CaptureRequest, request: Request) -> CaptureResponse:
    """
    Capture and transcribe one utterance of `speaker_id`.
    404: session unknown or has no receiver. 409: a capture for this speaker is already running.
    Quality skips (silence, noise) are a normal 200 response with `skipped` set.
    """
    ctx = VoiceContext(
        session_key=body.session_key,
        voice_intent=VoiceIntent(action=DESCRIBE_AND_TRANSCRIBE, user_id=body.speaker_id),
        overrides=dict(body.overrides),
        speaker_name=body.speaker_name,
        guild_id=body.guild_id,
        channel_id=body.channel_id,
    )
    outcome = await _orchestrator(request).run(ctx)
    if outcome.skip_reason == SkipReason.NO_RECEIVER:
        raise HTTPException(status_code=404, detail=f"No live voice session: {body.session_key}")
    if outcome.skip_reason == SkipReason.BUSY:
        raise HTTPException(status_code=409, detail="Capture already active for this speaker")

    return CaptureResponse(
        transcribed=ctx.voice_transcribed,
        text=ctx.payload,
        skipped=ctx.transcribe_skipped,
        stop=ctx.stop,
        fragments=len(outcome.fragments),
        segments_captured=outcome.segments_captured,
        segments_voiced=outcome.segments_voiced,
    )


@app.get("/api/voice/history/{session_key}", response_model=list[CaptureHistoryItem])
async def capture_history(session_key: str, request: Request) -> list[CaptureHistoryItem]:
    """Capture audit trail for a session, oldest first (bounded)."""
    return [CaptureHistoryItem(**entry) for entry in get_capture_history(_registry(request), session_key)]
