"""
Schemas for the voice capture API.

POST /api/voice/capture triggers one capture for a speaker in a live voice
session; the response mirrors what the pipeline context would receive.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CaptureRequest(BaseModel):
    """Request body for POST /api/voice/capture."""

    session_key: str = Field(..., min_length=1, description="Registry key of the live voice session")
    speaker_id: str = Field(..., min_length=1, description="Gateway user id of the speaker to capture")
    speaker_name: str | None = Field(None, description="Display name, recorded in capture history only")
    guild_id: str | None = Field(None, description="Overrides the session's guild id in capture history")
    channel_id: str | None = Field(None, description="Overrides the session's channel id in capture history")
    overrides: dict[str, Any] = Field(
        default_factory=dict,
        description="Per-call overrides, e.g. silence_ms, max_segment_ms, snr_db_min, language",
    )


class CaptureResponse(BaseModel):
    """Response body for POST /api/voice/capture."""

    transcribed: bool = Field(False, description="True when a transcript was produced")
    text: str | None = Field(None, description="Combined transcript (fragments joined by single spaces)")
    skipped: str | None = Field(None, description="Skip reason when no usable text was produced")
    stop: bool = Field(False, description="True = caller should not continue normal processing")
    fragments: int = Field(0, description="Number of non-empty transcript fragments")
    segments_captured: int = 0
    segments_voiced: int = 0


class CaptureHistoryItem(BaseModel):
    """One audit entry from GET /api/voice/history/{session_key}."""

    timestamp: str
    session_key: str
    speaker_id: str
    speaker_name: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    fragment_count: int
    snr_threshold_used: float
    min_voiced_ms_used: int
    outcome: str
