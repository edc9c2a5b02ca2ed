"""
Application configuration.

Settings: static defaults, loaded from env vars / .env (pydantic-settings).
CaptureConfig: one voice capture's resolved parameters. Built by merging
per-invocation overrides over Settings; frozen once resolved.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal, Mapping

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 48kHz (voice gateway native rate)
    SAMPLE_RATE: int = 48000
    CHANNELS: int = 1

    # Segment capture: stop after N ms of continuous silence, hard cap per segment
    CAPTURE_SILENCE_MS: int = 2000
    CAPTURE_MAX_SEGMENT_MS: int = 25000
    CAPTURE_MAX_SEGMENTS_PER_RUN: int = 32
    # WAV header alone is 44 bytes; anything under this is treated as "no audio"
    CAPTURE_MIN_WAV_BYTES: int = 24000

    # Quality gates (hand-rolled VAD): frame size, SNR and voiced duration
    CAPTURE_FRAME_MS: int = 20
    CAPTURE_SNR_DB_MIN: float = 3.5
    CAPTURE_MIN_VOICED_MS: int = 2000

    # Keep temp WAVs for debugging (never removed when true)
    CAPTURE_KEEP_WAV: bool = False
    CAPTURE_TMP_DIR: str = ""  # empty = system temp dir
    CAPTURE_HISTORY_MAX: int = 8

    # Speech-to-text backend: "openai" (any OpenAI-compatible endpoint) | "cloudflare"
    STT_BACKEND: Literal["openai", "cloudflare"] = "openai"
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = ""
    WHISPER_MODEL: str = "whisper-1"
    WHISPER_LANGUAGE: str = "auto"  # "auto" = let the service detect
    WHISPER_ENDPOINT: str = ""
    WHISPER_TIMEOUT_SEC: float = 60.0

    # Cloudflare Workers AI (when STT_BACKEND=cloudflare)
    CLOUDFLARE_ACCOUNT_ID: str = ""
    CLOUDFLARE_API_TOKEN: str = ""

    # Registry: single TTL for every key, LRU cap
    REGISTRY_TTL_SECONDS: float = 7 * 24 * 60 * 60
    REGISTRY_MAX_ENTRIES: int = 100000

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also log to file (empty = console only)
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()


@dataclass(frozen=True)
class CaptureConfig:
    """Resolved parameters for one capture run. Immutable."""

    silence_ms: int
    max_segment_ms: int
    min_bytes: int
    snr_db_min: float
    min_voiced_ms: int
    frame_ms: int
    max_segments_per_run: int
    keep_temp_files: bool
    api_key: str
    model: str
    language: str
    endpoint: str
    stt_backend: str = "openai"
    timeout_sec: float = 60.0
    sample_rate: int = 48000
    channels: int = 1
    tmp_dir: str = ""
    history_max: int = 8

    @property
    def frame_samples(self) -> int:
        """Samples per analysis frame, e.g. 20ms @ 48kHz = 960."""
        return int(round(self.sample_rate * self.frame_ms / 1000))


def _finite_number(value: Any) -> float | None:
    # bool is an int subclass; "true" is not a duration
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def _pick_number(overrides: Mapping[str, Any], key: str, default: float) -> float:
    value = _finite_number(overrides.get(key))
    return default if value is None else value


def _pick_str(overrides: Mapping[str, Any], key: str, default: str) -> str:
    value = overrides.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def resolve_capture_config(
    overrides: Mapping[str, Any] | None = None,
    settings: Settings | None = None,
) -> CaptureConfig:
    """
    Merge per-invocation overrides over Settings.

    Recognised override keys: silence_ms, max_segment_ms, min_bytes, snr_db_min,
    min_voiced_ms, frame_ms, keep_temp_files, api_key, model, language, endpoint.
    Non-finite or non-numeric numbers and empty strings fall back to Settings.
    """
    s = settings or get_settings()
    o = overrides or {}

    backend = s.STT_BACKEND
    default_key = s.CLOUDFLARE_API_TOKEN if backend == "cloudflare" else s.OPENAI_API_KEY
    keep = o.get("keep_temp_files")

    return CaptureConfig(
        silence_ms=int(_pick_number(o, "silence_ms", s.CAPTURE_SILENCE_MS)),
        max_segment_ms=int(_pick_number(o, "max_segment_ms", s.CAPTURE_MAX_SEGMENT_MS)),
        min_bytes=int(_pick_number(o, "min_bytes", s.CAPTURE_MIN_WAV_BYTES)),
        snr_db_min=_pick_number(o, "snr_db_min", s.CAPTURE_SNR_DB_MIN),
        min_voiced_ms=int(_pick_number(o, "min_voiced_ms", s.CAPTURE_MIN_VOICED_MS)),
        frame_ms=max(10, int(_pick_number(o, "frame_ms", s.CAPTURE_FRAME_MS))),
        max_segments_per_run=s.CAPTURE_MAX_SEGMENTS_PER_RUN,
        keep_temp_files=keep if isinstance(keep, bool) else s.CAPTURE_KEEP_WAV,
        api_key=_pick_str(o, "api_key", default_key.strip()),
        model=_pick_str(o, "model", s.WHISPER_MODEL.strip() or "whisper-1"),
        language=_pick_str(o, "language", s.WHISPER_LANGUAGE.strip() or "auto"),
        endpoint=_pick_str(o, "endpoint", s.WHISPER_ENDPOINT.strip()),
        stt_backend=backend,
        timeout_sec=s.WHISPER_TIMEOUT_SEC,
        sample_rate=s.SAMPLE_RATE,
        channels=s.CHANNELS,
        tmp_dir=s.CAPTURE_TMP_DIR,
        history_max=s.CAPTURE_HISTORY_MAX,
    )
