"""Speech-to-text: swappable remote Whisper backends, selected by name at config time."""
from __future__ import annotations

from .base import TranscriptionBackend, TranscriptionError, TranscriptionParams
from .cloudflare import CloudflareWhisperBackend
from .openai_whisper import OpenAIWhisperBackend, resolve_transcription_url

BACKENDS: dict[str, type[TranscriptionBackend]] = {
    OpenAIWhisperBackend.name: OpenAIWhisperBackend,
    CloudflareWhisperBackend.name: CloudflareWhisperBackend,
}


def register_backend(name: str, backend_cls: type[TranscriptionBackend]) -> None:
    BACKENDS[name.strip().lower()] = backend_cls


def get_transcription_backend(name: str) -> TranscriptionBackend:
    """Instantiate the backend registered under `name` (openai | cloudflare)."""
    key = (name or "openai").strip().lower()
    backend_cls = BACKENDS.get(key)
    if backend_cls is None:
        raise ValueError(f"Unknown STT_BACKEND={name!r}; use one of {sorted(BACKENDS)}")
    return backend_cls()


__all__ = [
    "BACKENDS",
    "TranscriptionBackend",
    "TranscriptionError",
    "TranscriptionParams",
    "OpenAIWhisperBackend",
    "CloudflareWhisperBackend",
    "get_transcription_backend",
    "register_backend",
    "resolve_transcription_url",
]
