"""
OpenAIWhisperBackend: multipart upload to /v1/audio/transcriptions.

Works with api.openai.com and any OpenAI-compatible server (local whisper
servers, proxies). Endpoint resolution:
1. explicit endpoint: used as-is if it already ends in /audio/transcriptions,
   else /v1/audio/transcriptions is appended;
2. OPENAI_BASE_URL + /v1/audio/transcriptions;
3. https://api.openai.com/v1/audio/transcriptions.
"""
from __future__ import annotations

import os

import httpx

from voicecap.asr.base import (
    TranscriptionBackend,
    TranscriptionError,
    TranscriptionParams,
    post_with_classification,
    read_audio_file,
    text_field,
)
from voicecap.config import get_settings

DEFAULT_TRANSCRIPTION_URL = "https://api.openai.com/v1/audio/transcriptions"
TRANSCRIPTION_PATH = "/v1/audio/transcriptions"


def resolve_transcription_url(endpoint: str | None, base_url: str | None = None) -> str:
    ep = (endpoint or "").strip().rstrip("/")
    if ep:
        if ep.endswith("/audio/transcriptions"):
            return ep
        return f"{ep}{TRANSCRIPTION_PATH}"
    base = (base_url or "").strip().rstrip("/")
    return f"{base}{TRANSCRIPTION_PATH}" if base else DEFAULT_TRANSCRIPTION_URL


class OpenAIWhisperBackend(TranscriptionBackend):
    name = "openai"

    def __init__(self, base_url: str | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self._base_url = get_settings().OPENAI_BASE_URL if base_url is None else base_url
        self._transport = transport

    def transcribe_sync(self, path: str, params: TranscriptionParams) -> str:
        if not (params.api_key or "").strip():
            raise TranscriptionError("no_api_key", "openai: no API key configured", self.name)

        url = resolve_transcription_url(params.endpoint, self._base_url)
        data = {"model": params.model or "whisper-1"}
        if params.language and params.language != "auto":
            data["language"] = params.language
        audio = read_audio_file(self.name, path)

        payload = post_with_classification(
            self.name,
            url,
            params.timeout_sec,
            transport=self._transport,
            headers={"Authorization": f"Bearer {params.api_key.strip()}"},
            data=data,
            files={"file": (os.path.basename(path), audio, "audio/wav")},
        )
        if not isinstance(payload, dict):
            raise TranscriptionError("invalid_response", "openai: response is not a JSON object", self.name)
        return text_field(self.name, payload.get("text"))
