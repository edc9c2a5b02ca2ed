"""
CloudflareWhisperBackend: Whisper via Cloudflare Workers AI.

Sends the WAV file bytes as a JSON byte array; the credential is the API token,
the account id comes from settings.
"""
from __future__ import annotations

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

DEFAULT_CF_MODEL = "@cf/openai/whisper"


class CloudflareWhisperBackend(TranscriptionBackend):
    name = "cloudflare"

    def __init__(self, account_id: str | None = None, transport: httpx.BaseTransport | None = None) -> None:
        self._account_id = get_settings().CLOUDFLARE_ACCOUNT_ID if account_id is None else account_id
        self._transport = transport

    def _url(self, params: TranscriptionParams) -> str:
        if params.endpoint.strip():
            return params.endpoint.strip()
        if not self._account_id:
            raise TranscriptionError("config", "cloudflare: CLOUDFLARE_ACCOUNT_ID not set", self.name)
        # Only Workers AI model ids are meaningful here; "whisper-1" etc. fall back to the default
        model = params.model if params.model.startswith("@cf/") else DEFAULT_CF_MODEL
        return f"https://api.cloudflare.com/client/v4/accounts/{self._account_id}/ai/run/{model}"

    def transcribe_sync(self, path: str, params: TranscriptionParams) -> str:
        if not (params.api_key or "").strip():
            raise TranscriptionError("no_api_key", "cloudflare: no API token configured", self.name)
        url = self._url(params)
        audio = read_audio_file(self.name, path)

        data = post_with_classification(
            self.name,
            url,
            params.timeout_sec,
            transport=self._transport,
            headers={"Authorization": f"Bearer {params.api_key.strip()}"},
            json={"audio": list(audio)},
        )
        result = data.get("result", data) if isinstance(data, dict) else data
        if isinstance(result, dict):
            return text_field(self.name, result.get("text", result.get("transcript")))
        if isinstance(result, str):
            return result.strip()
        raise TranscriptionError("invalid_response", "cloudflare: unexpected result shape", self.name)
