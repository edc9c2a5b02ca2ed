"""
TranscriptionBackend: abstract interface for remote speech-to-text.

Implementations: OpenAIWhisperBackend (any OpenAI-compatible endpoint),
CloudflareWhisperBackend (Workers AI). The blocking HTTP call runs in the
default executor so the event loop (and the voice gateway) keeps running.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

# Response bodies carried on errors are cut to this many characters
ERROR_BODY_MAX_CHARS = 500


@dataclass(frozen=True)
class TranscriptionParams:
    """Per-call parameters: model, language hint ("auto" = detect), credential, endpoint."""

    model: str
    language: str
    api_key: str
    endpoint: str = ""
    timeout_sec: float = 60.0


class TranscriptionError(RuntimeError):
    """
    Classified transcription failure.
    code: no_api_key | config | io | timeout | network | http_status | invalid_response
    """

    def __init__(
        self,
        code: str,
        message: str,
        backend: str,
        status: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.backend = backend
        self.status = status
        self.body = body


class TranscriptionBackend(ABC):
    """Upload one voiced-only WAV, get plain text back."""

    name: str = "base"

    @abstractmethod
    def transcribe_sync(self, path: str, params: TranscriptionParams) -> str:
        """Blocking transcribe; run from executor. Raises TranscriptionError."""
        ...

    async def transcribe(self, path: str, params: TranscriptionParams) -> str:
        """Run transcribe_sync in executor so the event loop is not blocked."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.transcribe_sync, path, params)


def post_with_classification(
    backend: str,
    url: str,
    timeout_sec: float,
    transport: httpx.BaseTransport | None = None,
    **request_kwargs: Any,
) -> Any:
    """POST and return decoded JSON; timeouts, network errors, non-2xx and bad JSON become TranscriptionError."""
    try:
        with httpx.Client(timeout=timeout_sec, transport=transport) as client:
            resp = client.post(url, **request_kwargs)
    except httpx.TimeoutException as exc:
        raise TranscriptionError(
            "timeout", f"{backend}: request timed out after {timeout_sec:.0f}s", backend
        ) from exc
    except httpx.HTTPError as exc:
        raise TranscriptionError("network", f"{backend}: {exc}", backend) from exc

    if not resp.is_success:
        body = resp.text[:ERROR_BODY_MAX_CHARS]
        raise TranscriptionError(
            "http_status",
            f"{backend}: HTTP {resp.status_code} {body}".strip(),
            backend,
            status=resp.status_code,
            body=body,
        )
    try:
        return resp.json()
    except ValueError as exc:
        raise TranscriptionError(
            "invalid_response",
            f"{backend}: response is not JSON",
            backend,
            status=resp.status_code,
            body=resp.text[:ERROR_BODY_MAX_CHARS],
        ) from exc


def read_audio_file(backend: str, path: str) -> bytes:
    """Read the WAV to upload; an unreadable file is a TranscriptionError("io")."""
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as exc:
        raise TranscriptionError("io", f"{backend}: cannot read {path}: {exc}", backend) from exc


def text_field(backend: str, value: Any) -> str:
    """Stripped transcript text. Missing/null is empty; any other non-string is invalid_response."""
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TranscriptionError(
            "invalid_response",
            f"{backend}: transcript text is {type(value).__name__}, expected str",
            backend,
        )
    return value.strip()
