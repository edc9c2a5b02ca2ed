"""
Voice gateway contract: per-speaker audio subscriptions.

The gateway connection itself lives outside this package. It registers a
VoiceSession in the registry; the capture code only needs `transport.subscribe()`.

QueueSubscription adapts push-style gateways (packet callbacks) to the async
iterator the capture loop consumes: the gateway calls feed() / end() / fail(),
the capture loop iterates.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Callable

# Compressed (or raw) packet -> s16le PCM bytes
PacketDecoder = Callable[[bytes], bytes]


def pcm_passthrough(packet: bytes) -> bytes:
    """Decoder for transports that already deliver decoded s16le PCM."""
    return packet


class AudioSubscription(ABC):
    """One speaker's packet stream. Ends by itself after the configured silence."""

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[bytes]:
        ...

    @abstractmethod
    def close(self) -> None:
        """Force-close the stream (max-duration timer). Must be idempotent."""
        ...


class AudioTransport(ABC):
    """Gateway-side receiver for one voice connection."""

    @abstractmethod
    def subscribe(self, speaker_id: str, *, end_after_silence_ms: int) -> AudioSubscription:
        ...


@dataclass
class VoiceSession:
    """Live session handle stored in the registry under the session key."""

    transport: AudioTransport
    guild_id: str | None = None
    channel_id: str | None = None
    decoder: PacketDecoder = pcm_passthrough


_END = object()


class QueueSubscription(AudioSubscription):
    """asyncio.Queue-backed subscription. Not thread-safe: feed from the event loop."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._closed = False

    def feed(self, packet: bytes) -> None:
        if not self._closed:
            self._queue.put_nowait(packet)

    def end(self) -> None:
        """Natural end of stream (speaker went silent)."""
        self._queue.put_nowait(_END)

    def fail(self, error: BaseException) -> None:
        """Transport error; raised from the iterator."""
        self._queue.put_nowait(error)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        self._closed = True

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item  # type: ignore[return-value]
