"""
SegmentCapture: record one speaker utterance into a temp WAV.

Subscribing -> Receiving -> Finalizing, or Error.

The gateway ends the subscription by itself after `silence_ms` of continuous
silence (end_reason=silence). A single task awaits the next packet with the
remaining `max_segment_ms` budget as timeout; when the budget runs out the
subscription is force-closed (end_reason=time, speaker is still talking).

Any transport / decoder / sink error removes the segment's temp directory and
raises SegmentCaptureError. No partial Segment is ever returned.
"""
from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum

from voicecap.audio.scratch import ScratchDir
from voicecap.audio.transport import AudioSubscription, AudioTransport, PacketDecoder, pcm_passthrough
from voicecap.audio.wav import NCHANNELS, SAMPLE_RATE, WavStreamWriter

logger = logging.getLogger(__name__)


class EndReason(str, Enum):
    SILENCE = "silence"
    TIME = "time"


class SegmentCaptureError(RuntimeError):
    """Stream or transcoding failure while capturing a segment."""


@dataclass
class Segment:
    """One captured utterance. Owned by the capture loop until cleanup or analysis."""

    scratch: ScratchDir
    path: str
    end_reason: EndReason

    @property
    def size_bytes(self) -> int:
        try:
            return os.path.getsize(self.path)
        except OSError:
            return 0


async def _receive(
    subscription: AudioSubscription,
    sink: WavStreamWriter,
    decoder: PacketDecoder,
    max_segment_ms: int,
) -> EndReason:
    """Stream packets into the sink until the stream ends or the budget runs out."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max_segment_ms / 1000.0
    packets = subscription.__aiter__()
    while True:
        remaining = deadline - loop.time()
        if remaining <= 0:
            return EndReason.TIME
        try:
            packet = await asyncio.wait_for(packets.__anext__(), timeout=remaining)
        except StopAsyncIteration:
            return EndReason.SILENCE
        except asyncio.TimeoutError:
            return EndReason.TIME
        if packet:
            sink.write(decoder(packet))


async def capture_segment(
    transport: AudioTransport,
    speaker_id: str,
    *,
    silence_ms: int,
    max_segment_ms: int,
    sample_rate: int = SAMPLE_RATE,
    channels: int = NCHANNELS,
    decoder: PacketDecoder = pcm_passthrough,
    tmp_root: str | None = None,
    keep: bool = False,
) -> Segment:
    """Capture one segment for `speaker_id`. Raises SegmentCaptureError on failure."""
    scratch = ScratchDir(tmp_root, keep=keep)
    path = scratch.new_file(".wav")
    subscription: AudioSubscription | None = None
    try:
        subscription = transport.subscribe(speaker_id, end_after_silence_ms=silence_ms)
        with WavStreamWriter(path, sample_rate=sample_rate, channels=channels) as sink:
            end_reason = await _receive(subscription, sink, decoder, max_segment_ms)
    except asyncio.CancelledError:
        scratch.remove(force=True)
        raise
    except Exception as exc:
        scratch.remove(force=True)
        raise SegmentCaptureError(f"Segment capture failed for speaker {speaker_id}: {exc}") from exc
    finally:
        if subscription is not None:
            subscription.close()

    segment = Segment(scratch=scratch, path=path, end_reason=end_reason)
    logger.debug(
        "Segment captured: speaker=%s end=%s bytes=%d",
        speaker_id,
        end_reason.value,
        segment.size_bytes,
    )
    return segment
