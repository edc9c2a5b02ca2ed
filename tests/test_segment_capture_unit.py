from __future__ import annotations

import asyncio
import os

import pytest

from helpers import FakeTransport, scratch_dirs, tone
from voicecap.audio.capture import EndReason, SegmentCaptureError, capture_segment
from voicecap.audio.wav import read_wav_samples


def _capture(transport, tmp_path, **kwargs):
    params = dict(silence_ms=2000, max_segment_ms=25000, tmp_root=str(tmp_path))
    params.update(kwargs)
    return asyncio.run(capture_segment(transport, "user-1", **params))


def test_stream_end_is_silence_unit(tmp_path):
    samples = tone(0.1)
    raw = samples.astype("<i2").tobytes()
    transport = FakeTransport([raw[:3000], raw[3000:]])

    segment = _capture(transport, tmp_path, silence_ms=1500)

    assert segment.end_reason == EndReason.SILENCE
    assert read_wav_samples(segment.path).tolist() == samples.tolist()
    assert transport.silence_ms == [1500]
    assert transport.subscriptions[0].closed
    segment.scratch.remove()
    assert not os.path.exists(segment.path)


def test_budget_exhausted_is_time_unit(tmp_path):
    transport = FakeTransport([b"\x01\x00" * 480], end=False)

    segment = _capture(transport, tmp_path, max_segment_ms=50)

    assert segment.end_reason == EndReason.TIME
    assert segment.size_bytes == 44 + 960
    assert transport.subscriptions[0].closed
    segment.scratch.remove()


def test_decoder_applied_to_packets_unit(tmp_path):
    transport = FakeTransport([b"opus-a", b"opus-b"])

    segment = _capture(transport, tmp_path, decoder=lambda packet: b"\x02\x00")

    assert read_wav_samples(segment.path).tolist() == [2, 2]
    segment.scratch.remove()


def test_stream_error_removes_directory_unit(tmp_path):
    transport = FakeTransport([b"\x00\x00" * 10], error=ConnectionResetError("gateway dropped"))

    with pytest.raises(SegmentCaptureError) as exc_info:
        _capture(transport, tmp_path, keep=True)

    assert isinstance(exc_info.value.__cause__, ConnectionResetError)
    assert scratch_dirs(tmp_path) == []
    assert transport.subscriptions[0].closed


def test_decoder_error_removes_directory_unit(tmp_path):
    def broken(packet: bytes) -> bytes:
        raise ValueError("corrupt frame")

    with pytest.raises(SegmentCaptureError):
        _capture(FakeTransport([b"x"]), tmp_path, decoder=broken)
    assert scratch_dirs(tmp_path) == []


def test_cancel_removes_directory_unit(tmp_path):
    transport = FakeTransport(end=False)

    async def scenario():
        task = asyncio.create_task(
            capture_segment(transport, "user-1", silence_ms=2000, max_segment_ms=60000, tmp_root=str(tmp_path))
        )
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
    assert scratch_dirs(tmp_path) == []
    assert transport.subscriptions[0].closed
