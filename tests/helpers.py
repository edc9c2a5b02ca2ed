"""Signal generators and fakes shared by the unit tests."""
from __future__ import annotations

import os

import numpy as np

from voicecap.asr.base import TranscriptionBackend, TranscriptionParams
from voicecap.audio.capture import EndReason, Segment
from voicecap.audio.scratch import SCRATCH_PREFIX, ScratchDir
from voicecap.audio.transport import AudioTransport, QueueSubscription
from voicecap.audio.wav import write_wav

RATE = 48000


def tone(seconds: float, freq: float = 200.0, amplitude: float = 0.3) -> np.ndarray:
    t = np.arange(int(RATE * seconds)) / RATE
    return (amplitude * 32767 * np.sin(2 * np.pi * freq * t)).astype(np.int16)


def silence(seconds: float) -> np.ndarray:
    return np.zeros(int(RATE * seconds), dtype=np.int16)


def speech_like(seconds_silence: float = 0.5, seconds_tone: float = 1.0) -> np.ndarray:
    """Quiet lead-in then a tonal burst: clear noise floor, clear speech floor."""
    return np.concatenate([silence(seconds_silence), tone(seconds_tone)])


def scratch_dirs(root) -> list[str]:
    return [name for name in os.listdir(root) if name.startswith(SCRATCH_PREFIX)]


class ScriptedCapture:
    """
    Stands in for capture_segment: each call writes the next scripted WAV into a
    real scratch dir. A script item may be an exception to raise instead.
    """

    def __init__(self, script: list) -> None:
        self._script = list(script)
        self.calls: list[dict] = []

    async def __call__(self, transport, speaker_id, **kwargs) -> Segment:
        self.calls.append({"speaker_id": speaker_id, **kwargs})
        item = self._script.pop(0)
        if isinstance(item, BaseException):
            raise item
        samples, end_reason = item
        scratch = ScratchDir(kwargs.get("tmp_root"), keep=kwargs.get("keep", False))
        path = scratch.new_file(".wav")
        write_wav(path, samples)
        return Segment(scratch=scratch, path=path, end_reason=EndReason(end_reason))


class FakeBackend(TranscriptionBackend):
    """Returns scripted texts in order; exceptions in the script are raised."""

    name = "fake"

    def __init__(self, results: list) -> None:
        self._results = list(results)
        self.paths: list[str] = []
        self.existed: list[bool] = []
        self.params: list[TranscriptionParams] = []

    def transcribe_sync(self, path: str, params: TranscriptionParams) -> str:
        self.paths.append(path)
        self.existed.append(os.path.exists(path))
        self.params.append(params)
        result = self._results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result


class FakeTransport(AudioTransport):
    """Delivers scripted packets; the stream stays open with end=False (speaker keeps talking)."""

    def __init__(
        self,
        packets: list[bytes] | None = None,
        end: bool = True,
        error: BaseException | None = None,
    ) -> None:
        self._packets = packets or []
        self._end = end
        self._error = error
        self.subscriptions: list[QueueSubscription] = []
        self.silence_ms: list[int] = []

    def subscribe(self, speaker_id: str, *, end_after_silence_ms: int) -> QueueSubscription:
        self.silence_ms.append(end_after_silence_ms)
        sub = QueueSubscription()
        for packet in self._packets:
            sub.feed(packet)
        if self._error is not None:
            sub.fail(self._error)
        elif self._end:
            sub.end()
        self.subscriptions.append(sub)
        return sub
