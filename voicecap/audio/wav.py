"""
WAV transcoder: raw PCM <-> WAV container on disk.

PCM contract: signed int16, little-endian, mono, 48kHz. The container is the
canonical 44-byte RIFF header followed by the samples; nothing else is written.
"""
from __future__ import annotations

import io
import logging
import os
import wave

import numpy as np

logger = logging.getLogger(__name__)

SAMPLE_RATE = 48000
SAMPLE_WIDTH = 2  # 16-bit
NCHANNELS = 1
WAV_HEADER_BYTES = 44


class WavStreamWriter:
    """
    Streaming PCM sink: open once, append chunks as they arrive, close once.
    Header frame count is patched by the wave module on close.
    """

    def __init__(self, path: str, sample_rate: int = SAMPLE_RATE, channels: int = NCHANNELS) -> None:
        self.path = path
        self._sample_rate = sample_rate
        self._channels = channels
        self._wav: wave.Wave_write | None = None
        self._pending = b""  # odd trailing byte carried to the next chunk
        self.bytes_written = 0

    def open(self) -> "WavStreamWriter":
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        wav = wave.open(self.path, "wb")
        wav.setnchannels(self._channels)
        wav.setsampwidth(SAMPLE_WIDTH)
        wav.setframerate(self._sample_rate)
        self._wav = wav
        return self

    def write(self, pcm_bytes: bytes) -> None:
        """Append s16le PCM. Partial samples are held until the next chunk."""
        if self._wav is None:
            raise RuntimeError("WavStreamWriter is not open")
        data = self._pending + pcm_bytes
        frame_bytes = SAMPLE_WIDTH * self._channels
        usable = len(data) - (len(data) % frame_bytes)
        self._pending = data[usable:]
        if usable:
            self._wav.writeframes(data[:usable])
            self.bytes_written += usable

    def close(self) -> None:
        if self._wav is None:
            return
        if self._pending:
            logger.debug("WAV sink: dropped %d trailing byte(s)", len(self._pending))
            self._pending = b""
        wav, self._wav = self._wav, None
        wav.close()

    def __enter__(self) -> "WavStreamWriter":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()


def encode_wav(samples: np.ndarray, sample_rate: int = SAMPLE_RATE, channels: int = NCHANNELS) -> bytes:
    """Whole-buffer encode: int16 samples -> WAV bytes."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(SAMPLE_WIDTH)
        wav.setframerate(sample_rate)
        wav.writeframes(np.asarray(samples, dtype="<i2").tobytes())
    return buf.getvalue()


def write_wav(path: str, samples: np.ndarray, sample_rate: int = SAMPLE_RATE, channels: int = NCHANNELS) -> None:
    """Write int16 samples to a WAV file: one open, one write, one close."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    data = encode_wav(samples, sample_rate=sample_rate, channels=channels)
    with open(path, "wb") as f:
        f.write(data)


def read_wav_samples(path: str) -> np.ndarray:
    """Decode a 16-bit PCM WAV into an int16 array. Header-only files give an empty array."""
    if os.path.getsize(path) <= WAV_HEADER_BYTES:
        return np.zeros(0, dtype=np.int16)
    with wave.open(path, "rb") as wav:
        width = wav.getsampwidth()
        if width != SAMPLE_WIDTH:
            raise ValueError(f"Expected 16-bit PCM WAV, got sampwidth={width}")
        raw = wav.readframes(wav.getnframes())
    return np.frombuffer(raw, dtype="<i2").astype(np.int16)
