"""
VoicedExtractor: keep only voiced frames of a segment and re-encode them.

Discontiguous voiced regions are collapsed together; wall-clock continuity is
not needed for transcription, only the speech content.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from voicecap.audio.scratch import ScratchDir
from voicecap.audio.wav import NCHANNELS, SAMPLE_RATE, write_wav

logger = logging.getLogger(__name__)


@dataclass
class VoicedAudio:
    """Voiced-only WAV for one segment. Lifetime ends at transcription or cleanup."""

    scratch: ScratchDir
    path: str
    sample_count: int


def extract_voiced_samples(samples: np.ndarray, mask: np.ndarray, frame_samples: int) -> np.ndarray:
    """Concatenate the sample ranges of voiced frames, in frame order."""
    mask = np.asarray(mask, dtype=bool)
    n = len(mask)
    if n == 0 or not mask.any():
        return np.zeros(0, dtype=np.int16)
    frames = np.asarray(samples[: n * frame_samples], dtype=np.int16).reshape(n, frame_samples)
    return frames[mask].reshape(-1)


def write_voiced_audio(
    samples: np.ndarray,
    mask: np.ndarray,
    frame_samples: int,
    *,
    sample_rate: int = SAMPLE_RATE,
    channels: int = NCHANNELS,
    tmp_root: str | None = None,
    keep: bool = False,
) -> VoicedAudio | None:
    """Write voiced frames to a fresh scratch dir. None when no frame is voiced."""
    voiced = extract_voiced_samples(samples, mask, frame_samples)
    if voiced.size == 0:
        return None
    scratch = ScratchDir(tmp_root, keep=keep)
    path = scratch.new_file(".wav")
    try:
        write_wav(path, voiced, sample_rate=sample_rate, channels=channels)
    except Exception:
        scratch.remove(force=True)
        raise
    logger.debug("Voiced audio: %d samples -> %s", voiced.size, path)
    return VoicedAudio(scratch=scratch, path=path, sample_count=int(voiced.size))
