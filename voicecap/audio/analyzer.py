"""
SignalAnalyzer: voiced/noise statistics for one captured segment, no VAD library.

Per 20ms frame (960 samples @ 48kHz):
- RMS amplitude normalized to [0, 1] (divide by 32768).
- Zero-crossing rate: sign changes / (frame_samples - 1).

Segment level:
- noise floor = 20th percentile of frame RMS, speech floor = 80th percentile
  (floors epsilon-guarded so silence never yields log(0) / NaN).
- SNR dB = 20 * log10(speech / noise).
- Frame is voiced iff rms > 2 * noise floor and zcr < 0.25: loud and tonal,
  not broadband hiss.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from voicecap.audio.wav import SAMPLE_RATE, read_wav_samples

FLOOR_EPSILON = 1e-6
NOISE_PERCENTILE = 0.2
SPEECH_PERCENTILE = 0.8
VOICED_RMS_FACTOR = 2.0
VOICED_MAX_ZCR = 0.25


@dataclass(frozen=True)
class AnalysisResult:
    total_frames: int
    snr_db: float
    voiced_ratio: float
    voiced_frame_count: int
    useful_ms: int
    voiced_mask: np.ndarray = field(repr=False)

    @classmethod
    def empty(cls) -> "AnalysisResult":
        """Zeroed result for segments shorter than one frame ("no signal")."""
        return cls(
            total_frames=0,
            snr_db=0.0,
            voiced_ratio=0.0,
            voiced_frame_count=0,
            useful_ms=0,
            voiced_mask=np.zeros(0, dtype=bool),
        )


def frame_duration_ms(frame_samples: int, sample_rate: int = SAMPLE_RATE) -> int:
    return int(round(frame_samples * 1000 / sample_rate))


def _percentile(sorted_values: np.ndarray, q: float) -> float:
    n = len(sorted_values)
    idx = min(n - 1, max(0, math.floor((n - 1) * q)))
    return float(sorted_values[idx])


def frame_stats(samples: np.ndarray, frame_samples: int) -> tuple[np.ndarray, np.ndarray]:
    """Return (rms, zcr) arrays, one value per full frame."""
    total_frames = len(samples) // frame_samples
    frames = np.asarray(samples[: total_frames * frame_samples], dtype=np.float64).reshape(
        total_frames, frame_samples
    )
    rms = np.sqrt(np.mean(frames * frames, axis=1)) / 32768.0
    negative = frames < 0
    crossings = np.count_nonzero(negative[:, 1:] != negative[:, :-1], axis=1)
    zcr = crossings / (frame_samples - 1)
    return rms, zcr


def analyze_samples(
    samples: np.ndarray,
    frame_samples: int,
    sample_rate: int = SAMPLE_RATE,
) -> AnalysisResult:
    """Pure function of the sample buffer and frame size."""
    if frame_samples < 2:
        raise ValueError(f"frame_samples must be >= 2, got {frame_samples}")
    total_frames = len(samples) // frame_samples
    if total_frames <= 0:
        return AnalysisResult.empty()

    rms, zcr = frame_stats(samples, frame_samples)

    ordered = np.sort(rms)
    noise_floor = max(FLOOR_EPSILON, _percentile(ordered, NOISE_PERCENTILE))
    speech_floor = max(noise_floor + FLOOR_EPSILON, _percentile(ordered, SPEECH_PERCENTILE))
    snr_db = 20.0 * math.log10(speech_floor / noise_floor)

    mask = (rms > noise_floor * VOICED_RMS_FACTOR) & (zcr < VOICED_MAX_ZCR)
    voiced = int(np.count_nonzero(mask))
    return AnalysisResult(
        total_frames=total_frames,
        snr_db=snr_db,
        voiced_ratio=voiced / total_frames,
        voiced_frame_count=voiced,
        useful_ms=voiced * frame_duration_ms(frame_samples, sample_rate),
        voiced_mask=mask,
    )


def analyze_wav(path: str, frame_samples: int, sample_rate: int = SAMPLE_RATE) -> AnalysisResult:
    """Decode a segment WAV and analyze it."""
    return analyze_samples(read_wav_samples(path), frame_samples, sample_rate)
