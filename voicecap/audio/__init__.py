"""Audio pipeline: capture, WAV transcoding, signal analysis, voiced extraction."""
from .analyzer import AnalysisResult, analyze_samples, analyze_wav
from .capture import EndReason, Segment, SegmentCaptureError, capture_segment
from .extractor import VoicedAudio, extract_voiced_samples, write_voiced_audio
from .scratch import ScratchDir
from .transport import AudioSubscription, AudioTransport, QueueSubscription, VoiceSession, pcm_passthrough
from .wav import WavStreamWriter, encode_wav, read_wav_samples, write_wav

__all__ = [
    "AnalysisResult",
    "analyze_samples",
    "analyze_wav",
    "EndReason",
    "Segment",
    "SegmentCaptureError",
    "capture_segment",
    "VoicedAudio",
    "extract_voiced_samples",
    "write_voiced_audio",
    "ScratchDir",
    "AudioSubscription",
    "AudioTransport",
    "QueueSubscription",
    "VoiceSession",
    "pcm_passthrough",
    "WavStreamWriter",
    "encode_wav",
    "read_wav_samples",
    "write_wav",
]
