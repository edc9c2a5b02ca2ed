"""
CaptureOrchestrator: voice capture -> quality gates -> speech-to-text for one trigger.

Capturing -> Filtering -> Transcribing -> Aggregating -> Done | Skipped(reason) | Errored

1. Capturing: repeat SegmentCapture (max `max_segments_per_run`). A segment under
   `min_bytes` is discarded; as first segment that is a skip (too_small), later it
   just ends the loop. end_reason=silence ends the utterance, end_reason=time means
   the speaker is still talking so we capture again.
2. Filtering: SignalAnalyzer per segment, drop if too little voiced audio or SNR too
   low; VoicedExtractor writes voiced-only WAVs for the rest.
3. Transcribing: sequential, in segment order. One failed fragment is logged and
   dropped; it never aborts its siblings.
4. Aggregating: non-empty fragments joined with single spaces into ctx.payload.

One run per (session, speaker): an "active" marker is set in the registry before
capturing and always deleted afterwards. Every temp directory is registered on an
ExitStack, so none outlives the run (unless keep_temp_files is set).
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from voicecap.asr import TranscriptionBackend, TranscriptionError, TranscriptionParams, get_transcription_backend
from voicecap.audio.analyzer import analyze_wav
from voicecap.audio.capture import EndReason, Segment, capture_segment
from voicecap.audio.extractor import VoicedAudio, write_voiced_audio
from voicecap.audio.transport import AudioTransport, PacketDecoder, pcm_passthrough
from voicecap.audio.wav import read_wav_samples
from voicecap.config import CaptureConfig, Settings, resolve_capture_config
from voicecap.history import CaptureHistoryEntry, append_capture_history
from voicecap.registry import Registry

logger = logging.getLogger(__name__)

DESCRIBE_AND_TRANSCRIBE = "describe_and_transcribe"


class CaptureState(str, Enum):
    IGNORED = "ignored"
    CAPTURING = "capturing"
    FILTERING = "filtering"
    TRANSCRIBING = "transcribing"
    AGGREGATING = "aggregating"
    DONE = "done"
    SKIPPED = "skipped"
    ERRORED = "errored"


class SkipReason(str, Enum):
    TOO_SMALL = "too_small"
    NO_SEGMENTS = "no_segments"
    NO_VOICED_FRAMES = "no_voiced_frames"
    NO_API_KEY = "no_api_key"
    EMPTY_RESULT = "empty_result"
    NO_RECEIVER = "no_receiver"
    BUSY = "busy"
    ERROR = "error"


@dataclass
class VoiceIntent:
    action: str
    user_id: str


@dataclass
class VoiceContext:
    """Input/output for one voice-transcribe invocation. Only the orchestrator writes the outputs."""

    session_key: str | None
    voice_intent: VoiceIntent | None = None
    overrides: dict[str, Any] = field(default_factory=dict)
    speaker_name: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    # outputs
    payload: str | None = None
    transcribe_skipped: str | None = None
    stop: bool = False
    voice_transcribed: bool = False


@dataclass
class CaptureOutcome:
    state: CaptureState
    skip_reason: SkipReason | None = None
    transcript: str | None = None
    fragments: list[str] = field(default_factory=list)
    segments_captured: int = 0
    segments_voiced: int = 0

    @property
    def ok(self) -> bool:
        return self.state == CaptureState.DONE


class _Skip(Exception):
    def __init__(self, reason: SkipReason) -> None:
        super().__init__(reason.value)
        self.reason = reason


CaptureFn = Callable[..., Awaitable[Segment]]
BackendFactory = Callable[[str], TranscriptionBackend]


def active_key(session_key: str, speaker_id: str) -> str:
    return f"voice:active:{session_key}:{speaker_id}"


class CaptureOrchestrator:
    """
    Runs one multi-segment capture per call to run(). Collaborators are injected:
    registry (sessions, marker, history), backend (or a factory keyed by
    STT_BACKEND) and the segment capture coroutine.
    """

    def __init__(
        self,
        registry: Registry,
        *,
        backend: TranscriptionBackend | None = None,
        backend_factory: BackendFactory = get_transcription_backend,
        capture: CaptureFn = capture_segment,
        settings: Settings | None = None,
    ) -> None:
        self._registry = registry
        self._backend = backend
        self._backend_factory = backend_factory
        self._capture = capture
        self._settings = settings

    async def run(self, ctx: VoiceContext, config: CaptureConfig | None = None) -> CaptureOutcome:
        intent = ctx.voice_intent
        if not (intent and intent.action == DESCRIBE_AND_TRANSCRIBE and intent.user_id):
            return CaptureOutcome(state=CaptureState.IGNORED)

        ctx.voice_transcribed = False
        speaker_id = str(intent.user_id)
        if not ctx.session_key:
            logger.warning("Voice transcribe: missing session key (speaker=%s)", speaker_id)
            return CaptureOutcome(state=CaptureState.IGNORED)

        cfg = config or resolve_capture_config(ctx.overrides, self._settings)
        session = self._registry.get(ctx.session_key)
        transport: AudioTransport | None = getattr(session, "transport", None)
        if transport is None:
            logger.warning("Voice transcribe: no receiver on session %s", ctx.session_key)
            outcome = CaptureOutcome(state=CaptureState.SKIPPED, skip_reason=SkipReason.NO_RECEIVER)
            self._record_history(ctx, session, cfg, speaker_id, outcome)
            return self._apply(ctx, outcome)

        marker = active_key(ctx.session_key, speaker_id)
        if self._registry.get(marker) is not None:
            logger.info("Voice transcribe: capture already active for %s", marker)
            outcome = CaptureOutcome(state=CaptureState.SKIPPED, skip_reason=SkipReason.BUSY)
            self._record_history(ctx, session, cfg, speaker_id, outcome)
            return self._apply(ctx, outcome)

        self._registry.put({"ts": time.time(), "session_key": ctx.session_key, "speaker_id": speaker_id}, marker)
        decoder: PacketDecoder = getattr(session, "decoder", None) or pcm_passthrough
        outcome = CaptureOutcome(state=CaptureState.CAPTURING)
        try:
            with ExitStack() as scratch:
                await self._run_steps(transport, decoder, speaker_id, cfg, outcome, scratch)
        except _Skip as skip:
            outcome.state = CaptureState.SKIPPED
            outcome.skip_reason = skip.reason
            logger.info(
                "Voice transcribe skipped: session=%s speaker=%s reason=%s",
                ctx.session_key,
                speaker_id,
                skip.reason.value,
            )
        except Exception:
            logger.exception("Voice transcribe error: session=%s speaker=%s", ctx.session_key, speaker_id)
            outcome.state = CaptureState.ERRORED
            if outcome.skip_reason is None:
                outcome.skip_reason = SkipReason.ERROR
        finally:
            try:
                self._record_history(ctx, session, cfg, speaker_id, outcome)
            finally:
                self._registry.delete(marker)
        return self._apply(ctx, outcome)

    async def _run_steps(
        self,
        transport: AudioTransport,
        decoder: PacketDecoder,
        speaker_id: str,
        cfg: CaptureConfig,
        outcome: CaptureOutcome,
        scratch: ExitStack,
    ) -> None:
        segments = await self._capture_loop(transport, decoder, speaker_id, cfg, scratch)
        outcome.segments_captured = len(segments)

        outcome.state = CaptureState.FILTERING
        voiced = await self._filter(segments, cfg, scratch)
        outcome.segments_voiced = len(voiced)

        outcome.state = CaptureState.TRANSCRIBING
        fragments = await self._transcribe_all(voiced, cfg)

        outcome.state = CaptureState.AGGREGATING
        transcript = " ".join(fragments).strip()
        if not transcript:
            raise _Skip(SkipReason.EMPTY_RESULT)
        outcome.fragments = fragments
        outcome.transcript = transcript
        outcome.state = CaptureState.DONE
        logger.info(
            "Voice transcribed: speaker=%s fragments=%d chars=%d",
            speaker_id,
            len(fragments),
            len(transcript),
        )

    async def _capture_loop(
        self,
        transport: AudioTransport,
        decoder: PacketDecoder,
        speaker_id: str,
        cfg: CaptureConfig,
        scratch: ExitStack,
    ) -> list[Segment]:
        accepted: list[Segment] = []
        for _ in range(cfg.max_segments_per_run):
            segment = await self._capture(
                transport,
                speaker_id,
                silence_ms=cfg.silence_ms,
                max_segment_ms=cfg.max_segment_ms,
                sample_rate=cfg.sample_rate,
                channels=cfg.channels,
                decoder=decoder,
                tmp_root=cfg.tmp_dir or None,
                keep=cfg.keep_temp_files,
            )
            scratch.callback(segment.scratch.remove)

            size = segment.size_bytes
            if size < cfg.min_bytes:
                logger.debug("Segment too small: %d < %d bytes", size, cfg.min_bytes)
                segment.scratch.remove()
                if not accepted:
                    raise _Skip(SkipReason.TOO_SMALL)
                break

            accepted.append(segment)
            if segment.end_reason != EndReason.TIME:
                break

        if not accepted:
            raise _Skip(SkipReason.NO_SEGMENTS)
        return accepted

    def _filter_segment(self, segment: Segment, cfg: CaptureConfig) -> VoicedAudio | None:
        """Analyze one segment, write its voiced-only WAV. The segment dir is released either way."""
        try:
            analysis = analyze_wav(segment.path, cfg.frame_samples, cfg.sample_rate)
            logger.debug(
                "Segment analysis: frames=%d voiced=%d useful_ms=%d snr_db=%.2f",
                analysis.total_frames,
                analysis.voiced_frame_count,
                analysis.useful_ms,
                analysis.snr_db,
            )
            if analysis.useful_ms < cfg.min_voiced_ms or analysis.snr_db < cfg.snr_db_min:
                return None
            return write_voiced_audio(
                read_wav_samples(segment.path),
                analysis.voiced_mask,
                cfg.frame_samples,
                sample_rate=cfg.sample_rate,
                channels=cfg.channels,
                tmp_root=cfg.tmp_dir or None,
                keep=cfg.keep_temp_files,
            )
        finally:
            segment.scratch.remove()

    async def _filter(self, segments: list[Segment], cfg: CaptureConfig, scratch: ExitStack) -> list[VoicedAudio]:
        loop = asyncio.get_running_loop()
        voiced: list[VoicedAudio] = []
        for segment in segments:
            audio = await loop.run_in_executor(None, self._filter_segment, segment, cfg)
            if audio is None:
                continue
            scratch.callback(audio.scratch.remove)
            voiced.append(audio)
        if not voiced:
            raise _Skip(SkipReason.NO_VOICED_FRAMES)
        return voiced

    async def _transcribe_all(self, voiced: list[VoicedAudio], cfg: CaptureConfig) -> list[str]:
        if not cfg.api_key:
            for audio in voiced:
                audio.scratch.remove()
            raise _Skip(SkipReason.NO_API_KEY)

        backend = self._backend or self._backend_factory(cfg.stt_backend)
        params = TranscriptionParams(
            model=cfg.model,
            language=cfg.language,
            api_key=cfg.api_key,
            endpoint=cfg.endpoint,
            timeout_sec=cfg.timeout_sec,
        )
        fragments: list[str] = []
        for index, audio in enumerate(voiced, start=1):
            try:
                text = await backend.transcribe(audio.path, params)
            except TranscriptionError as exc:
                logger.warning(
                    "Fragment %d/%d dropped (%s, %s): %s",
                    index,
                    len(voiced),
                    exc.backend,
                    exc.code,
                    exc.message,
                )
                continue
            finally:
                audio.scratch.remove()
            text = (text or "").strip()
            if text:
                fragments.append(text)
        return fragments

    def _record_history(
        self,
        ctx: VoiceContext,
        session: Any,
        cfg: CaptureConfig,
        speaker_id: str,
        outcome: CaptureOutcome,
    ) -> None:
        entry = CaptureHistoryEntry(
            session_key=str(ctx.session_key),
            speaker_id=speaker_id,
            fragment_count=len(outcome.fragments),
            snr_threshold_used=cfg.snr_db_min,
            min_voiced_ms_used=cfg.min_voiced_ms,
            outcome="ok" if outcome.ok else (outcome.skip_reason or SkipReason.ERROR).value,
            speaker_name=ctx.speaker_name,
            guild_id=ctx.guild_id or getattr(session, "guild_id", None),
            channel_id=ctx.channel_id or getattr(session, "channel_id", None),
        )
        append_capture_history(self._registry, str(ctx.session_key), entry, max_entries=cfg.history_max)

    @staticmethod
    def _apply(ctx: VoiceContext, outcome: CaptureOutcome) -> CaptureOutcome:
        """Write the outcome into the context: payload on success, skip reason + stop otherwise."""
        if outcome.ok:
            ctx.payload = outcome.transcript
            ctx.voice_transcribed = True
        else:
            ctx.transcribe_skipped = (outcome.skip_reason or SkipReason.ERROR).value
            ctx.stop = True
        return outcome
