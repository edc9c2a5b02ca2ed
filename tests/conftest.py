from __future__ import annotations

from typing import Callable

import pytest

from voicecap.config import CaptureConfig
from voicecap.registry import Registry


@pytest.fixture
def registry() -> Registry:
    return Registry(ttl_seconds=3600, max_entries=1000)


@pytest.fixture
def capture_config(tmp_path) -> Callable[..., CaptureConfig]:
    """Factory for a CaptureConfig rooted in tmp_path; keyword args replace fields."""

    def _make(**changes) -> CaptureConfig:
        values = dict(
            silence_ms=2000,
            max_segment_ms=25000,
            min_bytes=24000,
            snr_db_min=3.5,
            min_voiced_ms=500,
            frame_ms=20,
            max_segments_per_run=32,
            keep_temp_files=False,
            api_key="sk-test",
            model="whisper-1",
            language="auto",
            endpoint="",
            tmp_dir=str(tmp_path),
        )
        values.update(changes)
        return CaptureConfig(**values)

    return _make
