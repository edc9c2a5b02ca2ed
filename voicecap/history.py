"""
Capture history: bounded audit list per voice session, kept in the registry.

Audit trail only. Never holds transcript text or audio, just counts and the
thresholds used, so a capture can be explained after the fact.
"""
from __future__ import annotations

import datetime as _dt
from dataclasses import asdict, dataclass
from typing import Any

from voicecap.registry import Registry

DEFAULT_HISTORY_MAX = 8


def history_key(session_key: str) -> str:
    return f"voice:capture:{session_key}"


def _ts_iso() -> str:
    return _dt.datetime.now(_dt.timezone.utc).isoformat()


@dataclass
class CaptureHistoryEntry:
    session_key: str
    speaker_id: str
    fragment_count: int
    snr_threshold_used: float
    min_voiced_ms_used: int
    outcome: str  # "ok" or the skip reason
    speaker_name: str | None = None
    guild_id: str | None = None
    channel_id: str | None = None
    timestamp: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp or _ts_iso()
        return data


def append_capture_history(
    registry: Registry,
    session_key: str,
    entry: CaptureHistoryEntry,
    max_entries: int = DEFAULT_HISTORY_MAX,
) -> list[dict[str, Any]]:
    """Append one entry, evicting the oldest beyond max_entries. Returns the stored list."""
    key = history_key(session_key)
    entries = list(registry.get(key) or [])
    entries.append(entry.to_dict())
    if max_entries > 0:
        entries = entries[-max_entries:]
    registry.put(entries, key)
    return entries


def get_capture_history(registry: Registry, session_key: str) -> list[dict[str, Any]]:
    return list(registry.get(history_key(session_key)) or [])
