"""
In-memory key/value registry shared by the bot process.

Holds live voice-session handles, per-(session, speaker) "active" markers and the
bounded capture-history audit lists. One TTL for every key (refreshed on put),
last-access touched on get, LRU eviction above a max entry count. Expired keys
are dropped lazily on get and by sweep(), which runs on every put.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable

from voicecap.config import get_settings

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(n: int) -> str:
    if n <= 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_BASE36[r])
    return "".join(reversed(out))


def generate_key(prefix: str = "reg") -> str:
    """Key with millisecond time and random suffix, e.g. reg:lq2k9x0a:4f8c1d."""
    return f"{prefix}:{_to_base36(int(time.time() * 1000))}:{secrets.token_hex(3)}"


@dataclass
class _Meta:
    since: float
    last_access: float
    expire_at: float | None


class Registry:
    """Thread-safe key/value store with TTL and LRU cap."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self._ttl = settings.REGISTRY_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        self._max_entries = settings.REGISTRY_MAX_ENTRIES if max_entries is None else max_entries
        self._clock = clock
        self._lock = RLock()
        self._items: dict[str, Any] = {}
        self._meta: dict[str, _Meta] = {}

    def _expired(self, meta: _Meta | None) -> bool:
        return meta is not None and meta.expire_at is not None and self._clock() >= meta.expire_at

    def _drop(self, key: str) -> None:
        self._items.pop(key, None)
        self._meta.pop(key, None)

    def put(self, value: Any, key: str | None = None) -> str:
        """Store value under key (generated when missing/blank). Returns the key."""
        key = key.strip() if isinstance(key, str) and key.strip() else generate_key()
        now = self._clock()
        with self._lock:
            self._items[key] = value
            self._meta[key] = _Meta(
                since=now,
                last_access=now,
                expire_at=now + self._ttl if self._ttl and self._ttl > 0 else None,
            )
            self.sweep()
        return key

    def get(self, key: str) -> Any | None:
        """Return value or None if missing/expired. Touches last access."""
        if not isinstance(key, str) or not key:
            return None
        with self._lock:
            if key not in self._items:
                return None
            meta = self._meta.get(key)
            if self._expired(meta):
                self._drop(key)
                return None
            if meta is not None:
                meta.last_access = self._clock()
            return self._items[key]

    def delete(self, key: str) -> bool:
        """Remove key. Return True if it existed."""
        if not isinstance(key, str) or not key:
            return False
        with self._lock:
            existed = key in self._items
            self._drop(key)
            return existed

    def list_keys(self, prefix: str | None = None) -> list[str]:
        with self._lock:
            keys = list(self._items.keys())
        if prefix:
            return [k for k in keys if k.startswith(prefix)]
        return keys

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._meta.clear()

    def sweep(self) -> int:
        """Drop expired keys, then evict least-recently-used keys above the cap."""
        removed = 0
        with self._lock:
            for key in [k for k, m in self._meta.items() if self._expired(m)]:
                self._drop(key)
                removed += 1
            excess = len(self._items) - self._max_entries
            if self._max_entries > 0 and excess > 0:
                oldest = sorted(self._items, key=lambda k: self._meta[k].last_access)[:excess]
                for key in oldest:
                    self._drop(key)
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


_registry: Registry | None = None


def get_registry() -> Registry:
    """Process-wide registry (created on first use)."""
    global _registry
    if _registry is None:
        _registry = Registry()
    return _registry
