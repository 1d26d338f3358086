"""Two-tier cache for reconciled lookup results."""

import logging
import re
import threading
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from nutrition_lookup.domain.nutrition import ReconciledResult
from nutrition_lookup.services.locks import KeyedLocks

_logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


class CacheStore(Protocol):
    """Durable key-value store backing the second cache tier."""

    def get(self, key: str) -> dict[str, object] | None:
        """Return ``{"value": payload, "expires_at": iso timestamp}`` for a key."""

    def set(self, key: str, payload: dict[str, object], expires_at: datetime) -> None:
        """Store a payload with its expiry."""

    def delete(self, key: str) -> None:
        """Remove a key if present."""

    def clear(self) -> None:
        """Remove every key."""


@dataclass
class CacheEntry:
    key: str
    value: ReconciledResult
    expires_at: datetime


def normalize_key(key: str) -> str:
    """Lower-case, trim and collapse internal whitespace."""
    return _WHITESPACE.sub(" ", key.strip().lower())


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class TieredCache:
    """In-memory LRU tier backed by a durable store, written through.

    Per-key locks serialize work on one key, including L2 I/O. The L1
    ``OrderedDict`` is shared by all keys and is only touched under
    ``_lru_lock``, which is never held across L2 calls.
    """

    store: CacheStore | None = None
    max_entries: int = 1024
    clock: Callable[[], datetime] = _utcnow
    _entries: OrderedDict[str, CacheEntry] = field(default_factory=OrderedDict)
    _locks: KeyedLocks = field(default_factory=KeyedLocks)
    _lru_lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, key: str) -> ReconciledResult | None:
        """Return a cached value if present and not expired."""
        normalized = normalize_key(key)
        with self._locks.lock_for(normalized):
            entry = self._lookup_l1(normalized)
            if entry is not None:
                if self.clock() >= entry.expires_at:
                    self._discard_l1(normalized)
                    self._store_delete(normalized)
                    return None
                return entry.value
            entry = self._store_get(normalized)
            if entry is None:
                return None
            if self.clock() >= entry.expires_at:
                self._store_delete(normalized)
                return None
            self._remember(entry)
            return entry.value

    def put(self, key: str, value: ReconciledResult, ttl_seconds: float) -> None:
        """Store a value in both tiers with a TTL."""
        normalized = normalize_key(key)
        expires_at = self.clock() + timedelta(seconds=ttl_seconds)
        entry = CacheEntry(key=normalized, value=value, expires_at=expires_at)
        with self._locks.lock_for(normalized):
            self._remember(entry)
            if self.store is None:
                return
            try:
                self.store.set(normalized, value.to_dict(), expires_at)
            except Exception:
                _logger.exception("L2 cache write failed: key=%s", normalized)

    def evict(self, key: str) -> None:
        """Drop a key from both tiers."""
        normalized = normalize_key(key)
        with self._locks.lock_for(normalized):
            self._discard_l1(normalized)
            self._store_delete(normalized)

    def clear(self) -> None:
        """Drop every entry from both tiers."""
        with self._lru_lock:
            self._entries.clear()
        if self.store is None:
            return
        try:
            self.store.clear()
        except Exception:
            _logger.exception("L2 cache clear failed")

    def __len__(self) -> int:
        with self._lru_lock:
            return len(self._entries)

    def _lookup_l1(self, key: str) -> CacheEntry | None:
        """Fetch an L1 entry and mark it most recently used."""
        with self._lru_lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
            return entry

    def _discard_l1(self, key: str) -> None:
        with self._lru_lock:
            self._entries.pop(key, None)

    def _remember(self, entry: CacheEntry) -> None:
        with self._lru_lock:
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def _store_get(self, key: str) -> CacheEntry | None:
        if self.store is None:
            return None
        try:
            payload = self.store.get(key)
            if payload is None:
                return None
            return CacheEntry(
                key=key,
                value=ReconciledResult.from_dict(payload["value"]),
                expires_at=datetime.fromisoformat(str(payload["expires_at"])),
            )
        except Exception:
            _logger.exception("L2 cache read failed: key=%s", key)
            return None

    def _store_delete(self, key: str) -> None:
        if self.store is None:
            return
        try:
            self.store.delete(key)
        except Exception:
            _logger.exception("L2 cache delete failed: key=%s", key)
