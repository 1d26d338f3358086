"""Fine-grained lock registry."""

import threading
from dataclasses import dataclass, field


@dataclass
class KeyedLocks:
    """Hands out one lock per key so unrelated keys never contend."""

    _locks: dict[str, threading.Lock] = field(default_factory=dict)
    _registry_lock: threading.Lock = field(default_factory=threading.Lock)

    def lock_for(self, key: str) -> threading.Lock:
        lock = self._locks.get(key)
        if lock is not None:
            return lock
        with self._registry_lock:
            return self._locks.setdefault(key, threading.Lock())
