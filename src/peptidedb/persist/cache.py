"""
Run-scoped lookup cache for small, rarely changing id maps.

Jurisdiction codes and use-case slugs map to row ids that almost never
change during a run. Entries expire after ``ttl_seconds`` and the whole
cache can be dropped with ``invalidate()``. Created once per run and passed
to the store; never module-level.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Dict, Hashable, Optional, Tuple

DEFAULT_TTL_SECONDS = 900.0


class LookupCache:
    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, Hashable], Tuple[float, int]] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: Hashable) -> Optional[int]:
        with self._lock:
            entry = self._entries.get((namespace, key))
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[(namespace, key)]
                return None
            return value

    def set(self, namespace: str, key: Hashable, value: int) -> None:
        with self._lock:
            self._entries[(namespace, key)] = (self._clock(), value)

    def invalidate(self, namespace: Optional[str] = None) -> None:
        """Drop every entry, or only those of one namespace."""
        with self._lock:
            if namespace is None:
                self._entries.clear()
            else:
                for k in [k for k in self._entries if k[0] == namespace]:
                    del self._entries[k]

    def __len__(self) -> int:
        return len(self._entries)
