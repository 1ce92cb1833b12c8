"""Short-TTL read cache with explicit invalidation.

Used for per-process caching of workspace subscription state and account
context.  Instances are injected into the services that use them (there is
no module-level cache), and every write path that changes the cached data
calls ``invalidate``/``invalidate_prefix``.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Generic, TypeVar

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 300.0


class TTLCache(Generic[V]):
    """Mapping of string keys to values that expire ``ttl_seconds`` after set.

    Args:
        ttl_seconds: Entry lifetime. ``0`` disables caching.
        clock: Monotonic seconds source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, tuple[float, V]] = {}

    def get(self, key: str) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: V) -> None:
        if self._ttl <= 0:
            return
        self._entries[key] = (self._clock() + self._ttl, value)

    def invalidate(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for k in keys:
            del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, Any]:
        now = self._clock()
        live = sum(1 for expires_at, _ in self._entries.values() if expires_at > now)
        return {"entries": len(self._entries), "live": live, "ttl_seconds": self._ttl}

    def __len__(self) -> int:
        return len(self._entries)
