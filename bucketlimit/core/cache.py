"""In-process TTL cache for limit configurations.

Lets get_token skip a storage round trip for limits that were read
recently. Entries are local to one limiter instance, so a limit changed
by another process is picked up once the entry expires.
"""

import asyncio
import time
from dataclasses import dataclass

from bucketlimit.models import LimitConfig


@dataclass
class _Expiring:
    """A cached limit and the monotonic time it stops being valid."""

    value: LimitConfig
    expires_at: float

    def stale(self) -> bool:
        return time.monotonic() > self.expires_at


class LimitCache:
    """TTL cache keyed by composite resource/account key.

    A ttl of 0 disables the cache: get always misses and set stores nothing.
    """

    def __init__(self, ttl: float = 0.0) -> None:
        if ttl < 0:
            raise ValueError("ttl must not be negative")
        self.ttl = ttl
        self._entries: dict[str, _Expiring] = {}
        self._lock = asyncio.Lock()

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    async def get(self, key: str) -> LimitConfig | None:
        """Return the cached limit, or None if missing or expired."""
        if not self.enabled:
            return None
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.stale():
                del self._entries[key]
                return None
            return entry.value

    async def set(self, key: str, value: LimitConfig) -> None:
        if not self.enabled:
            return
        async with self._lock:
            self._entries[key] = _Expiring(value=value, expires_at=time.monotonic() + self.ttl)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()
