import asyncio
import math
import time
from typing import Callable, Dict, Optional, Tuple

from ...application.ports.cache_store import CacheStore


class InMemoryCacheStore(CacheStore):
    """Process-local stand-in for Redis (development and tests).

    Every operation runs under one asyncio lock, which gives the same
    atomicity the Redis scripts provide within a single process.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._store: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        rec = self._store.get(key)
        if rec is None:
            return None
        _, expires_at = rec
        if expires_at is not None and expires_at <= self._clock():
            # prune
            del self._store[key]
            return None
        return rec

    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        async with self._lock:
            self._store[key] = (str(value), self._clock() + ttl_seconds)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            self._store[key] = (str(value), None)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            rec = self._live(key)
            return rec[0] if rec else None

    async def delete(self, key: str) -> int:
        async with self._lock:
            if self._live(key) is None:
                return 0
            del self._store[key]
            return 1

    async def incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        async with self._lock:
            rec = self._live(key)
            if rec is None:
                self._store[key] = ("1", self._clock() + ttl_seconds)
                return 1
            value, expires_at = rec
            count = int(value) + 1
            self._store[key] = (str(count), expires_at)
            return count

    async def ttl(self, key: str) -> int:
        async with self._lock:
            rec = self._live(key)
            if rec is None:
                return -2
            if rec[1] is None:
                return -1
            return max(0, math.ceil(rec[1] - self._clock()))

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        async with self._lock:
            rec = self._live(key)
            if rec is None or rec[0] != expected:
                return False
            del self._store[key]
            return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._store.clear()
