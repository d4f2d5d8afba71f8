from typing import Protocol, Optional


class CacheStore(Protocol):
    async def set_ex(self, key: str, ttl_seconds: int, value: str) -> None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def get(self, key: str) -> Optional[str]:
        ...

    async def delete(self, key: str) -> int:
        ...

    async def incr_with_ttl(self, key: str, ttl_seconds: int) -> int:
        """Atomic INCR; the TTL is applied only when the increment created the key."""
        ...

    async def ttl(self, key: str) -> int:
        """Redis semantics: -2 missing key, -1 key without expiry."""
        ...

    async def compare_and_delete(self, key: str, expected: str) -> bool:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...
