from __future__ import annotations

from datetime import timedelta
from enum import Enum
from typing import Optional, Protocol


class KeyValueCache(Protocol):
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def get(self, key: str) -> Optional[str]: ...

    async def delete(self, *keys: str) -> int: ...

    async def delete_matching(self, pattern: str) -> int: ...

    async def ttl(self, key: str) -> Optional[int]: ...


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"

    @property
    def cache_prefix(self) -> str:
        return f"{self.value}_token:"


class SessionCache:
    """Tracks which token strings are live.

    Entries live under ``access_token:<token>`` and ``refresh_token:<token>``
    and expire with the token's TTL. A missing entry means the token was
    revoked or its cache TTL elapsed. Cache errors propagate as
    ``CacheUnavailable``.
    """

    def __init__(self, cache: KeyValueCache) -> None:
        self.cache = cache

    @staticmethod
    def key(token_type: TokenType, token: str) -> str:
        return f"{token_type.cache_prefix}{token}"

    async def register(
        self, token_type: TokenType, token: str, ttl: timedelta, marker: str = "1"
    ) -> None:
        await self.cache.set(self.key(token_type, token), marker, int(ttl.total_seconds()))

    async def is_live(self, token_type: TokenType, token: str) -> bool:
        return await self.cache.get(self.key(token_type, token)) is not None

    async def revoke(self, token_type: TokenType, token: str) -> int:
        return await self.cache.delete(self.key(token_type, token))

    async def revoke_all(self, token_type: TokenType) -> int:
        """Delete every entry in the namespace, for every principal."""
        return await self.cache.delete_matching(f"{token_type.cache_prefix}*")

    async def remaining_ttl(self, token_type: TokenType, token: str) -> Optional[int]:
        return await self.cache.ttl(self.key(token_type, token))


__all__ = ["KeyValueCache", "SessionCache", "TokenType"]
