from __future__ import annotations

import contextlib
from typing import Iterator, List, Optional

import redis.asyncio as aioredis
from redis import Redis
from redis.exceptions import RedisError

from personnel.logging import get_logger
from personnel.storage.errors import CacheUnavailable

logger = get_logger(__name__)

# Keys deleted per DEL call when clearing a namespace
_DELETE_BATCH = 500


@contextlib.contextmanager
def _translate_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        logger.error("redis_operation_failed", operation=operation, error=str(exc))
        raise CacheUnavailable(f"redis {operation} failed") from exc


def _ttl_or_none(raw: int) -> Optional[int]:
    # -2: key missing, -1: key without expiry
    return raw if raw is not None and raw >= 0 else None


class RedisCache:
    """Thin async Redis wrapper used as the session cache."""

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.client = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity before serving requests."""
        # A short-lived sync client avoids binding the async client to a
        # temporary event loop during startup checks.
        sync_client = Redis.from_url(self.redis_url, decode_responses=True)
        try:
            sync_client.ping()
        finally:
            sync_client.close()

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with _translate_errors("set"):
            await self.client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def get(self, key: str) -> Optional[str]:
        with _translate_errors("get"):
            return await self.client.get(key)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _translate_errors("delete"):
            return int(await self.client.delete(*keys))

    async def delete_matching(self, pattern: str) -> int:
        """Delete every key matching a glob pattern, scanning incrementally."""
        removed = 0
        batch: List[str] = []
        with _translate_errors("delete_matching"):
            async for key in self.client.scan_iter(match=pattern, count=_DELETE_BATCH):
                batch.append(key)
                if len(batch) >= _DELETE_BATCH:
                    removed += int(await self.client.delete(*batch))
                    batch = []
            if batch:
                removed += int(await self.client.delete(*batch))
        return removed

    async def ttl(self, key: str) -> Optional[int]:
        with _translate_errors("ttl"):
            return _ttl_or_none(await self.client.ttl(key))

    async def close(self) -> None:
        await self.client.aclose()


class SyncRedisCache:
    """Synchronous Redis wrapper for use in tests.

    Uses a synchronous client internally to avoid event loop binding issues
    when each test runs under its own ``asyncio.run``, but exposes the same
    async methods as RedisCache so callers await it uniformly.
    """

    def __init__(self, redis_url: str, *, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self._sync_client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    def verify_connection(self) -> None:
        """Assert Redis connectivity."""
        self._sync_client.ping()

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with _translate_errors("set"):
            self._sync_client.set(key, value, ex=max(1, int(ttl_seconds)))

    async def get(self, key: str) -> Optional[str]:
        with _translate_errors("get"):
            return self._sync_client.get(key)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        with _translate_errors("delete"):
            return int(self._sync_client.delete(*keys))

    async def delete_matching(self, pattern: str) -> int:
        removed = 0
        batch: List[str] = []
        with _translate_errors("delete_matching"):
            for key in self._sync_client.scan_iter(match=pattern, count=_DELETE_BATCH):
                batch.append(key)
                if len(batch) >= _DELETE_BATCH:
                    removed += int(self._sync_client.delete(*batch))
                    batch = []
            if batch:
                removed += int(self._sync_client.delete(*batch))
        return removed

    async def ttl(self, key: str) -> Optional[int]:
        with _translate_errors("ttl"):
            return _ttl_or_none(self._sync_client.ttl(key))

    async def close(self) -> None:
        self._sync_client.close()


__all__ = ["RedisCache", "SyncRedisCache"]
