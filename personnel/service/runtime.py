from __future__ import annotations

from typing import Optional
from urllib.parse import urlparse, urlunparse

from personnel.config import Settings
from personnel.logging import get_logger
from personnel.service.auth import Authenticator, AuthorizationGate
from personnel.service.sessions import KeyValueCache, SessionCache
from personnel.service.staff import StaffService
from personnel.service.tokens import TokenCodec
from personnel.storage.memory import MemoryCache, MemoryStore
from personnel.storage.postgres import PostgresStore
from personnel.storage.redis_cache import RedisCache, SyncRedisCache

logger = get_logger(__name__)


def _mask_url_password(url: Optional[str]) -> Optional[str]:
    """Mask the password component of a URL for safe logging.

    Example: redis://:mypassword@localhost:6379 -> redis://:***@localhost:6379
    """
    if not url:
        return url
    try:
        parsed = urlparse(url)
    except ValueError:
        return "***url_parse_error***"
    if not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    if parsed.username:
        netloc = f"{parsed.username}:***@{netloc}"
    else:
        netloc = f":***@{netloc}"
    return urlunparse(
        (parsed.scheme, netloc, parsed.path, parsed.params, parsed.query, parsed.fragment)
    )


class Runtime:
    """Wires store, cache and services from one Settings instance.

    ``store`` and ``cache`` may be injected, otherwise they are built from
    settings.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        store=None,
        cache: Optional[KeyValueCache] = None,
    ) -> None:
        self.settings = settings
        logger.info(
            "runtime_init_started",
            use_memory_store=settings.use_memory_store,
            use_memory_cache=settings.use_memory_cache,
            test_mode=settings.test_mode,
        )
        self.store = store if store is not None else self._build_store()
        self.cache = cache if cache is not None else self._build_cache()

        self.codec = TokenCodec(settings.jwt_secret)
        self.sessions = SessionCache(self.cache)
        self.authenticator = Authenticator(self.store, self.sessions, self.codec, settings)
        self.gate = AuthorizationGate(self.sessions, self.codec, settings)
        self.staff = StaffService(self.store, self.authenticator, settings)

        logger.info(
            "runtime_initialized",
            store_type=type(self.store).__name__,
            cache_type=type(self.cache).__name__,
            access_token_ttl_minutes=settings.access_token_ttl_minutes,
            refresh_token_ttl_minutes=settings.refresh_token_ttl_minutes,
        )

    def _build_store(self):
        store_type = "memory" if self.settings.use_memory_store else "postgres"
        try:
            if self.settings.use_memory_store:
                store = MemoryStore()
            else:
                store = PostgresStore(self.settings.database_url)
        except Exception as exc:
            logger.error(
                "runtime_store_init_failed",
                store_type=store_type,
                database_url=_mask_url_password(self.settings.database_url),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        logger.info("runtime_store_initialized", store_type=store_type)
        return store

    def _build_cache(self) -> KeyValueCache:
        if self.settings.use_memory_cache:
            logger.warning(
                "session_cache_in_memory",
                message="Sessions are process-local and lost on restart.",
            )
            return MemoryCache()
        # Sync client in test mode avoids binding to a per-test event loop
        cache_cls = SyncRedisCache if self.settings.test_mode else RedisCache
        cache = cache_cls(
            self.settings.redis_url, socket_timeout=self.settings.redis_socket_timeout
        )
        try:
            cache.verify_connection()
        except Exception as exc:
            logger.error(
                "runtime_cache_init_failed",
                redis_url=_mask_url_password(self.settings.redis_url),
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise RuntimeError(
                "Redis is required for session tracking; start Redis or set USE_MEMORY_CACHE=true for local development."
            ) from exc
        return cache

    async def close(self) -> None:
        await self.cache.close()
        close_store = getattr(self.store, "close", None)
        if close_store:
            close_store()


__all__ = ["Runtime"]
