"""Redis async client used for the distributed per-session turn lock.

Redis is optional: with an empty ``redis_url`` no client is ever built
and callers fall back to in-process coordination. All connection/command
errors are caught and re-raised as RedisConnectionError.
"""

import structlog
from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import LockError, RedisError

from app.core.config import settings
from app.core.exceptions import RedisConnectionError

logger = structlog.get_logger(__name__)

_client: Redis | None = None


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def get_redis() -> "RedisClient | None":
    """Return the shared RedisClient wrapper, or None when Redis is disabled."""
    global _client
    if not settings.redis_url:
        return None
    if _client is None:
        _client = redis_from_url(
            settings.redis_url,
            decode_responses=True,
            encoding="utf-8",
        )
    return RedisClient(_client)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def close_redis() -> None:
    """Gracefully close the Redis connection pool if one was opened."""
    global _client
    if _client is None:
        return
    logger.info("redis_shutdown")
    await _client.aclose()
    _client = None


# ---------------------------------------------------------------------------
# Helper wrapper
# ---------------------------------------------------------------------------

class RedisClient:
    """Thin wrapper over redis.asyncio.Redis with typed helpers.

    Every public method catches RedisError and re-raises as
    RedisConnectionError so the API layer gets a structured error.
    """

    def __init__(self, client: Redis) -> None:
        self._r = client

    async def ping(self) -> bool:
        try:
            return bool(await self._r.ping())
        except RedisError as e:
            logger.error("redis_ping_failed", error=str(e))
            raise RedisConnectionError(f"Redis PING failed: {e}") from e

    async def acquire_lock(self, name: str, timeout: int, blocking_timeout: float):
        """Acquire a named lock. Returns the lock object, or None on wait timeout."""
        lock = self._r.lock(name, timeout=timeout, blocking_timeout=blocking_timeout)
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.error("redis_lock_failed", key=name, error=str(e))
            raise RedisConnectionError(f"Redis LOCK failed: {e}") from e
        return lock if acquired else None

    async def release_lock(self, lock) -> None:
        """Release a lock taken by acquire_lock. An already expired lock is ignored."""
        try:
            await lock.release()
        except LockError:
            logger.warning("redis_lock_expired_before_release", key=lock.name)
        except RedisError as e:
            logger.error("redis_unlock_failed", key=lock.name, error=str(e))
            raise RedisConnectionError(f"Redis UNLOCK failed: {e}") from e
