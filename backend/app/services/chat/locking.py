"""Per-session turn serialization.

Channel adapters wrap each ChatEngine.process_message() call in
TurnLock.hold(session_id) so overlapping messages for one session cannot
race through onboarding or mode changes. With Redis configured the lock
is shared across workers; otherwise it is an in-process asyncio.Lock.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

from app.core.exceptions import SessionBusyError
from app.db.redis import RedisClient

logger = structlog.get_logger(__name__)

_KEY_PREFIX = "chat_turn_lock"


class TurnLock:
    """Mutual exclusion per session id."""

    def __init__(
        self,
        redis: RedisClient | None = None,
        wait_seconds: float = 30.0,
        lease_seconds: int = 60,
    ) -> None:
        self._redis = redis
        self._wait = wait_seconds
        self._lease = lease_seconds
        self._local: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @property
    def distributed(self) -> bool:
        return self._redis is not None

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """Hold the lock for ``session_id``; SessionBusyError if the wait times out."""
        if self._redis is not None:
            async with self._hold_redis(session_id):
                yield
        else:
            async with self._hold_local(session_id):
                yield

    @asynccontextmanager
    async def _hold_redis(self, session_id: str) -> AsyncIterator[None]:
        name = f"{_KEY_PREFIX}:{session_id}"
        lock = await self._redis.acquire_lock(name, timeout=self._lease, blocking_timeout=self._wait)
        if lock is None:
            logger.warning("turn_lock_timeout", session_id=session_id, backend="redis")
            raise SessionBusyError()
        try:
            yield
        finally:
            await self._redis.release_lock(lock)

    @asynccontextmanager
    async def _hold_local(self, session_id: str) -> AsyncIterator[None]:
        lock = self._local.setdefault(session_id, asyncio.Lock())
        self._waiters[session_id] = self._waiters.get(session_id, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._wait)
            except asyncio.TimeoutError as e:
                logger.warning("turn_lock_timeout", session_id=session_id, backend="local")
                raise SessionBusyError() from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._waiters[session_id] -= 1
            if self._waiters[session_id] == 0:
                del self._waiters[session_id]
                self._local.pop(session_id, None)
