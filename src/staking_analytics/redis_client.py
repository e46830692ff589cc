from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import redis.asyncio as redis

from .config import get_settings


class RedisClient:
    """
    Owns the connection behind the timed cache. An unconfigured or failed
    connection leaves the client disconnected; callers then see every
    lookup as a miss.
    """

    def __init__(self, *, factory: Callable[..., redis.Redis] | None = None) -> None:
        self._client: redis.Redis | None = None
        self._factory = factory or redis.from_url
        self._logger = logging.getLogger("staking.redis")

    async def connect(self, *, url: str | None = None) -> None:
        settings = get_settings()
        redis_url = url or settings.redis_url
        if not redis_url:
            self._logger.warning("Redis URL not configured; caching disabled")
            return
        client = self._factory(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
        try:
            await client.ping()
        except Exception as exc:
            self._logger.exception("Failed to ping Redis: %s", exc)
            await client.aclose()
            raise
        self._client = client

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.ping()
            return True
        except Exception as exc:  # pragma: no cover - network failure path
            self._logger.warning("Redis ping failed: %s", exc)
            return False

    async def health_check(self) -> dict[str, Optional[float] | bool]:
        if self._client is None:
            return {"alive": False, "latency_ms": None}
        start = time.perf_counter()
        if not await self.ping():
            return {"alive": False, "latency_ms": None}
        return {"alive": True, "latency_ms": (time.perf_counter() - start) * 1000}

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[redis.Redis]:
        if self._client is None:
            raise RuntimeError("Redis client not initialized")
        yield self._client

    @property
    def is_connected(self) -> bool:
        return self._client is not None


_redis = RedisClient()


def get_redis() -> RedisClient:
    return _redis
