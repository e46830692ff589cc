from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Generic, Protocol, TypeVar

from redis.exceptions import RedisError

from .errors import CacheDegradedError
from .observability import record_cache_request
from .redis_client import RedisClient
from .timeutils import parse_datetime, utcnow

T = TypeVar("T")

logger = logging.getLogger("staking.cache")


class TimedCache(Protocol):
    """Key/value transport with per-entry expiry. Absent and unavailable look the same."""

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class RedisTimedCache:
    """TimedCache backed by the shared Redis client; raises CacheDegradedError on transport failures."""

    def __init__(self, client: RedisClient) -> None:
        self._client = client

    async def get(self, key: str) -> str | None:
        if not self._client.is_connected:
            return None
        try:
            async with self._client.acquire() as conn:
                return await conn.get(key)
        except (RedisError, OSError) as exc:
            raise CacheDegradedError(f"cache read failed for {key}: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if not self._client.is_connected:
            raise CacheDegradedError("Redis client not connected")
        try:
            async with self._client.acquire() as conn:
                await conn.set(key, value, ex=ttl_seconds)
        except (RedisError, OSError) as exc:
            raise CacheDegradedError(f"cache write failed for {key}: {exc}") from exc

    async def delete(self, key: str) -> None:
        if not self._client.is_connected:
            return
        try:
            async with self._client.acquire() as conn:
                await conn.delete(key)
        except (RedisError, OSError) as exc:
            raise CacheDegradedError(f"cache delete failed for {key}: {exc}") from exc


@dataclass(slots=True, frozen=True)
class CacheEnvelope:
    payload: Any
    cached_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def dumps(self) -> str:
        return json.dumps(
            {
                "payload": self.payload,
                "cached_at": self.cached_at.isoformat(),
                "expires_at": self.expires_at.isoformat(),
            },
            separators=(",", ":"),
        )

    @classmethod
    def loads(cls, raw: str) -> "CacheEnvelope":
        data = json.loads(raw)
        if not isinstance(data, dict) or "payload" not in data:
            raise ValueError("cache envelope is missing its payload")
        return cls(
            payload=data["payload"],
            cached_at=parse_datetime(data["cached_at"]),
            expires_at=parse_datetime(data["expires_at"]),
        )


class CachedArtifact(Generic[T]):
    """
    One cached artifact family (e.g. ``valuation:{symbol}``).

    Every entry is stored inside a ``CacheEnvelope``. Reads treat malformed
    entries and transport failures as a miss, and delete entries whose
    ``expires_at`` has passed. Writes are best-effort: a failure is logged
    and reported as ``False``, never raised.
    """

    def __init__(
        self,
        cache: TimedCache,
        *,
        prefix: str,
        ttl_seconds: int,
        encode: Callable[[T], Any],
        decode: Callable[[Any], T],
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._cache = cache
        self._prefix = prefix
        self._ttl_seconds = ttl_seconds
        self._encode = encode
        self._decode = decode
        self._clock = clock or utcnow

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def key(self, symbol: str) -> str:
        return f"{self._prefix}:{symbol}"

    async def read(self, symbol: str) -> T | None:
        key = self.key(symbol)
        try:
            raw = await self._cache.get(key)
        except Exception as exc:
            logger.warning("Cache read failed for %s: %s", key, exc)
            record_cache_request(self._prefix, "error")
            return None
        if raw is None:
            record_cache_request(self._prefix, "miss")
            return None

        try:
            envelope = CacheEnvelope.loads(raw)
            value = self._decode(envelope.payload)
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Discarding malformed cache entry %s: %s", key, exc)
            record_cache_request(self._prefix, "malformed")
            return None

        if envelope.is_expired(self._clock()):
            record_cache_request(self._prefix, "expired")
            await self.invalidate(symbol)
            return None

        record_cache_request(self._prefix, "hit")
        return value

    async def write(self, symbol: str, value: T) -> bool:
        key = self.key(symbol)
        now = self._clock()
        envelope = CacheEnvelope(
            payload=self._encode(value),
            cached_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        try:
            await self._cache.set(key, envelope.dumps(), self._ttl_seconds)
        except Exception as exc:
            logger.warning("Failed to cache %s: %s", key, exc)
            record_cache_request(self._prefix, "write_error")
            return False
        return True

    async def invalidate(self, symbol: str) -> None:
        key = self.key(symbol)
        try:
            await self._cache.delete(key)
        except Exception as exc:
            logger.warning("Failed to delete cache entry %s: %s", key, exc)

    async def get_or_fetch(self, symbol: str, fetch: Callable[[], Awaitable[T]]) -> T:
        cached = await self.read(symbol)
        if cached is not None:
            return cached
        value = await fetch()
        await self.write(symbol, value)
        return value


__all__ = ["CacheEnvelope", "CachedArtifact", "RedisTimedCache", "TimedCache"]
