from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

from .config import Settings, get_settings


class Database:
    """asyncpg pool holding the token registry connection."""

    def __init__(self) -> None:
        self._pool: asyncpg.Pool | None = None
        self._logger = logging.getLogger("staking.db")

    async def connect(self, *, url: str | None = None, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        db_url = url or settings.db_url
        if not db_url:
            self._logger.warning("Database URL not configured; token registry disabled")
            return
        self._pool = await asyncpg.create_pool(
            str(db_url),
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            statement_cache_size=0,
        )

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        try:
            await asyncio.wait_for(self._pool.close(), timeout=5.0)
        except asyncio.TimeoutError:
            self._logger.warning("Database pool did not close in time; terminating")
            self._pool.terminate()
        finally:
            self._pool = None

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        if self._pool is None:
            raise RuntimeError("Database pool is not initialized")
        async with self._pool.acquire() as connection:
            yield connection

    @property
    def is_connected(self) -> bool:
        return self._pool is not None


_db = Database()


def get_db() -> Database:
    return _db
