"""Shared dependency clients — PostgreSQL pool, Redis client, HTTP client.

Created once at startup from HealthConfig and handed to the engine. The same
handles are meant to be shared with the rest of the hosting application.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import asyncpg
import httpx
from redis.asyncio import Redis

from healthcore.health.config import HealthConfig

logger = logging.getLogger(__name__)


class AsyncpgPool:
    """asyncpg pool wrapper that also counts callers waiting for a connection.

    asyncpg exposes size and idle counts but not the acquire queue, so waiting
    is tracked here for every acquire that goes through this wrapper.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool
        self._waiting = 0

    @classmethod
    async def create(
        cls, dsn: str, max_size: int = 5, connect_timeout_ms: int = 5000,
    ) -> AsyncpgPool:
        # min_size=0 so startup does not depend on the database being up
        pool = await asyncpg.create_pool(
            dsn,
            min_size=0,
            max_size=max_size,
            max_inactive_connection_lifetime=30.0,
            timeout=connect_timeout_ms / 1000,
        )
        return cls(pool)

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[Any]:
        self._waiting += 1
        try:
            conn = await self._pool.acquire()
        finally:
            self._waiting -= 1
        try:
            yield conn
        finally:
            await self._pool.release(conn)

    async def fetchrow(self, query: str, *args: Any) -> Any:
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    def occupancy(self) -> tuple[int, int, int]:
        return self._pool.get_size(), self._pool.get_idle_size(), self._waiting

    async def close(self) -> None:
        await self._pool.close()


@dataclass
class Connections:
    db_pool: AsyncpgPool | None = None
    cache_client: Redis | None = None
    http_client: httpx.AsyncClient | None = None

    async def close(self) -> None:
        if self.http_client is not None:
            await self.http_client.aclose()
        if self.cache_client is not None:
            await self.cache_client.aclose()
        if self.db_pool is not None:
            await self.db_pool.close()
        logger.info("Dependency connections closed")


async def open_connections(config: HealthConfig) -> Connections:
    """Build the clients the enabled probes need. Missing settings leave a handle unset."""
    conns = Connections()

    db = config.database
    if db.enabled:
        if db.connection_string:
            try:
                conns.db_pool = await AsyncpgPool.create(
                    db.connection_string, connect_timeout_ms=db.timeout_ms,
                )
            except Exception:
                logger.exception("Failed to create database pool — database probe disabled")
        else:
            logger.warning("Database check enabled but no connection string configured")

    cache = config.cache
    if cache.enabled and cache.host:
        timeout = cache.timeout_ms / 1000
        conns.cache_client = Redis(
            host=cache.host,
            port=cache.port or 6379,
            password=cache.password,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )

    if config.external_apis:
        conns.http_client = httpx.AsyncClient(
            follow_redirects=True, headers={"User-Agent": "healthcore/0.1"},
        )

    return conns
