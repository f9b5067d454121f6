"""
Redis-backed cache store.

One connection per process. It is created on first use (or in an explicit
startup phase), reused by every event and closed on shutdown. Redis
failures are mapped onto the pipeline error taxonomy so the classifier can
decide between redelivery and acknowledgement.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

import redis.asyncio as aioredis
from redis.asyncio.cluster import RedisCluster
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisClusterException, RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from config.config import RedisConfig
from core.errors import (
    TRANSPORT_CONNECTION_RESET,
    TRANSPORT_TIMEOUT,
    NetworkTransientError,
    UnknownError,
    transport_code_for,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# RedisClusterException does not derive from RedisError
REDIS_ERRORS = (RedisError, RedisClusterException)


class CacheStore(Protocol):
    """Key/value store with per-key expiry."""

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def exists(self, key: str) -> bool: ...

    async def ttl(self, key: str) -> int: ...

    async def close(self) -> None: ...


def map_redis_error(
    exc: RedisError | RedisClusterException, operation: str, key: str | None = None
) -> Exception:
    """Map a redis-py exception onto the pipeline error taxonomy."""
    if isinstance(exc, RedisClusterException):
        # Raised from the last node connection error when no startup node is reachable
        underlying = exc.__cause__ or exc.__context__
        if isinstance(underlying, (RedisTimeoutError, RedisConnectionError)):
            return map_redis_error(underlying, operation, key)
    context = {"operation": operation, "cache_key": key}
    if isinstance(exc, RedisTimeoutError):
        return NetworkTransientError(
            f"Cache store timeout during {operation}",
            cause=exc,
            context=context,
            transport_code=TRANSPORT_TIMEOUT,
        )
    if isinstance(exc, RedisConnectionError):
        underlying = exc.__cause__ or exc.__context__
        code = (transport_code_for(underlying) if underlying else None) or TRANSPORT_CONNECTION_RESET
        return NetworkTransientError(
            f"Cache store connection failure during {operation}",
            cause=exc,
            context=context,
            transport_code=code,
        )
    return UnknownError(f"Cache store error during {operation}", cause=exc, context=context)


class RedisCacheStore:
    """
    Lazily connected Redis (or Redis Cluster) client.

    ``connect()`` is idempotent and safe under concurrent first use: the
    first caller performs setup while later callers wait on the guard and
    then observe the connected handle.
    """

    def __init__(
        self,
        host: str,
        port: int = 6379,
        cluster_mode: bool = False,
        connect_timeout_seconds: float = 10.0,
        socket_timeout_seconds: float | None = None,
    ):
        self.host = host
        self.port = port
        self.cluster_mode = cluster_mode
        self.connect_timeout_seconds = connect_timeout_seconds
        self.socket_timeout_seconds = socket_timeout_seconds

        self._client: aioredis.Redis | RedisCluster | None = None
        self._connect_lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: RedisConfig) -> "RedisCacheStore":
        return cls(
            host=config.host,
            port=config.port,
            cluster_mode=config.cluster_mode,
            connect_timeout_seconds=config.connect_timeout_seconds,
            socket_timeout_seconds=config.socket_timeout_seconds,
        )

    @property
    def connected(self) -> bool:
        return self._client is not None

    def _create_client(self) -> aioredis.Redis | RedisCluster:
        if self.cluster_mode:
            return RedisCluster(
                host=self.host,
                port=self.port,
                decode_responses=True,
                socket_connect_timeout=self.connect_timeout_seconds,
                socket_timeout=self.socket_timeout_seconds,
            )
        return aioredis.Redis(
            host=self.host,
            port=self.port,
            decode_responses=True,
            socket_connect_timeout=self.connect_timeout_seconds,
            socket_timeout=self.socket_timeout_seconds,
        )

    async def connect(self) -> None:
        if self._client is not None:
            return

        async with self._connect_lock:
            if self._client is not None:
                return

            logger.info(
                "Connecting to cache store",
                extra={
                    "redis_host": self.host,
                    "redis_port": self.port,
                    "cluster_mode": self.cluster_mode,
                },
            )
            client = self._create_client()
            try:
                if isinstance(client, RedisCluster):
                    await client.initialize()
                else:
                    await client.ping()
            except REDIS_ERRORS as e:
                await client.aclose()
                raise map_redis_error(e, "connect") from e

            self._client = client
            logger.info(
                "Cache store connected",
                extra={"redis_host": self.host, "cluster_mode": self.cluster_mode},
            )

    async def _call(
        self, operation: str, key: str, fn: Callable[[Any], Awaitable[T]]
    ) -> T:
        await self.connect()
        try:
            return await fn(self._client)
        except REDIS_ERRORS as e:
            raise map_redis_error(e, operation, key) from e

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Atomic set with expiry. Overwrites any existing value."""
        await self._call("set", key, lambda c: c.set(key, value, ex=ttl_seconds))

    async def get(self, key: str) -> str | None:
        return await self._call("get", key, lambda c: c.get(key))

    async def exists(self, key: str) -> bool:
        count = await self._call("exists", key, lambda c: c.exists(key))
        return bool(count)

    async def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -1 without expiry, -2 when the key is absent."""
        return int(await self._call("ttl", key, lambda c: c.ttl(key)))

    async def close(self) -> None:
        async with self._connect_lock:
            if self._client is None:
                return
            client, self._client = self._client, None
            try:
                await client.aclose()
            except RedisError as e:
                logger.warning(
                    "Error closing cache store connection",
                    extra={"error_kind": type(e).__name__, "error_message": str(e)},
                )
            logger.info("Cache store connection closed")


__all__ = ["CacheStore", "RedisCacheStore", "map_redis_error"]
