"""Redis-backed metadata store."""

import logging
from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from snipdrop.core.errors import StoreUnavailable
from snipdrop.storage.base import MetadataStore

logger = logging.getLogger(__name__)

SCAN_BATCH_SIZE = 500


class RedisMetadataStore(MetadataStore):
    """
    Metadata store over redis.asyncio. Every RedisError is reported as
    StoreUnavailable; no retries happen here.
    """

    def __init__(self, url: str, socket_timeout: float = 5.0) -> None:
        self.url = url
        self.client: Any = aioredis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
        )

    def _unavailable(self, op: str, err: Exception) -> StoreUnavailable:
        logger.error("Redis %s failed: %s", op, err)
        return StoreUnavailable("Could not reach the metadata store, please try again later.")

    async def get(self, key: str) -> str | None:
        try:
            return await self.client.get(key)
        except RedisError as e:
            raise self._unavailable("GET", e) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await self.client.set(key, value)
        except RedisError as e:
            raise self._unavailable("SET", e) from e

    async def set_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        try:
            return bool(await self.client.set(key, value, nx=True, ex=ttl))
        except RedisError as e:
            raise self._unavailable("SET NX", e) from e

    async def exists(self, key: str) -> bool:
        try:
            return await self.client.exists(key) > 0
        except RedisError as e:
            raise self._unavailable("EXISTS", e) from e

    async def keys(self, pattern: str) -> list[str]:
        try:
            return [key async for key in self.client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE)]
        except RedisError as e:
            raise self._unavailable("SCAN", e) from e

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        try:
            return await self.client.mget(keys)
        except RedisError as e:
            raise self._unavailable("MGET", e) from e

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self.client.delete(*keys)
        except RedisError as e:
            raise self._unavailable("DEL", e) from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            raise self._unavailable("PING", e) from e

    async def close(self) -> None:
        await self.client.aclose()
