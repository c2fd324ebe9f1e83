"""Async Redis key/value store.

Holds the per-client wishlist, active read and reading progress blobs. Writes
are plain read-modify-write from the caller's side; two clients sharing an id
can overwrite each other's update.
"""

import logging
from typing import Optional

import redis.asyncio as aioredis

from atmosphera.domain.repositories import IKeyValueStore

logger = logging.getLogger(__name__)


class RedisKeyValueStore(IKeyValueStore):

    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueStore":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str) -> None:
        await self.client.set(key, value)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self.client.aclose()
        logger.info("Redis store connection closed")
