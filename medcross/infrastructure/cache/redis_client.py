# medcross/infrastructure/cache/redis_client.py

from typing import Optional

import redis.asyncio as redis

from medcross.config.settings import settings


class RedisClient:
    """Thin async wrapper. Holds submission receipts keyed by owner and idempotency key."""

    def __init__(self, url: Optional[str] = None):
        self.client = redis.from_url(
            url or settings.redis_url,
            decode_responses=True,
        )

    async def set_cache(self, key: str, value: str, ttl: int = 300):
        await self.client.set(key, value, ex=ttl)

    async def get_cache(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()
