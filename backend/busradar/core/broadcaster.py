"""Redis pub/sub broadcaster for refresh-clock events."""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

from busradar.config import settings

logger = logging.getLogger(__name__)

CHANNEL = "busradar:refresh"


class Broadcaster:
    """Publishes clock events to Redis and fans them out to local subscribers."""

    def __init__(self) -> None:
        self._redis: aioredis.Redis | None = None
        self._subscribers: set[asyncio.Queue] = set()

    async def connect(self, redis_url: str | None = None) -> None:
        self._redis = aioredis.from_url(redis_url or settings.redis_url, decode_responses=False)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()

    async def publish(self, event: dict) -> None:
        payload = orjson.dumps(event)

        if self._redis:
            try:
                await self._redis.publish(CHANNEL, payload)
            except Exception:
                logger.exception("Failed to publish to Redis")

        # Drop subscribers that stopped draining their queue
        dead = set()
        for q in self._subscribers:
            try:
                q.put_nowait(payload)
            except asyncio.QueueFull:
                dead.add(q)
        self._subscribers -= dead

    def subscribe(self) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=10)
        self._subscribers.add(q)
        return q

    def unsubscribe(self, q: asyncio.Queue) -> None:
        self._subscribers.discard(q)
