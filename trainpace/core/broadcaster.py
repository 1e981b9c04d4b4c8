"""Redis pub/sub broadcaster for journey session events."""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

from trainpace.config import settings

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "trainpace:journey:"
STATE_KEY_PREFIX = "trainpace:state:"
STATE_TTL_SECONDS = 3600


class Broadcaster:
    """Publishes journey events to Redis and fans them out to WebSocket subscribers."""

    def __init__(self) -> None:
        self._redis: aioredis.Redis | None = None
        # session_id -> subscriber queues
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        self._pending: set[asyncio.Task] = set()

    async def connect(self) -> None:
        self._redis = aioredis.from_url(settings.redis_url, decode_responses=False)

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._redis:
            await self._redis.aclose()

    def publish_nowait(self, session_id: str, event: dict) -> None:
        """Publish from synchronous code (observer callbacks); Redis write runs in the background."""
        payload = orjson.dumps(event)

        dead = set()
        subscribers = self._subscribers.get(session_id, set())
        for q in subscribers:
            try:
                q.put_nowait(payload)
            except asyncio.QueueFull:
                dead.add(q)
        subscribers -= dead

        if self._redis:
            task = asyncio.get_running_loop().create_task(self._store(session_id, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _store(self, session_id: str, payload: bytes) -> None:
        try:
            # Store current state for consumers outside this process
            await self._redis.set(STATE_KEY_PREFIX + session_id, payload, ex=STATE_TTL_SECONDS)
            await self._redis.publish(CHANNEL_PREFIX + session_id, payload)
        except Exception:
            logger.exception("Failed to publish to Redis")

    def subscribe(self, session_id: str) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=100)
        self._subscribers.setdefault(session_id, set()).add(q)
        return q

    def unsubscribe(self, session_id: str, q: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(session_id)
        if subscribers is not None:
            subscribers.discard(q)
            if not subscribers:
                del self._subscribers[session_id]
