"""
Broadcast Backplane

Relays hub broadcasts to every server process. Each process delivers a
relayed message to the clients connected to it.

    - MemoryBackplane: single process, delivers immediately
    - RedisBackplane: publishes to a Redis pub/sub channel and delivers
      whatever arrives on it, including this process's own messages

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.core.config import BackplaneBackend, get_settings

logger = logging.getLogger(__name__)

Deliver = Callable[[dict[str, Any]], Awaitable[None]]


class BaseBackplane(ABC):
    """Abstract base class for broadcast backplanes."""

    def __init__(self, deliver: Deliver):
        self._deliver = deliver

    @property
    @abstractmethod
    def provider_name(self) -> str:
        pass

    async def start(self) -> None:
        """Begin receiving relayed messages."""

    async def stop(self) -> None:
        """Stop receiving and release connections."""

    @abstractmethod
    async def publish(self, message: dict[str, Any]) -> None:
        """Send a message to every process's clients."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        pass


class MemoryBackplane(BaseBackplane):
    """In-process delivery."""

    @property
    def provider_name(self) -> str:
        return "memory"

    async def publish(self, message: dict[str, Any]) -> None:
        await self._deliver(message)

    async def health_check(self) -> bool:
        return True


class RedisBackplane(BaseBackplane):
    """
    Redis pub/sub delivery.

    The listener task survives a dropped subscription: it logs the
    failure, waits ``reconnect_delay`` seconds and subscribes again.
    Broadcasts published while it is disconnected are lost, and
    health_check reports unhealthy until it is back.

    Args:
        deliver: Coroutine that pushes a message to local clients
        redis_url: Redis connection URL
        channel: Pub/sub channel shared by all processes
        client: Pre-built redis.asyncio client (tests inject a fake)
        reconnect_delay: Seconds between resubscribe attempts
    """

    def __init__(
        self,
        deliver: Deliver,
        redis_url: str,
        channel: str,
        client: Optional[Any] = None,
        reconnect_delay: float = 1.0,
    ):
        super().__init__(deliver)
        self.redis_url = redis_url
        self.channel = channel
        self.reconnect_delay = reconnect_delay
        self._client = client
        self._pubsub = None
        self._subscribed = False
        self._task: Optional[asyncio.Task] = None

    @property
    def provider_name(self) -> str:
        return "redis"

    async def start(self) -> None:
        if self._client is None:
            self._client = aioredis.from_url(self.redis_url, decode_responses=True)

        await self._subscribe()
        self._task = asyncio.create_task(self._listen())
        self._task.add_done_callback(self._on_listener_done)
        logger.info(f"Redis backplane subscribed to {self.channel}")

    async def _subscribe(self) -> None:
        pubsub = self._client.pubsub()
        try:
            await pubsub.subscribe(self.channel)
        except RedisError:
            await self._discard(pubsub)
            raise

        self._pubsub = pubsub
        self._subscribed = True

    async def _discard(self, pubsub) -> None:
        try:
            await pubsub.aclose()
        except RedisError as e:
            logger.debug(f"Closing dead backplane subscription failed: {e}")

    async def _listen(self) -> None:
        while True:
            if not self._subscribed:
                try:
                    await self._subscribe()
                    logger.info(f"Redis backplane resubscribed to {self.channel}")
                except RedisError as e:
                    logger.error(f"Redis backplane resubscribe failed: {e}")
                    await asyncio.sleep(self.reconnect_delay)
                    continue

            try:
                await self._relay()
                logger.warning(f"Redis backplane subscription to {self.channel} ended")
            except RedisError as e:
                logger.error(f"Redis backplane subscription to {self.channel} lost: {e}")

            self._subscribed = False
            pubsub, self._pubsub = self._pubsub, None
            if pubsub is not None:
                await self._discard(pubsub)
            await asyncio.sleep(self.reconnect_delay)

    async def _relay(self) -> None:
        async for item in self._pubsub.listen():
            if item.get("type") != "message":
                continue

            try:
                message = json.loads(item["data"])
            except (TypeError, json.JSONDecodeError):
                logger.warning(f"Ignoring malformed backplane message on {self.channel}")
                continue

            try:
                await self._deliver(message)
            except Exception:
                logger.exception("Backplane delivery failed")

    def _on_listener_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"Redis backplane listener stopped: {error!r}",
                exc_info=error,
            )

    async def publish(self, message: dict[str, Any]) -> None:
        if self._client is None:
            raise RuntimeError("Redis backplane has not been started")
        await self._client.publish(self.channel, json.dumps(message))

    async def stop(self) -> None:
        # A listener that already died was reported by _on_listener_done
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None

        self._subscribed = False
        pubsub, self._pubsub = self._pubsub, None
        client, self._client = self._client, None

        if pubsub is not None:
            try:
                await pubsub.unsubscribe(self.channel)
            except RedisError as e:
                logger.warning(f"Redis backplane unsubscribe failed: {e}")
            await self._discard(pubsub)
        if client is not None:
            try:
                await client.aclose()
            except RedisError as e:
                logger.warning(f"Redis backplane client did not close cleanly: {e}")

        logger.info("Redis backplane stopped")

    async def health_check(self) -> bool:
        if self._client is None or self._task is None or self._task.done():
            return False
        if not self._subscribed:
            logger.error(f"Redis backplane is not subscribed to {self.channel}")
            return False
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False


@lru_cache()
def get_backplane() -> BaseBackplane:
    """Get the configured backplane, wired to the shared connection manager."""
    from app.services.hub import get_connection_manager

    settings = get_settings()
    deliver = get_connection_manager().broadcast

    if settings.broadcast_backplane == BackplaneBackend.REDIS:
        logger.info(f"Backplane: Using RedisBackplane ({settings.redis_channel})")
        return RedisBackplane(
            deliver,
            settings.redis_url,
            settings.redis_channel,
            reconnect_delay=settings.redis_reconnect_delay,
        )

    logger.info("Backplane: Using MemoryBackplane")
    return MemoryBackplane(deliver)


def reset_backplane() -> None:
    """Clear the cached backplane instance."""
    get_backplane.cache_clear()
