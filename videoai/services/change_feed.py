"""Change feed for video records.

Provides:
- The ``ChangeFeed`` interface used by the repository (publish) and the
  status reconciler (subscribe)
- ``RedisChangeFeed``: Redis pub/sub on ``videos:user:{owner_id}``
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from videoai.core.exceptions import ReconciliationChannelError
from videoai.core.logger import get_logger

logger = get_logger(__name__)

ChangeCallback = Callable[[dict[str, Any]], Awaitable[None]]


def channel_for(owner_id: str) -> str:
    return f"videos:user:{owner_id}"


class Subscription(ABC):
    """Handle returned by ``ChangeFeed.subscribe``."""

    @abstractmethod
    async def close(self) -> None:
        """Stop delivering events."""


class ChangeFeed(ABC):
    """Per-owner stream of record change events."""

    @abstractmethod
    async def publish(self, owner_id: str, event: dict[str, Any]) -> None:
        """Announce a change to the owner's records."""

    @abstractmethod
    async def subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        """
        Deliver change events for ``owner_id`` to ``callback``.

        Raises:
            ReconciliationChannelError: the channel could not be established
        """


class RedisSubscription(Subscription):
    def __init__(self, pubsub: PubSub, task: asyncio.Task, channel: str):
        self._pubsub = pubsub
        self._task = task
        self.channel = channel

    async def close(self) -> None:
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        try:
            await self._pubsub.unsubscribe(self.channel)
            await self._pubsub.close()
        except RedisError as e:
            logger.warning(f"Error closing subscription to {self.channel}: {e}")
        logger.debug(f"Unsubscribed from {self.channel}")


class RedisChangeFeed(ChangeFeed):
    """Redis pub/sub change feed."""

    def __init__(self, url: str):
        self.url = url
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Connect to Redis server."""
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=10.0,
                # No socket_timeout: pub/sub waits indefinitely for messages
                health_check_interval=30,
            )
            await self._client.ping()
            logger.info("Connected to Redis")

    async def disconnect(self) -> None:
        """Disconnect from Redis server."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Disconnected from Redis")

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise error if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self._client

    async def publish(self, owner_id: str, event: dict[str, Any]) -> None:
        """Publish an event. Failures are logged; subscribers fall back to polling."""
        channel = channel_for(owner_id)
        try:
            count = await self.client.publish(channel, json.dumps(event, default=str))
        except (RedisError, RuntimeError) as e:
            logger.warning(f"Could not publish change to {channel}: {e}")
            return
        logger.debug(f"Published to {channel}, {count} receivers")

    async def subscribe(self, owner_id: str, callback: ChangeCallback) -> Subscription:
        channel = channel_for(owner_id)
        try:
            pubsub = self.client.pubsub()
            await pubsub.subscribe(channel)
        except (RedisError, RuntimeError) as e:
            raise ReconciliationChannelError(
                metadata={"channel": channel},
                debug_message=str(e),
            ) from e
        logger.debug(f"Subscribed to {channel}")

        async def listener():
            retry_count = 0
            max_retries = 10
            base_delay = 1  # seconds

            while retry_count < max_retries:
                try:
                    async for message in pubsub.listen():
                        retry_count = 0
                        if message["type"] != "message":
                            continue
                        try:
                            data = json.loads(message["data"])
                        except json.JSONDecodeError:
                            logger.error(f"Invalid JSON on {channel}: {message['data']}")
                            continue
                        try:
                            await callback(data)
                        except Exception as e:
                            logger.error(f"Error in change callback for {channel}: {e}")
                except asyncio.CancelledError:
                    logger.debug(f"Listener cancelled for {channel}")
                    raise
                except RedisError as e:
                    retry_count += 1
                    delay = min(base_delay * (2 ** retry_count), 30)
                    logger.warning(
                        f"Change listener error (attempt {retry_count}): {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)

                    try:
                        await pubsub.subscribe(channel)
                        logger.info(f"Resubscribed to {channel}")
                    except RedisError as resub_error:
                        logger.error(f"Failed to resubscribe: {resub_error}")

            if retry_count >= max_retries:
                logger.error(f"Max retries reached for {channel}, listener stopped")

        task = asyncio.create_task(listener())
        return RedisSubscription(pubsub, task, channel)
