"""Message broker transport and consumer.

Events are appended to one Redis Stream per topic. A stream is totally
ordered, so events sharing a partition key are observed in send order.
Delivery is at-least-once: publishing retries with backoff and consumers
acknowledge only after their handlers succeed.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError, ResponseError

from fulfillment.domain.events import TOPICS, OrderEvent, decode_event
from fulfillment.domain.exceptions import BrokerPublishError, UnknownEventError

logger = structlog.get_logger()


class MessageBroker(ABC):
    """Transport for domain events."""

    @abstractmethod
    async def publish(self, topic: str, partition_key: str, payload: dict[str, Any]) -> None:
        """Send one message.

        Raises:
            BrokerPublishError: If the message could not be delivered.
        """

    async def close(self) -> None:
        """Release transport resources."""


# ============================================================================
# Redis Streams
# ============================================================================


class RedisStreamBroker(MessageBroker):
    """Broker appending each message to the stream named after its topic."""

    def __init__(
        self,
        redis: aioredis.Redis,
        max_attempts: int = 3,
        retry_backoff_ms: int = 100,
        stream_maxlen: int | None = 100_000,
    ) -> None:
        """Initialize broker.

        Args:
            redis: Process-wide Redis client (owned by the caller).
            max_attempts: Publish attempts before giving up.
            retry_backoff_ms: Base backoff, doubled after each failure.
            stream_maxlen: Approximate stream length cap.
        """
        self.redis = redis
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_ms = retry_backoff_ms
        self.stream_maxlen = stream_maxlen

    async def publish(self, topic: str, partition_key: str, payload: dict[str, Any]) -> None:
        fields = {"key": partition_key, "payload": json.dumps(payload, default=str)}
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                message_id = await self.redis.xadd(
                    topic,
                    fields,
                    maxlen=self.stream_maxlen,
                    approximate=True,
                )
            except RedisError as e:
                last_error = e
                logger.warning(
                    "Event publish attempt failed",
                    topic=topic,
                    key=partition_key,
                    attempt=attempt,
                    error=str(e),
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_backoff_ms * 2 ** (attempt - 1) / 1000)
                continue

            logger.debug("Event published", topic=topic, key=partition_key, message_id=message_id)
            return

        raise BrokerPublishError(
            f"Failed to publish to {topic} after {self.max_attempts} attempts",
            details={"topic": topic, "key": partition_key, "error": str(last_error)},
        )


# ============================================================================
# In-Memory Broker
# ============================================================================


@dataclass(frozen=True)
class PublishedMessage:
    topic: str
    partition_key: str
    payload: dict[str, Any]


class InMemoryBroker(MessageBroker):
    """Broker that records messages; for tests and local runs."""

    def __init__(self) -> None:
        self.messages: list[PublishedMessage] = []
        self.closed = False

    async def publish(self, topic: str, partition_key: str, payload: dict[str, Any]) -> None:
        self.messages.append(PublishedMessage(topic, partition_key, payload))

    async def close(self) -> None:
        self.closed = True

    def topics(self) -> list[str]:
        return [message.topic for message in self.messages]

    def for_key(self, partition_key: str) -> list[PublishedMessage]:
        return [m for m in self.messages if m.partition_key == partition_key]


# ============================================================================
# Consumer
# ============================================================================


EventHandler = Callable[[OrderEvent], Awaitable[None]]


async def log_event(event: OrderEvent) -> None:
    """Default handler: record the event in the service log."""
    logger.info(
        "Order event received",
        event_type=event.event_type,
        event_id=str(event.event_id),
        order_number=event.order_number,
        status=event.status,
    )


class EventConsumer:
    """Reads order events from the topic streams with a consumer group.

    Every message is decoded into one of the known event variants.
    Messages that are not a known variant are logged and acknowledged so
    they do not block the stream. A message whose handler fails stays in
    the pending list and is retried by process_pending, which also claims
    entries left idle by consumers that went away.
    """

    def __init__(
        self,
        redis: aioredis.Redis,
        group: str,
        consumer_name: str,
        topics: Iterable[str] = TOPICS,
        batch_size: int = 10,
        block_ms: int = 1000,
        claim_idle_ms: int = 60000,
        pending_interval_ms: int = 5000,
    ) -> None:
        self.redis = redis
        self.group = group
        self.consumer_name = consumer_name
        self.topics = tuple(topics)
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.claim_idle_ms = claim_idle_ms
        self.pending_interval_ms = pending_interval_ms
        self._handlers: dict[str, list[EventHandler]] = {}

    def register(self, event_type: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_type, []).append(handler)

    async def ensure_groups(self) -> None:
        """Create the consumer group on every topic stream if missing."""
        for topic in self.topics:
            try:
                await self.redis.xgroup_create(topic, self.group, id="0", mkstream=True)
            except ResponseError as e:
                if "BUSYGROUP" not in str(e):
                    raise

    async def process_batch(self) -> int:
        """Read and handle one batch of messages.

        Returns:
            Number of messages acknowledged.
        """
        response = await self.redis.xreadgroup(
            self.group,
            self.consumer_name,
            {topic: ">" for topic in self.topics},
            count=self.batch_size,
            block=self.block_ms,
        )
        return await self._handle_response(response)

    async def process_pending(self) -> int:
        """Retry messages delivered earlier but never acknowledged.

        Entries idle longer than claim_idle_ms under any consumer of the
        group are claimed first, then this consumer's own pending list is
        read from the start and handled again.

        Returns:
            Number of messages acknowledged.
        """
        for topic in self.topics:
            await self.redis.xautoclaim(
                topic,
                self.group,
                self.consumer_name,
                min_idle_time=self.claim_idle_ms,
                start_id="0-0",
                count=self.batch_size,
                justid=True,
            )
        response = await self.redis.xreadgroup(
            self.group,
            self.consumer_name,
            {topic: "0" for topic in self.topics},
            count=self.batch_size,
        )
        acked = await self._handle_response(response)
        if acked:
            logger.info("Pending event messages recovered", acked=acked)
        return acked

    async def _handle_response(self, response: Any) -> int:
        acked = 0
        for stream, messages in response or []:
            for message_id, fields in messages:
                if await self._handle(stream, message_id, fields):
                    await self.redis.xack(stream, self.group, message_id)
                    acked += 1
        return acked

    async def _handle(self, stream: str, message_id: str, fields: dict[str, Any]) -> bool:
        try:
            event = decode_event(json.loads(fields["payload"]))
        except (AttributeError, KeyError, TypeError, ValueError, UnknownEventError) as e:
            logger.error(
                "Discarding undecodable event message",
                stream=stream,
                message_id=message_id,
                error=str(e),
            )
            return True

        try:
            for handler in self._handlers.get(event.event_type, [log_event]):
                await handler(event)
        except Exception:
            logger.exception(
                "Event handler failed",
                stream=stream,
                message_id=message_id,
                event_type=event.event_type,
            )
            return False
        return True

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Consume until shutdown_event is set."""
        await self.ensure_groups()
        logger.info("Event consumer started", group=self.group, topics=list(self.topics))
        next_recovery = 0.0
        while not shutdown_event.is_set():
            try:
                if time.monotonic() >= next_recovery:
                    await self.process_pending()
                    next_recovery = time.monotonic() + self.pending_interval_ms / 1000
                await self.process_batch()
            except RedisError as e:
                logger.warning("Event consumer read failed", error=str(e))
                await asyncio.sleep(self.block_ms / 1000)
        logger.info("Event consumer stopped", group=self.group)
