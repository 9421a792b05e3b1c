"""Tests for the Redis Streams broker and event consumer."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from fulfillment.domain import BrokerPublishError, OrderConfirmed
from fulfillment.infrastructure.broker import EventConsumer, RedisStreamBroker


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def redis_client() -> MagicMock:
    client = MagicMock()
    client.xadd = AsyncMock(return_value="1-0")
    client.xack = AsyncMock()
    client.xreadgroup = AsyncMock(return_value=[])
    client.xgroup_create = AsyncMock()
    client.xautoclaim = AsyncMock(return_value=["0-0", [], []])
    return client


@pytest.fixture
def event() -> OrderConfirmed:
    return OrderConfirmed(order_number="ORD-ABCDEF123456", status="confirmed", amount="25.00")


# ============================================================================
# Publishing
# ============================================================================


class TestRedisStreamBroker:
    """Tests for RedisStreamBroker."""

    @pytest.mark.asyncio
    async def test_appends_to_topic_stream(self, redis_client: MagicMock) -> None:
        broker = RedisStreamBroker(redis_client, stream_maxlen=1000)

        await broker.publish("order-confirmed", "ORD-1", {"event_type": "order-confirmed"})

        redis_client.xadd.assert_awaited_once_with(
            "order-confirmed",
            {"key": "ORD-1", "payload": json.dumps({"event_type": "order-confirmed"})},
            maxlen=1000,
            approximate=True,
        )

    @pytest.mark.asyncio
    async def test_retries_transient_failure(self, redis_client: MagicMock) -> None:
        redis_client.xadd.side_effect = [RedisConnectionError("reset"), "1-0"]
        broker = RedisStreamBroker(redis_client, max_attempts=3, retry_backoff_ms=0)

        await broker.publish("order-created", "ORD-1", {})

        assert redis_client.xadd.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, redis_client: MagicMock) -> None:
        redis_client.xadd.side_effect = RedisConnectionError("down")
        broker = RedisStreamBroker(redis_client, max_attempts=3, retry_backoff_ms=0)

        with pytest.raises(BrokerPublishError) as exc_info:
            await broker.publish("order-created", "ORD-1", {})

        assert redis_client.xadd.await_count == 3
        assert exc_info.value.details["topic"] == "order-created"


# ============================================================================
# Consuming
# ============================================================================


class TestEventConsumer:
    """Tests for EventConsumer."""

    @pytest.mark.asyncio
    async def test_dispatches_and_acks(
        self, redis_client: MagicMock, event: OrderConfirmed
    ) -> None:
        redis_client.xreadgroup.return_value = [
            [
                "order-confirmed",
                [("1-0", {"key": event.order_number, "payload": json.dumps(event.to_dict())})],
            ]
        ]
        handler = AsyncMock()
        consumer = EventConsumer(redis_client, group="fulfillment", consumer_name="c1")
        consumer.register("order-confirmed", handler)

        assert await consumer.process_batch() == 1

        handler.assert_awaited_once_with(event)
        redis_client.xack.assert_awaited_once_with("order-confirmed", "fulfillment", "1-0")

    @pytest.mark.asyncio
    async def test_undecodable_message_is_discarded(self, redis_client: MagicMock) -> None:
        """Unknown variants are logged and acknowledged so they do not block the stream."""
        redis_client.xreadgroup.return_value = [
            [
                "order-created",
                [
                    ("1-0", {"payload": "{not json"}),
                    ("2-0", {"payload": json.dumps({"event_type": "order-shipped"})}),
                ],
            ]
        ]
        consumer = EventConsumer(redis_client, group="fulfillment", consumer_name="c1")

        assert await consumer.process_batch() == 2
        assert redis_client.xack.await_count == 2

    @pytest.mark.asyncio
    async def test_failed_handler_leaves_message_pending(
        self, redis_client: MagicMock, event: OrderConfirmed
    ) -> None:
        redis_client.xreadgroup.return_value = [
            ["order-confirmed", [("1-0", {"payload": json.dumps(event.to_dict())})]]
        ]
        consumer = EventConsumer(redis_client, group="fulfillment", consumer_name="c1")
        consumer.register("order-confirmed", AsyncMock(side_effect=RuntimeError("boom")))

        assert await consumer.process_batch() == 0
        redis_client.xack.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_message_is_redelivered_and_acked(
        self, redis_client: MagicMock, event: OrderConfirmed
    ) -> None:
        entry = ("1-0", {"payload": json.dumps(event.to_dict())})
        redis_client.xreadgroup.side_effect = [
            [["order-confirmed", [entry]]],
            [["order-confirmed", [entry]]],
        ]
        handler = AsyncMock(side_effect=[RuntimeError("boom"), None])
        consumer = EventConsumer(redis_client, group="fulfillment", consumer_name="c1")
        consumer.register("order-confirmed", handler)

        assert await consumer.process_batch() == 0
        assert await consumer.process_pending() == 1

        assert handler.await_count == 2
        redis_client.xack.assert_awaited_once_with("order-confirmed", "fulfillment", "1-0")
        pending_streams = redis_client.xreadgroup.await_args_list[1].args[2]
        assert set(pending_streams.values()) == {"0"}

    @pytest.mark.asyncio
    async def test_process_pending_claims_idle_entries(self, redis_client: MagicMock) -> None:
        consumer = EventConsumer(
            redis_client, group="fulfillment", consumer_name="c2", claim_idle_ms=30000
        )

        assert await consumer.process_pending() == 0

        assert redis_client.xautoclaim.await_count == 3
        redis_client.xautoclaim.assert_any_await(
            "order-created",
            "fulfillment",
            "c2",
            min_idle_time=30000,
            start_id="0-0",
            count=10,
            justid=True,
        )

    @pytest.mark.asyncio
    async def test_ensure_groups_tolerates_existing_group(self, redis_client: MagicMock) -> None:
        redis_client.xgroup_create.side_effect = ResponseError(
            "BUSYGROUP Consumer Group name already exists"
        )
        consumer = EventConsumer(redis_client, group="fulfillment", consumer_name="c1")

        await consumer.ensure_groups()

        assert redis_client.xgroup_create.await_count == 3

    @pytest.mark.asyncio
    async def test_ensure_groups_raises_other_errors(self, redis_client: MagicMock) -> None:
        redis_client.xgroup_create.side_effect = ResponseError("WRONGTYPE")
        consumer = EventConsumer(redis_client, group="fulfillment", consumer_name="c1")

        with pytest.raises(ResponseError):
            await consumer.ensure_groups()

    @pytest.mark.asyncio
    async def test_run_recovers_pending_then_stops_on_shutdown(
        self, redis_client: MagicMock
    ) -> None:
        shutdown = asyncio.Event()
        streams_read: list[set[str]] = []

        async def read(group: str, consumer: str, streams: dict, **kwargs: object) -> list:
            streams_read.append(set(streams.values()))
            if len(streams_read) == 2:
                shutdown.set()
            return []

        redis_client.xreadgroup.side_effect = read
        consumer = EventConsumer(redis_client, group="fulfillment", consumer_name="c1")

        await asyncio.wait_for(consumer.run(shutdown), timeout=1)

        assert streams_read == [{"0"}, {">"}]
        assert redis_client.xautoclaim.await_count == 3
