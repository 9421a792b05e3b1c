"""Event publisher.

Publishes committed domain events through the injected broker. The
durable state change has already committed when this runs, so a broker
outage is logged and reported but never undoes or blocks it.
"""

from collections.abc import Iterable

import structlog

from fulfillment.domain.base import DomainEvent
from fulfillment.domain.events import OrderEvent
from fulfillment.domain.exceptions import BrokerPublishError
from fulfillment.infrastructure.broker import MessageBroker

logger = structlog.get_logger()


class EventPublisher:
    """Sends order events keyed by order number."""

    def __init__(self, broker: MessageBroker) -> None:
        self.broker = broker

    async def publish(self, event: OrderEvent) -> bool:
        """Publish one event on the topic named by its event type.

        Args:
            event: Committed order event.

        Returns:
            True if the broker accepted the event, False if it gave up.
        """
        try:
            await self.broker.publish(
                topic=event.event_type,
                partition_key=event.partition_key,
                payload=event.to_dict(),
            )
        except BrokerPublishError as e:
            logger.error(
                "Event publish failed",
                event_type=event.event_type,
                event_id=str(event.event_id),
                order_number=event.order_number,
                error=e.message,
            )
            return False

        logger.info(
            "Event published",
            event_type=event.event_type,
            order_number=event.order_number,
        )
        return True

    async def publish_all(self, events: Iterable[DomainEvent]) -> list[bool]:
        """Publish events one after another, preserving their order."""
        results = []
        for event in events:
            if isinstance(event, OrderEvent):
                results.append(await self.publish(event))
        return results
