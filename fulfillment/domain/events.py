"""Domain events emitted by the fulfillment core.

The set of events is closed: OrderCreated, OrderConfirmed and
PaymentProcessed. Each event type is also the broker topic it is
published on, and every event is keyed by its order number.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar
from uuid import UUID

from fulfillment.domain.base import DomainEvent
from fulfillment.domain.exceptions import UnknownEventError


@dataclass(frozen=True)
class OrderEvent(DomainEvent):
    """Fields shared by every order-scoped event.

    Attributes:
        order_number: Human-readable order number, the partition key.
        status: Status of the emitting aggregate after the change.
        amount: Amount as a decimal string at currency scale.
        currency: ISO 4217 currency code.
    """

    order_number: str = ""
    status: str = ""
    amount: str = "0.00"
    currency: str = "USD"

    @property
    def partition_key(self) -> str:
        return self.order_number

    def _payload(self) -> dict[str, Any]:
        return {
            "order_number": self.order_number,
            "status": self.status,
            "amount": self.amount,
            "currency": self.currency,
        }


@dataclass(frozen=True)
class OrderCreated(OrderEvent):
    """Event raised when an order has been reserved and its payment initiated."""

    event_type: ClassVar[str] = "order-created"

    user_id: str = ""
    item_count: int = 0

    def _payload(self) -> dict[str, Any]:
        return {
            **super()._payload(),
            "user_id": self.user_id,
            "item_count": self.item_count,
        }


@dataclass(frozen=True)
class OrderConfirmed(OrderEvent):
    """Event raised when an order is confirmed by a successful payment."""

    event_type: ClassVar[str] = "order-confirmed"


@dataclass(frozen=True)
class PaymentProcessed(OrderEvent):
    """Event raised when a payment authorization reaches its outcome."""

    event_type: ClassVar[str] = "payment-processed"

    authorization_id: str = ""
    failure_reason: str | None = None

    def _payload(self) -> dict[str, Any]:
        return {
            **super()._payload(),
            "authorization_id": self.authorization_id,
            "failure_reason": self.failure_reason,
        }


# ============================================================================
# Event Registry
# ============================================================================


EVENT_REGISTRY: dict[str, type[OrderEvent]] = {
    OrderCreated.event_type: OrderCreated,
    OrderConfirmed.event_type: OrderConfirmed,
    PaymentProcessed.event_type: PaymentProcessed,
}

TOPICS: tuple[str, ...] = tuple(EVENT_REGISTRY)


def decode_event(data: dict[str, Any]) -> OrderEvent:
    """Rebuild a domain event from its broker payload.

    Args:
        data: Dictionary produced by DomainEvent.to_dict().

    Returns:
        The concrete event variant.

    Raises:
        UnknownEventError: If the event type is not a known variant or
            the message is malformed.
    """
    event_type = data.get("event_type")
    event_class = EVENT_REGISTRY.get(event_type) if isinstance(event_type, str) else None
    if event_class is None:
        raise UnknownEventError(
            f"Unknown event type: {event_type!r}",
            details={"event_type": event_type},
        )

    payload = data.get("payload") or {}
    allowed = set(event_class.__dataclass_fields__) - {
        "event_id",
        "occurred_at",
        "aggregate_id",
        "aggregate_type",
    }
    try:
        return event_class(
            event_id=UUID(data["event_id"]),
            occurred_at=datetime.fromisoformat(data["occurred_at"]),
            aggregate_id=data.get("aggregate_id", ""),
            aggregate_type=data.get("aggregate_type", ""),
            **{key: value for key, value in payload.items() if key in allowed},
        )
    except (KeyError, TypeError, ValueError) as e:
        raise UnknownEventError(
            f"Malformed {event_type} event: {e}",
            details={"event_type": event_type},
        ) from e
