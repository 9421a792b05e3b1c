"""Domain layer - Entities, value objects, state machines, domain events.

This module exports the core domain building blocks:

- **Entities**: Objects with identity (Order, Payment, InventoryItem)
- **Value Objects**: Immutable objects compared by value (Money, ShippingAddress, typed IDs)
- **State Machines**: Deterministic state transitions (OrderStatus, PaymentStatus)
- **Domain Events**: OrderCreated, OrderConfirmed, PaymentProcessed
- **Exceptions**: Domain-specific errors and invariant violations

Example usage:
    from fulfillment.domain import Money, Order, OrderItem, ShippingAddress

    item = OrderItem(
        item_id="plant-1",
        item_name="Monstera",
        quantity=2,
        price_at_purchase=Money(Decimal("10.00")),
    )
    order = Order.create(user_id="user-1", items=[item], shipping_address=address)
    print(order.total)  # 20.00 USD
"""

# Base classes
from fulfillment.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject

# Entities
from fulfillment.domain.entities import (
    InventoryItem,
    Order,
    OrderItem,
    Payment,
    Reservation,
    reservations_for,
)

# Events
from fulfillment.domain.events import (
    EVENT_REGISTRY,
    TOPICS,
    OrderConfirmed,
    OrderCreated,
    OrderEvent,
    PaymentProcessed,
    decode_event,
)

# Exceptions
from fulfillment.domain.exceptions import (
    BrokerPublishError,
    CatalogUnavailableError,
    CurrencyMismatchError,
    DomainError,
    DuplicateRecordError,
    GatewayError,
    InsufficientStockError,
    InvalidScaleError,
    InvalidStateTransitionError,
    LockLeaseExpiredError,
    LockTimeoutError,
    MoneyError,
    NegativeMoneyError,
    NotFoundError,
    ReconciliationDataError,
    UnknownEventError,
    ValidationError,
    WebhookSignatureError,
)

# State machines
from fulfillment.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    validate_order_transition,
    validate_payment_transition,
)

# Value objects
from fulfillment.domain.value_objects import (
    CURRENCY_SCALE,
    Money,
    OrderId,
    OrderLine,
    OrderNumber,
    PaymentId,
    ShippingAddress,
    inventory_lock_key,
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    # Entities
    "InventoryItem",
    "Order",
    "OrderItem",
    "Payment",
    "Reservation",
    "reservations_for",
    # Events
    "EVENT_REGISTRY",
    "TOPICS",
    "OrderConfirmed",
    "OrderCreated",
    "OrderEvent",
    "PaymentProcessed",
    "decode_event",
    # Exceptions
    "BrokerPublishError",
    "CatalogUnavailableError",
    "CurrencyMismatchError",
    "DomainError",
    "DuplicateRecordError",
    "GatewayError",
    "InsufficientStockError",
    "InvalidScaleError",
    "InvalidStateTransitionError",
    "LockLeaseExpiredError",
    "LockTimeoutError",
    "MoneyError",
    "NegativeMoneyError",
    "NotFoundError",
    "ReconciliationDataError",
    "UnknownEventError",
    "ValidationError",
    "WebhookSignatureError",
    # State machines
    "OrderStatus",
    "PaymentStatus",
    "validate_order_transition",
    "validate_payment_transition",
    # Value objects
    "CURRENCY_SCALE",
    "Money",
    "OrderId",
    "OrderLine",
    "OrderNumber",
    "PaymentId",
    "ShippingAddress",
    "inventory_lock_key",
]
