"""Domain entities for the fulfillment core.

Contains the Order and Payment aggregates and the shared InventoryItem
entity. Orders are only created by the order builder and only mutated
afterwards by payment reconciliation.
"""

from dataclasses import dataclass

from fulfillment.domain.base import AggregateRoot, Entity
from fulfillment.domain.events import OrderConfirmed, OrderCreated, PaymentProcessed
from fulfillment.domain.exceptions import InsufficientStockError, ValidationError
from fulfillment.domain.state_machines import (
    OrderStatus,
    PaymentStatus,
    validate_order_transition,
    validate_payment_transition,
)
from fulfillment.domain.value_objects import (
    Money,
    OrderId,
    OrderNumber,
    PaymentId,
    ShippingAddress,
    inventory_lock_key,
)


# ============================================================================
# Inventory Item Entity
# ============================================================================


@dataclass(eq=False)
class InventoryItem(Entity[str]):
    """Available quantity of one purchasable item.

    Shared between concurrent orders; only mutated while the caller
    holds the distributed lock for lock_key and the store row lock.

    Attributes:
        id: Inventory item identifier.
        quantity: Units available, never negative.
    """

    quantity: int

    def __post_init__(self) -> None:
        if self.quantity < 0:
            raise ValidationError(
                f"Inventory quantity cannot be negative: {self.quantity}",
                details={"item_id": self.id, "quantity": self.quantity},
            )

    @property
    def lock_key(self) -> str:
        return inventory_lock_key(self.id)

    def reserve(self, quantity: int) -> None:
        """Take quantity units out of stock.

        Args:
            quantity: Units to reserve.

        Raises:
            InsufficientStockError: If fewer units are available.
        """
        if quantity > self.quantity:
            raise InsufficientStockError(self.id, requested=quantity, available=self.quantity)
        self.quantity -= quantity

    def restock(self, quantity: int) -> None:
        """Put quantity units back into stock (compensation)."""
        self.quantity += quantity


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(frozen=True)
class OrderItem:
    """A line item in an order.

    The purchase price is a snapshot taken when the order was built;
    catalog price changes never reach existing orders.

    Attributes:
        item_id: Inventory item identifier.
        item_name: Item name at time of order.
        quantity: Ordered quantity.
        price_at_purchase: Unit price at time of order.
    """

    item_id: str
    item_name: str
    quantity: int
    price_at_purchase: Money

    @property
    def subtotal(self) -> Money:
        return self.price_at_purchase * self.quantity

    @property
    def lock_key(self) -> str:
        return inventory_lock_key(self.item_id)


@dataclass(kw_only=True, eq=False)
class Order(AggregateRoot[OrderId]):
    """Order aggregate root.

    Attributes:
        id: Unique order identifier.
        order_number: Human-readable unique order number.
        user_id: Owning user reference.
        items: Ordered line items.
        total: Sum of item subtotals.
        shipping_address: Where the order ships to.
        status: Current order status.
        cancelled_reason: Reason if cancelled.
    """

    id: OrderId
    order_number: OrderNumber
    user_id: str
    items: list[OrderItem]
    total: Money
    shipping_address: ShippingAddress
    status: OrderStatus = OrderStatus.PENDING
    cancelled_reason: str | None = None

    def __post_init__(self) -> None:
        """Check that the total matches the line items exactly."""
        if not self.items:
            raise ValidationError("Order must contain at least one item")
        computed = sum(
            (item.subtotal for item in self.items[1:]),
            start=self.items[0].subtotal,
        )
        if computed != self.total:
            raise ValidationError(
                f"Order total {self.total} does not match item subtotals {computed}",
                details={"total": str(self.total.amount), "computed": str(computed.amount)},
            )

    @classmethod
    def create(
        cls,
        user_id: str,
        items: list[OrderItem],
        shipping_address: ShippingAddress,
        order_number: OrderNumber | None = None,
        order_id: OrderId | None = None,
    ) -> "Order":
        """Create a PENDING order from priced line items.

        Args:
            user_id: Owning user reference.
            items: Line items with snapshot prices.
            shipping_address: Shipping address.
            order_number: Optional pre-generated order number.
            order_id: Optional pre-generated order ID.

        Returns:
            New Order instance with an OrderCreated event recorded.
        """
        if not items:
            raise ValidationError("Order must contain at least one item")
        total = sum((item.subtotal for item in items[1:]), start=items[0].subtotal)
        order = cls(
            id=order_id or OrderId.generate(),
            order_number=order_number or OrderNumber.generate(),
            user_id=user_id,
            items=list(items),
            total=total,
            shipping_address=shipping_address,
        )
        order._record_event(
            OrderCreated(
                aggregate_id=str(order.id),
                aggregate_type="Order",
                order_number=str(order.order_number),
                status=order.status.value,
                amount=str(order.total.amount),
                currency=order.total.currency,
                user_id=user_id,
                item_count=order.item_count,
            )
        )
        return order

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def lock_keys(self) -> list[str]:
        """Sorted distinct lock keys for the items in this order."""
        return sorted({item.lock_key for item in self.items})

    @property
    def reserved_quantities(self) -> dict[str, int]:
        """Units reserved per inventory item for this order."""
        quantities: dict[str, int] = {}
        for item in self.items:
            quantities[item.item_id] = quantities.get(item.item_id, 0) + item.quantity
        return quantities

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def confirm(self) -> None:
        """Confirm the order after a successful payment.

        Raises:
            InvalidStateTransitionError: If the order is not PENDING.
        """
        validate_order_transition(str(self.id), self.status, OrderStatus.CONFIRMED)
        self.status = OrderStatus.CONFIRMED
        self._touch()
        self._record_event(
            OrderConfirmed(
                aggregate_id=str(self.id),
                aggregate_type="Order",
                order_number=str(self.order_number),
                status=self.status.value,
                amount=str(self.total.amount),
                currency=self.total.currency,
            )
        )

    def cancel(self, reason: str) -> None:
        """Cancel the order.

        Args:
            reason: Cancellation reason.

        Raises:
            InvalidStateTransitionError: If the order is not PENDING.
        """
        validate_order_transition(str(self.id), self.status, OrderStatus.CANCELLED)
        self.cancelled_reason = reason
        self.status = OrderStatus.CANCELLED
        self._touch()


# ============================================================================
# Payment Aggregate Root
# ============================================================================


@dataclass(kw_only=True, eq=False)
class Payment(AggregateRoot[PaymentId]):
    """Payment authorization recorded for an order.

    Attributes:
        id: Unique payment identifier.
        order_id: The order this payment belongs to (one-to-one).
        order_number: Order number, carried for event keys.
        authorization_id: Gateway-side authorization identifier.
        amount: Authorized amount.
        idempotency_key: Key sent to the gateway with the authorization.
        status: Current payment status.
        failure_reason: Gateway failure reason, if failed.
    """

    id: PaymentId
    order_id: OrderId
    order_number: OrderNumber
    authorization_id: str
    amount: Money
    idempotency_key: str
    status: PaymentStatus = PaymentStatus.PENDING
    failure_reason: str | None = None

    @classmethod
    def create(
        cls,
        order: Order,
        authorization_id: str,
        idempotency_key: str,
        payment_id: PaymentId | None = None,
    ) -> "Payment":
        """Create a PENDING payment for an order.

        Args:
            order: Order being paid.
            authorization_id: Gateway authorization identifier.
            idempotency_key: Idempotency key used for the authorization.
            payment_id: Optional pre-generated payment ID.

        Returns:
            New Payment instance.
        """
        if not authorization_id:
            raise ValidationError("Authorization id is required")
        if not idempotency_key:
            raise ValidationError("Idempotency key is required")
        return cls(
            id=payment_id or PaymentId.generate(),
            order_id=order.id,
            order_number=order.order_number,
            authorization_id=authorization_id,
            amount=order.total,
            idempotency_key=idempotency_key,
        )

    def mark_processing(self) -> None:
        validate_payment_transition(str(self.id), self.status, PaymentStatus.PROCESSING)
        self.status = PaymentStatus.PROCESSING
        self._touch()

    def mark_succeeded(self) -> None:
        """Record a successful authorization.

        Raises:
            InvalidStateTransitionError: If the payment is already settled.
        """
        validate_payment_transition(str(self.id), self.status, PaymentStatus.SUCCEEDED)
        self.status = PaymentStatus.SUCCEEDED
        self._touch()
        self._record_processed()

    def mark_failed(self, reason: str) -> None:
        """Record a failed authorization.

        Args:
            reason: Failure reason reported by the gateway.

        Raises:
            InvalidStateTransitionError: If the payment is already settled.
        """
        validate_payment_transition(str(self.id), self.status, PaymentStatus.FAILED)
        self.status = PaymentStatus.FAILED
        self.failure_reason = reason
        self._touch()
        self._record_processed()

    def mark_refunded(self) -> None:
        validate_payment_transition(str(self.id), self.status, PaymentStatus.REFUNDED)
        self.status = PaymentStatus.REFUNDED
        self._touch()

    def _record_processed(self) -> None:
        self._record_event(
            PaymentProcessed(
                aggregate_id=str(self.id),
                aggregate_type="Payment",
                order_number=str(self.order_number),
                status=self.status.value,
                amount=str(self.amount.amount),
                currency=self.amount.currency,
                authorization_id=self.authorization_id,
                failure_reason=self.failure_reason,
            )
        )


@dataclass
class Reservation:
    """Units taken from one inventory item by one request."""

    item_id: str
    quantity: int

    @property
    def lock_key(self) -> str:
        return inventory_lock_key(self.item_id)


def reservations_for(order: Order) -> list[Reservation]:
    """Reservations implied by an order, sorted by item id."""
    return [
        Reservation(item_id=item_id, quantity=quantity)
        for item_id, quantity in sorted(order.reserved_quantities.items())
    ]


__all__ = [
    "InventoryItem",
    "Order",
    "OrderItem",
    "Payment",
    "Reservation",
    "reservations_for",
]
