"""Tests for domain entities."""

from decimal import Decimal

import pytest

from fulfillment.domain import (
    InsufficientStockError,
    InvalidStateTransitionError,
    InventoryItem,
    Money,
    Order,
    OrderConfirmed,
    OrderCreated,
    OrderItem,
    OrderStatus,
    Payment,
    PaymentProcessed,
    PaymentStatus,
    ShippingAddress,
    ValidationError,
    reservations_for,
)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def address() -> ShippingAddress:
    return ShippingAddress("12 Greenhouse Lane", "Portland", "97201", "US")


@pytest.fixture
def items() -> list[OrderItem]:
    """Two plants of A at 10.00 and one of B at 5.00."""
    return [
        OrderItem("plant-b", "Fern", 1, Money(Decimal("5.00"))),
        OrderItem("plant-a", "Monstera", 2, Money(Decimal("10.00"))),
    ]


@pytest.fixture
def order(items: list[OrderItem], address: ShippingAddress) -> Order:
    return Order.create(user_id="user-1", items=items, shipping_address=address)


# ============================================================================
# Inventory Item
# ============================================================================


class TestInventoryItem:
    """Tests for InventoryItem entity."""

    def test_reserve_decrements(self) -> None:
        item = InventoryItem("plant-a", 5)
        item.reserve(3)
        assert item.quantity == 2

    def test_reserve_exact_stock(self) -> None:
        """Reserving all remaining stock leaves zero."""
        item = InventoryItem("plant-a", 2)
        item.reserve(2)
        assert item.quantity == 0

    def test_reserve_more_than_available_raises(self) -> None:
        """Over-reservation raises and leaves stock unchanged."""
        item = InventoryItem("plant-a", 1)
        with pytest.raises(InsufficientStockError) as exc_info:
            item.reserve(2)
        assert exc_info.value.details == {"item_id": "plant-a", "requested": 2, "available": 1}
        assert item.quantity == 1

    def test_restock(self) -> None:
        item = InventoryItem("plant-a", 0)
        item.restock(4)
        assert item.quantity == 4

    def test_negative_quantity_rejected(self) -> None:
        with pytest.raises(ValidationError):
            InventoryItem("plant-a", -1)

    def test_equality_by_id(self) -> None:
        """Entities are equal when their ids match."""
        assert InventoryItem("plant-a", 1) == InventoryItem("plant-a", 9)
        assert InventoryItem("plant-a", 1) != InventoryItem("plant-b", 1)


# ============================================================================
# Order
# ============================================================================


class TestOrder:
    """Tests for Order aggregate."""

    def test_total_is_sum_of_subtotals(self, order: Order) -> None:
        """Order total equals the exact sum of line subtotals."""
        assert order.total == Money(Decimal("25.00"))
        assert [item.subtotal for item in order.items] == [
            Money(Decimal("5.00")),
            Money(Decimal("20.00")),
        ]

    def test_new_order_is_pending(self, order: Order) -> None:
        assert order.status == OrderStatus.PENDING
        assert order.cancelled_reason is None

    def test_create_records_order_created(self, order: Order) -> None:
        """Creating an order records exactly one OrderCreated event."""
        events = order.collect_events()
        assert len(events) == 1
        event = events[0]
        assert isinstance(event, OrderCreated)
        assert event.order_number == str(order.order_number)
        assert event.amount == "25.00"
        assert event.user_id == "user-1"
        assert event.item_count == 3
        assert order.collect_events() == []

    def test_lock_keys_sorted_and_distinct(self, order: Order) -> None:
        assert order.lock_keys == ["inventory:plant-a", "inventory:plant-b"]

    def test_mismatched_total_rejected(
        self, items: list[OrderItem], address: ShippingAddress, order: Order
    ) -> None:
        """An order whose total disagrees with its lines cannot exist."""
        with pytest.raises(ValidationError, match="total"):
            Order(
                id=order.id,
                order_number=order.order_number,
                user_id="user-1",
                items=items,
                total=Money(Decimal("24.99")),
                shipping_address=address,
            )

    def test_empty_order_rejected(self, address: ShippingAddress) -> None:
        with pytest.raises(ValidationError):
            Order.create(user_id="user-1", items=[], shipping_address=address)

    def test_confirm(self, order: Order) -> None:
        """Confirming a pending order records OrderConfirmed."""
        order.collect_events()
        order.confirm()
        assert order.status == OrderStatus.CONFIRMED
        events = order.collect_events()
        assert [type(e) for e in events] == [OrderConfirmed]

    def test_cancel(self, order: Order) -> None:
        order.cancel("Payment failed: card declined")
        assert order.status == OrderStatus.CANCELLED
        assert order.cancelled_reason == "Payment failed: card declined"

    def test_confirm_cancelled_order_raises(self, order: Order) -> None:
        order.cancel("gone")
        with pytest.raises(InvalidStateTransitionError):
            order.confirm()

    def test_reservations_sorted_by_item(self, order: Order) -> None:
        reservations = reservations_for(order)
        assert [(r.item_id, r.quantity) for r in reservations] == [
            ("plant-a", 2),
            ("plant-b", 1),
        ]


# ============================================================================
# Payment
# ============================================================================


class TestPayment:
    """Tests for Payment aggregate."""

    @pytest.fixture
    def payment(self, order: Order) -> Payment:
        return Payment.create(order, authorization_id="pi_1", idempotency_key="key-1")

    def test_new_payment_is_pending(self, payment: Payment, order: Order) -> None:
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == order.total
        assert payment.order_id == order.id

    def test_mark_succeeded_records_event(self, payment: Payment) -> None:
        payment.mark_succeeded()
        events = payment.collect_events()
        assert len(events) == 1
        assert isinstance(events[0], PaymentProcessed)
        assert events[0].status == "succeeded"
        assert events[0].authorization_id == "pi_1"

    def test_mark_failed_keeps_reason(self, payment: Payment) -> None:
        payment.mark_failed("card declined")
        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "card declined"
        assert payment.collect_events()[0].failure_reason == "card declined"

    def test_settled_payment_cannot_settle_again(self, payment: Payment) -> None:
        payment.mark_succeeded()
        with pytest.raises(InvalidStateTransitionError):
            payment.mark_succeeded()
        with pytest.raises(InvalidStateTransitionError):
            payment.mark_failed("late failure")

    def test_processing_then_succeeded(self, payment: Payment) -> None:
        payment.mark_processing()
        payment.mark_succeeded()
        assert payment.status == PaymentStatus.SUCCEEDED

    def test_refund_after_success(self, payment: Payment) -> None:
        payment.mark_succeeded()
        payment.mark_refunded()
        assert payment.status == PaymentStatus.REFUNDED

    def test_missing_authorization_rejected(self, order: Order) -> None:
        with pytest.raises(ValidationError):
            Payment.create(order, authorization_id="", idempotency_key="key-1")
