"""Repositories for inventory, orders and payments.

Repositories translate between domain entities and the durable store.
Each repository is bound to the session of one unit of work; nothing is
visible to other transactions until the unit of work commits.

Example usage:
    async with uow_factory() as uow:
        item = await uow.inventory.get_for_update("plant-1")
        item.reserve(2)
        await uow.inventory.save(item)
        await uow.commit()
"""

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.domain.entities import InventoryItem, Order, OrderItem, Payment
from fulfillment.domain.exceptions import DuplicateRecordError, NotFoundError
from fulfillment.domain.state_machines import OrderStatus, PaymentStatus
from fulfillment.domain.value_objects import (
    Money,
    OrderId,
    OrderNumber,
    PaymentId,
    ShippingAddress,
)
from fulfillment.infrastructure.models import (
    InventoryItemModel,
    OrderItemModel,
    OrderModel,
    PaymentModel,
)


# ============================================================================
# Repository Interfaces
# ============================================================================


class InventoryRepository(ABC):
    """Access to inventory rows."""

    @abstractmethod
    async def get(self, item_id: str) -> InventoryItem | None:
        """Read an inventory item without locking it."""

    @abstractmethod
    async def get_for_update(self, item_id: str) -> InventoryItem | None:
        """Read an inventory item and hold its row write lock.

        The row lock is held until the unit of work ends.
        """

    @abstractmethod
    async def add(self, item: InventoryItem) -> None:
        """Insert a new inventory item."""

    @abstractmethod
    async def save(self, item: InventoryItem) -> None:
        """Write back a changed inventory quantity."""


class OrderRepository(ABC):
    """Access to orders and their line items."""

    @abstractmethod
    async def add(self, order: Order) -> None:
        """Insert a new order.

        Raises:
            DuplicateRecordError: If the order number is already taken.
        """

    @abstractmethod
    async def get(self, order_id: OrderId) -> Order | None:
        pass

    @abstractmethod
    async def get_for_update(self, order_id: OrderId) -> Order | None:
        pass

    @abstractmethod
    async def get_by_number(self, order_number: str) -> Order | None:
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> list[Order]:
        """List a user's orders, newest first."""

    @abstractmethod
    async def save(self, order: Order) -> None:
        """Write back order status changes."""

    @abstractmethod
    async def delete(self, order_id: OrderId) -> None:
        """Delete a provisional order and its line items."""


class PaymentRepository(ABC):
    """Access to payment records."""

    @abstractmethod
    async def add(self, payment: Payment) -> None:
        """Insert a new payment.

        Raises:
            DuplicateRecordError: If the order already has a payment or the
                authorization id or idempotency key is already recorded.
        """

    @abstractmethod
    async def get_by_order(self, order_id: OrderId) -> Payment | None:
        pass

    @abstractmethod
    async def get_by_authorization_id(
        self,
        authorization_id: str,
        for_update: bool = False,
    ) -> Payment | None:
        """Look up a payment by its gateway authorization id.

        Args:
            authorization_id: Gateway authorization identifier.
            for_update: Hold the row write lock until the unit of work ends.
        """

    @abstractmethod
    async def save(self, payment: Payment) -> None:
        pass


# ============================================================================
# Mapping Helpers
# ============================================================================


async def flush_or_raise(session: AsyncSession, entity_type: str) -> None:
    """Flush pending writes, translating unique violations.

    Raises:
        DuplicateRecordError: If a unique constraint is violated.
    """
    try:
        await session.flush()
    except IntegrityError as e:
        raise DuplicateRecordError(
            f"Duplicate {entity_type} record",
            details={"entity_type": entity_type, "error": str(e.orig)},
        ) from e


def _order_to_entity(model: OrderModel) -> Order:
    items = [
        OrderItem(
            item_id=item.item_id,
            item_name=item.item_name,
            quantity=item.quantity,
            price_at_purchase=Money(item.price_at_purchase, item.currency),
        )
        for item in model.items
    ]
    return Order(
        id=OrderId.from_string(model.id),
        order_number=OrderNumber(model.order_number),
        user_id=model.user_id,
        items=items,
        total=Money(model.total_amount, model.currency),
        shipping_address=ShippingAddress(
            address=model.shipping_address,
            city=model.shipping_city,
            postal_code=model.shipping_postal_code,
            country=model.shipping_country,
        ),
        status=OrderStatus(model.status),
        cancelled_reason=model.cancelled_reason,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _order_to_model(order: Order) -> OrderModel:
    return OrderModel(
        id=str(order.id),
        order_number=str(order.order_number),
        user_id=order.user_id,
        status=order.status.value,
        total_amount=order.total.amount,
        currency=order.total.currency,
        shipping_address=order.shipping_address.address,
        shipping_city=order.shipping_address.city,
        shipping_postal_code=order.shipping_address.postal_code,
        shipping_country=order.shipping_address.country,
        cancelled_reason=order.cancelled_reason,
        created_at=order.created_at,
        updated_at=order.updated_at,
        items=[
            OrderItemModel(
                position=position,
                item_id=item.item_id,
                item_name=item.item_name,
                quantity=item.quantity,
                price_at_purchase=item.price_at_purchase.amount,
                currency=item.price_at_purchase.currency,
            )
            for position, item in enumerate(order.items)
        ],
    )


def _payment_to_entity(model: PaymentModel) -> Payment:
    return Payment(
        id=PaymentId.from_string(model.id),
        order_id=OrderId.from_string(model.order_id),
        order_number=OrderNumber(model.order_number),
        authorization_id=model.authorization_id,
        amount=Money(model.amount, model.currency),
        idempotency_key=model.idempotency_key,
        status=PaymentStatus(model.status),
        failure_reason=model.failure_reason,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


# ============================================================================
# SQLAlchemy Repositories
# ============================================================================


class SqlInventoryRepository(InventoryRepository):
    """Inventory repository backed by PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def get(self, item_id: str) -> InventoryItem | None:
        model = await self.session.get(InventoryItemModel, item_id)
        if model is None:
            return None
        return InventoryItem(id=model.id, quantity=model.quantity)

    async def get_for_update(self, item_id: str) -> InventoryItem | None:
        query = (
            select(InventoryItemModel)
            .where(InventoryItemModel.id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return InventoryItem(id=model.id, quantity=model.quantity)

    async def add(self, item: InventoryItem) -> None:
        self.session.add(InventoryItemModel(id=item.id, quantity=item.quantity))
        await flush_or_raise(self.session, "InventoryItem")

    async def save(self, item: InventoryItem) -> None:
        model = await self.session.get(InventoryItemModel, item.id)
        if model is None:
            raise NotFoundError("InventoryItem", item.id)
        model.quantity = item.quantity
        await flush_or_raise(self.session, "InventoryItem")


class SqlOrderRepository(OrderRepository):
    """Order repository backed by PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, order: Order) -> None:
        self.session.add(_order_to_model(order))
        await flush_or_raise(self.session, "Order")

    async def get(self, order_id: OrderId) -> Order | None:
        model = await self.session.get(OrderModel, str(order_id))
        return _order_to_entity(model) if model is not None else None

    async def get_for_update(self, order_id: OrderId) -> Order | None:
        query = (
            select(OrderModel)
            .where(OrderModel.id == str(order_id))
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        model = result.scalar_one_or_none()
        return _order_to_entity(model) if model is not None else None

    async def get_by_number(self, order_number: str) -> Order | None:
        query = select(OrderModel).where(OrderModel.order_number == order_number)
        result = await self.session.execute(query)
        model = result.scalar_one_or_none()
        return _order_to_entity(model) if model is not None else None

    async def list_by_user(self, user_id: str) -> list[Order]:
        query = (
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc())
        )
        result = await self.session.execute(query)
        return [_order_to_entity(model) for model in result.scalars().all()]

    async def save(self, order: Order) -> None:
        model = await self.session.get(OrderModel, str(order.id))
        if model is None:
            raise NotFoundError("Order", str(order.id))
        model.status = order.status.value
        model.cancelled_reason = order.cancelled_reason
        model.updated_at = order.updated_at
        await flush_or_raise(self.session, "Order")

    async def delete(self, order_id: OrderId) -> None:
        model = await self.session.get(OrderModel, str(order_id))
        if model is None:
            return
        await self.session.delete(model)
        await self.session.flush()


class SqlPaymentRepository(PaymentRepository):
    """Payment repository backed by PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def add(self, payment: Payment) -> None:
        self.session.add(
            PaymentModel(
                id=str(payment.id),
                order_id=str(payment.order_id),
                order_number=str(payment.order_number),
                authorization_id=payment.authorization_id,
                idempotency_key=payment.idempotency_key,
                amount=payment.amount.amount,
                currency=payment.amount.currency,
                status=payment.status.value,
                failure_reason=payment.failure_reason,
                created_at=payment.created_at,
                updated_at=payment.updated_at,
            )
        )
        await flush_or_raise(self.session, "Payment")

    async def get_by_order(self, order_id: OrderId) -> Payment | None:
        query = select(PaymentModel).where(PaymentModel.order_id == str(order_id))
        result = await self.session.execute(query)
        model = result.scalar_one_or_none()
        return _payment_to_entity(model) if model is not None else None

    async def get_by_authorization_id(
        self,
        authorization_id: str,
        for_update: bool = False,
    ) -> Payment | None:
        query = select(PaymentModel).where(PaymentModel.authorization_id == authorization_id)
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        model = result.scalar_one_or_none()
        return _payment_to_entity(model) if model is not None else None

    async def save(self, payment: Payment) -> None:
        model = await self.session.get(PaymentModel, str(payment.id))
        if model is None:
            raise NotFoundError("Payment", str(payment.id))
        model.status = payment.status.value
        model.failure_reason = payment.failure_reason
        model.updated_at = payment.updated_at
        await flush_or_raise(self.session, "Payment")
