"""In-memory durable store.

Single-process stand-in for PostgreSQL used by tests and local runs.
It keeps the properties the services rely on: writes are invisible until
commit, rows read for update are exclusively locked until the unit of
work ends, and unique constraints are enforced at insert and at commit.
"""

import asyncio
import copy
from typing import TypeVar

from fulfillment.domain.base import AggregateRoot
from fulfillment.domain.entities import InventoryItem, Order, Payment
from fulfillment.domain.exceptions import DuplicateRecordError, NotFoundError
from fulfillment.domain.value_objects import OrderId
from fulfillment.infrastructure.repositories import (
    InventoryRepository,
    OrderRepository,
    PaymentRepository,
)
from fulfillment.infrastructure.unit_of_work import UnitOfWork

E = TypeVar("E")


def _snapshot(entity: E) -> E:
    """Copy an entity, dropping any events recorded on the copy."""
    copied = copy.deepcopy(entity)
    if isinstance(copied, AggregateRoot):
        copied.collect_events()
    return copied


# ============================================================================
# Store
# ============================================================================


class InMemoryStore:
    """Committed state shared by all in-memory units of work."""

    def __init__(self) -> None:
        self.inventory: dict[str, InventoryItem] = {}
        self.orders: dict[str, Order] = {}
        self.payments: dict[str, Payment] = {}
        self._row_locks: dict[str, asyncio.Lock] = {}

    def row_lock(self, key: str) -> asyncio.Lock:
        if key not in self._row_locks:
            self._row_locks[key] = asyncio.Lock()
        return self._row_locks[key]

    def seed_inventory(self, item_id: str, quantity: int) -> None:
        """Set the committed quantity of an inventory item."""
        self.inventory[item_id] = InventoryItem(id=item_id, quantity=quantity)

    def quantity_of(self, item_id: str) -> int:
        return self.inventory[item_id].quantity

    def unit_of_work(self) -> "InMemoryUnitOfWork":
        return InMemoryUnitOfWork(self)


# ============================================================================
# Unit of Work
# ============================================================================


class InMemoryUnitOfWork(UnitOfWork):
    """Unit of work over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        super().__init__()
        self.store = store
        self.inventory = InMemoryInventoryRepository(self)
        self.orders = InMemoryOrderRepository(self)
        self.payments = InMemoryPaymentRepository(self)
        self._held: dict[str, asyncio.Lock] = {}
        self._reset()

    def _reset(self) -> None:
        self.pending_inventory: dict[str, InventoryItem] = {}
        self.pending_orders: dict[str, Order] = {}
        self.pending_payments: dict[str, Payment] = {}
        self.deleted_orders: set[str] = set()

    async def lock_row(self, key: str) -> None:
        """Hold the row lock for key until this unit of work ends."""
        if key in self._held:
            return
        lock = self.store.row_lock(key)
        await lock.acquire()
        self._held[key] = lock

    # -------------------------------------------------------------------------
    # Visible state (committed + this transaction's writes)
    # -------------------------------------------------------------------------

    def visible_orders(self) -> dict[str, Order]:
        orders = {**self.store.orders, **self.pending_orders}
        for order_id in self.deleted_orders:
            orders.pop(order_id, None)
        return orders

    def visible_payments(self) -> dict[str, Payment]:
        payments = {**self.store.payments, **self.pending_payments}
        return {
            payment_id: payment
            for payment_id, payment in payments.items()
            if str(payment.order_id) not in self.deleted_orders
        }

    def check_unique_order(self, order: Order, orders: dict[str, Order]) -> None:
        for other in orders.values():
            if other.id != order.id and other.order_number == order.order_number:
                raise DuplicateRecordError(
                    f"Order number {order.order_number} already exists",
                    details={"order_number": str(order.order_number)},
                )

    def check_unique_payment(self, payment: Payment, payments: dict[str, Payment]) -> None:
        for other in payments.values():
            if other.id == payment.id:
                continue
            for field_name in ("order_id", "authorization_id", "idempotency_key"):
                if getattr(other, field_name) == getattr(payment, field_name):
                    raise DuplicateRecordError(
                        f"Payment with this {field_name} already exists",
                        details={field_name: str(getattr(payment, field_name))},
                    )

    # -------------------------------------------------------------------------
    # Transaction control
    # -------------------------------------------------------------------------

    async def _begin(self) -> None:
        self._reset()

    async def _commit(self) -> None:
        committed_orders = {
            order_id: order
            for order_id, order in self.store.orders.items()
            if order_id not in self.pending_orders
        }
        for order in self.pending_orders.values():
            self.check_unique_order(order, committed_orders)
        committed_payments = {
            payment_id: payment
            for payment_id, payment in self.store.payments.items()
            if payment_id not in self.pending_payments
        }
        for payment in self.pending_payments.values():
            self.check_unique_payment(payment, committed_payments)

        self.store.inventory.update(self.pending_inventory)
        self.store.orders.update(self.pending_orders)
        self.store.payments.update(self.pending_payments)
        for order_id in self.deleted_orders:
            self.store.orders.pop(order_id, None)
            for payment_id, payment in list(self.store.payments.items()):
                if str(payment.order_id) == order_id:
                    del self.store.payments[payment_id]
        self._reset()

    async def rollback(self) -> None:
        self._reset()

    async def _close(self) -> None:
        for lock in self._held.values():
            lock.release()
        self._held.clear()


# ============================================================================
# Repositories
# ============================================================================


class InMemoryInventoryRepository(InventoryRepository):
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self.uow = uow

    async def get(self, item_id: str) -> InventoryItem | None:
        item = self.uow.pending_inventory.get(item_id) or self.uow.store.inventory.get(item_id)
        return _snapshot(item) if item is not None else None

    async def get_for_update(self, item_id: str) -> InventoryItem | None:
        await self.uow.lock_row(f"inventory_items:{item_id}")
        return await self.get(item_id)

    async def add(self, item: InventoryItem) -> None:
        if await self.get(item.id) is not None:
            raise DuplicateRecordError(
                f"Inventory item {item.id} already exists",
                details={"item_id": item.id},
            )
        self.uow.pending_inventory[item.id] = _snapshot(item)

    async def save(self, item: InventoryItem) -> None:
        if await self.get(item.id) is None:
            raise NotFoundError("InventoryItem", item.id)
        self.uow.pending_inventory[item.id] = _snapshot(item)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self.uow = uow

    async def add(self, order: Order) -> None:
        orders = self.uow.visible_orders()
        if str(order.id) in orders:
            raise DuplicateRecordError(
                f"Order {order.id} already exists",
                details={"order_id": str(order.id)},
            )
        self.uow.check_unique_order(order, orders)
        self.uow.pending_orders[str(order.id)] = _snapshot(order)

    async def get(self, order_id: OrderId) -> Order | None:
        order = self.uow.visible_orders().get(str(order_id))
        return _snapshot(order) if order is not None else None

    async def get_for_update(self, order_id: OrderId) -> Order | None:
        await self.uow.lock_row(f"orders:{order_id}")
        return await self.get(order_id)

    async def get_by_number(self, order_number: str) -> Order | None:
        for order in self.uow.visible_orders().values():
            if str(order.order_number) == order_number:
                return _snapshot(order)
        return None

    async def list_by_user(self, user_id: str) -> list[Order]:
        orders = [
            _snapshot(order)
            for order in self.uow.visible_orders().values()
            if order.user_id == user_id
        ]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def save(self, order: Order) -> None:
        if str(order.id) not in self.uow.visible_orders():
            raise NotFoundError("Order", str(order.id))
        self.uow.pending_orders[str(order.id)] = _snapshot(order)

    async def delete(self, order_id: OrderId) -> None:
        self.uow.pending_orders.pop(str(order_id), None)
        self.uow.deleted_orders.add(str(order_id))


class InMemoryPaymentRepository(PaymentRepository):
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self.uow = uow

    async def add(self, payment: Payment) -> None:
        payments = self.uow.visible_payments()
        self.uow.check_unique_payment(payment, payments)
        self.uow.pending_payments[str(payment.id)] = _snapshot(payment)

    async def get_by_order(self, order_id: OrderId) -> Payment | None:
        for payment in self.uow.visible_payments().values():
            if payment.order_id == order_id:
                return _snapshot(payment)
        return None

    async def get_by_authorization_id(
        self,
        authorization_id: str,
        for_update: bool = False,
    ) -> Payment | None:
        payment = self._find(authorization_id)
        if payment is None or not for_update:
            return payment
        await self.uow.lock_row(f"payments:{payment.id}")
        # Re-read: another transaction may have committed while we waited.
        return self._find(authorization_id)

    async def save(self, payment: Payment) -> None:
        if str(payment.id) not in self.uow.visible_payments():
            raise NotFoundError("Payment", str(payment.id))
        self.uow.pending_payments[str(payment.id)] = _snapshot(payment)

    def _find(self, authorization_id: str) -> Payment | None:
        for payment in self.uow.visible_payments().values():
            if payment.authorization_id == authorization_id:
                return _snapshot(payment)
        return None
