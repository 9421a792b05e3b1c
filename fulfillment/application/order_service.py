"""Order application service.

Places orders as a two-phase saga:

1. Under the distributed locks for every item in the order, and inside
   one store transaction: reserve stock, insert the PENDING order,
   re-check lock ownership, commit. Locks are released on exit.
2. Outside the locks: create the payment authorization.

If phase 2 fails or the request is cancelled, a compensation step
re-acquires the item locks, restores the reserved stock and deletes the
provisional order in one transaction. Events are published only after
both phases succeed.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from fulfillment.application.event_publisher import EventPublisher
from fulfillment.application.order_builder import OrderAggregateBuilder, merge_lines
from fulfillment.application.payment_service import PaymentService
from fulfillment.application.reservation import InventoryReserver
from fulfillment.domain.entities import Order, Payment, Reservation, reservations_for
from fulfillment.domain.exceptions import LockTimeoutError, NotFoundError
from fulfillment.domain.value_objects import OrderLine, ShippingAddress
from fulfillment.infrastructure.catalog_client import CatalogClient
from fulfillment.infrastructure.locks import LockCoordinator
from fulfillment.infrastructure.unit_of_work import UnitOfWorkFactory

logger = structlog.get_logger()


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class OrderDetails:
    """An order together with its payment, if one is recorded."""

    order: Order
    payment: Payment | None = None


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Service for placing and querying orders."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        locks: LockCoordinator,
        catalog: CatalogClient,
        payments: PaymentService,
        publisher: EventPublisher,
        builder: OrderAggregateBuilder | None = None,
        reserver: InventoryReserver | None = None,
        compensation_attempts: int = 3,
    ) -> None:
        """Initialize order service.

        Args:
            uow_factory: Factory for store transactions.
            locks: Distributed lock coordinator.
            catalog: Catalog client for names and prices.
            payments: Payment service for authorizations.
            publisher: Event publisher.
            builder: Order aggregate builder.
            reserver: Inventory reserver.
            compensation_attempts: Lock attempts for compensation.
        """
        self.uow_factory = uow_factory
        self.locks = locks
        self.catalog = catalog
        self.payments = payments
        self.publisher = publisher
        self.builder = builder or OrderAggregateBuilder()
        self.reserver = reserver or InventoryReserver()
        self.compensation_attempts = max(1, compensation_attempts)

    async def create_order(
        self,
        user_id: str,
        lines: Iterable[OrderLine],
        shipping_address: ShippingAddress,
    ) -> OrderDetails:
        """Reserve stock, record a PENDING order and initiate payment.

        Args:
            user_id: Owning user reference.
            lines: Requested lines.
            shipping_address: Shipping address.

        Returns:
            The PENDING order and its PENDING payment.

        Raises:
            ValidationError: If the request is malformed.
            NotFoundError: If an item is unknown.
            CatalogUnavailableError: If the catalog cannot answer.
            LockTimeoutError: If an item lock could not be acquired in time.
            InsufficientStockError: If any item lacks stock.
            GatewayError: If the authorization failed (after compensation).
        """
        merged = merge_lines(lines)
        catalog_items = await self.catalog.get_items(line.item_id for line in merged)
        order = self.builder.build(user_id, merged, catalog_items, shipping_address)
        reservations = reservations_for(order)

        await self._reserve(order, reservations)
        logger.info(
            "Order reserved",
            order_number=str(order.order_number),
            user_id=user_id,
            total=str(order.total.amount),
            currency=order.total.currency,
        )

        try:
            payment = await self.payments.authorize(order)
        except asyncio.CancelledError:
            logger.warning(
                "Order creation cancelled, compensating",
                order_number=str(order.order_number),
            )
            await asyncio.shield(self._compensate(order, reservations))
            raise
        except Exception as e:
            logger.error(
                "Payment authorization failed, compensating",
                order_number=str(order.order_number),
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._compensate(order, reservations)
            raise

        await self.publisher.publish_all(order.collect_events())
        return OrderDetails(order=order, payment=payment)

    async def get_order(self, order_number: str, user_id: str) -> OrderDetails:
        """Get one of the user's orders.

        Raises:
            NotFoundError: If the order does not exist or belongs to
                another user.
        """
        async with self.uow_factory() as uow:
            order = await uow.orders.get_by_number(order_number)
            if order is None or order.user_id != user_id:
                raise NotFoundError("Order", order_number)
            payment = await uow.payments.get_by_order(order.id)
        return OrderDetails(order=order, payment=payment)

    async def list_user_orders(self, user_id: str) -> list[OrderDetails]:
        """List the user's orders, newest first."""
        async with self.uow_factory() as uow:
            orders = await uow.orders.list_by_user(user_id)
            return [
                OrderDetails(order=order, payment=await uow.payments.get_by_order(order.id))
                for order in orders
            ]

    # -------------------------------------------------------------------------
    # Saga steps
    # -------------------------------------------------------------------------

    async def _reserve(self, order: Order, reservations: list[Reservation]) -> None:
        async with self.locks.hold_all(order.lock_keys) as held:
            async with self.uow_factory() as uow:
                await self.reserver.reserve_all(uow, reservations)
                await uow.orders.add(order)
                await held.ensure_held()
                await uow.commit()

    async def _compensate(self, order: Order, reservations: list[Reservation]) -> None:
        """Restore reserved stock and delete the provisional order.

        Retries lock acquisition; a failure after the last attempt is
        logged for manual repair and does not mask the original error.
        """
        repair = {
            "order_id": str(order.id),
            "order_number": str(order.order_number),
            "reservations": [
                {"item_id": r.item_id, "quantity": r.quantity} for r in reservations
            ],
        }
        for attempt in range(1, self.compensation_attempts + 1):
            try:
                async with self.locks.hold_all(order.lock_keys):
                    async with self.uow_factory() as uow:
                        if await uow.orders.get_for_update(order.id) is None:
                            logger.info(
                                "Order already compensated",
                                order_number=str(order.order_number),
                            )
                            return
                        await self.reserver.restore(uow, reservations)
                        await uow.orders.delete(order.id)
                        await uow.commit()
            except LockTimeoutError as e:
                logger.warning(
                    "Compensation could not acquire locks",
                    order_number=str(order.order_number),
                    attempt=attempt,
                    key=e.details.get("key"),
                )
                continue
            except Exception:
                logger.exception(
                    "Compensation failed; stock and provisional order need manual repair",
                    attempt=attempt,
                    **repair,
                )
                return

            order.collect_events()
            logger.info(
                "Order creation compensated",
                order_number=str(order.order_number),
                restored_items=[r.item_id for r in reservations],
            )
            return

        logger.error(
            "Compensation gave up; stock and provisional order need manual repair",
            attempts=self.compensation_attempts,
            **repair,
        )
