"""Payment reconciliation service.

Applies verified gateway callbacks to payments and orders.

Callbacks may be replayed, may arrive out of order, and may race with
each other. The payment row, read with its row lock inside the
transaction, decides whether a callback still applies: only a payment
that is not yet settled moves, so a replay changes nothing and emits
nothing.

Transition table:
    PENDING/PROCESSING + succeeded  -> payment SUCCEEDED, order CONFIRMED
    PENDING/PROCESSING + failed     -> payment FAILED, order CANCELLED,
                                       reserved stock restored
    PENDING + processing            -> payment PROCESSING
    settled + anything              -> unchanged
"""

from dataclasses import dataclass
from enum import Enum

import structlog

from fulfillment.application.event_publisher import EventPublisher
from fulfillment.application.reservation import InventoryReserver
from fulfillment.domain.entities import Order, Payment, reservations_for
from fulfillment.domain.exceptions import ReconciliationDataError
from fulfillment.domain.state_machines import OrderStatus, PaymentStatus
from fulfillment.infrastructure.locks import HeldLocks, LockCoordinator
from fulfillment.infrastructure.payment_gateway import GatewayEvent, GatewayEventKind
from fulfillment.infrastructure.unit_of_work import UnitOfWork, UnitOfWorkFactory

logger = structlog.get_logger()


class ReconciliationOutcome(str, Enum):
    """What a callback did to local state."""

    APPLIED = "applied"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"


@dataclass
class ReconciliationResult:
    """Result of applying one gateway callback."""

    outcome: ReconciliationOutcome
    event_id: str
    authorization_id: str | None = None
    order_number: str | None = None
    payment_status: PaymentStatus | None = None
    order_status: OrderStatus | None = None

    @classmethod
    def for_state(
        cls,
        outcome: ReconciliationOutcome,
        event: GatewayEvent,
        payment: Payment,
        order: Order | None = None,
    ) -> "ReconciliationResult":
        return cls(
            outcome=outcome,
            event_id=event.event_id,
            authorization_id=payment.authorization_id,
            order_number=str(payment.order_number),
            payment_status=payment.status,
            order_status=order.status if order is not None else None,
        )


class ReconciliationService:
    """Applies gateway outcomes to durable payment and order state."""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        locks: LockCoordinator,
        publisher: EventPublisher,
        reserver: InventoryReserver | None = None,
    ) -> None:
        """Initialize reconciliation service.

        Args:
            uow_factory: Factory for store transactions.
            locks: Distributed lock coordinator (for stock restoration).
            publisher: Event publisher.
            reserver: Inventory reserver used to restore stock.
        """
        self.uow_factory = uow_factory
        self.locks = locks
        self.publisher = publisher
        self.reserver = reserver or InventoryReserver()

    async def apply(self, event: GatewayEvent) -> ReconciliationResult:
        """Apply a verified gateway callback.

        Args:
            event: Verified gateway event.

        Returns:
            What the callback changed.

        Raises:
            ReconciliationDataError: If no stored payment matches the
                callback's authorization id.
        """
        if event.kind == GatewayEventKind.UNSUPPORTED:
            logger.info(
                "Ignoring unsupported gateway event",
                event_id=event.event_id,
                event_type=event.raw_type,
            )
            return ReconciliationResult(
                outcome=ReconciliationOutcome.IGNORED,
                event_id=event.event_id,
                authorization_id=event.authorization_id,
            )

        payment, order = await self._lookup(event)
        if payment.status.is_settled():
            logger.info(
                "Gateway event already applied",
                event_id=event.event_id,
                authorization_id=payment.authorization_id,
                payment_status=payment.status.value,
            )
            return ReconciliationResult.for_state(
                ReconciliationOutcome.UNCHANGED, event, payment, order
            )

        if event.kind == GatewayEventKind.AUTHORIZATION_FAILED:
            # Stock goes back to inventory, so hold the item locks.
            async with self.locks.hold_all(order.lock_keys) as held:
                return await self._apply_in_transaction(event, held)
        return await self._apply_in_transaction(event, None)

    async def _lookup(self, event: GatewayEvent) -> tuple[Payment, Order]:
        authorization_id = event.authorization_id or ""
        async with self.uow_factory() as uow:
            payment = await uow.payments.get_by_authorization_id(authorization_id)
            order = await uow.orders.get(payment.order_id) if payment is not None else None

        if payment is None or order is None:
            reason = "no payment recorded" if payment is None else "payment has no order"
            logger.error(
                "Gateway event references unknown payment",
                event_id=event.event_id,
                event_type=event.raw_type,
                authorization_id=authorization_id,
                reason=reason,
            )
            raise ReconciliationDataError(authorization_id, event.event_id, reason)
        return payment, order

    async def _apply_in_transaction(
        self,
        event: GatewayEvent,
        held: HeldLocks | None,
    ) -> ReconciliationResult:
        authorization_id = event.authorization_id or ""
        async with self.uow_factory() as uow:
            payment = await uow.payments.get_by_authorization_id(authorization_id, for_update=True)
            if payment is None:
                raise ReconciliationDataError(
                    authorization_id, event.event_id, "payment disappeared"
                )
            order = await uow.orders.get_for_update(payment.order_id)
            if order is None:
                raise ReconciliationDataError(
                    authorization_id, event.event_id, "payment has no order"
                )

            if payment.status.is_settled():
                logger.info(
                    "Gateway event lost race to an earlier callback",
                    event_id=event.event_id,
                    authorization_id=authorization_id,
                    payment_status=payment.status.value,
                )
                return ReconciliationResult.for_state(
                    ReconciliationOutcome.UNCHANGED, event, payment, order
                )

            applied = await self._transition(uow, event, payment, order)
            if not applied:
                return ReconciliationResult.for_state(
                    ReconciliationOutcome.UNCHANGED, event, payment, order
                )

            await uow.payments.save(payment)
            await uow.orders.save(order)
            if held is not None:
                await held.ensure_held()
            await uow.commit()

        logger.info(
            "Payment reconciled",
            event_id=event.event_id,
            authorization_id=authorization_id,
            order_number=str(order.order_number),
            payment_status=payment.status.value,
            order_status=order.status.value,
        )
        await self.publisher.publish_all(order.collect_events() + payment.collect_events())
        return ReconciliationResult.for_state(ReconciliationOutcome.APPLIED, event, payment, order)

    async def _transition(
        self,
        uow: UnitOfWork,
        event: GatewayEvent,
        payment: Payment,
        order: Order,
    ) -> bool:
        """Apply the state change for event; False if nothing changes."""
        if event.kind == GatewayEventKind.AUTHORIZATION_PROCESSING:
            if payment.status != PaymentStatus.PENDING:
                return False
            payment.mark_processing()
            return True

        if event.kind == GatewayEventKind.AUTHORIZATION_SUCCEEDED:
            payment.mark_succeeded()
            if order.status == OrderStatus.PENDING:
                order.confirm()
            else:
                logger.warning(
                    "Payment succeeded for an order that is no longer pending",
                    order_number=str(order.order_number),
                    order_status=order.status.value,
                )
            return True

        reason = event.failure_reason or "Unknown error"
        payment.mark_failed(reason)
        if order.status == OrderStatus.PENDING:
            order.cancel(f"Payment failed: {reason}")
            await self.reserver.restore(uow, reservations_for(order))
        return True
