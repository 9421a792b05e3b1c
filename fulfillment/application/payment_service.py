"""Payment application service.

Initiates the gateway authorization for an order and records it in the
payment ledger. Runs outside the inventory locks.
"""

from uuid import uuid4

import structlog

from fulfillment.domain.entities import Order, Payment
from fulfillment.infrastructure.payment_gateway import PaymentGateway
from fulfillment.infrastructure.unit_of_work import UnitOfWorkFactory

logger = structlog.get_logger()


class PaymentService:
    """Creates payment authorizations and records them in the ledger."""

    def __init__(self, uow_factory: UnitOfWorkFactory, gateway: PaymentGateway) -> None:
        """Initialize payment service.

        Args:
            uow_factory: Factory for store transactions.
            gateway: Payment gateway adapter.
        """
        self.uow_factory = uow_factory
        self.gateway = gateway

    async def authorize(self, order: Order) -> Payment:
        """Create the payment authorization for an order.

        An order has at most one payment: if one is already recorded it
        is returned unchanged.

        Args:
            order: Committed PENDING order.

        Returns:
            The order's PENDING payment.

        Raises:
            GatewayError: If the gateway rejects or fails the request.
            DuplicateRecordError: If a payment for the order was recorded
                concurrently.
        """
        async with self.uow_factory() as uow:
            existing = await uow.payments.get_by_order(order.id)
        if existing is not None:
            logger.info(
                "Payment already recorded for order",
                order_number=str(order.order_number),
                authorization_id=existing.authorization_id,
            )
            return existing

        idempotency_key = str(uuid4())
        authorization = await self.gateway.create_authorization(
            amount_minor=order.total.to_minor_units(),
            currency=order.total.currency,
            metadata={
                "order_id": str(order.id),
                "order_number": str(order.order_number),
            },
            idempotency_key=idempotency_key,
        )

        payment = Payment.create(
            order=order,
            authorization_id=authorization.authorization_id,
            idempotency_key=idempotency_key,
        )
        async with self.uow_factory() as uow:
            await uow.payments.add(payment)
            await uow.commit()

        logger.info(
            "Payment recorded",
            order_number=str(order.order_number),
            authorization_id=payment.authorization_id,
            amount=str(payment.amount.amount),
            currency=payment.amount.currency,
        )
        return payment
