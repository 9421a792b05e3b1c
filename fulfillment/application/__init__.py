"""Application layer module.

Contains application services that orchestrate domain operations:
order placement, payment authorization, reconciliation and event
publication.
"""

from fulfillment.application.event_publisher import EventPublisher
from fulfillment.application.order_builder import OrderAggregateBuilder
from fulfillment.application.order_service import OrderDetails, OrderService
from fulfillment.application.payment_service import PaymentService
from fulfillment.application.reconciliation_service import (
    ReconciliationOutcome,
    ReconciliationResult,
    ReconciliationService,
)
from fulfillment.application.reservation import InventoryReserver

__all__ = [
    "EventPublisher",
    "InventoryReserver",
    "OrderAggregateBuilder",
    "OrderDetails",
    "OrderService",
    "PaymentService",
    "ReconciliationOutcome",
    "ReconciliationResult",
    "ReconciliationService",
]
