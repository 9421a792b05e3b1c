"""API schemas for the fulfillment API.

Pydantic models for request/response validation and serialization.
Amounts are exact decimals serialized as strings.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from fulfillment.application.order_service import OrderDetails
from fulfillment.domain.entities import Payment


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | list[Any] = Field(
        default_factory=dict, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


# ============================================================================
# Order Schemas
# ============================================================================


class ShippingAddressSchema(BaseModel):
    """Shipping address."""

    address: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=1, max_length=100)


class OrderLineSchema(BaseModel):
    """Requested purchase of one item."""

    item_id: str = Field(..., min_length=1, max_length=100, description="Inventory item ID")
    quantity: int = Field(..., gt=0, description="Units to order")


class CreateOrderRequest(BaseModel):
    """Request to place an order."""

    items: list[OrderLineSchema] = Field(..., min_length=1)
    shipping_address: ShippingAddressSchema


class OrderItemSchema(BaseModel):
    """Line item in an order response."""

    item_id: str
    item_name: str
    quantity: int
    price_at_purchase: Decimal
    subtotal: Decimal


class PaymentInfoSchema(BaseModel):
    """Payment information for an order."""

    authorization_id: str
    status: str
    amount: Decimal
    currency: str
    failure_reason: str | None = None

    @classmethod
    def from_payment(cls, payment: Payment) -> "PaymentInfoSchema":
        return cls(
            authorization_id=payment.authorization_id,
            status=payment.status.value,
            amount=payment.amount.amount,
            currency=payment.amount.currency,
            failure_reason=payment.failure_reason,
        )


class OrderResponse(BaseModel):
    """Full order details."""

    order_id: str
    order_number: str
    status: str
    total_amount: Decimal
    currency: str
    items: list[OrderItemSchema]
    shipping_address: ShippingAddressSchema
    payment: PaymentInfoSchema | None = None
    cancelled_reason: str | None = None
    created_at: datetime

    @classmethod
    def from_details(cls, details: OrderDetails) -> "OrderResponse":
        """Convert an order and its payment to a response."""
        order = details.order
        return cls(
            order_id=str(order.id),
            order_number=str(order.order_number),
            status=order.status.value,
            total_amount=order.total.amount,
            currency=order.total.currency,
            items=[
                OrderItemSchema(
                    item_id=item.item_id,
                    item_name=item.item_name,
                    quantity=item.quantity,
                    price_at_purchase=item.price_at_purchase.amount,
                    subtotal=item.subtotal.amount,
                )
                for item in order.items
            ],
            shipping_address=ShippingAddressSchema(
                address=order.shipping_address.address,
                city=order.shipping_address.city,
                postal_code=order.shipping_address.postal_code,
                country=order.shipping_address.country,
            ),
            payment=(
                PaymentInfoSchema.from_payment(details.payment)
                if details.payment is not None
                else None
            ),
            cancelled_reason=order.cancelled_reason,
            created_at=order.created_at,
        )


class OrdersListResponse(BaseModel):
    """A user's orders."""

    items: list[OrderResponse]
    total: int


# ============================================================================
# Webhook Schemas
# ============================================================================


class WebhookResponse(BaseModel):
    """Response to webhook delivery."""

    received: bool = Field(..., description="Whether the callback was accepted")
    event_id: str = Field(..., description="Gateway event ID")
    status: str = Field(..., description="applied, unchanged, ignored or rejected")
    message: str = Field(default="", description="Status message")
