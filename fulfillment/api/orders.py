"""Order API endpoints.

Provides endpoints for order placement and lookup:
- POST /orders - place an order (reserve stock, authorize payment)
- GET /orders - list the caller's orders
- GET /orders/{order_number} - order details and payment status
"""

from fastapi import APIRouter, status

from fulfillment.api.dependencies import ContainerDep, UserIdDep
from fulfillment.api.schemas import (
    CreateOrderRequest,
    ErrorResponse,
    OrderResponse,
    OrdersListResponse,
)
from fulfillment.domain.value_objects import OrderLine, ShippingAddress

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        404: {"model": ErrorResponse, "description": "Unknown item"},
        409: {"model": ErrorResponse, "description": "Insufficient stock"},
        422: {"model": ErrorResponse, "description": "Validation error"},
        502: {"model": ErrorResponse, "description": "Payment gateway error"},
        503: {"model": ErrorResponse, "description": "Lock wait timed out"},
    },
    summary="Place an order",
)
async def create_order(
    body: CreateOrderRequest,
    user_id: UserIdDep,
    container: ContainerDep,
) -> OrderResponse:
    """Place an order.

    Reserves stock for every line, records the order as pending and
    opens a payment authorization. The order is confirmed or cancelled
    later, when the payment gateway reports the outcome.
    """
    lines = [OrderLine(item_id=line.item_id, quantity=line.quantity) for line in body.items]
    address = ShippingAddress(
        address=body.shipping_address.address,
        city=body.shipping_address.city,
        postal_code=body.shipping_address.postal_code,
        country=body.shipping_address.country,
    )
    details = await container.order_service.create_order(user_id, lines, address)
    return OrderResponse.from_details(details)


@router.get(
    "",
    response_model=OrdersListResponse,
    summary="List my orders",
)
async def list_orders(
    user_id: UserIdDep,
    container: ContainerDep,
) -> OrdersListResponse:
    """List the caller's orders, newest first."""
    orders = await container.order_service.list_user_orders(user_id)
    items = [OrderResponse.from_details(details) for details in orders]
    return OrdersListResponse(items=items, total=len(items))


@router.get(
    "/{order_number}",
    response_model=OrderResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Order not found"},
    },
    summary="Get order details",
)
async def get_order(
    order_number: str,
    user_id: UserIdDep,
    container: ContainerDep,
) -> OrderResponse:
    """Get an order with its payment status.

    Orders belonging to other users are reported as not found.
    """
    details = await container.order_service.get_order(order_number, user_id)
    return OrderResponse.from_details(details)
