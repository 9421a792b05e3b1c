"""Order aggregate builder.

Turns a validated purchase request plus a catalog snapshot into a
PENDING Order with snapshot prices. Pure: no I/O, no locks.
"""

from collections.abc import Iterable, Mapping

import structlog

from fulfillment.domain.entities import Order, OrderItem
from fulfillment.domain.exceptions import NotFoundError, ValidationError
from fulfillment.domain.value_objects import OrderLine, ShippingAddress
from fulfillment.infrastructure.catalog_client import CatalogItem

logger = structlog.get_logger()


def merge_lines(lines: Iterable[OrderLine]) -> list[OrderLine]:
    """Merge lines for the same item, keeping first-seen order.

    Args:
        lines: Requested order lines.

    Returns:
        One line per distinct item id.

    Raises:
        ValidationError: If no lines were given.
    """
    quantities: dict[str, int] = {}
    for line in lines:
        quantities[line.item_id] = quantities.get(line.item_id, 0) + line.quantity
    if not quantities:
        raise ValidationError("Order must contain at least one item", details={"field": "items"})
    return [OrderLine(item_id=item_id, quantity=quantity) for item_id, quantity in quantities.items()]


class OrderAggregateBuilder:
    """Builds Order aggregates from requests and catalog snapshots."""

    def build(
        self,
        user_id: str,
        lines: Iterable[OrderLine],
        catalog_items: Mapping[str, CatalogItem],
        shipping_address: ShippingAddress,
    ) -> Order:
        """Build a PENDING order.

        Args:
            user_id: Owning user reference.
            lines: Requested lines (duplicates are merged).
            catalog_items: Catalog snapshot keyed by item id.
            shipping_address: Validated shipping address.

        Returns:
            New Order with an OrderCreated event recorded.

        Raises:
            ValidationError: If the request is malformed or mixes currencies.
            NotFoundError: If an item is missing from the catalog or inactive.
        """
        if not user_id or not user_id.strip():
            raise ValidationError("User id is required", details={"field": "user_id"})

        merged = merge_lines(lines)
        items: list[OrderItem] = []
        for line in merged:
            catalog_item = catalog_items.get(line.item_id)
            if catalog_item is None or not catalog_item.active:
                raise NotFoundError("InventoryItem", line.item_id)
            items.append(
                OrderItem(
                    item_id=line.item_id,
                    item_name=catalog_item.name,
                    quantity=line.quantity,
                    price_at_purchase=catalog_item.price,
                )
            )

        currencies = {item.price_at_purchase.currency for item in items}
        if len(currencies) > 1:
            raise ValidationError(
                "All items in an order must share one currency",
                details={"currencies": sorted(currencies)},
            )

        order = Order.create(user_id=user_id, items=items, shipping_address=shipping_address)
        logger.debug(
            "Order built",
            order_number=str(order.order_number),
            total=str(order.total.amount),
            item_count=order.item_count,
        )
        return order
