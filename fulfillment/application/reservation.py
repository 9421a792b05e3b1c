"""Inventory reservation.

Decrements available stock for an order's lines. Every method must be
called while the caller holds the distributed lock for each affected
item; the store row lock taken by get_for_update is the second line of
defence and is held until the unit of work ends.
"""

import asyncio
from collections.abc import Iterable

import structlog

from fulfillment.domain.entities import Reservation
from fulfillment.domain.exceptions import DomainError, NotFoundError
from fulfillment.domain.value_objects import OrderLine
from fulfillment.infrastructure.unit_of_work import UnitOfWork

logger = structlog.get_logger()


class InventoryReserver:
    """Reserves and restores inventory inside a unit of work."""

    async def reserve(self, uow: UnitOfWork, item_id: str, quantity: int) -> Reservation:
        """Reserve quantity units of one item.

        Args:
            uow: Open unit of work.
            item_id: Inventory item to decrement.
            quantity: Units to reserve.

        Returns:
            The reservation made.

        Raises:
            NotFoundError: If the item does not exist.
            InsufficientStockError: If fewer units are available.
        """
        item = await uow.inventory.get_for_update(item_id)
        if item is None:
            raise NotFoundError("InventoryItem", item_id)

        item.reserve(quantity)
        await uow.inventory.save(item)
        logger.debug(
            "Inventory reserved",
            item_id=item_id,
            quantity=quantity,
            remaining=item.quantity,
        )
        return Reservation(item_id=item_id, quantity=quantity)

    async def reserve_all(
        self,
        uow: UnitOfWork,
        lines: Iterable[OrderLine | Reservation],
    ) -> list[Reservation]:
        """Reserve every line, in sorted item order, all or nothing.

        If any line fails (or the task is cancelled), the lines already
        reserved by this call are restored before the error propagates.

        Args:
            uow: Open unit of work.
            lines: Lines to reserve; item ids must be distinct.

        Returns:
            Reservations made, sorted by item id.
        """
        reserved: list[Reservation] = []
        try:
            for line in sorted(lines, key=lambda line: line.item_id):
                reserved.append(await self.reserve(uow, line.item_id, line.quantity))
        except (DomainError, asyncio.CancelledError) as e:
            if reserved:
                logger.info(
                    "Releasing partial reservation",
                    reserved_items=[r.item_id for r in reserved],
                    error=type(e).__name__,
                )
                await asyncio.shield(self.restore(uow, reserved))
            raise
        return reserved

    async def restore(self, uow: UnitOfWork, reservations: Iterable[Reservation]) -> None:
        """Add reserved quantities back to stock (compensation).

        Args:
            uow: Open unit of work.
            reservations: Reservations to undo.
        """
        for reservation in sorted(reservations, key=lambda r: r.item_id):
            item = await uow.inventory.get_for_update(reservation.item_id)
            if item is None:
                logger.error(
                    "Cannot restore stock for missing item",
                    item_id=reservation.item_id,
                    quantity=reservation.quantity,
                )
                continue
            item.restock(reservation.quantity)
            await uow.inventory.save(item)
            logger.debug(
                "Inventory restored",
                item_id=reservation.item_id,
                quantity=reservation.quantity,
            )
