"""Unit of work: one durable-store transaction.

A unit of work is an async context manager. Anything not committed
before the block exits is rolled back, so an exception (including
cancellation) never leaves partial writes behind.

Units of work are never nested; each service step opens its own.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from types import TracebackType
from typing import Self

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fulfillment.domain.exceptions import DuplicateRecordError
from fulfillment.infrastructure.repositories import (
    InventoryRepository,
    OrderRepository,
    PaymentRepository,
    SqlInventoryRepository,
    SqlOrderRepository,
    SqlPaymentRepository,
)

logger = structlog.get_logger()


class UnitOfWork(ABC):
    """Transaction boundary exposing the repositories."""

    inventory: InventoryRepository
    orders: OrderRepository
    payments: PaymentRepository

    def __init__(self) -> None:
        self._committed = False

    async def __aenter__(self) -> Self:
        self._committed = False
        await self._begin()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        try:
            if not self._committed:
                await self.rollback()
        finally:
            await self._close()

    async def commit(self) -> None:
        """Commit all writes made through this unit of work.

        Raises:
            DuplicateRecordError: If a unique constraint is violated.
        """
        await self._commit()
        self._committed = True

    @abstractmethod
    async def _begin(self) -> None:
        pass

    @abstractmethod
    async def _commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        """Discard all uncommitted writes."""

    @abstractmethod
    async def _close(self) -> None:
        pass


UnitOfWorkFactory = Callable[[], UnitOfWork]


class SqlAlchemyUnitOfWork(UnitOfWork):
    """Unit of work over one AsyncSession transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Initialize unit of work.

        Args:
            session_factory: Factory creating sessions for the store.
        """
        super().__init__()
        self._session_factory = session_factory
        self._session: AsyncSession | None = None

    async def _begin(self) -> None:
        self._session = self._session_factory()
        self.inventory = SqlInventoryRepository(self._session)
        self.orders = SqlOrderRepository(self._session)
        self.payments = SqlPaymentRepository(self._session)

    async def _commit(self) -> None:
        assert self._session is not None
        try:
            await self._session.commit()
        except IntegrityError as e:
            logger.warning("Commit rejected by unique constraint", error=str(e.orig))
            raise DuplicateRecordError(
                "Duplicate record",
                details={"error": str(e.orig)},
            ) from e

    async def rollback(self) -> None:
        if self._session is not None:
            await self._session.rollback()

    async def _close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None
