"""Catalog service client.

Read-only access to item names and current prices. Prices are copied
onto order lines when an order is built and never read again for it.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog

from fulfillment.domain.exceptions import CatalogUnavailableError, DomainError
from fulfillment.domain.value_objects import Money

logger = structlog.get_logger()


@dataclass(frozen=True)
class CatalogItem:
    """Catalog entry for a purchasable item.

    Attributes:
        item_id: Inventory item identifier.
        name: Display name.
        price: Current unit price.
        active: Whether the item can be ordered.
    """

    item_id: str
    name: str
    price: Money
    active: bool = True

    @classmethod
    def from_api_response(
        cls, data: dict[str, Any], default_currency: str = "USD"
    ) -> "CatalogItem":
        """Create from catalog API response.

        Items without a currency are priced in default_currency.

        Raises:
            DomainError: If the price is not a valid amount.
        """
        return cls(
            item_id=str(data["id"]),
            name=data["name"],
            price=Money(Decimal(str(data["price"])), data.get("currency") or default_currency),
            active=data.get("active", True),
        )


class CatalogClient(ABC):
    """Catalog lookup contract."""

    @abstractmethod
    async def get_items(self, item_ids: Iterable[str]) -> dict[str, CatalogItem]:
        """Look up items by id.

        Missing ids are absent from the result.

        Raises:
            CatalogUnavailableError: If the catalog cannot answer.
        """

    async def close(self) -> None:
        """Release client resources."""


class HttpCatalogClient(CatalogClient):
    """Catalog client calling the catalog service over HTTP."""

    def __init__(
        self, base_url: str, timeout: float = 5.0, default_currency: str = "USD"
    ) -> None:
        """Initialize catalog client.

        Args:
            base_url: Catalog service base URL.
            timeout: Request timeout in seconds.
            default_currency: Currency for items that do not state one.
        """
        self.base_url = base_url
        self.timeout = timeout
        self.default_currency = default_currency
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_items(self, item_ids: Iterable[str]) -> dict[str, CatalogItem]:
        ids = sorted(set(item_ids))
        items = await asyncio.gather(*(self.get_item(item_id) for item_id in ids))
        return {item.item_id: item for item in items if item is not None}

    async def get_item(self, item_id: str) -> CatalogItem | None:
        """Get a catalog item by ID.

        Returns:
            Item if found, None otherwise.

        Raises:
            CatalogUnavailableError: On request failure or a non-404 error.
        """
        try:
            client = await self._get_client()
            response = await client.get(f"/items/{item_id}")
        except httpx.RequestError as e:
            logger.error("Catalog request failed", item_id=item_id, error=str(e))
            raise CatalogUnavailableError(
                f"Catalog request failed: {e}",
                details={"item_id": item_id},
            ) from e

        if response.status_code == 404:
            return None

        if response.status_code != 200:
            logger.error(
                "Catalog returned an error",
                item_id=item_id,
                status_code=response.status_code,
            )
            raise CatalogUnavailableError(
                f"Catalog returned {response.status_code} for item {item_id}",
                details={"item_id": item_id, "status_code": response.status_code},
            )

        try:
            return CatalogItem.from_api_response(response.json(), self.default_currency)
        except (KeyError, ValueError, InvalidOperation, DomainError) as e:
            logger.error("Catalog returned malformed item", item_id=item_id, error=str(e))
            raise CatalogUnavailableError(
                f"Malformed catalog response for item {item_id}",
                details={"item_id": item_id},
            ) from e


class InMemoryCatalog(CatalogClient):
    """Catalog held in memory; for tests and local runs."""

    def __init__(self, items: Iterable[CatalogItem] = ()) -> None:
        self.items: dict[str, CatalogItem] = {item.item_id: item for item in items}

    def add(
        self,
        item_id: str,
        name: str,
        price: str,
        currency: str = "USD",
        active: bool = True,
    ) -> CatalogItem:
        item = CatalogItem(
            item_id=item_id,
            name=name,
            price=Money(Decimal(price), currency),
            active=active,
        )
        self.items[item_id] = item
        return item

    async def get_items(self, item_ids: Iterable[str]) -> dict[str, CatalogItem]:
        return {item_id: self.items[item_id] for item_id in item_ids if item_id in self.items}
