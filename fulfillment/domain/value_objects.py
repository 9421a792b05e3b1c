"""Value objects for the domain layer.

Value objects are immutable and defined by their attributes rather than
identity.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Self
from uuid import UUID, uuid4

from fulfillment.domain.base import ValueObject
from fulfillment.domain.exceptions import (
    CurrencyMismatchError,
    InvalidScaleError,
    NegativeMoneyError,
    ValidationError,
)

# Currency scale for every supported currency (two decimal places).
CURRENCY_SCALE = 2
_MINOR_UNIT_FACTOR = 10**CURRENCY_SCALE


# ============================================================================
# Typed Identifiers
# ============================================================================


@dataclass(frozen=True)
class OrderId(ValueObject):
    """Strongly-typed order identifier."""

    value: UUID

    @classmethod
    def generate(cls) -> Self:
        return cls(value=uuid4())

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(value))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class PaymentId(ValueObject):
    """Strongly-typed payment identifier."""

    value: UUID

    @classmethod
    def generate(cls) -> Self:
        return cls(value=uuid4())

    @classmethod
    def from_string(cls, value: str) -> Self:
        return cls(value=UUID(value))

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class OrderNumber(ValueObject):
    """Human-readable, unique order number (e.g., 'ORD-3F9A1C07B2E4').

    Twelve hex characters of a random UUID give 48 bits of entropy; the
    unique constraint in the store is the final guard.
    """

    value: str

    PREFIX = "ORD-"

    @classmethod
    def generate(cls) -> Self:
        """Generate a new order number.

        Returns:
            New OrderNumber.
        """
        return cls(value=f"{cls.PREFIX}{uuid4().hex[:12].upper()}")

    def __post_init__(self) -> None:
        if not self.value or not self.value.startswith(self.PREFIX):
            raise ValidationError(
                f"Invalid order number: {self.value!r}",
                details={"order_number": self.value},
            )

    def __str__(self) -> str:
        return self.value


def inventory_lock_key(item_id: str) -> str:
    """Build the distributed lock key for an inventory item.

    Args:
        item_id: Inventory item identifier.

    Returns:
        Stable lock key, e.g. 'inventory:plant-42'.
    """
    return f"inventory:{item_id}"


# ============================================================================
# Money Value Object
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Monetary value with currency.

    Amounts are exact decimals at currency scale 2. Values with more
    fractional digits are rejected rather than rounded so that totals
    never drift.

    Attributes:
        amount: Amount in major units (e.g., dollars).
        currency: ISO 4217 currency code (e.g., 'USD').
    """

    amount: Decimal
    currency: str = "USD"

    def __post_init__(self) -> None:
        """Validate and normalize money constraints."""
        try:
            amount = Decimal(self.amount)
        except (InvalidOperation, TypeError, ValueError) as e:
            raise ValidationError(
                f"Invalid amount: {self.amount!r}",
                details={"amount": str(self.amount)},
            ) from e
        if isinstance(self.amount, float):
            raise ValidationError(
                "Money amounts must not be binary floating point",
                details={"amount": repr(self.amount)},
            )
        if not amount.is_finite():
            raise ValidationError(
                f"Invalid amount: {amount}",
                details={"amount": str(amount)},
            )
        if amount < 0:
            raise NegativeMoneyError(str(amount))
        quantized = amount.quantize(Decimal(1).scaleb(-CURRENCY_SCALE))
        if quantized != amount:
            raise InvalidScaleError(str(amount), CURRENCY_SCALE)
        object.__setattr__(self, "amount", quantized)
        object.__setattr__(self, "currency", self.currency.upper())

    def to_minor_units(self) -> int:
        """Convert to the gateway's integer minor-unit representation.

        Exact: the amount is already at currency scale, so the product
        is integral.

        Returns:
            Amount in minor units (e.g., 2500 for 25.00).
        """
        return int(self.amount * _MINOR_UNIT_FACTOR)

    def __add__(self, other: "Money") -> "Money":
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency, other.currency)
        return Money(amount=self.amount + other.amount, currency=self.currency)

    def __mul__(self, quantity: int) -> "Money":
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            return NotImplemented
        return Money(amount=self.amount * quantity, currency=self.currency)

    def __rmul__(self, quantity: int) -> "Money":
        return self.__mul__(quantity)

    def __str__(self) -> str:
        return f"{self.amount:.2f} {self.currency}"


# ============================================================================
# Shipping Address
# ============================================================================


@dataclass(frozen=True)
class ShippingAddress(ValueObject):
    """Shipping address captured on the order.

    Attributes:
        address: Street address line.
        city: City name.
        postal_code: Postal/ZIP code.
        country: Country name or ISO code.
    """

    address: str
    city: str
    postal_code: str
    country: str

    def __post_init__(self) -> None:
        """Validate address fields."""
        for field_name in ("address", "city", "postal_code", "country"):
            value = getattr(self, field_name)
            if not value or not value.strip():
                raise ValidationError(
                    f"Shipping {field_name.replace('_', ' ')} is required",
                    details={"field": f"shipping_{field_name}"},
                )
        object.__setattr__(self, "country", self.country.strip().upper())


# ============================================================================
# Order Line (request)
# ============================================================================


@dataclass(frozen=True)
class OrderLine(ValueObject):
    """A requested purchase of one inventory item.

    Attributes:
        item_id: Inventory item identifier.
        quantity: Requested units, a positive integer.
    """

    item_id: str
    quantity: int

    def __post_init__(self) -> None:
        if not self.item_id or not str(self.item_id).strip():
            raise ValidationError("Item id is required", details={"field": "item_id"})
        if (
            not isinstance(self.quantity, int)
            or isinstance(self.quantity, bool)
            or self.quantity <= 0
        ):
            raise ValidationError(
                f"Invalid quantity {self.quantity!r} for item {self.item_id}: "
                "quantity must be a positive integer",
                details={"item_id": self.item_id, "quantity": self.quantity},
            )

    @property
    def lock_key(self) -> str:
        return inventory_lock_key(self.item_id)
