"""Tests for domain value objects."""

from decimal import Decimal
from uuid import UUID

import pytest

from fulfillment.domain import (
    CurrencyMismatchError,
    InvalidScaleError,
    Money,
    NegativeMoneyError,
    OrderId,
    OrderLine,
    OrderNumber,
    ShippingAddress,
    ValidationError,
)
from fulfillment.domain.value_objects import inventory_lock_key


class TestMoney:
    """Tests for Money value object."""

    def test_create_money(self) -> None:
        """Money can be created with a decimal amount."""
        money = Money(Decimal("10.50"), "USD")
        assert money.amount == Decimal("10.50")
        assert money.currency == "USD"

    def test_amount_normalized_to_currency_scale(self) -> None:
        """Whole amounts are normalized to two decimal places."""
        money = Money(Decimal("10"))
        assert str(money.amount) == "10.00"

    def test_string_amount_accepted(self) -> None:
        """Decimal strings are accepted."""
        assert Money("5.25").amount == Decimal("5.25")

    def test_currency_normalized(self) -> None:
        """Currency code is normalized to uppercase."""
        assert Money(Decimal("1.00"), "eur").currency == "EUR"

    def test_extra_fraction_digits_rejected(self) -> None:
        """Amounts beyond currency scale are rejected, not rounded."""
        with pytest.raises(InvalidScaleError):
            Money(Decimal("10.005"))

    def test_negative_amount_raises(self) -> None:
        """Negative amount raises error."""
        with pytest.raises(NegativeMoneyError):
            Money(Decimal("-0.01"))

    def test_float_amount_rejected(self) -> None:
        """Binary floating point amounts are rejected."""
        with pytest.raises(ValidationError):
            Money(10.5)  # type: ignore[arg-type]

    def test_garbage_amount_rejected(self) -> None:
        """Non-numeric amounts are rejected."""
        with pytest.raises(ValidationError):
            Money("ten")  # type: ignore[arg-type]

    def test_addition(self) -> None:
        """Money with same currency can be added."""
        assert Money(Decimal("20.00")) + Money(Decimal("5.00")) == Money(Decimal("25.00"))

    def test_addition_different_currency_raises(self) -> None:
        """Adding different currencies raises error."""
        with pytest.raises(CurrencyMismatchError):
            _ = Money(Decimal("1.00"), "USD") + Money(Decimal("1.00"), "EUR")

    def test_multiplication_is_exact(self) -> None:
        """Money multiplied by quantity has no rounding drift."""
        assert Money(Decimal("0.10")) * 3 == Money(Decimal("0.30"))

    def test_right_multiplication(self) -> None:
        """Money supports right multiplication."""
        assert 3 * Money(Decimal("10.00")) == Money(Decimal("30.00"))

    def test_minor_units(self) -> None:
        """Money converts to integer minor units exactly."""
        assert Money(Decimal("25.00")).to_minor_units() == 2500
        assert Money(Decimal("0.29")).to_minor_units() == 29

    def test_string_representation(self) -> None:
        """Money has readable string representation."""
        assert str(Money(Decimal("19.9"), "USD")) == "19.90 USD"

    def test_immutability(self) -> None:
        """Money is immutable."""
        money = Money(Decimal("10.00"))
        with pytest.raises(AttributeError):
            money.amount = Decimal("20.00")  # type: ignore


class TestShippingAddress:
    """Tests for ShippingAddress value object."""

    def test_country_normalized(self) -> None:
        """Country is normalized to uppercase."""
        addr = ShippingAddress("1 Leaf St", "Austin", "78701", "us")
        assert addr.country == "US"

    def test_blank_city_raises(self) -> None:
        """Blank fields raise ValidationError naming the field."""
        with pytest.raises(ValidationError, match="city"):
            ShippingAddress("1 Leaf St", "  ", "78701", "US")


class TestOrderLine:
    """Tests for OrderLine value object."""

    def test_valid_line(self) -> None:
        line = OrderLine("plant-a", 2)
        assert line.lock_key == "inventory:plant-a"

    @pytest.mark.parametrize("quantity", [0, -1, True, 1.5])
    def test_invalid_quantity_raises(self, quantity: object) -> None:
        """Quantity must be a positive integer."""
        with pytest.raises(ValidationError, match="quantity"):
            OrderLine("plant-a", quantity)  # type: ignore[arg-type]

    def test_blank_item_id_raises(self) -> None:
        with pytest.raises(ValidationError):
            OrderLine("", 1)


class TestIdentifiers:
    """Tests for typed identifiers and keys."""

    def test_order_id_round_trip(self) -> None:
        order_id = OrderId.generate()
        assert isinstance(order_id.value, UUID)
        assert OrderId.from_string(str(order_id)) == order_id

    def test_order_number_format(self) -> None:
        """Order numbers carry the ORD- prefix and 12 hex characters."""
        number = str(OrderNumber.generate())
        assert number.startswith("ORD-")
        assert len(number) == len("ORD-") + 12
        int(number[4:], 16)

    def test_order_numbers_are_unique(self) -> None:
        assert len({OrderNumber.generate() for _ in range(100)}) == 100

    def test_invalid_order_number_rejected(self) -> None:
        with pytest.raises(ValidationError):
            OrderNumber("12345")

    def test_inventory_lock_key(self) -> None:
        assert inventory_lock_key("plant-42") == "inventory:plant-42"
