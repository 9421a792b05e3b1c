"""SQLAlchemy models for database tables.

Provides ORM models for inventory_items, orders, order_items and payments.
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from fulfillment.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Inventory Models
# ============================================================================


class InventoryItemModel(Base):
    """Available quantity of one purchasable item.

    Rows are read with SELECT ... FOR UPDATE during reservation.
    """

    __tablename__ = "inventory_items"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
    )

    id = Column(String(100), primary_key=True)
    quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Order model for database persistence."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_number = Column(String(32), nullable=False, unique=True)
    user_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)

    # Totals
    total_amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    # Shipping address
    shipping_address = Column(String(255), nullable=False)
    shipping_city = Column(String(100), nullable=False)
    shipping_postal_code = Column(String(20), nullable=False)
    shipping_country = Column(String(100), nullable=False)

    cancelled_reason = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )

    # Relationships
    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
        lazy="selectin",
    )


class OrderItemModel(Base):
    """Order item model for line items in an order."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    item_id = Column(String(100), nullable=False)
    item_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_at_purchase = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")

    order = relationship("OrderModel", back_populates="items")


# ============================================================================
# Payment Models
# ============================================================================


class PaymentModel(Base):
    """Payment authorization recorded for an order (one per order)."""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    order_number = Column(String(32), nullable=False)
    authorization_id = Column(String(255), nullable=False, unique=True)
    idempotency_key = Column(String(64), nullable=False, unique=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(20), nullable=False, default="pending", index=True)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
    )
