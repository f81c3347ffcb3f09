"""SQLAlchemy models for database tables.

Provides ORM models for orders, order items and the status history
audit trail. Orders are never deleted.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from giftflare.infrastructure.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JsonColumn = JSON().with_variant(JSONB(), "postgresql")


class OrderModel(Base):
    """Order model for database persistence.

    Tracks the full order lifecycle from checkout to delivery or
    cancellation. ``status`` is only ever changed by a conditional
    update on its previous value.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    buyer_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    delivery_type = Column(String(20), nullable=False, index=True)

    # Addresses
    delivery_address = Column(JsonColumn, nullable=False)
    friend_delivery = Column(JsonColumn, nullable=True)

    # Totals
    subtotal_paise = Column(Integer, nullable=False)
    packaging_paise = Column(Integer, nullable=False, default=0)
    total_paise = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    # Fulfilment and payment
    tracking_number = Column(String(100), nullable=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)
    payment_reference = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.position",
    )
    status_history = relationship(
        "OrderStatusHistoryModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistoryModel.sequence",
    )


class OrderItemModel(Base):
    """Order item model for database persistence.

    Represents an immutable line item snapshot within an order.
    """

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = Column(Integer, nullable=False)
    product_id = Column(String(100), nullable=False)
    seller_id = Column(String(100), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price_paise = Column(Integer, nullable=False)
    instant_delivery_eligible = Column(Boolean, nullable=False, default=False)
    gift = Column(JsonColumn, nullable=False)

    # Relationships
    order = relationship("OrderModel", back_populates="items")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "title": self.title,
            "quantity": self.quantity,
            "unit_price_paise": self.unit_price_paise,
            "instant_delivery_eligible": self.instant_delivery_eligible,
            "gift": self.gift,
        }


class OrderStatusHistoryModel(Base):
    """Order status history model for audit trail.

    Tracks all status transitions for an order. Rows are written in the
    same transaction as the status update they describe.
    """

    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    actor = Column(String(100), nullable=True)
    metadata_ = Column("metadata", JsonColumn, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    order = relationship("OrderModel", back_populates="status_history")
