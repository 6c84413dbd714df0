"""
Shipping record, one per order.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tfootwear.core.database import Base

if TYPE_CHECKING:
    from tfootwear.models.shop import Order


class ShippingStatus(str, PyEnum):
    """Fulfilment progress, forward-only."""

    PENDING = "pending"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"


class Shipping(Base):
    """Delivery details and tracking for an order."""

    __tablename__ = "shipping"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), unique=True
    )

    # Address
    address: Mapped[str] = mapped_column(Text)
    city: Mapped[str] = mapped_column(String(100))
    postal_code: Mapped[str] = mapped_column(String(20))
    phone: Mapped[str] = mapped_column(String(20))

    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0"))
    status: Mapped[ShippingStatus] = mapped_column(
        Enum(ShippingStatus), default=ShippingStatus.PENDING
    )
    tracking_number: Mapped[str | None] = mapped_column(String(100))
    estimated_delivery: Mapped[datetime | None] = mapped_column(DateTime)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    order: Mapped["Order"] = relationship(back_populates="shipping")
