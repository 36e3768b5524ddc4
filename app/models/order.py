"""Order models - checkout attempts and their purchased photos."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import String, DateTime, ForeignKey, Numeric, Integer, Uuid, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.fsm.states import OrderStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    """
    One checkout attempt.
    Mutated only by the order reconciler once created.
    """

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Stored lower-cased
    customer_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderStatus.PENDING.value,
        nullable=False,
    )

    # Photographer who owns the purchased album
    photographer_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )

    # Set once paid
    mercado_pago_payment_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    download_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}>"

    @property
    def is_paid(self) -> bool:
        return self.status == OrderStatus.PAID.value


class OrderItem(Base):
    """
    A photo purchased in an order.
    Written together with the order at checkout, read-only afterwards.
    """

    __tablename__ = "order_items"
    __table_args__ = (
        Index("ix_order_items_order_photo", "order_id", "photo_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    photo_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("photos.id", ondelete="RESTRICT"),
        nullable=False,
    )

    price_at_purchase: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    order: Mapped["Order"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<OrderItem {self.order_id} {self.photo_id}>"
