"""Download tracking models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, DateTime, ForeignKey, Integer, Uuid, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PhotoDownload(Base):
    """
    Download counter for one photo of one order.
    Created on the first granted download and only ever incremented.
    """

    __tablename__ = "photo_downloads"
    __table_args__ = (
        UniqueConstraint("order_id", "photo_id", name="uq_photo_downloads_order_photo"),
        CheckConstraint("download_count >= 0", name="ck_photo_downloads_count"),
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
        nullable=False,
    )

    download_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<PhotoDownload {self.order_id}/{self.photo_id} x{self.download_count}>"


class DownloadAccess(Base):
    """
    Per-order download tracking record, created once the order is paid.
    order_id is unique so concurrent fulfillments cannot duplicate it.
    """

    __tablename__ = "download_access"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    customer_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    download_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DownloadAccess {self.order_id}>"
