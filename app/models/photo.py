"""Album and photo models (read-only from the payment side)."""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import String, DateTime, ForeignKey, Numeric, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Album(Base):
    """School album owned by a photographer."""

    __tablename__ = "albums"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    photographer_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    price_per_photo: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Album {self.id} {self.name}>"


class Photo(Base):
    """A photo with its original (private) and watermarked (public) files."""

    __tablename__ = "photos"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    album_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("albums.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    original_file_path: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    watermarked_file_path: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    student_code: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    # Upload info (originalName, mimetype, size); "metadata" is taken on Base
    photo_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
    )

    album: Mapped["Album"] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Photo {self.id}>"
