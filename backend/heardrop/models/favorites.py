"""
HEARDROP Backend — Favorites and Reminder Models
==================================================

What:  Per-user bookmarks (brands, shops) and drop reminders.
How:   Plain association rows with a unique constraint per (user, target),
       so "add" is idempotent and a double tap never creates duplicates.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, Index, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow


class FavoriteBrand(Base):
    __tablename__ = "favorite_brands"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    brand_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "brand_id", name="uq_favorite_brands_user_brand"),
        Index("idx_favorite_brands_brand_id", "brand_id"),
    )


class FavoriteShop(Base):
    __tablename__ = "favorite_shops"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    shop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("shops.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "shop_id", name="uq_favorite_shops_user_shop"),
    )


class DropReminder(Base):
    """
    A user's request to be told when a drop goes live.

    is_notified flips to true once the reminder has been dispatched, so the
    dispatcher can run repeatedly without notifying twice.
    """

    __tablename__ = "drop_reminders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    drop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("drops.id", ondelete="CASCADE"), nullable=False
    )
    is_notified: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "drop_id", name="uq_drop_reminders_user_drop"),
        Index("idx_drop_reminders_drop_id", "drop_id"),
    )
