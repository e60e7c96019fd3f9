"""
HEARDROP Backend — Drop SQLAlchemy Model
==========================================

What:  ORM model for scheduled product releases.

Lifecycle:
    upcoming → live (release_date reached) → ended (live window elapsed)
    Transitions only move forward; see DropService.refresh_statuses().

Pro-exclusive drops keep their affiliate link and discount code in the
table, but the service strips both fields for viewers without Pro.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow

DROP_STATUSES = ("upcoming", "live", "ended")


class Drop(Base):
    """A product release tied to a brand and/or a shop."""

    __tablename__ = "drops"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True)
    brand_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("brands.id", ondelete="SET NULL"), nullable=True
    )
    shop_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("shops.id", ondelete="SET NULL"), nullable=True
    )

    release_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="upcoming", server_default=text("'upcoming'")
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    product_images: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    video_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # ── Commerce ──────────────────────────────────────────────────────────
    affiliate_link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    discount_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    is_featured: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    is_pro_exclusive: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_drops_release_date", "release_date"),
        Index("idx_drops_status", "status"),
        Index("idx_drops_brand_id", "brand_id"),
    )

    def __repr__(self) -> str:
        return f"<Drop(slug='{self.slug}', status='{self.status}')>"
