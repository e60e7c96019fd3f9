"""
HEARDROP Backend — Brand SQLAlchemy Model
===========================================

What:  ORM model representing the `brands` table.
Why:   Brands anchor the whole catalogue: shops, drops, favorites and
       Street Spotted posts all reference a brand.
Who:   Used by BrandService, ImportService, AdminService and Alembic.

Table Design Rationale:
    - slug: unique, URL-safe identifier used by brand detail pages
    - category: constrained to CATEGORIES in the service layer (portable
      VARCHAR instead of a PostgreSQL ENUM so the test suite runs on SQLite)
    - is_active: soft visibility switch; inactive brands are hidden from
      the public directory but stay linked to historical drops
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow

# What: Product categories shared by brands and shops
CATEGORIES = ("streetwear", "sneakers", "accessories", "luxury", "vintage", "sportswear")


class Brand(Base):
    """A streetwear label with directory metadata, social links and artwork."""

    __tablename__ = "brands"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    history: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ── Artwork ───────────────────────────────────────────────────────────
    logo_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    banner_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # ── Links ─────────────────────────────────────────────────────────────
    official_website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    instagram_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    tiktok_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_brands_name", "name"),
        Index("idx_brands_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Brand(slug='{self.slug}', active={self.is_active})>"
