"""
HEARDROP Backend — Shop SQLAlchemy Model
==========================================

What:  ORM model for physical retail locations shown on the shop locator map.

Coordinates are nullable: shops imported without latitude/longitude are
stored anyway and picked up by the geocoding job. Every map query filters
on `latitude IS NOT NULL AND longitude IS NOT NULL`.

`email` and `phone` are admin-only contact fields; the public shop
serializer never includes them.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, Float, ForeignKey, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow


class Shop(Base):
    __tablename__ = "shops"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), nullable=False, unique=True)
    brand_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("brands.id", ondelete="SET NULL"), nullable=True
    )
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # ── Location ──────────────────────────────────────────────────────────
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    city: Mapped[str] = mapped_column(String(120), nullable=False)
    country: Mapped[str] = mapped_column(String(120), nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    longitude: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    official_site: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Admin-only contact details
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # e.g. {"mon": "10:00-19:00", "sun": "closed"}
    opening_hours: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    is_unique_shop: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_shops_brand_id", "brand_id"),
        Index("idx_shops_city", "city"),
        Index("idx_shops_country", "country"),
        Index("idx_shops_lat_lng", "latitude", "longitude"),
    )

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def __repr__(self) -> str:
        return f"<Shop(slug='{self.slug}', city='{self.city}')>"
