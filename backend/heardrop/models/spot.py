"""
HEARDROP Backend — Street Spotted Models
==========================================

What:  User-submitted outfit photos, their brand tags and likes.

Moderation:
    Every post is created as 'pending'. Only 'approved' posts appear in the
    public feed or accept likes; 'rejected' posts stay visible to their
    author and to moderators.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, ForeignKey, Index, String, Text, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow

SPOT_STATUSES = ("pending", "approved", "rejected")

STYLE_TAGS = (
    "streetwear", "techwear", "vintage", "minimalist", "y2k", "gorpcore", "workwear",
    "avant-garde", "skate", "luxury", "casual", "sportswear", "grunge", "preppy",
)

MAX_STYLE_TAGS = 3


class SpotPost(Base):
    __tablename__ = "spot_posts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    # Relative to the storage root, served through /api/files/
    image_path: Mapped[str] = mapped_column(String(255), nullable=False)
    caption: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    style_tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending", server_default=text("'pending'")
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_spot_posts_status_created", "status", "created_at"),
        Index("idx_spot_posts_user_id", "user_id"),
    )


class SpotPostBrand(Base):
    __tablename__ = "spot_post_brands"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("spot_posts.id", ondelete="CASCADE"), nullable=False
    )
    brand_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("brands.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("post_id", "brand_id", name="uq_spot_post_brands_post_brand"),
        Index("idx_spot_post_brands_brand_id", "brand_id"),
    )


class SpotLike(Base):
    __tablename__ = "spot_likes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("spot_posts.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (UniqueConstraint("post_id", "user_id", name="uq_spot_likes_post_user"),)
