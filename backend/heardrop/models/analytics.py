"""
HEARDROP Backend — Affiliate Analytics Model
==============================================

What:  One row per affiliate-link click or discount-code copy on a drop.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow

AFFILIATE_EVENT_TYPES = ("affiliate_click", "discount_code_copy")


class AffiliateEvent(Base):
    __tablename__ = "affiliate_events"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    drop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("drops.id", ondelete="CASCADE"), nullable=False
    )
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    referrer: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_affiliate_events_drop_id", "drop_id"),)
