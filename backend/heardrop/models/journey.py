"""
HEARDROP Backend — Saved Journey Model
========================================

What:  A named, ordered list of shop stops a user saved for later.

Stops are stored as a JSON snapshot ({id, name, address, city, latitude,
longitude}) rather than foreign keys, so a saved route still renders if
a shop is later renamed or deactivated.
"""

import uuid
from datetime import datetime
from typing import List

from sqlalchemy import JSON, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow


class SavedJourney(Base):
    __tablename__ = "saved_journeys"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    stops: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_saved_journeys_user_id", "user_id"),)
