"""
HEARDROP Backend — Contact Submission Model
=============================================

What:  Messages sent through the public contact form: brand and release
       suggestions, corrections, partnership requests and general feedback.
Who:   Written by the contact route, read and resolved in the admin inbox.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow

INQUIRY_TYPES = ("new-brand", "new-release", "correction", "partnership", "other")


class ContactSubmission(Base):
    __tablename__ = "contact_submissions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    inquiry_type: Mapped[str] = mapped_column(String(32), nullable=False, default="other")
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    is_resolved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_contact_submissions_created_at", "created_at"),)
