"""
HEARDROP Backend — Account Models
===================================

What:  Users (with their profile fields), role grants and login sessions.

Roles live in their own table so a user can hold several grants
(e.g. moderator + admin) and so role checks never trust anything the
client sends.

Sessions are opaque random tokens. Only the token string is stored; there
is nothing to decode on the client side.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow

ROLES = ("admin", "moderator", "user")

# Keys a user may set in notification_preferences; all default to enabled
NOTIFICATION_PREFERENCE_KEYS = ("drop_reminders", "favorite_brands", "weekly_digest")


class User(Base):
    """An account plus its public profile."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Profile ───────────────────────────────────────────────────────────
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_pro: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    pro_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    notification_preferences: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    def has_active_pro(self, now: datetime) -> bool:
        """Pro without an expiry never lapses."""
        if not self.is_pro:
            return False
        return self.pro_expires_at is None or self.pro_expires_at > now

    def wants(self, preference: str) -> bool:
        """Preferences are opt-out: a missing key means enabled."""
        return (self.notification_preferences or {}).get(preference, True) is not False

    def __repr__(self) -> str:
        return f"<User(email='{self.email}')>"


class UserRole(Base):
    __tablename__ = "user_roles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)


class AuthSession(Base):
    """An issued bearer token."""

    __tablename__ = "auth_sessions"

    token: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_auth_sessions_user_id", "user_id"),)
