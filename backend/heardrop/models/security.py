"""
HEARDROP Backend — Security Models
====================================

What:  The security audit log and the two login-attempt counters
       (per account e-mail and per source IP) that drive lockouts.

Audit rows are append-only. They keep `user_email` alongside `user_id`
so failed logins for unknown accounts are still searchable.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from heardrop.database import Base, UTCDateTime, utcnow

SECURITY_EVENT_TYPES = (
    "signup",
    "login_success",
    "login_failed",
    "logout",
    "account_locked",
    "ip_locked",
    "admin_unlock_account",
    "admin_unlock_ip",
    "password_validation_rate_limit",
    "password_validation_suspicious",
    "password_validation_api_error",
    "breached_password_attempt",
)


class SecurityAuditLog(Base):
    __tablename__ = "security_audit_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    # Admin who performed the action, for admin_* events
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_security_audit_log_created_at", "created_at"),
        Index("idx_security_audit_log_event_type", "event_type"),
    )


class LoginAttempt(Base):
    """Failed-login counter keyed by (lower-cased) account e-mail."""

    __tablename__ = "login_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_attempt: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    locked_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class IpLoginAttempt(Base):
    """Failed-login counter keyed by source IP."""

    __tablename__ = "ip_login_attempts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_attempt: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    locked_until: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
