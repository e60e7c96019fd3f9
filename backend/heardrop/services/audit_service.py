"""
HEARDROP Backend — Security Audit Service
===========================================

What:  Writes security events and serves the admin audit-log views.
Who:   AuthService and PasswordService write; admin routes read and export.

Events are added to the caller's session and flushed, so they commit or
roll back with the surrounding request. Callers that are about to raise
(failed login, rate-limited password check) commit explicitly first,
because the session dependency rolls back on error.
"""

import csv
import io
import json
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.models.security import SecurityAuditLog
from heardrop.schemas.admin import AuditLogEntry, AuditLogPage

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "created_at",
    "event_type",
    "user_email",
    "user_id",
    "ip_address",
    "performed_by",
    "event_data",
)


class AuditService:

    async def log_event(
        self,
        db: AsyncSession,
        event_type: str,
        user_id: Optional[uuid.UUID] = None,
        user_email: Optional[str] = None,
        ip_address: Optional[str] = None,
        event_data: Optional[Dict[str, Any]] = None,
        performed_by: Optional[uuid.UUID] = None,
    ) -> SecurityAuditLog:
        entry = SecurityAuditLog(
            event_type=event_type,
            user_id=user_id,
            user_email=user_email,
            ip_address=ip_address,
            event_data=event_data or {},
            performed_by=performed_by,
        )
        db.add(entry)
        await db.flush()
        logger.info(
            "Security event %s (user=%s, ip=%s)",
            event_type,
            user_email or user_id or "-",
            ip_address or "-",
        )
        return entry

    def _filtered(
        self,
        query: Select,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
        event_type: Optional[str],
        user_email: Optional[str],
    ) -> Select:
        if start_date:
            query = query.where(SecurityAuditLog.created_at >= start_date)
        if end_date:
            query = query.where(SecurityAuditLog.created_at <= end_date)
        if event_type:
            query = query.where(SecurityAuditLog.event_type == event_type)
        if user_email:
            query = query.where(SecurityAuditLog.user_email.ilike(f"%{user_email}%"))
        return query

    async def list_events(
        self,
        db: AsyncSession,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        event_type: Optional[str] = None,
        user_email: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> AuditLogPage:
        """Newest first, with the total count for the same filters."""
        filters = (start_date, end_date, event_type, user_email)
        query = self._filtered(select(SecurityAuditLog), *filters)
        query = query.order_by(SecurityAuditLog.created_at.desc()).limit(limit).offset(offset)
        rows = (await db.execute(query)).scalars().all()

        count_query = self._filtered(select(func.count(SecurityAuditLog.id)), *filters)
        total = (await db.execute(count_query)).scalar() or 0

        return AuditLogPage(
            entries=[AuditLogEntry.model_validate(row) for row in rows],
            total=total,
            limit=limit,
            offset=offset,
        )

    async def export_events(
        self,
        db: AsyncSession,
        export_format: str = "csv",
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        event_type: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> Tuple[str, str]:
        """
        Export every matching event.

        Returns:
            (body, media_type). CSV columns follow EXPORT_COLUMNS with
            event_data JSON-encoded; JSON is a list of entry objects.
        """
        query = self._filtered(
            select(SecurityAuditLog), start_date, end_date, event_type, user_email
        ).order_by(SecurityAuditLog.created_at.desc())
        rows = (await db.execute(query)).scalars().all()
        entries = [AuditLogEntry.model_validate(row) for row in rows]
        logger.info("Exporting %d audit events as %s", len(entries), export_format)

        if export_format == "json":
            payload = [entry.model_dump(mode="json") for entry in entries]
            return json.dumps(payload, indent=2), "application/json"

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(EXPORT_COLUMNS)
        for entry in entries:
            writer.writerow(_csv_row(entry))
        return buffer.getvalue(), "text/csv"


def _csv_row(entry: AuditLogEntry) -> List[str]:
    return [
        entry.created_at.isoformat(),
        entry.event_type,
        entry.user_email or "",
        str(entry.user_id) if entry.user_id else "",
        entry.ip_address or "",
        str(entry.performed_by) if entry.performed_by else "",
        json.dumps(entry.event_data, sort_keys=True) if entry.event_data else "",
    ]


audit_service = AuditService()
