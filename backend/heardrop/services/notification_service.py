"""
HEARDROP Backend — Notification Service
=========================================

What:  The two notification jobs and the user's notification history.
Who:   Admin job triggers (or an external scheduler) run the dispatchers;
       the /api/me/notifications routes read and mark history.

Jobs:
    dispatch_drop_reminders
        Upcoming drops releasing within the reminder window (60 min by
        default). Each un-notified reminder becomes a `drop_reminder`
        notification and is flagged so the next run skips it.
    dispatch_favorite_brand_drops
        Drops created in the lookback window (24 h) that belong to a brand.
        Every follower of that brand gets one `favorite_brand_drop`
        notification per drop, however often the job runs.

Both jobs respect the user's opt-out preferences; a skipped reminder stays
un-notified so re-enabling the preference picks it up again.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.config import settings
from heardrop.database import as_utc, utcnow
from heardrop.exceptions import NotFoundError
from heardrop.models.brand import Brand
from heardrop.models.drop import Drop
from heardrop.models.favorites import DropReminder, FavoriteBrand
from heardrop.models.notification import Notification
from heardrop.models.user import User
from heardrop.schemas.notification import (
    DispatchReport,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)


def _display_date(value: datetime) -> str:
    return f"{value.day} {value.strftime('%b %Y')}"


class NotificationService:

    # ── Jobs ──────────────────────────────────────────────────────────────

    async def dispatch_drop_reminders(
        self, db: AsyncSession, now: Optional[datetime] = None
    ) -> DispatchReport:
        now = as_utc(now) if now else utcnow()
        horizon = now + timedelta(minutes=settings.drop_reminder_window_minutes)

        rows = (
            await db.execute(
                select(DropReminder, Drop, User, Brand.name)
                .join(Drop, DropReminder.drop_id == Drop.id)
                .join(User, DropReminder.user_id == User.id)
                .outerjoin(Brand, Drop.brand_id == Brand.id)
                .where(
                    Drop.status == "upcoming",
                    Drop.release_date >= now,
                    Drop.release_date <= horizon,
                    DropReminder.is_notified.is_(False),
                )
                .order_by(Drop.release_date)
            )
        ).all()

        processed = skipped = 0
        for reminder, drop, user, brand_name in rows:
            if not user.wants("drop_reminders"):
                skipped += 1
                continue
            brand_label = brand_name or "HEARDROP"
            db.add(
                Notification(
                    user_id=user.id,
                    notification_type="drop_reminder",
                    title=f"{drop.title} is going live soon!",
                    message=(
                        f"The drop from {brand_label} is releasing on "
                        f"{_display_date(drop.release_date)}"
                    ),
                    payload={
                        "drop_id": str(drop.id),
                        "brand_name": brand_name,
                        "release_date": drop.release_date.isoformat(),
                    },
                )
            )
            reminder.is_notified = True
            processed += 1

        await db.flush()
        logger.info("Drop reminders dispatched: %d sent, %d skipped", processed, skipped)
        return DispatchReport(processed=processed, skipped=skipped)

    async def dispatch_favorite_brand_drops(
        self, db: AsyncSession, now: Optional[datetime] = None
    ) -> DispatchReport:
        now = as_utc(now) if now else utcnow()
        since = now - timedelta(hours=settings.favorite_drop_lookback_hours)

        drops = (
            await db.execute(
                select(Drop, Brand.name)
                .join(Brand, Drop.brand_id == Brand.id)
                .where(Drop.created_at >= since, Drop.created_at <= now)
                .order_by(Drop.created_at)
            )
        ).all()

        processed = skipped = 0
        for drop, brand_name in drops:
            followers = (
                await db.execute(
                    select(User)
                    .join(FavoriteBrand, FavoriteBrand.user_id == User.id)
                    .where(FavoriteBrand.brand_id == drop.brand_id)
                )
            ).scalars().all()
            if not followers:
                continue

            already = await self._already_notified(db, drop.id, [u.id for u in followers])
            for user in followers:
                if user.id in already:
                    continue
                if not user.wants("favorite_brands"):
                    skipped += 1
                    continue
                db.add(
                    Notification(
                        user_id=user.id,
                        notification_type="favorite_brand_drop",
                        title=f"New drop from {brand_name}",
                        message=f"{brand_name} just announced: {drop.title}",
                        payload={
                            "drop_id": str(drop.id),
                            "brand_id": str(drop.brand_id),
                            "brand_name": brand_name,
                        },
                    )
                )
                processed += 1

        await db.flush()
        logger.info("Favorite-brand drops dispatched: %d sent, %d skipped", processed, skipped)
        return DispatchReport(processed=processed, skipped=skipped)

    async def _already_notified(self, db: AsyncSession, drop_id: uuid.UUID, user_ids) -> set:
        # JSON path lookups differ between PostgreSQL and SQLite; filter in Python
        rows = (
            await db.execute(
                select(Notification.user_id, Notification.payload).where(
                    Notification.notification_type == "favorite_brand_drop",
                    Notification.user_id.in_(user_ids),
                )
            )
        ).all()
        return {
            user_id for user_id, payload in rows if (payload or {}).get("drop_id") == str(drop_id)
        }

    # ── History ───────────────────────────────────────────────────────────

    async def list_notifications(
        self,
        db: AsyncSession,
        user: User,
        unread_only: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> NotificationListResponse:
        query = select(Notification).where(Notification.user_id == user.id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        rows = (await db.execute(query)).scalars().all()

        unread = (
            await db.execute(
                select(func.count(Notification.id)).where(
                    Notification.user_id == user.id, Notification.is_read.is_(False)
                )
            )
        ).scalar() or 0

        return NotificationListResponse(
            notifications=[NotificationResponse.model_validate(n) for n in rows],
            unread_count=unread,
        )

    async def mark_read(
        self, db: AsyncSession, user: User, notification_id: uuid.UUID
    ) -> NotificationResponse:
        notification = await db.get(Notification, notification_id)
        # Someone else's notification is reported as missing
        if notification is None or notification.user_id != user.id:
            raise NotFoundError(resource="notification", resource_id=str(notification_id))
        notification.is_read = True
        await db.flush()
        return NotificationResponse.model_validate(notification)

    async def mark_all_read(self, db: AsyncSession, user: User) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user.id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        return result.rowcount or 0


notification_service = NotificationService()
