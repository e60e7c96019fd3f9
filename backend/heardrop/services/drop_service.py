"""
HEARDROP Backend — Drops Service
==================================

What:  Drop listing, the monthly calendar, featured drops, admin CRUD,
       the status lifecycle job and affiliate tracking.
Who:   Drop routes, brand detail pages, the reminder dispatcher and the
       admin job triggers.

Lifecycle (refresh_statuses):
    upcoming ──(release_date <= now)──────────────▶ live
    live     ──(release_date + live window <= now)─▶ ended
    A drop that is already past its live window when the job first sees
    it goes straight from upcoming to ended. Statuses never move backwards.

Pro-exclusive drops:
    Viewers without an active Pro subscription (and without the admin role)
    get the drop with `locked=True` and no affiliate link or discount code.
"""

import calendar as calendar_module
import logging
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from sqlalchemy import Select, asc, case, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.config import settings
from heardrop.database import as_utc, utcnow
from heardrop.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    RateLimitExceededError,
    ValidationError,
)
from heardrop.middleware.rate_limit import SlidingWindowLimiter
from heardrop.models.analytics import AffiliateEvent
from heardrop.models.brand import Brand
from heardrop.models.drop import DROP_STATUSES, Drop
from heardrop.models.shop import Shop
from heardrop.models.user import User
from heardrop.schemas.drop import (
    AffiliateSummary,
    CalendarDay,
    DropCalendarResponse,
    DropCreate,
    DropResponse,
    DropUpdate,
    StatusRefreshReport,
)
from heardrop.services.auth_service import auth_service
from heardrop.utils import slugify

logger = logging.getLogger(__name__)

ORDER_FIELDS = {"release_date": Drop.release_date, "created_at": Drop.created_at}


async def can_view_exclusive(db: AsyncSession, user: Optional[User]) -> bool:
    if user is None:
        return False
    if user.has_active_pro(utcnow()):
        return True
    return await auth_service.has_role(db, user.id, "admin")


def to_drop_response(drop: Drop, brand_name: Optional[str], unlocked: bool) -> DropResponse:
    response = DropResponse.model_validate(drop)
    response.brand_name = brand_name
    if drop.is_pro_exclusive and not unlocked:
        response.locked = True
        response.affiliate_link = None
        response.discount_code = None
    return response


def _with_brand(query: Select) -> Select:
    return query.outerjoin(Brand, Drop.brand_id == Brand.id)


class DropService:

    def __init__(self):
        self.affiliate_limiter = SlidingWindowLimiter(
            limit=settings.affiliate_track_limit,
            window_seconds=settings.affiliate_track_window,
        )

    # ── Queries ───────────────────────────────────────────────────────────

    async def list_drops(
        self,
        db: AsyncSession,
        statuses: Optional[Sequence[str]] = None,
        brand_id: Optional[uuid.UUID] = None,
        shop_id: Optional[uuid.UUID] = None,
        featured: Optional[bool] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        order_by: str = "release_date",
        ascending: bool = True,
        limit: Optional[int] = None,
        unlocked: bool = False,
    ) -> List[DropResponse]:
        if order_by not in ORDER_FIELDS:
            raise ValidationError(
                message=f"order_by must be one of: {', '.join(ORDER_FIELDS)}", field="order_by"
            )
        unknown = set(statuses or ()) - set(DROP_STATUSES)
        if unknown:
            raise ValidationError(
                message=f"Unknown drop status: {', '.join(sorted(unknown))}", field="status"
            )

        query = _with_brand(select(Drop, Brand.name))
        if statuses:
            query = query.where(Drop.status.in_(list(statuses)))
        if brand_id:
            query = query.where(Drop.brand_id == brand_id)
        if shop_id:
            query = query.where(Drop.shop_id == shop_id)
        if featured is not None:
            query = query.where(Drop.is_featured.is_(featured))
        if start_date:
            query = query.where(Drop.release_date >= as_utc(start_date))
        if end_date:
            query = query.where(Drop.release_date <= as_utc(end_date))

        column = ORDER_FIELDS[order_by]
        query = query.order_by(asc(column) if ascending else desc(column))
        if limit:
            query = query.limit(limit)

        try:
            rows = (await db.execute(query)).all()
        except SQLAlchemyError as e:
            logger.error("Database error listing drops: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve drops. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return [to_drop_response(drop, brand, unlocked) for drop, brand in rows]

    async def calendar(
        self, db: AsyncSession, year: int, month: int, unlocked: bool = False
    ) -> DropCalendarResponse:
        """Drops releasing in the given month, grouped by UTC date. Empty days are omitted."""
        if not 1 <= month <= 12:
            raise ValidationError(message="month must be between 1 and 12", field="month")
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        days_in_month = calendar_module.monthrange(year, month)[1]
        end = start + timedelta(days=days_in_month)

        query = (
            _with_brand(select(Drop, Brand.name))
            .where(Drop.release_date >= start, Drop.release_date < end)
            .order_by(Drop.release_date)
        )
        rows = (await db.execute(query)).all()

        days: "OrderedDict[str, List[DropResponse]]" = OrderedDict()
        for drop, brand in rows:
            key = drop.release_date.date().isoformat()
            days.setdefault(key, []).append(to_drop_response(drop, brand, unlocked))

        return DropCalendarResponse(
            year=year,
            month=month,
            days=[CalendarDay(date=key, drops=drops) for key, drops in days.items()],
        )

    async def featured(
        self, db: AsyncSession, limit: int = 4, unlocked: bool = False
    ) -> List[DropResponse]:
        """Next upcoming/live drops, backfilled with the most recent ended ones."""
        now = utcnow()
        upcoming = (
            await db.execute(
                _with_brand(select(Drop, Brand.name))
                .where(Drop.status.in_(("upcoming", "live")), Drop.release_date >= now)
                .order_by(Drop.release_date)
                .limit(limit)
            )
        ).all()
        rows = list(upcoming)

        if len(rows) < limit:
            ended = (
                await db.execute(
                    _with_brand(select(Drop, Brand.name))
                    .where(Drop.status == "ended")
                    .order_by(Drop.release_date.desc())
                    .limit(limit - len(rows))
                )
            ).all()
            rows.extend(ended)

        return [to_drop_response(drop, brand, unlocked) for drop, brand in rows]

    async def upcoming_for_brand(
        self, db: AsyncSession, brand_id: uuid.UUID, limit: int = 5, unlocked: bool = False
    ) -> List[DropResponse]:
        rows = (
            await db.execute(
                _with_brand(select(Drop, Brand.name))
                .where(Drop.brand_id == brand_id, Drop.release_date >= utcnow())
                .order_by(Drop.release_date)
                .limit(limit)
            )
        ).all()
        return [to_drop_response(drop, brand, unlocked) for drop, brand in rows]

    async def get_drop(self, db: AsyncSession, id_or_slug: str, unlocked: bool = False) -> DropResponse:
        drop = await self._find(db, id_or_slug)
        if drop is None:
            raise NotFoundError(resource="drop", resource_id=id_or_slug)
        return to_drop_response(drop, await self._brand_name(db, drop.brand_id), unlocked)

    # ── Admin CRUD ────────────────────────────────────────────────────────

    async def create_drop(self, db: AsyncSession, payload: DropCreate) -> DropResponse:
        data = payload.model_dump()
        data["slug"] = await self._resolve_slug(db, payload.slug, payload.title)
        data["release_date"] = as_utc(payload.release_date)
        await self._ensure_links(db, payload.brand_id, payload.shop_id)

        drop = Drop(**data)
        db.add(drop)
        await db.flush()
        await db.refresh(drop)
        logger.info("Drop created: %s releasing %s", drop.slug, drop.release_date.isoformat())
        return to_drop_response(drop, await self._brand_name(db, drop.brand_id), unlocked=True)

    async def update_drop(
        self, db: AsyncSession, drop_id: uuid.UUID, payload: DropUpdate
    ) -> DropResponse:
        drop = await db.get(Drop, drop_id)
        if drop is None:
            raise NotFoundError(resource="drop", resource_id=str(drop_id))

        changes = payload.model_dump(exclude_unset=True)
        if "slug" in changes:
            new_slug = slugify(changes["slug"] or drop.title)
            if new_slug == drop.slug:
                changes.pop("slug")
            else:
                changes["slug"] = await self._resolve_slug(db, new_slug, drop.title)
        if changes.get("release_date") is not None:
            changes["release_date"] = as_utc(changes["release_date"])
        await self._ensure_links(db, changes.get("brand_id"), changes.get("shop_id"))

        for field, value in changes.items():
            setattr(drop, field, value)
        await db.flush()
        await db.refresh(drop)
        logger.info("Drop updated: %s", drop.slug)
        return to_drop_response(drop, await self._brand_name(db, drop.brand_id), unlocked=True)

    async def delete_drop(self, db: AsyncSession, drop_id: uuid.UUID) -> None:
        drop = await db.get(Drop, drop_id)
        if drop is None:
            raise NotFoundError(resource="drop", resource_id=str(drop_id))
        await db.delete(drop)
        await db.flush()
        logger.info("Drop deleted: %s", drop_id)

    # ── Lifecycle job ─────────────────────────────────────────────────────

    async def refresh_statuses(
        self, db: AsyncSession, now: Optional[datetime] = None
    ) -> StatusRefreshReport:
        now = as_utc(now) if now else utcnow()
        window = timedelta(hours=settings.drop_live_window_hours)

        result = await db.execute(
            select(Drop).where(Drop.status.in_(("upcoming", "live")), Drop.release_date <= now)
        )
        went_live = ended = 0
        for drop in result.scalars().all():
            if drop.release_date + window <= now:
                drop.status = "ended"
                ended += 1
            elif drop.status == "upcoming":
                drop.status = "live"
                went_live += 1

        await db.flush()
        if went_live or ended:
            logger.info("Drop statuses refreshed: %d live, %d ended", went_live, ended)
        return StatusRefreshReport(went_live=went_live, ended=ended)

    # ── Affiliate analytics ───────────────────────────────────────────────

    async def track_affiliate_event(
        self,
        db: AsyncSession,
        drop_id: uuid.UUID,
        event_type: str,
        ip_address: str,
        user: Optional[User] = None,
        user_agent: Optional[str] = None,
        referrer: Optional[str] = None,
    ) -> None:
        """
        Record an affiliate click or discount-code copy.

        Raises:
            RateLimitExceededError: more than affiliate_track_limit events
                from this IP inside the window
            NotFoundError: unknown drop
        """
        retry_after = self.affiliate_limiter.hit(ip_address)
        if retry_after is not None:
            logger.warning("Affiliate tracking rate limit hit for %s", ip_address)
            raise RateLimitExceededError(retry_after=retry_after)

        if await db.get(Drop, drop_id) is None:
            raise NotFoundError(resource="drop", resource_id=str(drop_id))

        db.add(
            AffiliateEvent(
                drop_id=drop_id,
                event_type=event_type,
                user_id=user.id if user else None,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:500] or None,
                referrer=referrer,
            )
        )
        await db.flush()

    async def affiliate_summary(
        self, db: AsyncSession, since: Optional[datetime] = None
    ) -> List[AffiliateSummary]:
        """Per-drop event counts, busiest first."""
        clicks = func.sum(case((AffiliateEvent.event_type == "affiliate_click", 1), else_=0))
        copies = func.sum(case((AffiliateEvent.event_type == "discount_code_copy", 1), else_=0))
        total = func.count(AffiliateEvent.id)
        query = (
            select(Drop.id, Drop.title, clicks, copies, total, func.max(AffiliateEvent.created_at))
            .join(AffiliateEvent, AffiliateEvent.drop_id == Drop.id)
            .group_by(Drop.id, Drop.title)
            .order_by(total.desc(), Drop.title)
        )
        if since:
            query = query.where(AffiliateEvent.created_at >= as_utc(since))

        rows = (await db.execute(query)).all()
        return [
            AffiliateSummary(
                drop_id=drop_id,
                title=title,
                clicks=int(n_clicks or 0),
                copies=int(n_copies or 0),
                total=int(n_total or 0),
                last_event_at=as_utc(last) if isinstance(last, datetime) else _parse_ts(last),
            )
            for drop_id, title, n_clicks, n_copies, n_total, last in rows
        ]

    # ── Internals ─────────────────────────────────────────────────────────

    async def _find(self, db: AsyncSession, id_or_slug: str) -> Optional[Drop]:
        try:
            return await db.get(Drop, uuid.UUID(id_or_slug))
        except ValueError:
            result = await db.execute(select(Drop).where(Drop.slug == id_or_slug))
            return result.scalar_one_or_none()

    async def _brand_name(self, db: AsyncSession, brand_id: Optional[uuid.UUID]) -> Optional[str]:
        if brand_id is None:
            return None
        result = await db.execute(select(Brand.name).where(Brand.id == brand_id))
        return result.scalar_one_or_none()

    async def _ensure_links(
        self,
        db: AsyncSession,
        brand_id: Optional[uuid.UUID],
        shop_id: Optional[uuid.UUID],
    ) -> None:
        if brand_id is not None and await db.get(Brand, brand_id) is None:
            raise ValidationError(message="Unknown brand", field="brand_id")
        if shop_id is not None and await db.get(Shop, shop_id) is None:
            raise ValidationError(message="Unknown shop", field="shop_id")

    async def _resolve_slug(self, db: AsyncSession, explicit: Optional[str], title: str) -> str:
        slug = slugify(explicit or title)
        if not slug:
            raise ValidationError(message="Title must contain letters or digits", field="title")
        result = await db.execute(select(Drop.id).where(Drop.slug == slug))
        if result.scalar_one_or_none() is not None:
            raise ConflictError(message=f"A drop with slug '{slug}' already exists", field="slug")
        return slug


def _parse_ts(value) -> Optional[datetime]:
    """SQLite hands aggregate timestamps back as text."""
    if value is None:
        return None
    return as_utc(datetime.fromisoformat(str(value)))


drop_service = DropService()
