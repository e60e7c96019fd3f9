"""
HEARDROP Backend — Drops Service Tests
========================================

What we test:
    ✅ Listing filters, ordering and bad parameters
    ✅ Monthly calendar grouped by UTC date
    ✅ Featured drops backfilled with ended ones
    ✅ Pro-exclusive drops hide the affiliate link and code unless unlocked
    ✅ Status lifecycle upcoming → live → ended (48h window)
    ✅ Affiliate tracking, its per-IP limit and the summary
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from heardrop.database import utcnow
from heardrop.exceptions import ConflictError, NotFoundError, RateLimitExceededError, ValidationError
from heardrop.schemas.drop import DropCreate, DropUpdate
from heardrop.services.drop_service import DropService, can_view_exclusive


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


class TestDropQueries:

    def setup_method(self):
        self.service = DropService()

    @pytest.mark.asyncio
    async def test_filters_and_order(self, db_session, make_brand, make_drop):
        brand = await make_brand("Supreme")
        now = utcnow()
        await make_drop("Week One", brand_id=brand.id, release_date=now + timedelta(days=7))
        await make_drop("Tomorrow", brand_id=brand.id, release_date=now + timedelta(days=1), is_featured=True)
        await make_drop("Old", release_date=now - timedelta(days=10), status="ended")

        upcoming = await self.service.list_drops(db_session, statuses=["upcoming"])
        assert [d.title for d in upcoming] == ["Tomorrow", "Week One"]
        assert upcoming[0].brand_name == "Supreme"

        newest_first = await self.service.list_drops(db_session, ascending=False)
        assert [d.title for d in newest_first] == ["Week One", "Tomorrow", "Old"]

        assert [d.title for d in await self.service.list_drops(db_session, featured=True)] == ["Tomorrow"]
        assert len(await self.service.list_drops(db_session, brand_id=brand.id)) == 2
        window = await self.service.list_drops(
            db_session, start_date=now, end_date=now + timedelta(days=2)
        )
        assert [d.title for d in window] == ["Tomorrow"]
        assert len(await self.service.list_drops(db_session, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_bad_parameters(self, db_session):
        with pytest.raises(ValidationError, match="order_by"):
            await self.service.list_drops(db_session, order_by="title")
        with pytest.raises(ValidationError, match="Unknown drop status"):
            await self.service.list_drops(db_session, statuses=["sold_out"])

    @pytest.mark.asyncio
    async def test_calendar(self, db_session, make_drop):
        await make_drop("March A", release_date=_utc(2026, 3, 5, 10, 0))
        await make_drop("March B", release_date=_utc(2026, 3, 5, 18, 0))
        await make_drop("March C", release_date=_utc(2026, 3, 31, 23, 59))
        await make_drop("April", release_date=_utc(2026, 4, 1, 0, 0))

        calendar = await self.service.calendar(db_session, 2026, 3)

        assert [day.date for day in calendar.days] == ["2026-03-05", "2026-03-31"]
        assert [d.title for d in calendar.days[0].drops] == ["March A", "March B"]

    @pytest.mark.asyncio
    async def test_calendar_bad_month(self, db_session):
        with pytest.raises(ValidationError):
            await self.service.calendar(db_session, 2026, 13)

    @pytest.mark.asyncio
    async def test_featured_backfills_with_ended(self, db_session, make_drop):
        now = utcnow()
        await make_drop("Next", release_date=now + timedelta(days=2))
        await make_drop("Ended Recently", release_date=now - timedelta(days=3), status="ended")
        await make_drop("Ended Long Ago", release_date=now - timedelta(days=90), status="ended")

        featured = await self.service.featured(db_session, limit=2)
        assert [d.title for d in featured] == ["Next", "Ended Recently"]

    @pytest.mark.asyncio
    async def test_get_by_slug_or_id(self, db_session, make_drop):
        drop = await make_drop("Box Logo Hoodie")
        assert (await self.service.get_drop(db_session, "box-logo-hoodie")).id == drop.id
        assert (await self.service.get_drop(db_session, str(drop.id))).slug == "box-logo-hoodie"
        with pytest.raises(NotFoundError):
            await self.service.get_drop(db_session, "nope")


class TestProExclusive:

    def setup_method(self):
        self.service = DropService()

    @pytest.mark.asyncio
    async def test_locked_for_regular_viewers(self, db_session, make_drop):
        drop = await make_drop(
            "Members Only",
            is_pro_exclusive=True,
            affiliate_link="https://shop.example.com/r/123",
            discount_code="HEAR10",
        )

        locked = await self.service.get_drop(db_session, str(drop.id))
        assert locked.locked is True
        assert locked.affiliate_link is None
        assert locked.discount_code is None

        unlocked = await self.service.get_drop(db_session, str(drop.id), unlocked=True)
        assert unlocked.locked is False
        assert unlocked.discount_code == "HEAR10"

    @pytest.mark.asyncio
    async def test_who_can_view(self, db_session, make_user):
        regular = await make_user()
        pro = await make_user(is_pro=True)
        lapsed = await make_user(is_pro=True, pro_expires_at=utcnow() - timedelta(days=1))
        admin = await make_user(roles=("user", "admin"))

        assert await can_view_exclusive(db_session, None) is False
        assert await can_view_exclusive(db_session, regular) is False
        assert await can_view_exclusive(db_session, pro) is True
        assert await can_view_exclusive(db_session, lapsed) is False
        assert await can_view_exclusive(db_session, admin) is True


class TestDropAdmin:

    def setup_method(self):
        self.service = DropService()

    @pytest.mark.asyncio
    async def test_create_and_conflict(self, db_session, make_brand):
        brand = await make_brand("Stüssy", slug="stussy")
        payload = DropCreate(
            title="Stüssy x Nike",
            brand_id=brand.id,
            release_date=datetime(2026, 11, 1, 9, 0, tzinfo=timezone(timedelta(hours=1))),
        )

        created = await self.service.create_drop(db_session, payload)

        assert created.slug == "stssy-x-nike"
        assert created.brand_name == "Stüssy"
        assert created.release_date == _utc(2026, 11, 1, 8, 0)
        with pytest.raises(ConflictError):
            await self.service.create_drop(db_session, payload)

    @pytest.mark.asyncio
    async def test_unknown_links(self, db_session):
        with pytest.raises(ValidationError, match="Unknown shop"):
            await self.service.create_drop(
                db_session,
                DropCreate(title="Ghost", shop_id=uuid.uuid4(), release_date=utcnow()),
            )

    @pytest.mark.asyncio
    async def test_update_and_delete(self, db_session, make_drop):
        drop = await make_drop("Restock")
        updated = await self.service.update_drop(
            db_session, drop.id, DropUpdate(status="live", is_featured=True)
        )
        assert updated.status == "live"
        assert updated.is_featured is True

        await self.service.delete_drop(db_session, drop.id)
        with pytest.raises(NotFoundError):
            await self.service.update_drop(db_session, drop.id, DropUpdate(title="Again"))


class TestLifecycle:

    def setup_method(self):
        self.service = DropService()

    @pytest.mark.asyncio
    async def test_refresh_statuses(self, db_session, make_drop):
        now = _utc(2026, 6, 10, 12, 0)
        future = await make_drop("Future", release_date=now + timedelta(hours=1))
        released = await make_drop("Released", release_date=now - timedelta(hours=1))
        still_live = await make_drop("Still Live", release_date=now - timedelta(hours=47), status="live")
        expired = await make_drop("Expired", release_date=now - timedelta(hours=49), status="live")
        skipped = await make_drop("Never Seen Live", release_date=now - timedelta(days=5))

        report = await self.service.refresh_statuses(db_session, now=now)

        assert (report.went_live, report.ended) == (1, 2)
        assert future.status == "upcoming"
        assert released.status == "live"
        assert still_live.status == "live"
        assert expired.status == "ended"
        assert skipped.status == "ended"

    @pytest.mark.asyncio
    async def test_refresh_is_idempotent(self, db_session, make_drop):
        now = _utc(2026, 6, 10, 12, 0)
        await make_drop("Released", release_date=now - timedelta(hours=1))
        await self.service.refresh_statuses(db_session, now=now)
        report = await self.service.refresh_statuses(db_session, now=now)
        assert (report.went_live, report.ended) == (0, 0)


class TestAffiliateTracking:

    def setup_method(self):
        self.service = DropService()

    @pytest.mark.asyncio
    async def test_track_and_summarise(self, db_session, make_drop, make_user):
        hoodie = await make_drop("Hoodie")
        tee = await make_drop("Tee")
        fan = await make_user()

        for _ in range(2):
            await self.service.track_affiliate_event(db_session, hoodie.id, "affiliate_click", "10.0.0.1")
        await self.service.track_affiliate_event(
            db_session, hoodie.id, "discount_code_copy", "10.0.0.1", user=fan, user_agent="Mozilla/5.0"
        )
        await self.service.track_affiliate_event(db_session, tee.id, "affiliate_click", "10.0.0.2")

        summary = await self.service.affiliate_summary(db_session)

        assert [row.title for row in summary] == ["Hoodie", "Tee"]
        assert (summary[0].clicks, summary[0].copies, summary[0].total) == (2, 1, 3)
        assert summary[0].last_event_at is not None
        assert summary[0].last_event_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_summary_since_filter(self, db_session, make_drop):
        drop = await make_drop("Hoodie")
        await self.service.track_affiliate_event(db_session, drop.id, "affiliate_click", "10.0.0.1")
        assert await self.service.affiliate_summary(db_session, since=utcnow() + timedelta(hours=1)) == []

    @pytest.mark.asyncio
    async def test_unknown_drop(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.track_affiliate_event(db_session, uuid.uuid4(), "affiliate_click", "10.0.0.1")

    @pytest.mark.asyncio
    async def test_rate_limit(self, db_session, make_drop):
        drop = await make_drop("Hoodie")
        self.service.affiliate_limiter.limit = 2

        await self.service.track_affiliate_event(db_session, drop.id, "affiliate_click", "10.0.0.3")
        await self.service.track_affiliate_event(db_session, drop.id, "affiliate_click", "10.0.0.3")
        with pytest.raises(RateLimitExceededError):
            await self.service.track_affiliate_event(db_session, drop.id, "affiliate_click", "10.0.0.3")
