"""
HEARDROP Backend — Notification Job Tests
===========================================

What we test:
    ✅ Drop reminders fire once, only inside the reminder window
    ✅ Users who opted out are skipped (and stay pending)
    ✅ New drops notify each follower of the brand exactly once
    ✅ Notification history, unread counts and read marking
"""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from heardrop.database import utcnow
from heardrop.exceptions import NotFoundError
from heardrop.models.favorites import DropReminder, FavoriteBrand
from heardrop.models.notification import Notification
from heardrop.services.notification_service import NotificationService


async def _notifications(db, user_id=None):
    query = select(Notification)
    if user_id is not None:
        query = query.where(Notification.user_id == user_id)
    return (await db.execute(query)).scalars().all()


class TestDropReminders:

    def setup_method(self):
        self.service = NotificationService()

    @pytest.mark.asyncio
    async def test_sends_once_inside_window(self, db_session, make_user, make_brand, make_drop):
        now = utcnow()
        brand = await make_brand("Supreme")
        soon = await make_drop("Box Logo", brand_id=brand.id, release_date=now + timedelta(minutes=30))
        later = await make_drop("Later", release_date=now + timedelta(hours=5))
        fan = await make_user()
        db_session.add_all(
            [
                DropReminder(user_id=fan.id, drop_id=soon.id),
                DropReminder(user_id=fan.id, drop_id=later.id),
            ]
        )
        await db_session.commit()

        report = await self.service.dispatch_drop_reminders(db_session, now=now)
        assert (report.processed, report.skipped) == (1, 0)

        [sent] = await _notifications(db_session, fan.id)
        assert sent.notification_type == "drop_reminder"
        assert sent.title == "Box Logo is going live soon!"
        assert sent.message.startswith("The drop from Supreme is releasing on ")
        assert sent.payload["drop_id"] == str(soon.id)

        again = await self.service.dispatch_drop_reminders(db_session, now=now)
        assert again.processed == 0
        assert len(await _notifications(db_session, fan.id)) == 1

    @pytest.mark.asyncio
    async def test_opted_out_user_is_skipped(self, db_session, make_user, make_drop):
        now = utcnow()
        drop = await make_drop("Quiet Drop", release_date=now + timedelta(minutes=10))
        quiet = await make_user(notification_preferences={"drop_reminders": False})
        reminder = DropReminder(user_id=quiet.id, drop_id=drop.id)
        db_session.add(reminder)
        await db_session.commit()

        report = await self.service.dispatch_drop_reminders(db_session, now=now)

        assert (report.processed, report.skipped) == (0, 1)
        assert await _notifications(db_session) == []
        assert reminder.is_notified is False

    @pytest.mark.asyncio
    async def test_only_upcoming_drops(self, db_session, make_user, make_drop):
        now = utcnow()
        drop = await make_drop("Already Live", release_date=now + timedelta(minutes=10), status="live")
        fan = await make_user()
        db_session.add(DropReminder(user_id=fan.id, drop_id=drop.id))
        await db_session.commit()

        report = await self.service.dispatch_drop_reminders(db_session, now=now)
        assert report.processed == 0


class TestFavoriteBrandDrops:

    def setup_method(self):
        self.service = NotificationService()

    @pytest.mark.asyncio
    async def test_notifies_followers_once(self, db_session, make_user, make_brand, make_drop):
        brand = await make_brand("Palace")
        other = await make_brand("Kith")
        fan = await make_user()
        opted_out = await make_user(notification_preferences={"favorite_brands": False})
        stranger = await make_user()
        db_session.add_all(
            [
                FavoriteBrand(user_id=fan.id, brand_id=brand.id),
                FavoriteBrand(user_id=opted_out.id, brand_id=brand.id),
                FavoriteBrand(user_id=stranger.id, brand_id=other.id),
            ]
        )
        await db_session.commit()
        drop = await make_drop("Palace Tri-Ferg Tee", brand_id=brand.id)

        report = await self.service.dispatch_favorite_brand_drops(db_session)

        assert (report.processed, report.skipped) == (1, 1)
        [sent] = await _notifications(db_session)
        assert sent.user_id == fan.id
        assert sent.title == "New drop from Palace"
        assert sent.message == "Palace just announced: Palace Tri-Ferg Tee"
        assert sent.payload["drop_id"] == str(drop.id)

        again = await self.service.dispatch_favorite_brand_drops(db_session)
        assert again.processed == 0

    @pytest.mark.asyncio
    async def test_ignores_old_drops(self, db_session, make_user, make_brand, make_drop):
        brand = await make_brand("Palace")
        fan = await make_user()
        db_session.add(FavoriteBrand(user_id=fan.id, brand_id=brand.id))
        await db_session.commit()
        await make_drop("Palace Archive", brand_id=brand.id)

        report = await self.service.dispatch_favorite_brand_drops(
            db_session, now=utcnow() + timedelta(days=2)
        )
        assert report.processed == 0


class TestNotificationHistory:

    def setup_method(self):
        self.service = NotificationService()

    async def _seed(self, db, user, count):
        for i in range(count):
            db.add(Notification(user_id=user.id, notification_type="drop_reminder", title=f"N{i}"))
        await db.commit()

    @pytest.mark.asyncio
    async def test_list_and_mark_read(self, db_session, make_user):
        user = await make_user()
        await self._seed(db_session, user, 3)

        listing = await self.service.list_notifications(db_session, user)
        assert len(listing.notifications) == 3
        assert listing.unread_count == 3

        first = listing.notifications[0]
        marked = await self.service.mark_read(db_session, user, first.id)
        assert marked.is_read is True

        unread = await self.service.list_notifications(db_session, user, unread_only=True)
        assert len(unread.notifications) == 2
        assert unread.unread_count == 2

        assert await self.service.mark_all_read(db_session, user) == 2
        assert (await self.service.list_notifications(db_session, user)).unread_count == 0

    @pytest.mark.asyncio
    async def test_cannot_read_someone_elses(self, db_session, make_user):
        owner = await make_user()
        intruder = await make_user()
        await self._seed(db_session, owner, 1)
        [notification] = await _notifications(db_session, owner.id)

        with pytest.raises(NotFoundError):
            await self.service.mark_read(db_session, intruder, notification.id)
        with pytest.raises(NotFoundError):
            await self.service.mark_read(db_session, owner, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_metadata_exposed_from_payload(self, db_session, make_user):
        user = await make_user()
        db_session.add(
            Notification(
                user_id=user.id,
                notification_type="favorite_brand_drop",
                title="New drop from Palace",
                payload={"brand_name": "Palace"},
            )
        )
        await db_session.commit()

        listing = await self.service.list_notifications(db_session, user)
        assert listing.notifications[0].metadata == {"brand_name": "Palace"}
