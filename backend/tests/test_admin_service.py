"""
HEARDROP Backend — Back-office Tests
======================================

What we test:
    ✅ Dashboard counters
    ✅ Brand and shop CSV exports (columns, ordering, Independent shops)
    ✅ Job triggers run the real jobs; unknown names are rejected
    ✅ Orphaned uploads and artwork are removed, referenced files kept
    ✅ Audit log filters, pagination and CSV/JSON export
"""

import csv
import io
import json
from datetime import timedelta

import pytest

from heardrop.database import utcnow
from heardrop.exceptions import ValidationError
from heardrop.models.spot import SpotPost
from heardrop.services.admin_service import AdminService
from heardrop.services.audit_service import EXPORT_COLUMNS, AuditService
from heardrop.services.file_service import FileService, public_url


def _rows(text: str):
    return list(csv.reader(io.StringIO(text)))


class TestDashboard:

    @pytest.mark.asyncio
    async def test_counts(self, db_session, make_user, make_brand, make_shop, make_drop):
        user = await make_user()
        await make_brand("Palace")
        await make_brand("Old Label", is_active=False)
        await make_shop("Placed")
        await make_shop("Unplaced", None, None)
        await make_drop("Soon")
        await make_drop("Now", status="live")
        db_session.add(SpotPost(user_id=user.id, image_path="spots/a.png"))
        await db_session.commit()
        await AuditService().log_event(db_session, "login_success", user_id=user.id)

        stats = await AdminService().dashboard(db_session)

        assert (stats.brands, stats.active_brands) == (2, 1)
        assert (stats.shops, stats.shops_missing_coordinates) == (2, 1)
        assert stats.drops_by_status == {"upcoming": 1, "live": 1, "ended": 0}
        assert stats.users == 1
        assert stats.pending_spots == 1
        assert stats.unresolved_contact == 0
        assert stats.security_events_24h == 1

        later = await AdminService().dashboard(db_session, now=utcnow() + timedelta(days=2))
        assert later.security_events_24h == 0


class TestExports:

    def setup_method(self):
        self.service = AdminService()

    @pytest.mark.asyncio
    async def test_brands_csv(self, db_session, make_brand, make_shop):
        palace = await make_brand(
            "Palace",
            official_website="https://palaceskateboards.com",
            instagram_url="https://instagram.com/palaceskateboards/",
        )
        await make_brand("Noah", tiktok_url="https://www.tiktok.com/@noahclothing")
        await make_brand("Old Label", is_active=False)
        await make_shop("Palace Soho", brand_id=palace.id)
        await make_shop("Palace Paris", brand_id=palace.id)
        await make_shop("Palace Closed", brand_id=palace.id, is_active=False)

        rows = _rows(await self.service.export_brands_csv(db_session))

        assert rows == [
            ["brand_name", "website", "instagram_handle", "tiktok_handle", "shop_count"],
            ["Noah", "", "", "noahclothing", "0"],
            ["Palace", "https://palaceskateboards.com", "palaceskateboards", "", "2"],
        ]

    @pytest.mark.asyncio
    async def test_shops_csv(self, db_session, make_brand, make_shop):
        palace = await make_brand("Palace")
        await make_shop("Palace Soho", brand_id=palace.id, city="London", country="UK")
        await make_shop("Palace Paris", brand_id=palace.id, city="Paris", country="France")
        await make_shop("Goodhood", city="London", country="UK", address="151 Curtain Rd")
        await make_shop("Gone", city="London", country="UK", is_active=False)

        rows = _rows(await self.service.export_shops_csv(db_session))

        assert rows[0] == ["brand_name", "brand_shop_count", "shop_name", "country", "city", "address"]
        assert [row[:5] for row in rows[1:]] == [
            ["Palace", "2", "Palace Paris", "France", "Paris"],
            ["Independent", "1", "Goodhood", "UK", "London"],
            ["Palace", "2", "Palace Soho", "UK", "London"],
        ]
        assert rows[2][5] == "151 Curtain Rd"


class TestJobs:

    def setup_method(self):
        self.service = AdminService()

    def test_job_names(self):
        assert self.service.job_names == [
            "refresh_drop_statuses",
            "dispatch_drop_reminders",
            "dispatch_favorite_brand_drops",
            "geocode_shops",
        ]

    @pytest.mark.asyncio
    async def test_run_refresh(self, db_session, make_drop):
        drop = await make_drop("Released", release_date=utcnow() - timedelta(hours=1))
        report = await self.service.run_job(db_session, "refresh_drop_statuses")
        assert report.went_live == 1
        assert drop.status == "live"

    @pytest.mark.asyncio
    async def test_unknown_job(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.run_job(db_session, "send_newsletter")
        assert "geocode_shops" in exc_info.value.context["jobs"]


class TestOrphanCleanup:

    @pytest.mark.asyncio
    async def test_keeps_referenced_files(self, db_session, make_user, make_brand, tmp_path):
        storage = FileService(storage_root=str(tmp_path))
        user = await make_user()
        kept_spot = await storage.store_bytes(b"spot", ".png", "spots/2026/01/01")
        orphan_spot = await storage.store_bytes(b"old", ".png", "spots/2026/01/01")
        kept_logo = await storage.store_bytes(b"logo", ".png", "brand-images/logos", prefix="palace")
        orphan_banner = await storage.store_bytes(b"banner", ".png", "brand-images/banners", prefix="palace")

        db_session.add(SpotPost(user_id=user.id, image_path=kept_spot))
        await db_session.commit()
        await make_brand("Palace", logo_url=public_url(kept_logo), banner_url="https://cdn.example.com/b.png")

        removed = await AdminService().cleanup_orphaned_files(db_session, storage=storage)

        assert sorted(removed) == sorted([orphan_spot, orphan_banner])
        assert storage.resolve(kept_spot).read_bytes() == b"spot"
        assert storage.resolve(kept_logo).read_bytes() == b"logo"


class TestAuditLog:

    def setup_method(self):
        self.service = AuditService()

    async def _seed(self, db):
        await self.service.log_event(db, "login_failed", user_email="kai@heardrop.io", ip_address="10.0.0.1")
        await self.service.log_event(db, "login_failed", user_email="mo@heardrop.io", ip_address="10.0.0.2")
        await self.service.log_event(
            db, "password_breach_detected", user_email="kai@heardrop.io", event_data={"breach_count": 7}
        )

    @pytest.mark.asyncio
    async def test_filters_and_pagination(self, db_session):
        await self._seed(db_session)

        everything = await self.service.list_events(db_session)
        assert everything.total == 3

        failed = await self.service.list_events(db_session, event_type="login_failed")
        assert failed.total == 2

        kai = await self.service.list_events(db_session, user_email="KAI@")
        assert {e.event_type for e in kai.entries} == {"login_failed", "password_breach_detected"}

        page = await self.service.list_events(db_session, limit=2, offset=2)
        assert (len(page.entries), page.total, page.limit, page.offset) == (1, 3, 2, 2)

        future = await self.service.list_events(db_session, start_date=utcnow() + timedelta(hours=1))
        assert future.total == 0

    @pytest.mark.asyncio
    async def test_export_csv(self, db_session):
        await self._seed(db_session)

        body, media_type = await self.service.export_events(
            db_session, event_type="password_breach_detected"
        )

        assert media_type == "text/csv"
        rows = _rows(body)
        assert rows[0] == list(EXPORT_COLUMNS)
        assert len(rows) == 2
        assert rows[1][1:3] == ["password_breach_detected", "kai@heardrop.io"]
        assert json.loads(rows[1][6]) == {"breach_count": 7}

    @pytest.mark.asyncio
    async def test_export_json(self, db_session):
        await self._seed(db_session)
        body, media_type = await self.service.export_events(db_session, export_format="json")

        assert media_type == "application/json"
        entries = json.loads(body)
        assert len(entries) == 3
        assert {e["ip_address"] for e in entries} == {"10.0.0.1", "10.0.0.2", None}
