"""
HEARDROP Backend — Back-office Service
========================================

What:  Dashboard counters, catalogue CSV exports, scheduled-job triggers and
       storage housekeeping for the admin area.
Who:   The /api/admin routes.

Audit-log listing/export and lock management live in AuditService and
AuthService; this module only covers what has no other natural home.
"""

import csv
import io
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import as_utc, utcnow
from heardrop.exceptions import ValidationError
from heardrop.models.brand import Brand
from heardrop.models.drop import DROP_STATUSES, Drop
from heardrop.models.security import SecurityAuditLog
from heardrop.models.shop import Shop
from heardrop.models.spot import SpotPost
from heardrop.models.user import User
from heardrop.schemas.admin import DashboardStats
from heardrop.services.brand_service import BANNER_FOLDER, LOGO_FOLDER
from heardrop.services.contact_service import contact_service
from heardrop.services.drop_service import drop_service
from heardrop.services.file_service import UPLOAD_FOLDER, FileService, file_service, split_public_url
from heardrop.services.notification_service import notification_service
from heardrop.services.shop_service import shop_service
from heardrop.services.spot_service import spot_service
from heardrop.utils import social_handle

logger = logging.getLogger(__name__)

BRAND_EXPORT_COLUMNS = ("brand_name", "website", "instagram_handle", "tiktok_handle", "shop_count")
SHOP_EXPORT_COLUMNS = ("brand_name", "brand_shop_count", "shop_name", "country", "city", "address")
INDEPENDENT = "Independent"


def _to_csv(columns, rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(columns)
    writer.writerows(rows)
    return buffer.getvalue()


class AdminService:

    # ── Dashboard ─────────────────────────────────────────────────────────

    async def dashboard(self, db: AsyncSession, now: Optional[datetime] = None) -> DashboardStats:
        now = as_utc(now) if now else utcnow()

        async def count(query) -> int:
            return (await db.execute(query)).scalar() or 0

        by_status = dict.fromkeys(DROP_STATUSES, 0)
        rows = (await db.execute(select(Drop.status, func.count(Drop.id)).group_by(Drop.status))).all()
        for status, total in rows:
            by_status[status] = total

        return DashboardStats(
            brands=await count(select(func.count(Brand.id))),
            active_brands=await count(select(func.count(Brand.id)).where(Brand.is_active.is_(True))),
            shops=await count(select(func.count(Shop.id))),
            shops_missing_coordinates=await count(
                select(func.count(Shop.id)).where(
                    (Shop.latitude.is_(None)) | (Shop.longitude.is_(None))
                )
            ),
            drops_by_status=by_status,
            users=await count(select(func.count(User.id))),
            pending_spots=await count(
                select(func.count(SpotPost.id)).where(SpotPost.status == "pending")
            ),
            unresolved_contact=await contact_service.unresolved_count(db),
            security_events_24h=await count(
                select(func.count(SecurityAuditLog.id)).where(
                    SecurityAuditLog.created_at >= now - timedelta(hours=24)
                )
            ),
        )

    # ── Exports ───────────────────────────────────────────────────────────

    async def export_brands_csv(self, db: AsyncSession) -> str:
        """Active brands by name with their active shop counts."""
        shop_counts = dict(
            (
                await db.execute(
                    select(Shop.brand_id, func.count(Shop.id))
                    .where(Shop.is_active.is_(True), Shop.brand_id.is_not(None))
                    .group_by(Shop.brand_id)
                )
            ).all()
        )
        brands = (
            await db.execute(select(Brand).where(Brand.is_active.is_(True)).order_by(Brand.name))
        ).scalars().all()

        rows = [
            [
                brand.name,
                brand.official_website or "",
                social_handle(brand.instagram_url),
                social_handle(brand.tiktok_url),
                shop_counts.get(brand.id, 0),
            ]
            for brand in brands
        ]
        logger.info("Exported %d brands", len(rows))
        return _to_csv(BRAND_EXPORT_COLUMNS, rows)

    async def export_shops_csv(self, db: AsyncSession) -> str:
        """Active shops ordered by country then city; brandless shops count as Independent."""
        shops = (
            await db.execute(
                select(Shop, Brand.name)
                .outerjoin(Brand, Shop.brand_id == Brand.id)
                .where(Shop.is_active.is_(True))
                .order_by(Shop.country, Shop.city, Shop.name)
            )
        ).all()

        per_brand: Dict[object, int] = {}
        for shop, _ in shops:
            per_brand[shop.brand_id] = per_brand.get(shop.brand_id, 0) + 1

        rows = [
            [
                brand_name or INDEPENDENT,
                per_brand[shop.brand_id],
                shop.name,
                shop.country,
                shop.city,
                shop.address,
            ]
            for shop, brand_name in shops
        ]
        logger.info("Exported %d shops", len(rows))
        return _to_csv(SHOP_EXPORT_COLUMNS, rows)

    # ── Jobs ──────────────────────────────────────────────────────────────

    def _jobs(self) -> Dict[str, Callable]:
        return {
            "refresh_drop_statuses": drop_service.refresh_statuses,
            "dispatch_drop_reminders": notification_service.dispatch_drop_reminders,
            "dispatch_favorite_brand_drops": notification_service.dispatch_favorite_brand_drops,
            "geocode_shops": shop_service.geocode_missing,
        }

    @property
    def job_names(self) -> List[str]:
        return list(self._jobs())

    async def run_job(self, db: AsyncSession, name: str):
        """
        Run one scheduled job now and return its report.

        Raises:
            ValidationError: unknown job name
        """
        job = self._jobs().get(name)
        if job is None:
            raise ValidationError(
                message=f"Unknown job '{name}'", field="job", context={"jobs": self.job_names}
            )
        logger.info("Running job %s", name)
        return await job(db)

    # ── Storage ───────────────────────────────────────────────────────────

    async def cleanup_orphaned_files(
        self, db: AsyncSession, storage: Optional[FileService] = None
    ) -> List[str]:
        """Remove uploads and generated artwork that no post or brand references."""
        storage = storage or file_service
        referenced = set(await spot_service.image_paths(db))

        urls = (await db.execute(select(Brand.logo_url, Brand.banner_url))).all()
        for logo_url, banner_url in urls:
            for url in (logo_url, banner_url):
                ours, relative = split_public_url(url or "")
                if ours:
                    referenced.add(relative)

        removed: List[str] = []
        for folder in (UPLOAD_FOLDER, LOGO_FOLDER, BANNER_FOLDER):
            removed.extend(await storage.cleanup_orphans(referenced, folder))
        return removed


admin_service = AdminService()
