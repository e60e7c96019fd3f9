"""
HEARDROP Backend — CSV Import Service
=======================================

What:  Bulk import of shops, brands and drops from CSV uploads.
Who:   Admin import routes (preview first, then import).

Import flow:
    ┌──────────┐   ┌──────────────┐   ┌───────────────┐   ┌─────────────┐
    │ CSV text │──▶│ parse_csv()  │──▶│ _check_<kind> │──▶│ preview or  │
    │          │   │ header→keys  │   │ row → errors  │   │ insert rows │
    └──────────┘   └──────────────┘   └───────────────┘   └─────────────┘

Headers are case-insensitive and spaces become underscores, so a column
called "Brand Name" maps to `brand_name`. Rows are numbered from 1 after the
header. Preview never writes; import re-validates every row against the
current database state and only inserts valid ones.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.exceptions import ValidationError
from heardrop.models.brand import CATEGORIES, Brand
from heardrop.models.drop import DROP_STATUSES, Drop
from heardrop.models.shop import Shop
from heardrop.schemas.admin import ImportPreview, ImportReport, ImportRowResult
from heardrop.services.shop_service import shop_service
from heardrop.utils import slugify

logger = logging.getLogger(__name__)

BRAND_URL_FIELDS = ("official_website", "instagram_url", "tiktok_url")


def parse_csv(text: str) -> List[Dict[str, str]]:
    """
    Parse CSV text into dicts keyed by normalised header names.

    Quoted fields, doubled quotes and CRLF/LF line endings are handled by the
    csv module. Blank rows are skipped and missing trailing cells read as "".

    Raises:
        ValidationError: no header or no data rows
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        raise ValidationError(
            message="CSV must have a header row and at least one data row", field="file"
        )

    headers = [_normalise_header(h) for h in rows[0]]
    parsed = []
    for row in rows[1:]:
        values = [cell.strip() for cell in row] + [""] * (len(headers) - len(row))
        parsed.append(dict(zip(headers, values)))
    return parsed


def _normalise_header(header: str) -> str:
    return "_".join(header.strip().lower().split())


def _is_true(value: Optional[str]) -> bool:
    return (value or "").strip().lower() == "true"


def _parse_release_date(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _is_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


@dataclass
class _Lookups:
    """Case-insensitive name → row maps loaded once per preview/import."""

    brands: Dict[str, Brand] = field(default_factory=dict)
    shops: Dict[str, Shop] = field(default_factory=dict)
    brand_slugs: set = field(default_factory=set)
    drop_slugs: set = field(default_factory=set)


class ImportService:

    # ── Shops ─────────────────────────────────────────────────────────────

    async def preview_shops(self, db: AsyncSession, text: str) -> ImportPreview:
        lookups = await self._load(db)
        return _preview([self._check_shop(i, row, lookups) for i, row in _numbered(text)])

    async def import_shops(self, db: AsyncSession, text: str) -> ImportReport:
        """
        Insert valid shop rows. Unknown brand names become new active brands,
        created once per distinct name.
        """
        lookups = await self._load(db)
        report = ImportReport(imported=0, failed=0, skipped_invalid=0)

        for index, row in _numbered(text):
            result = self._check_shop(index, row, lookups)
            if not result.valid:
                report.skipped_invalid += 1
                report.errors.append(f"Row {index}: {'; '.join(result.errors)}")
                continue

            brand = await self._brand_for(db, row.get("brand_name", ""), lookups, report)
            shop = Shop(
                name=row["name"],
                slug=await shop_service.available_slug(db, row["name"]),
                brand_id=brand.id if brand else None,
                address=row["address"],
                city=row["city"],
                country=row["country"],
                latitude=float(row["latitude"]),
                longitude=float(row["longitude"]),
                description=row.get("description") or None,
                official_site=row.get("official_site") or None,
                email=row.get("email") or None,
                phone=row.get("phone") or None,
                image_url=row.get("image_url") or None,
                is_unique_shop=_is_true(row.get("is_unique_shop")),
                is_active=True,
            )
            db.add(shop)
            await db.flush()
            report.imported += 1

        logger.info(
            "Shop import: %d imported, %d invalid, %d brands created",
            report.imported,
            report.skipped_invalid,
            report.brands_created,
        )
        return report

    def _check_shop(self, index: int, row: Dict[str, str], lookups: _Lookups) -> ImportRowResult:
        errors = []
        for required in ("name", "address", "city", "country"):
            if not row.get(required):
                errors.append(f"Missing {required}")
        if row.get("name") and not slugify(row["name"]):
            errors.append("Name must contain letters or digits")

        latitude, longitude = row.get("latitude", ""), row.get("longitude", "")
        if not latitude or not longitude:
            errors.append("Missing coordinates")
        else:
            if not _in_range(latitude, 90):
                errors.append("Invalid latitude")
            if not _in_range(longitude, 180):
                errors.append("Invalid longitude")

        brand_name = row.get("brand_name", "")
        match = lookups.brands.get(brand_name.lower()) if brand_name else None
        return ImportRowResult(
            row=index,
            valid=not errors,
            errors=errors,
            data=row,
            slug=slugify(row.get("name", "")) or None,
            brand_match=match.name if match else None,
        )

    # ── Brands ────────────────────────────────────────────────────────────

    async def preview_brands(self, db: AsyncSession, text: str) -> ImportPreview:
        lookups = await self._load(db)
        return _preview([self._check_brand(i, row, lookups) for i, row in _numbered(text)])

    async def import_brands(self, db: AsyncSession, text: str) -> ImportReport:
        lookups = await self._load(db)
        report = ImportReport(imported=0, failed=0, skipped_invalid=0)

        for index, row in _numbered(text):
            result = self._check_brand(index, row, lookups)
            if not result.valid:
                # A slug clash is a failed row; anything else is bad input
                if any(e.startswith("Already exists") for e in result.errors):
                    report.failed += 1
                else:
                    report.skipped_invalid += 1
                report.errors.append(f"Row {index}: {'; '.join(result.errors)}")
                continue

            brand = Brand(
                name=row["name"],
                slug=result.slug,
                category=row.get("category", "").lower() or None,
                country=row.get("country") or None,
                description=row.get("description") or None,
                history=row.get("history") or None,
                official_website=row.get("official_website") or None,
                instagram_url=row.get("instagram_url") or None,
                tiktok_url=row.get("tiktok_url") or None,
                logo_url=row.get("logo_url") or None,
                banner_url=row.get("banner_url") or None,
                is_active=True,
            )
            db.add(brand)
            await db.flush()
            lookups.brands[brand.name.lower()] = brand
            lookups.brand_slugs.add(brand.slug)
            report.imported += 1

        logger.info(
            "Brand import: %d imported, %d failed, %d invalid",
            report.imported,
            report.failed,
            report.skipped_invalid,
        )
        return report

    def _check_brand(self, index: int, row: Dict[str, str], lookups: _Lookups) -> ImportRowResult:
        errors = []
        name = row.get("name", "")
        slug = slugify(name)
        if not name:
            errors.append("Missing name")
        elif not slug:
            errors.append("Name must contain letters or digits")
        elif name.lower() in lookups.brands or slug in lookups.brand_slugs:
            errors.append(f"Already exists (slug '{slug}')")

        category = row.get("category", "").lower()
        if category and category not in CATEGORIES:
            errors.append("Invalid category")

        for url_field in BRAND_URL_FIELDS:
            value = row.get(url_field, "")
            if value and not _is_url(value):
                errors.append(f"{url_field} needs http:// or https://")

        return ImportRowResult(
            row=index, valid=not errors, errors=errors, data=row, slug=slug or None
        )

    # ── Drops ─────────────────────────────────────────────────────────────

    async def preview_drops(self, db: AsyncSession, text: str) -> ImportPreview:
        lookups = await self._load(db)
        return _preview([self._check_drop(i, row, lookups) for i, row in _numbered(text)])

    async def import_drops(self, db: AsyncSession, text: str) -> ImportReport:
        lookups = await self._load(db)
        report = ImportReport(imported=0, failed=0, skipped_invalid=0)

        for index, row in _numbered(text):
            result = self._check_drop(index, row, lookups)
            if not result.valid:
                report.skipped_invalid += 1
                report.errors.append(f"Row {index}: {'; '.join(result.errors)}")
                continue
            if result.slug in lookups.drop_slugs:
                report.failed += 1
                report.errors.append(f"Row {index}: a drop with slug '{result.slug}' already exists")
                continue

            brand = await self._brand_for(db, row.get("brand_name", ""), lookups, report)
            shop = lookups.shops.get(row.get("shop_name", "").lower())
            drop = Drop(
                title=row["title"],
                slug=result.slug,
                brand_id=brand.id if brand else None,
                shop_id=shop.id if shop else None,
                release_date=_parse_release_date(row["release_date"]),
                status=row.get("status", "").lower() or "upcoming",
                description=row.get("description") or None,
                image_url=row.get("image_url") or None,
                affiliate_link=row.get("affiliate_link") or None,
                discount_code=row.get("discount_code") or None,
                is_featured=_is_true(row.get("is_featured")),
                is_pro_exclusive=_is_true(row.get("is_pro_exclusive")),
            )
            db.add(drop)
            await db.flush()
            lookups.drop_slugs.add(drop.slug)
            report.imported += 1

        logger.info(
            "Drop import: %d imported, %d failed, %d invalid",
            report.imported,
            report.failed,
            report.skipped_invalid,
        )
        return report

    def _check_drop(self, index: int, row: Dict[str, str], lookups: _Lookups) -> ImportRowResult:
        errors = []
        title = row.get("title", "")
        slug = slugify(title)
        if not title:
            errors.append("Missing title")
        elif not slug:
            errors.append("Title must contain letters or digits")

        release = row.get("release_date", "")
        if not release:
            errors.append("Missing release_date")
        elif _parse_release_date(release) is None:
            errors.append("Invalid release_date (use ISO 8601, e.g. 2026-03-01T10:00:00Z)")

        status = row.get("status", "").lower()
        if status and status not in DROP_STATUSES:
            errors.append("Invalid status")

        brand_name = row.get("brand_name", "")
        match = lookups.brands.get(brand_name.lower()) if brand_name else None
        return ImportRowResult(
            row=index,
            valid=not errors,
            errors=errors,
            data=row,
            slug=slug or None,
            brand_match=match.name if match else None,
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _load(self, db: AsyncSession) -> _Lookups:
        lookups = _Lookups()
        # Newest first, so the oldest row wins when names collide
        for brand in (await db.execute(select(Brand).order_by(Brand.created_at.desc()))).scalars():
            lookups.brands[brand.name.lower()] = brand
            lookups.brand_slugs.add(brand.slug)
        for shop in (await db.execute(select(Shop).order_by(Shop.created_at.desc()))).scalars():
            lookups.shops[shop.name.lower()] = shop
        lookups.drop_slugs = set((await db.execute(select(Drop.slug))).scalars().all())
        return lookups

    async def _brand_for(
        self, db: AsyncSession, name: str, lookups: _Lookups, report: ImportReport
    ) -> Optional[Brand]:
        """Existing brand by name, or a new active brand created on first use."""
        if not name:
            return None
        brand = lookups.brands.get(name.lower())
        if brand is not None:
            return brand

        slug = slugify(name)
        if not slug:
            return None
        if slug in lookups.brand_slugs:
            brand = (
                await db.execute(select(Brand).where(func.lower(Brand.slug) == slug))
            ).scalar_one_or_none()
        if brand is None:
            brand = Brand(name=name, slug=slug, is_active=True)
            db.add(brand)
            await db.flush()
            report.brands_created += 1
            logger.info("Brand auto-created during import: %s", slug)

        lookups.brands[name.lower()] = brand
        lookups.brand_slugs.add(brand.slug)
        return brand


def _numbered(text: str):
    return enumerate(parse_csv(text), start=1)


def _in_range(value: str, bound: float) -> bool:
    try:
        number = float(value)
    except ValueError:
        return False
    return -bound <= number <= bound


def _preview(rows: List[ImportRowResult]) -> ImportPreview:
    valid = sum(1 for r in rows if r.valid)
    return ImportPreview(rows=rows, valid_count=valid, invalid_count=len(rows) - valid)


import_service = ImportService()
