"""
HEARDROP Backend — Brand Directory Service
============================================

What:  Brand listing and detail pages, admin CRUD and artwork generation.
Who:   Brand routes, the CSV importer (slug checks, auto-created brands)
       and the admin exports.

Brand detail = the brand + its active shops + the next 5 drops + how many
users follow it. Inactive brands are hidden from the public directory.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.exceptions import ConflictError, DatabaseError, NotFoundError, ValidationError
from heardrop.models.brand import Brand
from heardrop.models.favorites import FavoriteBrand
from heardrop.models.shop import Shop
from heardrop.schemas.brand import (
    BrandArtworkResponse,
    BrandCreate,
    BrandDetailResponse,
    BrandResponse,
    BrandUpdate,
)
from heardrop.services.artwork_base import ArtworkGenerator
from heardrop.services.drop_service import drop_service
from heardrop.services.file_service import FileService, file_service, public_url, split_public_url
from heardrop.services.gemini_service import banner_prompt, gemini_service, logo_prompt
from heardrop.services.shop_service import to_shop_response
from heardrop.utils import slugify

logger = logging.getLogger(__name__)

LOGO_FOLDER = "brand-images/logos"
BANNER_FOLDER = "brand-images/banners"


class BrandService:

    async def list_brands(
        self,
        db: AsyncSession,
        category: Optional[str] = None,
        country: Optional[str] = None,
        search: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[BrandResponse]:
        query = select(Brand)
        if not include_inactive:
            query = query.where(Brand.is_active.is_(True))
        if category:
            query = query.where(Brand.category == category.lower())
        if country:
            query = query.where(func.lower(Brand.country) == country.lower())
        if search:
            query = query.where(Brand.name.ilike(f"%{search.strip()}%"))

        try:
            result = await db.execute(query.order_by(Brand.name))
        except SQLAlchemyError as e:
            logger.error("Database error listing brands: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve brands. Please try again.",
                context={"error_type": type(e).__name__},
            )
        return [BrandResponse.model_validate(brand) for brand in result.scalars().all()]

    async def get_brand(
        self,
        db: AsyncSession,
        id_or_slug: str,
        include_inactive: bool = False,
        unlocked: bool = False,
    ) -> BrandDetailResponse:
        brand = await self.find(db, id_or_slug)
        if brand is None or (not brand.is_active and not include_inactive):
            raise NotFoundError(resource="brand", resource_id=id_or_slug)

        shops = (
            await db.execute(
                select(Shop)
                .where(Shop.brand_id == brand.id, Shop.is_active.is_(True))
                .order_by(Shop.city, Shop.name)
            )
        ).scalars().all()
        favorite_count = (
            await db.execute(
                select(func.count(FavoriteBrand.id)).where(FavoriteBrand.brand_id == brand.id)
            )
        ).scalar() or 0

        detail = BrandDetailResponse.model_validate(brand)
        detail.shops = [to_shop_response(shop, brand.name) for shop in shops]
        detail.upcoming_drops = await drop_service.upcoming_for_brand(
            db, brand.id, limit=5, unlocked=unlocked
        )
        detail.favorite_count = favorite_count
        return detail

    async def find(self, db: AsyncSession, id_or_slug: str) -> Optional[Brand]:
        try:
            return await db.get(Brand, uuid.UUID(id_or_slug))
        except ValueError:
            result = await db.execute(select(Brand).where(Brand.slug == id_or_slug))
            return result.scalar_one_or_none()

    async def find_by_name(self, db: AsyncSession, name: str) -> Optional[Brand]:
        """Case-insensitive exact match; the oldest brand wins on duplicates."""
        result = await db.execute(
            select(Brand)
            .where(func.lower(Brand.name) == name.strip().lower())
            .order_by(Brand.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def slug_taken(self, db: AsyncSession, slug: str) -> bool:
        result = await db.execute(select(Brand.id).where(Brand.slug == slug))
        return result.scalar_one_or_none() is not None

    # ── Admin CRUD ────────────────────────────────────────────────────────

    async def create_brand(self, db: AsyncSession, payload: BrandCreate) -> BrandResponse:
        data = payload.model_dump()
        data["name"] = payload.name.strip()
        data["slug"] = await self._unique_slug(db, payload.slug or payload.name)

        brand = Brand(**data)
        db.add(brand)
        await db.flush()
        await db.refresh(brand)
        logger.info("Brand created: %s (%s)", brand.slug, brand.id)
        return BrandResponse.model_validate(brand)

    async def update_brand(
        self, db: AsyncSession, brand_id: uuid.UUID, payload: BrandUpdate
    ) -> BrandResponse:
        brand = await db.get(Brand, brand_id)
        if brand is None:
            raise NotFoundError(resource="brand", resource_id=str(brand_id))

        changes = payload.model_dump(exclude_unset=True)
        if "slug" in changes:
            new_slug = slugify(changes["slug"] or changes.get("name") or brand.name)
            if new_slug == brand.slug:
                changes.pop("slug")
            else:
                changes["slug"] = await self._unique_slug(db, new_slug)

        for field, value in changes.items():
            setattr(brand, field, value)
        await db.flush()
        await db.refresh(brand)
        logger.info("Brand updated: %s", brand.slug)
        return BrandResponse.model_validate(brand)

    async def delete_brand(self, db: AsyncSession, brand_id: uuid.UUID) -> None:
        """Shops and drops keep existing with brand_id set to NULL."""
        brand = await db.get(Brand, brand_id)
        if brand is None:
            raise NotFoundError(resource="brand", resource_id=str(brand_id))
        await db.delete(brand)
        await db.flush()
        logger.info("Brand deleted: %s", brand_id)

    # ── Artwork ───────────────────────────────────────────────────────────

    async def generate_artwork(
        self,
        db: AsyncSession,
        brand_id: uuid.UUID,
        generator: Optional[ArtworkGenerator] = None,
        storage: Optional[FileService] = None,
    ) -> BrandArtworkResponse:
        """
        Generate and store a logo and a banner, then point the brand at them.

        Both images are generated before anything is written, so a failed
        banner never leaves a half-updated brand. Artwork we stored earlier
        is removed once the new URLs are committed.
        """
        generator = generator or gemini_service
        storage = storage or file_service

        brand = await db.get(Brand, brand_id)
        if brand is None:
            raise NotFoundError(resource="brand", resource_id=str(brand_id))

        logo = await generator.generate_image(logo_prompt(brand.name, brand.category, brand.country))
        banner = await generator.generate_image(
            banner_prompt(brand.name, brand.category, brand.country)
        )

        logo_path = await storage.store_bytes(logo.data, logo.extension, LOGO_FOLDER, prefix=brand.slug)
        banner_path = await storage.store_bytes(
            banner.data, banner.extension, BANNER_FOLDER, prefix=brand.slug
        )

        replaced = []
        for old_url in (brand.logo_url, brand.banner_url):
            ours, relative = split_public_url(old_url or "")
            if ours:
                replaced.append(relative)

        brand.logo_url = public_url(logo_path)
        brand.banner_url = public_url(banner_path)
        # Old files go only once the new URLs are committed
        await db.commit()
        for relative in replaced:
            await storage.cleanup_file(relative)
        logger.info("Artwork generated for brand %s", brand.slug)
        return BrandArtworkResponse(
            brand_id=brand.id, logo_url=brand.logo_url, banner_url=brand.banner_url
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _unique_slug(self, db: AsyncSession, source: str) -> str:
        slug = slugify(source)
        if not slug:
            raise ValidationError(message="Slug must contain letters or digits", field="slug")
        if await self.slug_taken(db, slug):
            raise ConflictError(message=f"A brand with slug '{slug}' already exists", field="slug")
        return slug


brand_service = BrandService()
