"""
HEARDROP Backend — Shop Locator Service
=========================================

What:  Shop listing, map clustering, facets, admin CRUD and batch geocoding.
Who:   Shop routes, journey planning, brand detail pages and the admin jobs.

Map queries:
    Only active shops with both coordinates appear on the map. The viewport
    filter is a plain bounding box in SQL; distance sorting and the radius
    cut happen in Python with the haversine formula, which is fine for a
    catalogue of a few thousand shops.

Slugs:
    An explicit slug must be unique (409). A slug derived from the name
    gets a numeric suffix when the name is already taken, because chains
    legitimately share a name across cities.
"""

import asyncio
import logging
import uuid
from typing import Dict, List, Optional, Sequence, Tuple, Union

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.config import settings
from heardrop.exceptions import (
    CircuitBreakerOpenError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    UpstreamServiceError,
    ValidationError,
)
from heardrop.models.brand import Brand
from heardrop.models.shop import Shop
from heardrop.schemas.shop import (
    FacetCount,
    FailedGeocode,
    GeocodeReport,
    ShopAdminResponse,
    ShopCluster,
    ShopClusterResponse,
    ShopCreate,
    ShopResponse,
    ShopUpdate,
)
from heardrop.services.geo import cell_size, grid_clusters, haversine_km
from heardrop.services.mapbox_service import MapboxService, mapbox_service
from heardrop.utils import slugify

logger = logging.getLogger(__name__)

BBox = Tuple[float, float, float, float]  # min_lat, min_lng, max_lat, max_lng


def to_shop_response(
    shop: Shop,
    brand_name: Optional[str] = None,
    admin: bool = False,
    distance_km: Optional[float] = None,
) -> Union[ShopResponse, ShopAdminResponse]:
    schema = ShopAdminResponse if admin else ShopResponse
    response = schema.model_validate(shop)
    response.brand_name = brand_name
    if distance_km is not None:
        response.distance_km = round(distance_km, 3)
    return response


def _with_brand(query: Select) -> Select:
    return query.outerjoin(Brand, Shop.brand_id == Brand.id)


def _on_map(query: Select) -> Select:
    return query.where(
        Shop.is_active.is_(True),
        Shop.latitude.is_not(None),
        Shop.longitude.is_not(None),
    )


def _in_bbox(query: Select, bbox: Optional[BBox]) -> Select:
    if bbox is None:
        return query
    min_lat, min_lng, max_lat, max_lng = bbox
    if min_lat > max_lat:
        raise ValidationError(message="min_lat must not exceed max_lat", field="bbox")
    query = query.where(Shop.latitude >= min_lat, Shop.latitude <= max_lat)
    if min_lng <= max_lng:
        return query.where(Shop.longitude >= min_lng, Shop.longitude <= max_lng)
    # Viewport crossing the antimeridian
    return query.where(or_(Shop.longitude >= min_lng, Shop.longitude <= max_lng))


class ShopService:

    # ── Public queries ────────────────────────────────────────────────────

    async def list_shops(
        self,
        db: AsyncSession,
        brand_id: Optional[uuid.UUID] = None,
        category: Optional[str] = None,
        country: Optional[str] = None,
        city: Optional[str] = None,
        search: Optional[str] = None,
        bbox: Optional[BBox] = None,
        near: Optional[Tuple[float, float]] = None,
        radius_km: Optional[float] = None,
        limit: int = 500,
        include_inactive: bool = False,
        admin: bool = False,
    ) -> List[ShopResponse]:
        """
        Filtered shop list.

        With `near`, shops are sorted by distance and carry `distance_km`;
        shops without coordinates are then left out. `radius_km` without
        `near` is rejected.
        """
        if radius_km is not None and near is None:
            raise ValidationError(message="radius_km requires a reference point", field="radius_km")

        query = _with_brand(select(Shop, Brand.name))
        if not include_inactive:
            query = query.where(Shop.is_active.is_(True))
        if brand_id:
            query = query.where(Shop.brand_id == brand_id)
        if category:
            query = query.where(Shop.category == category.lower())
        if country:
            query = query.where(func.lower(Shop.country) == country.lower())
        if city:
            query = query.where(func.lower(Shop.city) == city.lower())
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(
                or_(
                    Shop.name.ilike(pattern),
                    Shop.address.ilike(pattern),
                    Shop.city.ilike(pattern),
                    Shop.country.ilike(pattern),
                )
            )
        if bbox is not None or near is not None:
            query = query.where(Shop.latitude.is_not(None), Shop.longitude.is_not(None))
        query = _in_bbox(query, bbox)

        try:
            if near is None:
                rows = (await db.execute(query.order_by(Shop.name).limit(limit))).all()
                return [to_shop_response(shop, brand, admin=admin) for shop, brand in rows]
            rows = (await db.execute(query)).all()
        except SQLAlchemyError as e:
            logger.error("Database error listing shops: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve shops. Please try again.",
                context={"error_type": type(e).__name__},
            )

        ranked = []
        for shop, brand in rows:
            distance = haversine_km(near, (shop.latitude, shop.longitude))
            if radius_km is not None and distance > radius_km:
                continue
            ranked.append((distance, shop, brand))
        ranked.sort(key=lambda item: item[0])
        return [
            to_shop_response(shop, brand, admin=admin, distance_km=distance)
            for distance, shop, brand in ranked[:limit]
        ]

    async def nearby(
        self,
        db: AsyncSession,
        latitude: float,
        longitude: float,
        radius_km: float = 10.0,
        limit: int = 20,
    ) -> List[ShopResponse]:
        return await self.list_shops(
            db, near=(latitude, longitude), radius_km=radius_km, limit=limit
        )

    async def clusters(
        self,
        db: AsyncSession,
        zoom: int,
        bbox: Optional[BBox] = None,
        brand_id: Optional[uuid.UUID] = None,
        category: Optional[str] = None,
    ) -> ShopClusterResponse:
        """Grid-cluster the active, geocoded shops visible in `bbox`."""
        query = _on_map(select(Shop.id, Shop.latitude, Shop.longitude))
        if brand_id:
            query = query.where(Shop.brand_id == brand_id)
        if category:
            query = query.where(Shop.category == category.lower())
        query = _in_bbox(query, bbox)

        rows = (await db.execute(query.order_by(Shop.name))).all()
        clusters = [
            ShopCluster(
                latitude=cell["latitude"],
                longitude=cell["longitude"],
                count=cell["count"],
                shop_ids=cell["ids"] if cell["count"] == 1 else [],
            )
            for cell in grid_clusters(rows, zoom)
        ]
        return ShopClusterResponse(zoom=zoom, cell_size=cell_size(zoom), clusters=clusters)

    async def cities(self, db: AsyncSession, country: Optional[str] = None) -> List[FacetCount]:
        query = select(Shop.city, func.count(Shop.id)).where(Shop.is_active.is_(True))
        if country:
            query = query.where(func.lower(Shop.country) == country.lower())
        query = query.group_by(Shop.city).order_by(func.count(Shop.id).desc(), Shop.city)
        rows = (await db.execute(query)).all()
        return [FacetCount(value=city, count=count) for city, count in rows]

    async def countries(self, db: AsyncSession) -> List[FacetCount]:
        query = (
            select(Shop.country, func.count(Shop.id))
            .where(Shop.is_active.is_(True))
            .group_by(Shop.country)
            .order_by(func.count(Shop.id).desc(), Shop.country)
        )
        rows = (await db.execute(query)).all()
        return [FacetCount(value=country, count=count) for country, count in rows]

    async def get_shop(
        self,
        db: AsyncSession,
        id_or_slug: str,
        admin: bool = False,
    ) -> Union[ShopResponse, ShopAdminResponse]:
        """Inactive shops are only visible to admins."""
        shop = await self._find(db, id_or_slug)
        if shop is None or (not shop.is_active and not admin):
            raise NotFoundError(resource="shop", resource_id=id_or_slug)
        return to_shop_response(shop, await self._brand_name(db, shop.brand_id), admin=admin)

    async def get_many(self, db: AsyncSession, shop_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, Shop]:
        if not shop_ids:
            return {}
        result = await db.execute(select(Shop).where(Shop.id.in_(list(shop_ids))))
        return {shop.id: shop for shop in result.scalars().all()}

    # ── Admin CRUD ────────────────────────────────────────────────────────

    async def create_shop(self, db: AsyncSession, payload: ShopCreate) -> ShopAdminResponse:
        data = payload.model_dump()
        data["slug"] = await self._resolve_slug(db, payload.slug, payload.name)
        await self._ensure_brand(db, payload.brand_id)

        shop = Shop(**data)
        db.add(shop)
        await db.flush()
        await db.refresh(shop)
        logger.info("Shop created: %s (%s)", shop.slug, shop.id)
        return to_shop_response(shop, await self._brand_name(db, shop.brand_id), admin=True)

    async def update_shop(
        self, db: AsyncSession, shop_id: uuid.UUID, payload: ShopUpdate
    ) -> ShopAdminResponse:
        shop = await db.get(Shop, shop_id)
        if shop is None:
            raise NotFoundError(resource="shop", resource_id=str(shop_id))

        changes = payload.model_dump(exclude_unset=True)
        if "slug" in changes:
            new_slug = slugify(changes["slug"] or shop.name)
            if new_slug != shop.slug:
                changes["slug"] = await self._resolve_slug(db, new_slug, shop.name)
            else:
                changes.pop("slug")
        if changes.get("brand_id"):
            await self._ensure_brand(db, changes["brand_id"])

        for field, value in changes.items():
            setattr(shop, field, value)
        await db.flush()
        await db.refresh(shop)
        logger.info("Shop updated: %s (%s)", shop.slug, ", ".join(sorted(changes)) or "no changes")
        return to_shop_response(shop, await self._brand_name(db, shop.brand_id), admin=True)

    async def delete_shop(self, db: AsyncSession, shop_id: uuid.UUID) -> None:
        shop = await db.get(Shop, shop_id)
        if shop is None:
            raise NotFoundError(resource="shop", resource_id=str(shop_id))
        await db.delete(shop)
        await db.flush()
        logger.info("Shop deleted: %s", shop_id)

    # ── Geocoding job ─────────────────────────────────────────────────────

    async def geocode_missing(
        self,
        db: AsyncSession,
        geocoder: Optional[MapboxService] = None,
        delay_ms: Optional[int] = None,
    ) -> GeocodeReport:
        """
        Fill in coordinates for every shop missing latitude or longitude.

        Requests are spaced by `delay_ms` to stay inside the Mapbox rate
        limit. A shop Mapbox cannot place, or a failed request, is reported
        in `failed_shops` and the batch carries on. An open circuit stops the
        batch early and the remaining shops are reported as skipped.
        """
        geocoder = geocoder or mapbox_service
        delay = (settings.geocode_delay_ms if delay_ms is None else delay_ms) / 1000

        result = await db.execute(
            select(Shop)
            .where(or_(Shop.latitude.is_(None), Shop.longitude.is_(None)))
            .order_by(Shop.created_at)
        )
        shops = list(result.scalars().all())
        if not shops:
            return GeocodeReport(message="All shops already have coordinates", total=0, updated=0, failed=0)

        updated = 0
        failed: List[FailedGeocode] = []
        for index, shop in enumerate(shops):
            if index:
                await asyncio.sleep(delay)
            try:
                coords = await geocoder.geocode(shop.address, shop.city, shop.country)
            except CircuitBreakerOpenError:
                logger.warning("Geocoding stopped: circuit open after %d shops", index)
                failed.extend(
                    FailedGeocode(id=s.id, name=s.name, reason="Skipped: map service unavailable")
                    for s in shops[index:]
                )
                break
            except UpstreamServiceError as e:
                failed.append(FailedGeocode(id=shop.id, name=shop.name, reason=e.message))
                continue

            if coords is None:
                failed.append(FailedGeocode(id=shop.id, name=shop.name, reason="No results found"))
                continue

            shop.latitude, shop.longitude = coords
            updated += 1

        await db.flush()
        logger.info("Geocoding finished: %d/%d updated", updated, len(shops))
        return GeocodeReport(
            message=f"Geocoded {updated} of {len(shops)} shops",
            total=len(shops),
            updated=updated,
            failed=len(failed),
            failed_shops=failed,
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _find(self, db: AsyncSession, id_or_slug: str) -> Optional[Shop]:
        try:
            return await db.get(Shop, uuid.UUID(id_or_slug))
        except ValueError:
            result = await db.execute(select(Shop).where(Shop.slug == id_or_slug))
            return result.scalar_one_or_none()

    async def _brand_name(self, db: AsyncSession, brand_id: Optional[uuid.UUID]) -> Optional[str]:
        if brand_id is None:
            return None
        result = await db.execute(select(Brand.name).where(Brand.id == brand_id))
        return result.scalar_one_or_none()

    async def _ensure_brand(self, db: AsyncSession, brand_id: Optional[uuid.UUID]) -> None:
        if brand_id is not None and await db.get(Brand, brand_id) is None:
            raise ValidationError(message="Unknown brand", field="brand_id")

    async def _slug_taken(self, db: AsyncSession, slug: str) -> bool:
        result = await db.execute(select(Shop.id).where(Shop.slug == slug))
        return result.scalar_one_or_none() is not None

    async def _resolve_slug(self, db: AsyncSession, explicit: Optional[str], name: str) -> str:
        if explicit:
            slug = slugify(explicit)
            if not slug:
                raise ValidationError(message="Slug must contain letters or digits", field="slug")
            if await self._slug_taken(db, slug):
                raise ConflictError(message=f"A shop with slug '{slug}' already exists", field="slug")
            return slug
        return await self.available_slug(db, name)

    async def available_slug(self, db: AsyncSession, name: str) -> str:
        """Slug derived from `name`, suffixed -2, -3... until unused."""
        base = slugify(name)
        if not base:
            raise ValidationError(message="Name must contain letters or digits", field="name")
        slug, n = base, 1
        while await self._slug_taken(db, slug):
            n += 1
            slug = f"{base}-{n}"
        return slug


shop_service = ShopService()
