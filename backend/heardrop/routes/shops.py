"""
HEARDROP Backend — Shop Locator Route Handlers
================================================

What:  Shop list, nearby search, map clusters, filter facets and shop
       detail; admin create/update/delete.
Who:   The Map tab and the admin back-office.

Viewport:
    The map sends its visible bounds as min_lat, min_lng, max_lat, max_lng.
    All four must be given together. min_lng > max_lng means the viewport
    crosses the antimeridian.

Public responses never contain a shop's e-mail or phone; admins get them.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import require_role, viewer_is_admin
from heardrop.exceptions import ValidationError
from heardrop.models.user import User
from heardrop.schemas.common import ErrorResponse
from heardrop.schemas.shop import (
    FacetCount,
    ShopAdminResponse,
    ShopClusterResponse,
    ShopCreate,
    ShopResponse,
    ShopUpdate,
)
from heardrop.services.shop_service import BBox, shop_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shops", tags=["Shops"])


def viewport(
    min_lat: Optional[float] = Query(default=None, ge=-90, le=90),
    min_lng: Optional[float] = Query(default=None, ge=-180, le=180),
    max_lat: Optional[float] = Query(default=None, ge=-90, le=90),
    max_lng: Optional[float] = Query(default=None, ge=-180, le=180),
) -> Optional[BBox]:
    values = (min_lat, min_lng, max_lat, max_lng)
    if all(v is None for v in values):
        return None
    if any(v is None for v in values):
        raise ValidationError(
            message="min_lat, min_lng, max_lat and max_lng must be given together",
            field="bbox",
        )
    return values


@router.get(
    "",
    response_model=None,
    responses={
        200: {"description": "Shops (admins also get contact fields)", "model": List[ShopResponse]},
        400: {"description": "Invalid filter combination", "model": ErrorResponse},
    },
    summary="List shops",
    description=(
        "Filter by brand, category, country, city or free text. With near_lat/near_lng "
        "the shops are sorted by distance and carry distance_km; radius_km limits the "
        "distance."
    ),
)
async def list_shops(
    response: Response,
    brand_id: Optional[UUID] = Query(default=None),
    category: Optional[str] = Query(default=None),
    country: Optional[str] = Query(default=None),
    city: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100),
    near_lat: Optional[float] = Query(default=None, ge=-90, le=90),
    near_lng: Optional[float] = Query(default=None, ge=-180, le=180),
    radius_km: Optional[float] = Query(default=None, gt=0, le=20000),
    limit: int = Query(default=500, ge=1, le=1000),
    include_inactive: bool = Query(default=False),
    bbox: Optional[BBox] = Depends(viewport),
    is_admin: bool = Depends(viewer_is_admin),
    db: AsyncSession = Depends(get_db_session),
):
    if (near_lat is None) != (near_lng is None):
        raise ValidationError(message="near_lat and near_lng must be given together", field="near")
    near = (near_lat, near_lng) if near_lat is not None else None

    shops = await shop_service.list_shops(
        db,
        brand_id=brand_id,
        category=category,
        country=country,
        city=city,
        search=search,
        bbox=bbox,
        near=near,
        radius_km=radius_km,
        limit=limit,
        include_inactive=include_inactive and is_admin,
        admin=is_admin,
    )
    response.headers["X-Total-Count"] = str(len(shops))
    return shops


@router.get("/nearby", response_model=List[ShopResponse], summary="Nearest shops to a point")
async def nearby(
    lat: float = Query(ge=-90, le=90),
    lng: float = Query(ge=-180, le=180),
    radius_km: float = Query(default=10.0, gt=0, le=20000),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db_session),
) -> List[ShopResponse]:
    return await shop_service.nearby(db, lat, lng, radius_km=radius_km, limit=limit)


@router.get(
    "/clusters",
    response_model=ShopClusterResponse,
    summary="Grid clusters for the map",
    description="Cell size is 180 / 2^zoom degrees. Single-shop clusters carry the shop id.",
)
async def clusters(
    zoom: int = Query(ge=0, le=22),
    brand_id: Optional[UUID] = Query(default=None),
    category: Optional[str] = Query(default=None),
    bbox: Optional[BBox] = Depends(viewport),
    db: AsyncSession = Depends(get_db_session),
) -> ShopClusterResponse:
    return await shop_service.clusters(db, zoom, bbox=bbox, brand_id=brand_id, category=category)


@router.get("/cities", response_model=List[FacetCount], summary="Cities with shop counts")
async def cities(
    country: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db_session),
) -> List[FacetCount]:
    return await shop_service.cities(db, country=country)


@router.get("/countries", response_model=List[FacetCount], summary="Countries with shop counts")
async def countries(db: AsyncSession = Depends(get_db_session)) -> List[FacetCount]:
    return await shop_service.countries(db)


@router.get(
    "/{id_or_slug}",
    response_model=None,
    responses={
        200: {"description": "Shop (admins also get contact fields)", "model": ShopResponse},
        404: {"description": "Shop not found", "model": ErrorResponse},
    },
    summary="Shop detail",
)
async def get_shop(
    id_or_slug: str,
    is_admin: bool = Depends(viewer_is_admin),
    db: AsyncSession = Depends(get_db_session),
):
    return await shop_service.get_shop(db, id_or_slug, admin=is_admin)


@router.post(
    "",
    response_model=ShopAdminResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Slug already taken", "model": ErrorResponse}},
    summary="Create a shop (admin)",
)
async def create_shop(
    payload: ShopCreate,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> ShopAdminResponse:
    return await shop_service.create_shop(db, payload)


@router.patch("/{shop_id}", response_model=ShopAdminResponse, summary="Update a shop (admin)")
async def update_shop(
    shop_id: UUID,
    payload: ShopUpdate,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> ShopAdminResponse:
    return await shop_service.update_shop(db, shop_id, payload)


@router.delete("/{shop_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a shop (admin)")
async def delete_shop(
    shop_id: UUID,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await shop_service.delete_shop(db, shop_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
