"""
HEARDROP Backend — Brand Route Handlers
=========================================

What:  Public brand directory plus admin create/update/delete.
Who:   The Brands tab, brand detail pages and the admin back-office.

Brands are addressed by UUID or slug on read (`/api/brands/stussy`), and by
UUID on write.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import exclusive_access, require_role, viewer_is_admin
from heardrop.models.user import User
from heardrop.schemas.brand import BrandCreate, BrandDetailResponse, BrandResponse, BrandUpdate
from heardrop.schemas.common import ErrorResponse
from heardrop.services.brand_service import brand_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/brands", tags=["Brands"])


@router.get(
    "",
    response_model=List[BrandResponse],
    summary="List brands",
    description="Active brands ordered by name. Admins may pass include_inactive=true.",
)
async def list_brands(
    response: Response,
    category: Optional[str] = Query(default=None),
    country: Optional[str] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100, description="Substring of the name"),
    include_inactive: bool = Query(default=False),
    is_admin: bool = Depends(viewer_is_admin),
    db: AsyncSession = Depends(get_db_session),
) -> List[BrandResponse]:
    brands = await brand_service.list_brands(
        db,
        category=category,
        country=country,
        search=search,
        include_inactive=include_inactive and is_admin,
    )
    response.headers["X-Total-Count"] = str(len(brands))
    return brands


@router.get(
    "/{id_or_slug}",
    response_model=BrandDetailResponse,
    responses={404: {"description": "Brand not found", "model": ErrorResponse}},
    summary="Brand detail with shops, upcoming drops and follower count",
)
async def get_brand(
    id_or_slug: str,
    is_admin: bool = Depends(viewer_is_admin),
    unlocked: bool = Depends(exclusive_access),
    db: AsyncSession = Depends(get_db_session),
) -> BrandDetailResponse:
    return await brand_service.get_brand(
        db, id_or_slug, include_inactive=is_admin, unlocked=unlocked
    )


@router.post(
    "",
    response_model=BrandResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Slug already taken", "model": ErrorResponse}},
    summary="Create a brand (admin)",
)
async def create_brand(
    payload: BrandCreate,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> BrandResponse:
    return await brand_service.create_brand(db, payload)


@router.patch("/{brand_id}", response_model=BrandResponse, summary="Update a brand (admin)")
async def update_brand(
    brand_id: UUID,
    payload: BrandUpdate,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> BrandResponse:
    return await brand_service.update_brand(db, brand_id, payload)


@router.delete(
    "/{brand_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a brand (admin)",
)
async def delete_brand(
    brand_id: UUID,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await brand_service.delete_brand(db, brand_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
