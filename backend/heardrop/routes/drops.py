"""
HEARDROP Backend — Drops Route Handlers
=========================================

What:  Drop listing, the monthly calendar, featured drops, drop detail,
       affiliate event tracking and admin create/update/delete.
Who:   The Drops tab, the home screen carousel and the admin back-office.

Pro-exclusive drops are listed for everyone, but their affiliate link and
discount code are only included for Pro members and admins (`locked=true`
otherwise).
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import client_ip, exclusive_access, get_optional_user, require_role
from heardrop.models.user import User
from heardrop.schemas.common import ErrorResponse, MessageResponse
from heardrop.schemas.drop import (
    AffiliateEventRequest,
    DropCalendarResponse,
    DropCreate,
    DropResponse,
    DropUpdate,
)
from heardrop.services.drop_service import drop_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/drops", tags=["Drops"])


@router.get(
    "",
    response_model=List[DropResponse],
    summary="List drops",
    description=(
        "status may be repeated (?status=upcoming&status=live). order_by is release_date "
        "or created_at."
    ),
)
async def list_drops(
    response: Response,
    drop_status: Optional[List[str]] = Query(default=None, alias="status"),
    brand_id: Optional[UUID] = Query(default=None),
    shop_id: Optional[UUID] = Query(default=None),
    featured: Optional[bool] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None, description="Release on or after (ISO 8601)"),
    end_date: Optional[datetime] = Query(default=None, description="Release on or before (ISO 8601)"),
    order_by: str = Query(default="release_date"),
    ascending: bool = Query(default=True),
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    unlocked: bool = Depends(exclusive_access),
    db: AsyncSession = Depends(get_db_session),
) -> List[DropResponse]:
    drops = await drop_service.list_drops(
        db,
        statuses=drop_status,
        brand_id=brand_id,
        shop_id=shop_id,
        featured=featured,
        start_date=start_date,
        end_date=end_date,
        order_by=order_by,
        ascending=ascending,
        limit=limit,
        unlocked=unlocked,
    )
    response.headers["X-Total-Count"] = str(len(drops))
    return drops


@router.get(
    "/calendar",
    response_model=DropCalendarResponse,
    summary="Drops for one month, grouped by day",
)
async def calendar(
    year: int = Query(ge=2000, le=2100),
    month: int = Query(ge=1, le=12),
    unlocked: bool = Depends(exclusive_access),
    db: AsyncSession = Depends(get_db_session),
) -> DropCalendarResponse:
    return await drop_service.calendar(db, year, month, unlocked=unlocked)


@router.get(
    "/featured",
    response_model=List[DropResponse],
    summary="Home screen drops",
    description="Next upcoming or live drops, backfilled with the most recent ended ones.",
)
async def featured(
    limit: int = Query(default=4, ge=1, le=20),
    unlocked: bool = Depends(exclusive_access),
    db: AsyncSession = Depends(get_db_session),
) -> List[DropResponse]:
    return await drop_service.featured(db, limit=limit, unlocked=unlocked)


@router.post(
    "/track",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        404: {"description": "Drop not found", "model": ErrorResponse},
        429: {"description": "Too many events from this IP", "model": ErrorResponse},
    },
    summary="Record an affiliate click or discount-code copy",
)
async def track(
    payload: AffiliateEventRequest,
    request: Request,
    ip_address: str = Depends(client_ip),
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await drop_service.track_affiliate_event(
        db,
        payload.drop_id,
        payload.event_type,
        ip_address=ip_address,
        user=user,
        user_agent=request.headers.get("user-agent"),
        referrer=payload.referrer or request.headers.get("referer"),
    )
    return MessageResponse(message="Event recorded")


@router.get(
    "/{id_or_slug}",
    response_model=DropResponse,
    responses={404: {"description": "Drop not found", "model": ErrorResponse}},
    summary="Drop detail",
)
async def get_drop(
    id_or_slug: str,
    unlocked: bool = Depends(exclusive_access),
    db: AsyncSession = Depends(get_db_session),
) -> DropResponse:
    return await drop_service.get_drop(db, id_or_slug, unlocked=unlocked)


@router.post(
    "",
    response_model=DropResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Slug already taken", "model": ErrorResponse}},
    summary="Create a drop (admin)",
)
async def create_drop(
    payload: DropCreate,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> DropResponse:
    return await drop_service.create_drop(db, payload)


@router.patch("/{drop_id}", response_model=DropResponse, summary="Update a drop (admin)")
async def update_drop(
    drop_id: UUID,
    payload: DropUpdate,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> DropResponse:
    return await drop_service.update_drop(db, drop_id, payload)


@router.delete("/{drop_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a drop (admin)")
async def delete_drop(
    drop_id: UUID,
    admin: User = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await drop_service.delete_drop(db, drop_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
