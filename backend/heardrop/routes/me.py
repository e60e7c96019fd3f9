"""
HEARDROP Backend — "My HEARDROP" Route Handlers
=================================================

What:  The signed-in user's profile, favorite brands and shops, drop
       reminders and notification history.
Who:   The Profile tab and the notification bell.

Every route here requires a Bearer token.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import exclusive_access, get_current_user
from heardrop.models.user import User
from heardrop.schemas.auth import ProfileUpdate, UserResponse
from heardrop.schemas.common import ErrorResponse, MessageResponse
from heardrop.schemas.notification import (
    FavoriteIdsResponse,
    FavoritesResponse,
    FavoriteToggleResponse,
    NotificationListResponse,
    NotificationResponse,
    ReminderResponse,
)
from heardrop.services.favorites_service import favorites_service
from heardrop.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/me", tags=["Me"])


# ── Profile ───────────────────────────────────────────────────────────────

@router.get("/profile", response_model=UserResponse, summary="Your profile")
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await favorites_service.get_profile(db, user)


@router.patch("/profile", response_model=UserResponse, summary="Update your profile")
async def update_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await favorites_service.update_profile(db, user, payload)


# ── Favorites ─────────────────────────────────────────────────────────────

@router.get("/favorites", response_model=FavoritesResponse, summary="Favorite brands and shops")
async def favorites(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoritesResponse:
    return await favorites_service.favorites(db, user)


@router.get(
    "/favorites/ids",
    response_model=FavoriteIdsResponse,
    summary="Favorite ids only (for heart icons)",
)
async def favorite_ids(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteIdsResponse:
    return await favorites_service.favorite_ids(db, user)


@router.put(
    "/favorites/brands/{brand_id}",
    response_model=FavoriteToggleResponse,
    responses={404: {"description": "Brand not found", "model": ErrorResponse}},
    summary="Follow a brand",
)
async def add_favorite_brand(
    brand_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteToggleResponse:
    return await favorites_service.add_brand(db, user, brand_id)


@router.delete(
    "/favorites/brands/{brand_id}",
    response_model=FavoriteToggleResponse,
    summary="Unfollow a brand",
)
async def remove_favorite_brand(
    brand_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteToggleResponse:
    return await favorites_service.remove_brand(db, user, brand_id)


@router.post(
    "/favorites/brands/{brand_id}/toggle",
    response_model=FavoriteToggleResponse,
    summary="Follow or unfollow a brand",
)
async def toggle_favorite_brand(
    brand_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteToggleResponse:
    return await favorites_service.toggle_brand(db, user, brand_id)


@router.put(
    "/favorites/shops/{shop_id}",
    response_model=FavoriteToggleResponse,
    responses={404: {"description": "Shop not found", "model": ErrorResponse}},
    summary="Save a shop",
)
async def add_favorite_shop(
    shop_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteToggleResponse:
    return await favorites_service.add_shop(db, user, shop_id)


@router.delete(
    "/favorites/shops/{shop_id}",
    response_model=FavoriteToggleResponse,
    summary="Unsave a shop",
)
async def remove_favorite_shop(
    shop_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteToggleResponse:
    return await favorites_service.remove_shop(db, user, shop_id)


@router.post(
    "/favorites/shops/{shop_id}/toggle",
    response_model=FavoriteToggleResponse,
    summary="Save or unsave a shop",
)
async def toggle_favorite_shop(
    shop_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteToggleResponse:
    return await favorites_service.toggle_shop(db, user, shop_id)


# ── Reminders ─────────────────────────────────────────────────────────────

@router.get("/reminders", response_model=List[ReminderResponse], summary="Your drop reminders")
async def list_reminders(
    user: User = Depends(get_current_user),
    unlocked: bool = Depends(exclusive_access),
    db: AsyncSession = Depends(get_db_session),
) -> List[ReminderResponse]:
    return await favorites_service.list_reminders(db, user, unlocked=unlocked)


@router.put(
    "/reminders/{drop_id}",
    response_model=MessageResponse,
    responses={404: {"description": "Drop not found", "model": ErrorResponse}},
    summary="Remind me about a drop",
)
async def set_reminder(
    drop_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await favorites_service.set_reminder(db, user, drop_id)
    return MessageResponse(message="Reminder set")


@router.delete(
    "/reminders/{drop_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Cancel a drop reminder",
)
async def remove_reminder(
    drop_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await favorites_service.remove_reminder(db, user, drop_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Notifications ─────────────────────────────────────────────────────────

@router.get(
    "/notifications",
    response_model=NotificationListResponse,
    summary="Notification history, newest first",
)
async def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationListResponse:
    return await notification_service.list_notifications(
        db, user, unread_only=unread_only, limit=limit, offset=offset
    )


@router.post(
    "/notifications/read-all",
    response_model=MessageResponse,
    summary="Mark every notification read",
)
async def mark_all_read(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    count = await notification_service.mark_all_read(db, user)
    return MessageResponse(message=f"{count} notifications marked as read")


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    responses={404: {"description": "Notification not found", "model": ErrorResponse}},
    summary="Mark one notification read",
)
async def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationResponse:
    return await notification_service.mark_read(db, user, notification_id)
