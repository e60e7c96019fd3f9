"""
HEARDROP Backend — Street Spotted Route Handlers
==================================================

What:  Photo upload, the public feed, post detail, likes, the moderation
       queue and author deletes.
Who:   The Street Spotted tab and the moderator screen.

Upload Flow:
    1. Client sends multipart/form-data: image + brand_ids (repeatable) +
       optional style_tags (repeatable), caption, city, country
    2. SpotService checks tags and brands, then validates and stores the image
    3. 201 Created with the post in `pending` state

Security Checks (this route):
    - File type: extension + magic bytes (PNG, JPEG, WebP)
    - File size: max 5MB
    - Authentication: required for upload, likes and deletes
    - Moderation: moderator or admin role
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import get_current_user, get_optional_user, require_role
from heardrop.models.user import User
from heardrop.schemas.common import ErrorResponse
from heardrop.schemas.spot import ModerationRequest, SpotFeedResponse, SpotLikeResponse, SpotPostResponse
from heardrop.services.spot_service import FEED_LIMIT, spot_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/spots", tags=["Street Spotted"])


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=SpotPostResponse,
    responses={
        400: {"description": "Invalid image, brands or tags", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
    },
    summary="Post a Street Spotted photo",
    description=(
        "Upload an outfit photo (PNG, JPEG or WebP, max 5MB) tagged with at least one "
        "brand and up to 3 style tags. Posts appear in the feed once approved."
    ),
)
async def create_post(
    image: UploadFile = File(..., description="Outfit photo (PNG, JPEG or WebP, max 5MB)"),
    brand_ids: List[UUID] = Form(..., description="Brands worn in the photo"),
    style_tags: List[str] = Form(default=[]),
    caption: Optional[str] = Form(default=None),
    city: Optional[str] = Form(default=None),
    country: Optional[str] = Form(default=None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpotPostResponse:
    content = await image.read()
    logger.info("Spot upload: filename=%s, size=%d bytes", image.filename or "unknown", len(content))
    try:
        return await spot_service.create_post(
            db,
            user,
            filename=image.filename or "upload.jpg",
            content=content,
            brand_ids=brand_ids,
            style_tags=style_tags,
            caption=caption,
            city=city,
            country=country,
            content_length=image.size,
        )
    finally:
        await image.close()


@router.get("", response_model=SpotFeedResponse, summary="Approved posts, newest first")
async def feed(
    brand_id: Optional[UUID] = Query(default=None),
    limit: int = Query(default=FEED_LIMIT, ge=1, le=100),
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpotFeedResponse:
    posts = await spot_service.feed(db, viewer=viewer, brand_id=brand_id, limit=limit)
    return SpotFeedResponse(posts=posts)


@router.get("/mine", response_model=SpotFeedResponse, summary="Your own posts in every state")
async def my_posts(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpotFeedResponse:
    return SpotFeedResponse(posts=await spot_service.my_posts(db, user))


@router.get(
    "/moderation",
    response_model=SpotFeedResponse,
    summary="Pending posts, oldest first (moderators)",
)
async def moderation_queue(
    limit: int = Query(default=FEED_LIMIT, ge=1, le=100),
    moderator: User = Depends(require_role("moderator", "admin")),
    db: AsyncSession = Depends(get_db_session),
) -> SpotFeedResponse:
    return SpotFeedResponse(posts=await spot_service.moderation_queue(db, limit=limit))


@router.get(
    "/{post_id}",
    response_model=SpotPostResponse,
    responses={404: {"description": "Post not found", "model": ErrorResponse}},
    summary="Post detail",
)
async def get_post(
    post_id: UUID,
    viewer: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpotPostResponse:
    return await spot_service.get_post(db, post_id, viewer)


@router.post("/{post_id}/like", response_model=SpotLikeResponse, summary="Like or unlike a post")
async def toggle_like(
    post_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SpotLikeResponse:
    return await spot_service.toggle_like(db, post_id, user)


@router.post(
    "/{post_id}/moderate",
    response_model=SpotPostResponse,
    summary="Approve or reject a post (moderators)",
)
async def moderate(
    post_id: UUID,
    payload: ModerationRequest,
    moderator: User = Depends(require_role("moderator", "admin")),
    db: AsyncSession = Depends(get_db_session),
) -> SpotPostResponse:
    return await spot_service.moderate(db, post_id, payload.status, moderator)


@router.delete(
    "/{post_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"description": "Not your post", "model": ErrorResponse}},
    summary="Delete your own post",
)
async def delete_post(
    post_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await spot_service.delete_post(db, post_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
