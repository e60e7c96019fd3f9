"""
HEARDROP Backend — Street Spotted Service
===========================================

What:  The user photo feed: posting, the public feed, likes, moderation
       and deleting your own posts.
Who:   The /api/spots routes.

Post workflow:
    ┌──────────┐   ┌────────────────┐   ┌──────────────┐   ┌────────────┐
    │  Upload  │──▶│ Tags & brands  │──▶│ Validate &   │──▶│ Post row   │
    │  (Route) │   │ checked        │   │ store image  │   │ (pending)  │
    └──────────┘   └────────────────┘   └──────────────┘   └────────────┘
    Metadata is checked before the image touches the disk. If the database
    write fails after the image was stored, the image is removed again.

Visibility:
    approved          everyone (feed, detail, likes)
    pending/rejected  the author and moderators/admins only
"""

import logging
import uuid
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.exceptions import DatabaseError, NotFoundError, PermissionDeniedError, ValidationError
from heardrop.models.brand import Brand
from heardrop.models.spot import MAX_STYLE_TAGS, STYLE_TAGS, SpotLike, SpotPost, SpotPostBrand
from heardrop.models.user import User
from heardrop.schemas.spot import SpotLikeResponse, SpotPostResponse
from heardrop.services.auth_service import auth_service
from heardrop.services.file_service import FileService, file_service, public_url

logger = logging.getLogger(__name__)

MAX_CAPTION_LENGTH = 500
FEED_LIMIT = 50


def normalize_style_tags(tags: Optional[Sequence[str]]) -> List[str]:
    """Lower-case, de-duplicate (keeping order) and check against STYLE_TAGS."""
    cleaned: List[str] = []
    for tag in tags or []:
        value = tag.strip().lower()
        if value and value not in cleaned:
            cleaned.append(value)

    unknown = [t for t in cleaned if t not in STYLE_TAGS]
    if unknown:
        raise ValidationError(
            message=f"Unknown style tags: {', '.join(unknown)}",
            field="style_tags",
            context={"allowed": list(STYLE_TAGS)},
        )
    if len(cleaned) > MAX_STYLE_TAGS:
        raise ValidationError(
            message=f"Pick at most {MAX_STYLE_TAGS} style tags", field="style_tags"
        )
    return cleaned


class SpotService:

    async def is_moderator(self, db: AsyncSession, user: Optional[User]) -> bool:
        if user is None:
            return False
        return await auth_service.has_role(db, user.id, "moderator") or await auth_service.has_role(
            db, user.id, "admin"
        )

    # ── Posting ───────────────────────────────────────────────────────────

    async def create_post(
        self,
        db: AsyncSession,
        user: User,
        filename: str,
        content: bytes,
        brand_ids: Sequence[uuid.UUID],
        style_tags: Optional[Sequence[str]] = None,
        caption: Optional[str] = None,
        city: Optional[str] = None,
        country: Optional[str] = None,
        content_length: Optional[int] = None,
        storage: Optional[FileService] = None,
    ) -> SpotPostResponse:
        """
        Raises:
            ValidationError: bad image, unknown/missing brands, bad tags,
                caption too long
            FileStorageError: the image could not be written
        """
        storage = storage or file_service
        tags = normalize_style_tags(style_tags)
        brands = await self._known_brands(db, brand_ids)
        caption = (caption or "").strip() or None
        if caption and len(caption) > MAX_CAPTION_LENGTH:
            raise ValidationError(
                message=f"Caption must be at most {MAX_CAPTION_LENGTH} characters", field="caption"
            )

        image_path = await storage.validate_and_store(filename, content, content_length)
        try:
            post = SpotPost(
                user_id=user.id,
                image_path=image_path,
                caption=caption,
                city=(city or "").strip() or None,
                country=(country or "").strip() or None,
                style_tags=tags,
                status="pending",
            )
            db.add(post)
            await db.flush()
            for brand_id in brands:
                db.add(SpotPostBrand(post_id=post.id, brand_id=brand_id))
            await db.flush()
            await db.refresh(post)
        except SQLAlchemyError as e:
            await storage.cleanup_file(image_path)
            logger.error("Failed to save spot post: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not save your post. Please try again.",
                context={"error_type": type(e).__name__},
            )

        logger.info("Spot post %s submitted by %s (pending review)", post.id, user.id)
        return (await self._enrich(db, [post], user))[0]

    async def _known_brands(self, db: AsyncSession, brand_ids: Sequence[uuid.UUID]) -> List[uuid.UUID]:
        wanted = list(dict.fromkeys(brand_ids or []))
        if not wanted:
            raise ValidationError(message="Tag at least one brand", field="brand_ids")
        result = await db.execute(select(Brand.id).where(Brand.id.in_(wanted)))
        found = set(result.scalars().all())
        missing = [str(b) for b in wanted if b not in found]
        if missing:
            raise ValidationError(
                message="Unknown brands tagged", field="brand_ids", context={"unknown": missing}
            )
        return wanted

    # ── Reading ───────────────────────────────────────────────────────────

    async def feed(
        self,
        db: AsyncSession,
        viewer: Optional[User] = None,
        brand_id: Optional[uuid.UUID] = None,
        limit: int = FEED_LIMIT,
    ) -> List[SpotPostResponse]:
        """Approved posts, newest first."""
        query = select(SpotPost).where(SpotPost.status == "approved")
        if brand_id:
            query = query.join(SpotPostBrand, SpotPostBrand.post_id == SpotPost.id).where(
                SpotPostBrand.brand_id == brand_id
            )
        query = query.order_by(SpotPost.created_at.desc()).limit(limit)
        posts = list((await db.execute(query)).scalars().all())
        return await self._enrich(db, posts, viewer)

    async def get_post(
        self, db: AsyncSession, post_id: uuid.UUID, viewer: Optional[User] = None
    ) -> SpotPostResponse:
        post = await self._visible(db, post_id, viewer)
        return (await self._enrich(db, [post], viewer))[0]

    async def my_posts(self, db: AsyncSession, user: User) -> List[SpotPostResponse]:
        """The author's own posts in every status, newest first."""
        result = await db.execute(
            select(SpotPost).where(SpotPost.user_id == user.id).order_by(SpotPost.created_at.desc())
        )
        return await self._enrich(db, list(result.scalars().all()), user)

    # ── Likes ─────────────────────────────────────────────────────────────

    async def toggle_like(self, db: AsyncSession, post_id: uuid.UUID, user: User) -> SpotLikeResponse:
        post = await db.get(SpotPost, post_id)
        if post is None or post.status != "approved":
            raise NotFoundError(resource="post", resource_id=str(post_id))

        existing = (
            await db.execute(
                select(SpotLike).where(SpotLike.post_id == post_id, SpotLike.user_id == user.id)
            )
        ).scalar_one_or_none()
        if existing is not None:
            await db.delete(existing)
            liked = False
        else:
            db.add(SpotLike(post_id=post_id, user_id=user.id))
            liked = True
        await db.flush()

        count = (
            await db.execute(select(func.count(SpotLike.id)).where(SpotLike.post_id == post_id))
        ).scalar() or 0
        return SpotLikeResponse(post_id=post_id, liked=liked, like_count=count)

    # ── Moderation ────────────────────────────────────────────────────────

    async def moderation_queue(self, db: AsyncSession, limit: int = FEED_LIMIT) -> List[SpotPostResponse]:
        """Pending posts, oldest first so nothing waits forever."""
        result = await db.execute(
            select(SpotPost)
            .where(SpotPost.status == "pending")
            .order_by(SpotPost.created_at.asc())
            .limit(limit)
        )
        return await self._enrich(db, list(result.scalars().all()), None)

    async def moderate(
        self, db: AsyncSession, post_id: uuid.UUID, status: str, moderator: User
    ) -> SpotPostResponse:
        if status not in ("approved", "rejected"):
            raise ValidationError(message="Status must be approved or rejected", field="status")
        post = await db.get(SpotPost, post_id)
        if post is None:
            raise NotFoundError(resource="post", resource_id=str(post_id))
        previous = post.status
        post.status = status
        await db.flush()
        logger.info("Spot post %s moderated %s -> %s by %s", post_id, previous, status, moderator.id)
        return (await self._enrich(db, [post], moderator))[0]

    async def delete_post(
        self,
        db: AsyncSession,
        post_id: uuid.UUID,
        user: User,
        storage: Optional[FileService] = None,
    ) -> None:
        """Authors delete their own posts; the stored image goes with it."""
        storage = storage or file_service
        post = await db.get(SpotPost, post_id)
        if post is None:
            raise NotFoundError(resource="post", resource_id=str(post_id))
        if post.user_id != user.id:
            raise PermissionDeniedError(message="You can only delete your own posts")

        image_path = post.image_path
        await db.execute(delete(SpotLike).where(SpotLike.post_id == post_id))
        await db.execute(delete(SpotPostBrand).where(SpotPostBrand.post_id == post_id))
        await db.delete(post)
        # The image goes only once the row deletion is committed
        await db.commit()
        await storage.cleanup_file(image_path)
        logger.info("Spot post %s deleted by its author", post_id)

    async def image_paths(self, db: AsyncSession) -> Set[str]:
        """Every stored image a post still references (for orphan cleanup)."""
        result = await db.execute(select(SpotPost.image_path))
        return set(result.scalars().all())

    # ── Internals ─────────────────────────────────────────────────────────

    async def _visible(self, db: AsyncSession, post_id: uuid.UUID, viewer: Optional[User]) -> SpotPost:
        post = await db.get(SpotPost, post_id)
        if post is None:
            raise NotFoundError(resource="post", resource_id=str(post_id))
        if post.status == "approved":
            return post
        if viewer is not None and (post.user_id == viewer.id or await self.is_moderator(db, viewer)):
            return post
        # Unapproved posts are invisible rather than forbidden
        raise NotFoundError(resource="post", resource_id=str(post_id))

    async def _enrich(
        self, db: AsyncSession, posts: List[SpotPost], viewer: Optional[User]
    ) -> List[SpotPostResponse]:
        if not posts:
            return []
        ids = [p.id for p in posts]

        brand_rows = (
            await db.execute(
                select(SpotPostBrand.post_id, SpotPostBrand.brand_id).where(
                    SpotPostBrand.post_id.in_(ids)
                )
            )
        ).all()
        brands: Dict[uuid.UUID, List[uuid.UUID]] = defaultdict(list)
        for post_id, brand_id in brand_rows:
            brands[post_id].append(brand_id)

        like_rows = (
            await db.execute(
                select(SpotLike.post_id, func.count(SpotLike.id))
                .where(SpotLike.post_id.in_(ids))
                .group_by(SpotLike.post_id)
            )
        ).all()
        likes = {post_id: count for post_id, count in like_rows}

        liked: Set[uuid.UUID] = set()
        if viewer is not None:
            liked = set(
                (
                    await db.execute(
                        select(SpotLike.post_id).where(
                            SpotLike.post_id.in_(ids), SpotLike.user_id == viewer.id
                        )
                    )
                ).scalars().all()
            )

        author_ids = list({p.user_id for p in posts})
        authors = dict(
            (
                await db.execute(select(User.id, User.display_name).where(User.id.in_(author_ids)))
            ).all()
        )

        return [
            SpotPostResponse(
                id=post.id,
                user_id=post.user_id,
                author_name=authors.get(post.user_id),
                image_url=public_url(post.image_path),
                caption=post.caption,
                city=post.city,
                country=post.country,
                style_tags=list(post.style_tags or []),
                status=post.status,
                brand_ids=brands.get(post.id, []),
                like_count=likes.get(post.id, 0),
                user_liked=post.id in liked,
                created_at=post.created_at,
            )
            for post in posts
        ]


spot_service = SpotService()
