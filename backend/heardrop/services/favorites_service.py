"""
HEARDROP Backend — Favorites, Reminders and Profile Service
=============================================================

What:  Everything under "My HEARDROP": followed brands, saved shops,
       drop reminders and the editable profile.
Who:   The /api/me routes.

Adds are idempotent (a second add is a no-op) and removes of something
that is not there are not errors, so a double tap in the client is safe.
"""

import logging
import uuid
from typing import List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.exceptions import NotFoundError
from heardrop.models.brand import Brand
from heardrop.models.drop import Drop
from heardrop.models.favorites import DropReminder, FavoriteBrand, FavoriteShop
from heardrop.models.shop import Shop
from heardrop.models.user import User
from heardrop.schemas.auth import ProfileUpdate, UserResponse
from heardrop.schemas.brand import BrandResponse
from heardrop.schemas.notification import (
    FavoriteIdsResponse,
    FavoritesResponse,
    FavoriteToggleResponse,
    ReminderResponse,
)
from heardrop.services.auth_service import auth_service
from heardrop.services.drop_service import to_drop_response
from heardrop.services.shop_service import to_shop_response

logger = logging.getLogger(__name__)


class FavoritesService:

    # ── Brands ────────────────────────────────────────────────────────────

    async def add_brand(self, db: AsyncSession, user: User, brand_id: uuid.UUID) -> FavoriteToggleResponse:
        if await db.get(Brand, brand_id) is None:
            raise NotFoundError(resource="brand", resource_id=str(brand_id))
        if await self._favorite_brand(db, user.id, brand_id) is None:
            db.add(FavoriteBrand(user_id=user.id, brand_id=brand_id))
            await db.flush()
        return FavoriteToggleResponse(favorited=True)

    async def remove_brand(self, db: AsyncSession, user: User, brand_id: uuid.UUID) -> FavoriteToggleResponse:
        await db.execute(
            delete(FavoriteBrand).where(
                FavoriteBrand.user_id == user.id, FavoriteBrand.brand_id == brand_id
            )
        )
        return FavoriteToggleResponse(favorited=False)

    async def toggle_brand(self, db: AsyncSession, user: User, brand_id: uuid.UUID) -> FavoriteToggleResponse:
        if await self._favorite_brand(db, user.id, brand_id) is not None:
            return await self.remove_brand(db, user, brand_id)
        return await self.add_brand(db, user, brand_id)

    async def _favorite_brand(self, db: AsyncSession, user_id: uuid.UUID, brand_id: uuid.UUID):
        result = await db.execute(
            select(FavoriteBrand).where(
                FavoriteBrand.user_id == user_id, FavoriteBrand.brand_id == brand_id
            )
        )
        return result.scalar_one_or_none()

    # ── Shops ─────────────────────────────────────────────────────────────

    async def add_shop(self, db: AsyncSession, user: User, shop_id: uuid.UUID) -> FavoriteToggleResponse:
        if await db.get(Shop, shop_id) is None:
            raise NotFoundError(resource="shop", resource_id=str(shop_id))
        if await self._favorite_shop(db, user.id, shop_id) is None:
            db.add(FavoriteShop(user_id=user.id, shop_id=shop_id))
            await db.flush()
        return FavoriteToggleResponse(favorited=True)

    async def remove_shop(self, db: AsyncSession, user: User, shop_id: uuid.UUID) -> FavoriteToggleResponse:
        await db.execute(
            delete(FavoriteShop).where(
                FavoriteShop.user_id == user.id, FavoriteShop.shop_id == shop_id
            )
        )
        return FavoriteToggleResponse(favorited=False)

    async def toggle_shop(self, db: AsyncSession, user: User, shop_id: uuid.UUID) -> FavoriteToggleResponse:
        if await self._favorite_shop(db, user.id, shop_id) is not None:
            return await self.remove_shop(db, user, shop_id)
        return await self.add_shop(db, user, shop_id)

    async def _favorite_shop(self, db: AsyncSession, user_id: uuid.UUID, shop_id: uuid.UUID):
        result = await db.execute(
            select(FavoriteShop).where(
                FavoriteShop.user_id == user_id, FavoriteShop.shop_id == shop_id
            )
        )
        return result.scalar_one_or_none()

    # ── Listing ───────────────────────────────────────────────────────────

    async def favorite_ids(self, db: AsyncSession, user: User) -> FavoriteIdsResponse:
        brand_ids = (
            await db.execute(select(FavoriteBrand.brand_id).where(FavoriteBrand.user_id == user.id))
        ).scalars().all()
        shop_ids = (
            await db.execute(select(FavoriteShop.shop_id).where(FavoriteShop.user_id == user.id))
        ).scalars().all()
        return FavoriteIdsResponse(brand_ids=list(brand_ids), shop_ids=list(shop_ids))

    async def favorites(self, db: AsyncSession, user: User) -> FavoritesResponse:
        """Expanded favorites, most recently added first."""
        brands = (
            await db.execute(
                select(Brand)
                .join(FavoriteBrand, FavoriteBrand.brand_id == Brand.id)
                .where(FavoriteBrand.user_id == user.id)
                .order_by(FavoriteBrand.created_at.desc())
            )
        ).scalars().all()
        shops = (
            await db.execute(
                select(Shop, Brand.name)
                .join(FavoriteShop, FavoriteShop.shop_id == Shop.id)
                .outerjoin(Brand, Shop.brand_id == Brand.id)
                .where(FavoriteShop.user_id == user.id)
                .order_by(FavoriteShop.created_at.desc())
            )
        ).all()
        return FavoritesResponse(
            brands=[BrandResponse.model_validate(b) for b in brands],
            shops=[to_shop_response(shop, brand_name) for shop, brand_name in shops],
        )

    # ── Reminders ─────────────────────────────────────────────────────────

    async def set_reminder(self, db: AsyncSession, user: User, drop_id: uuid.UUID) -> None:
        if await db.get(Drop, drop_id) is None:
            raise NotFoundError(resource="drop", resource_id=str(drop_id))
        existing = await db.execute(
            select(DropReminder.id).where(
                DropReminder.user_id == user.id, DropReminder.drop_id == drop_id
            )
        )
        if existing.scalar_one_or_none() is None:
            db.add(DropReminder(user_id=user.id, drop_id=drop_id))
            await db.flush()

    async def remove_reminder(self, db: AsyncSession, user: User, drop_id: uuid.UUID) -> None:
        await db.execute(
            delete(DropReminder).where(
                DropReminder.user_id == user.id, DropReminder.drop_id == drop_id
            )
        )

    async def list_reminders(
        self, db: AsyncSession, user: User, unlocked: bool = False
    ) -> List[ReminderResponse]:
        rows = (
            await db.execute(
                select(DropReminder, Drop, Brand.name)
                .join(Drop, DropReminder.drop_id == Drop.id)
                .outerjoin(Brand, Drop.brand_id == Brand.id)
                .where(DropReminder.user_id == user.id)
                .order_by(Drop.release_date)
            )
        ).all()
        return [
            ReminderResponse(
                drop_id=drop.id,
                is_notified=reminder.is_notified,
                created_at=reminder.created_at,
                drop=to_drop_response(drop, brand_name, unlocked),
            )
            for reminder, drop, brand_name in rows
        ]

    # ── Profile ───────────────────────────────────────────────────────────

    async def get_profile(self, db: AsyncSession, user: User) -> UserResponse:
        return await auth_service.to_response(db, user)

    async def update_profile(self, db: AsyncSession, user: User, payload: ProfileUpdate) -> UserResponse:
        changes = payload.model_dump(exclude_unset=True)
        if "display_name" in changes and changes["display_name"] is not None:
            user.display_name = changes["display_name"]
        if "avatar_url" in changes:
            user.avatar_url = changes["avatar_url"] or None
        if changes.get("notification_preferences") is not None:
            # Merge so a partial update keeps the other keys; new dict so the JSON column is dirtied
            user.notification_preferences = {
                **(user.notification_preferences or {}),
                **changes["notification_preferences"],
            }
        await db.flush()
        await db.refresh(user)
        logger.info("Profile updated for user %s", user.id)
        return await auth_service.to_response(db, user)


favorites_service = FavoritesService()
