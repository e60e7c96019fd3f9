"""
HEARDROP Backend — Favorites, Reminders & Profile Tests
=========================================================

What we test:
    ✅ Favoriting brands and shops is idempotent; toggling flips it
    ✅ Unknown brands/shops/drops are 404s
    ✅ Drop reminders: set once, list with drop details, remove
    ✅ Profile edits merge notification preferences and clear avatars
"""

import uuid

import pytest
from pydantic import ValidationError as PydanticValidationError

from heardrop.exceptions import NotFoundError
from heardrop.schemas.auth import ProfileUpdate
from heardrop.services.favorites_service import FavoritesService


class TestFavorites:

    def setup_method(self):
        self.service = FavoritesService()

    @pytest.mark.asyncio
    async def test_brand_favorite_is_idempotent(self, db_session, make_user, make_brand):
        user = await make_user()
        brand = await make_brand("Palace")

        assert (await self.service.add_brand(db_session, user, brand.id)).favorited is True
        await self.service.add_brand(db_session, user, brand.id)

        ids = await self.service.favorite_ids(db_session, user)
        assert ids.brand_ids == [brand.id]
        assert ids.shop_ids == []

        assert (await self.service.remove_brand(db_session, user, brand.id)).favorited is False
        assert (await self.service.favorite_ids(db_session, user)).brand_ids == []

    @pytest.mark.asyncio
    async def test_toggle(self, db_session, make_user, make_brand, make_shop):
        user = await make_user()
        brand = await make_brand("Palace")
        shop = await make_shop("Palace Soho", brand_id=brand.id)

        assert (await self.service.toggle_brand(db_session, user, brand.id)).favorited is True
        assert (await self.service.toggle_brand(db_session, user, brand.id)).favorited is False
        assert (await self.service.toggle_shop(db_session, user, shop.id)).favorited is True

        ids = await self.service.favorite_ids(db_session, user)
        assert ids.brand_ids == []
        assert ids.shop_ids == [shop.id]

    @pytest.mark.asyncio
    async def test_unknown_targets(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await self.service.add_brand(db_session, user, uuid.uuid4())
        with pytest.raises(NotFoundError):
            await self.service.toggle_shop(db_session, user, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_expanded_favorites(self, db_session, make_user, make_brand, make_shop):
        user = await make_user()
        other = await make_user()
        brand = await make_brand("Kith")
        shop = await make_shop("Kith SoHo", brand_id=brand.id)
        await self.service.add_brand(db_session, user, brand.id)
        await self.service.add_shop(db_session, user, shop.id)
        await self.service.add_brand(db_session, other, brand.id)

        favorites = await self.service.favorites(db_session, user)

        assert [b.name for b in favorites.brands] == ["Kith"]
        assert [s.name for s in favorites.shops] == ["Kith SoHo"]
        assert favorites.shops[0].brand_name == "Kith"


class TestReminders:

    def setup_method(self):
        self.service = FavoritesService()

    @pytest.mark.asyncio
    async def test_set_list_remove(self, db_session, make_user, make_drop):
        user = await make_user()
        drop = await make_drop("Box Logo Hoodie", discount_code="HEAR10", is_pro_exclusive=True)

        await self.service.set_reminder(db_session, user, drop.id)
        await self.service.set_reminder(db_session, user, drop.id)

        reminders = await self.service.list_reminders(db_session, user)
        assert len(reminders) == 1
        assert reminders[0].drop_id == drop.id
        assert reminders[0].is_notified is False
        assert reminders[0].drop.title == "Box Logo Hoodie"
        assert reminders[0].drop.discount_code is None

        unlocked = await self.service.list_reminders(db_session, user, unlocked=True)
        assert unlocked[0].drop.discount_code == "HEAR10"

        await self.service.remove_reminder(db_session, user, drop.id)
        assert await self.service.list_reminders(db_session, user) == []

    @pytest.mark.asyncio
    async def test_unknown_drop(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(NotFoundError):
            await self.service.set_reminder(db_session, user, uuid.uuid4())


class TestProfile:

    def setup_method(self):
        self.service = FavoritesService()

    @pytest.mark.asyncio
    async def test_get_profile_includes_roles(self, db_session, make_user):
        user = await make_user(roles=("user", "moderator"))
        profile = await self.service.get_profile(db_session, user)
        assert profile.email == user.email
        assert profile.roles == ["moderator", "user"]

    @pytest.mark.asyncio
    async def test_update_merges_preferences(self, db_session, make_user):
        user = await make_user(
            avatar_url="https://cdn.example.com/me.png",
            notification_preferences={"drop_reminders": False},
        )

        profile = await self.service.update_profile(
            db_session,
            user,
            ProfileUpdate(
                display_name="  Sneakerhead  ",
                avatar_url="",
                notification_preferences={"favorite_brands": False},
            ),
        )

        assert profile.display_name == "Sneakerhead"
        assert profile.avatar_url is None
        assert profile.notification_preferences == {"drop_reminders": False, "favorite_brands": False}
        assert user.wants("weekly_digest") is True
        assert user.wants("favorite_brands") is False

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, db_session, make_user):
        user = await make_user(display_name="Original", avatar_url="https://cdn.example.com/me.png")
        profile = await self.service.update_profile(
            db_session, user, ProfileUpdate(notification_preferences={"weekly_digest": False})
        )
        assert profile.display_name == "Original"
        assert profile.avatar_url == "https://cdn.example.com/me.png"

    @pytest.mark.parametrize(
        "fields",
        [
            {"display_name": "x"},
            {"avatar_url": "ftp://example.com/me.png"},
            {"notification_preferences": {"sms": True}},
        ],
    )
    def test_rejected_profile_fields(self, fields):
        with pytest.raises(PydanticValidationError):
            ProfileUpdate(**fields)
