"""
HEARDROP Backend — Street Spotted Tests
=========================================

What we test:
    ✅ Posting validates tags, brands and caption before storing the image
    ✅ New posts are pending and hidden from everyone but author and moderators
    ✅ Feed shows approved posts only, with like counts and the viewer's like
    ✅ Likes toggle; unapproved posts cannot be liked
    ✅ Only the author deletes a post, and its image goes with it
    ✅ The image stays on disk when the deletion fails to commit
"""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from heardrop.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from heardrop.services.file_service import FileService
from heardrop.services.spot_service import SpotService, normalize_style_tags


class TestStyleTags:

    def test_normalises_and_dedupes(self):
        assert normalize_style_tags([" Streetwear", "streetwear", "Y2K"]) == ["streetwear", "y2k"]

    def test_empty(self):
        assert normalize_style_tags(None) == []

    def test_unknown_tag(self):
        with pytest.raises(ValidationError, match="Unknown style tags: cottagecore"):
            normalize_style_tags(["skate", "cottagecore"])

    def test_too_many(self):
        with pytest.raises(ValidationError, match="at most 3"):
            normalize_style_tags(["skate", "vintage", "y2k", "luxury"])


class TestPosting:

    def setup_method(self):
        self.service = SpotService()

    @pytest.mark.asyncio
    async def test_create_post_is_pending(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        storage = FileService(storage_root=str(tmp_path))
        author = await make_user(display_name="Spotter")
        brand = await make_brand("Corteiz")

        post = await self.service.create_post(
            db_session,
            author,
            "fit.png",
            png_bytes,
            brand_ids=[brand.id, brand.id],
            style_tags=["Streetwear"],
            caption="  Alcatraz cargos  ",
            city=" London ",
            storage=storage,
        )

        assert post.status == "pending"
        assert post.author_name == "Spotter"
        assert post.caption == "Alcatraz cargos"
        assert post.city == "London"
        assert post.country is None
        assert post.brand_ids == [brand.id]
        assert post.style_tags == ["streetwear"]
        assert post.image_url.startswith("/api/files/spots/")
        assert storage.resolve(post.image_url[len("/api/files/"):]).read_bytes() == png_bytes

    @pytest.mark.asyncio
    async def test_bad_metadata_never_touches_disk(self, db_session, make_user, png_bytes, tmp_path):
        storage = FileService(storage_root=str(tmp_path))
        author = await make_user()

        with pytest.raises(ValidationError, match="at least one brand"):
            await self.service.create_post(db_session, author, "fit.png", png_bytes, [], storage=storage)
        with pytest.raises(ValidationError) as exc_info:
            await self.service.create_post(
                db_session, author, "fit.png", png_bytes, [uuid.uuid4()], storage=storage
            )
        assert exc_info.value.field == "brand_ids"
        assert not (tmp_path / "spots").exists()

    @pytest.mark.asyncio
    async def test_caption_too_long(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        author = await make_user()
        brand = await make_brand("Corteiz")
        with pytest.raises(ValidationError, match="Caption"):
            await self.service.create_post(
                db_session, author, "fit.png", png_bytes, [brand.id], caption="x" * 501,
                storage=FileService(storage_root=str(tmp_path)),
            )

    @pytest.mark.asyncio
    async def test_bad_image(self, db_session, make_user, make_brand, tmp_path):
        author = await make_user()
        brand = await make_brand("Corteiz")
        with pytest.raises(ValidationError):
            await self.service.create_post(
                db_session, author, "fit.png", b"#!/bin/sh\necho hi\n", [brand.id],
                storage=FileService(storage_root=str(tmp_path)),
            )


class TestVisibilityAndModeration:

    def setup_method(self):
        self.service = SpotService()

    async def _post(self, db_session, author, brand, png_bytes, tmp_path):
        return await self.service.create_post(
            db_session, author, "fit.png", png_bytes, [brand.id],
            storage=FileService(storage_root=str(tmp_path)),
        )

    @pytest.mark.asyncio
    async def test_pending_post_visibility(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        author = await make_user()
        stranger = await make_user()
        moderator = await make_user(roles=("user", "moderator"))
        post = await self._post(db_session, author, await make_brand("Corteiz"), png_bytes, tmp_path)

        assert await self.service.feed(db_session) == []
        assert (await self.service.get_post(db_session, post.id, author)).id == post.id
        assert (await self.service.get_post(db_session, post.id, moderator)).id == post.id
        with pytest.raises(NotFoundError):
            await self.service.get_post(db_session, post.id, stranger)
        with pytest.raises(NotFoundError):
            await self.service.get_post(db_session, post.id)

        queue = await self.service.moderation_queue(db_session)
        assert [p.id for p in queue] == [post.id]

    @pytest.mark.asyncio
    async def test_approve_then_feed(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        author = await make_user()
        moderator = await make_user(roles=("user", "moderator"))
        corteiz = await make_brand("Corteiz")
        palace = await make_brand("Palace")
        post = await self._post(db_session, author, corteiz, png_bytes, tmp_path)

        approved = await self.service.moderate(db_session, post.id, "approved", moderator)
        assert approved.status == "approved"

        assert [p.id for p in await self.service.feed(db_session)] == [post.id]
        assert [p.id for p in await self.service.feed(db_session, brand_id=corteiz.id)] == [post.id]
        assert await self.service.feed(db_session, brand_id=palace.id) == []
        assert await self.service.moderation_queue(db_session) == []

    @pytest.mark.asyncio
    async def test_rejected_stays_visible_to_author(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        author = await make_user()
        moderator = await make_user(roles=("admin",))
        post = await self._post(db_session, author, await make_brand("Corteiz"), png_bytes, tmp_path)

        await self.service.moderate(db_session, post.id, "rejected", moderator)

        mine = await self.service.my_posts(db_session, author)
        assert [(p.id, p.status) for p in mine] == [(post.id, "rejected")]
        assert await self.service.feed(db_session) == []

    @pytest.mark.asyncio
    async def test_moderate_bad_input(self, db_session, make_user):
        moderator = await make_user(roles=("moderator",))
        with pytest.raises(ValidationError):
            await self.service.moderate(db_session, uuid.uuid4(), "pending", moderator)
        with pytest.raises(NotFoundError):
            await self.service.moderate(db_session, uuid.uuid4(), "approved", moderator)

    @pytest.mark.asyncio
    async def test_is_moderator(self, db_session, make_user):
        assert await self.service.is_moderator(db_session, None) is False
        assert await self.service.is_moderator(db_session, await make_user()) is False
        assert await self.service.is_moderator(db_session, await make_user(roles=("admin",))) is True


class TestLikesAndDeletion:

    def setup_method(self):
        self.service = SpotService()

    @pytest.mark.asyncio
    async def test_toggle_like(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        author = await make_user()
        fan = await make_user()
        moderator = await make_user(roles=("moderator",))
        post = await self.service.create_post(
            db_session, author, "fit.png", png_bytes, [(await make_brand("Corteiz")).id],
            storage=FileService(storage_root=str(tmp_path)),
        )

        with pytest.raises(NotFoundError):
            await self.service.toggle_like(db_session, post.id, fan)

        await self.service.moderate(db_session, post.id, "approved", moderator)
        liked = await self.service.toggle_like(db_session, post.id, fan)
        assert (liked.liked, liked.like_count) == (True, 1)

        [seen] = await self.service.feed(db_session, viewer=fan)
        assert (seen.like_count, seen.user_liked) == (1, True)
        [anonymous] = await self.service.feed(db_session)
        assert anonymous.user_liked is False

        unliked = await self.service.toggle_like(db_session, post.id, fan)
        assert (unliked.liked, unliked.like_count) == (False, 0)

    @pytest.mark.asyncio
    async def test_only_author_deletes(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        storage = FileService(storage_root=str(tmp_path))
        author = await make_user()
        stranger = await make_user()
        post = await self.service.create_post(
            db_session, author, "fit.png", png_bytes, [(await make_brand("Corteiz")).id], storage=storage
        )
        relative = post.image_url[len("/api/files/"):]
        assert await self.service.image_paths(db_session) == {relative}

        with pytest.raises(PermissionDeniedError):
            await self.service.delete_post(db_session, post.id, stranger, storage=storage)

        await self.service.delete_post(db_session, post.id, author, storage=storage)

        assert await self.service.my_posts(db_session, author) == []
        with pytest.raises(NotFoundError):
            storage.resolve(relative)
        with pytest.raises(NotFoundError):
            await self.service.delete_post(db_session, post.id, author, storage=storage)

    @pytest.mark.asyncio
    async def test_failed_commit_keeps_image(self, db_session, make_user, make_brand, png_bytes, tmp_path):
        storage = FileService(storage_root=str(tmp_path))
        author = await make_user()
        post = await self.service.create_post(
            db_session, author, "fit.png", png_bytes, [(await make_brand("Corteiz")).id], storage=storage
        )
        relative = post.image_url[len("/api/files/"):]

        failing_commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk full")))
        with patch.object(db_session, "commit", failing_commit):
            with pytest.raises(OperationalError):
                await self.service.delete_post(db_session, post.id, author, storage=storage)

        assert storage.resolve(relative).read_bytes() == png_bytes
