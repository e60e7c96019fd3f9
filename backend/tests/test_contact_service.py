"""
HEARDROP Backend — Contact Inbox Tests
========================================

What we test:
    ✅ Submissions are trimmed, e-mails lowercased, blank subjects dropped
    ✅ Inbox is newest first and filters by resolved flag and inquiry type
    ✅ Resolving toggles the flag; unknown ids are 404
    ✅ Per-IP submission limit
"""

import uuid
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from heardrop.database import utcnow
from heardrop.exceptions import NotFoundError, RateLimitExceededError
from heardrop.models.contact import ContactSubmission
from heardrop.schemas.contact import ContactCreate
from heardrop.services.contact_service import ContactService


def _message(**overrides):
    fields = {
        "name": "  Kai  ",
        "email": "Kai@Heardrop.io",
        "subject": "   ",
        "message": " Please add Corteiz Paris. ",
        "inquiry_type": "new-brand",
    }
    fields.update(overrides)
    return ContactCreate(**fields)


class TestContactCreate:

    def test_trims_and_drops_blank_subject(self):
        payload = _message()
        assert (payload.name, payload.subject, payload.message) == (
            "Kai",
            None,
            "Please add Corteiz Paris.",
        )

    @pytest.mark.parametrize(
        "overrides",
        [
            {"name": "   "},
            {"message": ""},
            {"email": "not-an-email"},
            {"inquiry_type": "complaint"},
            {"message": "x" * 5001},
        ],
    )
    def test_rejects(self, overrides):
        with pytest.raises(PydanticValidationError):
            _message(**overrides)


class TestContactInbox:

    def setup_method(self):
        self.service = ContactService()

    @pytest.mark.asyncio
    async def test_submit(self, db_session):
        saved = await self.service.submit(db_session, _message(), "10.0.0.1")

        assert saved.email == "kai@heardrop.io"
        assert saved.is_resolved is False
        row = await db_session.get(ContactSubmission, saved.id)
        assert row.ip_address == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_inbox_order_and_filters(self, db_session):
        older = ContactSubmission(
            name="Mo",
            email="mo@heardrop.io",
            message="Wrong opening hours",
            inquiry_type="correction",
            created_at=utcnow() - timedelta(days=1),
        )
        db_session.add(older)
        await db_session.flush()
        newer = await self.service.submit(db_session, _message(), "10.0.0.1")

        inbox = await self.service.list_submissions(db_session)
        assert [s.id for s in inbox] == [newer.id, older.id]

        corrections = await self.service.list_submissions(db_session, inquiry_type="correction")
        assert [s.id for s in corrections] == [older.id]

        await self.service.set_resolved(db_session, older.id, True)
        open_items = await self.service.list_submissions(db_session, resolved=False)
        assert [s.id for s in open_items] == [newer.id]
        assert await self.service.unresolved_count(db_session) == 1

        reopened = await self.service.set_resolved(db_session, older.id, False)
        assert reopened.is_resolved is False
        assert await self.service.unresolved_count(db_session) == 2

    @pytest.mark.asyncio
    async def test_resolve_unknown(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.set_resolved(db_session, uuid.uuid4(), True)

    @pytest.mark.asyncio
    async def test_rate_limit_per_ip(self, db_session):
        self.service.limiter.limit = 2
        await self.service.submit(db_session, _message(), "10.0.0.1")
        await self.service.submit(db_session, _message(), "10.0.0.1")

        with pytest.raises(RateLimitExceededError):
            await self.service.submit(db_session, _message(), "10.0.0.1")
        await self.service.submit(db_session, _message(), "10.0.0.2")
