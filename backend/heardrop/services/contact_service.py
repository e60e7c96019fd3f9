"""
HEARDROP Backend — Contact Inbox Service
==========================================

What:  Stores public contact-form messages and serves the admin inbox.
Who:   POST /api/contact (anyone) and the /api/admin/contact routes.

Abuse protection:
    The form needs no account, so submissions are limited per IP
    (contact_submit_limit per contact_submit_window).
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.config import settings
from heardrop.exceptions import NotFoundError, RateLimitExceededError
from heardrop.middleware.rate_limit import SlidingWindowLimiter
from heardrop.models.contact import ContactSubmission
from heardrop.schemas.contact import ContactCreate, ContactSubmissionResponse

logger = logging.getLogger(__name__)


class ContactService:

    def __init__(self):
        self.limiter = SlidingWindowLimiter(
            limit=settings.contact_submit_limit,
            window_seconds=settings.contact_submit_window,
        )

    async def submit(
        self, db: AsyncSession, payload: ContactCreate, ip_address: str
    ) -> ContactSubmissionResponse:
        """
        Record a contact-form message.

        Raises:
            RateLimitExceededError: too many submissions from this IP
        """
        retry_after = self.limiter.hit(ip_address)
        if retry_after is not None:
            logger.warning("Contact form rate limit hit for %s", ip_address)
            raise RateLimitExceededError(retry_after=retry_after)

        submission = ContactSubmission(
            name=payload.name,
            email=payload.email.lower(),
            subject=payload.subject,
            message=payload.message,
            inquiry_type=payload.inquiry_type,
            ip_address=ip_address,
        )
        db.add(submission)
        await db.flush()
        logger.info("Contact submission %s (%s)", submission.id, submission.inquiry_type)
        return ContactSubmissionResponse.model_validate(submission)

    async def list_submissions(
        self,
        db: AsyncSession,
        resolved: Optional[bool] = None,
        inquiry_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[ContactSubmissionResponse]:
        """Newest first."""
        query = select(ContactSubmission)
        if resolved is not None:
            query = query.where(ContactSubmission.is_resolved.is_(resolved))
        if inquiry_type:
            query = query.where(ContactSubmission.inquiry_type == inquiry_type)
        query = query.order_by(ContactSubmission.created_at.desc()).limit(limit)

        result = await db.execute(query)
        return [ContactSubmissionResponse.model_validate(s) for s in result.scalars().all()]

    async def unresolved_count(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(ContactSubmission.id)).where(ContactSubmission.is_resolved.is_(False))
        )
        return result.scalar() or 0

    async def set_resolved(
        self, db: AsyncSession, submission_id: uuid.UUID, is_resolved: bool
    ) -> ContactSubmissionResponse:
        submission = await db.get(ContactSubmission, submission_id)
        if submission is None:
            raise NotFoundError(resource="contact submission", resource_id=str(submission_id))

        submission.is_resolved = is_resolved
        await db.flush()
        logger.info("Contact submission %s resolved=%s", submission_id, is_resolved)
        return ContactSubmissionResponse.model_validate(submission)


contact_service = ContactService()
