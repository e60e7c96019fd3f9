"""
HEARDROP Backend — Contact Form Route
=======================================

What:  Public contact form. No account needed; submissions land in the
       admin inbox (/api/admin/contact).
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import client_ip
from heardrop.schemas.common import ErrorResponse, MessageResponse
from heardrop.schemas.contact import ContactCreate
from heardrop.services.contact_service import contact_service

router = APIRouter(prefix="/api/contact", tags=["Contact"])


@router.post(
    "",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={429: {"description": "Too many messages from this IP", "model": ErrorResponse}},
    summary="Send a message to the HEARDROP team",
)
async def submit(
    payload: ContactCreate,
    ip_address: str = Depends(client_ip),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await contact_service.submit(db, payload, ip_address)
    return MessageResponse(message="Thanks, your message has been sent")
