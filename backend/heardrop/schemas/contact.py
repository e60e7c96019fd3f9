"""
HEARDROP Backend — Contact Form Schemas
=========================================
"""

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

InquiryType = Literal["new-brand", "new-release", "correction", "partnership", "other"]


class ContactCreate(BaseModel):
    """
    Public contact form payload.

    Name and message are trimmed; blank values are rejected. An empty
    subject is stored as None.
    """
    name: str = Field(max_length=100)
    email: EmailStr
    subject: Optional[str] = Field(default=None, max_length=200)
    message: str = Field(max_length=5000)
    inquiry_type: InquiryType = "other"

    @field_validator("name", "message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("must not be blank")
        return trimmed

    @field_validator("subject")
    @classmethod
    def blank_subject_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None


class ContactResolveUpdate(BaseModel):
    is_resolved: bool


class ContactSubmissionResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    subject: Optional[str] = None
    message: str
    inquiry_type: str
    is_resolved: bool
    created_at: datetime

    model_config = {"from_attributes": True}
