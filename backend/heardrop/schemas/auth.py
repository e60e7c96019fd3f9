"""
HEARDROP Backend — Account, Profile and Password Schemas
==========================================================
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from heardrop.models.user import NOTIFICATION_PREFERENCE_KEYS


class SignupRequest(BaseModel):
    email: EmailStr
    # Length bounds are enforced by the password policy, which also audits
    # suspicious lengths, so the schema only caps the payload size.
    password: str = Field(max_length=1024)
    display_name: Optional[str] = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(max_length=1024)


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    is_pro: bool = False
    pro_expires_at: Optional[datetime] = None
    notification_preferences: Dict[str, bool] = Field(default_factory=dict)
    roles: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class ProfileUpdate(BaseModel):
    """
    What:  Editable profile fields.

    display_name is trimmed and must be 2-100 characters; avatar_url must be
    an http(s) URL, or empty to clear it. Preference keys outside the known
    set are rejected rather than silently stored.
    """
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    notification_preferences: Optional[Dict[str, bool]] = None

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        trimmed = v.strip()
        if len(trimmed) < 2:
            raise ValueError("Display name must be at least 2 characters")
        if len(trimmed) > 100:
            raise ValueError("Display name must be at most 100 characters")
        return trimmed

    @field_validator("avatar_url")
    @classmethod
    def validate_avatar_url(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        trimmed = v.strip()
        if trimmed == "":
            return ""
        if not trimmed.startswith(("http://", "https://")) or len(trimmed) > 500:
            raise ValueError("Avatar URL must be a valid http(s) URL")
        return trimmed

    @field_validator("notification_preferences")
    @classmethod
    def validate_preferences(cls, v: Optional[Dict[str, bool]]) -> Optional[Dict[str, bool]]:
        if v is None:
            return v
        unknown = set(v) - set(NOTIFICATION_PREFERENCE_KEYS)
        if unknown:
            raise ValueError(f"Unknown notification preferences: {', '.join(sorted(unknown))}")
        return v


class PasswordCheckRequest(BaseModel):
    password: str = Field(max_length=1024)


class PasswordChecks(BaseModel):
    min_length: bool
    has_upper_case: bool
    has_lower_case: bool
    has_number: bool
    has_special_char: bool


class PasswordCheckResponse(BaseModel):
    """
    breach_check:
        "passed"      not found in the Pwned Passwords corpus
        "breached"    found; `breach_count` says how often
        "unavailable" the lookup failed and the check failed open
        "skipped"     not run (weak password, or breach checks disabled)
    """
    valid: bool
    message: str
    checks: Optional[PasswordChecks] = None
    breached: bool = False
    breach_count: int = 0
    breach_check: str = "skipped"


class BreachCheckResponse(BaseModel):
    breached: bool
    count: int = 0
    available: bool = True
