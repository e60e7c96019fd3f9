"""
HEARDROP Backend — Account Route Handlers
===========================================

What:  Sign-up, login, logout, the current user, and the public password
       strength/breach checks used by the sign-up form.
Who:   The app's auth screens.

Login failures:
    401  wrong e-mail or password
    423  account or IP locked (Retry-After carries the remaining seconds)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.dependencies import client_ip, get_bearer_token, get_current_user
from heardrop.models.user import User
from heardrop.schemas.auth import (
    BreachCheckResponse,
    LoginRequest,
    PasswordCheckRequest,
    PasswordCheckResponse,
    SignupRequest,
    TokenResponse,
    UserResponse,
)
from heardrop.schemas.common import ErrorResponse, MessageResponse
from heardrop.services.auth_service import auth_service
from heardrop.services.password_service import password_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/signup",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Password rejected by the policy", "model": ErrorResponse},
        409: {"description": "E-mail already registered", "model": ErrorResponse},
    },
    summary="Create an account",
)
async def signup(
    payload: SignupRequest,
    ip_address: str = Depends(client_ip),
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    return await auth_service.signup(db, payload, ip_address=ip_address)


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={
        401: {"description": "Invalid e-mail or password", "model": ErrorResponse},
        423: {"description": "Account or IP temporarily locked", "model": ErrorResponse},
    },
    summary="Log in with e-mail and password",
)
async def login(
    payload: LoginRequest,
    ip_address: str = Depends(client_ip),
    db: AsyncSession = Depends(get_db_session),
) -> TokenResponse:
    return await auth_service.login(db, payload.email, payload.password, ip_address)


@router.post("/logout", response_model=MessageResponse, summary="End the current session")
async def logout(
    token: Optional[str] = Depends(get_bearer_token),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await auth_service.logout(db, token, user)
    return MessageResponse(message="Logged out")


@router.get("/me", response_model=UserResponse, summary="The signed-in user")
async def me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await auth_service.to_response(db, user)


@router.post(
    "/password/validate",
    response_model=PasswordCheckResponse,
    responses={429: {"description": "Too many checks from this IP", "model": ErrorResponse}},
    summary="Check a password against the strength and breach policy",
    description=(
        "Limited to 10 checks per minute per IP. Breached passwords are reported via "
        "the Pwned Passwords range API; only the first 5 characters of the SHA-1 hash "
        "leave the server."
    ),
)
async def validate_password(
    payload: PasswordCheckRequest,
    ip_address: str = Depends(client_ip),
    db: AsyncSession = Depends(get_db_session),
) -> PasswordCheckResponse:
    return await password_service.validate(db, payload.password, ip_address)


@router.post(
    "/password/breach-check",
    response_model=BreachCheckResponse,
    summary="Look a password up in the Pwned Passwords corpus",
)
async def breach_check(payload: PasswordCheckRequest) -> BreachCheckResponse:
    return await password_service.check_breach(payload.password)
