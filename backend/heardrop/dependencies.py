"""
HEARDROP Backend — Request Dependencies
=========================================

What:  FastAPI dependencies for the caller's identity and roles.
How:   `Authorization: Bearer <token>` is resolved through AuthService.
       FastAPI caches dependencies per request, so the session yielded by
       get_db_session here is the same one the route handler receives.

Usage:
    user: User = Depends(get_current_user)            # 401 when anonymous
    user: Optional[User] = Depends(get_optional_user) # None when anonymous
    admin: User = Depends(require_role("admin"))      # 403 without the role
    unlocked: bool = Depends(exclusive_access)        # Pro or admin
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.database import get_db_session
from heardrop.exceptions import AuthenticationError, PermissionDeniedError
from heardrop.middleware.rate_limit import get_client_ip
from heardrop.models.user import User
from heardrop.services.auth_service import auth_service
from heardrop.services.drop_service import can_view_exclusive

bearer_scheme = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    if credentials is None or not credentials.credentials:
        return None
    return credentials.credentials


async def get_optional_user(
    token: Optional[str] = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_db_session),
) -> Optional[User]:
    """Anonymous callers get None; a bad token is still an error."""
    if token is None:
        return None
    return await auth_service.resolve_session(db, token)


async def get_current_user(
    user: Optional[User] = Depends(get_optional_user),
) -> User:
    if user is None:
        raise AuthenticationError(message="Authentication required")
    return user


def require_role(*roles: str):
    """Dependency factory: the caller must hold at least one of `roles`."""

    async def checker(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db_session),
    ) -> User:
        for role in roles:
            if await auth_service.has_role(db, user.id, role):
                return user
        raise PermissionDeniedError(
            message="You do not have permission to perform this action",
            context={"required_roles": list(roles)},
        )

    return checker


def client_ip(request: Request) -> str:
    return get_client_ip(request)


async def viewer_is_admin(
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> bool:
    return user is not None and await auth_service.has_role(db, user.id, "admin")


async def exclusive_access(
    user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db_session),
) -> bool:
    """Whether Pro-exclusive drop details are shown to this caller."""
    return await can_view_exclusive(db, user)
