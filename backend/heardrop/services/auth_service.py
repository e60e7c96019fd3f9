"""
HEARDROP Backend — Authentication Service
===========================================

What:  Accounts, password hashing, bearer sessions, roles and login lockout.
Who:   Auth routes, the request dependencies in heardrop.dependencies, and
       the admin lockout views.

Login protection:
    Two independent counters are kept for failed logins:
        per account e-mail:  5 failures  → locked for 15 minutes
        per source IP:       10 failures → locked for 30 minutes
    The IP lock is checked first, so a locked IP cannot even probe which
    accounts exist. A successful login clears both counters. Every failure,
    lock and success is written to the security audit log.

Passwords:
    bcrypt over a SHA-256 pre-hash. The pre-hash keeps long passphrases
    (up to 256 chars) inside bcrypt's 72-byte input limit without silently
    truncating them.
"""

import base64
import hashlib
import logging
import math
import secrets
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

import bcrypt
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from heardrop.config import settings
from heardrop.database import utcnow
from heardrop.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from heardrop.models.security import IpLoginAttempt, LoginAttempt
from heardrop.models.user import ROLES, AuthSession, User, UserRole
from heardrop.schemas.admin import LockedAccount, LockedIp
from heardrop.schemas.auth import SignupRequest, TokenResponse, UserResponse
from heardrop.services.audit_service import audit_service
from heardrop.services.password_service import password_service

logger = logging.getLogger(__name__)


def _prehash(password: str) -> bytes:
    return base64.b64encode(hashlib.sha256(password.encode("utf-8")).digest())


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(_prehash(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bool(bcrypt.checkpw(_prehash(password), password_hash.encode("utf-8")))
    except ValueError:
        # Malformed stored hash
        return False


def _remaining_minutes(locked_until: datetime, now: datetime) -> int:
    return max(1, math.ceil((locked_until - now).total_seconds() / 60))


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


class AuthService:

    # ── Accounts ──────────────────────────────────────────────────────────

    async def signup(
        self,
        db: AsyncSession,
        payload: SignupRequest,
        ip_address: Optional[str] = None,
    ) -> TokenResponse:
        """
        Create an account and sign it in.

        Raises:
            ConflictError: e-mail already registered
            ValidationError: password rejected by the policy
        """
        email = payload.email.strip().lower()

        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(message="An account with this email already exists", field="email")

        verdict = await password_service.evaluate(
            db, payload.password, ip_address=ip_address, email=email
        )
        if not verdict.valid:
            # Keep any audit rows written by the policy check
            await db.commit()
            raise ValidationError(
                message=verdict.message,
                field="password",
                context={
                    "checks": verdict.checks.model_dump() if verdict.checks else None,
                    "breached": verdict.breached,
                },
            )

        display_name = (payload.display_name or "").strip() or email.split("@")[0]
        user = User(
            email=email,
            password_hash=hash_password(payload.password),
            display_name=display_name[:100],
            notification_preferences={},
        )
        db.add(user)
        await db.flush()

        await self.grant_role(db, user.id, "user")
        if email in settings.admin_emails_list:
            await self.grant_role(db, user.id, "admin")

        await audit_service.log_event(
            db, "signup", user_id=user.id, user_email=email, ip_address=ip_address
        )
        logger.info("New account created: %s", user.id)
        return await self._issue_session(db, user, ip_address)

    async def login(
        self,
        db: AsyncSession,
        email: str,
        password: str,
        ip_address: str,
    ) -> TokenResponse:
        """
        Authenticate and issue a session.

        Raises:
            AccountLockedError: the IP or the account is locked (423)
            AuthenticationError: wrong e-mail or password (401)
        """
        email = email.strip().lower()
        now = utcnow()

        ip_row = await self._ip_attempt(db, ip_address)
        if ip_row and ip_row.locked_until and ip_row.locked_until > now:
            minutes = _remaining_minutes(ip_row.locked_until, now)
            raise AccountLockedError(
                message=(
                    "Too many failed attempts from your IP. "
                    f"Please try again in {_plural(minutes, 'minute')}."
                ),
                retry_after=int((ip_row.locked_until - now).total_seconds()) + 1,
                scope="ip",
            )

        account_row = await self._account_attempt(db, email)
        if account_row and account_row.locked_until and account_row.locked_until > now:
            minutes = _remaining_minutes(account_row.locked_until, now)
            raise AccountLockedError(
                message=(
                    "Account temporarily locked due to too many failed attempts. "
                    f"Please try again in {_plural(minutes, 'minute')}."
                ),
                retry_after=int((account_row.locked_until - now).total_seconds()) + 1,
                scope="account",
            )

        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None or not verify_password(password, user.password_hash):
            lock_error = await self._record_failure(
                db, email, ip_address, now, user, account_row, ip_row
            )
            # The session dependency rolls back on error; keep the counters
            await db.commit()
            if lock_error:
                raise lock_error
            raise AuthenticationError(message="Invalid email or password")

        await db.execute(delete(LoginAttempt).where(LoginAttempt.email == email))
        await db.execute(delete(IpLoginAttempt).where(IpLoginAttempt.ip_address == ip_address))
        await audit_service.log_event(
            db, "login_success", user_id=user.id, user_email=email, ip_address=ip_address
        )
        return await self._issue_session(db, user, ip_address)

    async def logout(self, db: AsyncSession, token: str, user: User) -> None:
        await db.execute(delete(AuthSession).where(AuthSession.token == token))
        await audit_service.log_event(db, "logout", user_id=user.id, user_email=user.email)

    async def resolve_session(self, db: AsyncSession, token: str) -> User:
        """
        Map a bearer token to its user.

        Raises:
            AuthenticationError: unknown token, expired session or deleted user
        """
        result = await db.execute(select(AuthSession).where(AuthSession.token == token))
        session = result.scalar_one_or_none()
        if session is None:
            raise AuthenticationError(message="Invalid or expired session")

        if session.expires_at <= utcnow():
            await db.delete(session)
            await db.commit()
            raise AuthenticationError(message="Your session has expired. Please sign in again.")

        user = await db.get(User, session.user_id)
        if user is None:
            raise AuthenticationError(message="Invalid or expired session")
        return user

    async def purge_expired_sessions(self, db: AsyncSession) -> int:
        result = await db.execute(delete(AuthSession).where(AuthSession.expires_at <= utcnow()))
        return result.rowcount or 0

    # ── Roles ─────────────────────────────────────────────────────────────

    async def get_roles(self, db: AsyncSession, user_id: uuid.UUID) -> List[str]:
        result = await db.execute(select(UserRole.role).where(UserRole.user_id == user_id))
        return sorted(result.scalars().all())

    async def has_role(self, db: AsyncSession, user_id: uuid.UUID, role: str) -> bool:
        result = await db.execute(
            select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role)
        )
        return result.scalar_one_or_none() is not None

    async def grant_role(self, db: AsyncSession, user_id: uuid.UUID, role: str) -> None:
        if role not in ROLES:
            raise ValidationError(message=f"Unknown role '{role}'", field="role")
        if await db.get(User, user_id) is None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        if await self.has_role(db, user_id, role):
            return
        db.add(UserRole(user_id=user_id, role=role))
        await db.flush()

    async def to_response(self, db: AsyncSession, user: User) -> UserResponse:
        response = UserResponse.model_validate(user)
        response.roles = await self.get_roles(db, user.id)
        return response

    # ── Lockout administration ────────────────────────────────────────────

    async def list_locked_accounts(self, db: AsyncSession) -> List[LockedAccount]:
        result = await db.execute(
            select(LoginAttempt)
            .where(LoginAttempt.locked_until > utcnow())
            .order_by(LoginAttempt.locked_until.desc())
        )
        return [LockedAccount.model_validate(row) for row in result.scalars().all()]

    async def list_locked_ips(self, db: AsyncSession) -> List[LockedIp]:
        result = await db.execute(
            select(IpLoginAttempt)
            .where(IpLoginAttempt.locked_until > utcnow())
            .order_by(IpLoginAttempt.locked_until.desc())
        )
        return [LockedIp.model_validate(row) for row in result.scalars().all()]

    async def unlock_account(self, db: AsyncSession, attempt_id: uuid.UUID, admin: User) -> None:
        row = await db.get(LoginAttempt, attempt_id)
        if row is None:
            raise NotFoundError(resource="locked account", resource_id=str(attempt_id))
        await db.delete(row)
        await audit_service.log_event(
            db,
            "admin_unlock_account",
            user_email=row.email,
            event_data={"attempts": row.attempts},
            performed_by=admin.id,
        )

    async def unlock_ip(self, db: AsyncSession, attempt_id: uuid.UUID, admin: User) -> None:
        row = await db.get(IpLoginAttempt, attempt_id)
        if row is None:
            raise NotFoundError(resource="locked IP", resource_id=str(attempt_id))
        await db.delete(row)
        await audit_service.log_event(
            db,
            "admin_unlock_ip",
            ip_address=row.ip_address,
            event_data={"attempts": row.attempts},
            performed_by=admin.id,
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _issue_session(
        self, db: AsyncSession, user: User, ip_address: Optional[str]
    ) -> TokenResponse:
        expires_at = utcnow() + timedelta(seconds=settings.session_ttl_seconds)
        session = AuthSession(
            token=secrets.token_urlsafe(32),
            user_id=user.id,
            ip_address=ip_address,
            expires_at=expires_at,
        )
        db.add(session)
        await db.flush()
        return TokenResponse(
            access_token=session.token,
            expires_at=expires_at,
            user=await self.to_response(db, user),
        )

    async def _account_attempt(self, db: AsyncSession, email: str) -> Optional[LoginAttempt]:
        result = await db.execute(select(LoginAttempt).where(LoginAttempt.email == email))
        return result.scalar_one_or_none()

    async def _ip_attempt(self, db: AsyncSession, ip_address: str) -> Optional[IpLoginAttempt]:
        result = await db.execute(
            select(IpLoginAttempt).where(IpLoginAttempt.ip_address == ip_address)
        )
        return result.scalar_one_or_none()

    async def _record_failure(
        self,
        db: AsyncSession,
        email: str,
        ip_address: str,
        now: datetime,
        user: Optional[User],
        account_row: Optional[LoginAttempt],
        ip_row: Optional[IpLoginAttempt],
    ) -> Optional[AccountLockedError]:
        """
        Bump both counters and lock whichever crossed its threshold.

        Returns the lock error to raise when this failure triggered a lock.
        """
        if account_row is None:
            account_row = LoginAttempt(email=email, attempts=0)
            db.add(account_row)
        if ip_row is None:
            ip_row = IpLoginAttempt(ip_address=ip_address, attempts=0)
            db.add(ip_row)

        # An expired lock starts a fresh count
        for row in (account_row, ip_row):
            if row.locked_until is not None and row.locked_until <= now:
                row.attempts = 0
                row.locked_until = None
            row.attempts = (row.attempts or 0) + 1
            row.last_attempt = now

        await audit_service.log_event(
            db,
            "login_failed",
            user_id=user.id if user else None,
            user_email=email,
            ip_address=ip_address,
            event_data={
                "reason": "invalid_password" if user else "unknown_email",
                "attempts": account_row.attempts,
            },
        )

        lock_error: Optional[AccountLockedError] = None

        if ip_row.attempts >= settings.ip_max_attempts:
            ip_row.locked_until = now + timedelta(minutes=settings.ip_lockout_minutes)
            await audit_service.log_event(
                db,
                "ip_locked",
                ip_address=ip_address,
                event_data={
                    "attempts": ip_row.attempts,
                    "locked_minutes": settings.ip_lockout_minutes,
                },
            )
            logger.warning("IP %s locked after %d failed logins", ip_address, ip_row.attempts)
            lock_error = AccountLockedError(
                message=(
                    "Too many failed attempts from your IP. Please try again in "
                    f"{_plural(settings.ip_lockout_minutes, 'minute')}."
                ),
                retry_after=settings.ip_lockout_minutes * 60,
                scope="ip",
            )

        if account_row.attempts >= settings.login_max_attempts:
            account_row.locked_until = now + timedelta(minutes=settings.login_lockout_minutes)
            await audit_service.log_event(
                db,
                "account_locked",
                user_id=user.id if user else None,
                user_email=email,
                ip_address=ip_address,
                event_data={
                    "attempts": account_row.attempts,
                    "locked_minutes": settings.login_lockout_minutes,
                },
            )
            logger.warning("Account %s locked after %d failed logins", email, account_row.attempts)
            lock_error = lock_error or AccountLockedError(
                message=(
                    "Account temporarily locked due to too many failed attempts. "
                    f"Please try again in {_plural(settings.login_lockout_minutes, 'minute')}."
                ),
                retry_after=settings.login_lockout_minutes * 60,
                scope="account",
            )

        await db.flush()
        return lock_error


auth_service = AuthService()
