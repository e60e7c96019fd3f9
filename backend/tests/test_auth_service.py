"""
HEARDROP Backend — Auth Service Tests
=======================================

What:  Accounts, sessions, roles and brute-force lockouts against a real
       (in-memory SQLite) database.

What we test:
    ✅ Signup normalises email, grants roles, rejects duplicates and weak passwords
    ✅ Login success clears counters; failures are counted and audited
    ✅ Account lock after 5 failures, IP lock after 10, 423 while locked
    ✅ Expired locks reset the counter
    ✅ Sessions resolve, expire and log out
    ✅ Admin unlock of accounts and IPs
"""

import secrets
import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select

from heardrop.config import settings
from heardrop.database import utcnow
from heardrop.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from heardrop.models.security import IpLoginAttempt, LoginAttempt, SecurityAuditLog
from heardrop.models.user import AuthSession
from heardrop.schemas.auth import SignupRequest
from heardrop.services.auth_service import AuthService, hash_password, verify_password

PASSWORD = "Str0ng!Passw0rd"


async def _event_types(db):
    result = await db.execute(select(SecurityAuditLog.event_type))
    return list(result.scalars().all())


class TestPasswordHashing:

    def test_round_trip(self):
        hashed = hash_password(PASSWORD)
        assert hashed != PASSWORD
        assert verify_password(PASSWORD, hashed)
        assert not verify_password("Wrong!Passw0rd", hashed)

    def test_long_passwords_are_not_truncated(self):
        base = "A1!" + "x" * 80
        hashed = hash_password(base + "tail-one")
        assert not verify_password(base + "tail-two", hashed)


class TestSignup:

    def setup_method(self):
        self.service = AuthService()

    @pytest.mark.asyncio
    async def test_creates_user_and_session(self, db_session):
        token = await self.service.signup(
            db_session,
            SignupRequest(email="New.Member@Heardrop.io", password=PASSWORD),
            ip_address="10.1.1.1",
        )

        assert token.access_token
        assert token.token_type == "bearer"
        assert token.user.email == "new.member@heardrop.io"
        assert token.user.display_name == "new.member"
        assert token.user.roles == ["user"]
        assert "signup" in await _event_types(db_session)

    @pytest.mark.asyncio
    async def test_admin_bootstrap_email(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "admin_emails", "boss@heardrop.io")
        token = await self.service.signup(
            db_session, SignupRequest(email="boss@heardrop.io", password=PASSWORD, display_name="Boss")
        )
        assert token.user.roles == ["admin", "user"]
        assert token.user.display_name == "Boss"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, db_session, make_user):
        await make_user(email="taken@heardrop.io")
        with pytest.raises(ConflictError):
            await self.service.signup(
                db_session, SignupRequest(email="TAKEN@heardrop.io", password=PASSWORD)
            )

    @pytest.mark.asyncio
    async def test_weak_password(self, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await self.service.signup(
                db_session, SignupRequest(email="weak@heardrop.io", password="password")
            )
        assert exc_info.value.field == "password"
        assert exc_info.value.context["checks"]["has_upper_case"] is False


class TestLogin:

    def setup_method(self):
        self.service = AuthService()

    @pytest.mark.asyncio
    async def test_success(self, db_session, make_user):
        user = await make_user(email="kai@heardrop.io")
        token = await self.service.login(db_session, "Kai@heardrop.io", PASSWORD, "10.2.2.2")

        assert token.user.id == user.id
        assert "login_success" in await _event_types(db_session)

    @pytest.mark.asyncio
    async def test_wrong_password_is_counted(self, db_session, make_user):
        await make_user(email="kai@heardrop.io")

        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await self.service.login(db_session, "kai@heardrop.io", "Wrong!Pass1", "10.2.2.2")

        attempt = (await db_session.execute(select(LoginAttempt))).scalar_one()
        assert attempt.email == "kai@heardrop.io"
        assert attempt.attempts == 1
        assert attempt.locked_until is None

    @pytest.mark.asyncio
    async def test_unknown_email_looks_like_wrong_password(self, db_session):
        with pytest.raises(AuthenticationError, match="Invalid email or password"):
            await self.service.login(db_session, "ghost@heardrop.io", PASSWORD, "10.2.2.2")

    @pytest.mark.asyncio
    async def test_success_clears_counters(self, db_session, make_user):
        await make_user(email="kai@heardrop.io")
        with pytest.raises(AuthenticationError):
            await self.service.login(db_session, "kai@heardrop.io", "Wrong!Pass1", "10.2.2.2")

        await self.service.login(db_session, "kai@heardrop.io", PASSWORD, "10.2.2.2")

        assert (await db_session.execute(select(LoginAttempt))).first() is None
        assert (await db_session.execute(select(IpLoginAttempt))).first() is None

    @pytest.mark.asyncio
    async def test_account_locks_on_fifth_failure(self, db_session, make_user):
        await make_user(email="kai@heardrop.io")
        for _ in range(settings.login_max_attempts - 1):
            with pytest.raises(AuthenticationError):
                await self.service.login(db_session, "kai@heardrop.io", "Wrong!Pass1", "10.3.3.3")

        with pytest.raises(AccountLockedError) as exc_info:
            await self.service.login(db_session, "kai@heardrop.io", "Wrong!Pass1", "10.3.3.3")
        assert exc_info.value.scope == "account"
        assert exc_info.value.retry_after == settings.login_lockout_minutes * 60

        # Even the right password is refused while locked
        with pytest.raises(AccountLockedError):
            await self.service.login(db_session, "kai@heardrop.io", PASSWORD, "10.3.3.3")
        assert "account_locked" in await _event_types(db_session)

    @pytest.mark.asyncio
    async def test_ip_locks_after_ten_failures(self, db_session, make_user):
        await make_user(email="kai@heardrop.io")
        for i in range(settings.ip_max_attempts - 1):
            with pytest.raises(AuthenticationError):
                await self.service.login(db_session, f"guess{i}@heardrop.io", "x", "10.4.4.4")

        with pytest.raises(AccountLockedError) as exc_info:
            await self.service.login(db_session, "guess-last@heardrop.io", "x", "10.4.4.4")
        assert exc_info.value.scope == "ip"

        with pytest.raises(AccountLockedError):
            await self.service.login(db_session, "kai@heardrop.io", PASSWORD, "10.4.4.4")
        # The same account from another IP still works
        token = await self.service.login(db_session, "kai@heardrop.io", PASSWORD, "10.5.5.5")
        assert token.access_token

    @pytest.mark.asyncio
    async def test_expired_lock_resets_counter(self, db_session, make_user):
        await make_user(email="kai@heardrop.io")
        db_session.add(
            LoginAttempt(
                email="kai@heardrop.io",
                attempts=5,
                last_attempt=utcnow() - timedelta(hours=1),
                locked_until=utcnow() - timedelta(minutes=1),
            )
        )
        await db_session.commit()

        with pytest.raises(AuthenticationError):
            await self.service.login(db_session, "kai@heardrop.io", "Wrong!Pass1", "10.6.6.6")

        attempt = (await db_session.execute(select(LoginAttempt))).scalar_one()
        assert attempt.attempts == 1
        assert attempt.locked_until is None


class TestSessions:

    def setup_method(self):
        self.service = AuthService()

    @pytest.mark.asyncio
    async def test_resolve_and_logout(self, db_session, make_user):
        await make_user(email="kai@heardrop.io")
        token = await self.service.login(db_session, "kai@heardrop.io", PASSWORD, "10.7.7.7")

        user = await self.service.resolve_session(db_session, token.access_token)
        assert user.email == "kai@heardrop.io"

        await self.service.logout(db_session, token.access_token, user)
        with pytest.raises(AuthenticationError):
            await self.service.resolve_session(db_session, token.access_token)

    @pytest.mark.asyncio
    async def test_expired_session(self, db_session, make_user):
        user = await make_user()
        stale = AuthSession(
            token=secrets.token_urlsafe(16),
            user_id=user.id,
            expires_at=utcnow() - timedelta(seconds=1),
        )
        db_session.add(stale)
        await db_session.commit()

        with pytest.raises(AuthenticationError, match="expired"):
            await self.service.resolve_session(db_session, stale.token)
        assert await db_session.get(AuthSession, stale.token) is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, db_session, make_user):
        user = await make_user()
        db_session.add_all(
            [
                AuthSession(token="old", user_id=user.id, expires_at=utcnow() - timedelta(days=1)),
                AuthSession(token="new", user_id=user.id, expires_at=utcnow() + timedelta(days=1)),
            ]
        )
        await db_session.commit()

        assert await self.service.purge_expired_sessions(db_session) == 1
        assert await db_session.get(AuthSession, "new") is not None


class TestRolesAndUnlock:

    def setup_method(self):
        self.service = AuthService()

    @pytest.mark.asyncio
    async def test_grant_role_is_idempotent(self, db_session, make_user):
        user = await make_user()
        await self.service.grant_role(db_session, user.id, "moderator")
        await self.service.grant_role(db_session, user.id, "moderator")
        assert await self.service.get_roles(db_session, user.id) == ["moderator", "user"]

    @pytest.mark.asyncio
    async def test_grant_unknown_role(self, db_session, make_user):
        user = await make_user()
        with pytest.raises(ValidationError):
            await self.service.grant_role(db_session, user.id, "superuser")

    @pytest.mark.asyncio
    async def test_unlock_account(self, db_session, make_user):
        admin = await make_user(roles=("user", "admin"))
        row = LoginAttempt(
            email="locked@heardrop.io",
            attempts=5,
            locked_until=utcnow() + timedelta(minutes=10),
        )
        db_session.add(row)
        await db_session.commit()

        locked = await self.service.list_locked_accounts(db_session)
        assert [entry.email for entry in locked] == ["locked@heardrop.io"]

        await self.service.unlock_account(db_session, row.id, admin)
        assert await self.service.list_locked_accounts(db_session) == []

        event = (
            await db_session.execute(
                select(SecurityAuditLog).where(SecurityAuditLog.event_type == "admin_unlock_account")
            )
        ).scalar_one()
        assert event.performed_by == admin.id
        assert event.user_email == "locked@heardrop.io"

    @pytest.mark.asyncio
    async def test_unlock_ip(self, db_session, make_user):
        admin = await make_user(roles=("admin",))
        row = IpLoginAttempt(
            ip_address="10.9.9.9",
            attempts=10,
            locked_until=utcnow() + timedelta(minutes=10),
        )
        db_session.add(row)
        await db_session.commit()

        assert [entry.ip_address for entry in await self.service.list_locked_ips(db_session)] == ["10.9.9.9"]
        await self.service.unlock_ip(db_session, row.id, admin)
        assert await self.service.list_locked_ips(db_session) == []

    @pytest.mark.asyncio
    async def test_unlock_unknown(self, db_session, make_user):
        admin = await make_user(roles=("admin",))
        with pytest.raises(NotFoundError):
            await self.service.unlock_account(db_session, uuid.uuid4(), admin)
