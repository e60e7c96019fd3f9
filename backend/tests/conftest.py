"""
HEARDROP Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Every test gets a fresh in-memory SQLite database (aiosqlite +
       StaticPool, so all sessions share one connection) with the full
       schema created from the ORM models. API tests talk to a fresh app
       through httpx.AsyncClient + ASGITransport with the session dependency
       pointed at that database.

Fixture Hierarchy:
    Function-scoped:
    ├── engine / session_factory: the per-test database
    ├── db_session: session for arranging data and calling services
    ├── client: AsyncClient against create_app()
    ├── make_user / auth_headers: accounts and bearer tokens
    ├── make_brand / make_shop / make_drop: catalogue rows
    └── png_bytes / jpeg_bytes: tiny images that pass MIME sniffing
"""

import os
import secrets
import struct
import tempfile
import zlib
from datetime import timedelta

# Settings are read at import time; point them at test values first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="heardrop_test_")
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["BREACH_CHECK_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["MAPBOX_TOKEN"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["ADMIN_EMAILS"] = ""
os.environ["RATE_LIMIT_REQUESTS"] = "100000"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import heardrop.models  # noqa: F401
from heardrop.database import Base, get_db_session, utcnow
from heardrop.models.brand import Brand
from heardrop.models.drop import Drop
from heardrop.models.shop import Shop
from heardrop.models.user import AuthSession, User, UserRole
from heardrop.services.auth_service import hash_password
from heardrop.services.contact_service import contact_service
from heardrop.services.drop_service import drop_service
from heardrop.services.gemini_service import gemini_service
from heardrop.services.mapbox_service import mapbox_service
from heardrop.services.password_service import password_service

DEFAULT_PASSWORD = "Str0ng!Passw0rd"


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Limiters and circuit breakers live on module singletons."""
    password_service.limiter.reset()
    drop_service.affiliate_limiter.reset()
    contact_service.limiter.reset()
    for breaker in (
        password_service.circuit_breaker,
        mapbox_service.circuit_breaker,
        gemini_service.circuit_breaker,
    ):
        breaker.reset()
    yield


# ══════════════════════════════════════════════════════════════════════════
# API client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def client(session_factory):
    """
    AsyncClient for endpoint tests. Each request gets its own session that
    commits on success and rolls back on error, like get_db_session.

    Usage:
        async def test_health(client):
            response = await client.get("/health")
    """
    from heardrop.main import create_app

    app = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


# ══════════════════════════════════════════════════════════════════════════
# Factories
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    async def _make(email=None, roles=("user",), password=DEFAULT_PASSWORD, **fields):
        counter["n"] += 1
        user = User(
            email=email or f"member{counter['n']}@heardrop.io",
            password_hash=hash_password(password),
            display_name=fields.pop("display_name", f"Member {counter['n']}"),
            notification_preferences=fields.pop("notification_preferences", {}),
            **fields,
        )
        db_session.add(user)
        await db_session.flush()
        for role in roles:
            db_session.add(UserRole(user_id=user.id, role=role))
        await db_session.commit()
        return user

    return _make


@pytest.fixture
def auth_headers(db_session):
    async def _headers(user):
        session = AuthSession(
            token=secrets.token_urlsafe(32),
            user_id=user.id,
            ip_address="127.0.0.1",
            expires_at=utcnow() + timedelta(days=1),
        )
        db_session.add(session)
        await db_session.commit()
        return {"Authorization": f"Bearer {session.token}"}

    return _headers


@pytest.fixture
def make_brand(db_session):
    async def _make(name="Kith", **fields):
        fields.setdefault("slug", name.lower().replace(" ", "-"))
        brand = Brand(name=name, **fields)
        db_session.add(brand)
        await db_session.commit()
        return brand

    return _make


@pytest.fixture
def make_shop(db_session):
    async def _make(name="Kith SoHo", latitude=40.7233, longitude=-74.0030, **fields):
        fields.setdefault("slug", name.lower().replace(" ", "-"))
        fields.setdefault("address", "337 Lafayette St")
        fields.setdefault("city", "New York")
        fields.setdefault("country", "USA")
        shop = Shop(name=name, latitude=latitude, longitude=longitude, **fields)
        db_session.add(shop)
        await db_session.commit()
        return shop

    return _make


@pytest.fixture
def make_drop(db_session):
    async def _make(title="Box Logo Hoodie", release_date=None, **fields):
        fields.setdefault("slug", title.lower().replace(" ", "-"))
        drop = Drop(
            title=title,
            release_date=release_date or utcnow() + timedelta(days=3),
            **fields,
        )
        db_session.add(drop)
        await db_session.commit()
        return drop

    return _make


# ══════════════════════════════════════════════════════════════════════════
# Images
# ══════════════════════════════════════════════════════════════════════════

def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return (
        struct.pack(">I", len(data))
        + kind
        + data
        + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)
    )


@pytest.fixture
def png_bytes():
    """A valid 1x1 RGB PNG."""
    header = struct.pack(">IIBBBBB", 1, 1, 8, 2, 0, 0, 0)
    pixels = zlib.compress(b"\x00\xff\x00\x00")
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", pixels)
        + _png_chunk(b"IEND", b"")
    )


@pytest.fixture
def jpeg_bytes():
    """SOI + JFIF APP0 + EOI: enough for libmagic to report image/jpeg."""
    return (
        b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
        b"\xff\xd9"
    )
