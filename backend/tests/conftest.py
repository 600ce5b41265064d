import base64
import os

os.environ.setdefault("INVITE_TOKEN_SECRET", "test-secret")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import Base, build_engine
from app.core.rate_limit import RateLimiter
from app.core.tokens import TokenCodec
from app import models  # noqa: F401
from app.models.user import User, Role
from app.services.invite_service import InviteService
from app.services.notification_service import NotificationService

SIGNATURE = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nsignature-pixels").decode()


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so every session gets its own connection and real locking
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def codec():
    return TokenCodec("test-secret")


@pytest.fixture
def transport():
    return AsyncMock()


@pytest.fixture
def invite_service(db, codec, transport):
    return InviteService(db, codec, notifications=NotificationService(db, transport), default_expiry_days=7)


@pytest.fixture
def rate_limiter():
    return RateLimiter(max_hits=10, window_seconds=60)


@pytest_asyncio.fixture
async def staff_user(db):
    user = User(email="staff@example.com", hashed_password="x", role=Role.STAFF)
    db.add(user)
    await db.commit()
    return user


@pytest.fixture
def host_payload():
    return {
        "hostFirstName": "Erika",
        "hostLastName": "Mustermann",
        "hostStreet": "Hauptstraße 1",
        "hostPostalCode": "12345",
        "hostCity": "Berlin",
        "hostPhone": "+49 30 123456",
        "hostEmail": "erika@example.com",
        "eventDate": "2026-12-05",
        "eventType": "Geburtstag",
        "eventStartTime": "18:00",
        "startMeal": "Buffet",
        "numberOfGuests": 40,
        "paymentMethod": "Rechnung",
        "selectedExtras": ["DJ"],
        "privacyAccepted": True,
        "termsAccepted": True,
        "signature": SIGNATURE,
    }


@pytest.fixture
def legacy_payload():
    return {
        "guestName": "Max Mustermann",
        "guestEmail": "max@example.com",
        "guestPhone": "0301234567",
        "eventDate": "2026-11-20",
        "eventType": "Firmenfeier",
        "eventStartTime": "19:00",
        "eventEndTime": "23:00",
        "numberOfGuests": 25,
        "paymentMethod": "Barzahlung",
        "extras": ["Sektempfang"],
        "signature": SIGNATURE,
    }
