from datetime import datetime, timezone
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.auth import create_access_token
from app.core.database import Base, get_db
from app.main import app
from app.models import AvailabilityPattern, TutorProfile, User, UserRole
from app.core.timezone_utils import parse_time

# 2024-01-15 is a Monday; tests pin "now" well before it
FIXED_NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed so several sessions can share one database
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    async def _make_user(role=UserRole.STUDENT, timezone_name="UTC", name=None):
        suffix = uuid.uuid4().hex[:8]
        user = User(
            auth_provider_id=f"auth-{suffix}",
            role=role,
            name=name or f"{role.value}-{suffix}",
            email=f"{suffix}@example.com",
            timezone=timezone_name,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_tutor(db, make_user):
    async def _make_tutor(timezone_name="America/New_York", hourly_rate_cents=6000, patterns=()):
        tutor = await make_user(role=UserRole.TUTOR, timezone_name=timezone_name)
        db.add(TutorProfile(user_id=tutor.id, hourly_rate_cents=hourly_rate_cents))
        for day_of_week, start, end in patterns:
            db.add(AvailabilityPattern(
                tutor_id=tutor.id,
                day_of_week=day_of_week,
                start_time=parse_time(start),
                end_time=parse_time(end),
                is_active=True,
            ))
        await db.commit()
        return tutor

    return _make_tutor


@pytest_asyncio.fixture
async def student(make_user):
    return await make_user(role=UserRole.STUDENT)


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers
