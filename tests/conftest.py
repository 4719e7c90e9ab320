"""Pytest configuration and fixtures for service and API tests."""
import os

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["INITIAL_ADMIN_PASSWORD"] = "testpass123"
os.environ["INITIAL_ADMIN_USERNAME"] = "admin"
os.environ["BUSINESS_TIMEZONE"] = "UTC"

from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from goat.models import Athlete, AthleteGroup, Organization, TrainingSession, User
from goat.models.base import async_session_factory, engine, init_db
from web.api.main import app
from web.auth import hash_password


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh in-memory database per test (ASGI lifespan doesn't run with httpx)."""
    await init_db()
    yield
    await engine.dispose()


@pytest.fixture
async def session():
    """Session for calling core services directly. Tests flush; nothing is committed."""
    async with async_session_factory() as s:
        yield s


@pytest.fixture
async def organization(session):
    org = Organization(name="Test Club")
    session.add(org)
    await session.flush()
    return org


@pytest.fixture
async def other_organization(session):
    org = Organization(name="Other Club")
    session.add(org)
    await session.flush()
    return org


@pytest.fixture
def make_athlete(session, organization):
    async def _make(name="Athlete", organization_id=None):
        athlete = Athlete(organization_id=organization_id or organization.id, name=name)
        session.add(athlete)
        await session.flush()
        return athlete

    return _make


@pytest.fixture
def make_group(session, organization):
    async def _make(name="Group", max_capacity=None, enable_waitlist=True, organization_id=None):
        group = AthleteGroup(
            organization_id=organization_id or organization.id,
            name=name,
            max_capacity=max_capacity,
            enable_waitlist=enable_waitlist,
        )
        session.add(group)
        await session.flush()
        return group

    return _make


@pytest.fixture
def make_training_session(session, organization):
    async def _make(title="Morning practice", max_capacity=None, enable_waitlist=True):
        start = datetime(2026, 3, 2, 9, 0)
        training_session = TrainingSession(
            organization_id=organization.id,
            title=title,
            start_time=start,
            end_time=start + timedelta(hours=1),
            max_capacity=max_capacity,
            enable_waitlist=enable_waitlist,
        )
        session.add(training_session)
        await session.flush()
        return training_session

    return _make


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
async def auth_headers(client):
    """Login as admin and return Authorization headers for protected endpoints."""
    r = await client.post(
        "/api/auth/login",
        json={"username": "admin", "password": "testpass123"},
    )
    assert r.status_code == 200, f"Login failed: {r.text}"
    token = r.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def other_org_headers(client):
    """Admin of a second organization."""
    async with async_session_factory() as s:
        org = Organization(name="Rival Club")
        s.add(org)
        await s.flush()
        s.add(User(organization_id=org.id, username="rival", password_hash=hash_password("rivalpass"), role="admin"))
        await s.commit()
    r = await client.post("/api/auth/login", json={"username": "rival", "password": "rivalpass"})
    assert r.status_code == 200, f"Login failed: {r.text}"
    return {"Authorization": f"Bearer {r.json()['access_token']}"}
