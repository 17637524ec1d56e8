"""
Shared test fixtures.

Uses a per-test SQLite file database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The policy store is backed by a mocked Redis
client and the Maps client is replaced by an in-memory fake.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carpool.config import Settings
from carpool.domain.entities import Actor, Coordinates, RouteEstimate
from carpool.domain.enums import Role
from carpool.domain.errors import RouteResolutionError
from carpool.infrastructure.database import Base
from carpool.infrastructure.locks import KeyedLock
from carpool.infrastructure.models import UserModel
from carpool.infrastructure.policy_store import RedisPolicyStore
from carpool.services.ride_engine import RideEngine

NOW = datetime(2030, 6, 1, 8, 0, tzinfo=timezone.utc)

DRIVER_ID = 1
RIDER_ID = 2
OTHER_RIDER_ID = 3
OTHER_DRIVER_ID = 4
UNAPPROVED_DRIVER_ID = 5


class Clock:
    """Controllable ``now`` for time-window tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMaps:
    """Resolves a fixed set of places; every route is 20 km / 25 mins."""

    PLACES = {
        "Accra": Coordinates(5.6037, -0.1870),
        "Kumasi": Coordinates(6.6885, -1.6244),
        "Tema": Coordinates(5.6698, -0.0166),
    }

    def __init__(self, distance_meters: int = 20_000):
        self.distance_meters = distance_meters
        self.calls = 0

    async def resolve_location(self, label: str) -> Coordinates:
        self.calls += 1
        try:
            return self.PLACES[label]
        except KeyError:
            raise RouteResolutionError(f'Failed to find location for "{label}".')

    async def estimate_route(self, origin: Coordinates, destination: Coordinates) -> RouteEstimate:
        self.calls += 1
        return RouteEstimate(
            distance_meters=self.distance_meters,
            duration_seconds=1500,
            distance_label=f"{self.distance_meters / 1000:g} km",
            duration_label="25 mins",
        )

    async def reverse_geocode(self, coord: Coordinates) -> str:
        self.calls += 1
        return f"Near {coord.lat:.2f},{coord.lng:.2f}"


# ── Actors ────────────────────────────────────────────────────────────

DRIVER = Actor(id=DRIVER_ID, role=Role.DRIVER, approved_to_drive=True)
OTHER_DRIVER = Actor(id=OTHER_DRIVER_ID, role=Role.DRIVER, approved_to_drive=True)
UNAPPROVED_DRIVER = Actor(id=UNAPPROVED_DRIVER_ID, role=Role.DRIVER)
RIDER = Actor(id=RIDER_ID, role=Role.RIDER)
OTHER_RIDER = Actor(id=OTHER_RIDER_ID, role=Role.RIDER)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, google_maps_api_key="test-key")


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables in a fresh SQLite file, seed users, then dispose."""
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        session.add_all(
            [
                UserModel(id=DRIVER_ID, name="Kwame Mensah", email="kwame@example.com",
                          phone="+233200000001", role=Role.DRIVER, approved_to_drive=True),
                UserModel(id=RIDER_ID, name="Ama Owusu", email="ama@example.com",
                          phone="+233200000002", role=Role.RIDER),
                UserModel(id=OTHER_RIDER_ID, name="Kofi Boateng", email="kofi@example.com",
                          phone="+233200000003", role=Role.RIDER),
                UserModel(id=OTHER_DRIVER_ID, name="Esi Asante", email="esi@example.com",
                          phone="+233200000004", role=Role.DRIVER, approved_to_drive=True),
                UserModel(id=UNAPPROVED_DRIVER_ID, name="Yaw Darko", email="yaw@example.com",
                          phone="+233200000005", role=Role.DRIVER),
            ]
        )
        await session.commit()

    yield factory
    await db_engine.dispose()


@pytest.fixture
def redis_mock() -> AsyncMock:
    mock = AsyncMock()
    mock.hgetall = AsyncMock(return_value={})
    return mock


@pytest.fixture
def policy_store(redis_mock, test_settings) -> RedisPolicyStore:
    return RedisPolicyStore(redis_mock, test_settings)


@pytest.fixture
def maps() -> FakeMaps:
    return FakeMaps()


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def engine(session_factory, policy_store, maps, clock, test_settings) -> RideEngine:
    return RideEngine(
        session_factory,
        policy_store,
        maps,
        cfg=test_settings,
        clock=clock,
        locks=KeyedLock(),
    )


@pytest_asyncio.fixture
async def client(engine) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the real app with the engine dependency overridden."""
    from carpool.api.app import create_app
    from carpool.api.dependencies import get_engine
    from carpool.api.middleware import limiter

    limiter.enabled = False
    app = create_app()
    app.dependency_overrides[get_engine] = lambda: engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    limiter.enabled = True
