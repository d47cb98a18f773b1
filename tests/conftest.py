"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  A file rather than ``:memory:`` lets several
sessions, and therefore several concurrent transactions, share one database.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carpool.domain.clock import utcnow
from carpool.domain.enums import UserRole
from carpool.infrastructure.database import Base
from carpool.infrastructure.models import (
    BookingModel,
    TripModel,
    UserModel,
    VehicleModel,
)
from carpool.infrastructure.repositories import BookingRepository, TripRepository
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.services.ledger import Ledger
from carpool.services.trips import TripService
from carpool.services.users import UserService
from carpool.services.vehicles import VehicleService


# ── Test DB (SQLite file) ─────────────────────────────────────────────


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'carpool.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def uow(session_factory) -> UnitOfWork:
    return UnitOfWork(session_factory, attempts=3, backoff_seconds=0)


# ── Builders ──────────────────────────────────────────────────────────


def in_days(days: float) -> datetime:
    return utcnow() + timedelta(days=days)


async def make_user(
    uow: UnitOfWork,
    name: str,
    *,
    credits: float = 20.0,
    role: UserRole = UserRole.PASSENGER,
) -> UserModel:
    email = f"{name.lower().replace(' ', '.')}@example.com"
    return await uow.run(
        lambda s: UserService(s).register_user(name, email, role=role, credits=credits)
    )


async def make_vehicle(
    uow: UnitOfWork, owner_id: int, *, seat_count: int = 5, plate: str | None = None
) -> VehicleModel:
    return await uow.run(
        lambda s: VehicleService(s).register_vehicle(
            owner_id,
            brand="Renault",
            model="Clio",
            license_plate=plate or f"PLATE-{owner_id}",
            seat_count=seat_count,
        )
    )


async def make_trip(
    uow: UnitOfWork,
    driver_id: int,
    vehicle_id: int,
    *,
    seats: int = 3,
    price: float = 10.0,
    departure: datetime | None = None,
    departure_city: str = "Paris",
    arrival_city: str = "Lyon",
) -> TripModel:
    departure = departure or in_days(3)
    return await uow.run(
        lambda s: TripService(s).create_trip(
            driver_id,
            vehicle_id,
            departure_city,
            arrival_city,
            departure,
            departure + timedelta(hours=5),
            seats,
            price,
        )
    )


@dataclass
class World:
    driver: UserModel
    vehicle: VehicleModel
    trip: TripModel


@pytest_asyncio.fixture
async def world(uow) -> World:
    """A driver with a 5-seat vehicle and a 3-seat trip at 10 credits per seat."""
    driver = await make_user(uow, "Dana Driver")
    vehicle = await make_vehicle(uow, driver.id)
    trip = await make_trip(uow, driver.id, vehicle.id, seats=3, price=10.0)
    return World(driver=driver, vehicle=vehicle, trip=trip)


# ── Readers (each in its own transaction) ─────────────────────────────


async def fetch_trip(uow: UnitOfWork, trip_id: int) -> TripModel:
    return await uow.run(lambda s: TripRepository(s).get_fresh(trip_id))


async def fetch_credits(uow: UnitOfWork, user_id: int) -> float:
    return await uow.run(lambda s: Ledger(s).balance(user_id))


async def fetch_bookings(uow: UnitOfWork, trip_id: int) -> list[BookingModel]:
    return await uow.run(lambda s: BookingRepository(s).list_for_trip(trip_id))
