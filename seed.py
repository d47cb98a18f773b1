"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    alembic upgrade head
    python seed.py

Creates:
  - 1 admin, 3 drivers and 5 passengers
  - 1 vehicle per driver
  - 4 trips over the next few days
  - a handful of confirmed bookings (credits debited as usual)
"""

import asyncio
from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.clock import utcnow
from carpool.domain.enums import UserRole
from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.models import UserModel
from carpool.services.booking_engine import BookingEngine
from carpool.services.trips import TripService
from carpool.services.users import UserService
from carpool.services.vehicles import VehicleService

ADMIN = {"name": "Ada Admin", "email": "admin@example.com"}

DRIVERS = [
    {"name": "Louise Martin", "email": "louise@example.com"},
    {"name": "Hugo Bernard", "email": "hugo@example.com"},
    {"name": "Chloe Petit", "email": "chloe@example.com"},
]

PASSENGERS = [
    {"name": "Lucas Durand", "email": "lucas@example.com"},
    {"name": "Emma Leroy", "email": "emma@example.com"},
    {"name": "Nathan Moreau", "email": "nathan@example.com"},
    {"name": "Jade Simon", "email": "jade@example.com"},
    {"name": "Leo Laurent", "email": "leo@example.com"},
]

VEHICLES = [
    {"brand": "Renault", "model": "Clio", "color": "red", "license_plate": "AB-123-CD", "seat_count": 5},
    {"brand": "Peugeot", "model": "5008", "color": "grey", "license_plate": "EF-456-GH", "seat_count": 7},
    {"brand": "Tesla", "model": "Model 3", "color": "white", "license_plate": "IJ-789-KL", "seat_count": 5},
]

# (driver index, from, to, days from now, hours on the road, seats, price)
TRIPS = [
    (0, "Paris", "Lyon", 1, 5, 3, 6.0),
    (1, "Lyon", "Marseille", 2, 4, 5, 5.0),
    (2, "Paris", "Lille", 3, 3, 4, 4.0),
    (0, "Lyon", "Paris", 4, 5, 3, 6.0),
]

# (passenger index, trip index, seats)
BOOKINGS = [
    (0, 0, 1),
    (1, 0, 1),
    (2, 1, 1),
    (3, 2, 2),
]


async def seed(session: AsyncSession) -> bool:
    """Insert the sample data.  Returns False when the database is not empty."""
    count = await session.scalar(select(func.count()).select_from(UserModel))
    if count:
        return False

    users = UserService(session)
    await users.register_user(ADMIN["name"], ADMIN["email"], role=UserRole.ADMIN)
    drivers = [await users.register_user(d["name"], d["email"]) for d in DRIVERS]
    passengers = [await users.register_user(p["name"], p["email"]) for p in PASSENGERS]
    print(f"  Created {1 + len(drivers) + len(passengers)} users")

    vehicle_service = VehicleService(session)
    vehicles = [
        await vehicle_service.register_vehicle(driver.id, **spec)
        for driver, spec in zip(drivers, VEHICLES)
    ]
    print(f"  Created {len(vehicles)} vehicles")

    trip_service = TripService(session)
    start = utcnow().replace(hour=8, minute=0, second=0, microsecond=0)
    trips = []
    for driver_idx, origin, destination, days, hours, seats, price in TRIPS:
        departure = start + timedelta(days=days)
        trips.append(
            await trip_service.create_trip(
                drivers[driver_idx].id,
                vehicles[driver_idx].id,
                origin,
                destination,
                departure,
                departure + timedelta(hours=hours),
                seats,
                price,
            )
        )
    print(f"  Created {len(trips)} trips")

    booking_engine = BookingEngine(session)
    for passenger_idx, trip_idx, seats in BOOKINGS:
        await booking_engine.create_booking(
            passengers[passenger_idx].id, trips[trip_idx].id, seats
        )
    print(f"  Created {len(BOOKINGS)} bookings")
    return True


async def main():
    print("Seeding database...")
    async with async_session_factory() as session:
        if await seed(session):
            await session.commit()
            print("\nSeed complete!")
        else:
            print("Database already seeded. Skipping.")
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
