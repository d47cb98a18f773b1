"""The sample-data script goes through the same services as the API."""

import pytest

from carpool.services.queries import BookingQueries
from carpool.workers.auditor import audit_trips
from seed import BOOKINGS, TRIPS, seed


@pytest.mark.asyncio
async def test_seed_populates_consistent_data(session_factory):
    async with session_factory() as session:
        assert await seed(session) is True
        await session.commit()

    async with session_factory() as session:
        trips = (await BookingQueries(session).search_trips()).trips
        report = await audit_trips(session)

    assert len(trips) == len(TRIPS)
    assert report.ok
    assert report.trips_checked == len(TRIPS)
    assert sum(t.offered_seats - t.available_seats for t in trips) == sum(
        seats for _, _, seats in BOOKINGS
    )


@pytest.mark.asyncio
async def test_seed_is_skipped_on_a_populated_database(session_factory):
    async with session_factory() as session:
        await seed(session)
        await session.commit()
    async with session_factory() as session:
        assert await seed(session) is False
