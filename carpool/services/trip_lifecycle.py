"""
Trip Lifecycle
==============

Owns ``trips.status`` and ``trips.available_seats``.

    OPEN --reserve (seats hit 0)--> FULL
    FULL --release (seats > 0)----> OPEN
    OPEN | FULL --cancel----------> CANCELLED   (terminal)

Concurrency safety
------------------
``reserve_seats`` is the single point of seat-race arbitration: it is one
``UPDATE ... WHERE status = 'open' AND available_seats >= n``.  Whoever's
statement matches the row wins; a loser affects zero rows, re-reads the
trip and gets the precise error from the ``Trip`` entity.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.entities import Trip
from carpool.domain.enums import TripStatus
from carpool.domain.errors import (
    InsufficientSeats,
    InvalidSeatCount,
    InvariantViolation,
    TripNotFound,
)
from carpool.infrastructure.models import TripModel
from carpool.infrastructure.repositories import TripRepository

logger = logging.getLogger(__name__)

# A zero-row update followed by a re-read that shows enough seats means a
# release landed between the two statements; retry the update this often.
RESERVE_ATTEMPTS = 3


class TripLifecycle:
    def __init__(self, session: AsyncSession):
        self.trips = TripRepository(session)

    async def reserve_seats(self, trip_id: int, seats: int) -> TripModel:
        if seats < 1:
            raise InvalidSeatCount(seats)

        for _ in range(RESERVE_ATTEMPTS):
            if await self.trips.reserve_seats(trip_id, seats):
                trip = await self._load(trip_id)
                if trip.available_seats < 0:
                    raise InvariantViolation(
                        f"Trip {trip_id} seat count went negative",
                        trip_id=trip_id,
                        available_seats=trip.available_seats,
                    )
                logger.info(
                    "Reserved %d seat(s) on trip %d (%d left, %s)",
                    seats,
                    trip_id,
                    trip.available_seats,
                    TripStatus(trip.status).value,
                )
                return trip

            trip = await self._load(trip_id)
            Trip.from_model(trip).reserve(seats)

        raise InsufficientSeats(trip_id, seats, trip.available_seats)

    async def release_seats(self, trip_id: int, seats: int) -> TripModel:
        if seats < 1:
            raise InvalidSeatCount(seats)

        released = await self.trips.release_seats(trip_id, seats)
        trip = await self._load(trip_id)
        if released:
            logger.info(
                "Released %d seat(s) on trip %d (%d left)",
                seats,
                trip_id,
                trip.available_seats,
            )
        return trip

    async def cancel_trip(self, trip_id: int) -> TripModel:
        if not await self.trips.mark_cancelled(trip_id):
            raise TripNotFound(trip_id)
        logger.info("Trip %d cancelled", trip_id)
        return await self._load(trip_id)

    async def _load(self, trip_id: int) -> TripModel:
        trip = await self.trips.get_fresh(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        return trip
