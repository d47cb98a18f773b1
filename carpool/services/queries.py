"""
Read-only query façade.

Nothing here mutates state.  Callers open a fresh session per request, so a
query issued after a booking transaction committed always sees it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.errors import BookingNotFound, Forbidden, TripNotFound
from carpool.infrastructure.models import BookingModel, TripModel
from carpool.infrastructure.repositories import (
    BookingRepository,
    TripRepository,
    UserRepository,
)
from carpool.services.booking_engine import is_admin

FLEXIBLE_WINDOW_DAYS = 2


@dataclass
class TripSearchResult:
    trips: list[TripModel] = field(default_factory=list)
    alternative: bool = False


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


class BookingQueries:
    def __init__(self, session: AsyncSession):
        self.users = UserRepository(session)
        self.trips = TripRepository(session)
        self.bookings = BookingRepository(session)

    async def list_bookings_for_passenger(self, user_id: int) -> list[BookingModel]:
        return await self.bookings.list_for_passenger(user_id)

    async def list_bookings_for_driver(self, driver_id: int) -> list[BookingModel]:
        return await self.bookings.list_for_driver(driver_id)

    async def list_trips_for_driver(self, driver_id: int) -> list[TripModel]:
        return await self.trips.list_for_driver(driver_id)

    async def get_booking(self, actor_id: int, booking_id: int) -> BookingModel:
        booking = await self.bookings.get_with_trip(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        if actor_id not in (booking.user_id, booking.trip.driver_id) and not is_admin(
            await self.users.get_by_id(actor_id)
        ):
            raise Forbidden(actor_id, "view this booking", booking_id=booking_id)
        return booking

    async def list_bookings_for_trip(
        self, actor_id: int, trip_id: int
    ) -> list[BookingModel]:
        trip = await self.trips.get_by_id(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        if trip.driver_id != actor_id and not is_admin(
            await self.users.get_by_id(actor_id)
        ):
            raise Forbidden(actor_id, "list bookings of this trip", trip_id=trip_id)
        return await self.bookings.list_for_trip(trip_id)

    async def get_trip(self, trip_id: int) -> TripModel:
        trip = await self.trips.get_with_relations(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        return trip

    async def search_trips(
        self,
        *,
        departure_city: str | None = None,
        arrival_city: str | None = None,
        departure_day: date | None = None,
        flexible: bool = False,
    ) -> TripSearchResult:
        """
        Open trips matching the cities and day.

        ``flexible`` widens the day to +/- ``FLEXIBLE_WINDOW_DAYS``.  An exact
        day search that finds nothing falls back to the flexible window and
        flags the result as ``alternative``.
        """
        if departure_day is None:
            trips = await self.trips.search_open(
                departure_city=departure_city, arrival_city=arrival_city
            )
            return TripSearchResult(trips=trips)

        start = _day_start(departure_day)
        exact = (start, start + timedelta(days=1))
        window = (
            start - timedelta(days=FLEXIBLE_WINDOW_DAYS),
            start + timedelta(days=FLEXIBLE_WINDOW_DAYS + 1),
        )

        date_from, date_to = window if flexible else exact
        trips = await self.trips.search_open(
            departure_city=departure_city,
            arrival_city=arrival_city,
            date_from=date_from,
            date_to=date_to,
        )
        if trips or flexible:
            return TripSearchResult(trips=trips)

        alternatives = await self.trips.search_open(
            departure_city=departure_city,
            arrival_city=arrival_city,
            date_from=window[0],
            date_to=window[1],
        )
        return TripSearchResult(trips=alternatives, alternative=bool(alternatives))
