"""Trip publishing: create and edit trips (seats and status are not editable)."""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Callable

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.clock import as_utc, utcnow
from carpool.domain.enums import TripStatus
from carpool.domain.errors import (
    ArrivalBeforeDeparture,
    DepartureInPast,
    DuplicateTripSameVehicleDate,
    Forbidden,
    InvalidPrice,
    InvalidSeatCount,
    NotOwner,
    SeatsExceedCapacity,
    TripNotFound,
    TripNotOpen,
    UserNotFound,
    VehicleNotFound,
)
from carpool.domain.refunds import round_money
from carpool.infrastructure.models import TripModel
from carpool.infrastructure.repositories import (
    TripRepository,
    UserRepository,
    VehicleRepository,
)

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "departure_city",
    "arrival_city",
    "departure_date",
    "arrival_date",
    "price",
)


def validate_dates(
    departure_date: datetime, arrival_date: datetime, now: datetime
) -> tuple[datetime, datetime]:
    departure, arrival = as_utc(departure_date), as_utc(arrival_date)
    if departure <= as_utc(now):
        raise DepartureInPast(departure.isoformat())
    if departure >= arrival:
        raise ArrivalBeforeDeparture(departure.isoformat(), arrival.isoformat())
    return departure, arrival


def utc_day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    moment = as_utc(moment)
    start = datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)
    return start, start + timedelta(days=1)


class TripService:
    def __init__(self, session: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.users = UserRepository(session)
        self.vehicles = VehicleRepository(session)
        self.trips = TripRepository(session)
        self.clock = clock

    async def create_trip(
        self,
        driver_id: int,
        vehicle_id: int,
        departure_city: str,
        arrival_city: str,
        departure_date: datetime,
        arrival_date: datetime,
        available_seats: int,
        price: float,
    ) -> TripModel:
        if await self.users.get_by_id(driver_id) is None:
            raise UserNotFound(driver_id)

        vehicle = await self.vehicles.get_by_id(vehicle_id)
        if vehicle is None:
            raise VehicleNotFound(vehicle_id)
        if vehicle.owner_id != driver_id:
            raise NotOwner(driver_id, vehicle_id)

        departure, arrival = validate_dates(departure_date, arrival_date, self.clock())

        if available_seats < 1:
            raise InvalidSeatCount(available_seats)
        max_passenger_seats = vehicle.seat_count - 1
        if available_seats > max_passenger_seats:
            raise SeatsExceedCapacity(vehicle_id, available_seats, max_passenger_seats)
        if price < 0:
            raise InvalidPrice(price)

        await self._ensure_vehicle_free_that_day(driver_id, vehicle_id, departure)

        trip = await self.trips.create(
            TripModel(
                driver_id=driver_id,
                vehicle_id=vehicle_id,
                departure_city=departure_city,
                arrival_city=arrival_city,
                departure_date=departure,
                arrival_date=arrival,
                offered_seats=available_seats,
                available_seats=available_seats,
                price=round_money(price),
                status=TripStatus.OPEN,
            )
        )
        logger.info(
            "Trip %d published by driver %d: %s -> %s, %d seat(s) at %.2f",
            trip.id,
            driver_id,
            departure_city,
            arrival_city,
            available_seats,
            trip.price,
        )
        return await self.trips.get_fresh(trip.id)

    async def update_trip(self, actor_id: int, trip_id: int, changes: dict) -> TripModel:
        """Apply *changes* (a subset of ``EDITABLE_FIELDS``)."""
        trip = await self.trips.get_fresh(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        if trip.driver_id != actor_id:
            raise Forbidden(actor_id, "update this trip", trip_id=trip_id)
        if TripStatus(trip.status) == TripStatus.CANCELLED:
            raise TripNotOpen(trip_id, TripStatus.CANCELLED.value)

        changes = {
            k: v for k, v in changes.items() if k in EDITABLE_FIELDS and v is not None
        }
        if "departure_date" in changes or "arrival_date" in changes:
            departure, arrival = validate_dates(
                changes.get("departure_date", trip.departure_date),
                changes.get("arrival_date", trip.arrival_date),
                self.clock(),
            )
            changes["departure_date"], changes["arrival_date"] = departure, arrival
            await self._ensure_vehicle_free_that_day(
                trip.driver_id, trip.vehicle_id, departure, exclude_trip_id=trip_id
            )
        if "price" in changes:
            if changes["price"] < 0:
                raise InvalidPrice(changes["price"])
            # booked totals stay frozen; only new bookings see the new price
            changes["price"] = round_money(changes["price"])

        for key, value in changes.items():
            setattr(trip, key, value)
        await self.trips.session.flush()
        logger.info("Trip %d updated by driver %d: %s", trip_id, actor_id, sorted(changes))
        return await self.trips.get_fresh(trip_id)

    async def _ensure_vehicle_free_that_day(
        self,
        driver_id: int,
        vehicle_id: int,
        departure: datetime,
        exclude_trip_id: int | None = None,
    ) -> None:
        day_start, day_end = utc_day_bounds(departure)
        existing = await self.trips.find_same_day(
            driver_id, vehicle_id, day_start, day_end, exclude_trip_id=exclude_trip_id
        )
        if existing is not None:
            raise DuplicateTripSameVehicleDate(
                vehicle_id, day_start.date().isoformat(), existing.id
            )
