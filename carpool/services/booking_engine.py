"""
Booking Engine
==============

Orchestrates the three multi-entity operations.  Each method is meant to
run inside one ``UnitOfWork.run`` call, i.e. one database transaction, so
either every step lands or none does.

create_booking
--------------
1. Load and validate the trip (open, not own trip, no active booking).
2. Debit ``seat_count x price`` from the passenger.
3. Reserve the seats; if the seat race is lost, credit the debit back
   before the error propagates.
4. Insert the booking as CONFIRMED with its price frozen.

cancel_booking
--------------
Compare-and-set the booking to CANCELLED, release its seats, refund the
passenger according to the ``RefundPolicy`` (late-cancellation penalty goes
to the driver).

cancel_trip
-----------
Mark the trip CANCELLED first (this takes the trip row lock, so no new
booking can reserve a seat behind our back), then cancel and fully refund
every active booking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.clock import utcnow
from carpool.domain.entities import Booking
from carpool.domain.enums import BookingStatus, TripStatus, UserRole
from carpool.domain.errors import (
    AlreadyCancelled,
    BookingNotFound,
    CannotBookOwnTrip,
    CarpoolError,
    DuplicateBooking,
    Forbidden,
    InvalidSeatCount,
    TripNotFound,
    TripNotOpen,
    UserNotFound,
)
from carpool.domain.refunds import RefundPolicy, round_money
from carpool.infrastructure.models import BookingModel, TripModel, UserModel
from carpool.infrastructure.repositories import (
    BookingRepository,
    TripRepository,
    UserRepository,
)
from carpool.services.ledger import Ledger
from carpool.services.trip_lifecycle import TripLifecycle

logger = logging.getLogger(__name__)


@dataclass
class TripCancellation:
    trip: TripModel
    cancelled_bookings: list[BookingModel] = field(default_factory=list)


def _entity(booking: BookingModel) -> Booking:
    return Booking(
        id=booking.id,
        user_id=booking.user_id,
        trip_id=booking.trip_id,
        seat_count=booking.seat_count,
        total_price=booking.total_price,
        status=BookingStatus(booking.status),
        canceller_id=booking.canceller_id,
        cancelled_at=booking.cancelled_at,
    )


def is_admin(user: UserModel | None) -> bool:
    return user is not None and UserRole(user.role) == UserRole.ADMIN


class BookingEngine:
    def __init__(
        self,
        session: AsyncSession,
        refund_policy: RefundPolicy | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.users = UserRepository(session)
        self.trips = TripRepository(session)
        self.bookings = BookingRepository(session)
        self.ledger = Ledger(session)
        self.lifecycle = TripLifecycle(session)
        self.refund_policy = refund_policy or RefundPolicy.from_settings(settings)
        self.clock = clock

    # ── create ────────────────────────────────────────────────────────

    async def create_booking(
        self, passenger_id: int, trip_id: int, seat_count: int
    ) -> BookingModel:
        trip = await self.trips.lock_for_update(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        if TripStatus(trip.status) != TripStatus.OPEN:
            raise TripNotOpen(trip_id, TripStatus(trip.status).value)
        if seat_count < 1:
            raise InvalidSeatCount(seat_count)
        if passenger_id == trip.driver_id:
            raise CannotBookOwnTrip(trip_id, passenger_id)
        if await self.users.get_by_id(passenger_id) is None:
            raise UserNotFound(passenger_id)
        if await self.bookings.find_active(passenger_id, trip_id):
            raise DuplicateBooking(trip_id, passenger_id)

        total_price = round_money(seat_count * trip.price)
        if total_price > 0:
            await self.ledger.debit(passenger_id, total_price)

        try:
            await self.lifecycle.reserve_seats(trip_id, seat_count)
        except CarpoolError:
            if total_price > 0:
                await self.ledger.credit(passenger_id, total_price)
            raise

        booking = BookingModel(
            user_id=passenger_id,
            trip_id=trip_id,
            seat_count=seat_count,
            total_price=total_price,
            status=BookingStatus.CONFIRMED,
        )
        try:
            await self.bookings.create(booking)
        except IntegrityError as error:
            # partial unique index: a concurrent request won the same slot
            raise DuplicateBooking(trip_id, passenger_id) from error

        logger.info(
            "Booking %d created: user %d, trip %d, %d seat(s), %.2f credits",
            booking.id,
            passenger_id,
            trip_id,
            seat_count,
            total_price,
        )
        return await self.bookings.get_with_trip(booking.id)

    # ── cancel one booking ────────────────────────────────────────────

    async def cancel_booking(self, actor_id: int, booking_id: int) -> BookingModel:
        booking = await self.bookings.get_with_trip(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)

        trip = booking.trip
        actor = await self.users.get_by_id(actor_id)
        is_passenger = booking.user_id == actor_id
        if not (is_passenger or trip.driver_id == actor_id or is_admin(actor)):
            raise Forbidden(actor_id, "cancel this booking", booking_id=booking_id)
        await self.trips.lock_for_update(booking.trip_id)

        now = self.clock()
        entity = _entity(booking)
        previous_status = entity.status
        entity.cancel(actor_id, now)

        quote = self.refund_policy.quote(
            booking.total_price,
            cancelled_by_passenger=is_passenger,
            booking_status=previous_status,
            departure_date=trip.departure_date,
            now=now,
        )
        if not await self.bookings.mark_cancelled(
            booking_id,
            canceller_id=actor_id,
            refunded_amount=quote.refund,
            cancelled_at=now,
        ):
            raise AlreadyCancelled(booking_id)

        await self.lifecycle.release_seats(booking.trip_id, booking.seat_count)
        if quote.refund > 0:
            await self.ledger.credit(booking.user_id, quote.refund)
        if quote.penalty > 0 and quote.penalty_to_driver:
            await self.ledger.credit(trip.driver_id, quote.penalty)

        logger.info(
            "Booking %d cancelled by user %d: refund %.2f, penalty %.2f",
            booking_id,
            actor_id,
            quote.refund,
            quote.penalty,
        )
        return await self.bookings.get_with_trip(booking_id)

    # ── cancel a whole trip ───────────────────────────────────────────

    async def cancel_trip(self, actor_id: int, trip_id: int) -> TripCancellation:
        trip = await self.trips.lock_for_update(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)

        actor = await self.users.get_by_id(actor_id)
        if trip.driver_id != actor_id and not is_admin(actor):
            raise Forbidden(actor_id, "cancel this trip", trip_id=trip_id)

        if TripStatus(trip.status) == TripStatus.CANCELLED:
            return TripCancellation(trip=trip)

        trip = await self.lifecycle.cancel_trip(trip_id)

        now = self.clock()
        cancelled: list[BookingModel] = []
        for booking in await self.bookings.list_active_for_trip(trip_id):
            _entity(booking).cancel(actor_id, now)
            refund = round_money(booking.total_price)
            if not await self.bookings.mark_cancelled(
                booking.id,
                canceller_id=actor_id,
                refunded_amount=refund,
                cancelled_at=now,
            ):
                # the passenger's own cancellation committed first and
                # already refunded it
                continue
            if refund > 0:
                await self.ledger.credit(booking.user_id, refund)
            cancelled.append(booking)

        logger.info(
            "Trip %d cancelled by user %d; %d booking(s) refunded",
            trip_id,
            actor_id,
            len(cancelled),
        )
        refreshed = [await self.bookings.get_with_trip(b.id) for b in cancelled]
        return TripCancellation(trip=trip, cancelled_bookings=refreshed)
