"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Trip``: the status/seat pair is exposed as a tagged
  variant (``Open(seats)``, ``Full``, ``Cancelled``) and only the transition
  methods ``reserve``, ``release`` and ``cancel`` mutate it.
- **State Pattern** on ``Booking``: PENDING -> CONFIRMED -> CANCELLED.
- ``check_seat_invariant`` is the consistency rule shared by the lifecycle
  service and the background auditor.

The entities are the in-memory mirror of the conditional UPDATE statements in
``carpool.services``; when an atomic statement affects no row the service
re-reads the row, rebuilds the entity and lets the transition raise the
precise error.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from .enums import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_TRANSITIONS,
    TRIP_TRANSITIONS,
    BookingStatus,
    TripStatus,
)
from .errors import (
    AlreadyCancelled,
    InsufficientSeats,
    InvalidSeatCount,
    InvariantViolation,
    TripNotOpen,
)


class InvalidStateTransition(InvariantViolation):
    """Raised when a status change violates the state machine."""

    code = "invalid_state_transition"


# ── Trip state variants ───────────────────────────────────────────────


@dataclass(frozen=True)
class Open:
    seats: int


@dataclass(frozen=True)
class Full:
    pass


@dataclass(frozen=True)
class Cancelled:
    pass


TripState = Union[Open, Full, Cancelled]


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Trip:
    id: Optional[int] = None
    driver_id: int = 0
    vehicle_id: int = 0
    offered_seats: int = 0
    available_seats: int = 0
    price: float = 0.0
    status: TripStatus = TripStatus.OPEN
    departure_date: Optional[datetime] = None

    @classmethod
    def from_model(cls, model) -> "Trip":
        return cls(
            id=model.id,
            driver_id=model.driver_id,
            vehicle_id=model.vehicle_id,
            offered_seats=model.offered_seats,
            available_seats=model.available_seats,
            price=model.price,
            status=TripStatus(model.status),
            departure_date=model.departure_date,
        )

    @property
    def state(self) -> TripState:
        if self.status == TripStatus.CANCELLED:
            return Cancelled()
        if self.status == TripStatus.FULL:
            return Full()
        return Open(self.available_seats)

    def reserve(self, seats: int) -> None:
        """Take *seats* seats; OPEN -> FULL when none remain."""
        if seats < 1:
            raise InvalidSeatCount(seats)
        state = self.state
        if isinstance(state, Cancelled):
            raise TripNotOpen(self.id, self.status.value)
        if isinstance(state, Full):
            raise InsufficientSeats(self.id, seats, 0)
        if seats > state.seats:
            raise InsufficientSeats(self.id, seats, state.seats)

        self.available_seats = state.seats - seats
        if self.available_seats == 0:
            self.transition_to(TripStatus.FULL)

    def release(self, seats: int) -> None:
        """Give *seats* seats back; no-op on a cancelled trip."""
        if seats < 1:
            raise InvalidSeatCount(seats)
        if isinstance(self.state, Cancelled):
            return
        self.available_seats = min(
            self.available_seats + seats, self.offered_seats
        )
        if self.available_seats > 0 and self.status == TripStatus.FULL:
            self.transition_to(TripStatus.OPEN)

    def cancel(self) -> None:
        """Idempotent: cancelling a cancelled trip changes nothing."""
        if self.status != TripStatus.CANCELLED:
            self.transition_to(TripStatus.CANCELLED)

    def transition_to(self, new_status: TripStatus) -> None:
        if new_status not in TRIP_TRANSITIONS.get(self.status, set()):
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}",
                trip_id=self.id,
                current=self.status.value,
                requested=new_status.value,
            )
        self.status = new_status


@dataclass
class Booking:
    id: Optional[int] = None
    user_id: int = 0
    trip_id: int = 0
    seat_count: int = 1
    total_price: float = 0.0
    status: BookingStatus = BookingStatus.PENDING
    canceller_id: Optional[int] = None
    cancelled_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def transition_to(self, new_status: BookingStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = BOOKING_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}",
                booking_id=self.id,
                current=self.status.value,
                requested=new_status.value,
            )
        self.status = new_status

    def cancel(self, actor_id: int, at: datetime) -> None:
        if self.status == BookingStatus.CANCELLED:
            raise AlreadyCancelled(self.id)
        self.transition_to(BookingStatus.CANCELLED)
        self.canceller_id = actor_id
        self.cancelled_at = at


def check_seat_invariant(trip: Trip, active_seat_count: int) -> None:
    """
    Raise ``InvariantViolation`` when *trip* disagrees with its bookings.

    For a trip that is not cancelled:
      available_seats == offered_seats - active_seat_count
      available_seats == 0  <=>  status == FULL
    """
    if trip.status == TripStatus.CANCELLED:
        return

    expected = trip.offered_seats - active_seat_count
    if trip.available_seats != expected or trip.available_seats < 0:
        raise InvariantViolation(
            f"Trip {trip.id} seat count does not match its bookings",
            trip_id=trip.id,
            available_seats=trip.available_seats,
            expected_available_seats=expected,
            booked_seats=active_seat_count,
        )
    if (trip.available_seats == 0) != (trip.status == TripStatus.FULL):
        raise InvariantViolation(
            f"Trip {trip.id} status does not match its seat count",
            trip_id=trip.id,
            available_seats=trip.available_seats,
            status=trip.status.value,
        )
