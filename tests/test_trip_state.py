"""Unit tests for trip and booking state machines (State Pattern)."""

from datetime import datetime, timezone

import pytest

from carpool.domain.entities import (
    Booking,
    Cancelled,
    Full,
    InvalidStateTransition,
    Open,
    Trip,
    check_seat_invariant,
)
from carpool.domain.enums import BookingStatus, TripStatus
from carpool.domain.errors import (
    AlreadyCancelled,
    InsufficientSeats,
    InvalidSeatCount,
    InvariantViolation,
    TripNotOpen,
)


def _trip(available=3, offered=3, status=TripStatus.OPEN):
    return Trip(id=1, offered_seats=offered, available_seats=available, status=status)


class TestTripStateMachine:
    def test_state_variants(self):
        assert _trip(available=2).state == Open(2)
        assert _trip(available=0, status=TripStatus.FULL).state == Full()
        assert _trip(status=TripStatus.CANCELLED).state == Cancelled()

    # ── reserve ───────────────────────────────────────────────────

    def test_reserve_decrements(self):
        trip = _trip()
        trip.reserve(2)
        assert trip.available_seats == 1
        assert trip.status == TripStatus.OPEN

    def test_reserve_last_seats_goes_full(self):
        trip = _trip()
        trip.reserve(3)
        assert trip.state == Full()
        assert trip.available_seats == 0

    def test_reserve_more_than_available(self):
        trip = _trip(available=1)
        with pytest.raises(InsufficientSeats) as excinfo:
            trip.reserve(2)
        assert excinfo.value.context["available"] == 1
        assert trip.available_seats == 1

    def test_reserve_on_full_trip(self):
        trip = _trip(available=0, status=TripStatus.FULL)
        with pytest.raises(InsufficientSeats) as excinfo:
            trip.reserve(1)
        assert excinfo.value.context["available"] == 0

    def test_reserve_on_cancelled_trip(self):
        with pytest.raises(TripNotOpen):
            _trip(status=TripStatus.CANCELLED).reserve(1)

    def test_reserve_zero_seats(self):
        with pytest.raises(InvalidSeatCount):
            _trip().reserve(0)

    # ── release ───────────────────────────────────────────────────

    def test_release_reopens_full_trip(self):
        trip = _trip(available=0, status=TripStatus.FULL)
        trip.release(1)
        assert trip.state == Open(1)

    def test_release_is_capped_at_offered_seats(self):
        trip = _trip(available=2, offered=3)
        trip.release(5)
        assert trip.available_seats == 3

    def test_release_on_cancelled_trip_is_no_op(self):
        trip = _trip(available=1, status=TripStatus.CANCELLED)
        trip.release(1)
        assert trip.available_seats == 1
        assert trip.state == Cancelled()

    def test_cancel_is_terminal(self):
        trip = _trip()
        trip.cancel()
        with pytest.raises(TripNotOpen):
            trip.reserve(1)

    def test_cancel_twice_is_a_no_op(self):
        trip = _trip()
        trip.cancel()
        trip.cancel()
        assert trip.state == Cancelled()

    def test_cancelled_trip_cannot_reopen(self):
        trip = _trip(status=TripStatus.CANCELLED)
        with pytest.raises(InvalidStateTransition):
            trip.transition_to(TripStatus.OPEN)


class TestBookingStateMachine:
    def test_confirmed_to_cancelled(self):
        booking = Booking(id=1, status=BookingStatus.CONFIRMED)
        at = datetime(2030, 1, 1, tzinfo=timezone.utc)
        booking.cancel(actor_id=7, at=at)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.canceller_id == 7
        assert booking.cancelled_at == at
        assert not booking.is_active

    def test_pending_to_confirmed(self):
        booking = Booking(status=BookingStatus.PENDING)
        booking.transition_to(BookingStatus.CONFIRMED)
        assert booking.is_active

    def test_cancelled_cannot_be_cancelled_again(self):
        booking = Booking(id=5, status=BookingStatus.CANCELLED)
        with pytest.raises(AlreadyCancelled):
            booking.cancel(actor_id=1, at=datetime.now(timezone.utc))

    def test_confirmed_cannot_go_back_to_pending(self):
        booking = Booking(status=BookingStatus.CONFIRMED)
        with pytest.raises(InvalidStateTransition):
            booking.transition_to(BookingStatus.PENDING)


class TestSeatInvariant:
    def test_consistent_trip_passes(self):
        check_seat_invariant(_trip(available=1, offered=3), active_seat_count=2)

    def test_full_trip_passes(self):
        check_seat_invariant(
            _trip(available=0, offered=3, status=TripStatus.FULL), active_seat_count=3
        )

    def test_seat_mismatch_is_violation(self):
        with pytest.raises(InvariantViolation) as excinfo:
            check_seat_invariant(_trip(available=3, offered=3), active_seat_count=1)
        assert excinfo.value.context["expected_available_seats"] == 2

    def test_zero_seats_but_open_is_violation(self):
        with pytest.raises(InvariantViolation):
            check_seat_invariant(_trip(available=0, offered=3), active_seat_count=3)

    def test_cancelled_trip_is_not_checked(self):
        check_seat_invariant(
            _trip(available=3, status=TripStatus.CANCELLED), active_seat_count=2
        )
