"""
Error taxonomy.

Every domain failure is a ``CarpoolError`` carrying a ``kind`` (used by the
API layer to pick a status code and by the unit of work to decide whether a
retry is safe), a stable ``code`` and a ``context`` dict of structured
fields so callers can render an actionable message.

Only ``TransientStoreError`` is eligible for automatic retry.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    FUNDS = "funds"
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    TRANSIENT_STORE = "transient_store"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INVARIANT_VIOLATION = "invariant_violation"


class CarpoolError(Exception):
    kind: ErrorKind = ErrorKind.INVARIANT_VIOLATION
    code: str = "carpool_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {
            "detail": self.message,
            "code": self.code,
            "kind": self.kind.value,
            "context": self.context,
        }


# ── Kinds ─────────────────────────────────────────────────────────────


class NotFoundError(CarpoolError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(CarpoolError):
    kind = ErrorKind.CONFLICT


class CapacityExceededError(CarpoolError):
    kind = ErrorKind.CAPACITY_EXCEEDED


class FundsError(CarpoolError):
    kind = ErrorKind.FUNDS


class AuthorizationError(CarpoolError):
    kind = ErrorKind.AUTHORIZATION


class DomainValidationError(CarpoolError):
    kind = ErrorKind.VALIDATION


class TransientStoreError(CarpoolError):
    kind = ErrorKind.TRANSIENT_STORE


# ── Not found ─────────────────────────────────────────────────────────


class TripNotFound(NotFoundError):
    code = "trip_not_found"

    def __init__(self, trip_id: int):
        super().__init__(f"Trip {trip_id} not found", trip_id=trip_id)


class VehicleNotFound(NotFoundError):
    code = "vehicle_not_found"

    def __init__(self, vehicle_id: int):
        super().__init__(f"Vehicle {vehicle_id} not found", vehicle_id=vehicle_id)


class BookingNotFound(NotFoundError):
    code = "booking_not_found"

    def __init__(self, booking_id: int):
        super().__init__(f"Booking {booking_id} not found", booking_id=booking_id)


class UserNotFound(NotFoundError):
    code = "user_not_found"

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found", user_id=user_id)


# ── Conflicts ─────────────────────────────────────────────────────────


class TripNotOpen(ConflictError):
    code = "trip_not_open"

    def __init__(self, trip_id: int, status: str):
        super().__init__(
            f"Trip {trip_id} is not open for booking (status: {status})",
            trip_id=trip_id,
            status=status,
        )


class DuplicateBooking(ConflictError):
    code = "duplicate_booking"

    def __init__(self, trip_id: int, user_id: int):
        super().__init__(
            f"User {user_id} already has an active booking on trip {trip_id}",
            trip_id=trip_id,
            user_id=user_id,
        )


class AlreadyCancelled(ConflictError):
    code = "already_cancelled"

    def __init__(self, booking_id: int):
        super().__init__(
            f"Booking {booking_id} is already cancelled", booking_id=booking_id
        )


class DuplicateTripSameVehicleDate(ConflictError):
    code = "duplicate_trip_same_vehicle_date"

    def __init__(self, vehicle_id: int, departure_day: str, trip_id: int):
        super().__init__(
            "A trip with the same vehicle and driver already exists on this date",
            vehicle_id=vehicle_id,
            departure_day=departure_day,
            existing_trip_id=trip_id,
        )


class DuplicateLicensePlate(ConflictError):
    code = "duplicate_license_plate"

    def __init__(self, license_plate: str):
        super().__init__(
            "Vehicle with this license plate already exists",
            license_plate=license_plate,
        )


class DuplicateEmail(ConflictError):
    code = "duplicate_email"

    def __init__(self, email: str):
        super().__init__("A user with this email already exists", email=email)


class VehicleInUse(ConflictError):
    code = "vehicle_in_use"

    def __init__(self, vehicle_id: int, reason: str):
        super().__init__(reason, vehicle_id=vehicle_id)


# ── Capacity ──────────────────────────────────────────────────────────


class InsufficientSeats(CapacityExceededError):
    code = "insufficient_seats"

    def __init__(self, trip_id: int, requested: int, available: int):
        super().__init__(
            f"Trip {trip_id} has {available} seat(s) left, {requested} requested",
            trip_id=trip_id,
            requested=requested,
            available=available,
        )


class SeatsExceedCapacity(CapacityExceededError):
    code = "seats_exceed_capacity"

    def __init__(self, vehicle_id: int, requested: int, max_passenger_seats: int):
        super().__init__(
            "Available seats cannot exceed the vehicle's seat count minus "
            "one for the driver",
            vehicle_id=vehicle_id,
            requested=requested,
            max_passenger_seats=max_passenger_seats,
        )


# ── Funds ─────────────────────────────────────────────────────────────


class InsufficientFunds(FundsError):
    code = "insufficient_funds"

    def __init__(self, user_id: int, required: float, available: float):
        super().__init__(
            f"Not enough credits: {required:.2f} required, {available:.2f} available",
            user_id=user_id,
            required=required,
            available=available,
        )


# ── Authorization ─────────────────────────────────────────────────────


class Forbidden(AuthorizationError):
    code = "forbidden"

    def __init__(self, actor_id: int, action: str, **context: Any):
        super().__init__(
            f"User {actor_id} is not allowed to {action}",
            actor_id=actor_id,
            action=action,
            **context,
        )


class NotOwner(AuthorizationError):
    code = "not_owner"

    def __init__(self, user_id: int, vehicle_id: int):
        super().__init__(
            f"User {user_id} does not own vehicle {vehicle_id}",
            user_id=user_id,
            vehicle_id=vehicle_id,
        )


class CannotBookOwnTrip(AuthorizationError):
    code = "cannot_book_own_trip"

    def __init__(self, trip_id: int, user_id: int):
        super().__init__(
            "A driver cannot book a seat on their own trip",
            trip_id=trip_id,
            user_id=user_id,
        )


# ── Semantic validation ───────────────────────────────────────────────


class DepartureInPast(DomainValidationError):
    code = "departure_in_past"

    def __init__(self, departure_date: str):
        super().__init__(
            "departure_date must be in the future", departure_date=departure_date
        )


class ArrivalBeforeDeparture(DomainValidationError):
    code = "arrival_before_departure"

    def __init__(self, departure_date: str, arrival_date: str):
        super().__init__(
            "departure_date must be strictly before arrival_date",
            departure_date=departure_date,
            arrival_date=arrival_date,
        )


class InvalidSeatCount(DomainValidationError):
    code = "invalid_seat_count"

    def __init__(self, seat_count: int):
        super().__init__("Seat count must be at least 1", seat_count=seat_count)


class InvalidPrice(DomainValidationError):
    code = "invalid_price"

    def __init__(self, price: float):
        super().__init__("Price must be a non-negative number", price=price)


# ── Store / internal ──────────────────────────────────────────────────


class StoreUnavailable(TransientStoreError):
    code = "store_unavailable"

    def __init__(self, reason: str):
        super().__init__("The data store is temporarily unavailable", reason=reason)


class ServiceUnavailable(CarpoolError):
    kind = ErrorKind.SERVICE_UNAVAILABLE
    code = "service_unavailable"

    def __init__(self, operation: str, attempts: int):
        super().__init__(
            "Service temporarily unavailable, please try again later",
            operation=operation,
            attempts=attempts,
        )


class InvariantViolation(CarpoolError):
    kind = ErrorKind.INVARIANT_VIOLATION
    code = "invariant_violation"
