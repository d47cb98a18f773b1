"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from carpool.domain.enums import BookingStatus, TripStatus, UserRole


# ── Requests ──────────────────────────────────────────────────────────


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")


class PreferencesRequest(BaseModel):
    smoker: Optional[bool] = None
    pets: Optional[bool] = None
    music: Optional[bool] = None
    chatter: Optional[bool] = None


class VehicleCreateRequest(BaseModel):
    brand: str = Field(..., min_length=1, max_length=60)
    model: str = Field(..., min_length=1, max_length=60)
    color: Optional[str] = Field(None, max_length=30)
    license_plate: str = Field(..., min_length=1, max_length=20)
    seat_count: int = Field(..., ge=2, le=11, description="Including the driver.")


class VehicleUpdateRequest(BaseModel):
    brand: Optional[str] = Field(None, min_length=1, max_length=60)
    model: Optional[str] = Field(None, min_length=1, max_length=60)
    color: Optional[str] = Field(None, max_length=30)
    license_plate: Optional[str] = Field(None, min_length=1, max_length=20)
    seat_count: Optional[int] = Field(None, ge=2, le=11)


class TripCreateRequest(BaseModel):
    vehicle_id: int
    departure_city: str = Field(..., min_length=1, max_length=120)
    arrival_city: str = Field(..., min_length=1, max_length=120)
    departure_date: datetime
    arrival_date: datetime
    available_seats: int = Field(..., ge=1, le=10)
    price: float = Field(..., ge=0)


class TripUpdateRequest(BaseModel):
    departure_city: Optional[str] = Field(None, min_length=1, max_length=120)
    arrival_city: Optional[str] = Field(None, min_length=1, max_length=120)
    departure_date: Optional[datetime] = None
    arrival_date: Optional[datetime] = None
    price: Optional[float] = Field(None, ge=0)


class BookingCreateRequest(BaseModel):
    trip_id: int
    seat_count: int = Field(..., ge=1, le=10)


# ── Responses ─────────────────────────────────────────────────────────


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    credits: float

    model_config = {"from_attributes": True}


class DriverSummary(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class PreferencesResponse(BaseModel):
    user_id: int
    smoker: bool
    pets: bool
    music: bool
    chatter: bool

    model_config = {"from_attributes": True}


class VehicleResponse(BaseModel):
    id: int
    owner_id: int
    brand: str
    model: str
    color: Optional[str] = None
    license_plate: str
    seat_count: int

    model_config = {"from_attributes": True}


class TripResponse(BaseModel):
    id: int
    driver_id: int
    vehicle_id: int
    departure_city: str
    arrival_city: str
    departure_date: datetime
    arrival_date: datetime
    offered_seats: int
    available_seats: int
    price: float
    status: TripStatus

    model_config = {"from_attributes": True}


class TripDetailResponse(TripResponse):
    driver: DriverSummary
    vehicle: VehicleResponse


class TripSearchResponse(BaseModel):
    trips: list[TripDetailResponse] = []
    alternative: bool = False
    message: Optional[str] = None


class BookingResponse(BaseModel):
    id: int
    user_id: int
    trip_id: int
    seat_count: int
    total_price: float
    status: BookingStatus
    canceller_id: Optional[int] = None
    refunded_amount: Optional[float] = None
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingWithTripResponse(BookingResponse):
    trip: TripResponse


class TripCancellationResponse(BaseModel):
    trip: TripResponse
    cancelled_bookings: list[BookingWithTripResponse] = []

    model_config = {"from_attributes": True}


class AuditResponse(BaseModel):
    trips_checked: int
    ok: bool
    violations: list[dict[str, Any]] = []

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: str
    kind: str
    context: dict[str, Any] = {}
