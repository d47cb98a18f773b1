"""
Trip endpoints
==============

POST  /api/v1/trips                 -- publish a trip
GET   /api/v1/trips                 -- search open trips (?from=&to=&date=&flexible=)
GET   /api/v1/trips/mine            -- trips driven by the caller
GET   /api/v1/trips/{id}            -- trip with driver and vehicle
PATCH /api/v1/trips/{id}            -- edit cities, dates or price
PATCH /api/v1/trips/{id}/cancel     -- cancel the trip and refund every booking
GET   /api/v1/trips/{id}/bookings   -- bookings on a trip (driver, admin)
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_actor_id, get_db, get_uow
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import (
    BookingResponse,
    TripCancellationResponse,
    TripCreateRequest,
    TripDetailResponse,
    TripResponse,
    TripSearchResponse,
    TripUpdateRequest,
)
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.services.booking_engine import BookingEngine
from carpool.services.queries import BookingQueries
from carpool.services.trips import TripService

router = APIRouter(prefix="/trips", tags=["trips"])


@router.post(
    "",
    status_code=201,
    response_model=TripResponse,
    summary="Publish a trip",
)
@limiter.limit(RATE_LIMIT)
async def create_trip(
    request: Request,
    body: TripCreateRequest,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: TripService(session).create_trip(
            actor_id,
            body.vehicle_id,
            body.departure_city,
            body.arrival_city,
            body.departure_date,
            body.arrival_date,
            body.available_seats,
            body.price,
        ),
        name="create_trip",
    )


@router.get(
    "",
    response_model=TripSearchResponse,
    summary="Search open trips",
)
@limiter.limit(RATE_LIMIT)
async def search_trips(
    request: Request,
    departure_city: Optional[str] = Query(None, alias="from"),
    arrival_city: Optional[str] = Query(None, alias="to"),
    departure_day: Optional[date] = Query(None, alias="date"),
    flexible: bool = False,
    db: AsyncSession = Depends(get_db),
):
    result = await BookingQueries(db).search_trips(
        departure_city=departure_city,
        arrival_city=arrival_city,
        departure_day=departure_day,
        flexible=flexible,
    )
    return TripSearchResponse(
        trips=[TripDetailResponse.model_validate(t) for t in result.trips],
        alternative=result.alternative,
        message=None if result.trips else "No trips found matching your criteria.",
    )


@router.get(
    "/mine",
    response_model=list[TripResponse],
    summary="Trips driven by the caller",
)
@limiter.limit(RATE_LIMIT)
async def list_my_trips(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await BookingQueries(db).list_trips_for_driver(actor_id)


@router.get(
    "/{trip_id}",
    response_model=TripDetailResponse,
    summary="Get a trip",
)
@limiter.limit(RATE_LIMIT)
async def get_trip(
    request: Request,
    trip_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await BookingQueries(db).get_trip(trip_id)


@router.patch(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Edit a trip",
)
@limiter.limit(RATE_LIMIT)
async def update_trip(
    request: Request,
    trip_id: int,
    body: TripUpdateRequest,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: TripService(session).update_trip(
            actor_id, trip_id, body.model_dump(exclude_unset=True)
        ),
        name="update_trip",
    )


@router.patch(
    "/{trip_id}/cancel",
    response_model=TripCancellationResponse,
    summary="Cancel a trip",
    description=(
        "Cancels the trip and, in the same transaction, cancels every active "
        "booking on it with a full refund."
    ),
)
@limiter.limit(RATE_LIMIT)
async def cancel_trip(
    request: Request,
    trip_id: int,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    result = await uow.run(
        lambda session: BookingEngine(session).cancel_trip(actor_id, trip_id),
        name="cancel_trip",
    )
    return TripCancellationResponse.model_validate(result)


@router.get(
    "/{trip_id}/bookings",
    response_model=list[BookingResponse],
    summary="Bookings on a trip",
)
@limiter.limit(RATE_LIMIT)
async def list_trip_bookings(
    request: Request,
    trip_id: int,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await BookingQueries(db).list_bookings_for_trip(actor_id, trip_id)
