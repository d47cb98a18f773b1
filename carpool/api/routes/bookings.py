"""
Booking endpoints
=================

POST  /api/v1/bookings              -- book seats on a trip (debits credits)
GET   /api/v1/bookings/mine         -- bookings made by the caller
GET   /api/v1/bookings/driver       -- bookings on the caller's trips
GET   /api/v1/bookings/{id}         -- one booking (passenger, driver, admin)
PATCH /api/v1/bookings/{id}/cancel  -- cancel, release seats, refund
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_actor_id, get_db, get_uow
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import BookingCreateRequest, BookingWithTripResponse
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.services.booking_engine import BookingEngine
from carpool.services.queries import BookingQueries

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingWithTripResponse,
    summary="Book seats on a trip",
)
@limiter.limit(RATE_LIMIT)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: BookingEngine(session).create_booking(
            actor_id, body.trip_id, body.seat_count
        ),
        name="create_booking",
    )


@router.get(
    "/mine",
    response_model=list[BookingWithTripResponse],
    summary="Bookings made by the caller",
)
@limiter.limit(RATE_LIMIT)
async def list_my_bookings(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await BookingQueries(db).list_bookings_for_passenger(actor_id)


@router.get(
    "/driver",
    response_model=list[BookingWithTripResponse],
    summary="Bookings on trips driven by the caller",
)
@limiter.limit(RATE_LIMIT)
async def list_driver_bookings(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await BookingQueries(db).list_bookings_for_driver(actor_id)


@router.get(
    "/{booking_id}",
    response_model=BookingWithTripResponse,
    summary="Get one booking",
)
@limiter.limit(RATE_LIMIT)
async def get_booking(
    request: Request,
    booking_id: int,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await BookingQueries(db).get_booking(actor_id, booking_id)


@router.patch(
    "/{booking_id}/cancel",
    response_model=BookingWithTripResponse,
    summary="Cancel a booking",
    description=(
        "Marks the booking cancelled, gives its seats back to the trip "
        "(re-opening a full trip) and refunds the passenger. A passenger "
        "cancelling late forfeits the configured penalty to the driver."
    ),
)
@limiter.limit(RATE_LIMIT)
async def cancel_booking(
    request: Request,
    booking_id: int,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: BookingEngine(session).cancel_booking(actor_id, booking_id),
        name="cancel_booking",
    )
