"""
Vehicle endpoints
=================

POST   /api/v1/vehicles        -- register a vehicle (makes the caller a driver)
GET    /api/v1/vehicles        -- the caller's vehicles
GET    /api/v1/vehicles/{id}
PATCH  /api/v1/vehicles/{id}   -- owner or admin
DELETE /api/v1/vehicles/{id}   -- owner or admin, only if no trip uses it
"""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_actor_id, get_db, get_uow
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import (
    VehicleCreateRequest,
    VehicleResponse,
    VehicleUpdateRequest,
)
from carpool.infrastructure.unit_of_work import UnitOfWork
from carpool.services.vehicles import VehicleService

router = APIRouter(prefix="/vehicles", tags=["vehicles"])


@router.post(
    "", status_code=201, response_model=VehicleResponse, summary="Register a vehicle"
)
@limiter.limit(RATE_LIMIT)
async def register_vehicle(
    request: Request,
    body: VehicleCreateRequest,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: VehicleService(session).register_vehicle(
            actor_id, **body.model_dump()
        ),
        name="register_vehicle",
    )


@router.get("", response_model=list[VehicleResponse], summary="List my vehicles")
@limiter.limit(RATE_LIMIT)
async def list_vehicles(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    return await VehicleService(db).list_vehicles(actor_id)


@router.get("/{vehicle_id}", response_model=VehicleResponse, summary="Get a vehicle")
@limiter.limit(RATE_LIMIT)
async def get_vehicle(
    request: Request,
    vehicle_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await VehicleService(db).get_vehicle(vehicle_id)


@router.patch(
    "/{vehicle_id}", response_model=VehicleResponse, summary="Update a vehicle"
)
@limiter.limit(RATE_LIMIT)
async def update_vehicle(
    request: Request,
    vehicle_id: int,
    body: VehicleUpdateRequest,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    return await uow.run(
        lambda session: VehicleService(session).update_vehicle(
            actor_id, vehicle_id, body.model_dump(exclude_unset=True)
        ),
        name="update_vehicle",
    )


@router.delete("/{vehicle_id}", status_code=204, summary="Delete a vehicle")
@limiter.limit(RATE_LIMIT)
async def delete_vehicle(
    request: Request,
    vehicle_id: int,
    actor_id: int = Depends(get_actor_id),
    uow: UnitOfWork = Depends(get_uow),
):
    await uow.run(
        lambda session: VehicleService(session).delete_vehicle(actor_id, vehicle_id),
        name="delete_vehicle",
    )
    return Response(status_code=204)
