"""Vehicle registration and maintenance."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.domain.enums import UserRole
from carpool.domain.errors import (
    DuplicateLicensePlate,
    InvalidSeatCount,
    NotOwner,
    UserNotFound,
    VehicleInUse,
    VehicleNotFound,
)
from carpool.infrastructure.models import VehicleModel
from carpool.infrastructure.repositories import (
    TripRepository,
    UserRepository,
    VehicleRepository,
)
from carpool.services.booking_engine import is_admin

logger = logging.getLogger(__name__)

MIN_VEHICLE_SEATS = 2  # driver + at least one passenger


class VehicleService:
    def __init__(self, session: AsyncSession):
        self.users = UserRepository(session)
        self.vehicles = VehicleRepository(session)
        self.trips = TripRepository(session)

    async def register_vehicle(
        self,
        owner_id: int,
        *,
        brand: str,
        model: str,
        license_plate: str,
        seat_count: int,
        color: str | None = None,
    ) -> VehicleModel:
        owner = await self.users.get_by_id(owner_id)
        if owner is None:
            raise UserNotFound(owner_id)
        if seat_count < MIN_VEHICLE_SEATS:
            raise InvalidSeatCount(seat_count)
        if await self.vehicles.get_by_license_plate(license_plate):
            raise DuplicateLicensePlate(license_plate)

        vehicle = await self.vehicles.create(
            VehicleModel(
                owner_id=owner_id,
                brand=brand,
                model=model,
                color=color,
                license_plate=license_plate,
                seat_count=seat_count,
            )
        )
        if UserRole(owner.role) == UserRole.PASSENGER:
            owner.role = UserRole.DRIVER
        logger.info("Vehicle %d registered for user %d", vehicle.id, owner_id)
        return vehicle

    async def get_vehicle(self, vehicle_id: int) -> VehicleModel:
        vehicle = await self.vehicles.get_by_id(vehicle_id)
        if vehicle is None:
            raise VehicleNotFound(vehicle_id)
        return vehicle

    async def list_vehicles(self, owner_id: int) -> list[VehicleModel]:
        return await self.vehicles.list_for_owner(owner_id)

    async def update_vehicle(
        self, actor_id: int, vehicle_id: int, changes: dict
    ) -> VehicleModel:
        vehicle = await self._owned(actor_id, vehicle_id)

        seat_count = changes.get("seat_count")
        if seat_count is not None and seat_count != vehicle.seat_count:
            if seat_count < MIN_VEHICLE_SEATS:
                raise InvalidSeatCount(seat_count)
            if await self.trips.count_active_for_vehicle(vehicle_id):
                raise VehicleInUse(
                    vehicle_id,
                    "Seat count cannot change while the vehicle has active trips",
                )

        plate = changes.get("license_plate")
        if plate is not None and plate != vehicle.license_plate:
            if await self.vehicles.get_by_license_plate(plate):
                raise DuplicateLicensePlate(plate)

        for key in ("brand", "model", "color", "license_plate", "seat_count"):
            if changes.get(key) is not None:
                setattr(vehicle, key, changes[key])
        return vehicle

    async def delete_vehicle(self, actor_id: int, vehicle_id: int) -> None:
        vehicle = await self._owned(actor_id, vehicle_id)
        if await self.trips.count_for_vehicle(vehicle_id):
            raise VehicleInUse(vehicle_id, "Vehicle is referenced by trips")
        await self.vehicles.delete(vehicle)
        logger.info("Vehicle %d deleted by user %d", vehicle_id, actor_id)

    async def _owned(self, actor_id: int, vehicle_id: int) -> VehicleModel:
        vehicle = await self.get_vehicle(vehicle_id)
        if vehicle.owner_id != actor_id and not is_admin(
            await self.users.get_by_id(actor_id)
        ):
            raise NotOwner(actor_id, vehicle_id)
        return vehicle
