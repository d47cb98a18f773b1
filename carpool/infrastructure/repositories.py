"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  The conditional UPDATE statements that
arbitrate seat and credit races live here; callers read ``rowcount`` to
learn whether they won.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import and_, case, func, literal, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .models import (
    BookingModel,
    TripModel,
    UserModel,
    UserPreferencesModel,
    VehicleModel,
)
from carpool.domain.enums import ACTIVE_BOOKING_STATUSES, BookingStatus, TripStatus

_TRIP_STATUS = TripModel.__table__.c.status.type


def _trip_status(value: TripStatus):
    return literal(value, _TRIP_STATUS)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_fresh(self, user_id: int) -> Optional[UserModel]:
        """Re-read the row, bypassing the identity map."""
        result = await self.session.execute(
            select(UserModel)
            .where(UserModel.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def debit_if_sufficient(self, user_id: int, amount: float) -> int:
        """UPDATE ... WHERE credits >= amount.  Returns rows affected."""
        result = await self.session.execute(
            update(UserModel)
            .where(and_(UserModel.id == user_id, UserModel.credits >= amount))
            .values(credits=UserModel.credits - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def add_credits(self, user_id: int, amount: float) -> int:
        result = await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(credits=UserModel.credits + amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def get_preferences(self, user_id: int) -> Optional[UserPreferencesModel]:
        result = await self.session.execute(
            select(UserPreferencesModel).where(
                UserPreferencesModel.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def add_preferences(
        self, preferences: UserPreferencesModel
    ) -> UserPreferencesModel:
        self.session.add(preferences)
        await self.session.flush()
        return preferences


class VehicleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, vehicle: VehicleModel) -> VehicleModel:
        self.session.add(vehicle)
        await self.session.flush()
        return vehicle

    async def get_by_id(self, vehicle_id: int) -> Optional[VehicleModel]:
        return await self.session.get(VehicleModel, vehicle_id)

    async def get_by_license_plate(self, plate: str) -> Optional[VehicleModel]:
        result = await self.session.execute(
            select(VehicleModel).where(VehicleModel.license_plate == plate)
        )
        return result.scalar_one_or_none()

    async def list_for_owner(self, owner_id: int) -> list[VehicleModel]:
        result = await self.session.execute(
            select(VehicleModel)
            .where(VehicleModel.owner_id == owner_id)
            .order_by(VehicleModel.id)
        )
        return list(result.scalars().all())

    async def delete(self, vehicle: VehicleModel) -> None:
        await self.session.delete(vehicle)
        await self.session.flush()


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, trip: TripModel) -> TripModel:
        self.session.add(trip)
        await self.session.flush()
        return trip

    async def get_by_id(self, trip_id: int) -> Optional[TripModel]:
        return await self.session.get(TripModel, trip_id)

    async def get_fresh(self, trip_id: int) -> Optional[TripModel]:
        """Re-read the row, bypassing the identity map."""
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.id == trip_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def lock_for_update(self, trip_id: int) -> Optional[TripModel]:
        """
        Fresh read that takes the trip row lock (a no-op on SQLite).

        Every write path locks the trip before bookings or users, so
        concurrent operations on one trip queue instead of deadlocking.
        """
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.id == trip_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_relations(self, trip_id: int) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .options(selectinload(TripModel.driver), selectinload(TripModel.vehicle))
            .where(TripModel.id == trip_id)
        )
        return result.scalar_one_or_none()

    async def reserve_seats(self, trip_id: int, seats: int) -> int:
        """
        Atomic conditional decrement.

        The CASE reads the pre-update seat count, so the row flips to FULL
        in the same statement that takes the last seat.
        """
        result = await self.session.execute(
            update(TripModel)
            .where(
                and_(
                    TripModel.id == trip_id,
                    TripModel.status == TripStatus.OPEN,
                    TripModel.available_seats >= seats,
                )
            )
            .values(
                available_seats=TripModel.available_seats - seats,
                status=case(
                    (
                        TripModel.available_seats - seats == 0,
                        _trip_status(TripStatus.FULL),
                    ),
                    else_=_trip_status(TripStatus.OPEN),
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def release_seats(self, trip_id: int, seats: int) -> int:
        """Atomic increment capped at the published seat count; FULL -> OPEN."""
        new_seats = case(
            (
                TripModel.available_seats + seats > TripModel.offered_seats,
                TripModel.offered_seats,
            ),
            else_=TripModel.available_seats + seats,
        )
        result = await self.session.execute(
            update(TripModel)
            .where(
                and_(
                    TripModel.id == trip_id,
                    TripModel.status.in_([TripStatus.OPEN, TripStatus.FULL]),
                )
            )
            .values(
                available_seats=new_seats,
                status=case(
                    (new_seats > 0, _trip_status(TripStatus.OPEN)),
                    else_=_trip_status(TripStatus.FULL),
                ),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def mark_cancelled(self, trip_id: int) -> int:
        result = await self.session.execute(
            update(TripModel)
            .where(TripModel.id == trip_id)
            .values(status=TripStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def find_same_day(
        self,
        driver_id: int,
        vehicle_id: int,
        day_start: datetime,
        day_end: datetime,
        exclude_trip_id: Optional[int] = None,
    ) -> Optional[TripModel]:
        query = select(TripModel).where(
            and_(
                TripModel.driver_id == driver_id,
                TripModel.vehicle_id == vehicle_id,
                TripModel.status != TripStatus.CANCELLED,
                TripModel.departure_date >= day_start,
                TripModel.departure_date < day_end,
            )
        )
        if exclude_trip_id is not None:
            query = query.where(TripModel.id != exclude_trip_id)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_for_driver(self, driver_id: int) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.driver_id == driver_id)
            .order_by(TripModel.departure_date.desc(), TripModel.id.desc())
        )
        return list(result.scalars().all())

    async def search_open(
        self,
        *,
        departure_city: str | None = None,
        arrival_city: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[TripModel]:
        query = (
            select(TripModel)
            .options(selectinload(TripModel.driver), selectinload(TripModel.vehicle))
            .where(TripModel.status == TripStatus.OPEN)
        )
        if departure_city:
            query = query.where(TripModel.departure_city == departure_city)
        if arrival_city:
            query = query.where(TripModel.arrival_city == arrival_city)
        if date_from is not None:
            query = query.where(TripModel.departure_date >= date_from)
        if date_to is not None:
            query = query.where(TripModel.departure_date < date_to)
        result = await self.session.execute(query.order_by(TripModel.departure_date))
        return list(result.scalars().all())

    async def list_not_cancelled(self) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel).where(TripModel.status != TripStatus.CANCELLED)
        )
        return list(result.scalars().all())

    async def count_active_for_vehicle(self, vehicle_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(TripModel)
            .where(
                and_(
                    TripModel.vehicle_id == vehicle_id,
                    TripModel.status != TripStatus.CANCELLED,
                )
            )
        )
        return result.scalar() or 0

    async def count_for_vehicle(self, vehicle_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(TripModel)
            .where(TripModel.vehicle_id == vehicle_id)
        )
        return result.scalar() or 0


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_with_trip(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .options(selectinload(BookingModel.trip))
            .where(BookingModel.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_active(self, user_id: int, trip_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                and_(
                    BookingModel.user_id == user_id,
                    BookingModel.trip_id == trip_id,
                    BookingModel.status.in_(ACTIVE_BOOKING_STATUSES),
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def mark_cancelled(
        self,
        booking_id: int,
        *,
        canceller_id: int,
        refunded_amount: float,
        cancelled_at: datetime,
    ) -> int:
        """Compare-and-set: only a not-yet-cancelled booking is updated."""
        result = await self.session.execute(
            update(BookingModel)
            .where(
                and_(
                    BookingModel.id == booking_id,
                    BookingModel.status != BookingStatus.CANCELLED,
                )
            )
            .values(
                status=BookingStatus.CANCELLED,
                canceller_id=canceller_id,
                refunded_amount=refunded_amount,
                cancelled_at=cancelled_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def list_active_for_trip(self, trip_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(
                and_(
                    BookingModel.trip_id == trip_id,
                    BookingModel.status.in_(ACTIVE_BOOKING_STATUSES),
                )
            )
            .order_by(BookingModel.id)
        )
        return list(result.scalars().all())

    async def list_for_trip(self, trip_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.trip_id == trip_id)
            .order_by(BookingModel.id)
        )
        return list(result.scalars().all())

    async def list_for_passenger(self, user_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .options(selectinload(BookingModel.trip))
            .where(BookingModel.user_id == user_id)
            .order_by(BookingModel.id.desc())
        )
        return list(result.scalars().all())

    async def list_for_driver(self, driver_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .join(TripModel, BookingModel.trip_id == TripModel.id)
            .options(selectinload(BookingModel.trip))
            .where(TripModel.driver_id == driver_id)
            .order_by(BookingModel.id.desc())
        )
        return list(result.scalars().all())

    async def sum_active_seats_by_trip(self) -> dict[int, int]:
        result = await self.session.execute(
            select(BookingModel.trip_id, func.sum(BookingModel.seat_count))
            .where(BookingModel.status.in_(ACTIVE_BOOKING_STATUSES))
            .group_by(BookingModel.trip_id)
        )
        return {trip_id: int(total or 0) for trip_id, total in result.all()}
