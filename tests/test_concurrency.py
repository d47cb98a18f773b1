"""
Concurrency safety tests.

Demonstrates:
1. The conditional seat UPDATE lets exactly one of several racing bookings
   take the last seat(s); losers change nothing.
2. Concurrent cancels of one booking refund once.
3. Concurrent debits on one user never overdraw.
4. The unit of work retries transient store failures and nothing else.
5. Distributed lock prevents simultaneous acquire.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import exc as sa_exc

from carpool.domain.enums import BookingStatus, TripStatus
from carpool.domain.errors import (
    AlreadyCancelled,
    InsufficientFunds,
    InsufficientSeats,
    ServiceUnavailable,
    StoreUnavailable,
    TripNotFound,
    TripNotOpen,
)
from carpool.infrastructure.locks import DistributedLock, LockNotAcquired
from carpool.infrastructure.unit_of_work import UnitOfWork, is_transient
from carpool.services.booking_engine import BookingEngine
from carpool.services.ledger import Ledger
from carpool.workers.auditor import audit_trips
from tests.conftest import (
    fetch_bookings,
    fetch_credits,
    fetch_trip,
    in_days,
    make_trip,
    make_user,
)


def _book(passenger_id, trip_id, seats=1):
    return lambda s: BookingEngine(s).create_booking(passenger_id, trip_id, seats)


def _debit_after(expected: int):
    """Patch target for ``Ledger.debit`` that holds every caller until
    *expected* callers have passed their pre-checks."""
    original = Ledger.debit
    arrived = 0
    all_checked = asyncio.Event()

    async def debit(self, user_id, amount):
        nonlocal arrived
        arrived += 1
        if arrived >= expected:
            all_checked.set()
        await all_checked.wait()
        return await original(self, user_id, amount)

    return debit


# ── Seat race ─────────────────────────────────────────────────────────


class TestSeatRace:
    @pytest.mark.asyncio
    async def test_last_seat_goes_to_exactly_one_passenger(self, uow, world):
        trip = await make_trip(
            uow, world.driver.id, world.vehicle.id, seats=1, departure=in_days(5)
        )
        alice = await make_user(uow, "Alice Passenger")
        bob = await make_user(uow, "Bob Passenger")

        with patch.object(Ledger, "debit", _debit_after(2)):
            results = await asyncio.gather(
                uow.run(_book(alice.id, trip.id)),
                uow.run(_book(bob.id, trip.id)),
                return_exceptions=True,
            )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], InsufficientSeats)

        final = await fetch_trip(uow, trip.id)
        assert final.available_seats == 0
        assert final.status == TripStatus.FULL
        credits = sorted(
            [await fetch_credits(uow, alice.id), await fetch_credits(uow, bob.id)]
        )
        assert credits == [10, 20]

    @pytest.mark.asyncio
    async def test_n_passengers_k_seats(self, uow, world, session_factory):
        seats = world.trip.available_seats
        passengers = [await make_user(uow, f"Passenger {i}") for i in range(5)]

        results = await asyncio.gather(
            *(uow.run(_book(p.id, world.trip.id)) for p in passengers),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == seats
        assert len(failures) == len(passengers) - seats
        assert all(isinstance(f, (InsufficientSeats, TripNotOpen)) for f in failures)

        final = await fetch_trip(uow, world.trip.id)
        assert final.available_seats == 0
        assert final.status == TripStatus.FULL
        active = [
            b
            for b in await fetch_bookings(uow, world.trip.id)
            if b.status != BookingStatus.CANCELLED
        ]
        assert len(active) == len(successes)

        async with session_factory() as session:
            report = await audit_trips(session)
        assert report.ok

    @pytest.mark.asyncio
    async def test_cancel_trip_racing_a_booking_leaves_no_charge(self, uow, world):
        passenger = await make_user(uow, "Pat Passenger")

        await asyncio.gather(
            uow.run(
                lambda s: BookingEngine(s).cancel_trip(world.driver.id, world.trip.id)
            ),
            uow.run(_book(passenger.id, world.trip.id)),
            return_exceptions=True,
        )

        assert (await fetch_trip(uow, world.trip.id)).status == TripStatus.CANCELLED
        for booking in await fetch_bookings(uow, world.trip.id):
            assert booking.status == BookingStatus.CANCELLED
        assert await fetch_credits(uow, passenger.id) == 20


class TestCancelRace:
    @pytest.mark.asyncio
    async def test_double_cancel_refunds_once(self, uow, world):
        passenger = await make_user(uow, "Pat Passenger")
        booking = await uow.run(_book(passenger.id, world.trip.id, seats=2))

        results = await asyncio.gather(
            uow.run(lambda s: BookingEngine(s).cancel_booking(passenger.id, booking.id)),
            uow.run(
                lambda s: BookingEngine(s).cancel_booking(world.driver.id, booking.id)
            ),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyCancelled)
        assert await fetch_credits(uow, passenger.id) == 20
        assert (await fetch_trip(uow, world.trip.id)).available_seats == 3


class TestLedgerRace:
    @pytest.mark.asyncio
    async def test_concurrent_debits_never_overdraw(self, uow, world):
        other_trip = await make_trip(
            uow, world.driver.id, world.vehicle.id, departure=in_days(6)
        )
        passenger = await make_user(uow, "Pat Passenger", credits=10)

        with patch.object(Ledger, "debit", _debit_after(2)):
            results = await asyncio.gather(
                uow.run(_book(passenger.id, world.trip.id)),
                uow.run(_book(passenger.id, other_trip.id)),
                return_exceptions=True,
            )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientFunds)
        assert await fetch_credits(uow, passenger.id) == 0


# ── Unit of work ──────────────────────────────────────────────────────


def _operational_error(message="database is locked"):
    return sa_exc.OperationalError("UPDATE trips", {}, Exception(message))


class _DriverError(Exception):
    """Generic DBAPI error, as the asyncpg adapter raises for PostgreSQL errors."""


def _postgres_error(sqlstate, message, *, chained=False):
    orig = _DriverError(message)
    if chained:
        native = Exception(message)
        native.sqlstate = sqlstate
        orig.__cause__ = native
    else:
        orig.sqlstate = sqlstate
    return sa_exc.DBAPIError("UPDATE trips", {}, orig)


def _fake_session_factory(session):
    session.__aenter__.return_value = session
    session.__aexit__.return_value = False
    return MagicMock(return_value=session)


class TestUnitOfWork:
    def test_transient_classification(self):
        assert is_transient(_operational_error())
        assert is_transient(asyncio.TimeoutError())
        assert is_transient(ConnectionError())
        assert is_transient(StoreUnavailable("timeout"))
        assert not is_transient(InsufficientSeats(1, 2, 1))
        assert not is_transient(ValueError("boom"))

    def test_deadlock_and_serialization_failures_are_transient(self):
        assert is_transient(_postgres_error("40P01", "deadlock detected"))
        assert is_transient(
            _postgres_error("40001", "could not serialize access", chained=True)
        )
        assert not is_transient(_postgres_error("23505", "duplicate key value"))

    @pytest.mark.asyncio
    async def test_deadlock_is_retried(self, session_factory):
        operation = AsyncMock(
            side_effect=[_postgres_error("40P01", "deadlock detected"), "done"]
        )
        uow = UnitOfWork(session_factory, attempts=3, backoff_seconds=0)

        assert await uow.run(operation, name="cancel_booking") == "done"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, session_factory):
        operation = AsyncMock(side_effect=[_operational_error(), "done"])
        uow = UnitOfWork(session_factory, attempts=3, backoff_seconds=0)

        assert await uow.run(operation, name="flaky") == "done"
        assert operation.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_surface_service_unavailable(
        self, session_factory
    ):
        operation = AsyncMock(side_effect=_operational_error())
        uow = UnitOfWork(session_factory, attempts=3, backoff_seconds=0)

        with pytest.raises(ServiceUnavailable) as excinfo:
            await uow.run(operation, name="always_down")

        assert operation.await_count == 3
        assert excinfo.value.context == {"operation": "always_down", "attempts": 3}

    @pytest.mark.asyncio
    async def test_domain_errors_are_not_retried(self, session_factory):
        operation = AsyncMock(side_effect=TripNotFound(7))
        uow = UnitOfWork(session_factory, attempts=3, backoff_seconds=0)

        with pytest.raises(TripNotFound):
            await uow.run(operation)
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_transient_commit_failure_is_not_retried(self):
        session = AsyncMock()
        session.commit.side_effect = _operational_error("connection reset")
        operation = AsyncMock(return_value="applied?")
        uow = UnitOfWork(_fake_session_factory(session), attempts=3, backoff_seconds=0)

        with pytest.raises(StoreUnavailable):
            await uow.run(operation, name="ambiguous")
        assert operation.await_count == 1

    @pytest.mark.asyncio
    async def test_failed_operation_is_rolled_back(self):
        session = AsyncMock()
        uow = UnitOfWork(_fake_session_factory(session), attempts=1)

        with pytest.raises(TripNotFound):
            await uow.run(AsyncMock(side_effect=TripNotFound(1)))
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()


# ── Distributed lock ──────────────────────────────────────────────────


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "seat_auditor", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_awaited_once_with(
            "carpool:lock:seat_auditor", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "seat_auditor", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_only_our_token(self):
        mock_redis = AsyncMock()
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "seat_auditor")
        assert await lock.release() is False
        args = mock_redis.eval.await_args.args
        assert args[1:] == (1, "carpool:lock:seat_auditor", lock.token)

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        lock = DistributedLock(mock_redis, "seat_auditor", ttl_seconds=10)
        with pytest.raises(LockNotAcquired, match="Could not acquire lock"):
            async with lock:
                pass
        mock_redis.eval.assert_not_called()
