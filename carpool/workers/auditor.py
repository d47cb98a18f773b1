"""
Background Consistency Auditor
==============================

Runs every ``AUDIT_INTERVAL_SECONDS`` (default 300 s).

For every trip that is not cancelled it checks

    available_seats == offered_seats - sum(seat_count of active bookings)
    available_seats == 0  <=>  status == 'full'

A mismatch can only come from a bug or from manual data edits, so it is
logged at ERROR and reported, never corrected automatically.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance sweeps at a time
  across multiple API processes.
* The sweep is read-only; it cannot interfere with booking transactions.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from carpool.config import settings
from carpool.domain.entities import Trip, check_seat_invariant
from carpool.domain.errors import InvariantViolation
from carpool.infrastructure.database import async_session_factory
from carpool.infrastructure.locks import DistributedLock
from carpool.infrastructure.redis_client import get_redis
from carpool.infrastructure.repositories import BookingRepository, TripRepository

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


@dataclass
class AuditReport:
    trips_checked: int = 0
    violations: list[dict] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


# ── Public API ────────────────────────────────────────────────────────


async def start_audit_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info("Auditor started (interval=%ds)", settings.audit_interval_seconds)


async def stop_audit_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Auditor stopped")


async def audit_trips(session: AsyncSession) -> AuditReport:
    """Check the seat invariant of every trip that is not cancelled."""
    trips = await TripRepository(session).list_not_cancelled()
    booked = await BookingRepository(session).sum_active_seats_by_trip()

    report = AuditReport(trips_checked=len(trips))
    for trip in trips:
        try:
            check_seat_invariant(Trip.from_model(trip), booked.get(trip.id, 0))
        except InvariantViolation as violation:
            logger.error("Invariant violation: %s %s", violation, violation.context)
            report.violations.append(violation.to_dict())
    return report


async def run_audit_cycle() -> AuditReport | None:
    """Execute one sweep.  Returns None when another instance holds the lock."""
    redis = await get_redis()
    lock = DistributedLock(redis, "seat_auditor", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another instance – skipping audit")
        return None

    try:
        async with async_session_factory() as session:
            report = await audit_trips(session)
        if report.ok:
            logger.info("Audit: %d trip(s) consistent", report.trips_checked)
        return report
    finally:
        await lock.release()


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a sweep then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_audit_cycle()
        except Exception:
            logger.exception("Unhandled error in audit cycle")
        # Wait for the interval or until stop is signalled
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.audit_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle
