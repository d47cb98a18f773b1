"""
Refund Policy  (Strategy Pattern)
=================================

Decides how many of a booking's credits go back to the passenger when it
is cancelled, and how many are withheld as a late-cancellation penalty.

Rules
-----
* Driver / admin cancellation         -> full refund, no penalty.
* PENDING booking                     -> full refund, no penalty.
* Passenger self-cancels >= cutoff h  -> full refund.
* Passenger self-cancels < cutoff h   -> ``total_price x late_refund_rate``;
  the rest is the penalty (credited to the driver when
  ``penalty_to_driver`` is set).

Complexity: O(1) per quote.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta

from .clock import as_utc, utcnow
from .enums import BookingStatus


def round_money(amount: float) -> float:
    return round(amount, 2)


@dataclass(frozen=True)
class RefundQuote:
    refund: float
    penalty: float
    penalty_to_driver: bool = True


# ── Strategy hierarchy ────────────────────────────────────────────────


class RefundStrategy(ABC):
    @abstractmethod
    def quote(self, total_price: float) -> RefundQuote: ...


class FullRefund(RefundStrategy):
    def quote(self, total_price: float) -> RefundQuote:
        return RefundQuote(refund=round_money(total_price), penalty=0.0)


class LateCancellationRefund(RefundStrategy):
    """Refunds a fixed share; the remainder is withheld as a penalty."""

    def __init__(self, refund_rate: float, penalty_to_driver: bool = True):
        if not 0.0 <= refund_rate <= 1.0:
            raise ValueError(f"refund_rate must be within [0, 1], got {refund_rate}")
        self.refund_rate = refund_rate
        self.penalty_to_driver = penalty_to_driver

    def quote(self, total_price: float) -> RefundQuote:
        refund = round_money(total_price * self.refund_rate)
        return RefundQuote(
            refund=refund,
            penalty=round_money(total_price - refund),
            penalty_to_driver=self.penalty_to_driver,
        )


# ── Policy facade ─────────────────────────────────────────────────────


class RefundPolicy:
    """High-level API used by the booking engine."""

    def __init__(
        self,
        full_refund_cutoff_hours: float = 24.0,
        late_refund_rate: float = 0.8,
        penalty_to_driver: bool = True,
    ):
        self.full_refund_cutoff = timedelta(hours=full_refund_cutoff_hours)
        self.late_refund_rate = late_refund_rate
        self.penalty_to_driver = penalty_to_driver

    @classmethod
    def from_settings(cls, settings) -> "RefundPolicy":
        return cls(
            full_refund_cutoff_hours=settings.full_refund_cutoff_hours,
            late_refund_rate=settings.late_refund_rate,
            penalty_to_driver=settings.penalty_to_driver,
        )

    def strategy_for(
        self,
        *,
        cancelled_by_passenger: bool,
        booking_status: BookingStatus,
        departure_date: datetime,
        now: datetime | None = None,
    ) -> RefundStrategy:
        if not cancelled_by_passenger or booking_status == BookingStatus.PENDING:
            return FullRefund()

        now = now or utcnow()
        if as_utc(departure_date) - as_utc(now) >= self.full_refund_cutoff:
            return FullRefund()
        return LateCancellationRefund(self.late_refund_rate, self.penalty_to_driver)

    def quote(
        self,
        total_price: float,
        *,
        cancelled_by_passenger: bool,
        booking_status: BookingStatus,
        departure_date: datetime,
        now: datetime | None = None,
    ) -> RefundQuote:
        strategy = self.strategy_for(
            cancelled_by_passenger=cancelled_by_passenger,
            booking_status=booking_status,
            departure_date=departure_date,
            now=now,
        )
        return strategy.quote(total_price)
