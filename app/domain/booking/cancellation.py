"""Cancellation policy: refund and penalty for a client cancellation"""

from dataclasses import dataclass
from datetime import datetime

from ...models import Business, Reservation
from .pricing import round_money
from .time_utils import hours_between


@dataclass(frozen=True)
class CancellationOutcome:
    refund_amount: float
    penalty_amount: float
    hours_until_start: float

    @property
    def penalty_applied(self) -> bool:
        return self.penalty_amount > 0


def calculate_penalty(business: Business, deposit: float) -> float:
    if business.penalty_type == "percentage":
        return min(deposit * (business.penalty_amount or 0) / 100, deposit)
    if business.penalty_type == "fixed":
        return min(business.penalty_amount or 0, deposit)
    return 0


def evaluate_cancellation(business: Business, reservation: Reservation, now: datetime) -> CancellationOutcome:
    """Work out what a client gets back when cancelling at `now`.

    When the business does not allow cancellations the reservation can still
    be cancelled, but nothing is refunded. Inside the notice window a paid
    deposit is refunded minus the penalty; outside it the deposit is refunded
    in full.
    """
    hours_left = hours_between(now, reservation.start_at)
    deposit = reservation.deposit_amount or 0

    if not business.allow_cancellation:
        return CancellationOutcome(0, 0, hours_left)

    if hours_left >= business.cancellation_hours:
        return CancellationOutcome(round_money(deposit), 0, hours_left)

    if not reservation.deposit_paid:
        return CancellationOutcome(0, 0, hours_left)

    penalty = round_money(calculate_penalty(business, deposit))
    return CancellationOutcome(round_money(deposit - penalty), penalty, hours_left)
