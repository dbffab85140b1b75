"""Reservation status machine"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from ...models import Reservation, ReservationStatusHistory
from ...shared.errors import ConflictError

logger = logging.getLogger(__name__)


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


# Statuses that occupy the staff calendar
ACTIVE_STATUSES = (
    ReservationStatus.PENDING.value,
    ReservationStatus.CONFIRMED.value,
    ReservationStatus.CHECKED_IN.value,
    ReservationStatus.IN_PROGRESS.value,
    ReservationStatus.COMPLETED.value,
)

# Statuses a client may still cancel or reschedule
CLIENT_MUTABLE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)

TERMINAL_STATUSES = (
    ReservationStatus.COMPLETED.value,
    ReservationStatus.CANCELLED.value,
    ReservationStatus.NO_SHOW.value,
)

_CANCELLABLE = {ReservationStatus.CANCELLED.value, ReservationStatus.NO_SHOW.value}

TRANSITIONS: dict[str, set[str]] = {
    ReservationStatus.PENDING.value: {ReservationStatus.CONFIRMED.value, ReservationStatus.CHECKED_IN.value}
    | _CANCELLABLE,
    ReservationStatus.CONFIRMED.value: {ReservationStatus.CHECKED_IN.value} | _CANCELLABLE,
    ReservationStatus.CHECKED_IN.value: {
        ReservationStatus.IN_PROGRESS.value,
        ReservationStatus.COMPLETED.value,
    }
    | _CANCELLABLE,
    ReservationStatus.IN_PROGRESS.value: {ReservationStatus.COMPLETED.value} | _CANCELLABLE,
    ReservationStatus.COMPLETED.value: set(),
    ReservationStatus.CANCELLED.value: set(),
    ReservationStatus.NO_SHOW.value: set(),
}

# Business-side actions: target status and the states each one may start from
ACTIONS: dict[str, tuple[str, tuple[str, ...]]] = {
    "confirm": (ReservationStatus.CONFIRMED.value, ("pending",)),
    "check-in": (ReservationStatus.CHECKED_IN.value, ("pending", "confirmed")),
    "start": (ReservationStatus.IN_PROGRESS.value, ("checked_in",)),
    "complete": (ReservationStatus.COMPLETED.value, ("checked_in", "in_progress")),
    "cancel": (ReservationStatus.CANCELLED.value, ("pending", "confirmed")),
    "no-show": (ReservationStatus.NO_SHOW.value, ("pending", "confirmed", "checked_in")),
}


def is_active(status: str) -> bool:
    return status in ACTIVE_STATUSES


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def record_status(
    reservation: Reservation,
    status: str,
    changed_at: datetime,
    changed_by: Optional[str] = None,
    reason: Optional[str] = None,
) -> ReservationStatusHistory:
    """Append a history row; the caller commits it with the status change"""
    entry = ReservationStatusHistory(
        status=status,
        changed_at=changed_at,
        changed_by=changed_by,
        reason=reason,
    )
    reservation.status_history.append(entry)
    return entry


def transition(
    reservation: Reservation,
    target: str,
    changed_at: datetime,
    changed_by: Optional[str] = None,
    reason: Optional[str] = None,
) -> Reservation:
    """Move a reservation forward, raising ConflictError on an illegal move"""
    current = reservation.status
    if not can_transition(current, target):
        logger.warning(f"⚠️ Rejected status change {current} -> {target} for reservation {reservation.id}")
        raise ConflictError(f"Cannot change status from {current} to {target}")

    reservation.status = target
    record_status(reservation, target, changed_at, changed_by, reason)
    return reservation
