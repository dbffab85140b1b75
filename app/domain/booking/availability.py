"""Staff calendar overlap checks and free-slot enumeration"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Business, Reservation, Staff, default_weekly_schedule
from .status import ACTIVE_STATUSES
from .time_utils import (
    advance_window,
    combine_date_time,
    day_of_week,
    minutes_to_time,
    time_to_minutes,
)

logger = logging.getLogger(__name__)


def find_conflict(
    db: Session,
    business_id: int,
    staff_id: int,
    start_at: datetime,
    end_at: datetime,
    exclude_id: Optional[int] = None,
) -> Optional[Reservation]:
    """First active reservation of this staff member overlapping [start_at, end_at)"""
    query = db.query(Reservation).filter(
        Reservation.business_id == business_id,
        Reservation.staff_id == staff_id,
        Reservation.status.in_(ACTIVE_STATUSES),
        Reservation.start_at < end_at,
        Reservation.end_at > start_at,
    )
    if exclude_id is not None:
        query = query.filter(Reservation.id != exclude_id)
    return query.order_by(Reservation.start_at, Reservation.id).first()


def is_staff_available(
    db: Session,
    business_id: int,
    staff_id: int,
    start_at: datetime,
    end_at: datetime,
    exclude_id: Optional[int] = None,
) -> bool:
    return find_conflict(db, business_id, staff_id, start_at, end_at, exclude_id) is None


def lock_staff_calendar(db: Session, staff_id: int) -> Optional[Staff]:
    """Row-lock the staff member until the surrounding transaction ends.

    Bookings for the same staff serialize on the lock on PostgreSQL.
    SQLite has no row locks and ignores FOR UPDATE.
    """
    return db.query(Staff).filter(Staff.id == staff_id).with_for_update().first()


def opening_hours(business: Business, day: date) -> list[tuple[int, int]]:
    """Open intervals for a day as (open, close) minutes since midnight"""
    schedule = business.schedule or default_weekly_schedule()
    weekday = day_of_week(day)
    for entry in schedule:
        if entry.get("dayOfWeek") != weekday:
            continue
        if not entry.get("isOpen"):
            return []
        return [
            (time_to_minutes(slot["open"]), time_to_minutes(slot["close"]))
            for slot in entry.get("slots", [])
        ]
    return []


def find_available_slots(
    db: Session,
    business: Business,
    staff_members: list[Staff],
    day: date,
    service_minutes: int,
    now: datetime,
    start_time: Optional[str] = None,
) -> list[dict]:
    """Enumerate bookable start times for a day.

    Candidates step by the business slot duration through each opening
    interval. A candidate needs the services to finish before closing, must
    sit inside the advance window, and is free when at least one of the given
    staff has no overlapping active reservation for the services plus buffer.
    """
    buffer_minutes = business.buffer_time or 0
    step = business.slot_duration or 30
    earliest, latest = advance_window(now, business.min_advance_hours, business.max_advance_days)
    wanted = time_to_minutes(start_time) if start_time else None

    slots = []
    for open_minute, close_minute in opening_hours(business, day):
        candidate = open_minute
        while candidate + service_minutes <= close_minute:
            if wanted is None or candidate == wanted:
                start_at = combine_date_time(day, minutes_to_time(candidate))
                if earliest <= start_at <= latest:
                    end_at = start_at + timedelta(minutes=service_minutes + buffer_minutes)
                    free_staff = [
                        member.id
                        for member in staff_members
                        if is_staff_available(db, business.id, member.id, start_at, end_at)
                    ]
                    if free_staff:
                        slots.append(
                            {
                                "time": minutes_to_time(candidate),
                                "endTime": minutes_to_time(candidate + service_minutes),
                                "staffIds": free_staff,
                            }
                        )
            candidate += step

    logger.info(f"📅 {len(slots)} free slots for business {business.id} on {day.isoformat()}")
    return slots
