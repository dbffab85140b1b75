"""Pick the staff member for a booking"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from sqlalchemy.orm import Session

from ...models import Staff
from ...shared.errors import BadRequestError, ConflictError, NotFoundError
from .availability import is_staff_available

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExplicitStaff:
    staff_id: int


@dataclass(frozen=True)
class AutoAssign:
    pass


StaffChoice = Union[ExplicitStaff, AutoAssign]


@dataclass(frozen=True)
class TimeWindow:
    start_at: datetime
    end_at: datetime


def staff_choice(staff_id: Optional[int]) -> StaffChoice:
    return ExplicitStaff(staff_id) if staff_id else AutoAssign()


def get_active_staff(db: Session, business_id: int, staff_id: int) -> Optional[Staff]:
    return (
        db.query(Staff)
        .filter(Staff.id == staff_id, Staff.business_id == business_id, Staff.status == "active")
        .first()
    )


def offers_all(staff: Staff, service_ids: list[int]) -> bool:
    return set(service_ids) <= staff.service_ids


def find_capable_staff(db: Session, business_id: int, service_ids: list[int]) -> list[Staff]:
    """Active staff offering every requested service, in display order"""
    candidates = (
        db.query(Staff)
        .filter(Staff.business_id == business_id, Staff.status == "active")
        .order_by(Staff.display_order, Staff.id)
        .all()
    )
    return [member for member in candidates if offers_all(member, service_ids)]


def get_explicit_staff(db: Session, business_id: int, service_ids: list[int], staff_id: int) -> Staff:
    """The named staff member, who must be active and offer every requested service"""
    staff = get_active_staff(db, business_id, staff_id)
    if not staff:
        raise NotFoundError("Staff not found")
    if not offers_all(staff, service_ids):
        raise BadRequestError("Staff does not offer one or more selected services")
    return staff


def resolve_staff(
    db: Session,
    business_id: int,
    service_ids: list[int],
    choice: StaffChoice,
    window: TimeWindow,
) -> Staff:
    if isinstance(choice, ExplicitStaff):
        return get_explicit_staff(db, business_id, service_ids, choice.staff_id)

    candidates = find_capable_staff(db, business_id, service_ids)
    if not candidates:
        raise BadRequestError("No staff available for the selected services")

    # First free candidate in display order wins
    for member in candidates:
        if is_staff_available(db, business_id, member.id, window.start_at, window.end_at):
            logger.info(f"✅ Auto-assigned staff {member.id} for business {business_id}")
            return member

    logger.warning(
        f"⚠️ All {len(candidates)} capable staff busy for business {business_id} "
        f"at {window.start_at.isoformat()}"
    )
    raise ConflictError("No staff available at the selected time")
