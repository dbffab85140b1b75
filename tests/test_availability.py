from datetime import date, datetime, timedelta

import pytest

from app.domain.booking.availability import find_available_slots, find_conflict, opening_hours
from app.domain.booking.staff_resolver import (
    AutoAssign,
    ExplicitStaff,
    TimeWindow,
    get_explicit_staff,
    resolve_staff,
    staff_choice,
)
from app.models import Reservation
from app.shared.errors import BadRequestError, ConflictError, NotFoundError
from helpers import NOW, make_business, make_service, make_staff

DAY = date(2030, 1, 8)  # Tuesday


def at(hhmm: str) -> datetime:
    hours, minutes = hhmm.split(":")
    return datetime(DAY.year, DAY.month, DAY.day, int(hours), int(minutes))


def add_reservation(db, business, staff, start, end, status="confirmed"):
    reservation = Reservation(
        business_id=business.id,
        staff_id=staff.id,
        client_name="Existing",
        staff_name=staff.full_name,
        services=[],
        date=DAY,
        start_time=start,
        end_time=end,
        start_at=at(start),
        end_at=at(end),
        total_duration=int((at(end) - at(start)).total_seconds() // 60),
        status=status,
    )
    db.add(reservation)
    db.commit()
    return reservation


def test_find_conflict_uses_half_open_intervals(db):
    business = make_business(db)
    service = make_service(db, business)
    staff = make_staff(db, business, [service])
    existing = add_reservation(db, business, staff, "10:00", "11:00")

    assert find_conflict(db, business.id, staff.id, at("10:30"), at("11:30")).id == existing.id
    assert find_conflict(db, business.id, staff.id, at("09:00"), at("10:01")).id == existing.id
    assert find_conflict(db, business.id, staff.id, at("11:00"), at("12:00")) is None
    assert find_conflict(db, business.id, staff.id, at("09:00"), at("10:00")) is None


def test_cancelled_and_no_show_reservations_free_the_calendar(db):
    business = make_business(db)
    service = make_service(db, business)
    staff = make_staff(db, business, [service])
    add_reservation(db, business, staff, "10:00", "11:00", status="cancelled")
    add_reservation(db, business, staff, "12:00", "13:00", status="no_show")
    completed = add_reservation(db, business, staff, "14:00", "15:00", status="completed")

    assert find_conflict(db, business.id, staff.id, at("10:00"), at("11:00")) is None
    assert find_conflict(db, business.id, staff.id, at("12:00"), at("13:00")) is None
    assert find_conflict(db, business.id, staff.id, at("14:00"), at("15:00")).id == completed.id


def test_find_conflict_can_exclude_the_reservation_being_moved(db):
    business = make_business(db)
    service = make_service(db, business)
    staff = make_staff(db, business, [service])
    existing = add_reservation(db, business, staff, "10:00", "11:00")

    assert find_conflict(db, business.id, staff.id, at("10:30"), at("11:30"), exclude_id=existing.id) is None


def test_explicit_staff_must_be_active_and_capable(db):
    business = make_business(db)
    cut = make_service(db, business, name="Cut")
    color = make_service(db, business, name="Color")
    stylist = make_staff(db, business, [cut])
    away = make_staff(db, business, [cut, color], first_name="Luz", status="vacation")
    window = TimeWindow(at("10:00"), at("10:30"))

    assert resolve_staff(db, business.id, [cut.id], ExplicitStaff(stylist.id), window).id == stylist.id

    with pytest.raises(BadRequestError) as exc:
        resolve_staff(db, business.id, [cut.id, color.id], ExplicitStaff(stylist.id), window)
    assert exc.value.detail == "Staff does not offer one or more selected services"

    with pytest.raises(NotFoundError) as exc:
        resolve_staff(db, business.id, [cut.id], ExplicitStaff(away.id), window)
    assert exc.value.detail == "Staff not found"


def test_explicit_staff_lookup_needs_no_time_window(db):
    business = make_business(db)
    cut = make_service(db, business, name="Cut")
    color = make_service(db, business, name="Color")
    stylist = make_staff(db, business, [cut])

    assert get_explicit_staff(db, business.id, [cut.id], stylist.id).id == stylist.id

    with pytest.raises(BadRequestError):
        get_explicit_staff(db, business.id, [color.id], stylist.id)

    with pytest.raises(NotFoundError):
        get_explicit_staff(db, business.id, [cut.id], 999)


def test_auto_assign_is_first_fit_in_display_order(db):
    business = make_business(db)
    service = make_service(db, business)
    third = make_staff(db, business, [service], first_name="Cris", order=3)
    second = make_staff(db, business, [service], first_name="Bea", order=2)
    first = make_staff(db, business, [service], first_name="Ada", order=1)
    window = TimeWindow(at("10:00"), at("10:30"))

    assert resolve_staff(db, business.id, [service.id], AutoAssign(), window).id == first.id

    add_reservation(db, business, first, "10:00", "10:30")
    assert resolve_staff(db, business.id, [service.id], AutoAssign(), window).id == second.id

    add_reservation(db, business, second, "10:00", "10:30")
    assert resolve_staff(db, business.id, [service.id], AutoAssign(), window).id == third.id

    add_reservation(db, business, third, "10:00", "10:30")
    with pytest.raises(ConflictError) as exc:
        resolve_staff(db, business.id, [service.id], AutoAssign(), window)
    assert exc.value.detail == "No staff available at the selected time"


def test_auto_assign_without_capable_staff(db):
    business = make_business(db)
    cut = make_service(db, business, name="Cut")
    color = make_service(db, business, name="Color")
    make_staff(db, business, [cut])

    with pytest.raises(BadRequestError) as exc:
        resolve_staff(db, business.id, [color.id], AutoAssign(), TimeWindow(at("10:00"), at("10:30")))
    assert exc.value.detail == "No staff available for the selected services"


def test_staff_choice_from_optional_id():
    assert staff_choice(None) == AutoAssign()
    assert staff_choice(7) == ExplicitStaff(7)


def test_opening_hours_follow_the_weekly_schedule(db):
    business = make_business(db)
    assert opening_hours(business, date(2030, 1, 6)) == []  # Sunday closed
    assert opening_hours(business, DAY) == [(540, 1080)]
    assert opening_hours(business, date(2030, 1, 12)) == [(540, 780)]


def test_slots_skip_busy_times_and_include_buffer(db):
    business = make_business(db, buffer_time=10, slot_duration=30)
    service = make_service(db, business, duration=50)
    staff = make_staff(db, business, [service])
    add_reservation(db, business, staff, "10:00", "11:00")

    slots = find_available_slots(db, business, [staff], DAY, 50, NOW)
    times = [slot["time"] for slot in slots]

    assert times[0] == "09:00"
    # 09:30 would occupy until 10:30 with the buffer
    assert "09:30" not in times
    assert "10:00" not in times and "10:30" not in times
    assert "11:00" in times
    # the service has to end by 18:00
    assert times[-1] == "17:00"
    assert slots[0] == {"time": "09:00", "endTime": "09:50", "staffIds": [staff.id]}


def test_slots_respect_the_advance_window(db):
    business = make_business(db, min_advance_hours=2)
    service = make_service(db, business)
    staff = make_staff(db, business, [service])

    # Monday 08:00 now, earliest bookable start is 10:00
    slots = find_available_slots(db, business, [staff], NOW.date(), 30, NOW)
    assert slots[0]["time"] == "10:00"

    too_far = NOW.date() + timedelta(days=40)
    assert find_available_slots(db, business, [staff], too_far, 30, NOW) == []


def test_slots_can_be_filtered_to_one_start_time(db):
    business = make_business(db)
    service = make_service(db, business)
    ada = make_staff(db, business, [service], first_name="Ada", order=1)
    bea = make_staff(db, business, [service], first_name="Bea", order=2)
    add_reservation(db, business, ada, "10:00", "10:30")

    slots = find_available_slots(db, business, [ada, bea], DAY, 30, NOW, start_time="10:00")
    assert slots == [{"time": "10:00", "endTime": "10:30", "staffIds": [bea.id]}]
