from datetime import datetime, timedelta

import pytest

from app.domain.booking.schemas import CreateBookingRequest
from app.domain.waitlist.schemas import CreateWaitlistEntryRequest
from app.models import ClientBusinessRelation, User, WaitlistNotification
from app.shared.errors import BadRequestError, ConflictError, NotFoundError
from helpers import make_business, make_service, make_staff, make_user


@pytest.fixture
def setup(db):
    owner = make_user(db, first_name="Owner", last_name="One")
    business = make_business(
        db,
        owner=owner,
        require_deposit=True,
        deposit_type="percentage",
        deposit_amount=50,
        cancellation_hours=24,
        penalty_type="fixed",
        penalty_amount=30,
    )
    service = make_service(db, business, duration=60, price=200)
    staff = make_staff(db, business, [service])
    client = make_user(db)
    return {"owner": owner, "business": business, "service": service, "staff": staff, "client": client}


async def book(service, setup, day="2030-01-08", start="10:00"):
    result = await service.create_booking(
        CreateBookingRequest(
            userId=setup["client"].id,
            businessId=setup["business"].id,
            serviceIds=[setup["service"].id],
            date=day,
            startTime=start,
        )
    )
    return result["reservation"]


@pytest.mark.asyncio
async def test_cancel_outside_window_refunds_deposit(db, booking_service, notifier, setup):
    reservation = await book(booking_service, setup)

    result = await booking_service.cancel_booking(reservation.id, setup["client"].id, "Change of plans")

    cancelled = result["reservation"]
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == "client"
    assert cancelled.cancellation_reason == "Change of plans"
    assert result["refundAmount"] == 100
    assert result["penaltyApplied"] is False
    assert cancelled.refunded is True
    assert [h.status for h in cancelled.status_history] == ["confirmed", "cancelled"]

    assert f"reminder-24h-{reservation.id}" in notifier.aborted
    assert f"review-{reservation.id}" in notifier.aborted
    assert "booking_cancelled" in notifier.types()

    client = db.query(User).filter(User.id == setup["client"].id).one()
    assert client.cancelled_appointments == 1
    relation = db.query(ClientBusinessRelation).filter_by(client_id=client.id).one()
    assert relation.total_cancellations == 1


@pytest.mark.asyncio
async def test_late_cancellation_with_paid_deposit_is_penalised(db, booking_service, clock, setup):
    reservation = await book(booking_service, setup)
    reservation.deposit_paid = True
    db.commit()

    clock.now = datetime(2030, 1, 8, 6, 0)  # four hours before start
    result = await booking_service.cancel_booking(reservation.id, setup["client"].id)

    assert result["refundAmount"] == 70
    assert result["penaltyApplied"] is True


@pytest.mark.asyncio
async def test_cancel_requires_owner_and_open_status(db, booking_service, setup):
    reservation = await book(booking_service, setup)
    stranger = make_user(db, first_name="Zoe")

    with pytest.raises(NotFoundError) as exc:
        await booking_service.cancel_booking(reservation.id, stranger.id)
    assert exc.value.detail == "Booking not found"

    await booking_service.cancel_booking(reservation.id, setup["client"].id)
    with pytest.raises(ConflictError) as exc:
        await booking_service.cancel_booking(reservation.id, setup["client"].id)
    assert exc.value.detail == "Cannot cancel a booking with status cancelled"


@pytest.mark.asyncio
async def test_completed_booking_cannot_be_cancelled_or_moved(db, booking_service, setup):
    reservation = await book(booking_service, setup)
    for action in ("check-in", "start", "complete"):
        await booking_service.update_status(reservation.id, setup["business"].id, action)

    with pytest.raises(ConflictError) as exc:
        await booking_service.cancel_booking(reservation.id, setup["client"].id)
    assert exc.value.status_code == 409
    assert exc.value.detail == "Cannot cancel a booking with status completed"

    with pytest.raises(ConflictError) as exc:
        await booking_service.reschedule_booking(reservation.id, setup["client"].id, "2030-01-09", "10:00")
    assert exc.value.detail == "Cannot reschedule a booking with status completed"


@pytest.mark.asyncio
async def test_cancellation_frees_the_slot(db, booking_service, setup):
    reservation = await book(booking_service, setup)
    await booking_service.cancel_booking(reservation.id, setup["client"].id)

    again = await book(booking_service, setup)
    assert again.staff_id == setup["staff"].id


@pytest.mark.asyncio
async def test_cancellation_offers_the_slot_to_the_waitlist(db, booking_service, waitlist_service, notifier, setup):
    waiting = make_user(db, first_name="Wanda")
    entry = waitlist_service.create_entry(
        CreateWaitlistEntryRequest(
            userId=waiting.id, businessId=setup["business"].id, serviceIds=[setup["service"].id]
        )
    )
    reservation = await book(booking_service, setup)

    await booking_service.cancel_booking(reservation.id, setup["client"].id)

    offer = db.query(WaitlistNotification).filter_by(entry_id=entry.id).one()
    assert offer.reservation_id == reservation.id
    assert offer.status == "sent"
    assert notifier.of_type("waitlist_slot_available")[0]["payload"]["userId"] == waiting.id


@pytest.mark.asyncio
async def test_waitlist_failure_does_not_fail_cancellation(db, booking_service, notifier, setup, monkeypatch):
    from app.domain.waitlist.service import WaitlistService

    async def broken(self, business_id, freed_reservation_id=None):
        raise RuntimeError("boom")

    monkeypatch.setattr(WaitlistService, "notify_next", broken)
    reservation = await book(booking_service, setup)

    result = await booking_service.cancel_booking(reservation.id, setup["client"].id)
    assert result["reservation"].status == "cancelled"


@pytest.mark.asyncio
async def test_reschedule_moves_the_reservation(db, booking_service, notifier, setup):
    reservation = await book(booking_service, setup)
    notifier.sent.clear()

    # Overlapping its own old slot is fine
    moved = await booking_service.reschedule_booking(reservation.id, setup["client"].id, "2030-01-08", "10:30")

    assert moved.start_at == datetime(2030, 1, 8, 10, 30)
    assert moved.end_at == datetime(2030, 1, 8, 11, 30)
    assert moved.end_time == "11:30"
    assert moved.total == 200
    assert f"reminder-1h-{reservation.id}" in notifier.aborted
    assert notifier.types().count("booking_reminder") == 3
    assert "booking_rescheduled" in notifier.types()


@pytest.mark.asyncio
async def test_reschedule_rules(db, booking_service, setup):
    reservation = await book(booking_service, setup)
    await book(booking_service, setup, start="14:00")

    with pytest.raises(ConflictError):
        await booking_service.reschedule_booking(reservation.id, setup["client"].id, "2030-01-08", "13:30")

    with pytest.raises(BadRequestError):
        await booking_service.reschedule_booking(reservation.id, setup["client"].id, "2030-01-07", "08:30")

    setup["business"].allow_rescheduling = False
    db.commit()
    with pytest.raises(BadRequestError) as exc:
        await booking_service.reschedule_booking(reservation.id, setup["client"].id, "2030-01-09", "10:00")
    assert exc.value.detail == "This business does not allow rescheduling"


@pytest.mark.asyncio
async def test_business_walks_a_reservation_through_its_day(db, booking_service, setup):
    reservation = await book(booking_service, setup)
    business_id = setup["business"].id

    for action in ("check-in", "start", "complete"):
        reservation = await booking_service.update_status(reservation.id, business_id, action, changed_by="staff:1")

    assert reservation.status == "completed"
    assert [h.status for h in reservation.status_history] == [
        "confirmed",
        "checked_in",
        "in_progress",
        "completed",
    ]
    assert reservation.status_history[-1].changed_by == "staff:1"


@pytest.mark.asyncio
async def test_status_actions_are_limited_to_their_source_states(db, booking_service, setup):
    reservation = await book(booking_service, setup)
    business_id = setup["business"].id

    with pytest.raises(ConflictError) as exc:
        await booking_service.update_status(reservation.id, business_id, "confirm")
    assert exc.value.detail == "Cannot confirm an appointment with status confirmed"

    with pytest.raises(ConflictError):
        await booking_service.update_status(reservation.id, business_id, "complete")

    with pytest.raises(NotFoundError):
        await booking_service.update_status(reservation.id, business_id + 1, "check-in")


@pytest.mark.asyncio
async def test_business_cancellation_refunds_nothing(db, booking_service, notifier, setup):
    reservation = await book(booking_service, setup)

    cancelled = await booking_service.update_status(
        reservation.id, setup["business"].id, "cancel", reason="Staff sick"
    )

    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == "business"
    assert cancelled.refund_amount == 0
    assert f"reminder-2h-{reservation.id}" in notifier.aborted
    client = db.query(User).filter(User.id == setup["client"].id).one()
    assert client.cancelled_appointments == 0


@pytest.mark.asyncio
async def test_no_show_drops_pending_reminders(db, booking_service, notifier, clock, setup):
    reservation = await book(booking_service, setup)
    clock.now = reservation.start_at + timedelta(minutes=20)

    updated = await booking_service.update_status(reservation.id, setup["business"].id, "no-show")

    assert updated.status == "no_show"
    assert f"review-{reservation.id}" in notifier.aborted
