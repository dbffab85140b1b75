from datetime import date, datetime

import pytest

from app.models import Reservation
from app.worker import deliver_notification
from helpers import FakeDispatcher, make_business, make_service, make_staff, make_user


def make_reservation(db, status="confirmed"):
    owner = make_user(db, first_name="Owner", last_name="One")
    business = make_business(db, owner=owner)
    service = make_service(db, business)
    staff = make_staff(db, business, [service])
    client = make_user(db)
    reservation = Reservation(
        business_id=business.id,
        client_id=client.id,
        staff_id=staff.id,
        client_name=client.full_name,
        staff_name=staff.full_name,
        services=[{"serviceId": service.id, "name": "Haircut", "duration": 30, "price": 100, "discount": 0}],
        date=date(2030, 1, 8),
        start_time="10:00",
        end_time="10:30",
        start_at=datetime(2030, 1, 8, 10, 0),
        end_at=datetime(2030, 1, 8, 10, 30),
        total_duration=30,
        total=100,
        status=status,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation


@pytest.mark.asyncio
async def test_reminders_use_deterministic_job_ids(db):
    dispatcher = FakeDispatcher()
    reservation = make_reservation(db)

    scheduled = await dispatcher.schedule_reminders(reservation, datetime(2030, 1, 8, 8, 30))

    assert scheduled == [f"reminder-1h-{reservation.id}"]
    job = dispatcher.sent[0]
    assert job["defer_until"] == datetime(2030, 1, 8, 9, 0)
    assert job["payload"]["data"]["businessName"] == "Studio Uno"
    assert job["payload"]["data"]["services"] == ["Haircut"]


@pytest.mark.asyncio
async def test_cancel_scheduled_aborts_every_reservation_job(db):
    dispatcher = FakeDispatcher()

    cancelled = await dispatcher.cancel_scheduled(12)

    assert cancelled == 4
    assert dispatcher.aborted == ["reminder-24h-12", "reminder-2h-12", "reminder-1h-12", "review-12"]


@pytest.mark.asyncio
async def test_cancellation_notifies_owner_only_for_client_cancellations(db):
    dispatcher = FakeDispatcher()
    reservation = make_reservation(db, status="cancelled")

    reservation.cancelled_by = "client"
    await dispatcher.send_booking_cancellation(reservation)
    assert [job["payload"]["userId"] for job in dispatcher.sent] == [
        reservation.client_id,
        reservation.business.owner_user_id,
    ]

    dispatcher.sent.clear()
    reservation.cancelled_by = "business"
    await dispatcher.send_booking_cancellation(reservation)
    assert [job["payload"]["userId"] for job in dispatcher.sent] == [reservation.client_id]


def reminder_payload(reservation, start_at=None):
    return {
        "userId": reservation.client_id,
        "type": "booking_reminder",
        "channels": ["push"],
        "businessId": reservation.business_id,
        "reservationId": reservation.id,
        "data": {"startAt": (start_at or reservation.start_at).isoformat()},
    }


def test_worker_delivers_reminder_for_active_reservation(db):
    reservation = make_reservation(db)

    notification = deliver_notification(db, reminder_payload(reservation))

    assert notification.status == "sent"
    assert notification.sent_at is not None


def test_worker_skips_reminder_for_cancelled_reservation(db):
    reservation = make_reservation(db, status="cancelled")

    notification = deliver_notification(db, reminder_payload(reservation))

    assert notification.status == "skipped"
    assert notification.sent_at is None


def test_worker_skips_reminder_queued_before_reschedule(db):
    reservation = make_reservation(db)

    stale = reminder_payload(reservation, start_at=datetime(2030, 1, 8, 9, 0))
    assert deliver_notification(db, stale).status == "skipped"
