"""Shared fakes and factories for booking tests."""

from datetime import datetime

from app.models import Business, Promotion, Service, Staff, User
from app.services.notification_service import NotificationDispatcher

# Monday 7 January 2030, 08:00
NOW = datetime(2030, 1, 7, 8, 0)


class FixedClock:
    """Callable clock the services read 'now' from."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeDispatcher(NotificationDispatcher):
    """Records queued and aborted jobs instead of talking to Redis."""

    def __init__(self):
        super().__init__()
        self.sent = []
        self.aborted = []
        self.fail = False

    async def _enqueue(self, job_id, payload, defer_until):
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.sent.append({"job_id": job_id, "payload": payload, "defer_until": defer_until})
        return job_id or f"job-{len(self.sent)}"

    async def _abort(self, job_id):
        if self.fail:
            raise RuntimeError("queue unavailable")
        self.aborted.append(job_id)
        return True

    def types(self):
        return [job["payload"]["type"] for job in self.sent]

    def of_type(self, notification_type):
        return [job for job in self.sent if job["payload"]["type"] == notification_type]


def make_user(db, first_name="Ana", last_name="Lopez", email=None, phone="1155550000"):
    user = User(
        first_name=first_name,
        last_name=last_name,
        email=email or f"{first_name.lower()}.{last_name.lower()}@example.com",
        phone=phone,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_business(db, owner=None, **overrides):
    values = {
        "name": "Studio Uno",
        "status": "active",
        "owner_user_id": owner.id if owner else None,
        "min_advance_hours": 1,
        "max_advance_days": 30,
        "buffer_time": 0,
        "slot_duration": 30,
    }
    values.update(overrides)
    business = Business(**values)
    db.add(business)
    db.commit()
    db.refresh(business)
    return business


def make_service(db, business, name="Haircut", duration=30, price=100, **overrides):
    service = Service(business_id=business.id, name=name, duration=duration, price=price, **overrides)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def make_staff(db, business, services, first_name="Marta", order=0, status="active"):
    staff = Staff(
        business_id=business.id,
        first_name=first_name,
        last_name="Diaz",
        display_order=order,
        status=status,
    )
    staff.services = list(services)
    db.add(staff)
    db.commit()
    db.refresh(staff)
    return staff


def make_promotion(db, business, code="WELCOME10", **overrides):
    values = {
        "business_id": business.id,
        "name": "Welcome",
        "code": code,
        "discount_type": "percentage",
        "discount_value": 10,
        "valid_from": datetime(2029, 1, 1),
        "valid_until": datetime(2031, 1, 1),
        "status": "active",
    }
    values.update(overrides)
    promotion = Promotion(**values)
    db.add(promotion)
    db.commit()
    db.refresh(promotion)
    return promotion
