from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def default_weekly_schedule():
    """Monday-Friday 9am-6pm, Saturday 9am-1pm, Sunday closed (0 = Sunday)"""
    weekday = [{"open": "09:00", "close": "18:00"}]
    return [
        {"dayOfWeek": 0, "isOpen": False, "slots": []},
        {"dayOfWeek": 1, "isOpen": True, "slots": weekday},
        {"dayOfWeek": 2, "isOpen": True, "slots": weekday},
        {"dayOfWeek": 3, "isOpen": True, "slots": weekday},
        {"dayOfWeek": 4, "isOpen": True, "slots": weekday},
        {"dayOfWeek": 5, "isOpen": True, "slots": weekday},
        {"dayOfWeek": 6, "isOpen": True, "slots": [{"open": "09:00", "close": "13:00"}]},
    ]


staff_services = Table(
    "staff_services",
    Base.metadata,
    Column("staff_id", Integer, ForeignKey("staff.id"), primary_key=True),
    Column("service_id", Integer, ForeignKey("services.id"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    status = Column(String(20), default="active", nullable=False)  # active, suspended, deleted
    # Lifetime stats across all businesses
    total_appointments = Column(Integer, default=0, nullable=False)
    total_spent = Column(Float, default=0, nullable=False)
    cancelled_appointments = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    owner_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), default="active", nullable=False)  # pending, active, suspended, deleted
    address = Column(String(500), nullable=True)
    city = Column(String(255), nullable=True)
    schedule = Column(JSON, default=default_weekly_schedule, nullable=True)

    # Booking policy
    slot_duration = Column(Integer, default=30, nullable=False)  # minutes
    buffer_time = Column(Integer, default=0, nullable=False)  # minutes after each appointment
    min_advance_hours = Column(Integer, default=1, nullable=False)
    max_advance_days = Column(Integer, default=30, nullable=False)
    require_confirmation = Column(Boolean, default=False, nullable=False)
    require_deposit = Column(Boolean, default=False, nullable=False)
    deposit_type = Column(String(20), default="percentage", nullable=False)  # percentage, fixed
    deposit_amount = Column(Float, default=0, nullable=False)
    allow_rescheduling = Column(Boolean, default=True, nullable=False)
    allow_waitlist = Column(Boolean, default=True, nullable=False)

    # Cancellation policy
    allow_cancellation = Column(Boolean, default=True, nullable=False)
    cancellation_hours = Column(Integer, default=24, nullable=False)  # notice window
    penalty_type = Column(String(20), default="none", nullable=False)  # none, percentage, fixed
    penalty_amount = Column(Float, default=0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User")
    staff = relationship("Staff", back_populates="business")
    services = relationship("Service", back_populates="business")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Float, nullable=False)
    status = Column(String(20), default="active", nullable=False)  # active, inactive, deleted
    # Service-level promotional price, independent of promotion codes
    discount_active = Column(Boolean, default=False, nullable=False)
    discount_type = Column(String(20), default="percentage", nullable=False)  # percentage, fixed
    discount_amount = Column(Float, default=0, nullable=False)
    discount_valid_from = Column(DateTime, nullable=True)
    discount_valid_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    business = relationship("Business", back_populates="services")

    def final_price(self, now) -> float:
        """Price after the service's own discount, if it is running at `now`"""
        if not self.discount_active:
            return self.price
        if self.discount_valid_from and now < self.discount_valid_from:
            return self.price
        if self.discount_valid_until and now > self.discount_valid_until:
            return self.price
        if self.discount_type == "percentage":
            return self.price - (self.price * self.discount_amount) / 100
        return max(0, self.price - self.discount_amount)


class Staff(Base):
    __tablename__ = "staff"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=True)
    status = Column(String(20), default="active", nullable=False)  # active, inactive, vacation, deleted
    display_order = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    business = relationship("Business", back_populates="staff")
    services = relationship("Service", secondary=staff_services)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    @property
    def service_ids(self) -> set[int]:
        return {s.id for s in self.services}


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # null for walk-ins
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=False, index=True)

    # Display snapshot taken at booking time
    client_name = Column(String(255), nullable=False)
    client_phone = Column(String(50), nullable=True)
    client_email = Column(String(255), nullable=True)
    staff_name = Column(String(255), nullable=False)
    services = Column(JSON, nullable=False)  # [{"serviceId", "name", "duration", "price", "discount"}]

    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM, buffer excluded
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False, index=True)  # buffer included
    total_duration = Column(Integer, nullable=False)  # minutes, buffer included

    # Pricing
    subtotal = Column(Float, default=0, nullable=False)
    discount_amount = Column(Float, default=0, nullable=False)
    discount_code = Column(String(50), nullable=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=True)
    deposit_amount = Column(Float, default=0, nullable=False)
    deposit_paid = Column(Boolean, default=False, nullable=False)
    tip = Column(Float, default=0, nullable=False)
    total = Column(Float, default=0, nullable=False)
    final_total = Column(Float, default=0, nullable=False)

    status = Column(String(20), nullable=False, index=True)
    source = Column(String(20), default="app_client", nullable=False)

    # Cancellation record
    cancelled_at = Column(DateTime, nullable=True)
    cancelled_by = Column(String(20), nullable=True)  # client, business
    cancellation_reason = Column(String(500), nullable=True)
    refunded = Column(Boolean, default=False, nullable=False)
    refund_amount = Column(Float, default=0, nullable=False)

    # Payment
    payment_status = Column(String(20), default="pending", nullable=False)  # pending, partial, paid, refunded
    payment_method = Column(String(20), nullable=True)  # cash, card, mercadopago, transfer
    paid_amount = Column(Float, default=0, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    client_notes = Column(Text, nullable=True)
    business_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    business = relationship("Business")
    staff = relationship("Staff")
    status_history = relationship(
        "ReservationStatusHistory",
        back_populates="reservation",
        order_by="ReservationStatusHistory.id",
        cascade="all, delete-orphan",
    )


class ReservationStatusHistory(Base):
    __tablename__ = "reservation_status_history"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    changed_at = Column(DateTime, nullable=False)
    changed_by = Column(String(100), nullable=True)
    reason = Column(String(500), nullable=True)

    reservation = relationship("Reservation", back_populates="status_history")


class Promotion(Base):
    __tablename__ = "promotions"
    __table_args__ = (UniqueConstraint("business_id", "code", name="uq_promotion_business_code"),)

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    code = Column(String(50), nullable=True)  # stored uppercase
    discount_type = Column(String(20), nullable=False)  # percentage, fixed
    discount_value = Column(Float, nullable=False)
    max_discount_amount = Column(Float, nullable=True)
    min_purchase = Column(Float, nullable=True)
    service_ids = Column(JSON, nullable=True)  # restrict to these services when non-empty
    total_uses = Column(Integer, nullable=True)
    uses_per_client = Column(Integer, nullable=True)
    current_uses = Column(Integer, default=0, nullable=False)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    status = Column(String(20), default="draft", nullable=False)  # draft, active, paused, expired
    created_at = Column(DateTime, server_default=func.now())

    usages = relationship("PromotionUsage", back_populates="promotion")


class PromotionUsage(Base):
    __tablename__ = "promotion_usages"
    __table_args__ = (
        UniqueConstraint("promotion_id", "reservation_id", name="uq_promotion_usage_reservation"),
    )

    id = Column(Integer, primary_key=True, index=True)
    promotion_id = Column(Integer, ForeignKey("promotions.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False)
    used_at = Column(DateTime, nullable=False)

    promotion = relationship("Promotion", back_populates="usages")


class ClientBusinessRelation(Base):
    __tablename__ = "client_business_relations"
    __table_args__ = (UniqueConstraint("client_id", "business_id", name="uq_client_business"),)

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    total_bookings = Column(Integer, default=0, nullable=False)
    total_spent = Column(Float, default=0, nullable=False)
    total_cancellations = Column(Integer, default=0, nullable=False)
    first_visit_at = Column(DateTime, nullable=True)
    last_visit_at = Column(DateTime, nullable=True)


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Preferences
    service_ids = Column(JSON, nullable=False)
    staff_id = Column(Integer, ForeignKey("staff.id"), nullable=True)
    date_from = Column(Date, nullable=True)
    date_to = Column(Date, nullable=True)
    time_from = Column(String(5), nullable=True)
    time_to = Column(String(5), nullable=True)
    days_of_week = Column(JSON, nullable=True)  # 0 = Sunday

    priority = Column(String(10), default="normal", nullable=False)  # normal, vip
    status = Column(String(20), default="active", nullable=False, index=True)  # active, fulfilled, cancelled, expired
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    notifications = relationship(
        "WaitlistNotification",
        back_populates="entry",
        order_by="WaitlistNotification.id",
        cascade="all, delete-orphan",
    )


class WaitlistNotification(Base):
    __tablename__ = "waitlist_notifications"

    id = Column(Integer, primary_key=True, index=True)
    entry_id = Column(Integer, ForeignKey("waitlist_entries.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)  # freed slot
    sent_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    status = Column(String(20), default="sent", nullable=False)  # sent, accepted, declined, expired

    entry = relationship("WaitlistEntry", back_populates="notifications")


class Notification(Base):
    """Delivered notification log, written by the background worker"""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)
    type = Column(String(50), nullable=False)
    channels = Column(JSON, nullable=False)
    data = Column(JSON, nullable=True)
    status = Column(String(20), default="sent", nullable=False)  # sent, skipped, failed
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
