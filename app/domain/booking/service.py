"""Booking service - Reservation creation, pricing, cancellation and status changes"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models import Business, Reservation, Service, Staff, User
from ...services.notification_service import NotificationDispatcher
from ...shared.errors import BadRequestError, ConflictError, NotFoundError
from ..clients.repository import ClientRepository
from .availability import find_available_slots, find_conflict, lock_staff_calendar
from .cancellation import evaluate_cancellation
from .discounts import record_promotion_usage
from .pricing import PriceQuote, build_line_items, quote_booking, round_money
from .repository import BookingRepository
from .schemas import (
    CalculatePriceRequest,
    CheckAvailabilityRequest,
    CreateBookingRequest,
    ManualAppointmentRequest,
)
from .staff_resolver import (
    ExplicitStaff,
    TimeWindow,
    find_capable_staff,
    get_explicit_staff,
    resolve_staff,
    staff_choice,
)
from .status import ACTIONS, CLIENT_MUTABLE_STATUSES, ReservationStatus, record_status, transition
from .time_utils import (
    advance_window,
    combine_date_time,
    minutes_to_time,
    parse_date,
    time_to_minutes,
)

logger = logging.getLogger(__name__)


class BookingService:
    """Service layer for the booking engine"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.repo = BookingRepository()
        self.clients = ClientRepository()
        self.notifier = notifier or NotificationDispatcher()
        self.clock = clock

    # ------------------------------------------------------------------
    # Lookups and validation
    # ------------------------------------------------------------------

    def _get_user(self, user_id: int) -> User:
        user = self.repo.get_user(self.db, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def _get_business(self, business_id: int) -> Business:
        business = self.repo.get_active_business(self.db, business_id)
        if not business:
            raise NotFoundError("Business not found or not active")
        return business

    def _get_services(self, business_id: int, service_ids: list[int]) -> list[Service]:
        services = self.repo.get_active_services(self.db, business_id, service_ids)
        if len(services) != len(set(service_ids)):
            raise BadRequestError("One or more services not found or not available")
        return services

    def _get_client_reservation(self, reservation_id: int, user_id: int, action: str) -> Reservation:
        reservation = self.repo.get_client_reservation(self.db, reservation_id, user_id)
        if not reservation:
            raise NotFoundError("Booking not found")
        if reservation.status not in CLIENT_MUTABLE_STATUSES:
            raise ConflictError(f"Cannot {action} a booking with status {reservation.status}")
        return reservation

    @staticmethod
    def _check_advance_window(business: Business, start_at: datetime, now: datetime) -> None:
        earliest, latest = advance_window(now, business.min_advance_hours, business.max_advance_days)
        if start_at < earliest:
            raise BadRequestError(
                f"Bookings must be made at least {business.min_advance_hours} hours in advance"
            )
        if start_at > latest:
            raise BadRequestError(
                f"Bookings cannot be made more than {business.max_advance_days} days in advance"
            )

    @staticmethod
    def _slot_times(day, start_time: str, service_minutes: int, buffer_minutes: int):
        """(start_at, end_at, end_time); end_at covers the buffer, end_time does not"""
        end_time = minutes_to_time(time_to_minutes(start_time) + service_minutes)
        start_at = combine_date_time(day, start_time, "start time")
        # Appointments may not run past the end of the day
        combine_date_time(day, end_time, "end time")
        end_at = start_at + timedelta(minutes=service_minutes + buffer_minutes)
        return start_at, end_at, end_time

    def _lock_and_check(self, business_id: int, staff_id: int, start_at, end_at, exclude_id=None):
        lock_staff_calendar(self.db, staff_id)
        conflict = find_conflict(self.db, business_id, staff_id, start_at, end_at, exclude_id)
        if conflict:
            self.db.rollback()
            logger.warning(
                f"⚠️ Slot taken for staff {staff_id} at {start_at.isoformat()} "
                f"(conflicts with reservation {conflict.id})"
            )
            raise ConflictError("This time slot is no longer available")

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    def calculate_price(self, data: CalculatePriceRequest) -> dict:
        """Price preview using the same pricing path as booking creation"""
        business = self._get_business(data.businessId)
        services = self._get_services(business.id, data.serviceIds)
        quote = quote_booking(self.db, business, services, data.userId, data.discountCode, self.clock())
        return quote.to_dict()

    def check_availability(self, data: CheckAvailabilityRequest) -> dict:
        business = self._get_business(data.businessId)
        services = self._get_services(business.id, data.serviceIds)
        day = parse_date(data.date)
        service_ids = [service.id for service in services]

        if data.staffId:
            staff_members = [get_explicit_staff(self.db, business.id, service_ids, data.staffId)]
        else:
            staff_members = find_capable_staff(self.db, business.id, service_ids)

        slots = find_available_slots(
            self.db,
            business,
            staff_members,
            day,
            sum(service.duration for service in services),
            self.clock(),
            data.startTime,
        )
        return {"date": day.isoformat(), "slots": slots}

    # ------------------------------------------------------------------
    # Client booking
    # ------------------------------------------------------------------

    async def create_booking(self, data: CreateBookingRequest) -> dict:
        now = self.clock()
        logger.info(f"📥 Booking request from user {data.userId} for business {data.businessId}")

        user = self._get_user(data.userId)
        business = self._get_business(data.businessId)
        services = self._get_services(business.id, data.serviceIds)
        service_ids = [service.id for service in services]

        day = parse_date(data.date)
        service_minutes = sum(service.duration for service in services)
        buffer_minutes = business.buffer_time or 0
        start_at, end_at, end_time = self._slot_times(day, data.startTime, service_minutes, buffer_minutes)

        staff = resolve_staff(
            self.db, business.id, service_ids, staff_choice(data.staffId), TimeWindow(start_at, end_at)
        )

        self._check_advance_window(business, start_at, now)

        quote = quote_booking(self.db, business, services, user.id, data.discountCode, now)

        self._lock_and_check(business.id, staff.id, start_at, end_at)

        status = (
            ReservationStatus.PENDING.value
            if business.require_confirmation
            else ReservationStatus.CONFIRMED.value
        )
        reservation = Reservation(
            business_id=business.id,
            client_id=user.id,
            staff_id=staff.id,
            client_name=user.full_name,
            client_phone=user.phone,
            client_email=user.email,
            staff_name=staff.full_name,
            services=quote.items,
            date=day,
            start_time=data.startTime,
            end_time=end_time,
            start_at=start_at,
            end_at=end_at,
            total_duration=quote.total_duration,
            subtotal=quote.subtotal,
            discount_amount=quote.discount_amount,
            discount_code=quote.discount.code if quote.discount else None,
            promotion_id=quote.discount.promotion_id if quote.discount else None,
            deposit_amount=quote.deposit_amount,
            deposit_paid=False,
            tip=0,
            total=quote.total,
            final_total=quote.total,
            status=status,
            source=data.source,
            client_notes=data.clientNotes,
            created_by=user.id,
        )
        record_status(reservation, status, now, changed_by=f"user:{user.id}", reason="Booking created")
        reservation = self.repo.create_reservation(self.db, reservation)

        logger.info(
            f"✅ Reservation {reservation.id} created: staff {staff.id}, "
            f"{start_at.isoformat()} - {end_at.isoformat()}, status {status}"
        )

        await self._after_booking(reservation, quote, now)

        return {
            "reservation": reservation,
            "requiresDeposit": quote.requires_deposit,
            "depositAmount": quote.deposit_amount,
        }

    async def _after_booking(self, reservation: Reservation, quote: PriceQuote, now: datetime) -> None:
        """Best-effort follow-ups; failures are logged and never undo the reservation"""
        context = f"reservation {reservation.id} (business {reservation.business_id})"

        if quote.discount and reservation.client_id:
            try:
                record_promotion_usage(
                    self.db, quote.discount.promotion_id, reservation.client_id, reservation.id, now
                )
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to record promotion usage for {context}: {e}")

        if reservation.client_id:
            try:
                self.clients.upsert_relation_booking(
                    self.db, reservation.client_id, reservation.business_id, reservation.total, now
                )
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to update client relation for {context}: {e}")

            try:
                self.clients.increment_booking_stats(self.db, reservation.client_id, reservation.total)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to update client stats for {context}: {e}")

        await self._notify_new_reservation(reservation, now)

    async def _notify_new_reservation(self, reservation: Reservation, now: datetime) -> None:
        context = f"reservation {reservation.id} (business {reservation.business_id})"
        try:
            await self.notifier.send_booking_confirmation(reservation)
        except Exception as e:
            logger.error(f"❌ Failed to send booking confirmation for {context}: {e}")

        try:
            await self.notifier.schedule_reminders(reservation, now)
        except Exception as e:
            logger.error(f"❌ Failed to schedule reminders for {context}: {e}")

        try:
            await self.notifier.schedule_review_request(reservation)
        except Exception as e:
            logger.error(f"❌ Failed to schedule review request for {context}: {e}")

        try:
            await self.notifier.notify_business_new_booking(reservation)
        except Exception as e:
            logger.error(f"❌ Failed to notify business owner for {context}: {e}")

    # ------------------------------------------------------------------
    # Business-side booking (walk-ins, waitlist conversion)
    # ------------------------------------------------------------------

    async def create_manual_appointment(self, data: ManualAppointmentRequest) -> Reservation:
        business = self._get_business(data.businessId)
        client = self._get_user(data.clientId) if data.clientId else None

        client_name = data.clientName or (client.full_name if client else None)
        if not client_name:
            raise BadRequestError("Client name is required for walk-in appointments")

        return await self.book_for_business(
            business=business,
            staff_id=data.staffId,
            service_ids=data.serviceIds,
            day=parse_date(data.date),
            start_time=data.startTime,
            client=client,
            client_name=client_name,
            client_phone=data.clientPhone or (client.phone if client else None),
            client_email=data.clientEmail or (client.email if client else None),
            source="app_business",
            created_by=data.createdBy,
            business_notes=data.businessNotes,
        )

    async def book_for_business(
        self,
        business: Business,
        staff_id: int,
        service_ids: list[int],
        day,
        start_time: str,
        client: Optional[User],
        client_name: str,
        client_phone: Optional[str],
        client_email: Optional[str],
        source: str,
        created_by: Optional[int] = None,
        business_notes: Optional[str] = None,
    ) -> Reservation:
        """Confirmed reservation entered by the business.

        No advance-window policy and no promotion codes. The staff member must
        be named and the calendar check includes the buffer.
        """
        now = self.clock()
        services = self._get_services(business.id, service_ids)
        ids = [service.id for service in services]
        service_minutes = sum(service.duration for service in services)
        buffer_minutes = business.buffer_time or 0
        start_at, end_at, end_time = self._slot_times(day, start_time, service_minutes, buffer_minutes)

        staff: Staff = resolve_staff(
            self.db, business.id, ids, ExplicitStaff(staff_id), TimeWindow(start_at, end_at)
        )
        self._lock_and_check(business.id, staff.id, start_at, end_at)

        items = build_line_items(services, now)
        subtotal = round_money(sum(item["price"] for item in items))
        status = ReservationStatus.CONFIRMED.value
        reservation = Reservation(
            business_id=business.id,
            client_id=client.id if client else None,
            staff_id=staff.id,
            client_name=client_name,
            client_phone=client_phone,
            client_email=client_email,
            staff_name=staff.full_name,
            services=items,
            date=day,
            start_time=start_time,
            end_time=end_time,
            start_at=start_at,
            end_at=end_at,
            total_duration=service_minutes + buffer_minutes,
            subtotal=subtotal,
            discount_amount=0,
            deposit_amount=0,
            deposit_paid=False,
            tip=0,
            total=subtotal,
            final_total=subtotal,
            status=status,
            source=source,
            business_notes=business_notes,
            created_by=created_by,
        )
        changed_by = f"user:{created_by}" if created_by else "business"
        record_status(reservation, status, now, changed_by=changed_by, reason=f"Created from {source}")
        reservation = self.repo.create_reservation(self.db, reservation)
        logger.info(f"✅ {source} reservation {reservation.id} created for staff {staff.id}")

        if client:
            try:
                self.clients.upsert_relation_booking(self.db, client.id, business.id, reservation.total, now)
                self.clients.increment_booking_stats(self.db, client.id, reservation.total)
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to update client stats for reservation {reservation.id}: {e}")

            await self._notify_new_reservation(reservation, now)

        return reservation

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def _mark_cancelled(
        self,
        reservation: Reservation,
        cancelled_by: str,
        reason: Optional[str],
        refund_amount: float,
        now: datetime,
        changed_by: str,
    ) -> None:
        transition(reservation, ReservationStatus.CANCELLED.value, now, changed_by, reason)
        reservation.cancelled_at = now
        reservation.cancelled_by = cancelled_by
        reservation.cancellation_reason = reason
        reservation.refund_amount = refund_amount
        reservation.refunded = refund_amount > 0

    async def cancel_booking(self, reservation_id: int, user_id: int, reason: Optional[str] = None) -> dict:
        now = self.clock()
        reservation = self._get_client_reservation(reservation_id, user_id, "cancel")

        outcome = evaluate_cancellation(reservation.business, reservation, now)
        self._mark_cancelled(reservation, "client", reason, outcome.refund_amount, now, f"user:{user_id}")
        reservation = self.repo.save(self.db, reservation)

        logger.info(
            f"✅ Reservation {reservation.id} cancelled by client {user_id}: "
            f"refund {outcome.refund_amount}, penalty {outcome.penalty_amount}"
        )

        await self._after_cancellation(reservation, count_against_client=True)

        return {
            "reservation": reservation,
            "refundAmount": outcome.refund_amount,
            "penaltyApplied": outcome.penalty_applied,
        }

    async def _after_cancellation(self, reservation: Reservation, count_against_client: bool) -> None:
        context = f"reservation {reservation.id} (business {reservation.business_id})"

        try:
            await self.notifier.cancel_scheduled(reservation.id)
        except Exception as e:
            logger.error(f"❌ Failed to cancel scheduled notifications for {context}: {e}")

        if count_against_client and reservation.client_id:
            try:
                self.clients.increment_cancellation_stats(self.db, reservation.client_id)
                self.clients.record_relation_cancellation(
                    self.db, reservation.client_id, reservation.business_id
                )
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to record cancellation stats for {context}: {e}")

        try:
            await self.notifier.send_booking_cancellation(reservation)
        except Exception as e:
            logger.error(f"❌ Failed to send cancellation notification for {context}: {e}")

        await self._backfill_waitlist(reservation)

    async def _backfill_waitlist(self, reservation: Reservation) -> None:
        from ..waitlist.service import WaitlistService

        try:
            waitlist = WaitlistService(self.db, self.notifier, self.clock)
            await waitlist.notify_next(reservation.business_id, reservation.id)
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"❌ Waitlist back-fill failed for business {reservation.business_id} "
                f"after reservation {reservation.id}: {e}"
            )

    # ------------------------------------------------------------------
    # Rescheduling
    # ------------------------------------------------------------------

    async def reschedule_booking(self, reservation_id: int, user_id: int, date: str, start_time: str) -> Reservation:
        now = self.clock()
        reservation = self._get_client_reservation(reservation_id, user_id, "reschedule")

        business = reservation.business
        if business.status != "active":
            raise NotFoundError("Business not found or not active")
        if not business.allow_rescheduling:
            raise BadRequestError("This business does not allow rescheduling")

        # Same services and occupancy as the original booking
        service_minutes = sum(item["duration"] for item in reservation.services)
        buffer_minutes = reservation.total_duration - service_minutes
        day = parse_date(date)
        start_at, end_at, end_time = self._slot_times(day, start_time, service_minutes, buffer_minutes)

        self._check_advance_window(business, start_at, now)
        self._lock_and_check(business.id, reservation.staff_id, start_at, end_at, exclude_id=reservation.id)

        previous_start = reservation.start_at
        reservation.date = day
        reservation.start_time = start_time
        reservation.end_time = end_time
        reservation.start_at = start_at
        reservation.end_at = end_at
        reservation = self.repo.save(self.db, reservation)

        logger.info(
            f"📅 Reservation {reservation.id} moved from {previous_start.isoformat()} to {start_at.isoformat()}"
        )

        context = f"reservation {reservation.id} (business {reservation.business_id})"
        try:
            await self.notifier.cancel_scheduled(reservation.id)
            await self.notifier.schedule_reminders(reservation, now)
            await self.notifier.schedule_review_request(reservation)
        except Exception as e:
            logger.error(f"❌ Failed to re-arm reminders for {context}: {e}")

        try:
            await self.notifier.send_booking_rescheduled(reservation, previous_start)
        except Exception as e:
            logger.error(f"❌ Failed to send reschedule notification for {context}: {e}")

        return reservation

    # ------------------------------------------------------------------
    # Business-side status changes
    # ------------------------------------------------------------------

    async def update_status(
        self,
        reservation_id: int,
        business_id: int,
        action: str,
        reason: Optional[str] = None,
        changed_by: Optional[str] = None,
    ) -> Reservation:
        now = self.clock()
        if action not in ACTIONS:
            raise BadRequestError(f"Invalid action: {action}")

        reservation = self.repo.get_business_reservation(self.db, reservation_id, business_id)
        if not reservation:
            raise NotFoundError("Appointment not found")

        target, allowed_from = ACTIONS[action]
        if reservation.status not in allowed_from:
            raise ConflictError(f"Cannot {action} an appointment with status {reservation.status}")

        actor = changed_by or "business"
        if target == ReservationStatus.CANCELLED.value:
            self._mark_cancelled(reservation, "business", reason, 0, now, actor)
        else:
            transition(reservation, target, now, actor, reason)

        reservation = self.repo.save(self.db, reservation)
        logger.info(f"✅ Reservation {reservation.id} is now {reservation.status} ({action} by {actor})")

        if target == ReservationStatus.CANCELLED.value:
            await self._after_cancellation(reservation, count_against_client=False)
            return reservation

        if target == ReservationStatus.NO_SHOW.value:
            try:
                await self.notifier.cancel_scheduled(reservation.id)
            except Exception as e:
                logger.error(f"❌ Failed to cancel scheduled notifications for reservation {reservation.id}: {e}")
            return reservation

        if target == ReservationStatus.CONFIRMED.value:
            try:
                await self.notifier.send_status_update(reservation)
            except Exception as e:
                logger.error(f"❌ Failed to send status update for reservation {reservation.id}: {e}")

        return reservation
