"""Waitlist service - Queueing clients for full calendars and offering freed slots"""

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from ...config import WAITLIST_DEFAULT_EXPIRY_DAYS, WAITLIST_OFFER_MINUTES
from ...models import Reservation, WaitlistEntry, WaitlistNotification
from ...services.notification_service import NotificationDispatcher
from ...shared.errors import BadRequestError, ConflictError, NotFoundError
from ..booking.repository import BookingRepository
from ..booking.service import BookingService
from ..booking.staff_resolver import get_active_staff
from ..booking.time_utils import parse_date, time_to_minutes
from .repository import WaitlistRepository
from .schemas import CreateWaitlistEntryRequest

logger = logging.getLogger(__name__)


class WaitlistService:
    """Service layer for waitlist business logic"""

    def __init__(
        self,
        db: Session,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.repo = WaitlistRepository()
        self.bookings = BookingRepository()
        self.notifier = notifier or NotificationDispatcher()
        self.clock = clock

    def create_entry(self, data: CreateWaitlistEntryRequest) -> WaitlistEntry:
        """Put a client on a business waitlist"""
        now = self.clock()
        logger.info(f"📥 Waitlist request from user {data.userId} for business {data.businessId}")

        if not self.bookings.get_user(self.db, data.userId):
            raise NotFoundError("User not found")

        business = self.bookings.get_active_business(self.db, data.businessId)
        if not business:
            raise NotFoundError("Business not found or not active")
        if not business.allow_waitlist:
            raise BadRequestError("This business does not accept waitlist entries")

        services = self.bookings.get_active_services(self.db, business.id, data.serviceIds)
        if len(services) != len(data.serviceIds):
            raise BadRequestError("One or more services not found or not available")

        if data.staffId and not get_active_staff(self.db, business.id, data.staffId):
            raise NotFoundError("Staff not found")

        date_from = parse_date(data.dateFrom) if data.dateFrom else None
        date_to = parse_date(data.dateTo) if data.dateTo else None
        if date_from and date_to and date_from > date_to:
            raise BadRequestError("dateFrom must be on or before dateTo")
        if data.timeFrom and data.timeTo and time_to_minutes(data.timeFrom) >= time_to_minutes(data.timeTo):
            raise BadRequestError("timeFrom must be before timeTo")

        expires_at = data.expiresAt or now + timedelta(days=WAITLIST_DEFAULT_EXPIRY_DAYS)
        if expires_at <= now:
            raise BadRequestError("Expiry must be in the future")

        wanted = set(data.serviceIds)
        for existing in self.repo.get_active_client_entries(self.db, data.userId, business.id):
            if wanted & set(existing.service_ids or []):
                raise ConflictError("Client already has a waitlist entry for this service")

        entry = WaitlistEntry(
            business_id=business.id,
            client_id=data.userId,
            service_ids=data.serviceIds,
            staff_id=data.staffId,
            date_from=date_from,
            date_to=date_to,
            time_from=data.timeFrom,
            time_to=data.timeTo,
            days_of_week=data.daysOfWeek,
            priority=data.priority,
            status="active",
            expires_at=expires_at,
            created_at=now,
        )
        entry = self.repo.create_entry(self.db, entry)
        logger.info(f"✅ Waitlist entry {entry.id} created for user {data.userId} ({data.priority})")
        return entry

    async def notify_next(
        self,
        business_id: int,
        freed_reservation_id: Optional[int] = None,
        skip_entry_ids: Iterable[int] = (),
    ) -> Optional[WaitlistEntry]:
        """Offer a freed slot to whoever is first in line. The slot is not held.

        `skip_entry_ids` are entries that just turned the slot down or let it lapse.
        """
        now = self.clock()
        entry = self.repo.get_next_in_line(
            self.db, business_id, now, freed_reservation_id, exclude_entry_ids=skip_entry_ids
        )
        if not entry:
            logger.debug(f"No one in waitlist to notify for business {business_id}")
            return None

        notification = WaitlistNotification(
            reservation_id=freed_reservation_id,
            sent_at=now,
            expires_at=now + timedelta(minutes=WAITLIST_OFFER_MINUTES),
            status="sent",
        )
        entry.notifications.append(notification)
        self.repo.save(self.db)
        self.db.refresh(entry)

        logger.info(
            f"🔔 Waitlist entry {entry.id} offered slot of reservation {freed_reservation_id} "
            f"until {notification.expires_at.isoformat()}"
        )

        try:
            await self.notifier.send_waitlist_offer(entry, notification)
        except Exception as e:
            logger.error(f"❌ Failed to send waitlist offer for entry {entry.id} (business {business_id}): {e}")

        return entry

    def _get_open_offer(self, entry_id: int, notification_id: int, user_id: int):
        entry = self.repo.get_active_client_entry(self.db, entry_id, user_id)
        if not entry:
            raise NotFoundError("Waitlist entry not found")

        notification = self.repo.get_notification(self.db, entry.id, notification_id)
        if not notification:
            raise NotFoundError("Notification not found")
        if notification.status != "sent":
            raise BadRequestError("This offer has already been responded to")
        return entry, notification

    def accept_offer(self, entry_id: int, notification_id: int, user_id: int) -> dict:
        """Claim an offer; the client then books the slot through the normal booking flow"""
        now = self.clock()
        entry, notification = self._get_open_offer(entry_id, notification_id, user_id)

        if now > notification.expires_at:
            notification.status = "expired"
            self.repo.save(self.db)
            raise BadRequestError("This offer has expired")

        notification.status = "accepted"
        entry.status = "fulfilled"
        self.repo.save(self.db)
        self.db.refresh(entry)

        slot = None
        if notification.reservation_id:
            released: Optional[Reservation] = self.bookings.get_reservation(self.db, notification.reservation_id)
            if released and released.status == "cancelled":
                slot = {
                    "date": released.date,
                    "startTime": released.start_time,
                    "staffId": released.staff_id,
                    "serviceIds": [item["serviceId"] for item in released.services],
                }

        logger.info(f"✅ User {user_id} accepted waitlist offer {notification_id} for entry {entry_id}")
        return {
            "entry": entry,
            "message": "Slot accepted! Please complete your booking.",
            "slot": slot,
        }

    async def decline_offer(self, entry_id: int, notification_id: int, user_id: int) -> WaitlistEntry:
        """Turn down an offer; the client stays on the waitlist and the next in line is asked"""
        entry, notification = self._get_open_offer(entry_id, notification_id, user_id)

        notification.status = "declined"
        self.repo.save(self.db)
        logger.info(f"👋 User {user_id} declined waitlist offer {notification_id} for entry {entry_id}")

        await self.notify_next(entry.business_id, notification.reservation_id, skip_entry_ids=[entry.id])
        self.db.refresh(entry)
        return entry

    async def convert_to_reservation(
        self,
        entry_id: int,
        business_id: int,
        staff_id: int,
        date: str,
        start_time: str,
        created_by: Optional[int] = None,
    ) -> dict:
        """Book a confirmed reservation for a waitlisted client"""
        now = self.clock()
        entry = self.repo.get_active_business_entry(self.db, entry_id, business_id)
        if not entry:
            raise NotFoundError("Waitlist entry not found")

        client = self.bookings.get_user(self.db, entry.client_id)
        if not client:
            raise NotFoundError("User not found")
        business = self.bookings.get_active_business(self.db, business_id)
        if not business:
            raise NotFoundError("Business not found or not active")

        booking = BookingService(self.db, self.notifier, self.clock)
        reservation = await booking.book_for_business(
            business=business,
            staff_id=staff_id,
            service_ids=entry.service_ids,
            day=parse_date(date),
            start_time=start_time,
            client=client,
            client_name=client.full_name,
            client_phone=client.phone,
            client_email=client.email,
            source="waitlist",
            created_by=created_by,
        )

        entry.status = "fulfilled"
        entry.notifications.append(
            WaitlistNotification(
                reservation_id=reservation.id,
                sent_at=now,
                expires_at=now,
                status="accepted",
            )
        )
        self.repo.save(self.db)
        self.db.refresh(entry)

        logger.info(f"✅ Waitlist entry {entry.id} converted to reservation {reservation.id}")
        return {"entry": entry, "reservation": reservation}

    def cancel_entry(self, entry_id: int, business_id: int) -> WaitlistEntry:
        entry = self.repo.get_active_business_entry(self.db, entry_id, business_id)
        if not entry:
            raise NotFoundError("Waitlist entry not found")

        entry.status = "cancelled"
        self.repo.save(self.db)
        self.db.refresh(entry)
        logger.info(f"🗑️ Waitlist entry {entry.id} cancelled by business {business_id}")
        return entry

    async def expire_offers(self) -> dict:
        """Lapse unanswered offers and old entries, then offer each affected business's slot again"""
        now = self.clock()

        lapsed = self.repo.get_lapsed_offers(self.db, now)
        # business id -> (freed reservation, entries whose offer lapsed)
        backfill: dict[int, tuple[Optional[int], list[int]]] = {}
        for notification in lapsed:
            notification.status = "expired"
            _, skipped = backfill.setdefault(notification.entry.business_id, (notification.reservation_id, []))
            skipped.append(notification.entry_id)

        expired_entries = self.repo.get_expired_entries(self.db, now)
        for entry in expired_entries:
            entry.status = "expired"

        self.repo.save(self.db)

        if lapsed or expired_entries:
            logger.info(f"⏰ Expired {len(lapsed)} waitlist offers and {len(expired_entries)} entries")

        notified = 0
        for business_id, (reservation_id, skipped) in backfill.items():
            try:
                if await self.notify_next(business_id, reservation_id, skip_entry_ids=skipped):
                    notified += 1
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Waitlist back-fill failed for business {business_id}: {e}")

        return {
            "expiredOffers": len(lapsed),
            "expiredEntries": len(expired_entries),
            "notified": notified,
        }
