"""
Booking Notification Dispatcher
Queues client and business notifications on the arq worker, either right away
or deferred to a scheduled instant (reminders, review requests)
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from ..config import REMINDER_OFFSETS_HOURS, REVIEW_REQUEST_DELAY_HOURS
from ..domain.booking.time_utils import format_date
from ..models import Reservation, WaitlistEntry, WaitlistNotification

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = ["push", "email"]
OFFER_CHANNELS = ["push", "sms"]


def reminder_job_id(reservation_id: int, hours: int) -> str:
    return f"reminder-{hours}h-{reservation_id}"


def review_job_id(reservation_id: int) -> str:
    return f"review-{reservation_id}"


def reservation_payload(reservation: Reservation) -> dict:
    """Display data shared by every reservation notification"""
    return {
        "businessName": reservation.business.name if reservation.business else None,
        "staffName": reservation.staff_name,
        "clientName": reservation.client_name,
        "services": [item["name"] for item in reservation.services or []],
        "date": format_date(reservation.date),
        "time": reservation.start_time,
        "endTime": reservation.end_time,
        "startAt": reservation.start_at.isoformat(),
        "total": reservation.total,
    }


class NotificationDispatcher:
    """Schedule-or-send notifications through the arq job queue"""

    def __init__(self, redis_settings=None):
        self.redis_settings = redis_settings
        self._pool = None

    async def _get_pool(self):
        if self._pool is None:
            from arq import create_pool

            from ..worker import get_redis_settings

            self._pool = await create_pool(self.redis_settings or get_redis_settings())
        return self._pool

    async def _enqueue(self, job_id: Optional[str], payload: dict, defer_until: Optional[datetime]):
        pool = await self._get_pool()
        job = await pool.enqueue_job(
            "send_notification_task",
            payload,
            _job_id=job_id,
            _defer_until=defer_until,
        )
        if job is None:
            logger.warning(f"⚠️ Notification job {job_id} already queued - skipped")
            return None
        return job.job_id

    async def _abort(self, job_id: str) -> bool:
        from arq.constants import default_queue_name, job_key_prefix
        from arq.jobs import Job

        pool = await self._get_pool()
        # Deferred jobs are dropped from the queue so their ids can be reused
        if await pool.zrem(default_queue_name, job_id):
            await pool.delete(job_key_prefix + job_id)
            return True
        try:
            return await Job(job_id, pool).abort(timeout=0)
        except asyncio.TimeoutError:
            return False

    async def close(self):
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    # ------------------------------------------------------------------
    # Primitive operations
    # ------------------------------------------------------------------

    async def send_notification(
        self,
        user_id: int,
        notification_type: str,
        channels: Optional[list[str]] = None,
        business_id: Optional[int] = None,
        reservation_id: Optional[int] = None,
        data: Optional[dict] = None,
        scheduled_for: Optional[datetime] = None,
        job_id: Optional[str] = None,
    ) -> Optional[str]:
        payload = {
            "userId": user_id,
            "type": notification_type,
            "channels": channels or DEFAULT_CHANNELS,
            "businessId": business_id,
            "reservationId": reservation_id,
            "data": data or {},
            "scheduledFor": scheduled_for.isoformat() if scheduled_for else None,
        }
        queued = await self._enqueue(job_id, payload, scheduled_for)
        if scheduled_for:
            logger.info(f"📅 Scheduled {notification_type} for user {user_id} at {scheduled_for.isoformat()}")
        else:
            logger.info(f"🔔 Queued {notification_type} for user {user_id}")
        return queued

    async def cancel_scheduled(self, reservation_id: int) -> int:
        """Abort pending reminders and the review request of a reservation"""
        job_ids = [reminder_job_id(reservation_id, hours) for hours in REMINDER_OFFSETS_HOURS]
        job_ids.append(review_job_id(reservation_id))

        cancelled = 0
        for job_id in job_ids:
            if await self._abort(job_id):
                cancelled += 1
        logger.info(f"🗑️ Cancelled {cancelled} scheduled notifications for reservation {reservation_id}")
        return cancelled

    # ------------------------------------------------------------------
    # Reservation life-cycle
    # ------------------------------------------------------------------

    async def send_booking_confirmation(self, reservation: Reservation):
        if not reservation.client_id:
            return None
        notification_type = "booking_confirmed" if reservation.status == "confirmed" else "booking_pending"
        return await self.send_notification(
            reservation.client_id,
            notification_type,
            business_id=reservation.business_id,
            reservation_id=reservation.id,
            data=reservation_payload(reservation),
        )

    async def schedule_reminders(self, reservation: Reservation, now: datetime) -> list[str]:
        """Reminders before the start instant; offsets already in the past are skipped"""
        if not reservation.client_id:
            return []

        scheduled = []
        for hours in REMINDER_OFFSETS_HOURS:
            remind_at = reservation.start_at - timedelta(hours=hours)
            if remind_at <= now:
                continue
            data = reservation_payload(reservation)
            data["hoursBefore"] = hours
            await self.send_notification(
                reservation.client_id,
                "booking_reminder",
                business_id=reservation.business_id,
                reservation_id=reservation.id,
                data=data,
                scheduled_for=remind_at,
                job_id=reminder_job_id(reservation.id, hours),
            )
            scheduled.append(reminder_job_id(reservation.id, hours))
        return scheduled

    async def schedule_review_request(self, reservation: Reservation):
        if not reservation.client_id:
            return None
        return await self.send_notification(
            reservation.client_id,
            "review_request",
            business_id=reservation.business_id,
            reservation_id=reservation.id,
            data=reservation_payload(reservation),
            scheduled_for=reservation.end_at + timedelta(hours=REVIEW_REQUEST_DELAY_HOURS),
            job_id=review_job_id(reservation.id),
        )

    async def notify_business_new_booking(self, reservation: Reservation):
        business = reservation.business
        if not business or not business.owner_user_id:
            logger.debug(f"⚠️ Business {reservation.business_id} has no owner to notify")
            return None
        return await self.send_notification(
            business.owner_user_id,
            "new_booking",
            channels=["push"],
            business_id=reservation.business_id,
            reservation_id=reservation.id,
            data=reservation_payload(reservation),
        )

    async def send_booking_cancellation(self, reservation: Reservation):
        data = reservation_payload(reservation)
        data["cancelledBy"] = reservation.cancelled_by
        data["refundAmount"] = reservation.refund_amount
        if reservation.client_id:
            await self.send_notification(
                reservation.client_id,
                "booking_cancelled",
                business_id=reservation.business_id,
                reservation_id=reservation.id,
                data=data,
            )
        business = reservation.business
        if reservation.cancelled_by == "client" and business and business.owner_user_id:
            await self.send_notification(
                business.owner_user_id,
                "booking_cancelled",
                channels=["push"],
                business_id=reservation.business_id,
                reservation_id=reservation.id,
                data=data,
            )

    async def send_booking_rescheduled(self, reservation: Reservation, previous_start: datetime):
        data = reservation_payload(reservation)
        data["previousDate"] = format_date(previous_start)
        data["previousTime"] = previous_start.strftime("%H:%M")
        if reservation.client_id:
            await self.send_notification(
                reservation.client_id,
                "booking_rescheduled",
                business_id=reservation.business_id,
                reservation_id=reservation.id,
                data=data,
            )
        business = reservation.business
        if business and business.owner_user_id:
            await self.send_notification(
                business.owner_user_id,
                "booking_rescheduled",
                channels=["push"],
                business_id=reservation.business_id,
                reservation_id=reservation.id,
                data=data,
            )

    async def send_status_update(self, reservation: Reservation):
        if not reservation.client_id:
            return None
        data = reservation_payload(reservation)
        data["status"] = reservation.status
        return await self.send_notification(
            reservation.client_id,
            f"booking_{reservation.status}",
            business_id=reservation.business_id,
            reservation_id=reservation.id,
            data=data,
        )

    # ------------------------------------------------------------------
    # Waitlist
    # ------------------------------------------------------------------

    async def send_waitlist_offer(self, entry: WaitlistEntry, notification: WaitlistNotification):
        return await self.send_notification(
            entry.client_id,
            "waitlist_slot_available",
            channels=OFFER_CHANNELS,
            business_id=entry.business_id,
            reservation_id=notification.reservation_id,
            data={
                "waitlistEntryId": entry.id,
                "notificationId": notification.id,
                "expiresAt": notification.expires_at.isoformat(),
            },
        )
