"""Waitlist repository - Database operations for waitlist entries and offers"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from ...models import WaitlistEntry, WaitlistNotification


class WaitlistRepository:
    """Repository for waitlist database operations"""

    @staticmethod
    def get_entry(db: Session, entry_id: int) -> Optional[WaitlistEntry]:
        return db.query(WaitlistEntry).filter(WaitlistEntry.id == entry_id).first()

    @staticmethod
    def get_active_business_entry(db: Session, entry_id: int, business_id: int) -> Optional[WaitlistEntry]:
        return (
            db.query(WaitlistEntry)
            .filter(
                WaitlistEntry.id == entry_id,
                WaitlistEntry.business_id == business_id,
                WaitlistEntry.status == "active",
            )
            .first()
        )

    @staticmethod
    def get_active_client_entry(db: Session, entry_id: int, client_id: int) -> Optional[WaitlistEntry]:
        return (
            db.query(WaitlistEntry)
            .filter(
                WaitlistEntry.id == entry_id,
                WaitlistEntry.client_id == client_id,
                WaitlistEntry.status == "active",
            )
            .first()
        )

    @staticmethod
    def get_active_client_entries(db: Session, client_id: int, business_id: int) -> list[WaitlistEntry]:
        return (
            db.query(WaitlistEntry)
            .filter(
                WaitlistEntry.client_id == client_id,
                WaitlistEntry.business_id == business_id,
                WaitlistEntry.status == "active",
            )
            .all()
        )

    @staticmethod
    def get_next_in_line(
        db: Session,
        business_id: int,
        now: datetime,
        freed_reservation_id: Optional[int] = None,
        exclude_entry_ids: Iterable[int] = (),
    ) -> Optional[WaitlistEntry]:
        """Active, unexpired entry first in line: vip before normal, then oldest.

        Entries that were already offered the freed reservation, and the ones
        listed in `exclude_entry_ids`, are passed over.
        """
        query = db.query(WaitlistEntry).filter(
            WaitlistEntry.business_id == business_id,
            WaitlistEntry.status == "active",
            or_(WaitlistEntry.expires_at.is_(None), WaitlistEntry.expires_at > now),
        )
        if freed_reservation_id is not None:
            query = query.filter(
                ~WaitlistEntry.notifications.any(
                    WaitlistNotification.reservation_id == freed_reservation_id
                )
            )
        exclude_entry_ids = list(exclude_entry_ids)
        if exclude_entry_ids:
            query = query.filter(WaitlistEntry.id.notin_(exclude_entry_ids))
        return query.order_by(
            case((WaitlistEntry.priority == "vip", 0), else_=1),
            WaitlistEntry.created_at,
            WaitlistEntry.id,
        ).first()

    @staticmethod
    def get_notification(db: Session, entry_id: int, notification_id: int) -> Optional[WaitlistNotification]:
        return (
            db.query(WaitlistNotification)
            .filter(
                WaitlistNotification.id == notification_id,
                WaitlistNotification.entry_id == entry_id,
            )
            .first()
        )

    @staticmethod
    def get_lapsed_offers(db: Session, now: datetime) -> list[WaitlistNotification]:
        return (
            db.query(WaitlistNotification)
            .filter(WaitlistNotification.status == "sent", WaitlistNotification.expires_at < now)
            .order_by(WaitlistNotification.id)
            .all()
        )

    @staticmethod
    def get_expired_entries(db: Session, now: datetime) -> list[WaitlistEntry]:
        return (
            db.query(WaitlistEntry)
            .filter(WaitlistEntry.status == "active", WaitlistEntry.expires_at < now)
            .all()
        )

    @staticmethod
    def create_entry(db: Session, entry: WaitlistEntry) -> WaitlistEntry:
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry

    @staticmethod
    def save(db: Session) -> None:
        db.commit()
