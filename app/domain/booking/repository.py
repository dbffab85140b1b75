"""Booking repository - Database operations for reservations and their lookups"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Business, Reservation, Service, User


class BookingRepository:
    """Repository for reservation database operations"""

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id, User.status != "deleted").first()

    @staticmethod
    def get_active_business(db: Session, business_id: int) -> Optional[Business]:
        return (
            db.query(Business)
            .filter(Business.id == business_id, Business.status == "active")
            .first()
        )

    @staticmethod
    def get_active_services(db: Session, business_id: int, service_ids: list[int]) -> list[Service]:
        """Active services of the business, returned in the requested order"""
        services = (
            db.query(Service)
            .filter(
                Service.id.in_(service_ids),
                Service.business_id == business_id,
                Service.status == "active",
            )
            .all()
        )
        by_id = {service.id: service for service in services}
        return [by_id[service_id] for service_id in service_ids if service_id in by_id]

    @staticmethod
    def get_reservation(db: Session, reservation_id: int) -> Optional[Reservation]:
        return db.query(Reservation).filter(Reservation.id == reservation_id).first()

    @staticmethod
    def get_client_reservation(db: Session, reservation_id: int, user_id: int) -> Optional[Reservation]:
        """A reservation owned by the client, in any status"""
        return (
            db.query(Reservation)
            .filter(Reservation.id == reservation_id, Reservation.client_id == user_id)
            .first()
        )

    @staticmethod
    def get_business_reservation(
        db: Session, reservation_id: int, business_id: int
    ) -> Optional[Reservation]:
        return (
            db.query(Reservation)
            .filter(Reservation.id == reservation_id, Reservation.business_id == business_id)
            .first()
        )

    @staticmethod
    def create_reservation(db: Session, reservation: Reservation) -> Reservation:
        db.add(reservation)
        db.commit()
        db.refresh(reservation)
        return reservation

    @staticmethod
    def save(db: Session, reservation: Reservation) -> Reservation:
        db.commit()
        db.refresh(reservation)
        return reservation
