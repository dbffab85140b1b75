"""Client repository - Database operations for client stats and business relations"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import ClientBusinessRelation, User


class ClientRepository:
    """Repository for client aggregates kept alongside reservations"""

    @staticmethod
    def get_relation(db: Session, client_id: int, business_id: int) -> Optional[ClientBusinessRelation]:
        return (
            db.query(ClientBusinessRelation)
            .filter(
                ClientBusinessRelation.client_id == client_id,
                ClientBusinessRelation.business_id == business_id,
            )
            .first()
        )

    @staticmethod
    def upsert_relation_booking(
        db: Session, client_id: int, business_id: int, amount: float, visit_at: datetime
    ) -> ClientBusinessRelation:
        """Count a booking against the client-business relation, creating it on first visit"""
        relation = ClientRepository.get_relation(db, client_id, business_id)
        if not relation:
            relation = ClientBusinessRelation(
                client_id=client_id,
                business_id=business_id,
                total_bookings=0,
                total_spent=0,
                total_cancellations=0,
                first_visit_at=visit_at,
            )
            db.add(relation)

        relation.total_bookings = (relation.total_bookings or 0) + 1
        relation.total_spent = (relation.total_spent or 0) + amount
        relation.last_visit_at = visit_at
        db.commit()
        db.refresh(relation)
        return relation

    @staticmethod
    def record_relation_cancellation(db: Session, client_id: int, business_id: int) -> None:
        db.query(ClientBusinessRelation).filter(
            ClientBusinessRelation.client_id == client_id,
            ClientBusinessRelation.business_id == business_id,
        ).update(
            {ClientBusinessRelation.total_cancellations: ClientBusinessRelation.total_cancellations + 1},
            synchronize_session=False,
        )
        db.commit()

    @staticmethod
    def increment_booking_stats(db: Session, user_id: int, amount: float) -> None:
        db.query(User).filter(User.id == user_id).update(
            {
                User.total_appointments: User.total_appointments + 1,
                User.total_spent: User.total_spent + amount,
            },
            synchronize_session=False,
        )
        db.commit()

    @staticmethod
    def increment_cancellation_stats(db: Session, user_id: int) -> None:
        db.query(User).filter(User.id == user_id).update(
            {User.cancelled_appointments: User.cancelled_appointments + 1},
            synchronize_session=False,
        )
        db.commit()
