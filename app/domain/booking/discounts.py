"""Promotion code evaluation

Validation is read-only. Usage is recorded separately, once the reservation
it applies to has been persisted.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Promotion, PromotionUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppliedDiscount:
    promotion_id: int
    code: str
    name: str
    discount_type: str
    discount_value: float
    discount_amount: float

    def to_dict(self) -> dict:
        return {
            "promotionId": self.promotion_id,
            "code": self.code,
            "name": self.name,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "discountAmount": self.discount_amount,
        }


def calculate_discount_amount(promotion: Promotion, subtotal: float) -> float:
    if promotion.discount_type == "percentage":
        amount = subtotal * promotion.discount_value / 100
        if promotion.max_discount_amount is not None:
            amount = min(amount, promotion.max_discount_amount)
    else:
        amount = min(promotion.discount_value, subtotal)
    return round(max(amount, 0), 2)


def find_active_promotion(db: Session, code: str, business_id: int, now: datetime) -> Optional[Promotion]:
    return (
        db.query(Promotion)
        .filter(
            Promotion.code == code.strip().upper(),
            Promotion.business_id == business_id,
            Promotion.status == "active",
            Promotion.valid_from <= now,
            Promotion.valid_until >= now,
        )
        .first()
    )


def count_user_usages(db: Session, promotion_id: int, user_id: int) -> int:
    return (
        db.query(func.count(PromotionUsage.id))
        .filter(PromotionUsage.promotion_id == promotion_id, PromotionUsage.user_id == user_id)
        .scalar()
        or 0
    )


def validate_discount(
    db: Session,
    code: Optional[str],
    business_id: int,
    user_id: Optional[int],
    subtotal: float,
    service_ids: list[int],
    now: datetime,
) -> Optional[AppliedDiscount]:
    """Return the discount a code grants for this cart, or None if it does not apply"""
    if not code or not code.strip():
        return None

    promotion = find_active_promotion(db, code, business_id, now)
    if not promotion:
        logger.info(f"⚠️ Promotion code {code!r} not found or inactive for business {business_id}")
        return None

    if promotion.total_uses is not None and promotion.current_uses >= promotion.total_uses:
        logger.info(f"⚠️ Promotion {promotion.id} reached its usage limit")
        return None

    if promotion.uses_per_client is not None and user_id is not None:
        if count_user_usages(db, promotion.id, user_id) >= promotion.uses_per_client:
            logger.info(f"⚠️ User {user_id} reached usage limit for promotion {promotion.id}")
            return None

    if promotion.min_purchase is not None and subtotal < promotion.min_purchase:
        return None

    # Restricted promotions apply when the cart contains any eligible service
    if promotion.service_ids and not set(promotion.service_ids) & set(service_ids):
        return None

    return AppliedDiscount(
        promotion_id=promotion.id,
        code=promotion.code,
        name=promotion.name,
        discount_type=promotion.discount_type,
        discount_value=promotion.discount_value,
        discount_amount=calculate_discount_amount(promotion, subtotal),
    )


def record_promotion_usage(
    db: Session, promotion_id: int, user_id: int, reservation_id: int, used_at: datetime
) -> bool:
    """Count one use of a promotion for a reservation. Returns False if already counted."""
    existing = (
        db.query(PromotionUsage)
        .filter(
            PromotionUsage.promotion_id == promotion_id,
            PromotionUsage.reservation_id == reservation_id,
        )
        .first()
    )
    if existing:
        logger.info(f"⚠️ Promotion {promotion_id} already recorded for reservation {reservation_id}")
        return False

    db.add(
        PromotionUsage(
            promotion_id=promotion_id,
            user_id=user_id,
            reservation_id=reservation_id,
            used_at=used_at,
        )
    )
    db.query(Promotion).filter(Promotion.id == promotion_id).update(
        {Promotion.current_uses: Promotion.current_uses + 1}, synchronize_session=False
    )
    try:
        db.commit()
    except IntegrityError:
        # Concurrent recorder won the unique (promotion, reservation) row
        db.rollback()
        return False

    logger.info(f"✅ Recorded promotion {promotion_id} usage for reservation {reservation_id}")
    return True
