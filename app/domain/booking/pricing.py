"""Cart pricing shared by the price preview and booking creation"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Business, Service
from .discounts import AppliedDiscount, validate_discount


def round_money(amount: float) -> float:
    return round(amount, 2)


@dataclass
class PriceQuote:
    items: list[dict]
    subtotal: float
    service_minutes: int
    buffer_minutes: int
    discount: Optional[AppliedDiscount] = None
    discount_amount: float = 0
    total: float = 0
    requires_deposit: bool = False
    deposit_amount: float = 0

    @property
    def total_duration(self) -> int:
        return self.service_minutes + self.buffer_minutes

    def to_dict(self) -> dict:
        return {
            "items": self.items,
            "subtotal": self.subtotal,
            "discountAmount": self.discount_amount,
            "promotion": self.discount.to_dict() if self.discount else None,
            "total": self.total,
            "requiresDeposit": self.requires_deposit,
            "depositAmount": self.deposit_amount,
            "serviceDuration": self.service_minutes,
            "totalDuration": self.total_duration,
        }


def build_line_items(services: list[Service], now: datetime) -> list[dict]:
    """Snapshot of each service at its current promotional price"""
    items = []
    for service in services:
        final_price = round_money(service.final_price(now))
        items.append(
            {
                "serviceId": service.id,
                "name": service.name,
                "duration": service.duration,
                "price": final_price,
                "discount": round_money(service.price - final_price),
            }
        )
    return items


def calculate_deposit(business: Business, total: float) -> float:
    if not business.require_deposit:
        return 0
    if business.deposit_type == "percentage":
        return round_money(min(total * business.deposit_amount / 100, total))
    return round_money(min(business.deposit_amount, total))


def quote_booking(
    db: Session,
    business: Business,
    services: list[Service],
    user_id: Optional[int],
    discount_code: Optional[str],
    now: datetime,
) -> PriceQuote:
    items = build_line_items(services, now)
    subtotal = round_money(sum(item["price"] for item in items))

    discount = validate_discount(
        db,
        discount_code,
        business.id,
        user_id,
        subtotal,
        [service.id for service in services],
        now,
    )
    discount_amount = discount.discount_amount if discount else 0
    total = round_money(max(0, subtotal - discount_amount))

    return PriceQuote(
        items=items,
        subtotal=subtotal,
        service_minutes=sum(service.duration for service in services),
        buffer_minutes=business.buffer_time or 0,
        discount=discount,
        discount_amount=discount_amount,
        total=total,
        requires_deposit=bool(business.require_deposit),
        deposit_amount=calculate_deposit(business, total),
    )
