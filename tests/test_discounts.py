from datetime import datetime

from app.domain.booking.discounts import (
    calculate_discount_amount,
    record_promotion_usage,
    validate_discount,
)
from app.models import Promotion, PromotionUsage
from helpers import NOW, make_business, make_promotion, make_service, make_user


def test_percentage_discount_is_capped_by_max_amount():
    promotion = Promotion(discount_type="percentage", discount_value=50, max_discount_amount=30)
    assert calculate_discount_amount(promotion, 100) == 30

    promotion.max_discount_amount = None
    assert calculate_discount_amount(promotion, 100) == 50


def test_fixed_discount_never_exceeds_subtotal():
    promotion = Promotion(discount_type="fixed", discount_value=80)
    assert calculate_discount_amount(promotion, 50) == 50
    assert calculate_discount_amount(promotion, 200) == 80


def test_code_lookup_is_case_insensitive_and_business_scoped(db):
    business = make_business(db)
    other = make_business(db, name="Other")
    user = make_user(db)
    service = make_service(db, business)
    make_promotion(db, business, code="WELCOME10")

    applied = validate_discount(db, "welcome10", business.id, user.id, 100, [service.id], NOW)
    assert applied is not None
    assert applied.discount_amount == 10
    assert applied.code == "WELCOME10"

    assert validate_discount(db, "WELCOME10", other.id, user.id, 100, [service.id], NOW) is None


def test_unknown_inactive_or_out_of_window_codes_do_not_apply(db):
    business = make_business(db)
    user = make_user(db)
    make_promotion(db, business, code="PAUSED", status="paused")
    make_promotion(db, business, code="LATER", valid_from=datetime(2030, 6, 1))

    assert validate_discount(db, None, business.id, user.id, 100, [1], NOW) is None
    assert validate_discount(db, "NOPE", business.id, user.id, 100, [1], NOW) is None
    assert validate_discount(db, "PAUSED", business.id, user.id, 100, [1], NOW) is None
    assert validate_discount(db, "LATER", business.id, user.id, 100, [1], NOW) is None


def test_usage_limits_and_minimum_purchase(db):
    business = make_business(db)
    user = make_user(db)
    make_promotion(db, business, code="USEDUP", total_uses=5, current_uses=5)
    personal = make_promotion(db, business, code="ONCE", uses_per_client=1)
    make_promotion(db, business, code="BIGCART", min_purchase=150)

    assert validate_discount(db, "USEDUP", business.id, user.id, 100, [1], NOW) is None
    assert validate_discount(db, "BIGCART", business.id, user.id, 100, [1], NOW) is None
    assert validate_discount(db, "BIGCART", business.id, user.id, 150, [1], NOW) is not None

    assert validate_discount(db, "ONCE", business.id, user.id, 100, [1], NOW) is not None
    db.add(PromotionUsage(promotion_id=personal.id, user_id=user.id, reservation_id=1, used_at=NOW))
    db.commit()
    assert validate_discount(db, "ONCE", business.id, user.id, 100, [1], NOW) is None


def test_service_restriction_applies_when_any_service_matches(db):
    business = make_business(db)
    user = make_user(db)
    color = make_service(db, business, name="Color")
    cut = make_service(db, business, name="Cut")
    nails = make_service(db, business, name="Nails")
    make_promotion(db, business, code="COLOR", service_ids=[color.id])

    assert validate_discount(db, "COLOR", business.id, user.id, 100, [cut.id, color.id], NOW) is not None
    assert validate_discount(db, "COLOR", business.id, user.id, 100, [cut.id, nails.id], NOW) is None


def test_validation_has_no_side_effects(db):
    business = make_business(db)
    user = make_user(db)
    promotion = make_promotion(db, business, code="TWICE", total_uses=1)

    first = validate_discount(db, "TWICE", business.id, user.id, 80, [1], NOW)
    second = validate_discount(db, "TWICE", business.id, user.id, 80, [1], NOW)

    assert first == second
    db.refresh(promotion)
    assert promotion.current_uses == 0
    assert db.query(PromotionUsage).count() == 0


def test_usage_is_recorded_once_per_reservation(db):
    business = make_business(db)
    user = make_user(db)
    promotion = make_promotion(db, business)

    assert record_promotion_usage(db, promotion.id, user.id, 42, NOW) is True
    assert record_promotion_usage(db, promotion.id, user.id, 42, NOW) is False

    db.refresh(promotion)
    assert promotion.current_uses == 1
    assert db.query(PromotionUsage).count() == 1
