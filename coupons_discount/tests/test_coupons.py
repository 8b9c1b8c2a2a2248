from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from coupons_discount.exceptions import InvalidCoupon
from coupons_discount.models import Coupon
from coupons_discount.services import compute_discount, record_coupon_use, resolve_coupon

pytestmark = pytest.mark.django_db


def test_code_is_stored_uppercase(coupon_factory):
    coupon = coupon_factory(code="  festive50 ")
    assert coupon.code == "FESTIVE50"


class TestLookup:
    def test_lookup_ignores_case(self, coupon_factory):
        coupon_factory(code="WELCOME")
        assert resolve_coupon("welcome", Decimal("1000")).code == "WELCOME"

    def test_unknown(self):
        with pytest.raises(InvalidCoupon, match="not found"):
            resolve_coupon("GHOST", Decimal("1000"))

    def test_inactive(self, coupon_factory):
        coupon_factory(code="OFF", is_active=False)
        with pytest.raises(InvalidCoupon, match="not active"):
            resolve_coupon("OFF", Decimal("1000"))

    def test_expired(self, coupon_factory):
        coupon_factory(code="OLD", valid_until=timezone.now() - timedelta(days=1))
        with pytest.raises(InvalidCoupon, match="expired"):
            resolve_coupon("OLD", Decimal("1000"))

    def test_not_started(self, coupon_factory):
        coupon_factory(code="SOON", valid_from=timezone.now() + timedelta(days=1))
        with pytest.raises(InvalidCoupon, match="not available"):
            resolve_coupon("SOON", Decimal("1000"))

    def test_used_up(self, coupon_factory):
        coupon_factory(code="ONCE", max_uses=1, uses_count=1)
        with pytest.raises(InvalidCoupon, match="not available"):
            resolve_coupon("ONCE", Decimal("1000"))

    def test_minimum_order_value(self, coupon_factory):
        coupon_factory(code="BIG", min_order_value=Decimal("5000"))
        with pytest.raises(InvalidCoupon, match="Minimum order value"):
            resolve_coupon("BIG", Decimal("4999"))


class TestDiscount:
    def test_flat(self, coupon_factory):
        coupon = coupon_factory(discount_value=Decimal("150"))
        assert compute_discount(coupon, Decimal("1000")) == Decimal("150")

    def test_flat_never_exceeds_order_value(self, coupon_factory):
        coupon = coupon_factory(discount_value=Decimal("1500"))
        assert compute_discount(coupon, Decimal("1000")) == Decimal("1000")

    def test_percentage_rounds_to_whole_units(self, coupon_factory):
        coupon = coupon_factory(discount_type=Coupon.DiscountType.PERCENTAGE, discount_value=Decimal("12.5"))
        assert compute_discount(coupon, Decimal("999")) == Decimal("125")

    def test_percentage_cap(self, coupon_factory):
        coupon = coupon_factory(
            discount_type=Coupon.DiscountType.PERCENTAGE,
            discount_value=Decimal("50"),
            max_discount_amount=Decimal("200"),
        )
        assert compute_discount(coupon, Decimal("1000")) == Decimal("200")


class TestEffects:
    def test_reduce_days(self, coupon_factory):
        coupon_factory(code="DAYS", coupon_type=Coupon.CouponType.REDUCE_DAYS, discount_value=Decimal("250"))

        effect = resolve_coupon("DAYS", Decimal("1000"))

        assert effect.reduces_days
        assert effect.discount == Decimal("250")

    def test_milestone(self, coupon_factory):
        coupon_factory(
            code="STREAK",
            coupon_type=Coupon.CouponType.MILESTONE_REWARD,
            milestone_payments_required=5,
            milestone_free_days=2,
        )

        effect = resolve_coupon("STREAK", Decimal("1000"))

        assert effect.is_milestone
        assert effect.discount == Decimal("0")
        assert (effect.milestone_payments_required, effect.milestone_free_days) == (5, 2)

    def test_misconfigured_milestone(self, coupon_factory):
        coupon_factory(code="BROKEN", coupon_type=Coupon.CouponType.MILESTONE_REWARD, milestone_free_days=2)
        with pytest.raises(InvalidCoupon, match="misconfigured"):
            resolve_coupon("BROKEN", Decimal("1000"))


def test_record_use(coupon_factory):
    coupon = coupon_factory(code="COUNT")
    record_coupon_use("COUNT")
    record_coupon_use("COUNT")
    coupon.refresh_from_db()
    assert coupon.uses_count == 2


def test_record_use_respects_the_cap(coupon_factory):
    coupon = coupon_factory(code="LAST", max_uses=2, uses_count=1)
    record_coupon_use("LAST")

    # a second buyer validated the coupon before the first one counted it
    with pytest.raises(InvalidCoupon, match="usage limit"):
        record_coupon_use("LAST")

    coupon.refresh_from_db()
    assert coupon.uses_count == 2
