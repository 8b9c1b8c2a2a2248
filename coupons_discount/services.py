import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.db.models import F, Q
from django.utils import timezone

from .exceptions import InvalidCoupon
from .models import Coupon

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponEffect:
    """What a coupon does to one order."""
    code: str
    coupon_type: str
    discount: Decimal = Decimal("0")
    milestone_payments_required: int | None = None
    milestone_free_days: int | None = None

    @property
    def reduces_days(self) -> bool:
        return self.coupon_type == Coupon.CouponType.REDUCE_DAYS

    @property
    def is_instant(self) -> bool:
        return self.coupon_type == Coupon.CouponType.INSTANT

    @property
    def is_milestone(self) -> bool:
        return self.coupon_type == Coupon.CouponType.MILESTONE_REWARD


def eligible_coupon_q():
    """
    Coupon is eligible if:
    - is_active
    - valid window ok
    - AND (max_uses is null OR uses_count < max_uses)
    """
    now = timezone.now()
    return (
        Q(is_active=True)
        & Q(valid_from__lte=now)
        & (Q(valid_until__isnull=True) | Q(valid_until__gte=now))
        & (Q(max_uses__isnull=True) | Q(uses_count__lt=F("max_uses")))
    )


def find_active_coupon(code: str) -> Coupon:
    code = (code or "").strip().upper()
    coupon = Coupon.objects.filter(code=code).first()
    if coupon is None:
        raise InvalidCoupon(f"Coupon '{code}' not found.")
    if not Coupon.objects.filter(eligible_coupon_q(), pk=coupon.pk).exists():
        if not coupon.is_active:
            raise InvalidCoupon(f"Coupon '{code}' is not active.")
        if coupon.valid_until and coupon.valid_until < timezone.now():
            raise InvalidCoupon(f"Coupon '{code}' has expired.")
        raise InvalidCoupon(f"Coupon '{code}' is not available.")
    return coupon


def compute_discount(coupon: Coupon, order_value: Decimal) -> Decimal:
    """Flat or percentage discount, whole currency units, never above the order value."""
    if coupon.discount_type == Coupon.DiscountType.PERCENTAGE:
        discount = (order_value * coupon.discount_value / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    else:
        discount = coupon.discount_value
    if coupon.max_discount_amount is not None:
        discount = min(discount, coupon.max_discount_amount)
    return max(Decimal("0"), min(discount, order_value))


def resolve_coupon(code: str, order_value: Decimal) -> CouponEffect:
    """Validate `code` against an order of `order_value` and describe its effect."""
    coupon = find_active_coupon(code)

    if order_value < coupon.min_order_value:
        raise InvalidCoupon(
            f"Minimum order value of {coupon.min_order_value} is required for coupon '{coupon.code}'."
        )

    if coupon.coupon_type == Coupon.CouponType.MILESTONE_REWARD:
        if not (coupon.milestone_payments_required and coupon.milestone_free_days):
            raise InvalidCoupon(f"Coupon '{coupon.code}' is misconfigured.")
        return CouponEffect(
            code=coupon.code,
            coupon_type=coupon.coupon_type,
            milestone_payments_required=coupon.milestone_payments_required,
            milestone_free_days=coupon.milestone_free_days,
        )

    return CouponEffect(
        code=coupon.code,
        coupon_type=coupon.coupon_type,
        discount=compute_discount(coupon, order_value),
    )


def record_coupon_use(code: str) -> None:
    """Count one use; the cap is re-checked in the UPDATE itself."""
    updated = Coupon.objects.filter(
        Q(max_uses__isnull=True) | Q(uses_count__lt=F("max_uses")),
        code=code,
    ).update(uses_count=F("uses_count") + 1)
    if not updated:
        logger.warning(f"Coupon {code} hit its usage limit")
        raise InvalidCoupon(f"Coupon '{code}' has reached its usage limit.")
    logger.info(f"Coupon {code} used")
