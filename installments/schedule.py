"""
Schedule generation for installment orders.

The whole schedule is derived from three numbers: the order value, the day
count and an optional REDUCE_DAYS discount. Installments are filled greedily
with the base amount (ceil(value / days)) until the payable target is
reached; the installment that reaches it carries whatever is left, and every
installment after it is FREE with amount 0.

    value=1000, days=10, discount=250  ->  7 x 100, 1 x 50, 2 x FREE
    value=1000, days=3                 ->  334, 334, 332
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_CEILING

from django.conf import settings

from coupons_discount.exceptions import InvalidCoupon

from .exceptions import InvalidDailyAmount, InvalidInstallmentDuration

logger = logging.getLogger(__name__)

PENDING = "PENDING"
FREE = "FREE"


@dataclass(frozen=True)
class InstallmentDraft:
    number: int
    due_date: date
    amount: Decimal
    status: str = PENDING

    @property
    def is_free(self) -> bool:
        return self.status == FREE


def max_days_for_price(price: Decimal) -> int:
    for ceiling, max_days in settings.INSTALLMENT_PRICE_TIERS:
        if ceiling is None or price <= ceiling:
            return max_days
    return settings.INSTALLMENT_PRICE_TIERS[-1][1]


def base_amount(price: Decimal, days: int) -> Decimal:
    return (Decimal(price) / days).to_integral_value(rounding=ROUND_CEILING)


def validate_plan(price: Decimal, days: int) -> Decimal:
    """Reject day counts outside the price tier and daily amounts below the floor. Returns the base amount."""
    min_days = settings.INSTALLMENT_MIN_DAYS
    max_days = max_days_for_price(price)

    if days < min_days:
        raise InvalidInstallmentDuration(f"Minimum installment duration is {min_days} days.")
    if days > max_days:
        raise InvalidInstallmentDuration(
            f"Maximum installment duration for a price of {price} is {max_days} days."
        )

    base = base_amount(price, days)
    if base < settings.INSTALLMENT_MIN_DAILY_AMOUNT:
        raise InvalidDailyAmount(
            f"Daily payment amount must be at least {settings.INSTALLMENT_MIN_DAILY_AMOUNT} (got {base})."
        )
    return base


def generate_schedule(
    price: Decimal,
    days: int,
    start_date: date,
    reduce_days_discount: Decimal | None = None,
) -> list[InstallmentDraft]:
    price = Decimal(price)
    base = validate_plan(price, days)

    discount = Decimal(reduce_days_discount or 0)
    if discount < 0:
        raise InvalidCoupon("Discount cannot be negative.")
    if discount >= price:
        raise InvalidCoupon("Discount must be lower than the order value.")

    target = price - discount
    remaining = target
    schedule = []
    for number in range(1, days + 1):
        due = start_date + timedelta(days=number - 1)
        if remaining > 0:
            amount = min(base, remaining)
            remaining -= amount
            schedule.append(InstallmentDraft(number=number, due_date=due, amount=amount))
        else:
            schedule.append(InstallmentDraft(number=number, due_date=due, amount=Decimal("0"), status=FREE))

    free_days = sum(1 for item in schedule if item.is_free)
    if free_days:
        logger.debug(f"Schedule {price}/{days}d with discount {discount}: {free_days} free days")
    return schedule


def payable_total(schedule: list[InstallmentDraft]) -> Decimal:
    return sum((item.amount for item in schedule if not item.is_free), Decimal("0"))
