import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction

from wallet.services import credit_commission

from .models import InstallmentOrder, PaymentRecord

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class CommissionSplit:
    total: Decimal
    available: Decimal
    locked: Decimal


def split_commission(amount: Decimal, percentage: Decimal) -> CommissionSplit:
    """
    commission = amount x percentage / 100 (to the cent, half up);
    the available share is COMMISSION_AVAILABLE_PERCENTAGE of it and the rest is locked.
    """
    if percentage < 0 or percentage > 100:
        raise ValueError("Commission percentage must be between 0 and 100")

    total = (Decimal(amount) * Decimal(percentage) / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    available = (total * settings.COMMISSION_AVAILABLE_PERCENTAGE / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    return CommissionSplit(total=total, available=available, locked=total - available)


@transaction.atomic
def allocate_commission(payment: PaymentRecord, order: InstallmentOrder) -> CommissionSplit | None:
    """
    Credit the referrer's share of a settled installment, at most once per payment.
    Returns None when there is nothing to credit.
    """
    if payment.commission_calculated:
        logger.info(f"Commission already handled for payment {payment.pk}")
        return None
    if order.referrer_id is None or order.commission_percentage <= 0:
        return None

    split = split_commission(payment.amount, order.commission_percentage)
    credit = None
    if split.total > 0:
        credit = credit_commission(
            order.referrer,
            available_amount=split.available,
            locked_amount=split.locked,
            description=f"Referral commission for order {order.pk} installment #{payment.installment_number}",
            metadata={
                "order_id": order.pk,
                "payment_id": payment.pk,
                "installment_number": payment.installment_number,
                "buyer_id": order.user_id,
                "percentage": str(order.commission_percentage),
            },
        )

    payment.commission_calculated = True
    payment.commission_amount = split.total
    payment.commission_percentage = order.commission_percentage
    payment.commission_credited = credit is not None
    payment.commission_transaction = credit.available if credit else None
    payment.save(update_fields=[
        "commission_calculated",
        "commission_amount",
        "commission_percentage",
        "commission_credited",
        "commission_transaction",
        "updated_at",
    ])

    logger.info(
        f"Commission {split.total} ({split.available} available / {split.locked} locked) "
        f"for payment {payment.pk} -> referrer {order.referrer_id}"
    )
    return split
