import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from installments.payment_services import GatewayOrder, create_gateway_order

from .exceptions import InsufficientBalance
from .models import Wallet, WalletDeposit, WalletTransaction

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CommissionCredit:
    available: WalletTransaction
    locked: WalletTransaction | None


def get_or_create_wallet(user) -> Wallet:
    wallet, _ = Wallet.objects.get_or_create(user=user)
    return wallet


def _locked_wallet(user) -> Wallet:
    # create outside the lock so concurrent first-time callers don't both insert
    get_or_create_wallet(user)
    return Wallet.objects.select_for_update().get(user=user)


@transaction.atomic
def deduct_from_wallet(user, amount: Decimal, *, description: str = "", metadata: dict | None = None) -> WalletTransaction:
    """
    Debit `amount` from the user's withdrawable balance.
    Raises InsufficientBalance (with shortfall) and leaves the wallet untouched when short.
    """
    wallet = _locked_wallet(user)
    if wallet.balance < amount:
        logger.warning(f"Wallet debit rejected for user {user.pk}: need {amount}, have {wallet.balance}")
        raise InsufficientBalance(required=amount, available=wallet.balance)

    wallet.balance -= amount
    wallet.save(update_fields=["balance", "updated_at"])

    tx = WalletTransaction.objects.create(
        user=user,
        kind=WalletTransaction.Kind.INSTALLMENT_PAYMENT,
        amount=-amount,
        description=description,
        balance_after=wallet.balance,
        metadata=metadata or {},
    )
    logger.info(f"Debited {amount} from wallet of user {user.pk} (tx {tx.pk})")
    return tx


@transaction.atomic
def credit_commission(
    user,
    *,
    available_amount: Decimal,
    locked_amount: Decimal = ZERO,
    description: str = "",
    metadata: dict | None = None,
) -> CommissionCredit:
    """
    Credit a referral commission already split into its available and locked parts.
    One ledger row per part; the locked part lands on the hold balance.
    """
    wallet = _locked_wallet(user)
    metadata = metadata or {}

    wallet.balance += available_amount
    wallet.hold_balance += locked_amount
    wallet.referral_bonus += available_amount + locked_amount
    wallet.save(update_fields=["balance", "hold_balance", "referral_bonus", "updated_at"])

    available_tx = WalletTransaction.objects.create(
        user=user,
        kind=WalletTransaction.Kind.REFERRAL_BONUS,
        amount=available_amount,
        description=description,
        balance_after=wallet.balance,
        metadata=metadata,
    )
    locked_tx = None
    if locked_amount > ZERO:
        locked_tx = WalletTransaction.objects.create(
            user=user,
            kind=WalletTransaction.Kind.LOCKED_COMMISSION,
            amount=locked_amount,
            description=f"{description} (locked)".strip(),
            balance_after=wallet.balance,
            metadata={**metadata, "hold_balance_after": str(wallet.hold_balance)},
        )

    logger.info(
        f"Commission credited to user {user.pk}: {available_amount} available, {locked_amount} locked"
    )
    return CommissionCredit(available=available_tx, locked=locked_tx)


@transaction.atomic
def credit_deposit(deposit: WalletDeposit, *, gateway_payment_id: str) -> WalletDeposit:
    """
    Complete a pending deposit and add its amount to the balance.
    A deposit that is already COMPLETED is returned unchanged.
    """
    deposit = WalletDeposit.objects.select_for_update().get(pk=deposit.pk)
    if deposit.status == WalletDeposit.Status.COMPLETED:
        logger.info(f"Deposit {deposit.gateway_order_id} already completed")
        return deposit

    wallet = _locked_wallet(deposit.user)
    wallet.balance += deposit.amount
    wallet.save(update_fields=["balance", "updated_at"])

    deposit.transaction = WalletTransaction.objects.create(
        user=deposit.user,
        kind=WalletTransaction.Kind.DEPOSIT,
        amount=deposit.amount,
        description="Wallet deposit",
        balance_after=wallet.balance,
        metadata={"gateway_order_id": deposit.gateway_order_id, "gateway_payment_id": gateway_payment_id},
    )
    deposit.status = WalletDeposit.Status.COMPLETED
    deposit.gateway_payment_id = gateway_payment_id
    deposit.completed_at = timezone.now()
    deposit.save(update_fields=["transaction", "status", "gateway_payment_id", "completed_at"])

    logger.info(f"Deposit {deposit.gateway_order_id} completed: +{deposit.amount} for user {deposit.user_id}")
    return deposit


def fail_deposit(deposit: WalletDeposit, *, reason: str = "") -> bool:
    """Mark a still-pending deposit FAILED. Returns False when nothing changed."""
    updated = WalletDeposit.objects.filter(
        pk=deposit.pk, status=WalletDeposit.Status.PENDING
    ).update(
        status=WalletDeposit.Status.FAILED,
        error_description=reason[:255],
        failed_at=timezone.now(),
    )
    if updated:
        logger.info(f"Deposit {deposit.gateway_order_id} marked failed: {reason}")
    return bool(updated)


def start_deposit(user, amount: Decimal) -> tuple[WalletDeposit, GatewayOrder]:
    """Open a gateway order for a top-up and record the pending deposit."""
    gateway_order = create_gateway_order(
        amount=amount,
        email=user.email,
        notes={"type": "wallet_deposit", "user_id": user.pk},
        prefix="dep",
    )
    deposit = WalletDeposit.objects.create(
        user=user,
        amount=amount,
        gateway_order_id=gateway_order.order_id,
    )
    logger.info(f"Deposit {deposit.gateway_order_id} started for user {user.pk}: {amount}")
    return deposit, gateway_order
