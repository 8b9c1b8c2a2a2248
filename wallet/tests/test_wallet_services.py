from decimal import Decimal

import pytest

from wallet.exceptions import InsufficientBalance
from wallet.models import Wallet, WalletDeposit, WalletTransaction
from wallet.services import (
    credit_commission,
    credit_deposit,
    deduct_from_wallet,
    fail_deposit,
    get_or_create_wallet,
)

pytestmark = pytest.mark.django_db


class TestDeduct:
    def test_debit_writes_ledger_row(self, wallet_factory):
        wallet = wallet_factory(balance=Decimal("500.00"))

        tx = deduct_from_wallet(wallet.user, Decimal("120.00"), description="Installment #2", metadata={"order_id": 1})

        wallet.refresh_from_db()
        assert wallet.balance == Decimal("380.00")
        assert tx.kind == WalletTransaction.Kind.INSTALLMENT_PAYMENT
        assert tx.amount == Decimal("-120.00")
        assert tx.balance_after == Decimal("380.00")
        assert tx.metadata == {"order_id": 1}

    def test_exact_balance(self, wallet_factory):
        wallet = wallet_factory(balance=Decimal("100.00"))
        deduct_from_wallet(wallet.user, Decimal("100.00"))
        wallet.refresh_from_db()
        assert wallet.balance == Decimal("0.00")

    def test_short_balance_leaves_wallet_untouched(self, wallet_factory):
        wallet = wallet_factory(balance=Decimal("40.00"))

        with pytest.raises(InsufficientBalance) as exc:
            deduct_from_wallet(wallet.user, Decimal("100.00"))

        assert exc.value.shortfall == Decimal("60.00")
        assert exc.value.detail["shortfall"] == "60.00"
        wallet.refresh_from_db()
        assert wallet.balance == Decimal("40.00")
        assert not WalletTransaction.objects.exists()

    def test_hold_balance_is_not_spendable(self, wallet_factory):
        wallet = wallet_factory(balance=Decimal("10.00"), hold_balance=Decimal("500.00"))
        with pytest.raises(InsufficientBalance):
            deduct_from_wallet(wallet.user, Decimal("50.00"))

    def test_wallet_created_on_demand(self, user):
        with pytest.raises(InsufficientBalance):
            deduct_from_wallet(user, Decimal("1.00"))
        assert Wallet.objects.filter(user=user).exists()


class TestCommissionCredit:
    def test_available_and_locked_parts(self, user):
        credit = credit_commission(
            user, available_amount=Decimal("9.00"), locked_amount=Decimal("1.00"), description="Referral"
        )

        wallet = get_or_create_wallet(user)
        assert wallet.balance == Decimal("9.00")
        assert wallet.hold_balance == Decimal("1.00")
        assert wallet.referral_bonus == Decimal("10.00")
        assert credit.available.kind == WalletTransaction.Kind.REFERRAL_BONUS
        assert credit.locked.kind == WalletTransaction.Kind.LOCKED_COMMISSION
        assert credit.locked.metadata["hold_balance_after"] == "1.00"

    def test_no_locked_row_for_zero(self, user):
        credit = credit_commission(user, available_amount=Decimal("5.00"))

        assert credit.locked is None
        assert WalletTransaction.objects.filter(user=user).count() == 1


class TestDeposits:
    @pytest.fixture
    def deposit(self, user):
        return WalletDeposit.objects.create(user=user, amount=Decimal("250.00"), gateway_order_id="dep_1")

    def test_credit_once(self, deposit):
        credit_deposit(deposit, gateway_payment_id="pay_1")
        again = credit_deposit(deposit, gateway_payment_id="pay_1")

        assert again.status == WalletDeposit.Status.COMPLETED
        assert again.transaction.amount == Decimal("250.00")
        assert get_or_create_wallet(deposit.user).balance == Decimal("250.00")
        assert WalletTransaction.objects.filter(kind=WalletTransaction.Kind.DEPOSIT).count() == 1

    def test_fail_pending(self, deposit):
        assert fail_deposit(deposit, reason="card declined")

        deposit.refresh_from_db()
        assert deposit.status == WalletDeposit.Status.FAILED
        assert deposit.error_description == "card declined"

    def test_completed_deposit_cannot_fail(self, deposit):
        credit_deposit(deposit, gateway_payment_id="pay_1")

        assert not fail_deposit(deposit, reason="late failure")
        deposit.refresh_from_db()
        assert deposit.status == WalletDeposit.Status.COMPLETED
