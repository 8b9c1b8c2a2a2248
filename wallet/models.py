from decimal import Decimal

from django.conf import settings
from django.db import models


class Wallet(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallet")
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))  # withdrawable
    hold_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))  # locked
    referral_bonus = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))  # lifetime commission
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user_id}: {self.balance} (+{self.hold_balance} locked)"


class WalletTransaction(models.Model):
    """Append-only ledger row. Amount is negative for debits."""

    class Kind(models.TextChoices):
        INSTALLMENT_PAYMENT = "installment_payment", "Installment payment"
        REFERRAL_BONUS = "referral_bonus", "Referral commission (available)"
        LOCKED_COMMISSION = "locked_commission", "Referral commission (locked)"
        DEPOSIT = "deposit", "Deposit"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallet_transactions")
    kind = models.CharField(max_length=30, choices=Kind.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    description = models.CharField(max_length=255, blank=True)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["user", "created_at"]),
            models.Index(fields=["kind"]),
        ]

    def __str__(self):
        return f"{self.kind} {self.amount} -> user {self.user_id}"


class WalletDeposit(models.Model):
    """Gateway-funded top-up, completed by the gateway webhook."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="wallet_deposits")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)

    gateway_order_id = models.CharField(max_length=100, unique=True)
    gateway_payment_id = models.CharField(max_length=100, null=True, blank=True)
    error_description = models.CharField(max_length=255, blank=True, default="")

    transaction = models.OneToOneField(
        WalletTransaction, on_delete=models.SET_NULL, null=True, blank=True, related_name="deposit"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"deposit {self.gateway_order_id} {self.amount} [{self.status}]"
