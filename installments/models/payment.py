from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from .order import InstallmentOrder, PaymentMethod


class PaymentRecord(models.Model):
    """One settlement attempt for one installment."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSING = "PROCESSING", "Processing"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"
        REFUNDED = "REFUNDED", "Refunded"
        CANCELLED = "CANCELLED", "Cancelled"

    # attempts in these states no longer hold the installment slot
    RELEASED_STATUSES = [Status.FAILED, Status.CANCELLED]

    order = models.ForeignKey(InstallmentOrder, on_delete=models.PROTECT, related_name="payments")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="installment_payments")
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    installment_number = models.PositiveIntegerField()
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True)
    idempotency_key = models.CharField(max_length=64)

    gateway_order_id = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    gateway_payment_id = models.CharField(max_length=100, null=True, blank=True, db_index=True)
    gateway_signature = models.CharField(max_length=255, blank=True, default="")
    signature_verified = models.BooleanField(default=False)

    wallet_transaction = models.ForeignKey(
        "wallet.WalletTransaction", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    commission_calculated = models.BooleanField(default=False)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    commission_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0"))
    commission_credited = models.BooleanField(default=False)
    commission_transaction = models.ForeignKey(
        "wallet.WalletTransaction", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    error_description = models.CharField(max_length=255, blank=True, default="")
    failed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["order", "installment_number", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "installment_number"],
                condition=~Q(status__in=["FAILED", "CANCELLED"]),
                name="uniq_live_payment_per_installment",
            ),
            models.UniqueConstraint(
                fields=["idempotency_key"],
                condition=~Q(status__in=["FAILED", "CANCELLED"]),
                name="uniq_live_payment_idempotency_key",
            ),
        ]

    def __str__(self):
        return f"Payment order={self.order_id} #{self.installment_number} {self.amount} [{self.status}]"

    @property
    def is_completed(self) -> bool:
        return self.status == self.Status.COMPLETED
