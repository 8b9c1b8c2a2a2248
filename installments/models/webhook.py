from django.db import models


class WebhookEvent(models.Model):
    """Claim and audit row for one inbound gateway notification. Never deleted."""

    class Status(models.TextChoices):
        PROCESSING = "processing", "Processing"
        PROCESSED = "processed", "Processed"
        IGNORED = "ignored", "Ignored"
        FAILED = "failed", "Failed"
        DUPLICATE = "duplicate", "Duplicate"

    class PaymentType(models.TextChoices):
        WALLET_DEPOSIT = "wallet_deposit", "Wallet deposit"
        FIRST_INSTALLMENT = "first_installment", "First installment"
        DAILY_INSTALLMENT = "daily_installment", "Daily installment"
        COMBINED_PAYMENT = "combined_payment", "Combined multi-order payment"
        UNKNOWN = "unknown", "Unknown"

    # "<gateway_payment_id>:<event_type>"
    event_key = models.CharField(max_length=255, unique=True)
    event_type = models.CharField(max_length=50, db_index=True)
    payment_type = models.CharField(max_length=30, choices=PaymentType.choices, default=PaymentType.UNKNOWN)
    gateway_payment_id = models.CharField(max_length=100, db_index=True)
    gateway_order_id = models.CharField(max_length=100, blank=True, default="")

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PROCESSING, db_index=True)
    processing_note = models.TextField(blank=True, default="")
    attempts = models.PositiveIntegerField(default=1)
    payload = models.JSONField(default=dict)

    received_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-received_at"]

    def __str__(self):
        return f"{self.event_key} [{self.status}]"

    @staticmethod
    def make_key(gateway_payment_id: str, event_type: str) -> str:
        return f"{gateway_payment_id}:{event_type}"
