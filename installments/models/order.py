from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone


class Product(models.Model):
    """Read-only catalog entry an order is bought against."""
    name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    commission_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    is_available = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.name} ({self.price})"


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending first payment"
    ACTIVE = "ACTIVE", "Active"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentMethod(models.TextChoices):
    WALLET = "WALLET", "Wallet"
    GATEWAY = "GATEWAY", "Payment gateway"


class InstallmentOrderQuerySet(models.QuerySet):
    def for_user(self, user):
        return self.filter(user=user)

    def active(self):
        return self.filter(status=OrderStatus.ACTIVE)

    def not_paid_today(self):
        start_of_day = timezone.localtime().replace(hour=0, minute=0, second=0, microsecond=0)
        return self.filter(
            models.Q(last_payment_date__isnull=True) | models.Q(last_payment_date__lt=start_of_day)
        )


class InstallmentOrder(models.Model):
    Status = OrderStatus

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="installment_orders")
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name="orders")
    product_name = models.CharField(max_length=255)
    quantity = models.PositiveSmallIntegerField(default=1)

    # unit price x quantity, before any coupon
    original_price = models.DecimalField(max_digits=12, decimal_places=2)
    # value the schedule is built on (after an INSTANT coupon)
    product_price = models.DecimalField(max_digits=12, decimal_places=2)
    # what the buyer actually owes (after a REDUCE_DAYS coupon too)
    total_price = models.DecimalField(max_digits=12, decimal_places=2)

    total_days = models.PositiveIntegerField()
    daily_amount = models.DecimalField(max_digits=12, decimal_places=2)

    paid_installments = models.PositiveIntegerField(default=0)
    total_paid_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    remaining_amount = models.DecimalField(max_digits=12, decimal_places=2)

    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING, db_index=True)
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    last_payment_date = models.DateTimeField(null=True, blank=True)

    referrer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="referred_orders"
    )
    commission_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0"))

    coupon_code = models.CharField(max_length=50, blank=True, default="")
    coupon_type = models.CharField(max_length=20, blank=True, default="")
    coupon_discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    milestone_payments_required = models.PositiveIntegerField(null=True, blank=True)
    milestone_free_days = models.PositiveIntegerField(null=True, blank=True)
    milestone_reward_applied = models.BooleanField(default=False)
    milestone_reward_applied_at = models.DateTimeField(null=True, blank=True)

    first_payment_completed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )
    cancellation_reason = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = InstallmentOrderQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"]),
        ]

    def __str__(self):
        return f"Order {self.pk} ({self.product_name}) [{self.status}]"

    def next_payable_installment(self):
        return (
            self.installments.filter(status=Installment.Status.PENDING, amount__gt=0)
            .order_by("number")
            .first()
        )

    def has_pending_payable(self) -> bool:
        return self.installments.filter(status=Installment.Status.PENDING, amount__gt=0).exists()

    def paid_today(self) -> bool:
        if self.last_payment_date is None:
            return False
        return timezone.localdate(self.last_payment_date) == timezone.localdate()

    def recompute_remaining(self):
        self.remaining_amount = max(Decimal("0.00"), self.total_price - self.total_paid_amount)

    @property
    def progress_percent(self) -> float:
        if not self.total_days:
            return 0.0
        return round(self.paid_installments * 100 / self.total_days, 2)

    @property
    def is_payable(self) -> bool:
        return self.status in (OrderStatus.PENDING, OrderStatus.ACTIVE)


class Installment(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PAID = "PAID", "Paid"
        FREE = "FREE", "Free"
        SKIPPED = "SKIPPED", "Skipped"

    order = models.ForeignKey(InstallmentOrder, on_delete=models.CASCADE, related_name="installments")
    number = models.PositiveIntegerField()
    due_date = models.DateField()
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    # FREE by a REDUCE_DAYS coupon at creation, or by a milestone reward later
    is_coupon_benefit = models.BooleanField(default=False)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment = models.ForeignKey(
        "installments.PaymentRecord", on_delete=models.SET_NULL, null=True, blank=True, related_name="+"
    )

    class Meta:
        ordering = ["order", "number"]
        constraints = [
            models.UniqueConstraint(fields=["order", "number"], name="uniq_installment_number_per_order"),
        ]

    def __str__(self):
        return f"#{self.number} {self.amount} [{self.status}]"
