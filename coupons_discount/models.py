from django.db import models
from django.utils import timezone


class Coupon(models.Model):
    class CouponType(models.TextChoices):
        INSTANT = "INSTANT", "Reduce price instantly"
        REDUCE_DAYS = "REDUCE_DAYS", "Convert discount into free days"
        MILESTONE_REWARD = "MILESTONE_REWARD", "Free days after N payments"

    class DiscountType(models.TextChoices):
        FLAT = "flat", "Fixed amount"
        PERCENTAGE = "percentage", "Percent of order value"

    code = models.CharField(max_length=50, unique=True)
    description = models.CharField(max_length=255, blank=True)

    coupon_type = models.CharField(max_length=20, choices=CouponType.choices, default=CouponType.INSTANT)

    # INSTANT / REDUCE_DAYS
    discount_type = models.CharField(max_length=10, choices=DiscountType.choices, default=DiscountType.FLAT)
    discount_value = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    max_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    # MILESTONE_REWARD
    milestone_payments_required = models.PositiveIntegerField(null=True, blank=True)
    milestone_free_days = models.PositiveIntegerField(null=True, blank=True)

    min_order_value = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    max_uses = models.PositiveIntegerField(null=True, blank=True)
    uses_count = models.PositiveIntegerField(default=0)

    valid_from = models.DateTimeField(default=timezone.now)
    valid_until = models.DateTimeField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def save(self, *args, **kwargs):
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.code} ({self.coupon_type})"
