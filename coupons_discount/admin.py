from django.contrib import admin

from .models import Coupon


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = ("code", "coupon_type", "discount_type", "discount_value", "uses_count", "is_active", "valid_until")
    list_filter = ("coupon_type", "is_active")
    search_fields = ("code",)
