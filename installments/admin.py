from django.contrib import admin

from .models import Installment, InstallmentOrder, PaymentRecord, Product, WebhookEvent


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "commission_percentage", "is_available")
    list_filter = ("is_available",)
    search_fields = ("name",)


class InstallmentInline(admin.TabularInline):
    model = Installment
    extra = 0
    readonly_fields = ("number", "due_date", "amount", "status", "is_coupon_benefit", "paid_at", "payment")
    can_delete = False


@admin.register(InstallmentOrder)
class InstallmentOrderAdmin(admin.ModelAdmin):
    list_display = (
        "id", "user", "product_name", "total_price", "paid_installments",
        "total_days", "remaining_amount", "status", "created_at",
    )
    list_filter = ("status", "payment_method", "coupon_type")
    search_fields = ("user__email", "product_name", "coupon_code")
    inlines = [InstallmentInline]


@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "installment_number", "amount", "payment_method", "status", "completed_at")
    list_filter = ("status", "payment_method", "commission_credited")
    search_fields = ("idempotency_key", "gateway_order_id", "gateway_payment_id")


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ("event_key", "event_type", "payment_type", "status", "attempts", "received_at", "processed_at")
    list_filter = ("status", "event_type", "payment_type")
    search_fields = ("event_key", "gateway_payment_id", "gateway_order_id")
    readonly_fields = ("payload",)
