from django.contrib import admin

from .models import Wallet, WalletDeposit, WalletTransaction


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ("user", "balance", "hold_balance", "referral_bonus", "updated_at")
    search_fields = ("user__email", "user__phone_number")


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = ("user", "kind", "amount", "balance_after", "created_at")
    list_filter = ("kind",)
    readonly_fields = ("user", "kind", "amount", "description", "balance_after", "metadata", "created_at")


@admin.register(WalletDeposit)
class WalletDepositAdmin(admin.ModelAdmin):
    list_display = ("gateway_order_id", "user", "amount", "status", "created_at", "completed_at")
    list_filter = ("status",)
    search_fields = ("gateway_order_id", "gateway_payment_id")
