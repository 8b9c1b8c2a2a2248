from decimal import Decimal

from rest_framework import serializers

from .models import Wallet, WalletDeposit, WalletTransaction


class WalletSerializer(serializers.ModelSerializer):
    class Meta:
        model = Wallet
        fields = ["balance", "hold_balance", "referral_bonus", "updated_at"]
        read_only_fields = fields


class WalletTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletTransaction
        fields = ["id", "kind", "amount", "description", "balance_after", "metadata", "created_at"]
        read_only_fields = fields


class DepositCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("1.00"))


class WalletDepositSerializer(serializers.ModelSerializer):
    class Meta:
        model = WalletDeposit
        fields = [
            "id", "amount", "status", "gateway_order_id", "gateway_payment_id",
            "error_description", "created_at", "completed_at", "failed_at",
        ]
        read_only_fields = fields
