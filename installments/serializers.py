from django.conf import settings
from rest_framework import serializers

from .models import Installment, InstallmentOrder, PaymentRecord
from .models.order import PaymentMethod


class InstallmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Installment
        fields = ["number", "due_date", "amount", "status", "is_coupon_benefit", "paid_at"]
        read_only_fields = fields


class PaymentRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = PaymentRecord
        fields = [
            "id",
            "installment_number",
            "amount",
            "payment_method",
            "status",
            "gateway_order_id",
            "gateway_payment_id",
            "commission_amount",
            "commission_credited",
            "error_description",
            "created_at",
            "completed_at",
            "failed_at",
        ]
        read_only_fields = fields


class InstallmentOrderListSerializer(serializers.ModelSerializer):
    progress_percent = serializers.FloatField(read_only=True)

    class Meta:
        model = InstallmentOrder
        fields = [
            "id",
            "product_name",
            "quantity",
            "total_price",
            "daily_amount",
            "total_days",
            "paid_installments",
            "total_paid_amount",
            "remaining_amount",
            "status",
            "progress_percent",
            "last_payment_date",
            "created_at",
        ]
        read_only_fields = fields


class InstallmentOrderDetailSerializer(InstallmentOrderListSerializer):
    installments = InstallmentSerializer(many=True, read_only=True)
    summary = serializers.SerializerMethodField()

    class Meta(InstallmentOrderListSerializer.Meta):
        fields = InstallmentOrderListSerializer.Meta.fields + [
            "original_price",
            "product_price",
            "payment_method",
            "coupon_code",
            "coupon_type",
            "coupon_discount",
            "milestone_payments_required",
            "milestone_free_days",
            "milestone_reward_applied",
            "completed_at",
            "cancelled_at",
            "cancellation_reason",
            "installments",
            "summary",
        ]
        read_only_fields = fields

    def get_summary(self, order):
        next_installment = order.next_payable_installment() if order.is_payable else None
        return {
            "remaining_installments": order.installments.filter(
                status=Installment.Status.PENDING, amount__gt=0
            ).count(),
            "free_installments": order.installments.filter(status=Installment.Status.FREE).count(),
            "next_installment_number": next_installment.number if next_installment else None,
            "next_due_date": next_installment.due_date if next_installment else None,
            "next_amount": str(next_installment.amount) if next_installment else None,
            "can_make_payment": bool(next_installment) and not order.paid_today(),
        }


class CreateOrderSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)
    total_days = serializers.IntegerField(min_value=1)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    coupon_code = serializers.CharField(required=False, allow_blank=True, max_length=50)

    def validate_quantity(self, value):
        if value > settings.INSTALLMENT_MAX_QUANTITY:
            raise serializers.ValidationError(f"Quantity cannot exceed {settings.INSTALLMENT_MAX_QUANTITY}.")
        return value


class PayInstallmentSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    gateway_order_id = serializers.CharField(required=False, allow_blank=True)
    gateway_payment_id = serializers.CharField(required=False, allow_blank=True)
    gateway_signature = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if attrs["payment_method"] == PaymentMethod.GATEWAY:
            missing = [
                name for name in ("gateway_order_id", "gateway_payment_id", "gateway_signature")
                if not attrs.get(name)
            ]
            if missing:
                raise serializers.ValidationError({name: "This field is required." for name in missing})
        return attrs


class CombinedOrderSerializer(serializers.Serializer):
    order_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class CombinedPaySerializer(PayInstallmentSerializer):
    order_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255, default="")
