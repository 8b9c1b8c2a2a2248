from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import permissions, status
from rest_framework.generics import ListAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import OrderNotFound, Unauthorized
from .models import InstallmentOrder
from .models.order import PaymentMethod
from .serializers import (
    CancelOrderSerializer,
    CombinedOrderSerializer,
    CombinedPaySerializer,
    CreateOrderSerializer,
    InstallmentOrderDetailSerializer,
    InstallmentOrderListSerializer,
    InstallmentSerializer,
    PayInstallmentSerializer,
    PaymentRecordSerializer,
)
from .services import GatewayPayment, InstallmentOrderService, PaymentService


def _gateway_payment(data) -> GatewayPayment | None:
    if data["payment_method"] != PaymentMethod.GATEWAY:
        return None
    return GatewayPayment(
        gateway_order_id=data["gateway_order_id"],
        gateway_payment_id=data["gateway_payment_id"],
        signature=data["gateway_signature"],
    )


def _settlement_response(result):
    return {
        "order": InstallmentOrderListSerializer(result.order).data,
        "payment": PaymentRecordSerializer(result.payment).data,
        "installment": InstallmentSerializer(result.installment).data,
        "commission": str(result.commission.total) if result.commission else None,
        "milestone_free_days": result.milestone_free_days,
    }


class OrderListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(responses=InstallmentOrderListSerializer(many=True))
    def get(self, request):
        orders = InstallmentOrder.objects.for_user(request.user)
        status_filter = request.query_params.get("status")
        if status_filter:
            orders = orders.filter(status=status_filter.upper())
        return Response(InstallmentOrderListSerializer(orders, many=True).data)

    @extend_schema(request=CreateOrderSerializer, responses=InstallmentOrderDetailSerializer)
    def post(self, request):
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        creation = InstallmentOrderService.create_order(
            user=request.user,
            product_id=data["product_id"],
            quantity=data["quantity"],
            total_days=data["total_days"],
            payment_method=data["payment_method"],
            coupon_code=data.get("coupon_code") or None,
        )
        return Response(
            {
                "order": InstallmentOrderDetailSerializer(creation.order).data,
                "first_payment": PaymentRecordSerializer(creation.first_payment).data,
                "gateway_order": creation.gateway_order.as_dict() if creation.gateway_order else None,
            },
            status=status.HTTP_201_CREATED,
        )


class OrderDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(responses=InstallmentOrderDetailSerializer)
    def get(self, request, order_id):
        order = InstallmentOrder.objects.filter(pk=order_id).first()
        if order is None:
            raise OrderNotFound()
        if order.user_id != request.user.pk and not request.user.is_staff:
            raise Unauthorized()
        return Response(InstallmentOrderDetailSerializer(order).data)


class OrderPaymentsView(ListAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = PaymentRecordSerializer

    def get_queryset(self):
        order = get_object_or_404(InstallmentOrder, pk=self.kwargs["order_id"])
        if order.user_id != self.request.user.pk and not self.request.user.is_staff:
            raise Unauthorized()
        return order.payments.order_by("installment_number", "created_at")


class InstallmentGatewayOrderView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, order_id):
        gateway_order, payment = PaymentService.create_gateway_order_for_installment(
            order_id=order_id, user=request.user
        )
        return Response(
            {
                "gateway_order": gateway_order.as_dict(),
                "installment_number": payment.installment_number,
            },
            status=status.HTTP_201_CREATED,
        )


class PayInstallmentView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(request=PayInstallmentSerializer)
    def post(self, request, order_id):
        serializer = PayInstallmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PaymentService.settle_next_installment(
            order_id=order_id,
            user=request.user,
            method=data["payment_method"],
            gateway_payment=_gateway_payment(data),
        )
        return Response(_settlement_response(result), status=status.HTTP_200_OK)


class CancelOrderView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(request=CancelOrderSerializer)
    def post(self, request, order_id):
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = InstallmentOrderService.cancel_order(
            order_id=order_id, actor=request.user, reason=serializer.validated_data["reason"]
        )
        return Response(InstallmentOrderListSerializer(order).data)


class CombinedGatewayOrderView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(request=CombinedOrderSerializer)
    def post(self, request):
        serializer = CombinedOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        gateway_order, payments = PaymentService.create_combined_gateway_order(
            user=request.user, order_ids=serializer.validated_data["order_ids"]
        )
        return Response(
            {
                "gateway_order": gateway_order.as_dict(),
                "installments": [
                    {"order_id": p.order_id, "installment_number": p.installment_number, "amount": str(p.amount)}
                    for p in payments
                ],
            },
            status=status.HTTP_201_CREATED,
        )


class CombinedPayView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(request=CombinedPaySerializer)
    def post(self, request):
        serializer = CombinedPaySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        results = PaymentService.settle_selected_installments(
            user=request.user,
            order_ids=data["order_ids"],
            method=data["payment_method"],
            gateway_payment=_gateway_payment(data),
        )
        return Response(
            {
                "settled": [_settlement_response(result) for result in results],
                "count": len(results),
            }
        )


class DailyPendingView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        pending = InstallmentOrderService.daily_pending_payments(request.user)
        return Response(
            {
                "count": pending.count,
                "total_amount": str(pending.total_amount),
                "orders": [
                    {
                        "order": InstallmentOrderListSerializer(item["order"]).data,
                        "installment": InstallmentSerializer(item["installment"]).data,
                    }
                    for item in pending.orders
                ],
            }
        )
