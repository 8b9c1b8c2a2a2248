from django.urls import path

from .payment_views import gateway_webhook
from .views import (
    CancelOrderView,
    CombinedGatewayOrderView,
    CombinedPayView,
    DailyPendingView,
    InstallmentGatewayOrderView,
    OrderDetailView,
    OrderListCreateView,
    OrderPaymentsView,
    PayInstallmentView,
)

urlpatterns = [
    path("orders/", OrderListCreateView.as_view(), name="installment-orders"),
    path("orders/<int:order_id>/", OrderDetailView.as_view(), name="installment-order-detail"),
    path("orders/<int:order_id>/gateway-order/", InstallmentGatewayOrderView.as_view(), name="installment-gateway-order"),
    path("orders/<int:order_id>/pay/", PayInstallmentView.as_view(), name="installment-pay"),
    path("orders/<int:order_id>/cancel/", CancelOrderView.as_view(), name="installment-cancel"),
    path("orders/<int:order_id>/payments/", OrderPaymentsView.as_view(), name="installment-order-payments"),
    path("payments/combined/gateway-order/", CombinedGatewayOrderView.as_view(), name="combined-gateway-order"),
    path("payments/combined/", CombinedPayView.as_view(), name="combined-pay"),
    path("payments/daily-pending/", DailyPendingView.as_view(), name="daily-pending"),
    path("webhooks/gateway/", gateway_webhook, name="gateway-webhook"),
]
