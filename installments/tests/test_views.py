from datetime import timedelta
from decimal import Decimal

import pytest
from django.urls import reverse
from django.utils import timezone

from installments.models import InstallmentOrder, PaymentRecord

from .utils import authenticate, next_day

pytestmark = pytest.mark.django_db


@pytest.fixture
def client(api_client, buyer):
    return authenticate(api_client, buyer)


def create_payload(product, **overrides):
    payload = {"product_id": product.pk, "total_days": 10, "payment_method": "WALLET"}
    payload.update(overrides)
    return payload


class TestCreateOrder:
    def test_requires_authentication(self, api_client, phone):
        response = api_client.post(reverse("installment-orders"), create_payload(phone), format="json")
        assert response.status_code == 401

    def test_wallet_order(self, client, phone, funded_wallet):
        response = client.post(reverse("installment-orders"), create_payload(phone), format="json")

        assert response.status_code == 201
        body = response.json()
        assert body["order"]["status"] == "ACTIVE"
        assert body["order"]["paid_installments"] == 1
        assert len(body["order"]["installments"]) == 10
        assert body["first_payment"]["status"] == "COMPLETED"
        assert body["gateway_order"] is None

    def test_gateway_order(self, client, phone, gateway):
        response = client.post(
            reverse("installment-orders"), create_payload(phone, payment_method="GATEWAY"), format="json"
        )

        assert response.status_code == 201
        body = response.json()
        assert body["order"]["status"] == "PENDING"
        assert body["gateway_order"]["gateway_order_id"] == "inst_1"
        assert body["gateway_order"]["amount_minor"] == 10000
        assert body["gateway_order"]["notes"]["type"] == "first_payment"

    def test_too_few_days(self, client, phone, funded_wallet):
        response = client.post(reverse("installment-orders"), create_payload(phone, total_days=3), format="json")

        assert response.status_code == 400
        assert not InstallmentOrder.objects.exists()

    def test_daily_amount_too_low(self, client, product_factory, funded_wallet):
        cheap = product_factory(price=Decimal("300.00"))
        response = client.post(reverse("installment-orders"), create_payload(cheap), format="json")

        assert response.status_code == 400
        assert response.json()["detail"].startswith("Daily payment amount must be at least")

    def test_quantity_cap(self, client, phone, funded_wallet):
        response = client.post(reverse("installment-orders"), create_payload(phone, quantity=11), format="json")
        assert response.status_code == 400
        assert "quantity" in response.json()

    def test_unknown_coupon(self, client, phone, funded_wallet):
        response = client.post(
            reverse("installment-orders"), create_payload(phone, coupon_code="NOPE"), format="json"
        )
        assert response.status_code == 400
        assert "NOPE" in response.json()["detail"]

    def test_unavailable_product(self, client, product_factory, funded_wallet):
        product = product_factory(is_available=False)
        response = client.post(reverse("installment-orders"), create_payload(product), format="json")
        assert response.status_code == 400

    def test_insufficient_wallet(self, client, phone):
        response = client.post(reverse("installment-orders"), create_payload(phone), format="json")

        assert response.status_code == 402
        assert response.json()["shortfall"] == "100.00"


class TestOrderQueries:
    def test_list_only_own_orders(self, client, wallet_order, make_order, user_factory, wallet_factory):
        stranger = user_factory()
        wallet_factory(user=stranger, balance=Decimal("1000"))
        make_order(user=stranger)

        response = client.get(reverse("installment-orders"))

        assert response.status_code == 200
        assert [order["id"] for order in response.json()] == [wallet_order.pk]

    def test_list_filters_by_status(self, client, wallet_order):
        assert client.get(reverse("installment-orders"), {"status": "completed"}).json() == []
        assert len(client.get(reverse("installment-orders"), {"status": "active"}).json()) == 1

    def test_detail_summary(self, client, wallet_order):
        response = client.get(reverse("installment-order-detail", args=[wallet_order.pk]))

        assert response.status_code == 200
        summary = response.json()["summary"]
        assert summary["remaining_installments"] == 9
        assert summary["next_installment_number"] == 2
        assert summary["can_make_payment"] is False
        assert response.json()["progress_percent"] == 10.0

    def test_detail_of_someone_elses_order(self, api_client, wallet_order, user_factory):
        authenticate(api_client, user_factory())
        response = api_client.get(reverse("installment-order-detail", args=[wallet_order.pk]))
        assert response.status_code == 403

    def test_detail_unknown_order(self, client):
        response = client.get(reverse("installment-order-detail", args=[424242]))
        assert response.status_code == 404
        assert response.json()["detail"] == "Installment order not found."

    def test_payment_history(self, client, wallet_order):
        next_day(wallet_order)
        client.post(reverse("installment-pay", args=[wallet_order.pk]), {"payment_method": "WALLET"}, format="json")

        response = client.get(reverse("installment-order-payments", args=[wallet_order.pk]))

        assert response.status_code == 200
        assert [p["installment_number"] for p in response.json()] == [1, 2]


class TestPay:
    def test_wallet_payment(self, client, wallet_order):
        next_day(wallet_order)

        response = client.post(
            reverse("installment-pay", args=[wallet_order.pk]), {"payment_method": "WALLET"}, format="json"
        )

        assert response.status_code == 200
        body = response.json()
        assert body["installment"]["number"] == 2
        assert body["order"]["paid_installments"] == 2
        assert body["commission"] == "10.00"

    def test_same_day_is_rejected(self, client, wallet_order):
        response = client.post(
            reverse("installment-pay", args=[wallet_order.pk]), {"payment_method": "WALLET"}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "An installment for this order was already paid today."

    def test_gateway_payment_requires_proof(self, client, wallet_order):
        next_day(wallet_order)
        response = client.post(
            reverse("installment-pay", args=[wallet_order.pk]), {"payment_method": "GATEWAY"}, format="json"
        )
        assert response.status_code == 400
        assert set(response.json()) == {"gateway_order_id", "gateway_payment_id", "gateway_signature"}

    def test_forged_signature_gets_generic_error(self, client, wallet_order):
        next_day(wallet_order)
        response = client.post(
            reverse("installment-pay", args=[wallet_order.pk]),
            {
                "payment_method": "GATEWAY",
                "gateway_order_id": "inst_1",
                "gateway_payment_id": "pay_1",
                "gateway_signature": "forged",
            },
            format="json",
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Payment verification failed."

    def test_gateway_order_for_next_installment(self, client, wallet_order, gateway):
        next_day(wallet_order)

        response = client.post(reverse("installment-gateway-order", args=[wallet_order.pk]))

        assert response.status_code == 201
        assert response.json()["installment_number"] == 2
        assert response.json()["gateway_order"]["notes"]["type"] == "daily_installment"


class TestCombinedAndPending:
    @pytest.fixture
    def two_orders(self, make_order, funded_wallet, product_factory):
        first = next_day(make_order().order)
        second = next_day(make_order(product=product_factory(price=Decimal("2000.00"))).order)
        return first, second

    def test_daily_pending(self, client, two_orders):
        first, second = two_orders
        yesterday = timezone.localdate() - timedelta(days=1)
        first.installments.filter(number=2).update(due_date=yesterday)
        second.installments.filter(number=2).update(due_date=yesterday)

        response = client.get(reverse("daily-pending"))

        assert response.status_code == 200
        assert response.json()["count"] == 2
        assert response.json()["total_amount"] == "300.00"

    def test_combined_wallet_payment(self, client, two_orders):
        first, second = two_orders

        response = client.post(
            reverse("combined-pay"),
            {"payment_method": "WALLET", "order_ids": [first.pk, second.pk]},
            format="json",
        )

        assert response.status_code == 200
        assert response.json()["count"] == 2
        assert PaymentRecord.objects.filter(installment_number=2, status="COMPLETED").count() == 2

    def test_combined_gateway_order(self, client, two_orders, gateway):
        first, second = two_orders

        response = client.post(
            reverse("combined-gateway-order"), {"order_ids": [first.pk, second.pk]}, format="json"
        )

        assert response.status_code == 201
        assert response.json()["gateway_order"]["amount"] == "300.00"
        assert len(response.json()["installments"]) == 2


class TestCancel:
    def test_cancel(self, client, wallet_order):
        response = client.post(
            reverse("installment-cancel", args=[wallet_order.pk]), {"reason": "too expensive"}, format="json"
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"

    def test_cancel_twice(self, client, wallet_order):
        client.post(reverse("installment-cancel", args=[wallet_order.pk]), {}, format="json")
        response = client.post(reverse("installment-cancel", args=[wallet_order.pk]), {}, format="json")
        assert response.status_code == 400
