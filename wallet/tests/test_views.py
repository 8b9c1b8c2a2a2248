from decimal import Decimal

import pytest
from django.urls import reverse

from installments.tests.utils import authenticate
from wallet.models import WalletDeposit
from wallet.services import credit_commission

pytestmark = pytest.mark.django_db


def test_wallet_requires_authentication(api_client):
    assert api_client.get(reverse("wallet-detail")).status_code == 401


def test_wallet_detail(api_client, user):
    credit_commission(user, available_amount=Decimal("9.00"), locked_amount=Decimal("1.00"))
    authenticate(api_client, user)

    response = api_client.get(reverse("wallet-detail"))

    assert response.status_code == 200
    body = response.json()
    assert body["balance"] == "9.00"
    assert body["hold_balance"] == "1.00"
    assert len(body["recent_transactions"]) == 2


def test_start_deposit(api_client, user, gateway):
    authenticate(api_client, user)

    response = api_client.post(reverse("wallet-deposits"), {"amount": "500.00"}, format="json")

    assert response.status_code == 201
    body = response.json()
    assert body["deposit"]["status"] == "PENDING"
    assert body["gateway_order"]["gateway_order_id"] == "dep_1"
    assert body["gateway_order"]["notes"] == {"type": "wallet_deposit", "user_id": str(user.pk)}
    assert WalletDeposit.objects.get().amount == Decimal("500.00")


def test_deposit_amount_must_be_positive(api_client, user, gateway):
    authenticate(api_client, user)

    response = api_client.post(reverse("wallet-deposits"), {"amount": "0"}, format="json")

    assert response.status_code == 400
    gateway.assert_not_called()


def test_list_own_deposits(api_client, user, user_factory):
    WalletDeposit.objects.create(user=user, amount=Decimal("10.00"), gateway_order_id="dep_a")
    WalletDeposit.objects.create(user=user_factory(), amount=Decimal("20.00"), gateway_order_id="dep_b")
    authenticate(api_client, user)

    response = api_client.get(reverse("wallet-deposits"))

    assert [d["gateway_order_id"] for d in response.json()] == ["dep_a"]
