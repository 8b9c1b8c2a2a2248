from decimal import Decimal
from unittest import mock

import pytest
from pytest_factoryboy import register
from rest_framework.test import APIClient

from installments.payment_services import GatewayOrder
from installments.tests.factory import UserFactory, WalletFactory

register(UserFactory)
register(WalletFactory)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def gateway():
    def fake_create_gateway_order(*, amount, email, notes, prefix="inst"):
        return GatewayOrder(
            order_id=f"{prefix}_1",
            amount=Decimal(amount),
            currency="INR",
            authorization_url="https://checkout.example/pay",
            notes={k: str(v) for k, v in notes.items()},
        )

    with mock.patch("wallet.services.create_gateway_order", side_effect=fake_create_gateway_order) as fake:
        yield fake
