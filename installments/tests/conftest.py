import itertools
from decimal import Decimal
from unittest import mock

import pytest
from pytest_factoryboy import register
from rest_framework.test import APIClient

from installments.models.order import PaymentMethod
from installments.payment_services import GatewayOrder
from installments.services import InstallmentOrderService

from .factory import CouponFactory, ProductFactory, UserFactory, WalletFactory

register(UserFactory)
register(WalletFactory)
register(ProductFactory)
register(CouponFactory)


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def referrer(user_factory):
    return user_factory(name="Referrer")


@pytest.fixture
def buyer(user_factory, referrer):
    return user_factory(name="Buyer", referred_by=referrer)


@pytest.fixture
def funded_wallet(wallet_factory, buyer):
    return wallet_factory(user=buyer, balance=Decimal("5000.00"))


@pytest.fixture
def phone(product_factory):
    """1000 over 10 days -> 100 a day."""
    return product_factory(name="Phone", price=Decimal("1000.00"))


@pytest.fixture
def gateway():
    """Replace the outbound gateway with a fake that hands out sequential order ids."""
    counter = itertools.count(1)

    def fake_create_gateway_order(*, amount, email, notes, prefix="inst"):
        return GatewayOrder(
            order_id=f"{prefix}_{next(counter)}",
            amount=Decimal(amount),
            currency="INR",
            authorization_url="https://checkout.example/pay",
            access_code="access",
            notes={k: str(v) for k, v in notes.items()},
        )

    with mock.patch("installments.services.create_gateway_order", side_effect=fake_create_gateway_order) as fake, \
            mock.patch("wallet.services.create_gateway_order", side_effect=fake_create_gateway_order):
        yield fake


@pytest.fixture
def make_order(buyer, phone):
    def _make(user=None, product=None, days=10, method=PaymentMethod.WALLET, coupon_code=None, quantity=1):
        return InstallmentOrderService.create_order(
            user=user or buyer,
            product_id=(product or phone).pk,
            total_days=days,
            payment_method=method,
            quantity=quantity,
            coupon_code=coupon_code,
        )
    return _make


@pytest.fixture
def wallet_order(make_order, funded_wallet):
    """Active order with installment #1 paid from the wallet today."""
    return make_order().order
