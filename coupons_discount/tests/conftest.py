from pytest_factoryboy import register

from installments.tests.factory import CouponFactory

register(CouponFactory)
