import factory
from decimal import Decimal

from accounts.models import User
from coupons_discount.models import Coupon
from installments.models import Product
from wallet.models import Wallet


class UserFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = User

    email = factory.Sequence(lambda n: f"buyer{n}@example.com")
    phone_number = factory.Sequence(lambda n: f"+9198765{n:05d}")
    name = factory.Sequence(lambda n: f"Buyer {n}")


class WalletFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Wallet
        django_get_or_create = ("user",)

    user = factory.SubFactory(UserFactory)
    balance = Decimal("0.00")


class ProductFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Product

    name = factory.Sequence(lambda n: f"Product {n}")
    price = Decimal("1000.00")
    is_available = True


class CouponFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Coupon

    code = factory.Sequence(lambda n: f"SAVE{n}")
    coupon_type = Coupon.CouponType.INSTANT
    discount_type = Coupon.DiscountType.FLAT
    discount_value = Decimal("100.00")
