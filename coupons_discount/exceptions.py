from rest_framework import status
from rest_framework.exceptions import APIException


class InvalidCoupon(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Coupon cannot be applied to this order."
    default_code = "invalid_coupon"
