from django.conf import settings
from rest_framework import status
from rest_framework.exceptions import APIException

from coupons_discount.exceptions import InvalidCoupon  # noqa: F401
from wallet.exceptions import InsufficientBalance  # noqa: F401


class OrderNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Installment order not found."
    default_code = "order_not_found"


class Unauthorized(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You do not have access to this order."
    default_code = "unauthorized"


class InvalidStatus(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Order is not in a payable state."
    default_code = "invalid_status"


class AlreadyCompleted(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Order is already completed."
    default_code = "already_completed"


class AlreadyPaidToday(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "An installment for this order was already paid today."
    default_code = "already_paid_today"


class NoPendingInstallment(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "No pending installment to pay."
    default_code = "no_pending_installment"


class SignatureVerificationFailed(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Payment verification failed."
    default_code = "signature_verification_failed"


class PaymentAlreadyProcessed(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This installment has already been paid."
    default_code = "payment_already_processed"


class InvalidInstallmentDuration(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid installment duration."
    default_code = "invalid_installment_duration"


class InvalidDailyAmount(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Daily installment amount is too low."
    default_code = "invalid_daily_amount"


class ProductUnavailable(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Product is not available."
    default_code = "product_unavailable"


class GatewayError(APIException):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Payment gateway is unavailable. Please try again."
    default_code = "gateway_error"


class TransactionFailed(APIException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Payment could not be recorded. Please try again."
    default_code = "transaction_failed"

    def __init__(self, error=None):
        detail = None
        if error is not None and settings.DEBUG:
            detail = f"{self.default_detail} ({error})"
        super().__init__(detail=detail)
