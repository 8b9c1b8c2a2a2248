from rest_framework import status
from rest_framework.exceptions import APIException


class InsufficientBalance(APIException):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_detail = "Insufficient wallet balance."
    default_code = "insufficient_balance"

    def __init__(self, required, available):
        self.required = required
        self.available = available
        self.shortfall = required - available
        super().__init__(detail={
            "detail": self.default_detail,
            "code": self.default_code,
            "required": str(required),
            "available": str(available),
            "shortfall": str(self.shortfall),
        })


class WalletDepositNotFound(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Deposit not found."
    default_code = "deposit_not_found"
