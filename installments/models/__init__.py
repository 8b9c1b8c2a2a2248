from .order import InstallmentOrder, Installment, Product
from .payment import PaymentRecord
from .webhook import WebhookEvent

__all__ = ["Product", "InstallmentOrder", "Installment", "PaymentRecord", "WebhookEvent"]
