import hashlib
import hmac
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from paystackapi.paystack import Paystack

from .exceptions import GatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount: Decimal
    currency: str
    authorization_url: str = ""
    access_code: str = ""
    notes: dict = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "gateway_order_id": self.order_id,
            "amount": str(self.amount),
            "amount_minor": to_minor_units(self.amount),
            "currency": self.currency,
            "authorization_url": self.authorization_url,
            "access_code": self.access_code,
            "notes": self.notes,
        }


def to_minor_units(amount) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(value) -> Decimal:
    return (Decimal(value) / 100).quantize(Decimal("0.01"))


def check_email_with_default(email: str) -> str:
    try:
        validate_email(email)
        return email
    except ValidationError:
        return settings.DEFAULT_PAYMENT_EMAIL


def new_gateway_reference(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:20]}"


def create_gateway_order(*, amount: Decimal, email: str, notes: dict, prefix: str = "inst") -> GatewayOrder:
    """
    Open a payment on the gateway. `notes` travel back untouched in webhook
    payloads and drive webhook classification.
    """
    reference = new_gateway_reference(prefix)
    notes = {k: str(v) for k, v in notes.items()}
    paystack = Paystack(secret_key=settings.PAYSTACK_SECRET_KEY)

    try:
        response = paystack.transaction.initialize(
            reference=reference,
            amount=to_minor_units(amount),
            email=check_email_with_default(email or ""),
            currency=settings.GATEWAY_CURRENCY,
            metadata=notes,
        )
    except Exception as exc:
        logger.exception(f"Gateway order creation failed for {reference}")
        raise GatewayError() from exc

    if not response or not response.get("status"):
        message = (response or {}).get("message", "no response")
        logger.error(f"Gateway rejected order {reference}: {message}")
        raise GatewayError()

    data = response.get("data") or {}
    logger.info(f"Gateway order {reference} created for {amount} ({notes.get('type')})")
    return GatewayOrder(
        order_id=data.get("reference", reference),
        amount=Decimal(amount),
        currency=settings.GATEWAY_CURRENCY,
        authorization_url=data.get("authorization_url", ""),
        access_code=data.get("access_code", ""),
        notes=notes,
    )


def _hmac_sha256(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def payment_signature(gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode()
    return _hmac_sha256(settings.PAYMENT_VERIFICATION_SECRET, message)


def verify_payment_signature(gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
    if not (gateway_order_id and gateway_payment_id and signature):
        return False
    expected = payment_signature(gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected, signature)


def webhook_signature(body: bytes) -> str:
    return _hmac_sha256(settings.GATEWAY_WEBHOOK_SECRET, body)


def verify_webhook_signature(body: bytes, signature: str | None) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(webhook_signature(body), signature)
