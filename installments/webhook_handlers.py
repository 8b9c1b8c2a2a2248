"""
Gateway webhook processing.

Every captured payment is first classified from the notes attached when the
gateway order was opened; the handlers then hand over to the same services
the client-facing endpoints use.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from wallet.exceptions import WalletDepositNotFound
from wallet.models import WalletDeposit
from wallet.services import credit_deposit, fail_deposit

from .exceptions import AlreadyCompleted, AlreadyPaidToday, OrderNotFound, PaymentAlreadyProcessed
from .models import InstallmentOrder, PaymentRecord, WebhookEvent
from .models.order import PaymentMethod
from .notifications import notify_deposit_completed
from .payment_services import from_minor_units
from .services import GatewayPayment, PaymentService

logger = logging.getLogger(__name__)

User = get_user_model()

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"


@dataclass(frozen=True)
class Capture:
    payment_id: str
    order_id: str
    amount: Decimal
    notes: dict


@dataclass(frozen=True)
class WalletDepositPayment:
    capture: Capture
    user_id: int | None
    payment_type = WebhookEvent.PaymentType.WALLET_DEPOSIT


@dataclass(frozen=True)
class FirstInstallmentPayment:
    capture: Capture
    order_id: int
    installment_number: int
    user_id: int | None
    payment_type = WebhookEvent.PaymentType.FIRST_INSTALLMENT


@dataclass(frozen=True)
class DailyInstallmentPayment:
    capture: Capture
    order_id: int
    installment_number: int | None
    user_id: int | None
    payment_type = WebhookEvent.PaymentType.DAILY_INSTALLMENT


@dataclass(frozen=True)
class CombinedPayment:
    capture: Capture
    order_ids: list
    user_id: int
    payment_type = WebhookEvent.PaymentType.COMBINED_PAYMENT


@dataclass(frozen=True)
class Unclassified:
    capture: Capture
    reason: str
    payment_type = WebhookEvent.PaymentType.UNKNOWN


ClassifiedPayment = WalletDepositPayment | FirstInstallmentPayment | DailyInstallmentPayment | CombinedPayment | Unclassified


class HandlerOutcome:
    PROCESSED = WebhookEvent.Status.PROCESSED
    IGNORED = WebhookEvent.Status.IGNORED


def _int_or_none(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def payment_entity(event: dict) -> dict:
    node = event
    for key in ("payload", "payment", "entity"):
        node = node.get(key) if isinstance(node, dict) else None
    return node if isinstance(node, dict) else {}


def read_capture(entity: dict) -> Capture:
    notes = entity.get("notes") or {}
    if not isinstance(notes, dict):
        notes = {}
    return Capture(
        payment_id=str(entity.get("id") or ""),
        order_id=str(entity.get("order_id") or ""),
        amount=from_minor_units(entity.get("amount") or 0),
        notes=notes,
    )


def classify(entity: dict) -> ClassifiedPayment:
    capture = read_capture(entity)
    notes = capture.notes
    kind = notes.get("type")
    user_id = _int_or_none(notes.get("user_id"))

    if kind == "wallet_deposit":
        return WalletDepositPayment(capture=capture, user_id=user_id)

    if kind == "combined_daily_payment":
        order_ids = [_int_or_none(part) for part in str(notes.get("order_ids") or "").split(",") if part.strip()]
        if not order_ids or None in order_ids or user_id is None:
            return Unclassified(capture=capture, reason="combined payment without order_ids/user_id")
        return CombinedPayment(capture=capture, order_ids=order_ids, user_id=user_id)

    if kind in ("first_payment", "daily_installment"):
        order_id = _int_or_none(notes.get("order_id"))
        if order_id is None:
            return Unclassified(capture=capture, reason=f"{kind} without order_id")
        number = _int_or_none(notes.get("installment_number"))
        if kind == "first_payment":
            return FirstInstallmentPayment(
                capture=capture, order_id=order_id, installment_number=number or 1, user_id=user_id
            )
        return DailyInstallmentPayment(
            capture=capture, order_id=order_id, installment_number=number, user_id=user_id
        )

    return Unclassified(capture=capture, reason=f"unknown payment type {kind!r}")


def claim_event(event_type: str, event: dict) -> WebhookEvent | None:
    """Insert the dedup row for this delivery. None means someone already claimed it."""
    entity = payment_entity(event)
    payment_id = str(entity.get("id") or "")
    try:
        with transaction.atomic():
            return WebhookEvent.objects.create(
                event_key=WebhookEvent.make_key(payment_id, event_type),
                event_type=event_type,
                gateway_payment_id=payment_id,
                gateway_order_id=str(entity.get("order_id") or ""),
                payload=event,
            )
    except IntegrityError:
        logger.info(f"Webhook {payment_id}:{event_type} already claimed")
        return None


def _gateway_payment(capture: Capture) -> GatewayPayment:
    return GatewayPayment(
        gateway_order_id=capture.order_id,
        gateway_payment_id=capture.payment_id,
        verified=True,
    )


def _settled_by(capture: Capture, order_ids) -> bool:
    return PaymentRecord.objects.filter(
        order_id__in=order_ids,
        gateway_payment_id=capture.payment_id,
        status=PaymentRecord.Status.COMPLETED,
    ).exists()


def _buyer(user_id, order_id=None):
    if user_id is not None:
        user = User.objects.filter(pk=user_id).first()
        if user is not None:
            return user
    if order_id is not None:
        order = InstallmentOrder.objects.select_related("user").filter(pk=order_id).first()
        if order is not None:
            return order.user
    raise OrderNotFound()


def handle_wallet_deposit(payment: WalletDepositPayment) -> tuple[str, str]:
    capture = payment.capture
    deposit = WalletDeposit.objects.filter(gateway_order_id=capture.order_id).first()
    if deposit is None:
        raise WalletDepositNotFound(f"No deposit for gateway order {capture.order_id}.")
    if deposit.status == WalletDeposit.Status.COMPLETED:
        return HandlerOutcome.PROCESSED, "deposit already completed"
    if capture.amount != deposit.amount:
        raise ValueError(f"Captured {capture.amount} does not match deposit amount {deposit.amount}")

    deposit = credit_deposit(deposit, gateway_payment_id=capture.payment_id)
    notify_deposit_completed(deposit)
    return HandlerOutcome.PROCESSED, f"deposit {deposit.pk} credited"


def handle_installment(payment: FirstInstallmentPayment | DailyInstallmentPayment) -> tuple[str, str]:
    capture = payment.capture
    user = _buyer(payment.user_id, payment.order_id)
    try:
        result = PaymentService.settle_next_installment(
            order_id=payment.order_id,
            user=user,
            method=PaymentMethod.GATEWAY,
            gateway_payment=_gateway_payment(capture),
            expected_installment=payment.installment_number,
        )
    except (PaymentAlreadyProcessed, AlreadyPaidToday, AlreadyCompleted):
        if _settled_by(capture, [payment.order_id]):
            return HandlerOutcome.PROCESSED, "already settled by client"
        raise
    return HandlerOutcome.PROCESSED, f"installment #{result.installment.number} settled"


def handle_combined(payment: CombinedPayment) -> tuple[str, str]:
    capture = payment.capture
    user = _buyer(payment.user_id)
    try:
        results = PaymentService.settle_selected_installments(
            user=user,
            order_ids=payment.order_ids,
            method=PaymentMethod.GATEWAY,
            gateway_payment=_gateway_payment(capture),
        )
    except (PaymentAlreadyProcessed, AlreadyPaidToday, AlreadyCompleted):
        if _settled_by(capture, payment.order_ids):
            return HandlerOutcome.PROCESSED, "already settled by client"
        raise
    return HandlerOutcome.PROCESSED, f"{len(results)} orders settled"


def handle_captured(event: dict) -> tuple[WebhookEvent.PaymentType, str, str]:
    payment = classify(payment_entity(event))
    if isinstance(payment, WalletDepositPayment):
        outcome, note = handle_wallet_deposit(payment)
    elif isinstance(payment, (FirstInstallmentPayment, DailyInstallmentPayment)):
        outcome, note = handle_installment(payment)
    elif isinstance(payment, CombinedPayment):
        outcome, note = handle_combined(payment)
    else:
        logger.warning(f"Unclassified captured payment {payment.capture.payment_id}: {payment.reason}")
        outcome, note = HandlerOutcome.IGNORED, payment.reason
    return payment.payment_type, outcome, note


def handle_failed(event: dict) -> tuple[WebhookEvent.PaymentType, str, str]:
    entity = payment_entity(event)
    payment = classify(entity)
    reason = str(entity.get("error_description") or "Payment failed at gateway")
    gateway_order_id = payment.capture.order_id

    deposit = WalletDeposit.objects.filter(gateway_order_id=gateway_order_id).first() if gateway_order_id else None
    if deposit is not None:
        changed = fail_deposit(deposit, reason=reason)
        note = "deposit marked failed" if changed else f"deposit left {deposit.status}"
        return WebhookEvent.PaymentType.WALLET_DEPOSIT, HandlerOutcome.PROCESSED, note

    failed = PaymentService.mark_payments_failed(gateway_order_id=gateway_order_id, reason=reason)
    return payment.payment_type, HandlerOutcome.PROCESSED, f"{failed} payment attempt(s) marked failed"


HANDLERS = {
    PAYMENT_CAPTURED: handle_captured,
    PAYMENT_FAILED: handle_failed,
}


def process_event(webhook_event: WebhookEvent) -> str:
    """
    Run the handler for a claimed event and record the outcome on it.
    Handler errors end up on the event as `failed`; they never propagate.
    """
    handler = HANDLERS.get(webhook_event.event_type)
    if handler is None:
        webhook_event.status = WebhookEvent.Status.IGNORED
        webhook_event.processing_note = f"unhandled event type {webhook_event.event_type}"
    else:
        try:
            payment_type, outcome, note = handler(webhook_event.payload)
            webhook_event.payment_type = payment_type
            webhook_event.status = outcome
            webhook_event.processing_note = note
        except Exception as exc:
            logger.exception(f"Webhook {webhook_event.event_key} failed")
            webhook_event.status = WebhookEvent.Status.FAILED
            webhook_event.processing_note = f"{type(exc).__name__}: {exc}"[:2000]

    webhook_event.processed_at = timezone.now()
    webhook_event.save(update_fields=["payment_type", "status", "processing_note", "processed_at", "updated_at"])
    logger.info(f"Webhook {webhook_event.event_key} -> {webhook_event.status} ({webhook_event.processing_note})")
    return webhook_event.status
