"""
Celery tasks for webhook reconciliation and autopay.
"""
import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone

from .exceptions import (
    AlreadyCompleted,
    AlreadyPaidToday,
    InsufficientBalance,
    InvalidStatus,
    NoPendingInstallment,
)
from .models import InstallmentOrder, WebhookEvent
from .models.order import PaymentMethod
from .services import PaymentService
from .webhook_handlers import process_event

logger = logging.getLogger(__name__)


@shared_task(name="installments.retry_failed_webhook_events")
def retry_failed_webhook_events():
    """
    Re-run events that failed, or that have sat in `processing` long enough
    that the worker handling them is presumed dead.
    """
    stale_before = timezone.now() - timedelta(minutes=settings.WEBHOOK_RETRY_AFTER_MINUTES)
    candidates = WebhookEvent.objects.filter(
        Q(status=WebhookEvent.Status.FAILED)
        | Q(status=WebhookEvent.Status.PROCESSING, updated_at__lt=stale_before),
        attempts__lt=settings.WEBHOOK_MAX_ATTEMPTS,
    ).values_list("id", flat=True)

    retried = 0
    for event_id in list(candidates):
        # re-claim: only one worker moves the row forward
        claimed = WebhookEvent.objects.filter(
            Q(status=WebhookEvent.Status.FAILED)
            | Q(status=WebhookEvent.Status.PROCESSING, updated_at__lt=stale_before),
            id=event_id,
        ).update(
            status=WebhookEvent.Status.PROCESSING,
            attempts=F("attempts") + 1,
            updated_at=timezone.now(),
        )
        if not claimed:
            continue

        event = WebhookEvent.objects.get(id=event_id)
        logger.info(f"Retrying webhook {event.event_key} (attempt {event.attempts})")
        process_event(event)
        retried += 1

    return retried


@shared_task(name="installments.autopay_settle_order")
def autopay_settle_order(order_id):
    """Settle today's installment of an order from the buyer's wallet."""
    try:
        order = InstallmentOrder.objects.select_related("user").get(id=order_id)
    except InstallmentOrder.DoesNotExist:
        logger.error(f"Autopay: order {order_id} not found")
        return None

    try:
        result = PaymentService.settle_next_installment(
            order_id=order.pk,
            user=order.user,
            method=PaymentMethod.WALLET,
        )
    except InsufficientBalance as exc:
        logger.warning(f"Autopay: order {order_id} short by {exc.shortfall}")
        return None
    except (AlreadyPaidToday, AlreadyCompleted, NoPendingInstallment, InvalidStatus) as exc:
        logger.info(f"Autopay: order {order_id} skipped ({exc.default_code}: {exc})")
        return None

    logger.info(f"Autopay: order {order_id} installment #{result.installment.number} settled")
    return result.payment.pk
