"""
Buyer notifications over the channel layer.
Fire-and-forget: a failure here is logged and never reaches the settlement.
"""
import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

logger = logging.getLogger(__name__)


def get_user_group_name(user_id):
    return f"user_{user_id}_installments"


def broadcast_to_user(user_id, event_type, data):
    try:
        channel_layer = get_channel_layer()
        if channel_layer is None:
            return
        async_to_sync(channel_layer.group_send)(
            get_user_group_name(user_id),
            {
                "type": "installment_update",
                "event": event_type,
                "data": data,
            },
        )
    except Exception:
        logger.warning(f"Notification {event_type} to user {user_id} failed", exc_info=True)


def notify_installment_paid(order, payment):
    data = {
        "order_id": order.pk,
        "installment_number": payment.installment_number,
        "amount": str(payment.amount),
        "paid_installments": order.paid_installments,
        "total_days": order.total_days,
        "remaining_amount": str(order.remaining_amount),
        "status": order.status,
    }
    event = "order_completed" if order.status == order.Status.COMPLETED else "installment_paid"
    transaction.on_commit(lambda: broadcast_to_user(order.user_id, event, data))


def notify_order_cancelled(order):
    data = {"order_id": order.pk, "reason": order.cancellation_reason}
    transaction.on_commit(lambda: broadcast_to_user(order.user_id, "order_cancelled", data))


def notify_deposit_completed(deposit):
    data = {"deposit_id": deposit.pk, "amount": str(deposit.amount)}
    transaction.on_commit(lambda: broadcast_to_user(deposit.user_id, "wallet_deposit_completed", data))
