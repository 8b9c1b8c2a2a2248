import json
from datetime import timedelta

from django.urls import reverse
from django.utils import timezone
from rest_framework_simplejwt.tokens import RefreshToken

from installments.models import InstallmentOrder
from installments.payment_services import payment_signature, webhook_signature
from installments.services import GatewayPayment


def authenticate(client, user):
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


def next_day(order):
    """Pretend the last payment happened yesterday."""
    InstallmentOrder.objects.filter(pk=order.pk).update(last_payment_date=timezone.now() - timedelta(days=1))
    order.refresh_from_db()
    return order


def signed_payment(gateway_order_id, gateway_payment_id):
    return GatewayPayment(
        gateway_order_id=gateway_order_id,
        gateway_payment_id=gateway_payment_id,
        signature=payment_signature(gateway_order_id, gateway_payment_id),
    )


def gateway_event(event, payment_id, order_id, amount, notes, error_description=None):
    entity = {
        "id": payment_id,
        "order_id": order_id,
        "amount": int(amount * 100),
        "notes": {k: str(v) for k, v in notes.items()},
    }
    if error_description:
        entity["error_description"] = error_description
    return {"event": event, "payload": {"payment": {"entity": entity}}}


def post_webhook(client, event, signature=None, raw=None):
    body = raw if raw is not None else json.dumps(event).encode()
    headers = {"HTTP_X_PAYSTACK_SIGNATURE": signature if signature is not None else webhook_signature(body)}
    return client.post(reverse("gateway-webhook"), data=body, content_type="application/json", **headers)
