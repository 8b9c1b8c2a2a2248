import json
import logging

from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from .payment_services import verify_webhook_signature
from .webhook_handlers import claim_event, payment_entity, process_event

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Paystack-Signature"


def _ack(status_text):
    # the gateway only ever sees 200; anything else makes it retry
    return JsonResponse({"status": status_text}, status=200)


@csrf_exempt
@require_POST
def gateway_webhook(request):
    payload = request.body
    signature = request.headers.get(SIGNATURE_HEADER)

    if not verify_webhook_signature(payload, signature):
        logger.warning("Gateway webhook with missing or invalid signature ignored")
        return _ack("ignored")

    try:
        event = json.loads(payload)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Gateway webhook with unparsable body ignored")
        return _ack("ignored")

    if not isinstance(event, dict):
        return _ack("ignored")

    event_type = event.get("event")
    payment_id = payment_entity(event).get("id")
    if not event_type or not payment_id:
        logger.warning(f"Gateway webhook without event type or payment id ignored ({event_type})")
        return _ack("ignored")

    webhook_event = claim_event(event_type, event)
    if webhook_event is None:
        return _ack("duplicate")

    return _ack(process_event(webhook_event))
