"""Outbound ``payment.completed`` notification to the client's callback URL."""

import hashlib
import hmac
import logging

import requests
from requests import RequestException
from django.conf import settings

from .models import ApiClient

logger = logging.getLogger(__name__)

EVENT_PAYMENT_COMPLETED = "payment.completed"


def notification_signature(api_key: str, payment_id: str, external_ref: str, amount, paid_at: str) -> str:
    message = f"{payment_id}{external_ref}{amount}{paid_at}".encode("utf-8")
    return hmac.new(api_key.encode("utf-8"), message, hashlib.sha256).hexdigest()


def build_notification(order, api_key: str) -> dict:
    paid_at = order.paid_at.isoformat() if order.paid_at else ""
    return {
        "event": EVENT_PAYMENT_COMPLETED,
        "payment_id": order.payment_code,
        "external_ref": order.external_order_id,
        "amount": order.amount,
        "paid_at": paid_at,
        "signature": notification_signature(
            api_key, order.payment_code, order.external_order_id, order.amount, paid_at
        ),
    }


def send_payment_notification(order) -> bool:
    """POST the notification; failures are logged and reported as ``False``, never raised."""
    if not order.callback_url:
        return False
    client = ApiClient.objects.filter(client_system=order.client_system, is_active=True).first()
    if client is None:
        logger.error("No active API client for %s; cannot sign notification for order %s",
                     order.client_system, order.pk)
        return False

    payload = build_notification(order, client.api_key)
    try:
        resp = requests.post(
            order.callback_url,
            json=payload,
            timeout=settings.PAYMENTS.get("NOTIFY_TIMEOUT", 5),
        )
    except RequestException:
        logger.exception("Notification for order %s to %s failed", order.pk, order.callback_url)
        return False

    if not resp.ok:
        logger.error("Notification for order %s answered HTTP %s", order.pk, resp.status_code)
        return False
    logger.info("Notified %s of payment %s", order.client_system, order.payment_code)
    return True
