"""Gateway-facing webhooks.

The gateway retries until it reads ``1|OK``, so these views always answer
200 with either ``1|OK`` or ``0|<reason>`` and never raise.
"""

import json
import logging

from django.http import HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from . import checkmac, payloads, services
from .exceptions import NotFoundError, PaymentError
from .integrations.ecpay import SUCCESS_CODES
from .models import GatewayTransaction

logger = logging.getLogger(__name__)

ACK_OK = "1|OK"


def _payload(request) -> dict:
    if request.content_type == "application/json":
        try:
            body = json.loads(request.body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            return {}
        return body if isinstance(body, dict) else {}
    return request.POST.dict()


def _verified(data: dict, kind: str) -> bool:
    if checkmac.verify(data):
        return True
    logger.warning("%s webhook for %s failed CheckMacValue", kind, data.get("MerchantTradeNo", ""))
    return False


def handle_payment_callback(payload: dict):
    """Payment confirmation. Returns ``(success, message)``."""
    data = payloads.flatten(payload)
    if not _verified(data, "Payment"):
        return False, "CheckMacValue verification failed"

    trade_no = data.get("MerchantTradeNo", "")
    paid = str(data.get("RtnCode", "")) == "1"
    try:
        order, transitioned = services.record_gateway_payment(trade_no, data, paid=paid)
    except NotFoundError:
        logger.error("Payment webhook for unknown MerchantTradeNo %s", trade_no)
        return False, "Unknown MerchantTradeNo"
    except PaymentError as e:
        return False, str(e)

    if not paid:
        logger.info("Payment webhook for %s reported RtnCode %s", trade_no, data.get("RtnCode"))
    elif not transitioned:
        logger.info("Duplicate payment webhook for %s (order %s is %s)", trade_no, order.pk, order.status)
    return True, "OK"


def handle_payment_info_callback(payload: dict):
    """Barcode issued. Carries segments only, never a payment confirmation."""
    data = payloads.flatten(payload)
    if not _verified(data, "Payment-info"):
        return False, "CheckMacValue verification failed"

    trade_no = data.get("MerchantTradeNo", "")
    txn = GatewayTransaction.objects.filter(merchant_trade_no=trade_no).first()
    if txn is None:
        logger.error("Payment-info webhook for unknown MerchantTradeNo %s", trade_no)
        return False, "Unknown MerchantTradeNo"

    rtn_code = str(data.get("RtnCode", ""))
    if rtn_code and rtn_code not in SUCCESS_CODES:
        logger.warning("Barcode not issued for %s: %s %s", trade_no, rtn_code, data.get("RtnMsg", ""))
        return True, "OK"

    segments = payloads.extract_segments(data)
    if not segments:
        return False, "No barcode segments"
    try:
        services.apply_barcode_segments(
            txn.order_id,
            segments,
            payment_no=str(data.get("PaymentNo", "") or ""),
            expire_text=payloads.expire_text(data),
            source="webhook",
            merchant_trade_no=trade_no,
        )
    except PaymentError as e:
        logger.warning("Rejected barcode for %s: %s", trade_no, e)
        return False, str(e)
    return True, "OK"


def _ack(handler, request):
    try:
        ok, message = handler(_payload(request))
    except Exception:
        logger.exception("Webhook %s crashed", request.path)
        ok, message = False, "Internal error"
    return HttpResponse(ACK_OK if ok else f"0|{message}", content_type="text/plain")


@csrf_exempt
@require_POST
def ecpay_callback(request):
    return _ack(handle_payment_callback, request)


@csrf_exempt
@require_POST
def ecpay_payment_info(request):
    return _ack(handle_payment_info_callback, request)
