"""Active re-query of the gateway for orders whose webhooks are late."""

import logging

from . import payloads, services
from .exceptions import GatewayUnavailableError, NotFoundError, SignatureError
from .integrations import ecpay

logger = logging.getLogger(__name__)

TRADE_PAID = "1"


def query_and_refresh(order) -> dict:
    """Query the gateway for ``order`` and feed the answer through the normal transitions.

    Gateway failures come back as ``success: False`` with an error code rather
    than raising, so batch callers can carry on with the next order.
    """
    txn = services.latest_transaction(order)
    if txn is None:
        raise NotFoundError(f"Order {order.pk} has no gateway transaction")

    try:
        data = ecpay.query_payment_info(txn.merchant_trade_no)
    except (GatewayUnavailableError, SignatureError) as e:
        logger.warning("Query for %s failed: %s", txn.merchant_trade_no, e)
        return {
            "success": False,
            "barcode_updated": False,
            "trade_status": None,
            "error": {"code": e.code, "message": str(e)},
            "order": order,
        }

    flat = payloads.flatten(data)
    trade_status = str(flat.get("TradeStatus", "") or "")
    barcode_updated = False

    segments = payloads.extract_segments(flat)
    if segments:
        order, barcode_updated = services.apply_barcode_segments(
            order.pk,
            segments,
            payment_no=str(flat.get("PaymentNo", "") or ""),
            expire_text=payloads.expire_text(flat),
            source="query",
            merchant_trade_no=txn.merchant_trade_no,
        )

    if trade_status == TRADE_PAID:
        order, _ = services.record_gateway_payment(txn.merchant_trade_no, flat, paid=True, source="query")

    order.refresh_from_db()
    order = services.check_expiry(order)
    logger.info("Reconciled %s: trade_status=%s barcode_updated=%s",
                txn.merchant_trade_no, trade_status or "-", barcode_updated)
    return {
        "success": True,
        "barcode_updated": barcode_updated,
        "trade_status": trade_status or None,
        "order": order,
    }
