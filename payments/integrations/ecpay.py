"""ECPay AioCheckOut client for convenience-store barcode (``BARCODE``) payments."""

import json
import logging
import re
import time
from datetime import timedelta
from urllib.parse import parse_qsl

import requests
from requests import RequestException
from django.conf import settings
from django.utils import timezone

from .. import checkmac, payloads
from ..exceptions import GatewayUnavailableError, SignatureError
from ..utils import format_gateway_datetime, truncate_item_name

logger = logging.getLogger(__name__)

SUCCESS_CODES = {"1", "10100073"}
MODE_REDIRECT = "redirect"
MODE_DIRECT = "direct"
MODE_DEFERRED = "deferred"

STORE_LABELS = {
    "7ELEVEN": "7-ELEVEN",
    "FAMILY": "FamilyMart",
    "HILIFE": "Hi-Life",
    "OKMART": "OK Mart",
}

_ACK = re.compile(r"^(-?\d+)\|(.*)$", re.S)


def _conf() -> dict:
    return settings.ECPAY


def _post(url: str, params: dict) -> requests.Response:
    try:
        resp = requests.post(
            url,
            data=params,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=_conf().get("TIMEOUT", 8),
        )
    except RequestException as e:
        logger.error("ECPay request to %s failed: %s", url, e)
        raise GatewayUnavailableError(f"Gateway request failed: {e}")
    if not 200 <= resp.status_code < 300:
        logger.error("ECPay %s answered HTTP %s: %s", url, resp.status_code, (resp.text or "")[:300])
        raise GatewayUnavailableError(f"Gateway error HTTP {resp.status_code}")
    return resp


def _is_html(resp) -> bool:
    ctype = resp.headers.get("Content-Type", "") if resp.headers else ""
    return "text/html" in ctype or (resp.text or "").lstrip().startswith("<")


def parse_response(text: str) -> dict:
    """Decode a gateway body: ``1|OK`` acks, JSON objects or urlencoded pairs."""
    text = (text or "").strip()
    if not text:
        raise GatewayUnavailableError("Empty response from gateway", code="GATEWAY_MALFORMED")
    match = _ACK.match(text)
    if match:
        return {"RtnCode": match.group(1), "RtnMsg": match.group(2).strip()}
    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, dict):
            return data
    elif "=" in text:
        data = dict(parse_qsl(text, keep_blank_values=True))
        if data:
            return data
    raise GatewayUnavailableError("Malformed gateway response", code="GATEWAY_MALFORMED")


def _check_signature(data: dict, context: str):
    if checkmac.FIELD not in data:
        return
    if not checkmac.verify(payloads.flatten(data)):
        logger.warning("ECPay %s response for %s failed CheckMacValue", context, data.get("MerchantTradeNo", ""))
        raise SignatureError("Gateway response signature mismatch")


def build_order_params(*, merchant_trade_no, amount, item_name, store_type="7ELEVEN", trade_date=None) -> dict:
    conf = _conf()
    params = {
        "MerchantID": conf["MERCHANT_ID"],
        "MerchantTradeNo": merchant_trade_no,
        "MerchantTradeDate": format_gateway_datetime(trade_date),
        "PaymentType": "aio",
        "TotalAmount": int(amount),
        "TradeDesc": conf.get("TRADE_DESC") or "Convenience store barcode payment",
        "ItemName": truncate_item_name(item_name, conf.get("ITEM_NAME_MAX_LENGTH", 400)),
        "ReturnURL": conf.get("RETURN_URL", ""),
        "ChoosePayment": "BARCODE",
        "EncryptType": 1,
        "StoreExpireDate": conf.get("STORE_EXPIRE_DAYS", 7),
        "PaymentInfoURL": conf.get("PAYMENT_INFO_URL", ""),
    }
    if store_type in STORE_LABELS:
        params["Desc_1"] = STORE_LABELS[store_type]
    return checkmac.signed(params)


def create_barcode_order(*, merchant_trade_no, amount, item_name, store_type="7ELEVEN") -> dict:
    """Submit a BARCODE order and classify the gateway's answer.

    The result's ``mode`` is one of:

    * ``redirect``: the gateway served its hosted checkout page; ``payment_form``
      holds the action/method/params needed to forward the buyer.
    * ``direct``: the response already carries the barcode ``segments``.
    * ``deferred``: the order was accepted and the segments will arrive on the
      payment-info webhook; ``estimated_ready_at`` is a hint for polling.

    Raises GatewayUnavailableError for transport failures, non-2xx answers,
    malformed bodies and explicit rejections; SignatureError when a signed
    response does not verify.
    """
    conf = _conf()
    params = build_order_params(
        merchant_trade_no=merchant_trade_no, amount=amount, item_name=item_name, store_type=store_type,
    )
    resp = _post(conf["API_URL"], params)
    result = {"merchant_trade_no": merchant_trade_no, "request": params}

    if _is_html(resp):
        result.update(
            mode=MODE_REDIRECT,
            payment_form={"action": conf["API_URL"], "method": "POST", "params": params},
            response={"html": (resp.text or "")[:200]},
        )
        return result

    data = parse_response(resp.text)
    _check_signature(data, "create")
    rtn_code = str(data.get("RtnCode", ""))
    result.update(response=data, rtn_code=rtn_code, rtn_msg=str(data.get("RtnMsg", "")))

    segments = payloads.extract_segments(data)
    if segments:
        result.update(
            mode=MODE_DIRECT,
            segments=segments,
            payment_no=str(data.get("PaymentNo", "") or ""),
            expire_text=payloads.expire_text(data),
            trade_no=str(data.get("TradeNo", "") or ""),
        )
        return result

    if rtn_code in SUCCESS_CODES:
        wait = conf.get("BARCODE_READY_SECONDS", 60)
        result.update(mode=MODE_DEFERRED, estimated_ready_at=timezone.now() + timedelta(seconds=wait))
        return result

    logger.error("ECPay rejected %s: %s %s", merchant_trade_no, rtn_code, result["rtn_msg"])
    raise GatewayUnavailableError(
        f"Gateway rejected order: {rtn_code} {result['rtn_msg']}".strip(), code="GATEWAY_REJECTED"
    )


def query_payment_info(merchant_trade_no: str) -> dict:
    """Ask the gateway for the barcode/payment state of ``merchant_trade_no``.

    Returns the decoded response, nested ``BarcodeInfo`` left as received.
    """
    conf = _conf()
    params = checkmac.signed({
        "MerchantID": conf["MERCHANT_ID"],
        "MerchantTradeNo": merchant_trade_no,
        "TimeStamp": int(time.time()),
    })
    resp = _post(conf["QUERY_URL"], params)
    data = parse_response(resp.text)
    _check_signature(data, "query")
    return data
