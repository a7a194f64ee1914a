"""Small helpers shared by the gateway client and the order services."""

import time
from datetime import datetime, timedelta

from django.conf import settings
from django.utils import timezone
from django.utils.crypto import get_random_string

GATEWAY_DATE_FORMAT = "%Y/%m/%d %H:%M:%S"
MERCHANT_TRADE_NO_MAX = 20
TRADE_NO_PREFIX = "TP"
_TRADE_NO_CHARS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


def generate_merchant_trade_no(order_id: int) -> str:
    """TP + 8 timestamp digits + 4 random chars + order id, never above 20 chars."""
    stamp = str(int(time.time() * 1000))[-8:]
    suffix = get_random_string(4, allowed_chars=_TRADE_NO_CHARS)
    oid = str(order_id).zfill(3)[-6:]
    return f"{TRADE_NO_PREFIX}{stamp}{suffix}{oid}"[:MERCHANT_TRADE_NO_MAX]


def format_gateway_datetime(value: datetime = None) -> str:
    """``yyyy/MM/dd HH:mm:ss`` in the site's local time zone."""
    value = value or timezone.now()
    if timezone.is_aware(value):
        value = timezone.localtime(value)
    return value.strftime(GATEWAY_DATE_FORMAT)


def parse_gateway_datetime(value):
    """Parse a gateway timestamp (``2024/01/31 23:59:59`` or ``2024-01-31 ...``) as local time.

    Returns ``None`` for blank or unparseable input.
    """
    if not value:
        return None
    text = str(value).strip().replace("-", "/")
    for fmt in (GATEWAY_DATE_FORMAT, "%Y/%m/%d %H:%M", "%Y/%m/%d"):
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return timezone.make_aware(parsed, timezone.get_current_timezone())
    return None


def truncate_item_name(name: str, limit: int = None) -> str:
    limit = limit or settings.ECPAY.get("ITEM_NAME_MAX_LENGTH", 400)
    name = (name or "").strip()
    if len(name) <= limit:
        return name
    return name[: limit - 3] + "..."


def default_expire_date(now: datetime = None) -> datetime:
    days = settings.ECPAY.get("STORE_EXPIRE_DAYS", 7)
    return (now or timezone.now()) + timedelta(days=days)


def payment_code(order_id: int, created_at: datetime) -> str:
    day = timezone.localtime(created_at) if timezone.is_aware(created_at) else created_at
    return f"PAY{day:%Y%m%d}{order_id:03d}"


def absolute_url(path: str) -> str:
    return settings.PAYMENTS["PUBLIC_BASE_URL"].rstrip("/") + path
